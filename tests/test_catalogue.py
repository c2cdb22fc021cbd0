from datetime import date

import pytest

from agents.analyst import InvalidParameters
from agents.catalogue import CATALOGUE, adapt_parameters, describe_catalogue, get_operation

ROW_PREVIEW_OPERATIONS = {
    "getEntriesByVendor",
    "getEntriesByAmount",
    "getDocumentDetails",
    "getReversalDocuments",
    "detectAmountOutliers",
}


def test_every_operation_is_described():
    text = describe_catalogue()
    for name in CATALOGUE:
        assert name in text


def test_row_preview_operations_never_chart():
    preview = {name for name, op in CATALOGUE.items() if op.row_preview}
    assert preview == ROW_PREVIEW_OPERATIONS
    assert not any(CATALOGUE[name].chart for name in preview)


def test_unknown_operation():
    assert get_operation("dropEverything") is None
    assert get_operation(None) is None


def test_amount_aliases_map_to_python_keywords():
    op = get_operation("getEntriesByAmount")
    kwargs = adapt_parameters(op, {"minAmount": "50,000", "unrelated": 1})
    assert kwargs == {"min_amount": 50000.0, "min_inclusive": True, "max_inclusive": True}


def test_inclusive_flags_are_coerced():
    op = get_operation("getEntriesByAmount")
    kwargs = adapt_parameters(op, {"min": 10, "minInclusive": "false"})
    assert kwargs["min_inclusive"] is False


def test_missing_required_parameter():
    with pytest.raises(InvalidParameters):
        adapt_parameters(get_operation("getEntriesByVendor"), {"vendor": "  "})


def test_status_field_from_level_token():
    op = get_operation("getEntriesByStatus")
    assert adapt_parameters(op, {"level": "L1", "status": "approved"}) == {
        "field": "L1ApproverStatus",
        "status": "Approved",
    }


def test_status_outside_domain():
    op = get_operation("getEntriesByStatus")
    with pytest.raises(InvalidParameters):
        adapt_parameters(op, {"field": "InitiatorStatus", "status": "Declined"})


@pytest.mark.parametrize("raw, expected", [("L2", "L2"), ("level 2", "L2"), ("1", "L1"), ("l1", "L1")])
def test_level_coercion(raw, expected):
    assert adapt_parameters(get_operation("getApprovalOverview"), {"level": raw}) == {"level": expected}


def test_level_default_and_out_of_domain():
    op = get_operation("getApproverWorkload")
    assert adapt_parameters(op, {}) == {"level": "L1"}
    with pytest.raises(InvalidParameters):
        adapt_parameters(op, {"level": "L3"})


def test_dates_are_parsed():
    kwargs = adapt_parameters(get_operation("getEntriesByDate"), {"startDate": "2025-01-01", "endDate": "2025-01-31"})
    assert kwargs == {"start": date(2025, 1, 1), "end": date(2025, 1, 31), "field": "DocumentDate"}


def test_fuzzy_field_name():
    kwargs = adapt_parameters(get_operation("countByField"), {"field": "cost centre"})
    assert kwargs == {"field": "JournalEntryCostCenter"}


def test_cost_center_keyword_renamed():
    assert adapt_parameters(get_operation("costCenterMonthlyTrend"), {"costCenter": "CC100"}) == {"cost_center": "CC100"}
