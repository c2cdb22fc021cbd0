from agents.catalogue import get_operation
from agents.planner import Decision
from agents.responder import NO_DATA_ANSWER, rejection, respond
from utils.chart_validator import build_chart, resolve_shape, sniff_shape, validate_chart


def _decision(**kwargs):
    defaults = {"message": "Here are the vendors.", "graph": True, "graph_type": "bar", "confidence": 0.9}
    defaults.update(kwargs)
    return Decision(**defaults)


def test_sniff_priority():
    assert sniff_shape([{"status": "Approved", "count": 2}]) == "approval-overview"
    assert sniff_shape([{"status": "Approved", "count": 2, "percentage": 50.0}]) == "approval-rate"
    assert sniff_shape([{"type": "CREDIT", "count": 1}]) == "entry-type-count"
    assert sniff_shape([{"month": "2025-01", "count": 1}]) == "month-count"
    assert sniff_shape([{"month": "2025-01", "totalAmount": 1.0}]) == "month-amount"
    assert sniff_shape([{"profitCenter": "P1", "count": 1}]) == "center-count"
    assert sniff_shape([{"unexpected": 1}]) is None
    assert sniff_shape([]) is None


def test_declared_shape_wins():
    assert resolve_shape([{"status": "Approved", "count": 2}], "status-count") == "status-count"
    assert resolve_shape([{"status": "Approved", "count": 2}], None) == "approval-overview"


def test_chart_axes_parallel():
    result = [{"vendorName": "A", "count": 3}, {"vendorName": "B", "count": 1}]
    chart = build_chart(result, "vendor-count", "pie")
    assert chart == {"type": "pie", "x": ["A", "B"], "y": [3, 1], "label": "Entries"}


def test_chart_suppressed_for_facets_and_empty_axes():
    assert build_chart({"rows": [], "totalCount": 0}, "facet") is None
    assert build_chart([{"vendorName": "A", "count": "n/a"}], "vendor-count") is None
    assert not validate_chart({"type": "bar", "x": ["A"], "y": []})
    assert not validate_chart({"type": "radar", "x": ["A"], "y": [1]})


def test_amount_stats_chart():
    chart = build_chart({"totalAmount": 50.0, "avgAmount": 25.0, "maxAmount": 100.0, "minAmount": -50.0}, "amount-stats")
    assert chart["x"] == ["totalAmount", "avgAmount", "maxAmount", "minAmount"]
    assert chart["y"] == [50.0, 25.0, 100.0, -50.0]


def test_long_list_is_previewed_with_disclosure():
    op = get_operation("topVendors")
    result = [{"vendorName": f"V{i}", "count": 100 - i} for i in range(60)]
    payload = respond(_decision(), op, {"shape": op.shape, "payload": result})
    assert len(payload["data"]) == 50
    assert payload["answer"].endswith("Showing first 50 of 60 results.")
    assert len(payload["graph"]["x"]) == len(payload["graph"]["y"]) == 50
    assert payload["presentType"] == "bar"


def test_facet_discloses_total_and_never_charts():
    op = get_operation("getEntriesByVendor")
    facet = {"rows": [{"excelRowNumber": i} for i in range(50)], "totalCount": 75, "uniqueVendorCount": 1}
    payload = respond(_decision(), op, {"shape": op.shape, "payload": facet})
    assert payload["graph"] is None
    assert payload["presentType"] == "table"
    assert "Showing first 50 of 75 results." in payload["answer"]


def test_empty_result():
    op = get_operation("topVendors")
    payload = respond(_decision(), op, {"shape": op.shape, "payload": []})
    assert payload["answer"] == NO_DATA_ANSWER
    assert payload["data"] == []
    assert payload["graph"] is None
    assert payload["status"] == "answered"


def test_rejection_payload():
    payload = rejection("low_confidence")
    assert payload["data"] == []
    assert payload["graph"] is None
    assert payload["presentType"] == "table"
    assert payload["status"] == "low_confidence"
