import pytest

from agents import analyst
from agents.analyst import InvalidParameters


def _rows(make_entry, field, values):
    return [make_entry(row=i + 2, **{field: v}) for i, v in enumerate(values)]


def test_statistics_snapshot_excludes_invalid_amounts(make_entry):
    entries = [
        make_entry(2, JournalEntryVendorName="A", JournalEntryAmount="100"),
        make_entry(3, JournalEntryVendorName="B", JournalEntryAmount="(50)"),
        make_entry(4, JournalEntryVendorName="A", JournalEntryAmount="bad"),
    ]
    stats = analyst.statistics_snapshot(entries)
    assert stats["totalEntries"] == 3
    assert stats["uniqueCounts"] == {"vendors": 2}
    assert stats["amountStats"] == {"totalAmount": 50.0, "avgAmount": 25.0, "maxAmount": 100.0, "minAmount": -50.0}


def test_amount_stats_with_no_valid_amount():
    assert analyst.amount_stats([{"JournalEntryAmount": "n/a"}]) == {
        "totalAmount": 0.0, "avgAmount": 0.0, "maxAmount": 0.0, "minAmount": 0.0,
    }


def test_entry_types_trimmed_and_upper_cased(make_entry):
    entries = _rows(make_entry, "JournalEntryType", ["credit ", "Debit", "CREDIT", ""])
    assert analyst.count_all_journal_entry_types(entries) == [
        {"type": "CREDIT", "count": 2},
        {"type": "DEBIT", "count": 1},
    ]


def test_top_vendors_ties_keep_first_seen_order(make_entry):
    entries = _rows(make_entry, "JournalEntryVendorName", ["B", "A", "B", "A", "C"])
    assert analyst.top_vendors(entries) == [
        {"vendorName": "B", "count": 2},
        {"vendorName": "A", "count": 2},
        {"vendorName": "C", "count": 1},
    ]
    assert [r["vendorName"] for r in analyst.top_vendors(entries, limit=2)] == ["B", "A"]


def test_top_vendors_rejects_non_positive_limit(make_entry):
    with pytest.raises(InvalidParameters):
        analyst.top_vendors([make_entry()], limit=0)


def test_approval_overview_collapses_blank_into_pending(make_entry):
    entries = _rows(make_entry, "L1ApproverStatus", ["Approved", "", "pending", "Rejected", "approved"])
    entries.append({"JournalEntryVendorName": "X"})
    assert analyst.get_approval_overview(entries, "L1") == [
        {"status": "Pending", "count": 3},
        {"status": "Approved", "count": 2},
        {"status": "Rejected", "count": 1},
    ]


def test_approval_overview_reports_every_status_present(make_entry):
    entries = _rows(make_entry, "L2ApproverStatus", ["On Hold", "Approved"])
    statuses = {r["status"] for r in analyst.get_approval_overview(entries, "L2")}
    assert statuses == {"On Hold", "Approved"}


def test_approval_rates_percentages(make_entry):
    entries = _rows(make_entry, "L1ApproverStatus", ["Approved", "Approved", "Rejected", ""])
    rates = analyst.get_approval_rates(entries, "L1")
    assert rates[0] == {"status": "Approved", "count": 2, "percentage": 50.0}


def test_unknown_level_is_invalid(make_entry):
    with pytest.raises(InvalidParameters):
        analyst.get_approval_overview([make_entry()], "L3")


def test_entries_by_amount_one_sided_and_exclusive(make_entry):
    entries = _rows(make_entry, "JournalEntryAmount", ["100", "60000", "bad", "50000"])
    above = analyst.get_entries_by_amount(entries, min_amount=50000, min_inclusive=False)
    assert above["totalCount"] == 1
    assert above["rows"][0]["JournalEntryAmount"] == "60000"
    assert analyst.get_entries_by_amount(entries, min_amount=50000)["totalCount"] == 2
    assert analyst.get_entries_by_amount(entries, max_amount=1000)["totalCount"] == 1


def test_entries_by_amount_min_above_max_is_invalid(make_entry):
    with pytest.raises(InvalidParameters):
        analyst.get_entries_by_amount([make_entry()], min_amount=10, max_amount=5)


def test_facet_preview_is_capped_but_total_is_true(make_entry):
    entries = [make_entry(i, JournalEntryVendorName="Acme Corp", JournalEntryAmount="1") for i in range(60)]
    result = analyst.get_entries_by_vendor(entries, "acme")
    assert len(result["rows"]) == analyst.PREVIEW_LIMIT
    assert result["totalCount"] == 60
    assert result["uniqueVendorCount"] == 1


def test_vendor_match_is_literal_not_a_pattern():
    assert analyst.vendor_matches("Regions’ Bank Account", "regions' bank")
    assert not analyst.vendor_matches("AXB Ltd", "A.B")
    assert analyst.vendor_matches("A.B Ltd", "A.B")


def test_entries_by_status_counts_and_rejects_unknown_status(make_entry):
    entries = _rows(make_entry, "InitiatorStatus", ["Approved", "approved", "Rejected"])
    assert analyst.get_entries_by_status(entries, "InitiatorStatus", "APPROVED") == {
        "field": "InitiatorStatus", "status": "Approved", "count": 2,
    }
    with pytest.raises(InvalidParameters):
        analyst.get_entries_by_status(entries, "InitiatorStatus", "Declined")


def test_entries_by_date_vendor_totals(make_entry):
    entries = [
        make_entry(2, JournalEntryVendorName="A", JournalEntryAmount="100", DocumentDate="2025-01-01"),
        make_entry(3, JournalEntryVendorName="B", JournalEntryAmount="300", DocumentDate="2025-01-31"),
        make_entry(4, JournalEntryVendorName="A", JournalEntryAmount="50", DocumentDate="2025-01-15"),
        make_entry(5, JournalEntryVendorName="A", JournalEntryAmount="999", DocumentDate="2025-02-01"),
        make_entry(6, JournalEntryVendorName="A", JournalEntryAmount="999", DocumentDate="not a date"),
    ]
    assert analyst.get_entries_by_date(entries, "2025-01-01", "2025-01-31") == [
        {"vendorName": "B", "count": 1, "totalAmount": 300.0},
        {"vendorName": "A", "count": 2, "totalAmount": 150.0},
    ]


def test_vendor_concentration_shares(make_entry):
    entries = [
        make_entry(2, JournalEntryVendorName="A", JournalEntryAmount="75"),
        make_entry(3, JournalEntryVendorName="B", JournalEntryAmount="25"),
    ]
    assert analyst.get_vendor_concentration(entries) == [
        {"vendorName": "A", "totalAmount": 75.0, "percentage": 75.0},
        {"vendorName": "B", "totalAmount": 25.0, "percentage": 25.0},
    ]


def test_vendor_average_transaction(make_entry):
    entries = [
        make_entry(2, JournalEntryVendorName="Acme Corp", JournalEntryAmount="100"),
        make_entry(3, JournalEntryVendorName="Acme Corp", JournalEntryAmount="200"),
        make_entry(4, JournalEntryVendorName="Acme Corp", JournalEntryAmount="oops"),
    ]
    assert analyst.get_vendor_average_transaction(entries, "acme") == {
        "vendorName": "Acme Corp", "count": 2, "totalAmount": 300.0, "avgAmount": 150.0,
    }


def test_documents_with_errors_and_details(make_entry):
    entries = [
        make_entry(2, DocumentNumberOrErrorMessage="5100000123", WID="W-1"),
        make_entry(3, DocumentNumberOrErrorMessage="Posting period closed"),
        make_entry(4, DocumentNumberOrErrorMessage=""),
        make_entry(5, ReversalDocumentNumber="5100000999"),
    ]
    assert analyst.get_documents_with_errors(entries) == [{"errorMessage": "Posting period closed", "count": 1}]
    assert [e["excelRowNumber"] for e in analyst.get_document_details(entries, "w-1")] == [2]
    assert analyst.get_reversal_documents(entries)["totalCount"] == 1


def test_outliers_use_population_std(make_entry):
    entries = _rows(make_entry, "JournalEntryAmount", ["10"] * 9 + ["1000"])
    result = analyst.detect_amount_outliers(entries)
    assert result["totalCount"] == 1
    assert result["rows"][0]["JournalEntryAmount"] == "1000"
    assert result["mean"] == 109.0
    assert result["stdDev"] == 297.0


def test_outliers_none_when_all_equal(make_entry):
    entries = _rows(make_entry, "JournalEntryAmount", ["5", "5", "5"])
    assert analyst.detect_amount_outliers(entries)["totalCount"] == 0


def test_amount_range_summary_includes_empty_buckets(make_entry):
    entries = _rows(make_entry, "JournalEntryAmount", ["-5", "500", "20000", "2000000", "bad"])
    summary = analyst.get_amount_range_summary(entries)
    assert [r["range"] for r in summary] == ["Negative", "0-10K", "10K-50K", "50K-1L", "1L-5L", "5L-10L", "10L+"]
    assert [r["count"] for r in summary] == [1, 1, 1, 0, 0, 0, 1]


def test_center_distributions(make_entry):
    entries = _rows(make_entry, "JournalEntryCostCenter", ["CC1", "CC2", "CC1", ""])
    assert analyst.get_cost_center_distribution(entries) == [
        {"costCenter": "CC1", "count": 2},
        {"costCenter": "CC2", "count": 1},
    ]
    assert analyst.top_cost_centers(entries, limit=1) == [{"costCenter": "CC1", "count": 2}]
