from datetime import date

from agents import trends


def test_amount_monthly_trend_skips_invalid_rows(make_entry):
    entries = [
        make_entry(2, PostingDate="2025-02-10", JournalEntryAmount="100"),
        make_entry(3, PostingDate="2025-01-05", JournalEntryAmount="50"),
        make_entry(4, PostingDate="2025-01-20", JournalEntryAmount="bad"),
        make_entry(5, PostingDate="garbage", JournalEntryAmount="10"),
    ]
    assert trends.amount_monthly_trend(entries) == [
        {"month": "2025-01", "totalAmount": 50.0},
        {"month": "2025-02", "totalAmount": 100.0},
    ]


def test_month_over_month_change(make_entry):
    entries = [
        make_entry(2, PostingDate="2025-01-05", JournalEntryAmount="50"),
        make_entry(3, PostingDate="2025-02-05", JournalEntryAmount="100"),
        make_entry(4, PostingDate="2025-03-05", JournalEntryAmount="25"),
    ]
    assert [r["changePercent"] for r in trends.get_month_over_month_comparison(entries)] == [None, 100.0, -75.0]


def test_year_over_year(make_entry):
    entries = [
        make_entry(2, PostingDate="2024-06-01", JournalEntryAmount="10"),
        make_entry(3, PostingDate="2025-01-01", JournalEntryAmount="20"),
        make_entry(4, PostingDate="2025-07-01", JournalEntryAmount="5"),
    ]
    assert trends.get_year_over_year_comparison(entries) == [
        {"year": "2024", "totalAmount": 10.0, "count": 1},
        {"year": "2025", "totalAmount": 25.0, "count": 2},
    ]


def test_vendor_monthly_trend_omits_empty_months(make_entry):
    entries = [
        make_entry(2, JournalEntryVendorName="Acme Corp", PostingDate="2025-01-03"),
        make_entry(3, JournalEntryVendorName="Acme Corp", PostingDate="2025-03-03"),
        make_entry(4, JournalEntryVendorName="Other", PostingDate="2025-02-03"),
    ]
    assert trends.vendor_monthly_trend(entries, "acme") == [
        {"month": "2025-01", "count": 1},
        {"month": "2025-03", "count": 1},
    ]


def test_vendor_this_vs_last_month(make_entry):
    entries = [
        make_entry(2, JournalEntryVendorName="Acme", PostingDate="2025-03-01"),
        make_entry(3, JournalEntryVendorName="Acme", PostingDate="2025-03-09"),
        make_entry(4, JournalEntryVendorName="Acme", PostingDate="2025-02-28"),
        make_entry(5, JournalEntryVendorName="Acme", PostingDate="2025-01-15"),
    ]
    assert trends.vendor_this_vs_last_month(entries, "Acme", reference=date(2025, 3, 15)) == [
        {"month": "2025-02", "count": 1},
        {"month": "2025-03", "count": 2},
    ]


def test_credit_debit_monthly_trend(make_entry):
    entries = [
        make_entry(2, JournalEntryType="credit", PostingDate="2025-02-01"),
        make_entry(3, JournalEntryType="Debit", PostingDate="2025-01-01"),
        make_entry(4, JournalEntryType="CREDIT", PostingDate="2025-01-10"),
    ]
    assert trends.credit_debit_monthly_trend(entries) == [
        {"month": "2025-01", "type": "DEBIT", "count": 1},
        {"month": "2025-01", "type": "CREDIT", "count": 1},
        {"month": "2025-02", "type": "CREDIT", "count": 1},
    ]


def test_dormant_vendors(make_entry):
    entries = [
        make_entry(2, JournalEntryVendorName="Old Vendor", PostingDate="2025-01-15"),
        make_entry(3, JournalEntryVendorName="Recent Vendor", PostingDate="2025-10-01"),
        make_entry(4, JournalEntryVendorName="No Date Vendor", PostingDate=""),
    ]
    assert trends.get_dormant_vendors(entries, months=6, reference="2025-12-31") == [
        {"vendorName": "Old Vendor", "lastPostingDate": "2025-01-15", "monthsInactive": 11},
    ]


def test_cost_center_monthly_trend(make_entry):
    entries = [
        make_entry(2, JournalEntryCostCenter="CC100", PostingDate="2025-04-01"),
        make_entry(3, JournalEntryCostCenter="cc100", PostingDate="2025-04-20"),
        make_entry(4, JournalEntryCostCenter="CC200", PostingDate="2025-04-20"),
    ]
    assert trends.cost_center_monthly_trend(entries, "CC100") == [{"month": "2025-04", "count": 2}]
