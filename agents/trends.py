"""
Time-based catalogue operations: monthly trends, year-over-year, month-over-month, dormant vendors.

Buckets are keyed by PostingDate. Months (or years) are strictly ascending and months with no
matching rows are omitted, never zero-filled. Rows with an invalid date are skipped, and amount
trends also skip rows with an invalid amount.
"""
from datetime import date
from decimal import Decimal
from typing import Any, Dict, List, Optional

from agents.analyst import InvalidParameters, vendor_matches
from db.models import AMOUNT_FIELD, VENDOR_FIELD
from utils.normalizer import decimal_sum, month_key, parse_amount, parse_date, round2

TREND_DATE_FIELD = "PostingDate"
DEFAULT_DORMANT_MONTHS = 6


def _month(entry: dict) -> Optional[str]:
    return month_key(entry.get(TREND_DATE_FIELD))


def _reference(reference: Any) -> date:
    if reference is None or reference == "":
        return date.today()
    d = parse_date(reference)
    if d is None:
        raise InvalidParameters(f"reference must be a date (YYYY-MM-DD), got {reference}")
    return d


def _previous_month(d: date) -> str:
    if d.month == 1:
        return f"{d.year - 1}-12"
    return f"{d.year}-{d.month - 1:02d}"


def _monthly_counts(entries: List[dict]) -> List[dict]:
    counts: Dict[str, int] = {}
    for e in entries:
        m = _month(e)
        if m:
            counts[m] = counts.get(m, 0) + 1
    return [{"month": m, "count": counts[m]} for m in sorted(counts)]


def _monthly_amounts(entries: List[dict]) -> Dict[str, List[float]]:
    buckets: Dict[str, List[float]] = {}
    for e in entries:
        m = _month(e)
        amount = parse_amount(e.get(AMOUNT_FIELD))
        if m is None or amount is None:
            continue
        buckets.setdefault(m, []).append(amount)
    return buckets


def amount_monthly_trend(entries: List[dict]) -> List[dict]:
    buckets = _monthly_amounts(entries)
    return [{"month": m, "totalAmount": decimal_sum(buckets[m])} for m in sorted(buckets)]


def vendor_monthly_trend(entries: List[dict], vendor: str) -> List[dict]:
    if vendor is None or not str(vendor).strip():
        raise InvalidParameters("vendor is required")
    return _monthly_counts([e for e in entries if vendor_matches(e.get(VENDOR_FIELD), vendor)])


def vendor_this_vs_last_month(entries: List[dict], vendor: str, reference: Any = None) -> List[dict]:
    """Entry counts for the reference month (default: today) and the month before it."""
    if vendor is None or not str(vendor).strip():
        raise InvalidParameters("vendor is required")
    ref = _reference(reference)
    wanted = {ref.strftime("%Y-%m"), _previous_month(ref)}
    rows = [e for e in entries if vendor_matches(e.get(VENDOR_FIELD), vendor) and _month(e) in wanted]
    return _monthly_counts(rows)


def cost_center_monthly_trend(entries: List[dict], cost_center: str) -> List[dict]:
    if cost_center is None or not str(cost_center).strip():
        raise InvalidParameters("costCenter is required")
    needle = str(cost_center).strip().lower()
    return _monthly_counts(
        [e for e in entries if str(e.get("JournalEntryCostCenter") or "").strip().lower() == needle]
    )


def credit_debit_monthly_trend(entries: List[dict]) -> List[dict]:
    """(month, entry type) counts; months ascending, types in first-seen order within a month."""
    counts: Dict[tuple, int] = {}
    for e in entries:
        m = _month(e)
        t = str(e.get("JournalEntryType") or "").strip().upper()
        if m is None or not t:
            continue
        counts[(m, t)] = counts.get((m, t), 0) + 1
    keys = sorted(counts, key=lambda k: k[0])
    return [{"month": m, "type": t, "count": counts[(m, t)]} for m, t in keys]


def get_year_over_year_comparison(entries: List[dict]) -> List[dict]:
    buckets: Dict[str, List[float]] = {}
    for month, amounts in _monthly_amounts(entries).items():
        buckets.setdefault(month[:4], []).extend(amounts)
    return [
        {"year": y, "totalAmount": decimal_sum(buckets[y]), "count": len(buckets[y])}
        for y in sorted(buckets)
    ]


def get_month_over_month_comparison(entries: List[dict]) -> List[dict]:
    """
    Monthly totals with the percent change from the previous listed month.
    changePercent is None for the first month and whenever the previous total is 0.
    """
    out: List[dict] = []
    prev: Optional[float] = None
    for row in amount_monthly_trend(entries):
        total = row["totalAmount"]
        change = None
        if prev:
            change = round2((Decimal(str(total)) - Decimal(str(prev))) * 100 / abs(Decimal(str(prev))))
        out.append({"month": row["month"], "totalAmount": total, "changePercent": change})
        prev = total
    return out


def _months_between(earlier: date, later: date) -> int:
    months = (later.year - earlier.year) * 12 + (later.month - earlier.month)
    if later.day < earlier.day:
        months -= 1
    return max(months, 0)


def get_dormant_vendors(entries: List[dict], months: int = DEFAULT_DORMANT_MONTHS, reference: Any = None) -> List[dict]:
    """
    Vendors whose latest valid posting is at least `months` whole months before reference (default: today).
    Vendors with no valid posting date are not reported. Longest inactive first.
    """
    months = int(months)
    if months < 0:
        raise InvalidParameters(f"months must not be negative, got {months}")
    ref = _reference(reference)

    last_seen: Dict[str, dict] = {}
    for e in entries:
        name = str(e.get(VENDOR_FIELD) or "").strip()
        d = parse_date(e.get(TREND_DATE_FIELD))
        if not name or d is None:
            continue
        key = name.upper()
        if key not in last_seen or d > last_seen[key]["date"]:
            last_seen[key] = {"vendorName": last_seen.get(key, {}).get("vendorName", name), "date": d}

    out = []
    for v in last_seen.values():
        inactive = _months_between(v["date"], ref)
        if inactive >= months:
            out.append({"vendorName": v["vendorName"], "lastPostingDate": v["date"].isoformat(), "monthsInactive": inactive})
    out.sort(key=lambda r: -r["monthsInactive"])
    return out
