"""
Analyst: catalogue calculations over ledger entries. No text generation, no database access.

Every function takes the entry list (scanned in excelRowNumber order) plus explicit parameters and
returns a JSON-serializable result. Distributions sort descending by count with a stable sort, so
ties keep the order in which values were first seen.

Amounts are parsed at query time; an amount that does not parse is left out of every sum, average,
min, max, range filter and outlier check (see utils.normalizer).
"""
import math
import re
from decimal import Decimal
from typing import Any, Callable, Dict, Iterable, List, Optional

from db.models import (
    AMOUNT_FIELD,
    APPROVAL_LEVELS,
    DATE_FIELDS,
    STATUS_FIELDS,
    STATUS_VALUES,
    VENDOR_FIELD,
)
from utils.normalizer import (
    amount_in_range,
    date_in_range,
    decimal_sum,
    normalize_text,
    parse_amount,
    parse_date,
    round2,
)

PREVIEW_LIMIT = 50
DEFAULT_TOP_N = 10
PENDING = "Pending"

# (label, lower bound inclusive, upper bound exclusive); None = open
AMOUNT_RANGES = [
    ("Negative", None, 0),
    ("0-10K", 0, 10_000),
    ("10K-50K", 10_000, 50_000),
    ("50K-1L", 50_000, 100_000),
    ("1L-5L", 100_000, 500_000),
    ("5L-10L", 500_000, 1_000_000),
    ("10L+", 1_000_000, None),
]

# Document numbers carry a digit and no whitespace; anything else in that column is an error message
_DOCUMENT_NUMBER_RE = re.compile(r"^[A-Za-z0-9/_\-.]*\d[A-Za-z0-9/_\-.]*$")


class InvalidParameters(ValueError):
    """A catalogue operation was given parameters outside its domain."""


def _text(entry: dict, field: str) -> str:
    val = entry.get(field)
    return "" if val is None else str(val).strip()


def _amount(entry: dict) -> Optional[float]:
    return parse_amount(entry.get(AMOUNT_FIELD))


def _count_by(entries: Iterable[dict], key_fn: Callable[[dict], Optional[str]]) -> List[tuple]:
    """(key, count) pairs, descending by count; equal counts keep first-seen order."""
    counts: Dict[str, int] = {}
    for e in entries:
        key = key_fn(e)
        if not key:
            continue
        counts[key] = counts.get(key, 0) + 1
    return sorted(counts.items(), key=lambda kv: -kv[1])


def _limit(limit: Any) -> int:
    if limit is None:
        return DEFAULT_TOP_N
    n = int(limit)
    if n < 1:
        raise InvalidParameters(f"limit must be a positive integer, got {limit}")
    return n


def vendor_matches(name: Any, vendor: str) -> bool:
    """Normalized case-insensitive substring match. User text is never treated as a pattern."""
    needle = normalize_text(vendor)
    return bool(needle) and needle in normalize_text(name)


def _require_vendor(vendor: Any) -> str:
    if vendor is None or not str(vendor).strip():
        raise InvalidParameters("vendor is required")
    return str(vendor).strip()


def _level_fields(level: Any) -> tuple:
    key = str(level or "L1").strip().upper()
    if key not in APPROVAL_LEVELS:
        raise InvalidParameters(f"level must be one of {sorted(APPROVAL_LEVELS)}, got {level}")
    return APPROVAL_LEVELS[key]


def _unique_vendor_count(rows: List[dict]) -> int:
    return len({normalize_text(r.get(VENDOR_FIELD)) for r in rows if _text(r, VENDOR_FIELD)})


def facet(rows: List[dict], **extra: Any) -> dict:
    """Bounded row preview plus the true total and unique vendor count."""
    out = {
        "rows": rows[:PREVIEW_LIMIT],
        "totalCount": len(rows),
        "uniqueVendorCount": _unique_vendor_count(rows),
    }
    out.update(extra)
    return out


# ---------------------------------------------------------------------------
# Counts and distributions
# ---------------------------------------------------------------------------
def count_all_entries(entries: List[dict]) -> List[dict]:
    return [{"label": "Total Entries", "count": len(entries)}]


def count_all_journal_entry_types(entries: List[dict]) -> List[dict]:
    """Entry types trimmed and upper-cased ("credit " and "CREDIT" are one bucket); blanks skipped."""
    pairs = _count_by(entries, lambda e: _text(e, "JournalEntryType").upper())
    return [{"type": t, "count": c} for t, c in pairs]


def count_by_field(entries: List[dict], field: str) -> List[dict]:
    pairs = _count_by(entries, lambda e: _text(e, field))
    return [{"field": field, "value": v, "count": c} for v, c in pairs]


def top_by_field(entries: List[dict], field: str, limit: Optional[int] = None) -> List[dict]:
    pairs = _count_by(entries, lambda e: _text(e, field))
    return [{"value": v, "count": c} for v, c in pairs[: _limit(limit)]]


def top_vendors(entries: List[dict], limit: Optional[int] = None) -> List[dict]:
    pairs = _count_by(entries, lambda e: _text(e, VENDOR_FIELD))
    return [{"vendorName": v, "count": c} for v, c in pairs[: _limit(limit)]]


def _center_distribution(entries: List[dict], field: str, key: str, limit: Optional[int] = None) -> List[dict]:
    pairs = _count_by(entries, lambda e: _text(e, field))
    if limit is not None:
        pairs = pairs[: _limit(limit)]
    return [{key: v, "count": c} for v, c in pairs]


def get_cost_center_distribution(entries: List[dict]) -> List[dict]:
    return _center_distribution(entries, "JournalEntryCostCenter", "costCenter")


def top_cost_centers(entries: List[dict], limit: Optional[int] = None) -> List[dict]:
    return _center_distribution(entries, "JournalEntryCostCenter", "costCenter", _limit(limit))


def get_profit_center_distribution(entries: List[dict]) -> List[dict]:
    return _center_distribution(entries, "JournalEntryProfitCenter", "profitCenter")


def top_profit_centers(entries: List[dict], limit: Optional[int] = None) -> List[dict]:
    return _center_distribution(entries, "JournalEntryProfitCenter", "profitCenter", _limit(limit))


def get_business_area_distribution(entries: List[dict]) -> List[dict]:
    return _center_distribution(entries, "JournalEntryBusinessArea", "businessArea")


# ---------------------------------------------------------------------------
# Amount statistics
# ---------------------------------------------------------------------------
def amount_stats(entries: List[dict]) -> dict:
    """
    Single record over entries with a valid amount.
    With no valid amount at all, every aggregate is 0.0.
    """
    amounts = [a for a in (_amount(e) for e in entries) if a is not None]
    if not amounts:
        return {"totalAmount": 0.0, "avgAmount": 0.0, "maxAmount": 0.0, "minAmount": 0.0}
    total = decimal_sum(amounts)
    return {
        "totalAmount": total,
        "avgAmount": round2(Decimal(str(total)) / len(amounts)),
        "maxAmount": round2(max(amounts)),
        "minAmount": round2(min(amounts)),
    }


def statistics_snapshot(entries: List[dict]) -> dict:
    """GET /query/stats payload. Recomputed from the full collection on every call."""
    return {
        "totalEntries": len(entries),
        "amountStats": amount_stats(entries),
        "uniqueCounts": {"vendors": _unique_vendor_count(entries)},
    }


# ---------------------------------------------------------------------------
# Filters
# ---------------------------------------------------------------------------
def get_entries_by_date(entries: List[dict], start: Any, end: Any, field: str = "DocumentDate") -> List[dict]:
    """Vendor-wise count and total between start and end (inclusive), highest total first."""
    if field not in DATE_FIELDS:
        raise InvalidParameters(f"field must be one of {list(DATE_FIELDS)}, got {field}")
    start_d, end_d = parse_date(start), parse_date(end)
    if start_d is None or end_d is None:
        raise InvalidParameters("start and end must be dates (YYYY-MM-DD)")
    if start_d > end_d:
        raise InvalidParameters("start must not be after end")

    groups: Dict[str, dict] = {}
    for e in entries:
        name = _text(e, VENDOR_FIELD)
        amount = _amount(e)
        if not name or amount is None:
            continue
        if not date_in_range(parse_date(e.get(field)), start_d, end_d):
            continue
        g = groups.setdefault(name.upper(), {"vendorName": name, "count": 0, "amounts": []})
        g["count"] += 1
        g["amounts"].append(amount)

    out = [
        {"vendorName": g["vendorName"], "count": g["count"], "totalAmount": decimal_sum(g["amounts"])}
        for g in groups.values()
    ]
    out.sort(key=lambda r: -r["totalAmount"])
    return out


def get_entries_by_status(entries: List[dict], field: str, status: str) -> dict:
    if field not in STATUS_FIELDS:
        raise InvalidParameters(f"field must be one of {list(STATUS_FIELDS)}, got {field}")
    canonical = {s.lower(): s for s in STATUS_VALUES}.get(str(status or "").strip().lower())
    if canonical is None:
        raise InvalidParameters(f"status must be one of {list(STATUS_VALUES)}, got {status}")
    count = sum(1 for e in entries if _text(e, field).lower() == canonical.lower())
    return {"field": field, "status": canonical, "count": count}


def get_entries_by_vendor(entries: List[dict], vendor: str) -> dict:
    vendor = _require_vendor(vendor)
    return facet([e for e in entries if vendor_matches(e.get(VENDOR_FIELD), vendor)])


def get_entries_by_amount(
    entries: List[dict],
    min_amount: Optional[float] = None,
    max_amount: Optional[float] = None,
    min_inclusive: bool = True,
    max_inclusive: bool = True,
) -> dict:
    """
    Rows whose parsed amount lies within the bounds. A missing bound is open.
    Rows with an invalid amount never match.
    """
    if min_amount is not None and max_amount is not None and min_amount > max_amount:
        raise InvalidParameters(f"min ({min_amount}) is greater than max ({max_amount})")
    rows = [
        e for e in entries
        if amount_in_range(_amount(e), min_amount, max_amount, min_inclusive, max_inclusive)
    ]
    return facet(rows)


# ---------------------------------------------------------------------------
# Vendor performance
# ---------------------------------------------------------------------------
def get_vendor_average_transaction(entries: List[dict], vendor: str) -> dict:
    vendor = _require_vendor(vendor)
    name = None
    amounts: List[float] = []
    for e in entries:
        if not vendor_matches(e.get(VENDOR_FIELD), vendor):
            continue
        amount = _amount(e)
        if amount is None:
            continue
        name = name or _text(e, VENDOR_FIELD)
        amounts.append(amount)
    total = decimal_sum(amounts)
    avg = round2(Decimal(str(total)) / len(amounts)) if amounts else 0.0
    return {"vendorName": name or vendor, "count": len(amounts), "totalAmount": total, "avgAmount": avg}


def get_vendor_concentration(entries: List[dict], limit: Optional[int] = None) -> List[dict]:
    """Vendors by total amount with their share of the overall total (percent, 2 decimals)."""
    groups: Dict[str, dict] = {}
    all_amounts: List[float] = []
    for e in entries:
        name = _text(e, VENDOR_FIELD)
        amount = _amount(e)
        if not name or amount is None:
            continue
        all_amounts.append(amount)
        groups.setdefault(name.upper(), {"vendorName": name, "amounts": []})["amounts"].append(amount)

    grand_total = decimal_sum(all_amounts)
    out = []
    for g in groups.values():
        total = decimal_sum(g["amounts"])
        pct = round2(Decimal(str(total)) * 100 / Decimal(str(grand_total))) if grand_total else 0.0
        out.append({"vendorName": g["vendorName"], "totalAmount": total, "percentage": pct})
    out.sort(key=lambda r: -r["totalAmount"])
    return out[: _limit(limit)]


# ---------------------------------------------------------------------------
# Approval workflow
# ---------------------------------------------------------------------------
def approval_bucket(raw: Any) -> str:
    """Blank, missing and any-case "pending" collapse into Pending; other statuses title-cased as found."""
    s = "" if raw is None else re.sub(r"\s+", " ", str(raw)).strip()
    if not s or s.lower() == "pending":
        return PENDING
    return s.title()


def get_approval_overview(entries: List[dict], level: str = "L1") -> List[dict]:
    """Every distinct status present at the level, never a fixed subset."""
    status_field, _ = _level_fields(level)
    pairs = _count_by(entries, lambda e: approval_bucket(e.get(status_field)))
    return [{"status": s, "count": c} for s, c in pairs]


def get_approval_rates(entries: List[dict], level: str = "L1") -> List[dict]:
    overview = get_approval_overview(entries, level)
    total = len(entries)
    return [
        {
            "status": row["status"],
            "count": row["count"],
            "percentage": round2(Decimal(row["count"]) * 100 / Decimal(total)) if total else 0.0,
        }
        for row in overview
    ]


def get_approver_workload(entries: List[dict], level: str = "L1") -> List[dict]:
    _, name_field = _level_fields(level)
    pairs = _count_by(entries, lambda e: _text(e, name_field))
    return [{"approver": a, "count": c} for a, c in pairs]


# ---------------------------------------------------------------------------
# Documents and errors
# ---------------------------------------------------------------------------
def get_document_details(entries: List[dict], document: str) -> List[dict]:
    """Rows whose document number, work id or reversal number equals document (case-insensitive)."""
    if document is None or not str(document).strip():
        raise InvalidParameters("document is required")
    needle = str(document).strip().lower()
    keys = ("DocumentNumberOrErrorMessage", "zvolvWID", "WID", "ReversalDocumentNumber")
    return [e for e in entries if any(_text(e, k).lower() == needle for k in keys)]


def get_reversal_documents(entries: List[dict]) -> dict:
    return facet([e for e in entries if _text(e, "ReversalDocumentNumber")])


def is_error_message(val: Any) -> bool:
    s = "" if val is None else str(val).strip()
    return bool(s) and not _DOCUMENT_NUMBER_RE.match(s)


def get_documents_with_errors(entries: List[dict]) -> List[dict]:
    pairs = _count_by(
        entries,
        lambda e: _text(e, "DocumentNumberOrErrorMessage") if is_error_message(e.get("DocumentNumberOrErrorMessage")) else None,
    )
    return [{"errorMessage": m, "count": c} for m, c in pairs]


# ---------------------------------------------------------------------------
# Anomalies and ranges
# ---------------------------------------------------------------------------
def detect_amount_outliers(entries: List[dict], threshold: float = 2) -> dict:
    """Rows more than threshold population standard deviations away from the mean amount."""
    threshold = float(threshold)
    if threshold <= 0:
        raise InvalidParameters(f"threshold must be positive, got {threshold}")
    valued = [(e, a) for e, a in ((e, _amount(e)) for e in entries) if a is not None]
    if not valued:
        return {"rows": [], "totalCount": 0, "mean": 0.0, "stdDev": 0.0}
    amounts = [a for _, a in valued]
    mean = math.fsum(amounts) / len(amounts)
    std = math.sqrt(math.fsum((a - mean) ** 2 for a in amounts) / len(amounts))
    rows = [e for e, a in valued if std > 0 and abs(a - mean) > threshold * std]
    return {"rows": rows[:PREVIEW_LIMIT], "totalCount": len(rows), "mean": round2(mean), "stdDev": round2(std)}


def get_amount_range_summary(entries: List[dict]) -> List[dict]:
    """Fixed buckets in ascending order; empty buckets report 0."""
    counts = {label: 0 for label, _, _ in AMOUNT_RANGES}
    for e in entries:
        a = _amount(e)
        if a is None:
            continue
        for label, low, high in AMOUNT_RANGES:
            if (low is None or a >= low) and (high is None or a < high):
                counts[label] += 1
                break
    return [{"range": label, "count": counts[label]} for label, _, _ in AMOUNT_RANGES]
