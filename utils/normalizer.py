"""
Normalize spreadsheet text at query time: amounts (numbers), dates (ISO), column headers.
Ledger fields are stored as text; nothing here is applied at ingestion.

Amount policy: an amount that does not parse is None and is EXCLUDED from every
sum, average, min, max, range filter and trend. It is never read as 0.
"""
import math
import re
from datetime import date, datetime
from decimal import Decimal, ROUND_HALF_UP
from typing import Any, Iterable, Optional

QUANTIZE = Decimal("0.01")

# Currency markers stripped before numeric parsing
CURRENCY_RE = re.compile(r"(?:₹|\$|€|£|\bINR|\bRs\.?)", re.IGNORECASE)
NUMBER_RE = re.compile(r"^-?\d+(?:\.\d+)?$")

# "Sun Nov 30 2025 05:30:00 GMT+0530 (India Standard Time)" -> date as written
LONG_LOCALE_RE = re.compile(
    r"^(?:[A-Za-z]{3},?\s+)?([A-Za-z]{3})\s+(\d{1,2})\s+(\d{4})(?:\s+\d{1,2}:\d{2}(?::\d{2})?)?(?:\s+GMT[+-]\d{4})?(?:\s+\(.*\))?$"
)
ISO_FORMATS = ("%Y-%m-%d", "%Y-%m-%d %H:%M:%S", "%Y-%m-%dT%H:%M:%S", "%Y-%m-%dT%H:%M:%S.%f", "%Y-%m-%d %H:%M:%S.%f")


def parse_amount(val: Any) -> Optional[float]:
    """
    Coerce a ledger amount to float, or None when it is not numeric.
    Handles commas, currency symbols, whitespace, "(500)" and "500-" negatives.
    """
    if val is None or isinstance(val, bool):
        return None
    if isinstance(val, (int, float)):
        if isinstance(val, float) and (math.isnan(val) or math.isinf(val)):
            return None
        return float(val)
    s = str(val).strip()
    if not s:
        return None
    s = CURRENCY_RE.sub("", s)
    s = s.replace(",", "").replace(" ", "")
    negative = False
    if s.startswith("(") and s.endswith(")"):
        negative = True
        s = s[1:-1]
    elif s.endswith("-") and not s.startswith("-"):
        negative = True
        s = s[:-1]
    if not NUMBER_RE.match(s):
        return None
    try:
        n = float(s)
    except ValueError:
        return None
    return -n if negative else n


def parse_date(val: Any) -> Optional[date]:
    """
    ISO YYYY-MM-DD (optionally with a time part) or the long locale timestamp.
    Returns None for anything else; never substitutes today.
    """
    if val is None:
        return None
    if isinstance(val, datetime):
        return val.date()
    if isinstance(val, date):
        return val
    s = str(val).strip()
    if not s:
        return None
    for fmt in ISO_FORMATS:
        try:
            return datetime.strptime(s, fmt).date()
        except ValueError:
            continue
    m = LONG_LOCALE_RE.match(s)
    if m:
        try:
            return datetime.strptime(f"{m.group(1)} {m.group(2)} {m.group(3)}", "%b %d %Y").date()
        except ValueError:
            return None
    return None


def month_key(val: Any) -> Optional[str]:
    """YYYY-MM bucket for a date field, or None when the date is invalid."""
    d = parse_date(val)
    return d.strftime("%Y-%m") if d else None


def round2(val: Any) -> float:
    """Round to 2 decimal places (half-up) for money."""
    if val is None:
        return 0.0
    return float(Decimal(str(val)).quantize(QUANTIZE, rounding=ROUND_HALF_UP))


def decimal_sum(values: Iterable[float]) -> float:
    total = Decimal("0")
    for v in values:
        if v is not None:
            total += Decimal(str(v))
    return round2(total)


def normalize_text(val: Any) -> str:
    """Trim, collapse whitespace, unify apostrophes, lowercase. Used for vendor matching."""
    if val is None:
        return ""
    s = str(val).replace("’", "'").replace("‘", "'").replace("`", "'")
    return re.sub(r"\s+", " ", s).strip().lower()


def normalize_column_name(name: Any) -> str:
    """Lowercase, drop everything but letters and digits ("Journal Entry Amount" -> "journalentryamount")."""
    if name is None:
        return ""
    return re.sub(r"[^a-z0-9]", "", str(name).strip().lower())


def date_in_range(value: Optional[date], start: Optional[date], end: Optional[date]) -> bool:
    """Inclusive on both ends; an invalid date never matches a range. A missing bound is open."""
    if value is None:
        return False
    if start is not None and value < start:
        return False
    if end is not None and value > end:
        return False
    return True


def amount_in_range(
    amount: Optional[float],
    min_amount: Optional[float] = None,
    max_amount: Optional[float] = None,
    min_inclusive: bool = True,
    max_inclusive: bool = True,
) -> bool:
    """One-sided bounds stay one-sided; an invalid amount never matches."""
    if amount is None:
        return False
    if min_amount is not None:
        if amount < min_amount or (not min_inclusive and amount == min_amount):
            return False
    if max_amount is not None:
        if amount > max_amount or (not max_inclusive and amount == max_amount):
            return False
    return True
