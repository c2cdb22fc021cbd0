"""
Query normalization layer BEFORE classification.
Uses rapidfuzz to correct misspelled ledger keywords ("vendros", "aproval") and, when a vocabulary
is supplied, vendor names. Only corrects important tokens; similarity >= 85%;
returns normalized_query and correction_map.
"""
import re
from typing import Dict, Iterable, List, Optional, Set

from rapidfuzz import fuzz
from rapidfuzz.process import extractOne

# Ledger keywords (lowercase). Plural and singular both listed so neither is "corrected" into the other.
LEDGER_KEYWORDS: Set[str] = {
    "vendor", "vendors", "supplier", "suppliers", "amount", "amounts", "entry", "entries",
    "journal", "credit", "debit", "approval", "approvals", "approved", "approver", "approvers",
    "rejected", "pending", "status", "overview", "summary", "distribution", "monthly", "month",
    "months", "trend", "trends", "yearly", "year", "cost", "center", "centers", "centre", "centres",
    "profit", "business", "area", "areas", "average", "transaction", "transactions", "concentration",
    "dormant", "inactive", "workload", "reversal", "reversals", "document", "documents", "errors",
    "error", "outlier", "outliers", "anomalies", "comparison", "compare", "range", "ranges",
    "between", "greater", "above", "below", "exceeding", "initiator", "posting", "thousand", "lakh",
    "total", "count", "statistics", "breakdown", "percentage", "spend", "spending", "spent",
}

SIMILARITY_THRESHOLD = 85
MIN_TOKEN_LENGTH = 4

_EDGE_PUNCT_RE = re.compile(r"^(\W*)(.*?)(\W*)$")


def _tokenize(query: str) -> List[str]:
    """Split query on whitespace; preserve order and original token strings."""
    if not query or not isinstance(query, str):
        return []
    return query.split()


def _is_number_or_date_part(s: str) -> bool:
    """True if token looks like a number or numeric date part (e.g. 12, 2025, 2025-01-31)."""
    s = s.strip()
    if not s:
        return True
    return bool(re.fullmatch(r"[\d.,:/\-()₹$]+[kK]?", s))


def normalize_query(user_query: str, vendor_names: Optional[Iterable[str]] = None) -> dict:
    """
    Normalize a question before classification using fuzzy matching on important tokens only.
    - ledger keywords, then vendor names (when given; case preserved from the vocabulary)
    - Replace a token ONLY if rapidfuzz similarity >= 85%.
    - Do NOT rewrite the entire sentence; surrounding punctuation is kept.
    Returns: {"normalized_query": str, "correction_map": dict (original -> corrected)}
    """
    if not user_query or not str(user_query).strip():
        return {"normalized_query": "", "correction_map": {}}

    query = str(user_query).strip()
    tokens = _tokenize(query)
    if not tokens:
        return {"normalized_query": query, "correction_map": {}}

    keywords = sorted(LEDGER_KEYWORDS)
    vendor_lower_to_original = {str(v).strip().lower(): str(v).strip() for v in (vendor_names or []) if v and str(v).strip()}
    vendor_choices = list(vendor_lower_to_original.keys())

    correction_map: Dict[str, str] = {}
    normalized_tokens: List[str] = []

    for token in tokens:
        lead, core, trail = _EDGE_PUNCT_RE.match(token).groups()
        if len(core) < MIN_TOKEN_LENGTH or _is_number_or_date_part(core):
            normalized_tokens.append(token)
            continue

        core_lower = core.lower()
        if core_lower in LEDGER_KEYWORDS or core_lower in vendor_lower_to_original:
            normalized_tokens.append(token)
            continue

        best_match: Optional[str] = None
        best_score = 0.0

        # 1. Ledger keywords (replace with lowercase canonical)
        result = extractOne(core_lower, keywords, scorer=fuzz.ratio)
        if result and result[1] >= SIMILARITY_THRESHOLD:
            best_match, best_score = result[0], result[1]

        # 2. Vendor names (only a strictly better score replaces a keyword hit)
        if vendor_choices:
            result = extractOne(core_lower, vendor_choices, scorer=fuzz.ratio)
            if result and result[1] >= SIMILARITY_THRESHOLD and result[1] > best_score:
                best_match, best_score = vendor_lower_to_original[result[0]], result[1]

        if best_match is not None:
            correction_map[core] = best_match
            normalized_tokens.append(f"{lead}{best_match}{trail}")
        else:
            normalized_tokens.append(token)

    return {"normalized_query": " ".join(normalized_tokens), "correction_map": correction_map}
