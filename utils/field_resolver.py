"""
Field resolver: map a user term ("vendor", "cost centre", "l1 status") to an exact entry field name.

Two stages:
1. Term -> canonical field via CANONICAL_VARIANT_MAP (exact match on the normalized form).
2. Near-miss spellings via rapidfuzz ratio against every variant (>= 85).

Field names are part of the wire contract, so an exact (case-sensitive) field name always wins.
"""
import logging
import re
from typing import Dict, Iterable, List, Optional, Tuple

from rapidfuzz import fuzz

from db.models import ENTRY_FIELDS

logger = logging.getLogger(__name__)

SIMILARITY_THRESHOLD = 85

# Entry field -> user variants (normalized with _normalize_for_match before comparing)
CANONICAL_VARIANT_MAP: Dict[str, List[str]] = {
    "zvolvWID": ["zvolv wid", "zvolvwid", "zvolv id"],
    "WID": ["wid", "workflow id"],
    "DocumentDate": ["document date", "doc date", "documentdate"],
    "PostingDate": ["posting date", "post date", "postingdate", "posted date"],
    "JournalEntrySrNo": ["sr no", "serial number", "serial no", "entry number", "srno"],
    "JournalEntryBusinessArea": ["business area", "businessarea", "area"],
    "JournalEntryAccountType": ["account type", "accounttype", "account"],
    "JournalEntryType": ["entry type", "journal entry type", "type", "credit debit", "entrytype"],
    "JournalEntryVendorName": ["vendor", "vendor name", "vendors", "supplier", "supplier name", "party"],
    "JournalEntryVendorNumber": ["vendor number", "vendor no", "vendor code", "supplier number"],
    "JournalEntryCostCenter": ["cost center", "cost centre", "costcenter", "cost centers", "cc"],
    "JournalEntryProfitCenter": ["profit center", "profit centre", "profitcenter", "profit centers", "pc"],
    "JournalEntryAmount": ["amount", "amounts", "value", "entry amount"],
    "JournalEntryPersonalNumber": ["personal number", "personnel number", "employee number", "personal no"],
    "InitiatorName": ["initiator", "initiator name", "initiated by", "creator"],
    "InitiatorStatus": ["initiator status", "initiatorstatus"],
    "L1ApproverName": ["l1 approver", "l1 approver name", "level 1 approver", "first approver"],
    "L1ApproverStatus": ["l1 status", "l1 approver status", "level 1 status", "l1 approval"],
    "L2ApproverName": ["l2 approver", "l2 approver name", "level 2 approver", "second approver"],
    "L2ApproverStatus": ["l2 status", "l2 approver status", "level 2 status", "l2 approval"],
    "DocumentNumberOrErrorMessage": ["document number", "doc number", "error message", "error", "document"],
    "ReversalDocumentNumber": ["reversal", "reversal document", "reversal number", "reversed document"],
}


def _normalize_for_match(s: str) -> str:
    """Lowercase, remove spaces/underscores/punctuation for matching."""
    if not isinstance(s, str):
        s = str(s or "")
    s = s.strip().lower()
    s = re.sub(r"[^\w\s]", "", s)
    return s.replace(" ", "").replace("_", "")


def _variant_index(fields: Iterable[str]) -> List[Tuple[str, str]]:
    """(normalized variant, field) pairs for the allowed fields, field name itself included."""
    out: List[Tuple[str, str]] = []
    for field in fields:
        out.append((_normalize_for_match(field), field))
        for v in CANONICAL_VARIANT_MAP.get(field, []):
            out.append((_normalize_for_match(v), field))
    return out


def resolve_field(term: Optional[str], allowed: Optional[Iterable[str]] = None) -> Optional[str]:
    """
    Resolve term to one field in allowed (default: every entry field).
    Returns None when nothing matches or the best fuzzy score is tied between two fields.
    """
    if term is None or not str(term).strip():
        return None
    fields = list(allowed) if allowed is not None else list(ENTRY_FIELDS)
    raw = str(term).strip()
    if raw in fields:
        return raw

    norm = _normalize_for_match(raw)
    index = _variant_index(fields)
    for v_norm, field in index:
        if v_norm == norm:
            return field

    # Restricted choice: "l1" -> L1ApproverStatus when only one allowed field contains the term
    if allowed is not None and len(norm) >= 2:
        containing = [f for f in fields if norm in _normalize_for_match(f)]
        if len(containing) == 1:
            return containing[0]

    scores: Dict[str, float] = {}
    for v_norm, field in index:
        if len(v_norm) < 3:
            continue
        score = fuzz.ratio(norm, v_norm)
        if score >= SIMILARITY_THRESHOLD and score > scores.get(field, 0):
            scores[field] = score
    if not scores:
        logger.info("field_unresolved: term=%s", raw)
        return None
    ranked = sorted(scores.items(), key=lambda x: -x[1])
    if len(ranked) > 1 and ranked[0][1] == ranked[1][1]:
        logger.info("field_ambiguous: term=%s candidates=%s", raw, [f for f, _ in ranked[:2]])
        return None
    logger.info("field_resolved: term=%s field=%s score=%.0f", raw, ranked[0][0], ranked[0][1])
    return ranked[0][0]


def fields_mentioned(query: str, allowed: Optional[Iterable[str]] = None) -> List[str]:
    """
    Fields whose variants appear in the query, ordered by first occurrence.
    Longer variants are tried first so "l1 status" beats "status"-like shorter hits.
    """
    if not query or not str(query).strip():
        return []
    q_norm = _normalize_for_match(query)
    fields = list(allowed) if allowed is not None else list(ENTRY_FIELDS)
    found: List[Tuple[int, int, str]] = []
    for field in fields:
        variants = sorted(
            {_normalize_for_match(v) for v in CANONICAL_VARIANT_MAP.get(field, [])} | {_normalize_for_match(field)},
            key=len,
            reverse=True,
        )
        for v_norm in variants:
            if len(v_norm) >= 4 and v_norm in q_norm:
                found.append((q_norm.index(v_norm), -len(v_norm), field))
                break
    seen = set()
    out = []
    for _, _, field in sorted(found):
        if field not in seen:
            seen.add(field)
            out.append(field)
    return out
