"""
Data models for MongoDB documents.
One collection: entries (one document per spreadsheet row, every business field stored as text).
"""
from datetime import datetime
from typing import Any, Optional

# ---------------------------------------------------------------------------
# Ledger entry (collection: entries)
# Column order matches the spreadsheet export; names are part of the wire contract.
# ---------------------------------------------------------------------------
ENTRY_FIELDS = [
    "zvolvWID",
    "WID",
    "DocumentDate",
    "PostingDate",
    "JournalEntrySrNo",
    "JournalEntryBusinessArea",
    "JournalEntryAccountType",
    "JournalEntryType",
    "JournalEntryVendorName",
    "JournalEntryVendorNumber",
    "JournalEntryCostCenter",
    "JournalEntryProfitCenter",
    "JournalEntryAmount",
    "JournalEntryPersonalNumber",
    "InitiatorName",
    "InitiatorStatus",
    "L1ApproverName",
    "L1ApproverStatus",
    "L2ApproverName",
    "L2ApproverStatus",
    "DocumentNumberOrErrorMessage",
    "ReversalDocumentNumber",
]

ROW_NUMBER_FIELD = "excelRowNumber"
SORTABLE_FIELDS = set(ENTRY_FIELDS) | {ROW_NUMBER_FIELD}

DATE_FIELDS = ("DocumentDate", "PostingDate")
AMOUNT_FIELD = "JournalEntryAmount"
VENDOR_FIELD = "JournalEntryVendorName"
STATUS_FIELDS = ("InitiatorStatus", "L1ApproverStatus", "L2ApproverStatus")
STATUS_VALUES = ("Approved", "Rejected", "Pending")

# Approval level -> (status field, approver name field)
APPROVAL_LEVELS = {
    "L1": ("L1ApproverStatus", "L1ApproverName"),
    "L2": ("L2ApproverStatus", "L2ApproverName"),
}

# Free-text search targets for /query/filter
SEARCH_FIELDS = [
    "zvolvWID",
    "WID",
    "JournalEntryVendorName",
    "InitiatorName",
    "L1ApproverName",
    "L2ApproverName",
    "DocumentNumberOrErrorMessage",
]

# Never returned to clients
HIDDEN_FIELDS = {"_id", "__v", "createdAt", "updatedAt"}


def to_text(val: Any) -> str:
    """Stringify a spreadsheet cell; empty cells become ""."""
    if val is None:
        return ""
    if isinstance(val, float) and val != val:
        return ""
    if hasattr(val, "strftime") and str(val) != "NaT":
        return val.strftime("%Y-%m-%d")
    if str(val) == "NaT":
        return ""
    if isinstance(val, float) and val.is_integer():
        return str(int(val))
    return str(val).strip()


def entry_doc(
    row_number: int,
    values: dict,
    created_at: Optional[datetime] = None,
) -> dict:
    """Build an entry document. Missing fields are stored as empty strings."""
    doc = {f: to_text(values.get(f)) for f in ENTRY_FIELDS}
    doc[ROW_NUMBER_FIELD] = int(row_number)
    doc["createdAt"] = created_at or datetime.utcnow()
    return doc


def public_entry(doc: dict) -> dict:
    """Strip storage-only keys before returning an entry."""
    return {k: v for k, v in doc.items() if k not in HIDDEN_FIELDS}
