"""
Data agent: loads ledger entries from MongoDB for catalogue operations.
One scan per question, in excelRowNumber order so distribution ties are stable.
"""
import logging
from typing import List, Optional

from db import mongo
from db.models import ROW_NUMBER_FIELD

logger = logging.getLogger(__name__)


def load_entries(fields: Optional[List[str]] = None) -> List[dict]:
    """All entries (optionally projected to fields), oldest spreadsheet row first."""
    entries = list(mongo.iter_entries(fields=fields, sort_by=ROW_NUMBER_FIELD, sort_order=1))
    logger.info("entries_loaded: count=%s projected=%s", len(entries), bool(fields))
    return entries


def load_vendor_names() -> List[str]:
    """Distinct non-empty vendor names (vocabulary for query normalization)."""
    return sorted({str(v).strip() for v in mongo.distinct_values("JournalEntryVendorName") if v and str(v).strip()})
