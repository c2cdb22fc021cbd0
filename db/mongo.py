"""
MongoDB connection and helpers.
Uses MONGODB_URI from environment; collection: entries.
"""
import logging
import math
import os
import re
from typing import Any, Callable, Dict, Iterator, List, Optional

from dotenv import load_dotenv

from db.models import HIDDEN_FIELDS, ROW_NUMBER_FIELD, SEARCH_FIELDS, public_entry

load_dotenv()

logger = logging.getLogger(__name__)

MONGODB_URI = os.getenv("MONGODB_URI")
DB_NAME = os.getenv("MONGODB_DB_NAME", "ledger_ai")
ENTRIES = "entries"

MAX_PAGE_LIMIT = 5000

_client = None
_db = None


def _get_client():
    """Lazy connection to MongoDB."""
    global _client
    if _client is None and MONGODB_URI:
        from pymongo import MongoClient
        _client = MongoClient(MONGODB_URI)
    return _client


def get_db():
    """Return database instance. None if MONGODB_URI not set."""
    global _db
    if _db is None:
        client = _get_client()
        if client is None:
            return None
        _db = client[DB_NAME]
    return _db


def _entries():
    db = get_db()
    if db is None:
        raise RuntimeError("MongoDB is not configured. Set MONGODB_URI in .env.")
    return db[ENTRIES]


def ensure_indexes() -> None:
    coll = _entries()
    coll.create_index(ROW_NUMBER_FIELD)


def insert_entries(docs: List[dict]) -> int:
    """Insert one batch of entry documents (unordered). Returns count inserted."""
    if not docs:
        return 0
    result = _entries().insert_many(docs, ordered=False)
    return len(result.inserted_ids)


def clear_entries() -> int:
    """Delete every entry (bulk replacement before a new upload). Returns count deleted."""
    result = _entries().delete_many({})
    logger.info("entries_cleared: deleted=%s", result.deleted_count)
    return result.deleted_count


def count_entries(query: Optional[dict] = None) -> int:
    return _entries().count_documents(query or {})


def _sort_keys(sort_by: str, sort_order: int) -> List[tuple]:
    """Row number breaks ties so pages never overlap or skip."""
    keys = [(sort_by, sort_order)]
    if sort_by != ROW_NUMBER_FIELD:
        keys.append((ROW_NUMBER_FIELD, 1))
    return keys


def iter_entries(
    query: Optional[dict] = None,
    fields: Optional[List[str]] = None,
    sort_by: str = ROW_NUMBER_FIELD,
    sort_order: int = 1,
) -> Iterator[dict]:
    """Stream entries in a stable order (row number by default). fields limits the projection."""
    projection: Dict[str, int] = {"_id": 0}
    if fields:
        projection = {f: 1 for f in fields}
        projection["_id"] = 0
        projection[ROW_NUMBER_FIELD] = 1
    cursor = _entries().find(query or {}, projection).sort(_sort_keys(sort_by, sort_order))
    for doc in cursor:
        yield public_entry(doc)


def distinct_values(field: str) -> List[Any]:
    return _entries().distinct(field)


def _pagination(total: int, page: int, limit: int) -> dict:
    return {
        "total": total,
        "page": page,
        "limit": limit,
        "totalPages": math.ceil(total / limit) if limit else 0,
    }


def find_page(
    page: int = 1,
    limit: int = 50,
    sort_by: str = ROW_NUMBER_FIELD,
    sort_order: int = 1,
    query: Optional[dict] = None,
) -> dict:
    """One page of entries plus the pagination envelope."""
    limit = min(max(int(limit), 1), MAX_PAGE_LIMIT)
    page = max(int(page), 1)
    skip = (page - 1) * limit
    coll = _entries()
    projection = {k: 0 for k in HIDDEN_FIELDS if k != "_id"}
    projection["_id"] = 0
    cursor = coll.find(query or {}, projection).sort(_sort_keys(sort_by, sort_order)).skip(skip).limit(limit)
    rows = [public_entry(d) for d in cursor]
    total = coll.count_documents(query or {})
    return {"data": rows, "pagination": _pagination(total, page, limit)}


def _exact_ci(value: str) -> dict:
    """Case-insensitive exact match; user text is escaped."""
    return {"$regex": f"^{re.escape(str(value).strip())}$", "$options": "i"}


def build_filter_query(
    search_text: Optional[str] = None,
    initiator_status: Optional[str] = None,
    l1_status: Optional[str] = None,
    l2_status: Optional[str] = None,
) -> dict:
    """The part of /query/filter the database can answer directly (text and status)."""
    q: Dict[str, Any] = {}
    if search_text and str(search_text).strip():
        pattern = {"$regex": re.escape(str(search_text).strip()), "$options": "i"}
        q["$or"] = [{f: pattern} for f in SEARCH_FIELDS]
    if initiator_status:
        q["InitiatorStatus"] = _exact_ci(initiator_status)
    if l1_status:
        q["L1ApproverStatus"] = _exact_ci(l1_status)
    if l2_status:
        q["L2ApproverStatus"] = _exact_ci(l2_status)
    return q


def filter_page(
    query: dict,
    predicate: Optional[Callable[[dict], bool]] = None,
    page: int = 1,
    limit: int = 50,
    sort_by: str = ROW_NUMBER_FIELD,
    sort_order: int = 1,
) -> dict:
    """
    Page through entries matching query AND predicate.
    predicate covers what Mongo cannot evaluate on text fields (normalized amounts, parsed dates).
    """
    if predicate is None:
        return find_page(page, limit, sort_by, sort_order, query=query)
    limit = min(max(int(limit), 1), MAX_PAGE_LIMIT)
    page = max(int(page), 1)
    skip = (page - 1) * limit
    rows: List[dict] = []
    total = 0
    for doc in iter_entries(query, sort_by=sort_by, sort_order=sort_order):
        if not predicate(doc):
            continue
        if skip <= total < skip + limit:
            rows.append(doc)
        total += 1
    return {"data": rows, "pagination": _pagination(total, page, limit)}

