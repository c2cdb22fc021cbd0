"""
Upload pipeline: parse the spreadsheet, then bulk-append entries in 500-row batches.

Best effort, not transactional: a failed batch is logged, whatever it did insert is counted, and the
next batch still runs. The returned row count can therefore be lower than totalRows.
Progress is published on the upload's own channel; cancelling stops between batches.
"""
import logging
import time
from typing import Any, Optional

from pymongo.errors import BulkWriteError, PyMongoError

from db import mongo
from db.models import entry_doc
from utils.excel_parser import UploadRejected, check_extension, ledger_rows, parse_excel
from utils.progress import ProgressChannel

logger = logging.getLogger(__name__)

BATCH_SIZE = 500


def _insert_batch(batch: list) -> int:
    try:
        return mongo.insert_entries(batch)
    except BulkWriteError as e:
        inserted = int(e.details.get("nInserted", 0))
        logger.error("batch_failed: size=%s inserted=%s errors=%s", len(batch), inserted, len(e.details.get("writeErrors", [])))
        return inserted
    except PyMongoError as e:
        logger.error("batch_failed: size=%s inserted=0 error=%s", len(batch), e)
        return 0


def ingest_workbook(
    source: Any,
    filename: Optional[str],
    channel: Optional[ProgressChannel] = None,
    replace: bool = False,
    batch_size: int = BATCH_SIZE,
) -> dict:
    """
    Parse and store one workbook. Returns {rows, time, totalRows, cancelled}.
    Raises UploadRejected (wrong type, unreadable, no data rows) before anything is written.
    """
    started = time.time()
    check_extension(filename)
    df = parse_excel(source)
    rows = list(ledger_rows(df))
    total = len(rows)
    if total == 0:
        raise UploadRejected("The spreadsheet has no data rows.")
    logger.info("upload_started: filename=%s total_rows=%s replace=%s", filename, total, replace)

    if replace:
        mongo.clear_entries()
    mongo.ensure_indexes()

    processed = 0
    cancelled = False
    for start in range(0, total, batch_size):
        if channel is not None and channel.cancelled:
            cancelled = True
            logger.info("upload_stopped: processed=%s total_rows=%s", processed, total)
            break
        batch = [entry_doc(row_number, values) for row_number, values in rows[start:start + batch_size]]
        processed += _insert_batch(batch)
        if channel is not None:
            channel.publish(min(start + len(batch), total) * 100 / total)

    if channel is not None and not cancelled:
        channel.close()
    elapsed = round(time.time() - started, 2)
    logger.info("upload_completed: rows=%s total_rows=%s time=%s cancelled=%s", processed, total, elapsed, cancelled)
    return {"rows": processed, "time": elapsed, "totalRows": total, "cancelled": cancelled}
