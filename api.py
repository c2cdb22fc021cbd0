"""
Ledger AI Assistant: FastAPI app.
Upload a ledger spreadsheet, browse it page by page, ask questions about it.
"""
import asyncio
import io
import json
import logging
import os
from typing import Optional, Union

from dotenv import load_dotenv
from fastapi import Depends, FastAPI, File, HTTPException, Query, UploadFile
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse, StreamingResponse
from pydantic import BaseModel, Field
from pymongo.errors import PyMongoError

from agents import orchestrator
from agents.analyst import statistics_snapshot
from agents.data_agent import load_entries, load_vendor_names
from db import mongo
from db.models import DATE_FIELDS, ROW_NUMBER_FIELD, SORTABLE_FIELDS
from utils.excel_parser import UploadRejected
from utils.ingest import ingest_workbook
from utils.normalizer import amount_in_range, date_in_range, parse_amount, parse_date
from utils.progress import ProgressRegistry

load_dotenv()

logging.basicConfig(level=logging.INFO, format="%(name)s | %(levelname)s | %(message)s")
logger = logging.getLogger(__name__)

CORS_ORIGINS = [o.strip() for o in os.getenv("CORS_ORIGINS", "*").split(",") if o.strip()]
PROGRESS_POLL_SECONDS = 0.1

app = FastAPI(title="Ledger AI Assistant API", version="0.2.0")
app.add_middleware(
    CORSMiddleware,
    allow_origins=CORS_ORIGINS,
    allow_methods=["*"],
    allow_headers=["*"],
)

uploads = ProgressRegistry()


class AskRequest(BaseModel):
    question: str = ""


class PageRequest(BaseModel):
    page: int = Field(1, ge=1)
    limit: int = Field(50, ge=1, le=mongo.MAX_PAGE_LIMIT)
    sortBy: str = ROW_NUMBER_FIELD
    sortOrder: Union[int, str] = "asc"


class FilterRequest(PageRequest):
    searchText: Optional[str] = None
    minAmount: Optional[Union[float, str]] = None
    maxAmount: Optional[Union[float, str]] = None
    startDate: Optional[str] = None
    endDate: Optional[str] = None
    dateField: str = "DocumentDate"
    initiatorStatus: Optional[str] = None
    l1Status: Optional[str] = None
    l2Status: Optional[str] = None


def get_classifier():
    return orchestrator.default_classifier()


def _sort(req: PageRequest) -> tuple:
    if req.sortBy not in SORTABLE_FIELDS:
        raise HTTPException(status_code=400, detail=f"Unknown sortBy field '{req.sortBy}'.")
    order = str(req.sortOrder).strip().lower()
    if order in ("asc", "1"):
        return req.sortBy, 1
    if order in ("desc", "-1"):
        return req.sortBy, -1
    raise HTTPException(status_code=400, detail="sortOrder must be 'asc' or 'desc'.")


def _bound(value, parse, name):
    """Parse an optional filter bound; blank means absent."""
    if value is None or str(value).strip() == "":
        return None
    parsed = parse(value)
    if parsed is None:
        raise HTTPException(status_code=400, detail=f"Invalid {name}: '{value}'.")
    return parsed


def _database_unavailable(e: Exception):
    logger.error("database_unavailable: error=%s", e)
    return HTTPException(status_code=503, detail=str(e))


@app.get("/")
def root():
    return {"status": "ok", "message": "Ledger AI Assistant API"}


@app.post("/ask")
def ask(req: AskRequest, classifier=Depends(get_classifier)):
    payload, status = orchestrator.run(
        req.question,
        classifier=classifier,
        loader=load_entries,
        vocabulary=load_vendor_names,
    )
    return JSONResponse(content=payload, status_code=status)


@app.post("/upload")
def upload(
    file: UploadFile = File(...),
    uploadId: Optional[str] = Query(None),
    replace: bool = Query(False),
):
    channel = uploads.create(uploadId)
    try:
        result = ingest_workbook(io.BytesIO(file.file.read()), file.filename, channel=channel, replace=replace)
    except UploadRejected as e:
        logger.warning("upload_rejected: filename=%s reason=%s", file.filename, e)
        raise HTTPException(status_code=400, detail=str(e))
    except (RuntimeError, PyMongoError) as e:
        raise _database_unavailable(e)
    finally:
        if not channel.done:
            channel.cancel()
    result["uploadId"] = channel.upload_id
    return result


@app.get("/upload/progress/{upload_id}")
async def upload_progress(upload_id: str):
    channel = uploads.get(upload_id)
    if channel is None:
        raise HTTPException(status_code=404, detail=f"Unknown upload '{upload_id}'.")

    async def event_generator():
        last = None
        while True:
            snap = channel.snapshot()
            if snap["percent"] != last:
                last = snap["percent"]
                yield f"data: {json.dumps({'percent': last})}\n\n"
            if snap["done"]:
                uploads.discard(channel)
                break
            await asyncio.sleep(PROGRESS_POLL_SECONDS)

    return StreamingResponse(
        event_generator(),
        media_type="text/event-stream",
        headers={"Cache-Control": "no-cache", "Connection": "keep-alive"},
    )


@app.delete("/upload/{upload_id}")
def cancel_upload(upload_id: str):
    if uploads.get(upload_id) is None:
        raise HTTPException(status_code=404, detail=f"Unknown upload '{upload_id}'.")
    return {"uploadId": upload_id, "cancelled": uploads.cancel(upload_id)}


@app.post("/query/paginate")
def paginate(req: PageRequest):
    sort_by, sort_order = _sort(req)
    try:
        return mongo.find_page(req.page, req.limit, sort_by, sort_order)
    except RuntimeError as e:
        raise _database_unavailable(e)


@app.post("/query/filter")
def filter_entries(req: FilterRequest):
    sort_by, sort_order = _sort(req)
    if req.dateField not in DATE_FIELDS:
        raise HTTPException(status_code=400, detail=f"dateField must be one of {', '.join(DATE_FIELDS)}.")
    min_amount = _bound(req.minAmount, parse_amount, "minAmount")
    max_amount = _bound(req.maxAmount, parse_amount, "maxAmount")
    start = _bound(req.startDate, parse_date, "startDate")
    end = _bound(req.endDate, parse_date, "endDate")

    predicate = None
    if min_amount is not None or max_amount is not None or start is not None or end is not None:
        def predicate(entry: dict) -> bool:
            if min_amount is not None or max_amount is not None:
                if not amount_in_range(parse_amount(entry.get("JournalEntryAmount")), min_amount, max_amount):
                    return False
            if start is not None or end is not None:
                if not date_in_range(parse_date(entry.get(req.dateField)), start, end):
                    return False
            return True

    query = mongo.build_filter_query(req.searchText, req.initiatorStatus, req.l1Status, req.l2Status)
    try:
        return mongo.filter_page(query, predicate, req.page, req.limit, sort_by, sort_order)
    except RuntimeError as e:
        raise _database_unavailable(e)


@app.get("/query/stats")
def stats():
    try:
        return statistics_snapshot(load_entries())
    except RuntimeError as e:
        raise _database_unavailable(e)


if __name__ == "__main__":
    import uvicorn
    uvicorn.run("api:app", host="0.0.0.0", port=int(os.getenv("PORT", "8000")))
