"""
Excel parsing with pandas.
Supports .xlsx; combines all sheets into one DataFrame and maps spreadsheet headers onto entry fields.
Cells are kept as raw values here; db.models.entry_doc stores them as text.
"""
import logging
from datetime import date, datetime, timedelta
from typing import Any, Dict, Iterator, List, Optional, Tuple, Union

import pandas as pd

from db.models import DATE_FIELDS, ENTRY_FIELDS
from utils.field_resolver import resolve_field
from utils.normalizer import normalize_column_name

logger = logging.getLogger(__name__)

ALLOWED_EXTENSIONS = (".xlsx",)
EXCEL_EPOCH = date(1899, 12, 30)
HEADER_ROW = 1
MIN_HEADER_MATCHES = 3


class UploadRejected(ValueError):
    """The uploaded file is not a readable ledger spreadsheet. Nothing has been written."""


def check_extension(filename: Optional[str]) -> None:
    name = (filename or "").strip().lower()
    if not name.endswith(ALLOWED_EXTENSIONS):
        raise UploadRejected(f"Only Excel files ({', '.join(ALLOWED_EXTENSIONS)}) are accepted, got '{filename}'.")


def parse_excel(file_path_or_buffer: Union[str, bytes, Any]) -> pd.DataFrame:
    """
    Parse an Excel workbook and return a single DataFrame of raw cell values (dtype object).
    - file_path_or_buffer: path string or file-like (e.g. BytesIO).
    - Multiple sheets are concatenated (same columns assumed); each row keeps its sheet row number
      in "_row" (header is row 1), offset so numbers stay unique across sheets.
    - Raises UploadRejected when the workbook cannot be read.
    """
    if file_path_or_buffer is None:
        raise UploadRejected("No file uploaded.")
    try:
        xl = pd.ExcelFile(file_path_or_buffer, engine="openpyxl")
        frames = []
        offset = 0
        for sheet in xl.sheet_names:
            df = pd.read_excel(xl, sheet_name=sheet, dtype=object)
            df["_row"] = [offset + HEADER_ROW + 1 + i for i in range(len(df))]
            offset += len(df) + HEADER_ROW
            frames.append(df.dropna(how="all", subset=[c for c in df.columns if c != "_row"]))
    except Exception as e:
        logger.warning("excel_unreadable: error=%s", e)
        raise UploadRejected(f"The spreadsheet could not be read: {e}") from e
    if not frames:
        return pd.DataFrame()
    if len(frames) == 1:
        return frames[0]
    return pd.concat(frames, ignore_index=True)


def map_columns(columns: List[Any]) -> Dict[Any, str]:
    """
    Spreadsheet header -> entry field. Exact normalized names first, then fuzzy (field resolver).
    Falls back to column position when the headers are not recognizable.
    """
    data_columns = [c for c in columns if c != "_row"]
    by_norm = {normalize_column_name(f): f for f in ENTRY_FIELDS}
    mapping: Dict[Any, str] = {}
    for col in data_columns:
        field = by_norm.get(normalize_column_name(col)) or resolve_field(str(col))
        if field and field not in mapping.values():
            mapping[col] = field
    if len(mapping) < MIN_HEADER_MATCHES and len(data_columns) >= len(ENTRY_FIELDS):
        logger.info("header_mapping: positional (matched=%s)", len(mapping))
        return dict(zip(data_columns[: len(ENTRY_FIELDS)], ENTRY_FIELDS))
    logger.info("header_mapping: by_name matched=%s unmapped=%s", len(mapping), len(data_columns) - len(mapping))
    return mapping


def _cell(field: str, value: Any) -> Any:
    """Excel serial numbers in date columns become ISO dates."""
    if field in DATE_FIELDS and isinstance(value, (int, float)) and not isinstance(value, bool):
        if value == value and 0 < value < 2958466:
            return (EXCEL_EPOCH + timedelta(days=float(value))).strftime("%Y-%m-%d")
    if isinstance(value, pd.Timestamp):
        return value.to_pydatetime()
    if isinstance(value, datetime):
        return value
    return value


def ledger_rows(df: pd.DataFrame) -> Iterator[Tuple[int, dict]]:
    """(excel row number, {field: raw value}) per data row."""
    if df is None or df.empty:
        return
    mapping = map_columns(list(df.columns))
    if not mapping:
        raise UploadRejected("None of the spreadsheet columns match the ledger layout.")
    for record in df.to_dict(orient="records"):
        values = {field: _cell(field, record.get(col)) for col, field in mapping.items()}
        yield int(record["_row"]), values
