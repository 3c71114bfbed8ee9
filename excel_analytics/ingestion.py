"""
ingestion.py — Spreadsheet Upload Parsing & Auto-Charting
Excel Analytics API

Supports:
  1. Parsing the first sheet of .xlsx / .xls / .csv uploads into row dicts
  2. Inferring a default chart (first two numeric columns) when none is given
  3. Persisting the upload and an un-pinned ChartRecord for the caller
"""

import io
import math
import secrets
import time
from datetime import date, datetime, time as dt_time, timedelta
from pathlib import Path
from typing import Dict, List, Optional, Tuple

import numpy as np
import pandas as pd
from loguru import logger
from sqlalchemy.ext.asyncio import AsyncSession
from starlette.concurrency import run_in_threadpool

from excel_analytics.config import settings
from excel_analytics.errors import ParseError, StorageError, ValidationError
from excel_analytics.models.db_models import ChartRecord

DEFAULT_CHART_TYPE = "bar"

_EXCEL_ENGINES = {".xlsx": "openpyxl", ".xls": "xlrd"}


# ── Upload Validation ─────────────────────────────────────────────────────────
def file_extension(filename: str) -> str:
    return Path(filename or "").suffix.lower()


def validate_upload(filename: Optional[str], content: Optional[bytes]) -> str:
    """Check presence, extension and size; returns the normalised extension."""
    if not filename:
        raise ValidationError("No file uploaded")
    ext = file_extension(filename)
    if ext not in settings.ALLOWED_EXTENSIONS:
        allowed = ", ".join(settings.ALLOWED_EXTENSIONS)
        raise ValidationError(f"Unsupported file type '{ext or filename}'. Allowed: {allowed}")
    if not content:
        raise ValidationError("Uploaded file is empty")
    if len(content) > settings.max_upload_bytes:
        raise ValidationError(f"File too large (max {settings.MAX_UPLOAD_MB}MB)")
    return ext


# ── Parsing ───────────────────────────────────────────────────────────────────
def _to_cell(value):
    """Map a pandas cell to a JSON-safe value: str | int | float | None."""
    if value is None or value is pd.NaT:
        return None
    if isinstance(value, np.integer):
        return int(value)
    if isinstance(value, (np.floating, float)):
        value = float(value)
        return None if math.isnan(value) or math.isinf(value) else value
    if isinstance(value, (np.bool_, bool)):
        return bool(value)
    if isinstance(value, (pd.Timestamp, datetime, date, dt_time)):
        return value.isoformat()
    if isinstance(value, timedelta):
        return str(value)
    if isinstance(value, (str, int)):
        return value
    return str(value)


def dataframe_to_rows(df: pd.DataFrame) -> List[Dict]:
    """Header row becomes the keys; column order is preserved."""
    df = df.copy()
    df.columns = [str(c) for c in df.columns]
    df = df.dropna(how="all")
    return [
        {col: _to_cell(val) for col, val in record.items()}
        for record in df.to_dict(orient="records")
    ]


def parse_spreadsheet(content: bytes, filename: str) -> List[Dict]:
    """Parse the first sheet of an uploaded workbook (or a CSV) into row dicts."""
    ext = file_extension(filename)
    buffer = io.BytesIO(content)
    try:
        if ext == ".csv":
            df = pd.read_csv(buffer)
        else:
            df = pd.read_excel(buffer, sheet_name=0, engine=_EXCEL_ENGINES[ext])
    except Exception as e:
        logger.warning(f"Failed to parse '{filename}': {e}")
        raise ParseError("Failed to parse spreadsheet file") from e

    rows = dataframe_to_rows(df)
    logger.info(f"Parsed '{filename}': {len(rows)} rows, {len(df.columns)} columns.")
    return rows


# ── Chart Inference ───────────────────────────────────────────────────────────
def is_numeric(value) -> bool:
    return isinstance(value, (int, float)) and not isinstance(value, bool)


def numeric_columns(rows: List[Dict]) -> List[str]:
    """Columns whose first-row value is a number, in header order."""
    if not rows:
        return []
    first = rows[0]
    return [key for key, value in first.items() if is_numeric(value)]


def default_title(x_key: str, y_key: str) -> str:
    return f"{y_key} vs {x_key}"


def infer_chart_config(
    rows: List[Dict],
    x_key: Optional[str] = None,
    y_key: Optional[str] = None,
    chart_type: Optional[str] = None,
    title: Optional[str] = None,
) -> Dict:
    """
    Resolve x/y/type/title for an upload.

    Explicit keys must name header columns. With neither given the first two
    numeric columns are picked; with only one given, the other axis is the
    first numeric column that differs from it.
    """
    headers = list(rows[0].keys()) if rows else []
    given = [k for k in (x_key, y_key) if k]
    missing = [k for k in given if k not in headers]
    if missing:
        raise ValidationError(f"Column(s) not found in file: {', '.join(missing)}")

    if not given:
        numeric = numeric_columns(rows)
        if len(numeric) < 2:
            raise ValidationError("File must contain at least two numeric columns for auto-charting")
        x_key, y_key = numeric[0], numeric[1]
    elif len(given) == 1:
        candidates = [c for c in numeric_columns(rows) if c != given[0]]
        if not candidates:
            raise ValidationError(f"No numeric column to pair with '{given[0]}'")
        if x_key:
            y_key = candidates[0]
        else:
            x_key = candidates[0]

    return {
        "chart_type": chart_type or DEFAULT_CHART_TYPE,
        "x_key": x_key,
        "y_key": y_key,
        "title": title or default_title(x_key, y_key),
    }


# ── Upload Storage ────────────────────────────────────────────────────────────
def safe_file_id(filename: str) -> str:
    return f"{int(time.time() * 1000)}-{secrets.token_hex(10)}{file_extension(filename)}"


def store_upload(content: bytes, filename: str) -> str:
    """Write the raw upload under UPLOAD_DIR; the generated name is the file id."""
    upload_dir = Path(settings.UPLOAD_DIR)
    file_id = safe_file_id(filename)
    try:
        upload_dir.mkdir(parents=True, exist_ok=True)
        (upload_dir / file_id).write_bytes(content)
    except OSError as e:
        logger.error(f"Could not store upload '{filename}': {e}")
        raise StorageError("Failed to store uploaded file") from e
    return file_id


def discard_upload(file_id: str) -> None:
    """Remove a stored upload whose chart could not be saved."""
    try:
        (Path(settings.UPLOAD_DIR) / file_id).unlink(missing_ok=True)
    except OSError as e:
        logger.error(f"Could not remove orphaned upload '{file_id}': {e}")
    else:
        logger.warning(f"Removed upload '{file_id}' after failed chart insert.")


# ── Pipeline ──────────────────────────────────────────────────────────────────
async def ingest_upload(
    db: AsyncSession,
    owner_id: int,
    filename: Optional[str],
    content: Optional[bytes],
    overrides: Optional[Dict] = None,
) -> Tuple[List[Dict], ChartRecord, str]:
    """
    Parse an upload and auto-save an un-pinned chart for it.
    Returns (rows, chart, file_id).
    """
    validate_upload(filename, content)
    rows = await run_in_threadpool(parse_spreadsheet, content, filename)
    if not rows:
        raise ValidationError("Spreadsheet contains no data rows")

    config = infer_chart_config(rows, **(overrides or {}))
    file_id = await run_in_threadpool(store_upload, content, filename)

    chart = ChartRecord(
        owner_id=owner_id,
        file_name=filename,
        is_pinned=False,
        data=rows,
        **config,
    )
    try:
        db.add(chart)
        await db.commit()
        await db.refresh(chart)
    except Exception:
        discard_upload(file_id)
        raise
    logger.info(
        f"Upload '{filename}' auto-saved as chart {chart.id} "
        f"({config['chart_type']}: x={config['x_key']}, y={config['y_key']}) for user {owner_id}."
    )
    return rows, chart, file_id
