"""Parsing of bulk user-import files (CSV or Excel)."""

import logging
import os
from io import BytesIO
from typing import Dict, List, Optional

import pandas as pd

logger = logging.getLogger(__name__)

REQUIRED_COLUMNS = ("name", "email", "role")
CSV_EXTENSIONS = {".csv"}
EXCEL_EXTENSIONS = {".xlsx"}


class ImportFileError(ValueError):
    pass


def detect_file_type(filename: Optional[str], file_type: Optional[str] = None) -> str:
    """Return 'csv' or 'excel', preferring an explicit file_type over the extension."""
    if file_type:
        ft = file_type.strip().lower()
        if ft in ("csv", "excel"):
            return ft
        raise ImportFileError(f"Unsupported file type: {file_type}")
    ext = os.path.splitext(filename or "")[1].lower()
    if ext in CSV_EXTENSIONS:
        return "csv"
    if ext in EXCEL_EXTENSIONS:
        return "excel"
    raise ImportFileError("Could not infer file type; choose csv or excel")


def read_rows(content: bytes, file_type: str) -> List[Dict[str, str]]:
    """
    Read every data row of the first sheet as a dict of strings.

    Header names are kept exactly as written (matching is case-sensitive);
    empty cells become empty strings.
    """
    try:
        if file_type == "csv":
            df = pd.read_csv(BytesIO(content), dtype=str, keep_default_na=False)
        else:
            df = pd.read_excel(BytesIO(content), dtype=str, keep_default_na=False, engine="openpyxl")
    except Exception as e:
        logger.warning("Unreadable %s import file: %s", file_type, e)
        raise ImportFileError("Could not read the uploaded file") from e
    df = df.fillna("")
    missing = [c for c in REQUIRED_COLUMNS if c not in df.columns]
    if missing:
        logger.info("Import file lacks columns %s; every row will fail", missing)
    return df.to_dict(orient="records")


def clean_row(row: Dict[str, object]) -> Optional[Dict[str, str]]:
    """Trimmed name/email/role, or None when any of them is missing."""
    values = {}
    for col in REQUIRED_COLUMNS:
        raw = row.get(col)
        value = "" if raw is None else str(raw).strip()
        if not value:
            return None
        values[col] = value
    return values
