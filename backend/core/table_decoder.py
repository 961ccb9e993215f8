"""
Table Decoder

Turns uploaded spreadsheet or CSV/TSV bytes into a Dataset. Uses chardet
for encoding detection and Polars for parsing (the calamine engine via
fastexcel for .xlsx/.xls). Raw cell values are kept as strings; the
column type hints only help the profiler and the SQL loader.
"""

import hashlib
import io
from datetime import date, datetime
from pathlib import Path
from typing import Any, Optional

import chardet
import polars as pl

from config import get_settings
from core.dataset import Dataset
from core.errors import DecodeError
from core.logging_config import upload_logger as logger


TEXT_EXTENSIONS = {".csv": ",", ".tsv": "\t", ".txt": ","}
EXCEL_EXTENSIONS = {".xlsx", ".xls"}


def unique_headers(names: list[str]) -> list[str]:
    """Strip header names and suffix repeats ("region", "region_2", ...)."""
    headers: list[str] = []
    seen: set[str] = set()
    for i, name in enumerate(names, start=1):
        base = str(name).strip() or f"column_{i}"
        candidate = base
        n = 2
        while candidate in seen:
            candidate = f"{base}_{n}"
            n += 1
        seen.add(candidate)
        headers.append(candidate)
    return headers


def cell_text(value: Any) -> Optional[str]:
    """Spreadsheet cell as the string a user would have typed."""
    if value is None:
        return None
    if isinstance(value, bool):
        return "true" if value else "false"
    if isinstance(value, float):
        return str(int(value)) if value.is_integer() else repr(value)
    if isinstance(value, datetime):
        if value.hour == value.minute == value.second == value.microsecond == 0:
            return value.date().isoformat()
        return value.isoformat(sep=" ")
    if isinstance(value, date):
        return value.isoformat()
    text = str(value)
    return text if text.strip() else None


class TableDecoder:
    """Spreadsheet and CSV/TSV decoder producing loosely-typed datasets."""

    def __init__(self):
        self.settings = get_settings()

    def detect_encoding(self, data: bytes) -> str:
        """Detect encoding from the first 100KB."""
        result = chardet.detect(data[:102400])
        encoding = result.get("encoding") or "utf-8"
        # chardet reports plain ASCII for UTF-8 files without multibyte
        # characters in the sample
        if encoding.lower() == "ascii":
            return "utf-8"
        return encoding

    def decode(self, data: bytes, filename: str = "upload.csv") -> Dataset:
        """
        Decode bytes into a Dataset.

        Args:
            data: Raw file bytes
            filename: Original filename (selects the reader and delimiter)

        Returns:
            Dataset with header order preserved

        Raises:
            DecodeError: unsupported type, empty file or unparseable content
        """
        suffix = Path(filename).suffix.lower()
        if suffix not in TEXT_EXTENSIONS and suffix not in EXCEL_EXTENSIONS:
            raise DecodeError(
                f"Unsupported file type '{suffix or filename}'; upload XLSX, XLS, CSV or TSV"
            )

        if not data.strip():
            raise DecodeError(f"{filename} is empty")

        max_bytes = self.settings.max_file_size_mb * 1024 * 1024
        if len(data) > max_bytes:
            raise DecodeError(f"{filename} exceeds {self.settings.max_file_size_mb}MB")

        if suffix in EXCEL_EXTENSIONS:
            raw_columns, rows, dtypes = self._read_excel(data, filename)
            source = "excel"
        else:
            raw_columns, rows, dtypes, source = self._read_text(data, filename, TEXT_EXTENSIONS[suffix])

        if not raw_columns:
            raise DecodeError(f"{filename} has no header row")

        headers = unique_headers(raw_columns)
        column_types = {header: self._type_hint(dtype) for header, dtype in zip(headers, dtypes)}

        logger.info(f"Decoded {filename}: {len(rows)} rows x {len(headers)} columns ({source})")

        return Dataset(
            name=filename,
            headers=headers,
            rows=[dict(zip(headers, row)) for row in rows],
            column_types=column_types,
        )

    def _read_text(
        self,
        data: bytes,
        filename: str,
        separator: str,
    ) -> tuple[list[str], list[tuple], list, str]:
        encoding = self.detect_encoding(data)
        try:
            text = data.decode(encoding)
        except (UnicodeDecodeError, LookupError):
            # Fallback to latin-1 which accepts any byte
            text = data.decode("latin-1")
        text = text.lstrip("\ufeff")

        try:
            # Every column as string: raw values stay untouched
            raw = pl.read_csv(
                io.StringIO(text),
                separator=separator,
                infer_schema_length=0,
                truncate_ragged_lines=True,
            )
            typed = pl.read_csv(
                io.StringIO(text),
                separator=separator,
                infer_schema_length=10000,
                try_parse_dates=True,
                ignore_errors=True,
                truncate_ragged_lines=True,
            )
        except (pl.exceptions.PolarsError, ValueError) as e:
            raise DecodeError(f"Could not parse {filename}: {e}") from e

        return raw.columns, raw.rows(), typed.dtypes, encoding

    def _read_excel(self, data: bytes, filename: str) -> tuple[list[str], list[tuple], list]:
        """First worksheet, header row first; cells rendered back to text."""
        try:
            frame = pl.read_excel(io.BytesIO(data), sheet_id=1)
        except Exception as e:
            # The calamine engine raises its own exception types
            raise DecodeError(f"Could not parse {filename}: {e}") from e

        rows = [tuple(cell_text(v) for v in row) for row in frame.rows()]
        return frame.columns, rows, frame.dtypes

    def _type_hint(self, dtype) -> str:
        if dtype.is_numeric():
            return "number"
        if dtype == pl.Date or isinstance(dtype, pl.Datetime):
            return "date"
        return "string"

    def generate_dataset_id(self, filename: str) -> str:
        """
        Generate unique dataset ID based on filename and timestamp.

        Args:
            filename: Original filename

        Returns:
            Unique dataset ID
        """
        timestamp = datetime.now().isoformat()
        content = f"{filename}_{timestamp}"
        return hashlib.sha256(content.encode()).hexdigest()[:16]


# Global decoder instance
table_decoder = TableDecoder()
