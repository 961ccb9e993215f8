"""
Dataset Model

The tabular input unit handed to the profiler, plus the scalar coercion
helpers every analysis stage shares.
"""

import math
import re
from dataclasses import dataclass, field
from datetime import date, datetime
from enum import Enum
from typing import Any, Optional


class FieldType(str, Enum):
    """Inferred field type."""

    NUMERIC = "numeric"
    TEMPORAL = "temporal"
    CATEGORICAL = "categorical"


@dataclass(frozen=True)
class Dataset:
    """
    One decoded table.

    Rows keep loosely-typed values exactly as decoded; `column_types`
    is only a hint from the decoder (number | date | string).
    """

    name: str
    headers: list[str]
    rows: list[dict[str, Any]] = field(default_factory=list)
    column_types: dict[str, str] = field(default_factory=dict)

    @property
    def row_count(self) -> int:
        return len(self.rows)

    @property
    def display_name(self) -> str:
        """Name without the file extension, for report labels."""
        stripped = re.sub(r"\.(csv|tsv|txt|xlsx?)$", "", self.name, flags=re.IGNORECASE).strip()
        return stripped or self.name

    def column(self, header: str) -> list[Any]:
        return [row.get(header) for row in self.rows]


# Common date formats to try
DATE_FORMATS = [
    "%Y-%m-%d",       # 2024-01-15
    "%Y/%m/%d",       # 2024/01/15
    "%Y-%m-%d %H:%M:%S",
    "%Y-%m-%dT%H:%M:%S",
    "%m/%d/%Y",       # 01/15/2024
    "%d.%m.%Y",       # 15.01.2024
    "%B %d, %Y",      # January 15, 2024
    "%b %d, %Y",      # Jan 15, 2024
    "%d %B %Y",       # 15 January 2024
    "%d %b %Y",       # 15 Jan 2024
    "%Y-%m",          # 2024-01
    "%Y/%m",          # 2024/01
    "%Y%m",           # 202401
]

_CJK_MONTH = re.compile(r"^(\d{4})年(\d{1,2})月(?:(\d{1,2})日)?$")


def is_null(value: Any) -> bool:
    """None, blank strings and NaN count as missing."""
    if value is None:
        return True
    if isinstance(value, str):
        return value.strip() == ""
    if isinstance(value, float):
        return math.isnan(value)
    return False


def parse_number(value: Any) -> Optional[float]:
    """Parse a scalar as a finite number, stripping thousands separators."""
    if isinstance(value, bool):
        return None
    if isinstance(value, (int, float)):
        number = float(value)
        return number if math.isfinite(number) else None
    if not isinstance(value, str):
        return None

    text = value.strip().replace(",", "")
    if not text:
        return None
    try:
        number = float(text)
    except ValueError:
        return None
    return number if math.isfinite(number) else None


def parse_date(value: Any) -> Optional[date]:
    """Parse a scalar as a calendar date; numbers are never dates."""
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    if not isinstance(value, str):
        return None

    text = value.strip()
    if not text:
        return None

    # Six-digit YYYYMM only; bare digit strings are otherwise numbers
    if text.isdigit() and len(text) != 6:
        return None

    for fmt in DATE_FORMATS:
        try:
            parsed = datetime.strptime(text, fmt)
        except ValueError:
            continue
        if fmt == "%Y%m" and not 1900 <= parsed.year <= 2200:
            return None
        return parsed.date()

    match = _CJK_MONTH.match(text)
    if match:
        year, month, day = match.groups()
        try:
            return date(int(year), int(month), int(day or 1))
        except ValueError:
            return None

    return None
