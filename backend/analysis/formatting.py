"""
Number Formatting and Metric Classification

Shared by the citation builder, chart generator and quality gate, so
every stage renders and reads magnitudes the same way.
"""

import re
from typing import Literal, Optional


HUNDRED_MILLION = 100_000_000
TEN_THOUSAND = 10_000

UNIT_HUNDRED_MILLION = "hundred-million"
UNIT_TEN_THOUSAND = "ten-thousand"

# Magnitude word -> multiplier. The CJK characters are accepted as input
# aliases; output always uses the English words.
MAGNITUDE_UNITS = {
    UNIT_HUNDRED_MILLION: HUNDRED_MILLION,
    "亿": HUNDRED_MILLION,
    UNIT_TEN_THOUSAND: TEN_THOUSAND,
    "万": TEN_THOUSAND,
}

UNIT_PATTERN = r"hundred-million|ten-thousand|亿|万"

# A magnitude-suffixed value ("3.88 hundred-million", "3.88亿") or a percentage
MAGNITUDE_TOKEN = re.compile(rf"\d(?:[\d,]*\d)?(?:\.\d+)?\s*(?:{UNIT_PATTERN}|%|％)")
NUMERIC_TOKEN = re.compile(rf"\d(?:[\d,]*\d)?(?:\.\d+)?(?:\s*(?:{UNIT_PATTERN}|%|％))?")


def format_number(n: float) -> str:
    """
    Render a value with a single consistent unit per magnitude.

    >= 1e8 -> "X.XX hundred-million", >= 1e4 -> "X.XX ten-thousand",
    integers as-is, everything else with two decimals.
    """
    # Units are chosen on the rounded value so "10000.00 ten-thousand" never appears
    if round(abs(n) / TEN_THOUSAND, 2) >= TEN_THOUSAND:
        return f"{n / HUNDRED_MILLION:.2f} {UNIT_HUNDRED_MILLION}"
    if round(abs(n), 2) >= TEN_THOUSAND:
        return f"{n / TEN_THOUSAND:.2f} {UNIT_TEN_THOUSAND}"
    if float(n).is_integer():
        return str(int(n))
    return f"{n:.2f}"


def magnitude_value(token: str) -> Optional[float]:
    """
    Absolute value of a magnitude-suffixed token, or None.

    "3.88 hundred-million" -> 388000000.0, "1,234万" -> 12340000.0
    """
    text = token.replace(",", "").strip()
    match = re.fullmatch(rf"(\d+(?:\.\d+)?)\s*({UNIT_PATTERN})", text)
    if not match:
        return None
    return float(match.group(1)) * MAGNITUDE_UNITS[match.group(2)]


def plain_value(token: str) -> Optional[float]:
    """Value of a bare or magnitude token, ignoring percentages."""
    value = magnitude_value(token)
    if value is not None:
        return value
    text = token.replace(",", "").strip()
    try:
        return float(text)
    except ValueError:
        return None


# ============ Metric classification ============

RANKING_PATTERNS = ["rank", "position", "排名", "名次"]
YEAR_PATTERNS = ["year", "年份"]
RATIO_PATTERNS = ["rate", "ratio", "percentage", "percent", "share", "%", "率", "占比"]
AVERAGE_PATTERNS = ["score", "rating", "duration", "average", "avg", "mean", "评分", "时长"]

PRIMARY_METRIC_HINTS = ["revenue", "sales", "views", "clicks", "plays", "amount", "income", "收入", "销量", "播放"]


def aggregation_type(field_name: str) -> Literal["sum", "avg", "none"]:
    """How a numeric field may be aggregated: rank and year values never sum."""
    lower = field_name.lower()
    if any(p in lower for p in RANKING_PATTERNS):
        return "none"
    if any(p in lower for p in YEAR_PATTERNS):
        return "none"
    if any(p in lower for p in RATIO_PATTERNS):
        return "avg"
    if any(p in lower for p in AVERAGE_PATTERNS):
        return "avg"
    return "sum"


def sort_by_primary_metric(names: list[str]) -> list[str]:
    """Stable sort putting business headline metrics first."""
    def rank(name: str) -> int:
        lower = name.lower()
        return 0 if any(h in lower for h in PRIMARY_METRIC_HINTS) else 1

    return sorted(names, key=rank)


def concentration(values: list[float], top_n: int = 3) -> float:
    """Share of the top N values in the total (0 when the total is 0)."""
    if not values:
        return 0.0
    ordered = sorted(values, reverse=True)
    total = sum(ordered)
    if total == 0:
        return 0.0
    return sum(ordered[:top_n]) / total


def concentration_label(share: float) -> str:
    if share > 0.8:
        return "high concentration"
    if share > 0.6:
        return "medium concentration"
    return ""


def percent_change(start: float, end: float) -> Optional[float]:
    if start == 0:
        return None
    return (end - start) / abs(start) * 100
