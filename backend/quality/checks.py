"""
Quality Checks

Post-hoc, non-blocking checks on a generated report. Every finding is
a warning string; nothing here raises.
"""

import re
from dataclasses import dataclass, field
from typing import Optional

from analysis.formatting import MAGNITUDE_TOKEN, NUMERIC_TOKEN, magnitude_value, plain_value
from api.schemas.responses import MetricItem
from config import get_settings


@dataclass
class ReportDraft:
    """The checkable prose of a report."""

    summary: str = ""
    content_html: str = ""
    key_metrics: list[MetricItem] = field(default_factory=list)
    insights: list[str] = field(default_factory=list)
    recommendations: list[str] = field(default_factory=list)


def strip_html(html: str) -> str:
    text = re.sub(r"<script\b[^>]*>[\s\S]*?</script>", " ", html or "", flags=re.IGNORECASE)
    text = re.sub(r"<style\b[^>]*>[\s\S]*?</style>", " ", text, flags=re.IGNORECASE)
    text = re.sub(r"<[^>]+>", " ", text)
    return re.sub(r"\s+", " ", text).strip()


def _normalize_token(token: str) -> str:
    """'5,400' -> '5400', '3.88  hundred-million' -> '3.88 hundred-million'."""
    text = token.replace(",", "").replace("％", "%").strip()
    return re.sub(r"\s+", " ", text)


def extract_numeric_mentions(text: str) -> list[str]:
    """Numeric tokens in order of appearance, unit suffix included, deduplicated."""
    return list(dict.fromkeys(m.group(0).strip() for m in NUMERIC_TOKEN.finditer(text or "")))


# ============ Citation compliance ============

@dataclass
class CitationCheckResult:
    warnings: list[str] = field(default_factory=list)
    mention_count: int = 0
    exceeds_strict_threshold: bool = False


class CitationChecker:
    """
    Accepts a mention when it occurs verbatim in the citation list, or
    after dropping thousands separators, or (for anything but a
    percentage) when its unit-normalized value is within tolerance of a
    citation value.
    """

    def __init__(self, citations: list[str], tolerance: Optional[float] = None):
        settings = get_settings().quality
        self.citations = citations
        self.tolerance = settings.tolerance if tolerance is None else tolerance
        self.strict_threshold = settings.strict_threshold

        text = " ".join(citations)
        self.tokens: set[str] = set()
        for token in NUMERIC_TOKEN.findall(text):
            normalized = _normalize_token(token)
            self.tokens.add(normalized)
            # The number alone is quotable as well ("3.88" of "3.88 hundred-million")
            self.tokens.add(re.match(r"[\d.]+", normalized).group(0))

        self.values: list[float] = []
        for token in MAGNITUDE_TOKEN.findall(text):
            value = magnitude_value(token)
            if value is not None:
                self.values.append(value)
        for token in self.tokens:
            try:
                self.values.append(float(token))
            except ValueError:
                continue

    def accepts(self, mention: str) -> bool:
        normalized = _normalize_token(mention)
        if normalized in self.tokens:
            return True

        if normalized.endswith("%"):
            return False
        value = plain_value(normalized)
        if value is None:
            return False
        for cited in self.values:
            den = max(abs(cited), abs(value), 1)
            if abs(cited - value) / den <= self.tolerance:
                return True
        return False

    def check(self, draft: ReportDraft) -> CitationCheckResult:
        result = CitationCheckResult()
        if not self.citations:
            return result

        sources: list[tuple[str, str]] = [
            (f"keyMetrics[{i}]", m.value) for i, m in enumerate(draft.key_metrics) if m.value
        ]
        sources += [(f"insights[{i}]", s) for i, s in enumerate(draft.insights)]
        sources.append(("summary", draft.summary))
        sources.append(("html", strip_html(draft.content_html)))

        for location, text in sources:
            for mention in extract_numeric_mentions(text):
                result.mention_count += 1
                if not self.accepts(mention):
                    result.warnings.append(
                        f'[{location}] value "{mention}" not found in citation list'
                    )

        result.exceeds_strict_threshold = len(result.warnings) > self.strict_threshold
        return result


# ============ Cross-dataset coverage ============

CROSS_DATASET_KEYWORDS = [
    "cross-dataset",
    "cross dataset",
    "cross-file",
    "across files",
    "across datasets",
    "across both",
    "multi-file",
    "linked",
    "combined",
    "跨文件",
    "跨数据",
    "关联",
    "多文件",
    "多数据源",
]

CROSS_DATASET_WARNING = (
    "Cross-dataset statistics exist but no insight covers them; "
    "add at least one insight on the shared dimension (ranking or concentration)"
)


def has_cross_dataset_insight(insights: list[str], grouping_fields: list[str]) -> bool:
    keywords = CROSS_DATASET_KEYWORDS + [f.lower() for f in grouping_fields if f]
    return any(any(k in insight.lower() for k in keywords) for insight in insights)


# ============ Forbidden wording ============

# Missing rows are "no record", not a measured decline
NO_RECORD_PHRASES = [
    "dropped to zero",
    "dropped to 0",
    "fell to zero",
    "fell to 0",
    "-100%",
    "cliff-like drop",
    "delisted",
    "降至 0",
    "降至0",
    "降幅-100%",
    "降幅 -100%",
    "断崖式下跌",
    "是否下架",
    "下架",
]


def _phrases_in(text: str) -> list[str]:
    lower = text.lower()
    return [p for p in NO_RECORD_PHRASES if p in lower]


def check_no_record_wording(draft: ReportDraft) -> list[str]:
    """Flag phrases that turn missing periods into declines (insights, recommendations)."""
    warnings = []
    for label, items in (("insights", draft.insights), ("recommendations", draft.recommendations)):
        for i, text in enumerate(items):
            for phrase in _phrases_in(text):
                warnings.append(
                    f'[{label}[{i}]] contains "{phrase}"; say "no record after <period>" instead'
                )
    return warnings


def check_no_record_wording_in_html(html: str) -> list[str]:
    warnings = []
    for phrase in _phrases_in(strip_html(html)):
        warnings.append(f'[html] contains "{phrase}"; say "no record after <period>" instead')
    return warnings
