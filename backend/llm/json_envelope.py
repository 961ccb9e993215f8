"""
JSON Envelope Parsing

Model output is untrusted: it may arrive fenced, wrapped in prose, or
cut off mid-string. These helpers pull the first JSON object out of it
and, for the narrative envelope, salvage a truncated payload.
"""

import json
import re
from typing import Any, Optional

from core.errors import ParseError, UpstreamEmptyError


FENCE = re.compile(r"^\s*```(?:json|JSON)?\s*\n?|\n?\s*```\s*$")
SUMMARY_VALUE = re.compile(r'"summary"\s*:\s*"((?:[^"\\]|\\.)*)"', re.DOTALL)
HTML_KEY = re.compile(r'"html"\s*:\s*"', re.DOTALL)
CLOSING_TAGS = ("</section>", "</div>", "</p>")

MIN_RECOVERED_HTML = 10


def strip_code_fence(text: str) -> str:
    """Remove a leading ```json and trailing ``` fence."""
    return FENCE.sub("", text.strip()).strip()


def extract_first_json_object(text: str) -> Optional[str]:
    """
    Return the first brace-balanced object in text, or None.

    Braces inside string literals are ignored.
    """
    start = text.find("{")
    if start < 0:
        return None

    depth = 0
    in_string = False
    escaped = False
    for pos in range(start, len(text)):
        char = text[pos]
        if in_string:
            if escaped:
                escaped = False
            elif char == "\\":
                escaped = True
            elif char == '"':
                in_string = False
            continue

        if char == '"':
            in_string = True
        elif char == "{":
            depth += 1
        elif char == "}":
            depth -= 1
            if depth == 0:
                return text[start:pos + 1]

    return None


def parse_json_object(text: Optional[str]) -> dict[str, Any]:
    """
    Parse model output into a dict.

    Raises:
        UpstreamEmptyError: empty output
        ParseError: no JSON object, invalid JSON, or not an object
    """
    if text is None or not text.strip():
        raise UpstreamEmptyError()

    cleaned = strip_code_fence(text)
    candidate = extract_first_json_object(cleaned) or cleaned
    try:
        data = json.loads(candidate)
    except json.JSONDecodeError as e:
        raise ParseError(f"Model output is not valid JSON: {e.msg}") from e

    if not isinstance(data, dict):
        raise ParseError("Model output is not a JSON object")
    return data


def _unescape(value: str) -> str:
    try:
        return json.loads(f'"{value}"')
    except json.JSONDecodeError:
        return value.replace('\\"', '"').replace("\\n", "\n").replace("\\\\", "\\")


def _close_divs(html: str) -> str:
    opened = len(re.findall(r"<div\b", html, re.IGNORECASE))
    closed = len(re.findall(r"</div>", html, re.IGNORECASE))
    return html + "</div>" * max(opened - closed, 0)


def recover_truncated_payload(text: str) -> Optional[dict[str, str]]:
    """
    Salvage {summary, html} from output cut off mid-envelope.

    The html value is read up to its closing quote or the end of the
    text, trimmed back to the last complete block, and unclosed divs
    are closed. Returns None when fewer than 10 characters survive.
    """
    cleaned = strip_code_fence(text)

    key = HTML_KEY.search(cleaned)
    if key is None:
        return None

    chars = []
    escaped = False
    for char in cleaned[key.end():]:
        if escaped:
            chars.append(char)
            escaped = False
            continue
        if char == "\\":
            chars.append(char)
            escaped = True
            continue
        if char == '"':
            break
        chars.append(char)

    raw_html = "".join(chars)
    if raw_html.endswith("\\"):
        raw_html = raw_html[:-1]
    html = _unescape(raw_html)

    # Trim back to the last complete block
    cut = -1
    for tag in CLOSING_TAGS:
        pos = html.rfind(tag)
        if pos >= 0:
            cut = max(cut, pos + len(tag))
    if cut > 0:
        html = html[:cut]
    html = _close_divs(html.strip())

    if len(html) < MIN_RECOVERED_HTML:
        return None

    summary_match = SUMMARY_VALUE.search(cleaned)
    summary = _unescape(summary_match.group(1)) if summary_match else ""

    return {"summary": summary, "html": html}
