"""
Error Types

Exception hierarchy for report generation. Quality findings are not
exceptions; they travel as warning strings on the stored report.
"""


class ReportError(Exception):
    """Base class for all report-generation failures."""

    user_message = "An error occurred while generating the report. Please retry."

    def __init__(self, message: str = ""):
        super().__init__(message or self.user_message)
        self.message = message or self.user_message


class ValidationError(ReportError):
    """Required input is missing for the chosen mode."""


class DecodeError(ReportError):
    """Uploaded bytes could not be decoded into a dataset."""


class LLMError(ReportError):
    """The language-model call failed at the network or protocol level."""


class UpstreamEmptyError(ReportError):
    """The language model returned no content."""

    user_message = "The model returned an empty response"


class ParseError(ReportError):
    """Model output is not the expected JSON envelope."""


class ContentPlanError(ReportError):
    """The intent-driven content plan could not be produced."""


class QueryError(ReportError):
    """A SQL analysis query was rejected or failed to execute."""


FRIENDLY_MESSAGES = {
    "timeout": "The analysis timed out, please retry",
    "timed out": "The analysis timed out, please retry",
    "connecterror": "Could not reach the language model service",
    "connection refused": "Could not reach the language model service",
    "rate limit": "Too many requests, please try again later",
    "401": "The language model rejected the credentials",
}


def friendly_message(error: BaseException) -> str:
    """
    Map a raw error to a message suitable for end users.

    ReportError subclasses already carry user-facing text, except
    LLMError, which wraps transport failures. Those and anything else
    are matched against known failure patterns.
    """
    if isinstance(error, LLMError):
        raw = error.message
    elif isinstance(error, ReportError):
        return error.message
    else:
        raw = f"{type(error).__name__}: {error}"
    lower = raw.lower()
    for needle, message in FRIENDLY_MESSAGES.items():
        if needle in lower:
            return message

    return str(error) or ReportError.user_message
