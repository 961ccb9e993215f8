"""
Generation Request Types

One explicit request object per wizard step; the pipeline never reads
session state.
"""

from dataclasses import dataclass, field
from enum import Enum
from typing import Optional

from api.schemas.responses import Outline
from core.dataset import Dataset
from core.errors import ValidationError


class InputMode(str, Enum):
    """How the report material was supplied."""

    GENERATE = "generate"
    PASTE = "paste"
    IMPORT = "import"


@dataclass
class OutlineRequest:
    mode: InputMode
    idea: Optional[str] = None
    pasted_text: Optional[str] = None
    datasets: list[Dataset] = field(default_factory=list)
    model: Optional[str] = None


@dataclass
class GenerationRequest:
    mode: InputMode
    outline: Outline
    idea: Optional[str] = None
    pasted_text: Optional[str] = None
    datasets: list[Dataset] = field(default_factory=list)
    title: Optional[str] = None
    theme: str = "default"
    model: Optional[str] = None
    use_sql_analysis: bool = False

    @property
    def intent(self) -> Optional[str]:
        """In import mode the idea doubles as the content-planning intent."""
        if self.mode == InputMode.IMPORT and self.idea and self.idea.strip():
            return self.idea.strip()
        return None


def validate_input(
    mode: InputMode,
    idea: Optional[str],
    pasted_text: Optional[str],
    datasets: list[Dataset],
) -> None:
    """
    Reject requests missing the input their mode requires.

    Raises:
        ValidationError: with a user-facing message
    """
    if mode == InputMode.GENERATE and not (idea and idea.strip()):
        raise ValidationError("Please describe the report idea")
    if mode == InputMode.PASTE and not (pasted_text and pasted_text.strip()):
        raise ValidationError("Please paste the text to turn into a report")
    if mode == InputMode.IMPORT and not any(ds.row_count > 0 for ds in datasets):
        raise ValidationError("Please upload at least one dataset with rows")
