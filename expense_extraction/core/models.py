"""
Data models for expense extraction.
"""

from dataclasses import dataclass, asdict, field
from typing import Optional

MAX_DESCRIPTION_LENGTH = 200


@dataclass
class ParsedExpense:
    """Best-effort expense extracted from an uploaded document."""
    description: str
    amount: float
    category: str = "Other"
    date: Optional[str] = None

    def to_dict(self):
        """Convert to dictionary."""
        return asdict(self)


@dataclass
class InvoiceRow:
    """A candidate line item found by the invoice heuristic."""
    description: str
    amount: float
    source_line_index: int
    is_total_line: bool = False


@dataclass
class DecodedText:
    """Upload decoded to plain text."""
    text: str
    kind: str = field(default="text", init=False)


@dataclass
class DecodedImage:
    """Upload kept as an image for multimodal extraction and OCR."""
    data: bytes = field(repr=False)
    base64: str = field(repr=False)
    mime_type: str
    kind: str = field(default="image", init=False)

    @property
    def data_url(self) -> str:
        return f"data:{self.mime_type or 'image/png'};base64,{self.base64}"


@dataclass
class ExpenseRecord:
    """Final record handed to storage: every field is filled."""
    description: str
    amount: float
    category: str
    date: str

    def to_dict(self):
        """Convert to dictionary."""
        return asdict(self)


@dataclass
class UploadResult:
    """Outcome of processing one upload, shaped for display to the user."""
    success: bool
    message: str
    record: Optional[ExpenseRecord] = None
    source: Optional[str] = None
