"""
Utility functions and constants for expense extraction.
"""

import mimetypes
import re
from pathlib import Path
from typing import Optional

# File type constants
IMAGE_EXTS = {".png", ".jpg", ".jpeg", ".tif", ".tiff", ".bmp", ".webp", ".gif"}
PDF_EXTS = {".pdf"}
CSV_EXTS = {".csv"}

PDF_MIME_TYPE = "application/pdf"
IMAGE_MIME_PREFIX = "image/"

# Keyword constants for the invoice heuristic
AMOUNT_KEYWORDS = [
    "total",
    "amount due",
    "balance due",
    "grand total",
    "subtotal",
    "total due",
    "total usd",
]

DESCRIPTION_KEYWORDS = [
    "expense",
    "description",
    "item",
    "service",
    "product",
    "package",
    "project",
    "bill to",
]

# Pattern constants for parsing
AMOUNT_PATTERN = r"[-+]?\$?\s*\d[\d,]*(?:\.\d{1,2})?"
TRAILING_AMOUNT_PATTERN = r"^(.*?)(" + AMOUNT_PATTERN + r")\s*$"
HEADER_PATTERN = r"(description|amount|qty|quantity|price)"
NUMERIC_TOKEN_PATTERN = r"(?:USD|\$)?\s?([\d.,]+)\b"

NEWLINE_PATTERN = r"\r\n|\r|\n"


def normalize_amount(s: str) -> Optional[float]:
    """Normalize amount string to float."""
    if not s:
        return None
    s = s.replace(",", "").replace(" ", "")
    try:
        return float(s)
    except ValueError:
        return None


def leading_number(s: str) -> Optional[float]:
    """
    Parse the longest numeric prefix of a token such as "12.50." or "1.2.3".

    Thousands separators are dropped first, so "1,234.56" gives 1234.56.
    """
    m = re.match(r"\d+(?:\.\d*)?|\.\d+", s.replace(",", ""))
    if not m:
        return None
    return normalize_amount(m.group(0))


def has_keyword(line: str, keywords) -> bool:
    """Case-insensitive substring test against a keyword list."""
    lower = line.lower()
    return any(kw in lower for kw in keywords)


def guess_mime_type(path: Path) -> str:
    """Guess an upload's MIME type from its file name."""
    mime_type, _ = mimetypes.guess_type(path.name)
    if mime_type:
        return mime_type
    ext = path.suffix.lower()
    if ext in IMAGE_EXTS:
        return IMAGE_MIME_PREFIX + ext.lstrip(".")
    if ext in PDF_EXTS:
        return PDF_MIME_TYPE
    if ext in CSV_EXTS:
        return "text/csv"
    return ""


def money_fmt(v: Optional[float]) -> str:
    """Format amount as currency."""
    return f"${v:,.2f}" if v is not None else ""
