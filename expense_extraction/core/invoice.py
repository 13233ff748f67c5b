"""
Heuristic invoice parser: the last-resort extraction stage.

Works line by line on plain text (CSV exports, PDF text layers, OCR output)
and never calls out to anything, so its answer depends only on the input.
"""

import math
import re
from typing import List, Optional, Tuple

from .categorization import DEFAULT_CATEGORY
from .models import InvoiceRow, ParsedExpense, MAX_DESCRIPTION_LENGTH
from .parsers import tokenize_lines, parse_amount
from .utils import (AMOUNT_KEYWORDS, DESCRIPTION_KEYWORDS, AMOUNT_PATTERN,
                    TRAILING_AMOUNT_PATTERN, HEADER_PATTERN, NUMERIC_TOKEN_PATTERN,
                    has_keyword, leading_number)

TOTAL_DESCRIPTION = "Invoice total"
ITEMS_PREFIX = "Invoice items: "
DEFAULT_DESCRIPTION = "Uploaded receipt"
MAX_SAMPLE_ITEMS = 3


def _scan_keywords(lines: List[str]) -> Tuple[Optional[float], Optional[str]]:
    """
    First pass: amount from the first total line, description from the first
    description line. Stops as soon as both are known.
    """
    amount = None
    description = None

    for line in lines:
        if not amount and has_keyword(line, AMOUNT_KEYWORDS):
            amount = parse_amount(line)
            description = TOTAL_DESCRIPTION

        if not description and has_keyword(line, DESCRIPTION_KEYWORDS):
            cleaned = re.sub(r"[:\-]", "", line).strip()
            if cleaned:
                description = cleaned

        if amount and description:
            break

    return amount, description


def _extract_rows(lines: List[str]) -> List[InvoiceRow]:
    """Second pass: every line carrying a non-zero amount becomes a candidate row."""
    rows = []
    for idx, line in enumerate(lines):
        amount = parse_amount(line)
        if not amount:
            continue

        if has_keyword(line, AMOUNT_KEYWORDS):
            rows.append(InvoiceRow(TOTAL_DESCRIPTION, amount, idx, is_total_line=True))
            continue

        # Table header such as "Description  Qty  Price"
        if re.search(HEADER_PATTERN, line, flags=re.IGNORECASE):
            continue

        m = re.match(TRAILING_AMOUNT_PATTERN, line)
        if m:
            text_part = m.group(1).strip()
        else:
            text_part = re.sub(AMOUNT_PATTERN, "", line).strip()

        if not text_part:
            continue
        rows.append(InvoiceRow(text_part, amount, idx))
    return rows


def _largest_number(text: str) -> Optional[float]:
    """Largest numeric token anywhere in the raw text, optionally prefixed USD or $."""
    values = []
    for m in re.finditer(NUMERIC_TOKEN_PATTERN, text):
        value = leading_number(m.group(1))
        if value is not None and math.isfinite(value):
            values.append(value)
    return max(values) if values else None


def _description_before_total(lines: List[str]) -> Optional[str]:
    for i, line in enumerate(lines):
        if i > 0 and has_keyword(line, AMOUNT_KEYWORDS):
            return lines[i - 1]
    return None


def extract_from_text(text: str) -> Optional[ParsedExpense]:
    """
    Derive a single (description, amount) pair from free-form invoice text.

    Precedence for the amount: first total-keyword line, then a total row
    found while collecting line items, then the sum of all line items, then
    the largest number anywhere in the text.

    Returns:
        ParsedExpense with category "Other", or None when no positive amount
        could be found
    """
    if not text:
        return None

    lines = tokenize_lines(text)
    if not lines:
        return None

    amount, description = _scan_keywords(lines)
    rows = _extract_rows(lines)

    if not amount:
        total_row = next((row for row in rows if row.is_total_line), None)
        if total_row:
            amount = total_row.amount
            description = TOTAL_DESCRIPTION
        elif rows:
            amount = round(sum(row.amount for row in rows), 2)
            sample = ", ".join(row.description for row in rows[:MAX_SAMPLE_ITEMS])
            description = f"{ITEMS_PREFIX}{sample}"

    if not amount:
        amount = _largest_number(text)
        if amount:
            description = TOTAL_DESCRIPTION

    if not amount or amount < 0 or not math.isfinite(amount):
        return None

    if not description:
        description = _description_before_total(lines)
    if not description:
        if rows:
            description = rows[0].description
        else:
            description = next((ln for ln in lines if len(ln) > 3), DEFAULT_DESCRIPTION)

    return ParsedExpense(
        description=description[:MAX_DESCRIPTION_LENGTH],
        amount=amount,
        category=DEFAULT_CATEGORY,
    )
