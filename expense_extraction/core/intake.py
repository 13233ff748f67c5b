"""
Upload handling around the extraction pipeline: manual fallbacks and the final amount check.
"""

import datetime as dt
import logging
import math
from typing import Optional

from .categorization import DEFAULT_CATEGORY, normalize_category
from .errors import DecodeError, ValidationRejected
from .models import ExpenseRecord, ParsedExpense, UploadResult, MAX_DESCRIPTION_LENGTH
from .parsers import parse_date

logger = logging.getLogger(__name__)

MSG_NO_FILE = "Please choose a file to upload."
MSG_UNREADABLE = "Unable to read the uploaded file. Please try another file."
MSG_NO_AMOUNT = "Could not detect the total amount in this file. Please enter it manually."
MSG_CREATED = "Expense created from uploaded file."


def parse_fallback_amount(value) -> Optional[float]:
    """Parse a manually entered amount; None when empty or not a finite number."""
    if value is None or value == "":
        return None
    try:
        amount = float(str(value).strip())
    except ValueError:
        return None
    return amount if math.isfinite(amount) else None


def _format_instant(value: dt.datetime) -> str:
    if value.tzinfo is None:
        value = value.replace(tzinfo=dt.timezone.utc)
    value = value.astimezone(dt.timezone.utc)
    return value.isoformat(timespec="milliseconds").replace("+00:00", "Z")


def normalize_date(value: Optional[str], now: Optional[dt.datetime] = None) -> str:
    """
    Normalize a date string to an ISO-8601 UTC instant.

    Accepts ISO dates and datetimes, plus the loose formats the receipt date
    parser knows (MM/DD/YYYY, "Mar 1, 2024"). Anything else, or nothing,
    yields ``now``.
    """
    now = now or dt.datetime.now(dt.timezone.utc)
    if not value or not str(value).strip():
        return _format_instant(now)

    raw = str(value).strip()
    try:
        return _format_instant(dt.datetime.fromisoformat(raw.replace("Z", "+00:00")))
    except ValueError:
        pass
    except OverflowError:
        logger.debug("Date %r is out of range, defaulting to now", raw)
        return _format_instant(now)

    parsed = parse_date(raw)
    if parsed:
        return _format_instant(dt.datetime.fromisoformat(parsed))

    logger.debug("Unrecognized date %r, defaulting to now", raw)
    return _format_instant(now)


def build_expense_record(parsed: Optional[ParsedExpense], file_name: str,
                         description: Optional[str] = None,
                         amount: Optional[float] = None,
                         category: Optional[str] = None,
                         date: Optional[str] = None,
                         now: Optional[dt.datetime] = None) -> ExpenseRecord:
    """
    Merge the extracted expense with values the user typed in.

    Extracted values win; manual values only fill gaps.

    Raises:
        ValidationRejected: no positive amount from either source
    """
    final_amount = parsed.amount if parsed and parsed.amount else amount
    if not final_amount or final_amount <= 0:
        raise ValidationRejected(MSG_NO_AMOUNT)

    final_description = (
        (parsed.description if parsed else None)
        or description
        or f"Uploaded receipt ({file_name})"
    )
    final_category = (parsed.category if parsed else None) or category or DEFAULT_CATEGORY
    final_date = (parsed.date if parsed else None) or date

    return ExpenseRecord(
        description=final_description[:MAX_DESCRIPTION_LENGTH],
        amount=final_amount,
        category=normalize_category(final_category),
        date=normalize_date(final_date, now=now),
    )


def process_upload(orchestrator, body: Optional[bytes], mime_type: Optional[str],
                   file_name: Optional[str],
                   description: Optional[str] = None,
                   amount=None,
                   category: Optional[str] = None,
                   date: Optional[str] = None) -> UploadResult:
    """
    Turn one upload into an ExpenseRecord, or a user-facing rejection message.

    Args:
        orchestrator: ExtractionOrchestrator to run
        body: Uploaded bytes (None when nothing was uploaded)
        mime_type: Declared MIME type
        file_name: Original file name
        description, amount, category, date: Manual fallback values
    """
    if body is None:
        return UploadResult(False, MSG_NO_FILE)

    file_name = file_name or "uploaded-receipt"
    try:
        parsed, source = orchestrator.extract_with_source(body, mime_type, file_name)
    except DecodeError as e:
        logger.error("Failed to read %s: %s", file_name, e)
        return UploadResult(False, MSG_UNREADABLE)

    try:
        record = build_expense_record(
            parsed, file_name,
            description=description,
            amount=parse_fallback_amount(amount),
            category=category,
            date=date,
        )
    except ValidationRejected as e:
        return UploadResult(False, str(e), source=source)

    return UploadResult(True, MSG_CREATED, record=record, source=source)
