"""
Exceptions raised by the expense extraction pipeline.

Abstention is not an error: every extraction stage returns None when it has
no confident answer. Only input that cannot be read at all, and the final
caller-level amount check, raise.
"""


class ExpenseExtractionError(Exception):
    """Base class for extraction errors."""


class DecodeError(ExpenseExtractionError):
    """Uploaded bytes could not be turned into text or an image payload."""


class ExtractionError(ExpenseExtractionError):
    """The PDF text layer could not be read (corrupt or encrypted file)."""


class ValidationRejected(ExpenseExtractionError):
    """No positive amount could be determined for the upload."""
