"""
Expense Extraction

Turns uploaded receipts, invoices and CSV exports into a structured expense
(description, amount, category, date), using an LLM when one is configured
and OCR plus line heuristics when it is not.
"""

__version__ = "1.0.0"
__author__ = "Expense Extraction Contributors"

from expense_extraction.core.models import ParsedExpense
from expense_extraction.core.processor import ExtractionOrchestrator, extract_expense

__all__ = ["ParsedExpense", "ExtractionOrchestrator", "extract_expense"]
