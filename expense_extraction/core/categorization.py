"""
Expense categories shared by the LLM adapter and the invoice heuristic.
"""

from enum import Enum
from typing import Optional


class Category(str, Enum):
    """Closed set of expense categories."""
    FOOD = "Food"
    TRANSPORTATION = "Transportation"
    SHOPPING = "Shopping"
    ENTERTAINMENT = "Entertainment"
    BILLS = "Bills"
    HEALTHCARE = "Healthcare"
    OTHER = "Other"


CATEGORIES = [c.value for c in Category]
DEFAULT_CATEGORY = Category.OTHER.value


def normalize_category(category: Optional[str]) -> str:
    """
    Map a free-form category onto the closed category set.

    Exact matches pass through, case-insensitive matches are canonicalized
    and anything else (including None) collapses to "Other".
    """
    if not isinstance(category, str):
        return DEFAULT_CATEGORY
    category = category.strip()
    if category in CATEGORIES:
        return category

    category_lower = category.lower()
    matched = [c for c in CATEGORIES if c.lower() == category_lower]
    if matched:
        return matched[0]
    return DEFAULT_CATEGORY
