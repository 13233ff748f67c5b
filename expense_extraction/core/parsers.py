"""
Line tokenizer and amount/date parsers shared by every extraction path.
"""

import math
import re
import datetime as dt
from typing import List, Optional, Tuple

from .utils import AMOUNT_PATTERN, NEWLINE_PATTERN

DATE_PATTERNS = [
    r"\b(\d{4})[-/](\d{1,2})[-/](\d{1,2})\b",            # YYYY-MM-DD or YYYY/MM/DD
    r"\b(\d{1,2})[-/](\d{1,2})[-/](\d{2,4})\b",          # MM/DD/YYYY or DD/MM/YYYY (heuristic later)
    r"\b([A-Za-z]{3,9})\s+(\d{1,2}),\s*(\d{4})\b",       # Month DD, YYYY
]

_AMOUNT_RE = re.compile(AMOUNT_PATTERN)


def tokenize_lines(text: str) -> List[str]:
    """Split text into trimmed, non-empty lines, keeping their order."""
    if not text:
        return []
    return [ln.strip() for ln in re.split(NEWLINE_PATTERN, text) if ln.strip()]


def find_amount(line: str) -> Optional[Tuple[float, Tuple[int, int]]]:
    """
    Locate the first monetary value in a line.

    Returns:
        Tuple of (value, (start, end)) for the matched substring, or None
    """
    m = _AMOUNT_RE.search(line or "")
    if not m:
        return None
    normalized = re.sub(r"[^0-9.\-]", "", m.group(0))
    try:
        value = float(normalized)
    except ValueError:
        return None
    if not math.isfinite(value):
        return None
    return value, m.span()


def parse_amount(line: str) -> Optional[float]:
    """
    Extract the first monetary value from a line of text.

    Currency symbols and thousands separators are tolerated, so
    "$1,234.56" gives 1234.56 and "Total: 42" gives 42.0.
    """
    found = find_amount(line)
    return found[0] if found else None


def parse_date(text: str) -> Optional[str]:
    """Extract the first recognizable calendar date as YYYY-MM-DD."""
    for pat in DATE_PATTERNS:
        for m in re.finditer(pat, text, flags=re.IGNORECASE):
            g = m.groups()
            try:
                if pat.startswith(r"\b(\d{4})"):
                    y, mo, d = int(g[0]), int(g[1]), int(g[2])
                elif pat.startswith(r"\b(\d{1,2})"):
                    mo, d, y = int(g[0]), int(g[1]), int(g[2])
                    if y < 100:  # YY -> 20YY
                        y += 2000
                    # DD/MM when the first field cannot be a month
                    if mo > 12 and d <= 12:
                        mo, d = d, mo
                else:
                    mn, d, y = g[0], int(g[1]), int(g[2])
                    mo = dt.datetime.strptime(mn[:3], "%b").month
                return dt.date(y, mo, d).isoformat()
            except ValueError:
                continue
    return None
