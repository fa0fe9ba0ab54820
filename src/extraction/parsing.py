"""Lenient parsers for noisy extracted values.

Every parser returns ``None`` when the value cannot be read; callers treat that as
an absent field rather than an error.
"""

from __future__ import annotations

import math
import re
from datetime import date, datetime
from typing import Any

_DATE_FORMATS = ("%Y-%m-%d", "%d/%m/%Y", "%d-%m-%Y", "%d.%m.%Y", "%Y/%m/%d")
_NUMBER_RE = re.compile(r"-?\d[\d\s.,']*")
_TRUE_WORDS = {"true", "oui", "yes", "1", "fumeur", "o", "y"}
_FALSE_WORDS = {"false", "non", "no", "0", "non fumeur", "non-fumeur", "nonfumeur", "n"}


def parse_date(value: Any) -> date | None:
    """Parse ISO or French day-first dates; datetimes are truncated to the day."""
    if value is None or isinstance(value, bool):
        return None
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    if not isinstance(value, str):
        return None

    text = value.strip()
    if not text:
        return None
    # ISO timestamps ("2024-01-15T10:00:00Z") compare at day granularity.
    if len(text) > 10 and text[4:5] == "-" and text[10:11] in {"T", " "}:
        text = text[:10]

    for fmt in _DATE_FORMATS:
        try:
            return datetime.strptime(text, fmt).date()
        except ValueError:
            continue
    return None


def parse_amount(value: Any) -> float | None:
    """Parse a number written with French or English separators ("1 234,56 €")."""
    if value is None or isinstance(value, bool):
        return None
    if isinstance(value, (int, float)):
        number = float(value)
        return None if math.isnan(number) or math.isinf(number) else number
    if not isinstance(value, str):
        return None

    match = _NUMBER_RE.search(value.replace("\u202f", " ").replace("\xa0", " "))
    if not match:
        return None
    token = re.sub(r"[\s']", "", match.group(0)).rstrip(".,")
    if not token or token == "-":
        return None

    if "," in token and "." in token:
        # The right-most separator is the decimal one.
        if token.rfind(",") > token.rfind("."):
            token = token.replace(".", "").replace(",", ".")
        else:
            token = token.replace(",", "")
    elif "," in token:
        # A single comma is a French decimal separator, several are thousands.
        token = token.replace(",", "") if token.count(",") > 1 else token.replace(",", ".")
    elif token.count(".") > 1:
        token = token.replace(".", "")

    try:
        return float(token)
    except ValueError:
        return None


def parse_int(value: Any) -> int | None:
    """Parse a whole number; fractional values are rejected."""
    number = parse_amount(value)
    if number is None or not float(number).is_integer():
        return None
    return int(number)


def parse_bool(value: Any) -> bool | None:
    """Parse yes/no style answers ("oui", "non-fumeur", true)."""
    if value is None:
        return None
    if isinstance(value, bool):
        return value
    if isinstance(value, (int, float)) and value in (0, 1):
        return bool(value)
    if not isinstance(value, str):
        return None
    text = " ".join(value.strip().lower().split())
    if text in _TRUE_WORDS:
        return True
    if text in _FALSE_WORDS:
        return False
    return None


def parse_text(value: Any) -> str | None:
    """Strip strings; blank strings and non-scalars are absent."""
    if value is None or isinstance(value, (dict, list, tuple, set)):
        return None
    text = str(value).strip()
    return text or None
