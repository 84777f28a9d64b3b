"""
Value coercion helpers shared by catalog parsing, scoring and aggregation.

Answer values and catalog labels arrive in several shapes: plain numbers,
numeric strings (sometimes with a decimal comma), booleans, free text and
locale objects such as ``{"de": "Einstieg", "default": "Opening"}``. Every
place that displays, compares or groups such a value goes through the
functions in this module so the same logical label never ends up in two
groups.
"""

from __future__ import annotations

import json
import math
import re
from dataclasses import dataclass
from datetime import date, datetime
from typing import Any

PREFERRED_LANGUAGE = "de"
DEFAULT_LANGUAGE = "default"

SUBMISSION_TIMESTAMP_FORMAT = "%d.%m.%Y, %H:%M:%S"
_TIMESTAMP_FORMATS = (
    "%d.%m.%Y, %H:%M:%S",
    "%d.%m.%Y, %H:%M",
    "%d.%m.%Y %H:%M:%S",
    "%d.%m.%Y %H:%M",
    "%d.%m.%Y",
)

_NUMERIC_RE = re.compile(r"^[+-]?(\d+(\.\d*)?|\.\d+)([eE][+-]?\d+)?$")

# Keys of a stored evaluation record that describe the evaluation, not an answer.
RECORD_META_KEYS = frozenset(
    {
        "Name",
        "Projekt",
        "Kriterienkatalog",
        "Datum",
        "Bewertername",
        "Punkte",
        "Erreichbare_Punkte",
        "Prozent",
        "EvaluatorEmail",
        "EvaluationDate",
        "EmployeeID",
        "EmployeeName",
        "EmployeeEmail",
        "Email",
        "Team",
    }
)

_COMMENT_SUFFIXES = ("-Comment", "Comment")
_COMMENT_PREFIXES = ("Begründung-", "Begründung_", "Comment-", "Comment_")


@dataclass(frozen=True, slots=True)
class LocaleText:
    """A translatable label, e.g. ``{"de": "...", "default": "..."}``."""

    translations: dict[str, Any]

    def display(self) -> str:
        for language in (PREFERRED_LANGUAGE, DEFAULT_LANGUAGE):
            text = self.translations.get(language)
            if text:
                return text if isinstance(text, str) else str(text)
        return json.dumps(self.translations, ensure_ascii=False)


def coerce_label(value: Any) -> str:
    """
    Turn any label-like value into one display string.

    Example:
        >>> coerce_label({"de": "Einstieg", "default": "Opening"})
        'Einstieg'
        >>> coerce_label({"en": "Closing"})
        '{"en": "Closing"}'
    """
    if value is None:
        return ""
    if isinstance(value, LocaleText):
        return value.display()
    if isinstance(value, str):
        return value
    if isinstance(value, dict):
        return LocaleText(value).display()
    if isinstance(value, bool):
        return "true" if value else "false"
    if isinstance(value, (int, float)):
        return str(value)
    return json.dumps(value, ensure_ascii=False, default=str)


def to_number(value: Any) -> float | None:
    """
    Return the numeric value of an answer, or None when it is not numeric.

    Numbers count as numeric, and so do strings that parse fully as a number
    (a single decimal comma is accepted). Booleans, empty strings, NaN and
    infinities are not numeric.

    Example:
        >>> to_number("4")
        4.0
        >>> to_number("87,5")
        87.5
        >>> to_number("4 Punkte") is None
        True
    """
    if isinstance(value, bool) or value is None:
        return None
    if isinstance(value, (int, float)):
        number = float(value)
        return number if math.isfinite(number) else None
    if isinstance(value, str):
        text = value.strip()
        if text.count(",") == 1 and "." not in text:
            text = text.replace(",", ".")
        if not _NUMERIC_RE.match(text):
            return None
        number = float(text)
        return number if math.isfinite(number) else None
    return None


def is_comment_key(key: str) -> bool:
    """True for free-text justification fields stored next to the answers."""
    return key.endswith(_COMMENT_SUFFIXES) or key.startswith(_COMMENT_PREFIXES)


def is_answer_key(key: str) -> bool:
    return key not in RECORD_META_KEYS and not is_comment_key(key)


def sanitize_answer_key(key: str) -> str:
    """Stored answer keys use underscores instead of spaces."""
    return key.replace(" ", "_")


def sanitize_answer_keys(answers: dict[str, Any]) -> dict[str, Any]:
    return {sanitize_answer_key(k): v for k, v in answers.items()}


def restore_answer_key(key: str) -> str:
    return key.replace("_", " ")


def parse_submission_timestamp(value: Any, fallback: datetime | None = None) -> datetime | None:
    """
    Parse a stored submission timestamp.

    Accepts ``DD.MM.YYYY, HH:mm:ss`` (the stored format), the same without
    seconds or without a time, and ISO-8601. Timezone information is dropped
    so the wall-clock value as written is kept. Anything else returns
    ``fallback``.

    Example:
        >>> parse_submission_timestamp("03.02.2025, 14:05:09")
        datetime.datetime(2025, 2, 3, 14, 5, 9)
    """
    if isinstance(value, datetime):
        return value.replace(tzinfo=None)
    if isinstance(value, date):
        return datetime(value.year, value.month, value.day)
    if not isinstance(value, str) or not value.strip():
        return fallback

    text = value.strip()
    for fmt in _TIMESTAMP_FORMATS:
        try:
            return datetime.strptime(text, fmt)
        except ValueError:
            continue

    try:
        parsed = datetime.fromisoformat(text.replace("Z", "+00:00"))
    except ValueError:
        return fallback
    return parsed.replace(tzinfo=None)


def format_submission_timestamp(value: datetime) -> str:
    return value.strftime(SUBMISSION_TIMESTAMP_FORMAT)


def round_half_up(value: float, digits: int = 0) -> float:
    """Round half away from zero; the builtin round() rounds half to even."""
    factor = 10**digits
    scaled = abs(value) * factor
    rounded = math.floor(scaled + 0.5) / factor
    return math.copysign(rounded, value) if value else 0.0
