from __future__ import annotations

from collections.abc import Mapping
from dataclasses import dataclass, field
from typing import Any

from ..infrastructure.exceptions import UnresolvedAnswerKeyError
from ..infrastructure.logging import get_logger
from .models import Diagnostics
from .values import (
    LocaleText,
    coerce_label,
    is_answer_key,
    restore_answer_key,
    sanitize_answer_key,
)

logger = get_logger(__name__)


@dataclass(slots=True)
class NormalizedAnswers:
    """Answers keyed by schema question name, plus the keys that matched nothing."""

    catalog_name: str
    values: dict[str, Any] = field(default_factory=dict)
    unresolved: list[str] = field(default_factory=list)

    def get(self, question_name: str, default: Any = None) -> Any:
        return self.values.get(question_name, default)

    def __contains__(self, question_name: object) -> bool:
        return question_name in self.values


def resolve_answer_key(key: str, questions: Mapping[str, Any]) -> str | None:
    """
    Find the schema question for a stored answer key.

    Tries the key as is, then with underscores read as spaces, then with
    spaces read as underscores. Returns None when nothing matches.
    """
    if key in questions:
        return key
    spaced = restore_answer_key(key)
    if spaced in questions:
        return spaced
    underscored = sanitize_answer_key(key)
    if underscored in questions:
        return underscored
    return None


def normalize_value(value: Any) -> Any:
    """Locale objects become one display string; other values pass through."""
    if isinstance(value, (dict, LocaleText)):
        return coerce_label(value)
    return value


def normalize_answers(
    answers: Mapping[str, Any],
    questions: Mapping[str, Any],
    catalog_name: str = "",
    diagnostics: Diagnostics | None = None,
    strict: bool = False,
) -> NormalizedAnswers:
    """
    Resolve every answer key of a submission against a catalog's questions.

    Meta and comment fields are ignored. An exact key match beats a key that
    only matches after underscore/space translation.

    Raises:
        UnresolvedAnswerKeyError: Only with ``strict=True``, for the first key without a question

    Example:
        >>> result = normalize_answers({"Begruessung_Kunde": 4}, {"Begruessung Kunde": entry})
        >>> result.values
        {'Begruessung Kunde': 4}
    """
    result = NormalizedAnswers(catalog_name=catalog_name)
    exact: set[str] = set()

    for key, value in answers.items():
        if not is_answer_key(key):
            continue
        question_name = resolve_answer_key(key, questions)
        if question_name is None:
            if strict:
                raise UnresolvedAnswerKeyError(key, catalog_name)
            result.unresolved.append(key)
            continue
        if question_name in exact:
            continue
        if key == question_name:
            exact.add(question_name)
        elif question_name in result.values:
            continue
        result.values[question_name] = normalize_value(value)

    if result.unresolved:
        logger.debug(
            "%d answer keys without a question in catalog '%s'",
            len(result.unresolved),
            catalog_name,
        )
        if diagnostics is not None:
            diagnostics.record_unresolved(catalog_name, len(result.unresolved))
    return result
