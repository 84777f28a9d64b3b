from __future__ import annotations

from collections.abc import Callable, Iterable, Mapping
from datetime import datetime, time
from typing import Any

from ..infrastructure.config import get_settings
from .models import Submission
from .schemas import SubmissionFilter

Predicate = Callable[[Submission], bool]


def as_filter(spec: SubmissionFilter | Mapping[str, Any] | None) -> SubmissionFilter:
    if spec is None:
        return SubmissionFilter()
    if isinstance(spec, SubmissionFilter):
        return spec
    return SubmissionFilter(**spec)


def _concrete(value: str | None, sentinel: str) -> str | None:
    if value is None or value == sentinel:
        return None
    return value


def build_predicates(spec: SubmissionFilter, all_sentinel: str | None = None) -> list[Predicate]:
    """One predicate per active filter field; an empty list keeps everything.

    Every field except ``teams`` is an exact match on the stored value.
    """
    sentinel = all_sentinel or get_settings().reporting.all_sentinel
    predicates: list[Predicate] = []

    if spec.date_from is not None:
        start = datetime.combine(spec.date_from, time.min)
        predicates.append(lambda s: s.timestamp is not None and s.timestamp >= start)

    if spec.date_to is not None:
        end = datetime.combine(spec.date_to, time.max)
        predicates.append(lambda s: s.timestamp is not None and s.timestamp <= end)

    teams = set(spec.teams)
    if teams and sentinel not in teams:
        predicates.append(lambda s: s.team_name in teams)

    catalog = _concrete(spec.catalog, sentinel)
    if catalog is not None:
        predicates.append(lambda s: s.catalog_name == catalog)

    evaluator = _concrete(spec.evaluator, sentinel)
    if evaluator is not None:
        predicates.append(lambda s: s.evaluator == evaluator)

    employee = _concrete(spec.employee, sentinel)
    if employee is not None:
        predicates.append(lambda s: s.employee == employee)

    return predicates


def filter_submissions(
    submissions: Iterable[Submission],
    spec: SubmissionFilter | Mapping[str, Any] | None = None,
    all_sentinel: str | None = None,
) -> list[Submission]:
    """
    Keep the submissions matching every active filter field.

    Date bounds are inclusive and ``date_to`` covers its whole day; once a date
    bound is set, submissions without a timestamp are dropped. ``teams`` is
    OR-matched. The catalog is compared with the name stored on the
    submission; historical names are not folded in.

    Example:
        >>> filter_submissions(rows, {"teams": ["SDK Inbound"], "catalog": "all"})
    """
    predicates = build_predicates(as_filter(spec), all_sentinel)
    return [s for s in submissions if all(p(s) for p in predicates)]
