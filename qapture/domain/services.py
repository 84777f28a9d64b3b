from __future__ import annotations

import logging
from collections.abc import Callable, Iterable, Mapping
from dataclasses import replace
from typing import Any

from .catalogs import prefers_catalog
from .models import (
    CatalogSchema,
    Diagnostics,
    Question,
    ScoreResult,
    ScoringKind,
    Submission,
    percent_of,
)
from .name_mapping import CatalogNameResolver
from .normalizer import normalize_answers
from .values import to_number

VisibilityPredicate = Callable[[Question], bool]


def statically_visible(question: Question) -> bool:
    """Default visibility: hidden only when the document says ``visible: false``."""
    return question.visible


def calculate_score(
    schema: CatalogSchema,
    answers: Mapping[str, Any],
    visibility: VisibilityPredicate | None = None,
    diagnostics: Diagnostics | None = None,
) -> ScoreResult:
    """
    Headline score of one submission.

    Only visible rating questions count: their answers are summed into points
    (absent or non-numeric answers count 0) and their maxima into max_points.
    Boolean and radiogroup questions are left out here on purpose; they feed
    the radar and question profiles instead.

    Example:
        >>> result = calculate_score(schema, {"Begruessung": 4})  # one rating, rateMax 5
        >>> (result.points, result.max_points, result.percent)
        (4.0, 5.0, 80.0)
    """
    is_visible = visibility or statically_visible
    normalized = normalize_answers(answers, schema.question_index(), schema.name, diagnostics)

    points = 0.0
    max_points = 0.0
    for question in schema.questions():
        if question.scoring_kind is not ScoringKind.RATING or not is_visible(question):
            continue
        max_points += float(question.max_score or 0)
        points += to_number(normalized.get(question.name)) or 0.0

    return ScoreResult(points=points, max_points=max_points, percent=percent_of(points, max_points))


class ScoringService:
    """
    Scores submissions against the catalogs known to the caller.

    A catalog name that cannot be resolved (after name mapping) yields a
    result with status CATALOG_NOT_FOUND, never a zero score.
    """

    def __init__(
        self,
        catalogs: Iterable[CatalogSchema],
        resolver: CatalogNameResolver | None = None,
        logger: logging.Logger | None = None,
    ):
        self.catalogs: dict[str, CatalogSchema] = {}
        for catalog in catalogs:
            current = self.catalogs.get(catalog.name)
            if current is None or prefers_catalog(catalog, current):
                self.catalogs[catalog.name] = catalog
        self.resolver = resolver or CatalogNameResolver()
        self.logger = logger or logging.getLogger(__name__)

    def find_catalog(self, catalog_name: str) -> CatalogSchema | None:
        return self.catalogs.get(self.resolver.resolve(catalog_name))

    def score(
        self,
        catalog_name: str,
        answers: Mapping[str, Any],
        visibility: VisibilityPredicate | None = None,
        diagnostics: Diagnostics | None = None,
    ) -> ScoreResult:
        schema = self.find_catalog(catalog_name)
        if schema is None:
            self.logger.warning(
                "Catalog '%s' (resolved '%s') not found; submission not scored",
                catalog_name,
                self.resolver.resolve(catalog_name),
            )
            if diagnostics is not None:
                diagnostics.record_missing_catalog(catalog_name)
            return ScoreResult.catalog_not_found()
        return calculate_score(schema, answers, visibility, diagnostics)

    def rescore(
        self, submission: Submission, visibility: VisibilityPredicate | None = None
    ) -> tuple[Submission, ScoreResult]:
        """Recompute the stored score fields; an unknown catalog leaves them untouched."""
        result = self.score(submission.catalog_name, submission.answers, visibility)
        if not result.is_scored:
            return submission, result
        updated = replace(
            submission,
            points=result.points,
            max_points=result.max_points,
            percent=result.percent,
        )
        return updated, result
