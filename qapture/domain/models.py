from __future__ import annotations

from collections import Counter
from collections.abc import Iterator, Mapping
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any

from .values import (
    is_answer_key,
    parse_submission_timestamp,
    round_half_up,
    to_number,
)


class ScoringKind(str, Enum):
    RATING = "rating"
    BOOLEAN = "boolean"
    RADIOGROUP = "radiogroup"
    OTHER = "other"

    @classmethod
    def from_element_type(cls, element_type: Any) -> ScoringKind:
        if isinstance(element_type, str):
            try:
                return cls(element_type.strip().lower())
            except ValueError:
                pass
        return cls.OTHER

    @property
    def is_scored(self) -> bool:
        return self is not ScoringKind.OTHER


@dataclass(frozen=True, slots=True)
class Question:
    name: str
    title: str
    category: str
    scoring_kind: ScoringKind
    max_score: int | None  # None for unscored questions
    element_type: str = ""
    visible: bool = True
    declared_rate_max: Any = None  # rateMax as written in the document
    choice_count: int | None = None


@dataclass(slots=True)
class Page:
    name: str  # category label
    questions: list[Question] = field(default_factory=list)


@dataclass(frozen=True, slots=True)
class QuestionEntry:
    category: str
    max_score: int | None
    scoring_kind: ScoringKind


# catalogName -> questionName -> QuestionEntry
SchemaIndex = dict[str, dict[str, QuestionEntry]]


@dataclass(slots=True)
class CatalogSchema:
    name: str
    pages: list[Page] = field(default_factory=list)
    version: int = 1
    root_id: int | None = None
    is_active: bool = True
    id: int | None = None
    teams: list[str] = field(default_factory=list)

    def questions(self) -> Iterator[Question]:
        for page in self.pages:
            yield from page.questions

    def question_index(self) -> dict[str, QuestionEntry]:
        return {
            q.name: QuestionEntry(q.category, q.max_score, q.scoring_kind)
            for q in self.questions()
        }


class ScoreStatus(str, Enum):
    OK = "ok"
    CATALOG_NOT_FOUND = "catalog_not_found"


@dataclass(frozen=True, slots=True)
class ScoreResult:
    points: float
    max_points: float
    percent: float
    status: ScoreStatus = ScoreStatus.OK

    @classmethod
    def catalog_not_found(cls) -> ScoreResult:
        return cls(points=0.0, max_points=0.0, percent=0.0, status=ScoreStatus.CATALOG_NOT_FOUND)

    @property
    def is_scored(self) -> bool:
        return self.status is ScoreStatus.OK

    def as_record_fields(self) -> dict[str, Any]:
        """Fields persisted next to the answers of an evaluation record."""
        points = int(self.points) if float(self.points).is_integer() else self.points
        max_points = int(self.max_points) if float(self.max_points).is_integer() else self.max_points
        return {
            "Punkte": points,
            "Erreichbare_Punkte": max_points,
            "Prozent": f"{self.percent:.2f}",
        }


@dataclass(slots=True)
class Submission:
    catalog_name: str
    answers: dict[str, Any] = field(default_factory=dict)
    team_name: str = ""
    evaluator: str = ""
    employee: str = ""
    timestamp: datetime | None = None
    points: float = 0.0
    max_points: float = 0.0
    percent: float = 0.0
    id: int | None = None

    def display_percent(self, cap: float = 100.0) -> float:
        return min(self.percent, cap)

    @classmethod
    def from_record(cls, record: Mapping[str, Any], record_id: Any = None) -> Submission:
        """
        Build a Submission from a stored evaluation record.

        The record may still be wrapped as ``{"surveyresults": {...}}``. Meta
        fields and comment fields are not answers; an unparseable ``Datum``
        leaves ``timestamp`` unset.
        """
        data = record.get("surveyresults", record)
        if not isinstance(data, Mapping):
            data = {}

        def text(*keys: str) -> str:
            for key in keys:
                value = data.get(key)
                if value is not None and str(value).strip():
                    return str(value).strip()
            return ""

        timestamp = parse_submission_timestamp(data.get("Datum") or data.get("EvaluationDate"))

        return cls(
            id=record_id if record_id is not None else record.get("_id"),
            catalog_name=text("Kriterienkatalog"),
            team_name=text("Projekt", "Team"),
            evaluator=text("Bewertername", "EvaluatorEmail"),
            employee=text("Name", "EmployeeEmail", "Email"),
            timestamp=timestamp,
            answers={k: v for k, v in data.items() if is_answer_key(k)},
            points=to_number(data.get("Punkte")) or 0.0,
            max_points=to_number(data.get("Erreichbare_Punkte")) or 0.0,
            percent=to_number(data.get("Prozent")) or 0.0,
        )


@dataclass(slots=True)
class Dimension:
    id: int
    name: str
    color: str


@dataclass(slots=True)
class CategoryMapping:
    category_name: str
    dimension_id: int | None


@dataclass(slots=True)
class Diagnostics:
    """Non-fatal conditions met while indexing, scoring or aggregating."""

    malformed_catalogs: list[str] = field(default_factory=list)
    missing_catalogs: Counter[str] = field(default_factory=Counter)
    unresolved_keys: Counter[str] = field(default_factory=Counter)
    warnings: list[str] = field(default_factory=list)

    def record_malformed(self, catalog_name: str, reason: str) -> None:
        self.malformed_catalogs.append(catalog_name)
        self.warnings.append(f"Catalog '{catalog_name}' skipped: {reason}")

    def record_missing_catalog(self, catalog_name: str) -> None:
        self.missing_catalogs[catalog_name] += 1

    def record_unresolved(self, catalog_name: str, count: int = 1) -> None:
        if count:
            self.unresolved_keys[catalog_name] += count

    def merge(self, other: Diagnostics) -> Diagnostics:
        self.malformed_catalogs.extend(other.malformed_catalogs)
        self.missing_catalogs.update(other.missing_catalogs)
        self.unresolved_keys.update(other.unresolved_keys)
        self.warnings.extend(other.warnings)
        return self

    @property
    def is_clean(self) -> bool:
        return not (
            self.malformed_catalogs or self.missing_catalogs or self.unresolved_keys or self.warnings
        )

    def as_dict(self) -> dict[str, Any]:
        return {
            "malformed_catalogs": list(self.malformed_catalogs),
            "missing_catalogs": dict(self.missing_catalogs),
            "unresolved_keys": dict(self.unresolved_keys),
            "unresolved_key_total": sum(self.unresolved_keys.values()),
            "warnings": list(self.warnings),
        }


def percent_of(points: float, max_points: float) -> float:
    """Two-decimal percentage; 0 when nothing is achievable."""
    if max_points <= 0:
        return 0.0
    return round_half_up(points / max_points * 100, 2)
