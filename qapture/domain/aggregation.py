"""
Aggregations over already filtered submissions.

Every operation accepts an empty list and returns a zero-shaped result. None
of them raises for a bad submission or an unknown catalog: such rows are
skipped (and recorded in ``Diagnostics`` when one is passed) so one bad row
never aborts a report.

Averages, histogram buckets and the trend use the display percent
``min(percent, cap)``; stored percents above 100 come from catalogs that
changed after the submission was scored.
"""

from __future__ import annotations

from collections import Counter
from collections.abc import Callable, Iterable, Mapping
from dataclasses import dataclass
from datetime import date, datetime
from typing import Any

import numpy as np
import pandas as pd

from ..infrastructure.config import ReportingConfig, get_settings
from .identities import is_anonymized
from .models import (
    CategoryMapping,
    Diagnostics,
    Dimension,
    QuestionEntry,
    SchemaIndex,
    ScoringKind,
    Submission,
)
from .name_mapping import CatalogNameResolver
from .normalizer import normalize_answers
from .schemas import SubmissionFilter
from .values import is_answer_key, round_half_up, to_number

KeyFn = Callable[[Submission], str]


def _reporting(config: ReportingConfig | None) -> ReportingConfig:
    return config or get_settings().reporting


def _key_fn(key: KeyFn | str) -> KeyFn:
    if isinstance(key, str):
        attribute = key
        return lambda s: getattr(s, attribute) or ""
    return key


# ---------- Running means ----------


@dataclass(slots=True)
class RunningMean:
    """Sum/count accumulator; merging two shards gives the same result as one pass."""

    total: float = 0.0
    count: int = 0

    def add(self, value: float) -> None:
        self.total += value
        self.count += 1

    def merge(self, other: RunningMean) -> RunningMean:
        return RunningMean(self.total + other.total, self.count + other.count)

    @property
    def mean(self) -> float:
        return self.total / self.count if self.count else 0.0


ProfileAccumulator = dict[str, RunningMean]


def merge_accumulators(*parts: ProfileAccumulator) -> ProfileAccumulator:
    merged: ProfileAccumulator = {}
    for part in parts:
        for key, acc in part.items():
            merged[key] = merged[key].merge(acc) if key in merged else RunningMean(acc.total, acc.count)
    return merged


# ---------- Summary and grouped statistics ----------


@dataclass(slots=True)
class GroupStats:
    key: str
    count: int
    avg_percent: float
    oldest: datetime | None
    newest: datetime | None
    days_since_newest: int | None

    def as_dict(self) -> dict[str, Any]:
        return {
            "key": self.key,
            "count": self.count,
            "avg": self.avg_percent,
            "oldest": self.oldest,
            "newest": self.newest,
            "days_since_newest": self.days_since_newest,
        }


def summary(submissions: Iterable[Submission], config: ReportingConfig | None = None) -> dict[str, Any]:
    """Overall count and average display percent (one decimal)."""
    cap = _reporting(config).display_percent_cap
    values = [s.display_percent(cap) for s in submissions]
    if not values:
        return {"count": 0, "avg_percent": 0.0}
    return {"count": len(values), "avg_percent": round_half_up(float(np.mean(values)), 1)}


def _to_datetime(value: Any) -> datetime | None:
    if value is None or pd.isna(value):
        return None
    return pd.Timestamp(value).to_pydatetime()


def grouped_stats(
    submissions: Iterable[Submission],
    key: KeyFn | str,
    *,
    exclude_anonymized: bool = False,
    now: datetime | None = None,
    config: ReportingConfig | None = None,
) -> list[GroupStats]:
    """
    Per-group count, average, oldest/newest timestamp and days since the newest.

    ``key`` is a function or a Submission attribute name. With
    ``exclude_anonymized`` rows whose key is an anonymized identity are dropped
    before grouping. Groups are ordered newest first, ties by key; groups with
    no timestamp at all come last.

    Example:
        >>> grouped_stats(rows, "evaluator", exclude_anonymized=True)
    """
    config = _reporting(config)
    key_of = _key_fn(key)
    now = now or datetime.now()

    rows = []
    for s in submissions:
        group = key_of(s)
        if exclude_anonymized and is_anonymized(group, config.anonymized_domain):
            continue
        rows.append((group, s.display_percent(config.display_percent_cap), s.timestamp))
    if not rows:
        return []

    df = pd.DataFrame(rows, columns=["key", "percent", "timestamp"])
    df["timestamp"] = pd.to_datetime(df["timestamp"])
    agg = df.groupby("key", sort=True).agg(
        count=("percent", "size"),
        avg=("percent", "mean"),
        oldest=("timestamp", "min"),
        newest=("timestamp", "max"),
    )

    stats: list[GroupStats] = []
    for group, row in agg.iterrows():
        newest = _to_datetime(row["newest"])
        stats.append(
            GroupStats(
                key=str(group),
                count=int(row["count"]),
                avg_percent=round_half_up(float(row["avg"]), 1),
                oldest=_to_datetime(row["oldest"]),
                newest=newest,
                days_since_newest=(now - newest).days if newest is not None else None,
            )
        )

    # stable sorts: key ascending first, then newest descending with undated groups last
    stats.sort(key=lambda g: g.key)
    stats.sort(key=lambda g: g.newest or datetime.min, reverse=True)
    return stats


# ---------- Histogram ----------


@dataclass(slots=True)
class HistogramBucket:
    label: str
    lower: float
    upper: float
    count: int

    def as_dict(self) -> dict[str, Any]:
        return {"label": self.label, "lower": self.lower, "upper": self.upper, "count": self.count}


def _bound_label(value: float) -> str:
    return str(int(value)) if float(value).is_integer() else str(value)


def histogram(
    submissions: Iterable[Submission],
    bounds: Iterable[float] | None = None,
    config: ReportingConfig | None = None,
) -> list[HistogramBucket]:
    """
    Count display percents per bucket.

    Buckets are ``(previous bound, bound]`` with the first starting at 0, so a
    value equal to a bound belongs to the lower bucket. Values below 0 land in
    the first bucket and values above the last bound in the last, so every
    submission is counted exactly once.
    """
    config = _reporting(config)
    edges = np.asarray(list(bounds) if bounds is not None else config.histogram_bounds, dtype=float)
    values = np.asarray(
        [s.display_percent(config.display_percent_cap) for s in submissions], dtype=float
    )

    if values.size:
        idx = np.clip(np.searchsorted(edges, values, side="left"), 0, len(edges) - 1)
        counts = np.bincount(idx, minlength=len(edges))
    else:
        counts = np.zeros(len(edges), dtype=int)

    buckets: list[HistogramBucket] = []
    lower = 0.0
    for upper, count in zip(edges, counts):
        buckets.append(
            HistogramBucket(
                label=f"{_bound_label(lower)}-{_bound_label(float(upper))}",
                lower=lower,
                upper=float(upper),
                count=int(count),
            )
        )
        lower = float(upper)
    return buckets


# ---------- Radar and question profiles ----------


def dimension_names_by_category(
    mappings: Iterable[CategoryMapping], dimensions: Iterable[Dimension]
) -> dict[str, str]:
    """category -> dimension name, for mapped categories only."""
    names = {d.id: d.name for d in dimensions}
    return {
        m.category_name: names[m.dimension_id]
        for m in mappings
        if m.dimension_id is not None and m.dimension_id in names
    }


def answer_percent(value: Any, entry: QuestionEntry) -> float | None:
    """
    Percent of the question maximum reached by one answer, clamped to [0, 100].

    Booleans count 1/0 for boolean questions. Returns None for unscored
    questions and non-numeric answers.
    """
    if not entry.scoring_kind.is_scored or not entry.max_score:
        return None
    number = to_number(value)
    if number is None and entry.scoring_kind is ScoringKind.BOOLEAN and isinstance(value, bool):
        number = 1.0 if value else 0.0
    if number is None:
        return None
    return min(max(number / entry.max_score * 100, 0.0), 100.0)


def accumulate_profile(
    submissions: Iterable[Submission],
    index: SchemaIndex,
    resolver: CatalogNameResolver,
    group_of: Callable[[str, QuestionEntry], str],
    diagnostics: Diagnostics | None = None,
) -> ProfileAccumulator:
    """Running means of answer percents keyed by ``group_of(question_name, entry)``."""
    acc: ProfileAccumulator = {}
    for submission in submissions:
        questions = index.get(resolver.resolve(submission.catalog_name))
        if questions is None:
            if diagnostics is not None:
                diagnostics.record_missing_catalog(submission.catalog_name)
            continue
        normalized = normalize_answers(
            submission.answers, questions, submission.catalog_name, diagnostics
        )
        for question_name, value in normalized.values.items():
            entry = questions[question_name]
            percent = answer_percent(value, entry)
            if percent is None:
                continue
            acc.setdefault(group_of(question_name, entry), RunningMean()).add(percent)
    return acc


def finalize_profile(acc: ProfileAccumulator, label: str = "subject") -> list[dict[str, Any]]:
    return [
        {label: key, "value": int(round_half_up(acc[key].mean)), "count": acc[key].count}
        for key in sorted(acc)
    ]


def radar_profile(
    submissions: Iterable[Submission],
    index: SchemaIndex,
    resolver: CatalogNameResolver,
    category_dimensions: Mapping[str, str] | None = None,
    *,
    by_category: bool = False,
    diagnostics: Diagnostics | None = None,
    config: ReportingConfig | None = None,
) -> list[dict[str, Any]]:
    """
    Average answer percent per dimension, or per category when ``by_category``.

    Rating, boolean and radiogroup questions all count here, unlike the
    headline score. Unmapped categories fall into the configured "Other"
    dimension. Submissions whose catalog cannot be resolved are skipped.

    Example:
        >>> radar_profile(rows, index, resolver, {"Einstieg": "Gesprächsstruktur"})
        [{'subject': 'Gesprächsstruktur', 'value': 80, 'count': 3}]
    """
    other = _reporting(config).other_dimension_label
    mapping = category_dimensions or {}

    if by_category:
        group_of = lambda _name, entry: entry.category  # noqa: E731
    else:
        group_of = lambda _name, entry: mapping.get(entry.category, other)  # noqa: E731

    acc = accumulate_profile(submissions, index, resolver, group_of, diagnostics)
    return finalize_profile(acc)


def question_profile(
    submissions: Iterable[Submission],
    index: SchemaIndex,
    resolver: CatalogNameResolver,
    spec: SubmissionFilter,
    diagnostics: Diagnostics | None = None,
    config: ReportingConfig | None = None,
) -> list[dict[str, Any]] | None:
    """
    Average answer percent per question name.

    Only offered when ``spec`` narrows by team or catalog; returns None
    otherwise, since question names only mean something within a catalog.
    """
    if not spec.narrows_team_or_catalog(_reporting(config).all_sentinel):
        return None
    acc = accumulate_profile(
        submissions, index, resolver, lambda name, _entry: name, diagnostics
    )
    return finalize_profile(acc, label="question")


# ---------- Action required ----------


@dataclass(slots=True)
class ActionRatio:
    yes_count: int = 0
    no_count: int = 0

    @property
    def total(self) -> int:
        return self.yes_count + self.no_count

    @property
    def ratio(self) -> float:
        return self.yes_count / self.total if self.total else 0.0

    def as_dict(self) -> dict[str, Any]:
        return {"yes": self.yes_count, "no": self.no_count, "ratio": round(self.ratio, 4)}


def _is_truthy(value: Any, truthy: set[str]) -> bool:
    if isinstance(value, bool):
        return value
    if value is None:
        return False
    return str(value).strip().lower() in truthy


def _action_field(answers: Mapping[str, Any], fragments: list[str]) -> str | None:
    """Pick the "action required" answer key; comment and meta keys never qualify.

    A key that is exactly one of the fragments wins over a key that merely
    contains one, and a boolean answer wins over free text.
    """
    candidates = [
        k for k in answers if is_answer_key(k) and any(f in k.lower() for f in fragments)
    ]
    if not candidates:
        return None
    exact = set(fragments)
    candidates.sort(
        key=lambda k: (k.strip().lower() not in exact, not isinstance(answers[k], bool))
    )
    return candidates[0]


def action_required_ratio(
    submissions: Iterable[Submission], config: ReportingConfig | None = None
) -> ActionRatio:
    """
    Yes/no counts of the "action required" answer.

    The field is found by a case-insensitive fragment match on the answer
    keys, ignoring comment and meta keys. Submissions without such a field
    are not counted at all.
    """
    config = _reporting(config)
    fragments = config.action_field_fragments
    truthy = set(config.truthy_values)

    result = ActionRatio()
    for submission in submissions:
        field_key = _action_field(submission.answers, fragments)
        if field_key is None:
            continue
        if _is_truthy(submission.answers[field_key], truthy):
            result.yes_count += 1
        else:
            result.no_count += 1
    return result


# ---------- Daily trend ----------


@dataclass(slots=True)
class TrendPoint:
    day: date
    avg_percent: float
    count: int

    def as_dict(self) -> dict[str, Any]:
        return {"date": self.day.isoformat(), "avg": self.avg_percent, "count": self.count}


def daily_trend(
    submissions: Iterable[Submission], config: ReportingConfig | None = None
) -> list[TrendPoint]:
    """Average display percent per calendar day, oldest day first; undated rows are skipped."""
    cap = _reporting(config).display_percent_cap
    rows = [(s.timestamp.date(), s.display_percent(cap)) for s in submissions if s.timestamp]
    if not rows:
        return []

    df = pd.DataFrame(rows, columns=["day", "percent"])
    grouped = df.groupby("day", sort=True)["percent"].agg(["mean", "size"])
    return [
        TrendPoint(day=day, avg_percent=round_half_up(float(row["mean"]), 1), count=int(row["size"]))
        for day, row in grouped.iterrows()
    ]


# ---------- Catalog coverage ----------


def missing_catalogs(
    submissions: Iterable[Submission], index: SchemaIndex, resolver: CatalogNameResolver
) -> list[tuple[str, int]]:
    """Submission counts per stored catalog name that has no schema, most frequent first."""
    counts: Counter[str] = Counter(
        s.catalog_name for s in submissions if resolver.resolve(s.catalog_name) not in index
    )
    return sorted(counts.items(), key=lambda item: (-item[1], item[0]))
