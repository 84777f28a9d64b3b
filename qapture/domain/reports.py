from __future__ import annotations

from collections.abc import Iterable, Mapping
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any

from ..infrastructure.config import ReportingConfig, get_settings
from ..infrastructure.logging import get_logger
from .aggregation import (
    ActionRatio,
    GroupStats,
    HistogramBucket,
    TrendPoint,
    action_required_ratio,
    daily_trend,
    grouped_stats,
    histogram,
    missing_catalogs,
    question_profile,
    radar_profile,
    summary,
)
from .filters import as_filter, filter_submissions
from .models import Diagnostics, SchemaIndex, Submission
from .name_mapping import CatalogNameResolver
from .schemas import SubmissionFilter

logger = get_logger(__name__)


@dataclass(slots=True)
class DashboardReport:
    """Everything the dashboard shows for one filter selection."""

    filter: SubmissionFilter
    generated_at: datetime
    count: int = 0
    avg_percent: float = 0.0
    by_team: list[GroupStats] = field(default_factory=list)
    by_evaluator: list[GroupStats] = field(default_factory=list)
    by_employee: list[GroupStats] = field(default_factory=list)
    histogram: list[HistogramBucket] = field(default_factory=list)
    radar: list[dict[str, Any]] = field(default_factory=list)
    radar_mode: str = "dimension"
    question_profile: list[dict[str, Any]] | None = None
    action_required: ActionRatio = field(default_factory=ActionRatio)
    trend: list[TrendPoint] = field(default_factory=list)
    missing_catalogs: list[tuple[str, int]] = field(default_factory=list)
    diagnostics: Diagnostics = field(default_factory=Diagnostics)

    def as_dict(self) -> dict[str, Any]:
        return {
            "filter": self.filter.model_dump(mode="json"),
            "generated_at": self.generated_at.isoformat(),
            "summary": {"count": self.count, "avg_percent": self.avg_percent},
            "by_team": [g.as_dict() for g in self.by_team],
            "by_evaluator": [g.as_dict() for g in self.by_evaluator],
            "by_employee": [g.as_dict() for g in self.by_employee],
            "histogram": [b.as_dict() for b in self.histogram],
            "radar": {"mode": self.radar_mode, "data": list(self.radar)},
            "question_profile": self.question_profile,
            "action_required": self.action_required.as_dict(),
            "trend": [p.as_dict() for p in self.trend],
            "missing_catalogs": [{"catalog": n, "count": c} for n, c in self.missing_catalogs],
            "diagnostics": self.diagnostics.as_dict(),
        }


def build_dashboard_report(
    submissions: Iterable[Submission],
    index: SchemaIndex,
    resolver: CatalogNameResolver,
    category_dimensions: Mapping[str, str] | None = None,
    spec: SubmissionFilter | Mapping[str, Any] | None = None,
    *,
    now: datetime | None = None,
    diagnostics: Diagnostics | None = None,
    config: ReportingConfig | None = None,
) -> DashboardReport:
    """
    Filter once, then run every aggregation over the same slice.

    The radar groups by category when a catalog filter is set (categories are
    only comparable inside one catalog), otherwise by dimension. Submissions
    whose catalog is unknown still count in the summary, grouped statistics,
    histogram and trend; they are only left out of the radar and question
    profiles.

    Example:
        >>> report = build_dashboard_report(rows, index, resolver, dims, {"teams": ["SDK Inbound"]})
        >>> report.count, report.radar_mode
        (42, 'dimension')
    """
    config = config or get_settings().reporting
    spec = as_filter(spec)
    now = now or datetime.now()
    diagnostics = diagnostics if diagnostics is not None else Diagnostics()

    selected = filter_submissions(submissions, spec, config.all_sentinel)
    by_category = spec.catalog is not None and spec.catalog != config.all_sentinel
    totals = summary(selected, config)

    report = DashboardReport(
        filter=spec,
        generated_at=now,
        count=totals["count"],
        avg_percent=totals["avg_percent"],
        by_team=grouped_stats(selected, "team_name", now=now, config=config),
        by_evaluator=grouped_stats(
            selected, "evaluator", exclude_anonymized=True, now=now, config=config
        ),
        by_employee=grouped_stats(
            selected, "employee", exclude_anonymized=True, now=now, config=config
        ),
        histogram=histogram(selected, config=config),
        radar=radar_profile(
            selected,
            index,
            resolver,
            category_dimensions,
            by_category=by_category,
            diagnostics=diagnostics,
            config=config,
        ),
        radar_mode="category" if by_category else "dimension",
        question_profile=question_profile(selected, index, resolver, spec, config=config),
        action_required=action_required_ratio(selected, config),
        trend=daily_trend(selected, config),
        missing_catalogs=missing_catalogs(selected, index, resolver),
        diagnostics=diagnostics,
    )
    logger.info(
        "Dashboard report built: %d submissions selected, %d catalogs missing",
        report.count,
        len(report.missing_catalogs),
    )
    return report
