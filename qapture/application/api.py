"""
High-level operations for scoring, recording and reporting evaluations.

Every function here validates its input, wires repositories and domain
services together and translates unexpected failures into ``QaptureError``
with structured log details. Application errors raised further down pass
through unchanged.
"""

from __future__ import annotations

from collections.abc import Iterable, Mapping
from datetime import datetime
from typing import Any, NoReturn

import pandas as pd
from pydantic import ValidationError as PydanticValidationError
from sqlalchemy.orm import Session

from ..domain.aggregation import dimension_names_by_category
from ..domain.catalogs import criteria_inventory, list_categories, load_catalog
from ..domain.models import CatalogSchema, Diagnostics, ScoreResult
from ..domain.name_mapping import CatalogNameResolver
from ..domain.reports import DashboardReport, build_dashboard_report
from ..domain.schemas import (
    CategoryMappingInput,
    DimensionInput,
    SubmissionFilter,
    validate_input,
)
from ..domain.services import ScoringService, VisibilityPredicate, calculate_score
from ..infrastructure.config import get_settings
from ..infrastructure.exceptions import (
    MultipleValidationError,
    QaptureError,
    RecordNotFoundError,
    SchemaNotFoundError,
    ValidationError,
    create_user_friendly_error_message,
    log_error_details,
)
from ..infrastructure.logging import get_logger, log_operation, set_context
from ..infrastructure.models import CatalogORM, CategoryMappingORM, DimensionORM, SubmissionORM
from ..infrastructure.repositories import (
    CatalogRepo,
    CategoryMappingRepo,
    DimensionRepo,
    SubmissionRepo,
)
from .catalog_index import CatalogIndexProvider, CatalogSnapshot, get_catalog_index_provider

logger = get_logger(__name__)


def _validation_failure(field: str, error: PydanticValidationError) -> QaptureError:
    errors = [
        ValidationError(".".join(str(p) for p in e["loc"]) or field, e["msg"], e.get("input"))
        for e in error.errors()
    ]
    if len(errors) == 1:
        return errors[0]
    return MultipleValidationError(errors)


def _reraise(
    error: Exception, message: str, context: dict[str, Any], user_message: str | None = None
) -> NoReturn:
    """Log ``error`` and raise it, wrapped unless it is already an application error."""
    error_details = log_error_details(error, context)
    logger.error(message, extra=error_details)

    if isinstance(error, QaptureError):
        raise error
    if isinstance(error, PydanticValidationError):
        raise _validation_failure("input", error) from error

    raise QaptureError(
        f"{message}: {error}",
        details=error_details,
        user_message=user_message or create_user_friendly_error_message(error),
    ) from error


def _provider(provider: CatalogIndexProvider | None) -> CatalogIndexProvider:
    return provider if provider is not None else get_catalog_index_provider()


def _resolver() -> CatalogNameResolver:
    return CatalogNameResolver.from_settings(get_settings().scoring)


def _scoring_service(snapshot: CatalogSnapshot) -> ScoringService:
    return ScoringService(snapshot.schemas, _resolver(), logger=logger)


# ---------- Scoring ----------


@log_operation("score_submission")
def score_submission(
    catalog_doc: CatalogSchema | Mapping[str, Any] | str,
    answers: Mapping[str, Any],
    visibility: VisibilityPredicate | None = None,
    catalog_name: str | None = None,
) -> ScoreResult:
    """
    Score one answer set against one catalog document.

    Args:
        catalog_doc: Parsed schema, catalog JSON object or JSON text
        answers: Raw answers keyed by question name (sanitized keys accepted)
        visibility: Optional predicate deciding which questions were shown
        catalog_name: Name used for the document when it carries no title

    Returns:
        ScoreResult with points, max_points and percent

    Raises:
        MalformedSchemaError: If the document cannot be parsed

    Example:
        >>> result = score_submission(catalog_json, {"Begruessung": 4}, catalog_name="Bewertung Inbound")
        >>> result.percent
        80.0
    """
    try:
        schema = (
            catalog_doc
            if isinstance(catalog_doc, CatalogSchema)
            else load_catalog(catalog_doc, catalog_name)
        )
        set_context(operation="score_submission", catalog=schema.name)
        result = calculate_score(schema, answers, visibility)
        logger.debug(
            "Scored submission for '%s': %s/%s", schema.name, result.points, result.max_points
        )
        return result
    except Exception as e:
        _reraise(e, "Failed to score submission", {"catalog_name": catalog_name})


@log_operation("record_submission")
def record_submission(
    session: Session,
    catalog_name: str,
    answers: Mapping[str, Any],
    *,
    team_name: str = "",
    evaluator: str = "",
    employee: str = "",
    timestamp: datetime | None = None,
    visibility: VisibilityPredicate | None = None,
    provider: CatalogIndexProvider | None = None,
) -> SubmissionORM:
    """
    Score and store a new evaluation.

    Raises:
        ValidationError: If the catalog name is empty
        SchemaNotFoundError: If the catalog cannot be resolved; nothing is stored

    Example:
        >>> row = record_submission(session, "Bewertung Inbound", answers, team_name="SDK Inbound")
        >>> row.percent
        80.0
    """
    if not catalog_name or not catalog_name.strip():
        raise ValidationError("catalog_name", "Catalog name cannot be empty")

    try:
        set_context(operation="record_submission", catalog=catalog_name)
        snapshot = _provider(provider).get(session)
        service = _scoring_service(snapshot)

        result = service.score(catalog_name, answers, visibility)
        if not result.is_scored:
            raise SchemaNotFoundError(catalog_name, service.resolver.resolve(catalog_name))

        row = SubmissionRepo(session).create_scored(
            catalog_name=catalog_name,
            answers=answers,
            score=result,
            team_name=team_name.strip(),
            evaluator=evaluator.strip(),
            employee=employee.strip(),
            timestamp=timestamp or datetime.now(),
        )
        logger.info(
            "Recorded submission %s for catalog '%s' (%.2f%%)", row.id, catalog_name, result.percent
        )
        return row
    except Exception as e:
        _reraise(
            e,
            f"Failed to record submission for catalog '{catalog_name}'",
            {"catalog_name": catalog_name, "team_name": team_name},
        )


@log_operation("update_submission")
def update_submission(
    session: Session,
    submission_id: int,
    answers: Mapping[str, Any],
    *,
    visibility: VisibilityPredicate | None = None,
    provider: CatalogIndexProvider | None = None,
    **fields: Any,
) -> SubmissionORM:
    """
    Replace the answers of a stored evaluation and recompute its score from scratch.

    ``fields`` may change ``catalog_name``, ``team_name``, ``evaluator``,
    ``employee`` or ``timestamp`` at the same time.

    Raises:
        RecordNotFoundError: If the submission does not exist
        SchemaNotFoundError: If its catalog cannot be resolved; the row is left unchanged
    """
    allowed = {"catalog_name", "team_name", "evaluator", "employee", "timestamp"}
    unknown = sorted(set(fields) - allowed)
    if unknown:
        raise ValidationError("fields", f"Unknown submission fields: {', '.join(unknown)}")

    try:
        set_context(operation="update_submission", submission_id=submission_id)
        repo = SubmissionRepo(session)
        row = repo.get_by_id_required(submission_id)
        catalog_name = fields.get("catalog_name") or row.catalog_name

        service = _scoring_service(_provider(provider).get(session))
        result = service.score(catalog_name, answers, visibility)
        if not result.is_scored:
            raise SchemaNotFoundError(catalog_name, service.resolver.resolve(catalog_name))

        updated = repo.update_scored(submission_id, answers, result, **fields)
        logger.info("Rescored submission %s: %.2f%%", submission_id, result.percent)
        return updated
    except Exception as e:
        _reraise(e, f"Failed to update submission {submission_id}", {"submission_id": submission_id})


@log_operation("import_legacy_records")
def import_legacy_records(session: Session, records: Iterable[Mapping[str, Any]]) -> int:
    """Store exported evaluation records, keeping the scores they were saved with."""
    try:
        count = SubmissionRepo(session).import_records(records)
        logger.info("Imported %d legacy evaluation records", count)
        return count
    except Exception as e:
        _reraise(e, "Failed to import evaluation records", {})


# ---------- Reporting ----------


@log_operation("build_dashboard")
def build_dashboard(
    session: Session,
    filter_spec: SubmissionFilter | Mapping[str, Any] | None = None,
    now: datetime | None = None,
    provider: CatalogIndexProvider | None = None,
) -> DashboardReport:
    """
    Build the full dashboard report for one filter selection.

    Malformed catalogs and submissions of unknown catalogs do not fail the
    report; they are listed in ``report.diagnostics``.

    Example:
        >>> report = build_dashboard(session, {"catalog": "Bewertung Inbound"})
        >>> report.radar_mode
        'category'
    """
    try:
        spec = (
            filter_spec
            if isinstance(filter_spec, SubmissionFilter)
            else SubmissionFilter(**dict(filter_spec or {}))
        )
    except PydanticValidationError as e:
        raise _validation_failure("filter", e) from e

    try:
        set_context(operation="build_dashboard")
        snapshot = _provider(provider).get(session)
        category_dimensions = dimension_names_by_category(
            CategoryMappingRepo(session).list_domain(), DimensionRepo(session).list_domain()
        )
        submissions = SubmissionRepo(session).list_domain()

        diagnostics = Diagnostics().merge(snapshot.diagnostics)
        return build_dashboard_report(
            submissions,
            snapshot.index,
            _resolver(),
            category_dimensions,
            spec,
            now=now,
            diagnostics=diagnostics,
            config=get_settings().reporting,
        )
    except Exception as e:
        _reraise(
            e,
            "Failed to build dashboard report",
            {"filter": spec.model_dump(mode="json")},
            user_message="Unable to build the dashboard. Please try again.",
        )


@log_operation("list_criteria")
def list_criteria(
    session: Session, team: str | None = None, provider: CatalogIndexProvider | None = None
) -> pd.DataFrame:
    """Criteria inventory of the active catalogs as a DataFrame, one row per question."""
    columns = ["catalog", "teams", "category", "question", "title", "type", "max_score"]
    try:
        snapshot = _provider(provider).get(session)
        rows = criteria_inventory(snapshot.schemas, team)
        return pd.DataFrame(rows, columns=columns)
    except Exception as e:
        _reraise(e, "Failed to list catalog criteria", {"team": team})


@log_operation("list_unmapped_categories")
def list_unmapped_categories(
    session: Session, provider: CatalogIndexProvider | None = None
) -> list[str]:
    """Categories of the active catalogs that are not assigned to a dimension yet."""
    try:
        snapshot = _provider(provider).get(session)
        mapped = {
            m.category_name
            for m in CategoryMappingRepo(session).list_domain()
            if m.dimension_id is not None
        }
        return [c for c in list_categories(snapshot.schemas) if c not in mapped]
    except Exception as e:
        _reraise(e, "Failed to list unmapped categories", {})


# ---------- Catalogs, dimensions and mappings ----------


@log_operation("create_catalog")
def create_catalog(
    session: Session,
    name: str,
    json_data: str | Mapping[str, Any],
    teams: list[str] | None = None,
    provider: CatalogIndexProvider | None = None,
) -> CatalogORM:
    """
    Store a new catalog as version 1 of its own lineage.

    Raises:
        ValidationError: If the name or definition is invalid
    """
    try:
        set_context(operation="create_catalog", catalog=name)
        if isinstance(json_data, Mapping):
            json_data = dict(json_data)
        catalog = CatalogRepo(session).create_catalog(name, json_data, teams)
        _provider(provider).invalidate()
        logger.info("Created catalog '%s' with ID %s", catalog.name, catalog.id)
        return catalog
    except Exception as e:
        _reraise(e, f"Failed to create catalog '{name}'", {"catalog_name": name})


@log_operation("create_catalog_version")
def create_catalog_version(
    session: Session, catalog_id: int, provider: CatalogIndexProvider | None = None
) -> CatalogORM:
    """
    Archive the lineage of ``catalog_id`` and activate a clone as its next version.

    Raises:
        RecordNotFoundError: If the catalog does not exist
        CatalogVersionError: If the catalog has no lineage

    Example:
        >>> successor = create_catalog_version(session, catalog_id=3)
        >>> successor.version, successor.is_active
        (2, True)
    """
    try:
        set_context(operation="create_catalog_version", catalog_id=catalog_id)
        successor = CatalogRepo(session).create_version(catalog_id)
        _provider(provider).invalidate()
        logger.info(
            "Catalog '%s' now at version %d (ID %s)", successor.name, successor.version, successor.id
        )
        return successor
    except Exception as e:
        _reraise(e, f"Failed to version catalog {catalog_id}", {"catalog_id": catalog_id})


@log_operation("save_dimension")
def save_dimension(session: Session, name: str, color: str | None = None) -> DimensionORM:
    """
    Create a dimension or change the colour of an existing one.

    Raises:
        ValidationError: If the name is empty or the colour is not ``#RRGGBB``
    """
    fields = {"name": name} if color is None else {"name": name, "color": color}
    validation_result = validate_input(DimensionInput, fields)
    if not validation_result.success:
        error_msg = "; ".join([f"{e.field}: {e.message}" for e in validation_result.errors])
        logger.warning(f"Dimension validation failed: {error_msg}")
        raise ValidationError("dimension", error_msg)

    try:
        dimension = DimensionRepo(session).upsert(name, color)
        logger.info("Saved dimension '%s' (%s)", dimension.name, dimension.color)
        return dimension
    except Exception as e:
        _reraise(e, f"Failed to save dimension '{name}'", {"dimension": name})


@log_operation("map_category")
def map_category(
    session: Session, category_name: str, dimension: int | str | None
) -> CategoryMappingORM:
    """
    Assign a category to a dimension, given by ID or by name; None unassigns it.

    Mapping a category again replaces the previous assignment.

    Raises:
        RecordNotFoundError: If the dimension does not exist

    Example:
        >>> map_category(session, "Einstieg", "Gesprächsstruktur").category_name
        'Einstieg'
    """
    validation_result = validate_input(
        CategoryMappingInput, {"category_name": category_name, "dimension_id": None}
    )
    if not validation_result.success:
        error_msg = "; ".join([f"{e.field}: {e.message}" for e in validation_result.errors])
        raise ValidationError("category_name", error_msg)

    try:
        set_context(operation="map_category", category=category_name)
        dimension_id: int | None
        if isinstance(dimension, str):
            found = DimensionRepo(session).get_by_name(dimension)
            if found is None:
                raise RecordNotFoundError("Dimension", dimension)
            dimension_id = found.id
        else:
            dimension_id = dimension

        mapping = CategoryMappingRepo(session).upsert(category_name, dimension_id)
        logger.info("Mapped category '%s' to dimension %s", category_name, dimension_id)
        return mapping
    except Exception as e:
        _reraise(
            e,
            f"Failed to map category '{category_name}'",
            {"category_name": category_name, "dimension": dimension},
        )
