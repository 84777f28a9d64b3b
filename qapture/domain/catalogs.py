"""
Catalog document parsing and the schema index.

Catalog documents are survey definitions authored in an external editor and
stored as JSON text, sometimes encoded twice. ``load_catalog`` is the single
place where such a document is decoded and normalised into a
``CatalogSchema``; everything downstream works on that normalised form.
"""

from __future__ import annotations

import json
from collections.abc import Iterable, Iterator
from dataclasses import replace
from typing import Any

from pydantic import ValidationError as PydanticValidationError

from ..infrastructure.config import ScoringConfig, get_settings
from ..infrastructure.exceptions import CatalogVersionError, MalformedSchemaError
from ..infrastructure.logging import get_logger
from .models import CatalogSchema, Diagnostics, Page, Question, SchemaIndex, ScoringKind
from .schemas import RawCatalogDocument, RawElement
from .values import coerce_label, to_number

logger = get_logger(__name__)

CONTAINER_TYPES = frozenset({"panel", "paneldynamic"})
CHOICE_LABEL = "Auswahl"

# A catalog can be given already parsed or as (name, raw document) from a store.
CatalogSource = CatalogSchema | tuple[str, Any]


def decode_catalog_document(document: Any, catalog_name: str | None = None) -> dict[str, Any]:
    """
    Decode a stored catalog document into a JSON object.

    Accepts a dict, JSON text, or JSON text that itself contains JSON text.

    Raises:
        MalformedSchemaError: If the document is not a JSON object
    """
    data = document
    if isinstance(data, (bytes, bytearray)):
        data = data.decode("utf-8", errors="replace")
    for _ in range(2):
        if not isinstance(data, str):
            break
        try:
            data = json.loads(data)
        except ValueError as e:
            raise MalformedSchemaError(catalog_name, f"invalid JSON ({e})") from e
    if not isinstance(data, dict):
        raise MalformedSchemaError(catalog_name, f"expected a JSON object, got {type(data).__name__}")
    return data


def _normalise_number(value: float) -> int | float:
    return int(value) if float(value).is_integer() else value


def rating_max(element: RawElement, default: int) -> int | float:
    """rateMax, else the largest numeric rateValues entry, else ``default``."""
    declared = to_number(element.rate_max)
    if declared is not None and declared > 0:
        return _normalise_number(declared)

    values: list[float] = []
    for entry in element.rate_values or []:
        raw = entry.get("value") if isinstance(entry, dict) else entry
        number = to_number(raw)
        if number is not None:
            values.append(number)
    if values and max(values) > 0:
        return _normalise_number(max(values))
    return default


def _iter_question_elements(elements: Iterable[RawElement]) -> Iterator[RawElement]:
    for element in elements:
        element_type = element.type.lower() if isinstance(element.type, str) else ""
        if element.is_container or element_type in CONTAINER_TYPES:
            yield from _iter_question_elements(element.children())
            continue
        yield element


def _build_question(element: RawElement, category: str, default_max: int) -> Question:
    kind = ScoringKind.from_element_type(element.type)
    if kind is ScoringKind.RATING:
        max_score: int | float | None = rating_max(element, default_max)
    elif kind.is_scored:
        max_score = 1
    else:
        max_score = None

    name = element.name if isinstance(element.name, str) else coerce_label(element.name)
    return Question(
        name=name,
        title=coerce_label(element.title) or name,
        category=category,
        scoring_kind=kind,
        max_score=max_score,
        element_type=element.type if isinstance(element.type, str) else "",
        visible=element.visible is not False,
        declared_rate_max=element.rate_max,
        choice_count=len(element.choices) if element.choices is not None else None,
    )


def load_catalog(
    document: Any,
    name: str | None = None,
    *,
    version: int = 1,
    root_id: int | None = None,
    is_active: bool = True,
    catalog_id: int | None = None,
    teams: Iterable[str] | None = None,
    scoring: ScoringConfig | None = None,
) -> CatalogSchema:
    """
    Parse one catalog document into a normalised CatalogSchema.

    Pages become categories (page name, else page title, else the configured
    "Other" label). Nested panels are flattened into their page. Elements
    without a name are ignored; for duplicate names the first one wins.

    Raises:
        MalformedSchemaError: If the document cannot be decoded or has no usable shape

    Example:
        >>> schema = load_catalog('{"pages": [{"name": "Einstieg", "elements": '
        ...                       '[{"type": "rating", "name": "Begruessung", "rateMax": 5}]}]}',
        ...                       name="Bewertung Inbound")
        >>> schema.question_index()["Begruessung"].max_score
        5
    """
    scoring = scoring or get_settings().scoring
    data = decode_catalog_document(document, name)

    try:
        raw = RawCatalogDocument.model_validate(data)
    except PydanticValidationError as e:
        raise MalformedSchemaError(name, f"unexpected structure ({e.error_count()} errors)") from e

    catalog_name = name or coerce_label(raw.title)
    if not catalog_name:
        raise MalformedSchemaError(name, "catalog has no name")

    seen: set[str] = set()
    pages: list[Page] = []
    for raw_page in raw.pages:
        category = (
            coerce_label(raw_page.name)
            or coerce_label(raw_page.title)
            or scoring.other_category_label
        )
        page = Page(name=category)
        for element in _iter_question_elements(raw_page.elements):
            if element.name is None or element.name == "":
                continue
            question = _build_question(element, category, scoring.default_rating_max)
            if question.name in seen:
                logger.debug(
                    "Duplicate question '%s' in catalog '%s' ignored", question.name, catalog_name
                )
                continue
            seen.add(question.name)
            page.questions.append(question)
        pages.append(page)

    return CatalogSchema(
        name=catalog_name,
        pages=pages,
        version=version,
        root_id=root_id,
        is_active=is_active,
        id=catalog_id,
        teams=list(teams or []),
    )


def prefers_catalog(candidate: CatalogSchema, current: CatalogSchema) -> bool:
    """Whether ``candidate`` should replace ``current`` for the same catalog name."""
    if candidate.is_active != current.is_active:
        return candidate.is_active
    return candidate.version > current.version


def collect_catalogs(
    sources: Iterable[CatalogSource],
    diagnostics: Diagnostics | None = None,
    scoring: ScoringConfig | None = None,
) -> list[CatalogSchema]:
    """Parse every source; malformed documents are skipped and recorded, never raised."""
    diagnostics = diagnostics if diagnostics is not None else Diagnostics()
    catalogs: list[CatalogSchema] = []
    for source in sources:
        if isinstance(source, CatalogSchema):
            catalogs.append(source)
            continue
        name, document = source
        try:
            catalogs.append(load_catalog(document, name, scoring=scoring))
        except MalformedSchemaError as e:
            logger.warning("Skipping malformed catalog '%s': %s", name, e.reason)
            diagnostics.record_malformed(str(name), e.reason)
    return catalogs


def build_schema_index(
    sources: Iterable[CatalogSource],
    diagnostics: Diagnostics | None = None,
    scoring: ScoringConfig | None = None,
) -> SchemaIndex:
    """
    Build ``catalogName -> questionName -> QuestionEntry`` over many catalogs.

    A catalog that fails to parse contributes nothing; the rest of the index is
    still built. When several versions share a name, the active one wins, then
    the highest version.

    Example:
        >>> index = build_schema_index([("Bewertung Inbound", doc_json), ("Kaputt", "{oops")])
        >>> sorted(index)
        ['Bewertung Inbound']
    """
    chosen: dict[str, CatalogSchema] = {}
    for catalog in collect_catalogs(sources, diagnostics, scoring):
        current = chosen.get(catalog.name)
        if current is None or prefers_catalog(catalog, current):
            chosen[catalog.name] = catalog

    index: SchemaIndex = {name: catalog.question_index() for name, catalog in chosen.items()}
    logger.debug("Built schema index for %d catalogs", len(index))
    return index


def _format_max_score(question: Question) -> str | int | float:
    if question.declared_rate_max is not None:
        declared = question.declared_rate_max
        number = to_number(declared)
        return _normalise_number(number) if number is not None else coerce_label(declared)
    if question.choice_count is not None:
        return f"{question.choice_count} ({CHOICE_LABEL})"
    return "-"


def criteria_inventory(
    catalogs: Iterable[CatalogSchema], team: str | None = None
) -> list[dict[str, Any]]:
    """
    One row per question across catalogs, optionally limited to catalogs of one team.

    ``max_score`` is the declared rateMax, ``"<n> (Auswahl)"`` for choice
    questions, otherwise ``"-"``.
    """
    rows: list[dict[str, Any]] = []
    for catalog in catalogs:
        if team and team not in catalog.teams:
            continue
        for question in catalog.questions():
            rows.append(
                {
                    "catalog": catalog.name,
                    "teams": list(catalog.teams),
                    "category": question.category,
                    "question": question.name,
                    "title": question.title,
                    "type": question.element_type,
                    "max_score": _format_max_score(question),
                }
            )
    return rows


def list_categories(
    catalogs: Iterable[CatalogSchema], summary_page_names: Iterable[str] | None = None
) -> list[str]:
    """Sorted unique category labels across catalogs, summary pages excluded."""
    if summary_page_names is None:
        summary_page_names = get_settings().scoring.summary_page_names
    excluded = set(summary_page_names)
    return sorted(
        {page.name for catalog in catalogs for page in catalog.pages if page.name not in excluded}
    )


def new_catalog_version(catalog: CatalogSchema) -> tuple[CatalogSchema, CatalogSchema]:
    """
    Archive ``catalog`` and clone it as the next version of its lineage.

    Returns ``(archived, successor)``. The successor keeps the lineage root and
    the team assignments and is the only active one of the two.

    Raises:
        CatalogVersionError: If the catalog was never stored (no id, no lineage)
    """
    root_id = catalog.root_id if catalog.root_id is not None else catalog.id
    if root_id is None:
        raise CatalogVersionError(
            "Cannot version a catalog that has not been stored", catalog_name=catalog.name
        )

    archived = replace(catalog, is_active=False, root_id=root_id)
    successor = replace(
        catalog,
        id=None,
        version=catalog.version + 1,
        root_id=root_id,
        is_active=True,
        teams=list(catalog.teams),
        pages=[Page(name=p.name, questions=list(p.questions)) for p in catalog.pages],
    )
    return archived, successor
