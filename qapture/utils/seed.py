from __future__ import annotations

from dataclasses import dataclass

from sqlalchemy import inspect
from sqlalchemy.engine import Engine
from sqlalchemy.orm import Session

from ..infrastructure.logging import get_logger
from ..infrastructure.models import Base
from ..infrastructure.repositories import CategoryMappingRepo, DimensionRepo

logger = get_logger(__name__)


# Default reporting dimensions with their chart colours and the catalog
# categories (page names) that belong to each of them.
DEFAULT_DIMENSIONS: dict[str, tuple[str, list[str]]] = {
    "Fachliches & Prozesse": (
        "#2196f3",
        [
            "Fachlichkeit und System",
            "Fachlichkeit/ Prozesse",
            "Beratungs- und Systemprozesse",
            "Prozessumsetzung",
            "Lösungsfindung- und beschreibung",
            "Prüfschritte",
            "Recht auf Auskunft",
            "OSC",
            "Folgeprozess Ersatzteilbestellung",
            "Folgeprozess Serviceinsatz",
            "Folgeprozesse Auswahl",
        ],
    ),
    "System & Datenpflege": ("#4caf50", ["Dateneingabe", "Dateneingaben", "Aktion"]),
    "Kommunikation": (
        "#ff9800",
        ["Kommunikation", "Gesprächsführung", "Kundenkorrepondenz", "Antwort", "Herausforderungen"],
    ),
    "Gesprächsstruktur": ("#9c27b0", ["Einstieg", "Ausstieg", "Abschluss"]),
    "Dokumentation & Aktivitäten": (
        "#f44336",
        [
            "Aktivität E-Mail Bearbeitung",
            "Aktivität Kundenantwort",
            "Aktivität SMS",
            "Aktivität Weiterleitung",
            "Analyse",
            "Coach-the-Coach",
            "Kategorien",
            "Kriterien",
            "Weiteren Aktivitäten",
        ],
    ),
}


@dataclass(slots=True)
class SeedSummary:
    dimensions: int = 0
    mappings: int = 0


def initialise_database(engine: Engine) -> bool:
    """
    Ensure all ORM tables exist.

    Returns:
        True if every table already existed before this call, False if at least one table
        needed to be created.
    """

    inspector = inspect(engine)
    existing_tables = set(inspector.get_table_names())
    expected_tables = [table.name for table in Base.metadata.sorted_tables]
    already_exists = all(table in existing_tables for table in expected_tables)
    Base.metadata.create_all(engine)
    return already_exists


def seed_default_mappings(
    session: Session, table: dict[str, tuple[str, list[str]]] | None = None
) -> SeedSummary:
    """
    Create the default dimensions and map their categories.

    Existing dimensions keep their row and get the default colour; existing
    category mappings are overwritten. Running it twice changes nothing.
    """
    table = table if table is not None else DEFAULT_DIMENSIONS
    dimensions = DimensionRepo(session)
    mappings = CategoryMappingRepo(session)

    summary = SeedSummary()
    for name, (color, categories) in table.items():
        dimension = dimensions.upsert(name, color)
        summary.dimensions += 1
        for category in categories:
            mappings.upsert(category, dimension.id)
            summary.mappings += 1
        logger.info("Seeded dimension '%s' with %d categories", name, len(categories))
    return summary
