import json

import pytest

from qapture.domain.catalogs import (
    build_schema_index,
    criteria_inventory,
    list_categories,
    load_catalog,
    new_catalog_version,
    prefers_catalog,
)
from qapture.domain.models import Diagnostics, ScoringKind
from qapture.infrastructure.exceptions import CatalogVersionError, MalformedSchemaError


def test_load_catalog_builds_question_index(inbound_doc):
    schema = load_catalog(inbound_doc)
    index = schema.question_index()

    assert schema.name == "Bewertung Inbound"
    assert index["Begruessung"].category == "Einstieg"
    assert index["Begruessung"].max_score == 5
    assert index["Begruessung"].scoring_kind is ScoringKind.RATING
    assert index["Name genannt"].max_score == 1
    assert index["Empathie"].scoring_kind is ScoringKind.RADIOGROUP
    assert index["Notiz"].max_score is None
    assert index["Notiz"].scoring_kind is ScoringKind.OTHER


def test_panels_are_flattened_into_their_page(inbound_doc):
    index = load_catalog(inbound_doc).question_index()
    assert "Gespraech" not in index
    assert index["Tonfall"].category == "Kommunikation"


def test_rating_max_falls_back_to_rate_values_then_default(inbound_doc):
    index = load_catalog(inbound_doc).question_index()
    assert index["Tonfall"].max_score == 4
    assert index["Verabschiedung"].max_score == 5


def test_locale_page_title_is_coerced(inbound_doc):
    index = load_catalog(inbound_doc).question_index()
    assert index["Verabschiedung"].category == "Abschluss"


def test_page_without_name_or_title_is_other():
    doc = {"pages": [{"elements": [{"type": "boolean", "name": "Frage"}]}]}
    schema = load_catalog(doc, "Ohne Seitennamen")
    assert schema.question_index()["Frage"].category == "Other"


def test_double_encoded_document_is_accepted(inbound_doc):
    once = json.dumps(inbound_doc)
    twice = json.dumps(once)
    assert load_catalog(twice).question_index() == load_catalog(once).question_index()


def test_duplicate_question_names_keep_first():
    doc = {
        "pages": [
            {"name": "A", "elements": [{"type": "rating", "name": "Q", "rateMax": 3}]},
            {"name": "B", "elements": [{"type": "rating", "name": "Q", "rateMax": 10}]},
        ]
    }
    entry = load_catalog(doc, "Doppelt").question_index()["Q"]
    assert (entry.category, entry.max_score) == ("A", 3)


@pytest.mark.parametrize("document", ["{oops", "[1, 2]", '"nur text"'])
def test_malformed_documents_raise(document):
    with pytest.raises(MalformedSchemaError) as exc_info:
        load_catalog(document, "Kaputt")
    assert exc_info.value.catalog_name == "Kaputt"


def test_catalog_without_any_name_is_malformed(outbound_doc):
    with pytest.raises(MalformedSchemaError):
        load_catalog(outbound_doc)


def test_schema_index_skips_malformed_catalog(inbound_doc):
    diagnostics = Diagnostics()
    index = build_schema_index(
        [("Bewertung Inbound", json.dumps(inbound_doc)), ("Kaputt", "{oops")], diagnostics
    )
    assert sorted(index) == ["Bewertung Inbound"]
    assert diagnostics.malformed_catalogs == ["Kaputt"]


def test_schema_index_prefers_active_version(inbound_schema):
    archived, successor = new_catalog_version(inbound_schema)
    newer_but_inactive = load_catalog(
        {"pages": [{"name": "X", "elements": [{"type": "boolean", "name": "Nur neu"}]}]},
        "Bewertung Inbound",
        version=3,
        is_active=False,
    )
    assert prefers_catalog(successor, newer_but_inactive)

    index = build_schema_index([newer_but_inactive, successor, archived])
    assert "Nur neu" not in index["Bewertung Inbound"]
    assert "Begruessung" in index["Bewertung Inbound"]


def test_criteria_inventory_rows(inbound_schema):
    inbound_schema.teams = ["SDK Inbound"]
    rows = {r["question"]: r for r in criteria_inventory([inbound_schema])}

    assert rows["Begruessung"]["max_score"] == 5
    assert rows["Begruessung"]["title"] == "Begrüßung"
    assert rows["Empathie"]["max_score"] == "2 (Auswahl)"
    assert rows["Notiz"]["max_score"] == "-"
    assert rows["Tonfall"]["teams"] == ["SDK Inbound"]

    assert criteria_inventory([inbound_schema], team="SDK Outbound") == []
    assert len(criteria_inventory([inbound_schema], team="SDK Inbound")) == len(rows)


def test_list_categories_excludes_summary_pages(inbound_schema, outbound_doc):
    outbound = load_catalog(outbound_doc, "Bewertung Outbound")
    assert list_categories([inbound_schema, outbound]) == [
        "Abschluss",
        "Einstieg",
        "Gesprächsführung",
        "Kommunikation",
    ]


def test_new_catalog_version_clones_lineage(inbound_schema):
    inbound_schema.teams = ["SDK Inbound"]
    archived, successor = new_catalog_version(inbound_schema)

    assert archived.is_active is False
    assert successor.is_active is True
    assert successor.version == inbound_schema.version + 1
    assert successor.root_id == archived.root_id == 1
    assert successor.id is None
    assert successor.teams == ["SDK Inbound"]
    assert successor.teams is not inbound_schema.teams
    assert successor.question_index() == inbound_schema.question_index()


def test_new_catalog_version_requires_stored_catalog(inbound_doc):
    with pytest.raises(CatalogVersionError):
        new_catalog_version(load_catalog(inbound_doc))
