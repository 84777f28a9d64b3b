import json
from datetime import datetime

import pytest

from qapture.application.api import (
    build_dashboard,
    create_catalog,
    create_catalog_version,
    import_legacy_records,
    list_criteria,
    list_unmapped_categories,
    map_category,
    record_submission,
    save_dimension,
    score_submission,
    update_submission,
)
from qapture.domain.models import ScoreStatus
from qapture.infrastructure.exceptions import (
    MalformedSchemaError,
    QaptureError,
    RecordNotFoundError,
    SchemaNotFoundError,
    ValidationError,
)
from qapture.infrastructure.models import CatalogORM, SubmissionORM
from qapture.infrastructure.repositories import SubmissionRepo

ANSWERS = {"Begruessung": 4, "Name genannt": True, "Tonfall": "3", "Verabschiedung": 5}


@pytest.fixture
def stored_catalog(session, inbound_doc, provider):
    return create_catalog(session, "Bewertung Inbound", inbound_doc, teams=["SDK Inbound"], provider=provider)


def test_score_submission_from_json_text(inbound_doc):
    result = score_submission(json.dumps(inbound_doc), ANSWERS)
    assert (result.points, result.max_points, result.percent) == (12.0, 14.0, 85.71)
    assert result.status is ScoreStatus.OK


def test_score_submission_malformed_catalog():
    with pytest.raises(MalformedSchemaError):
        score_submission("{oops", ANSWERS, catalog_name="Kaputt")


def test_record_submission_scores_and_stores(session, stored_catalog, provider):
    row = record_submission(
        session,
        "Bewertung Inbound",
        ANSWERS,
        team_name=" SDK Inbound ",
        evaluator="eva.luator@verbaneum.de",
        timestamp=datetime(2025, 3, 1, 9, 0),
        provider=provider,
    )

    assert row.id is not None
    assert (row.points, row.max_points, row.percent) == (12.0, 14.0, 85.71)
    assert row.team_name == "SDK Inbound"
    assert "Name_genannt" in row.answers


def test_record_submission_resolves_historical_name(session, stored_catalog, provider):
    row = record_submission(session, "Telefonie - Inbound", {"Begruessung": 5}, provider=provider)
    assert row.catalog_name == "Telefonie - Inbound"
    assert row.points == 5.0


def test_record_submission_unknown_catalog_stores_nothing(session, stored_catalog, provider):
    with pytest.raises(SchemaNotFoundError) as exc_info:
        record_submission(session, "Bewertung Backoffice", ANSWERS, provider=provider)
    assert exc_info.value.catalog_name == "Bewertung Backoffice"
    assert session.query(SubmissionORM).count() == 0


def test_record_submission_requires_catalog_name(session, provider):
    with pytest.raises(ValidationError):
        record_submission(session, "  ", ANSWERS, provider=provider)


def test_update_submission_recomputes_everything(session, stored_catalog, provider):
    row = record_submission(session, "Bewertung Inbound", ANSWERS, provider=provider)
    updated = update_submission(
        session, row.id, {"Begruessung": 1}, team_name="SDK Outbound", provider=provider
    )

    assert updated.id == row.id
    assert (updated.points, updated.max_points, updated.percent) == (1.0, 14.0, 7.14)
    assert updated.team_name == "SDK Outbound"
    assert updated.answers == {"Begruessung": 1}


def test_update_submission_errors(session, stored_catalog, provider):
    row = record_submission(session, "Bewertung Inbound", ANSWERS, provider=provider)

    with pytest.raises(RecordNotFoundError):
        update_submission(session, 999, ANSWERS, provider=provider)
    with pytest.raises(SchemaNotFoundError):
        update_submission(session, row.id, ANSWERS, catalog_name="Gelöscht", provider=provider)
    with pytest.raises(ValidationError):
        update_submission(session, row.id, ANSWERS, percent=100, provider=provider)

    assert session.get(SubmissionORM, row.id).percent == 85.71


def test_create_catalog_version_invalidates_index(session, stored_catalog, provider):
    before = provider.get(session)
    successor = create_catalog_version(session, stored_catalog.id, provider=provider)

    assert (successor.version, successor.is_active) == (2, True)
    assert session.get(CatalogORM, stored_catalog.id).is_active is False
    assert provider.get(session) is not before


def test_create_catalog_rejects_invalid_definition(session, provider):
    with pytest.raises(ValidationError):
        create_catalog(session, "Kaputt", "{oops", provider=provider)


def test_dimensions_and_mappings(session):
    dimension = save_dimension(session, "Gesprächsstruktur", "#9c27b0")
    assert dimension.color == "#9c27b0"

    by_name = map_category(session, "Einstieg", "Gesprächsstruktur")
    by_id = map_category(session, "Abschluss", dimension.id)
    assert by_name.dimension_id == by_id.dimension_id == dimension.id

    unmapped = map_category(session, "Abschluss", None)
    assert unmapped.dimension_id is None

    with pytest.raises(ValidationError):
        save_dimension(session, "Kommunikation", "orange")
    with pytest.raises(RecordNotFoundError):
        map_category(session, "Einstieg", "Gibt es nicht")


def test_list_criteria_and_unmapped_categories(session, stored_catalog, provider):
    criteria = list_criteria(session, team="SDK Inbound", provider=provider)
    assert list(criteria.columns) == ["catalog", "teams", "category", "question", "title", "type", "max_score"]
    assert set(criteria["question"]) >= {"Begruessung", "Tonfall", "Empathie"}
    assert list_criteria(session, team="SDK Outbound", provider=provider).empty

    save_dimension(session, "Gesprächsstruktur")
    map_category(session, "Einstieg", "Gesprächsstruktur")
    assert list_unmapped_categories(session, provider=provider) == ["Abschluss", "Kommunikation"]


def test_build_dashboard_end_to_end(session, stored_catalog, provider):
    save_dimension(session, "Gesprächsstruktur")
    map_category(session, "Einstieg", "Gesprächsstruktur")
    record_submission(
        session, "Bewertung Inbound", ANSWERS, team_name="SDK Inbound",
        evaluator="eva.luator@verbaneum.de", timestamp=datetime(2025, 3, 1, 9, 0), provider=provider,
    )
    import_legacy_records(
        session,
        [{"Kriterienkatalog": "Alter Katalog", "Projekt": "SDK Inbound", "Datum": "02.03.2025, 10:00:00",
          "Prozent": "50", "Bewertername": "123456@verbaneum.de"}],
    )

    report = build_dashboard(session, {"teams": ["SDK Inbound"]}, now=datetime(2025, 3, 5), provider=provider)

    assert report.count == 2
    assert report.radar_mode == "dimension"
    assert {r["subject"] for r in report.radar} == {"Gesprächsstruktur", "Other"}
    assert report.missing_catalogs == [("Alter Katalog", 1)]
    assert [g.key for g in report.by_evaluator] == ["eva.luator@verbaneum.de"]
    assert report.question_profile is not None


def test_build_dashboard_rejects_invalid_filter(session, provider):
    with pytest.raises(ValidationError):
        build_dashboard(session, {"date_from": "05.03.2025", "date_to": "01.03.2025"}, provider=provider)


def test_unexpected_errors_are_wrapped(session, provider, monkeypatch):
    def explode(self):
        raise KeyError("boom")

    monkeypatch.setattr(SubmissionRepo, "list_domain", explode)
    with pytest.raises(QaptureError) as exc_info:
        build_dashboard(session, provider=provider)
    assert type(exc_info.value) is QaptureError
    assert exc_info.value.user_message == "Unable to build the dashboard. Please try again."
