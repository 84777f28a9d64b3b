import math

from qapture.domain.catalogs import load_catalog
from qapture.domain.models import Diagnostics, ScoreStatus, Submission, percent_of
from qapture.domain.name_mapping import CatalogNameResolver
from qapture.domain.services import ScoringService, calculate_score

FULL_ANSWERS = {
    "Begruessung": 4,
    "Name_genannt": True,
    "Tonfall": "3",
    "Empathie": "1",
    "Verabschiedung": "5",
    "Versteckt": 5,
}


def single_rating_schema():
    doc = {"pages": [{"name": "Einstieg", "elements": [{"type": "rating", "name": "Q", "rateMax": 5}]}]}
    return load_catalog(doc, "Eine Frage")


def test_single_rating_round_trip():
    result = calculate_score(single_rating_schema(), {"Q": 4})
    assert (result.points, result.max_points, result.percent) == (4.0, 5.0, 80.0)
    assert result.status is ScoreStatus.OK


def test_only_visible_rating_questions_are_summed(inbound_schema):
    result = calculate_score(inbound_schema, FULL_ANSWERS)
    # Begruessung 4/5 + Tonfall 3/4 + Verabschiedung 5/5; Versteckt is hidden
    assert result.points == 12.0
    assert result.max_points == 14.0
    assert result.percent == 85.71


def test_boolean_and_radiogroup_do_not_move_headline_score(inbound_schema):
    base = calculate_score(inbound_schema, {"Begruessung": 4})
    with_extras = calculate_score(
        inbound_schema, {"Begruessung": 4, "Name_genannt": True, "Empathie": "1"}
    )
    assert with_extras == base


def test_visibility_predicate_excludes_questions(inbound_schema):
    result = calculate_score(
        inbound_schema, FULL_ANSWERS, visibility=lambda q: q.visible and q.name != "Tonfall"
    )
    assert (result.points, result.max_points, result.percent) == (9.0, 10.0, 90.0)


def test_no_rating_questions_gives_zero_percent():
    doc = {"pages": [{"name": "A", "elements": [{"type": "boolean", "name": "B"}]}]}
    result = calculate_score(load_catalog(doc, "Nur Ja/Nein"), {"B": True})
    assert result.max_points == 0.0
    assert result.percent == 0.0
    assert not math.isnan(result.percent)


def test_all_questions_hidden_gives_zero_percent(inbound_schema):
    result = calculate_score(inbound_schema, FULL_ANSWERS, visibility=lambda q: False)
    assert (result.points, result.max_points, result.percent) == (0.0, 0.0, 0.0)


def test_scoring_is_idempotent(inbound_schema):
    first = calculate_score(inbound_schema, FULL_ANSWERS)
    second = calculate_score(inbound_schema, FULL_ANSWERS)
    assert first == second
    assert first.as_record_fields() == second.as_record_fields()


def test_non_numeric_answers_count_zero_and_decimal_comma_is_numeric():
    schema = single_rating_schema()
    assert calculate_score(schema, {"Q": "vier"}).points == 0.0
    assert calculate_score(schema, {"Q": "4 Punkte"}).points == 0.0
    assert calculate_score(schema, {"Q": "3,5"}).points == 3.5
    assert calculate_score(schema, {}).percent == 0.0


def test_answers_above_the_maximum_are_not_clamped():
    result = calculate_score(single_rating_schema(), {"Q": 6})
    assert (result.points, result.max_points, result.percent) == (6.0, 5.0, 120.0)


def test_record_fields_use_stored_format(inbound_schema):
    fields = calculate_score(inbound_schema, FULL_ANSWERS).as_record_fields()
    assert fields == {"Punkte": 12, "Erreichbare_Punkte": 14, "Prozent": "85.71"}


def test_percent_of_rounds_half_up_and_guards_zero():
    assert percent_of(1, 3) == 33.33
    assert percent_of(2, 3) == 66.67
    assert percent_of(1, 8) == 12.5
    assert percent_of(5, 0) == 0.0


def test_unknown_catalog_is_not_a_zero_score(inbound_schema):
    service = ScoringService([inbound_schema])
    diagnostics = Diagnostics()

    missing = service.score("Bewertung Backoffice", {"Begruessung": 4}, diagnostics=diagnostics)
    zero = service.score("Bewertung Inbound", {})

    assert missing.status is ScoreStatus.CATALOG_NOT_FOUND
    assert not missing.is_scored
    assert zero.is_scored and zero.percent == 0.0
    assert missing != zero
    assert diagnostics.missing_catalogs["Bewertung Backoffice"] == 1


def test_historical_catalog_names_are_resolved(inbound_schema):
    resolver = CatalogNameResolver({"Telefonie - Inbound": "Bewertung Inbound"})
    service = ScoringService([inbound_schema], resolver)
    result = service.score("Telefonie - Inbound", {"Begruessung": 5})
    assert result.is_scored
    assert result.points == 5.0


def test_rescore_replaces_stored_fields(inbound_schema):
    service = ScoringService([inbound_schema])
    stale = Submission(catalog_name="Bewertung Inbound", answers=FULL_ANSWERS, percent=120.0)

    updated, result = service.rescore(stale)
    assert updated.percent == result.percent == 85.71
    assert stale.percent == 120.0

    orphan = Submission(catalog_name="Gelöscht", answers=FULL_ANSWERS, percent=55.0)
    unchanged, result = service.rescore(orphan)
    assert unchanged is orphan
    assert result.status is ScoreStatus.CATALOG_NOT_FOUND
