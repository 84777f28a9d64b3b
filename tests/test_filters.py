from datetime import date, datetime

import pytest
from pydantic import ValidationError as PydanticValidationError

from qapture.domain.filters import filter_submissions
from qapture.domain.identities import is_anonymized
from qapture.domain.models import Submission
from qapture.domain.name_mapping import CatalogNameResolver
from qapture.domain.schemas import SubmissionFilter


def make_rows():
    return [
        Submission("Bewertung Inbound", team_name="A", evaluator="e1", employee="m1",
                   timestamp=datetime(2025, 3, 1, 8, 0), percent=80.0, id=1),
        Submission("Bewertung Inbound", team_name="B", evaluator="e2", employee="m2",
                   timestamp=datetime(2025, 3, 2, 23, 59, 59, 999000), percent=60.0, id=2),
        Submission("Bewertung Outbound", team_name="A", evaluator="e1", employee="m3",
                   timestamp=datetime(2025, 3, 3, 0, 0), percent=90.0, id=3),
        Submission("Telefonie - Inbound", team_name="A", evaluator="e3", employee="m1",
                   timestamp=datetime(2025, 2, 28, 12, 0), percent=70.0, id=4),
        Submission("Bewertung Inbound", team_name="C", evaluator="e1", employee="m1",
                   timestamp=None, percent=50.0, id=5),
    ]


def ids(rows):
    return [r.id for r in rows]


def test_empty_filter_keeps_everything():
    rows = make_rows()
    assert ids(filter_submissions(rows, {})) == [1, 2, 3, 4, 5]
    assert ids(filter_submissions(rows, None)) == [1, 2, 3, 4, 5]


def test_sentinel_all_is_a_no_op():
    rows = make_rows()
    spec = {"teams": ["all"], "catalog": "all", "evaluator": "all", "employee": "all"}
    assert ids(filter_submissions(rows, spec)) == [1, 2, 3, 4, 5]


def test_date_to_covers_the_whole_day():
    rows = make_rows()
    result = filter_submissions(rows, {"date_from": "01.03.2025", "date_to": "2025-03-02"})
    assert ids(result) == [1, 2]


def test_date_bounds_drop_undated_rows():
    rows = make_rows()
    assert 5 not in ids(filter_submissions(rows, {"date_from": date(2000, 1, 1)}))


def test_teams_are_or_matched():
    rows = make_rows()
    assert ids(filter_submissions(rows, {"teams": ["B", "C"]})) == [2, 5]


def test_fields_combine_with_and():
    rows = make_rows()
    result = filter_submissions(rows, {"teams": ["A"], "evaluator": "e1", "employee": "m1"})
    assert ids(result) == [1]


def test_filter_conjunction_equals_sequential_filtering():
    rows = make_rows()
    sequential = filter_submissions(filter_submissions(rows, {"teams": ["A"]}), {"catalog": "Bewertung Inbound"})
    combined = filter_submissions(rows, {"teams": ["A"], "catalog": "Bewertung Inbound"})
    assert sequential == combined
    assert ids(combined) == [1]


def test_catalog_filter_is_an_exact_match():
    rows = make_rows()
    assert ids(filter_submissions(rows, {"teams": ["A"], "catalog": "Bewertung Inbound"})) == [1]
    assert ids(filter_submissions(rows, {"catalog": "Telefonie - Inbound"})) == [4]
    assert filter_submissions(rows, {"catalog": "bewertung inbound"}) == []


def test_filter_spec_validation():
    spec = SubmissionFilter(teams="A", catalog="  ", evaluator=" e1 ")
    assert spec.teams == ["A"]
    assert spec.catalog is None
    assert spec.evaluator == "e1"

    with pytest.raises(PydanticValidationError):
        SubmissionFilter(date_from="05.03.2025", date_to="01.03.2025")
    with pytest.raises(PydanticValidationError):
        SubmissionFilter(date_from="irgendwann")


def test_narrows_team_or_catalog():
    assert not SubmissionFilter().narrows_team_or_catalog()
    assert not SubmissionFilter(teams=["all"], catalog="all").narrows_team_or_catalog()
    assert SubmissionFilter(teams=["A"]).narrows_team_or_catalog()
    assert SubmissionFilter(catalog="Bewertung Inbound").narrows_team_or_catalog()


@pytest.mark.parametrize(
    "identity, expected",
    [
        ("123456@verbaneum.de", True),
        ("123456@VERBANEUM.DE", True),
        ("jane.doe@verbaneum.de", False),
        ("jane.doe@other.tld", False),
        ("123456@other.tld", False),
        ("123456", False),
        ("", False),
        (None, False),
    ],
)
def test_is_anonymized(identity, expected):
    assert is_anonymized(identity, "verbaneum.de") is expected


def test_name_mapping_fallback():
    resolver = CatalogNameResolver({"Telefonie - Inbound": "Bewertung Inbound"})
    assert resolver.resolve("Telefonie - Inbound") == "Bewertung Inbound"
    assert resolver.resolve("Bewertung Outbound") == "Bewertung Outbound"
