import copy
import json

import pytest

from qapture.application.catalog_index import CatalogIndexProvider
from qapture.domain.catalogs import load_catalog
from qapture.infrastructure.cache import ExpiringCache
from qapture.infrastructure.config import DatabaseConfig
from qapture.infrastructure.db import create_database_engine, create_session_factory
from qapture.utils.seed import initialise_database

INBOUND_DOC = {
    "title": "Bewertung Inbound",
    "pages": [
        {
            "name": "Einstieg",
            "elements": [
                {"type": "rating", "name": "Begruessung", "title": "Begrüßung", "rateMax": 5},
                {"type": "boolean", "name": "Name genannt"},
            ],
        },
        {
            "name": "Kommunikation",
            "elements": [
                {
                    "type": "panel",
                    "name": "Gespraech",
                    "elements": [
                        {"type": "rating", "name": "Tonfall", "rateValues": [1, 2, 3, {"value": 4}]},
                    ],
                },
                {"type": "radiogroup", "name": "Empathie", "choices": ["0", "1"]},
                {"type": "comment", "name": "Notiz"},
            ],
        },
        {
            "title": {"de": "Abschluss", "default": "Closing"},
            "elements": [
                {"type": "rating", "name": "Verabschiedung"},
                {"type": "rating", "name": "Versteckt", "rateMax": 5, "visible": False},
            ],
        },
    ],
}

OUTBOUND_DOC = {
    "pages": [
        {
            "name": "Gesprächsführung",
            "elements": [{"type": "rating", "name": "Bedarfsanalyse", "rateMax": 10}],
        },
        {"name": "Bewertungsübersicht", "elements": [{"type": "expression", "name": "Summe"}]},
    ]
}


@pytest.fixture
def inbound_doc():
    return copy.deepcopy(INBOUND_DOC)


@pytest.fixture
def outbound_doc():
    return copy.deepcopy(OUTBOUND_DOC)


@pytest.fixture
def inbound_schema():
    return load_catalog(json.dumps(INBOUND_DOC), "Bewertung Inbound", catalog_id=1, root_id=1)


@pytest.fixture
def engine():
    engine = create_database_engine(DatabaseConfig(backend="sqlite", sqlite_path=":memory:"))
    initialise_database(engine)
    yield engine
    engine.dispose()


@pytest.fixture
def session(engine):
    SessionLocal = create_session_factory(engine)
    with SessionLocal() as s:
        yield s


@pytest.fixture
def provider():
    return CatalogIndexProvider(ExpiringCache(ttl_seconds=300))
