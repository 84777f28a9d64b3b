from __future__ import annotations

from collections.abc import Mapping


class CatalogNameResolver:
    """
    Translates catalog names stored on old submissions to current catalog names.

    Catalogs get renamed over time while submissions keep the name that was
    active when they were recorded. Names missing from the table are returned
    unchanged.

    Example:
        >>> resolver = CatalogNameResolver({"Telefonie - Inbound": "Bewertung Inbound"})
        >>> resolver.resolve("Telefonie - Inbound")
        'Bewertung Inbound'
        >>> resolver.resolve("Bewertung Outbound")
        'Bewertung Outbound'
    """

    def __init__(self, name_map: Mapping[str, str] | None = None):
        self._map: dict[str, str] = dict(name_map or {})

    def resolve(self, catalog_name: str) -> str:
        return self._map.get(catalog_name, catalog_name)

    @classmethod
    def from_settings(cls, scoring_config) -> CatalogNameResolver:
        return cls(scoring_config.catalog_name_map)
