from __future__ import annotations

from dataclasses import dataclass, field

from sqlalchemy.orm import Session

from ..domain.catalogs import build_schema_index
from ..domain.models import CatalogSchema, Diagnostics, SchemaIndex
from ..infrastructure.cache import ExpiringCache
from ..infrastructure.config import ScoringConfig, get_settings
from ..infrastructure.logging import get_logger
from ..infrastructure.repositories import CatalogRepo

logger = get_logger(__name__)


@dataclass(slots=True)
class CatalogSnapshot:
    """Parsed active catalogs and their schema index at one point in time."""

    schemas: list[CatalogSchema]
    index: SchemaIndex
    diagnostics: Diagnostics = field(default_factory=Diagnostics)


class CatalogIndexProvider:
    """
    Builds the schema index from the catalog store and caches it.

    The cache key includes the catalog store state, so a change made through
    any session produces a new snapshot; ``invalidate()`` drops everything
    immediately.

    Example:
        >>> provider = CatalogIndexProvider(ExpiringCache(ttl_seconds=300))
        >>> snapshot = provider.get(session)
        >>> sorted(snapshot.index)
        ['Bewertung Inbound', 'Bewertung Outbound']
    """

    def __init__(self, cache: ExpiringCache | None = None, scoring: ScoringConfig | None = None):
        self.cache: ExpiringCache[CatalogSnapshot] = cache or ExpiringCache.from_config()
        self.scoring = scoring

    def _build(self, repo: CatalogRepo) -> CatalogSnapshot:
        diagnostics = Diagnostics()
        scoring = self.scoring or get_settings().scoring
        schemas = repo.load_schemas(active_only=True, diagnostics=diagnostics, scoring=scoring)
        index = build_schema_index(schemas, diagnostics, scoring)
        logger.info("Schema index rebuilt for %d catalogs", len(index))
        return CatalogSnapshot(schemas=schemas, index=index, diagnostics=diagnostics)

    def get(self, session: Session) -> CatalogSnapshot:
        repo = CatalogRepo(session)
        key = ("catalog-index", repo.state_token())
        return self.cache.get_or_build(key, lambda: self._build(repo))

    def invalidate(self) -> None:
        self.cache.clear()


_default_provider: CatalogIndexProvider | None = None


def get_catalog_index_provider() -> CatalogIndexProvider:
    """Process-wide provider used when callers do not pass their own."""
    global _default_provider
    if _default_provider is None:
        _default_provider = CatalogIndexProvider()
    return _default_provider
