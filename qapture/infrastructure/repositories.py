"""
Repository classes for the catalog, dimension/mapping and submission stores.

Split modules are re-exported here so callers can import every repository
from one place.
"""

from __future__ import annotations

from .repositories_base import BaseRepository
from .repositories_catalog import CatalogRepo
from .repositories_dimension import CategoryMappingRepo, DimensionRepo
from .repositories_submission import SubmissionRepo

__all__ = [
    "BaseRepository",
    "CatalogRepo",
    "CategoryMappingRepo",
    "DimensionRepo",
    "SubmissionRepo",
]
