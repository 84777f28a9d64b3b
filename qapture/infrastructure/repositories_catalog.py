# qapture/infrastructure/repositories_catalog.py
from __future__ import annotations

import builtins
from typing import Any

from sqlalchemy import func
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from ..domain.catalogs import load_catalog, new_catalog_version
from ..domain.models import CatalogSchema, Diagnostics
from ..domain.schemas import CatalogInput
from .config import ScoringConfig
from .exceptions import CatalogVersionError, MalformedSchemaError
from .logging import log_database_operation as log_op
from .models import CatalogORM
from .repositories_base import BaseRepository as GenericBaseRepository


class CatalogRepo(GenericBaseRepository[CatalogORM]):
    """
    Catalog store with versioned lineages.

    Every lineage (all versions sharing ``root_id``) has exactly one active
    version: creating or activating a version deactivates its siblings.

    Example:
        >>> repo = CatalogRepo(session)
        >>> first = repo.create_catalog("Bewertung Inbound", json_text, teams=["SDK Inbound"])
        >>> second = repo.create_version(first.id)
        >>> (first.is_active, second.is_active, second.version)
        (False, True, 2)
    """

    model = CatalogORM

    def __init__(self, session: Session):
        super().__init__(session)

    # -------- Read --------

    @log_op("catalog.list_active")
    def list_active(self) -> builtins.list[CatalogORM]:
        return self.list(CatalogORM.is_active.is_(True), order_by=[CatalogORM.name])

    @log_op("catalog.get_by_name")
    def get_by_name(self, name: str) -> CatalogORM | None:
        """Active catalog with this name, else its highest stored version."""
        try:
            return (
                self.s.query(CatalogORM)
                .filter(CatalogORM.name == name)
                .order_by(CatalogORM.is_active.desc(), CatalogORM.version.desc())
                .first()
            )
        except SQLAlchemyError as e:
            self._handle_error(e, "catalog.get_by_name")

    @log_op("catalog.lineage")
    def lineage(self, root_id: int) -> builtins.list[CatalogORM]:
        return self.list(CatalogORM.root_id == root_id, order_by=[CatalogORM.version])

    @log_op("catalog.state_token")
    def state_token(self) -> tuple[int, Any]:
        """Changes whenever a catalog is added, edited or (de)activated."""
        count, latest = self.s.query(
            func.count(CatalogORM.id), func.max(CatalogORM.updated_at)
        ).one()
        return int(count or 0), latest

    # -------- Write --------

    @log_op("catalog.create")
    def create_catalog(
        self, name: str, json_data: str | dict[str, Any], teams: builtins.list[str] | None = None
    ) -> CatalogORM:
        """
        Store the first version of a new catalog lineage.

        Raises:
            pydantic.ValidationError: If the name or the definition is invalid
        """
        data = CatalogInput(name=name, json_data=json_data, teams=teams or [])
        try:
            catalog = CatalogORM(
                name=data.name,
                version=1,
                is_active=True,
                json_data=data.json_data,
                teams=list(data.teams),
            )
            self.s.add(catalog)
            self.s.flush()
            catalog.root_id = catalog.id
            self.s.flush()
            return catalog
        except SQLAlchemyError as e:
            self._handle_error(e, "catalog.create")

    @log_op("catalog.update_definition")
    def update_definition(
        self,
        catalog_id: int,
        json_data: str | dict[str, Any] | None = None,
        name: str | None = None,
        teams: builtins.list[str] | None = None,
    ) -> CatalogORM:
        catalog = self.get_by_id_required(catalog_id)
        data = CatalogInput(
            name=name if name is not None else catalog.name,
            json_data=json_data if json_data is not None else catalog.json_data,
            teams=teams if teams is not None else catalog.teams,
        )
        return self.update(catalog, name=data.name, json_data=data.json_data, teams=list(data.teams))

    def _deactivate_lineage(self, root_id: int) -> None:
        for sibling in self.lineage(root_id):
            sibling.is_active = False

    @log_op("catalog.create_version")
    def create_version(self, catalog_id: int) -> CatalogORM:
        """
        Archive the lineage of ``catalog_id`` and store a clone as its newest version.

        The clone keeps name, definition, teams and lineage root.

        Raises:
            RecordNotFoundError: If the catalog does not exist
            CatalogVersionError: If the catalog has no lineage
        """
        source = self.get_by_id_required(catalog_id)
        _, successor = new_catalog_version(
            CatalogSchema(
                name=source.name,
                version=source.version,
                root_id=source.root_id,
                is_active=source.is_active,
                id=source.id,
                teams=list(source.teams or []),
            )
        )
        root_id = successor.root_id
        if root_id is None:
            raise CatalogVersionError("Catalog has no lineage", catalog_name=source.name)

        try:
            latest = (
                self.s.query(func.max(CatalogORM.version))
                .filter(CatalogORM.root_id == root_id)
                .scalar()
            )
            self._deactivate_lineage(root_id)
            clone = CatalogORM(
                name=successor.name,
                version=max(successor.version, int(latest or 0) + 1),
                root_id=root_id,
                is_active=True,
                json_data=source.json_data,
                teams=list(successor.teams),
            )
            self.s.add(clone)
            self.s.flush()
            return clone
        except SQLAlchemyError as e:
            self._handle_error(e, "catalog.create_version")

    @log_op("catalog.activate")
    def activate(self, catalog_id: int) -> CatalogORM:
        catalog = self.get_by_id_required(catalog_id)
        self._deactivate_lineage(catalog.root_id if catalog.root_id is not None else catalog.id)
        catalog.is_active = True
        self.s.flush()
        return catalog

    # -------- Domain conversion --------

    @staticmethod
    def to_schema(catalog: CatalogORM, scoring: ScoringConfig | None = None) -> CatalogSchema:
        """
        Raises:
            MalformedSchemaError: If the stored definition cannot be parsed
        """
        return load_catalog(
            catalog.json_data,
            catalog.name,
            version=catalog.version,
            root_id=catalog.root_id,
            is_active=catalog.is_active,
            catalog_id=catalog.id,
            teams=catalog.teams or [],
            scoring=scoring,
        )

    @log_op("catalog.load_schemas")
    def load_schemas(
        self,
        active_only: bool = True,
        diagnostics: Diagnostics | None = None,
        scoring: ScoringConfig | None = None,
    ) -> builtins.list[CatalogSchema]:
        """Parse stored catalogs; unparseable ones are skipped and recorded."""
        rows = self.list_active() if active_only else self.list(order_by=[CatalogORM.name])
        schemas: builtins.list[CatalogSchema] = []
        for row in rows:
            try:
                schemas.append(self.to_schema(row, scoring))
            except MalformedSchemaError as e:
                self.logger.warning("Stored catalog '%s' is malformed: %s", row.name, e.reason)
                if diagnostics is not None:
                    diagnostics.record_malformed(row.name, e.reason)
        return schemas
