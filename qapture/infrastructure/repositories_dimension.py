# qapture/infrastructure/repositories_dimension.py
from __future__ import annotations

import builtins

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from ..domain.models import CategoryMapping, Dimension
from ..domain.schemas import CategoryMappingInput, DimensionInput
from .exceptions import RecordNotFoundError, ValidationError
from .logging import log_database_operation as log_op
from .models import CategoryMappingORM, DimensionORM
from .repositories_base import BaseRepository as GenericBaseRepository


class DimensionRepo(GenericBaseRepository[DimensionORM]):
    """
    Repository for reporting dimensions.

    Example:
        >>> repo = DimensionRepo(session)
        >>> dim = repo.upsert("Kommunikation", "#ff9800")
        >>> repo.get_by_name("Kommunikation").color
        '#ff9800'
    """

    model = DimensionORM

    def __init__(self, session: Session):
        super().__init__(session)

    @log_op("dimension.get_by_name")
    def get_by_name(self, name: str) -> DimensionORM | None:
        if not name or not name.strip():
            raise ValidationError("name", "Dimension name cannot be empty")
        try:
            return self.s.query(DimensionORM).filter_by(name=name.strip()).one_or_none()
        except SQLAlchemyError as e:
            self._handle_error(e, "dimension.get_by_name")

    @log_op("dimension.list")
    def list_ordered(self) -> builtins.list[DimensionORM]:
        return self.list(order_by=[DimensionORM.name])

    @log_op("dimension.upsert")
    def upsert(self, name: str, color: str | None = None) -> DimensionORM:
        """Create the dimension or update its colour when it already exists."""
        fields = {"name": name} if color is None else {"name": name, "color": color}
        data = DimensionInput(**fields)
        try:
            existing = self.s.query(DimensionORM).filter_by(name=data.name).one_or_none()
            if existing is not None:
                if color is not None:
                    existing.color = data.color
                self.s.flush()
                return existing
            dimension = DimensionORM(name=data.name, color=data.color)
            self.s.add(dimension)
            self.s.flush()
            return dimension
        except SQLAlchemyError as e:
            self._handle_error(e, "dimension.upsert")

    @log_op("dimension.delete")
    def delete_by_id(self, dimension_id: int) -> None:
        """Delete a dimension; its categories fall back to the "Other" bucket."""
        dimension = self.get_by_id_required(dimension_id)
        for mapping in list(dimension.mappings):
            mapping.dimension_id = None
        self.delete(dimension)

    @staticmethod
    def to_domain(dimension: DimensionORM) -> Dimension:
        return Dimension(id=dimension.id, name=dimension.name, color=dimension.color)

    def list_domain(self) -> builtins.list[Dimension]:
        return [self.to_domain(d) for d in self.list_ordered()]


class CategoryMappingRepo(GenericBaseRepository[CategoryMappingORM]):
    """
    Category to dimension assignments, one row per category name.

    ``upsert`` is last-write-wins: mapping a category again replaces its dimension.
    """

    model = CategoryMappingORM

    def __init__(self, session: Session):
        super().__init__(session)

    @log_op("category_mapping.get")
    def get_by_category(self, category_name: str) -> CategoryMappingORM | None:
        return self.s.query(CategoryMappingORM).filter_by(category_name=category_name).one_or_none()

    @log_op("category_mapping.upsert")
    def upsert(self, category_name: str, dimension_id: int | None) -> CategoryMappingORM:
        """
        Raises:
            RecordNotFoundError: If ``dimension_id`` does not exist
        """
        data = CategoryMappingInput(category_name=category_name, dimension_id=dimension_id)
        if data.dimension_id is not None and self.s.get(DimensionORM, data.dimension_id) is None:
            raise RecordNotFoundError("Dimension", data.dimension_id)
        try:
            mapping = self.get_by_category(data.category_name)
            if mapping is None:
                mapping = CategoryMappingORM(
                    category_name=data.category_name, dimension_id=data.dimension_id
                )
                self.s.add(mapping)
            else:
                mapping.dimension_id = data.dimension_id
            self.s.flush()
            return mapping
        except SQLAlchemyError as e:
            self._handle_error(e, "category_mapping.upsert")

    @log_op("category_mapping.list")
    def list_ordered(self) -> builtins.list[CategoryMappingORM]:
        return self.list(order_by=[CategoryMappingORM.category_name])

    def list_domain(self) -> builtins.list[CategoryMapping]:
        return [
            CategoryMapping(category_name=m.category_name, dimension_id=m.dimension_id)
            for m in self.list_ordered()
        ]
