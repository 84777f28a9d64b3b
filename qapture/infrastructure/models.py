from __future__ import annotations

from datetime import datetime, timezone
from typing import Any

from sqlalchemy import (
    JSON,
    Boolean,
    CheckConstraint,
    DateTime,
    Float,
    ForeignKey,
    Integer,
    String,
    Text,
    UniqueConstraint,
)
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column, relationship


def _utcnow() -> datetime:
    # columns are naive and hold UTC
    return datetime.now(timezone.utc).replace(tzinfo=None)


class Base(DeclarativeBase):
    pass


class CatalogORM(Base):
    __tablename__ = "catalogs"
    id: Mapped[int] = mapped_column(primary_key=True, autoincrement=True)
    name: Mapped[str] = mapped_column(String(255), nullable=False, index=True)
    version: Mapped[int] = mapped_column(Integer, default=1, nullable=False)
    # id of the first version of the lineage; None until the first flush assigns it
    root_id: Mapped[int | None] = mapped_column(Integer, nullable=True, index=True)
    is_active: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)
    json_data: Mapped[str] = mapped_column(Text, nullable=False)
    teams: Mapped[list[str]] = mapped_column(JSON, default=list, nullable=False)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=False), default=_utcnow, nullable=False
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=False), default=_utcnow, onupdate=_utcnow, nullable=False
    )

    __table_args__ = (
        UniqueConstraint("root_id", "version", name="uq_catalog_lineage_version"),
        CheckConstraint("version >= 1", name="ck_catalog_version_positive"),
    )


class DimensionORM(Base):
    __tablename__ = "dimensions"
    id: Mapped[int] = mapped_column(primary_key=True, autoincrement=True)
    name: Mapped[str] = mapped_column(String(255), unique=True, nullable=False)
    color: Mapped[str] = mapped_column(String(16), default="#9e9e9e", nullable=False)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=False), default=_utcnow, nullable=False
    )

    # deleting a dimension nulls dimension_id on its mappings ("Other" fallback)
    mappings: Mapped[list[CategoryMappingORM]] = relationship(back_populates="dimension")


class CategoryMappingORM(Base):
    __tablename__ = "category_mappings"
    id: Mapped[int] = mapped_column(primary_key=True, autoincrement=True)
    category_name: Mapped[str] = mapped_column(
        String(255), unique=True, nullable=False, index=True
    )
    dimension_id: Mapped[int | None] = mapped_column(
        ForeignKey("dimensions.id", ondelete="SET NULL"), nullable=True, index=True
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=False), default=_utcnow, onupdate=_utcnow, nullable=False
    )

    dimension: Mapped[DimensionORM | None] = relationship(back_populates="mappings")


class SubmissionORM(Base):
    __tablename__ = "submissions"
    id: Mapped[int] = mapped_column(primary_key=True, autoincrement=True)
    team_name: Mapped[str] = mapped_column(String(255), default="", nullable=False, index=True)
    catalog_name: Mapped[str] = mapped_column(String(255), nullable=False, index=True)
    evaluator: Mapped[str] = mapped_column(String(255), default="", nullable=False)
    employee: Mapped[str] = mapped_column(String(255), default="", nullable=False)
    timestamp: Mapped[datetime | None] = mapped_column(DateTime(timezone=False), nullable=True)
    answers: Mapped[dict[str, Any]] = mapped_column(JSON, default=dict, nullable=False)
    points: Mapped[float] = mapped_column(Float, default=0.0, nullable=False)
    max_points: Mapped[float] = mapped_column(Float, default=0.0, nullable=False)
    percent: Mapped[float] = mapped_column(Float, default=0.0, nullable=False)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=False), default=_utcnow, nullable=False
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=False), default=_utcnow, onupdate=_utcnow, nullable=False
    )

    __table_args__ = (
        CheckConstraint("max_points >= 0", name="ck_submission_max_points"),
    )
