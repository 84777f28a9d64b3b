"""
Pydantic schemas for input validation across the application.

Two groups live here: strict input schemas for things users author (filters,
catalogs, dimensions, category mappings) and permissive boundary models for
catalog documents, which are user-authored survey definitions whose shape
drifts over time.
"""

from __future__ import annotations

import json
import re
from datetime import date, datetime
from html import unescape
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator

from .values import parse_submission_timestamp

_FORBIDDEN_NAME_CHARS = re.compile(r'[<>"\\]')
_HEX_COLOR = r"^#[0-9a-fA-F]{6}$"


class BaseValidationSchema(BaseModel):
    """Base schema with common validation utilities."""

    model_config = ConfigDict(
        str_strip_whitespace=True, validate_assignment=True, use_enum_values=True
    )

    @field_validator("*", mode="before")
    def sanitize_strings(cls, v):
        """Strip markup and control characters from string inputs."""
        if isinstance(v, str):
            cleaned = unescape(v.strip())
            cleaned = re.sub(
                r"<\s*script[^>]*>.*?<\s*/\s*script\s*>",
                "",
                cleaned,
                flags=re.IGNORECASE | re.DOTALL,
            )
            cleaned = re.sub(r"<[^>]+>", "", cleaned)
            cleaned = re.sub(r"[\x00-\x08\x0b\x0c\x0e-\x1f\x7f-\x9f]", "", cleaned)
            return cleaned
        return v


# ---------- Catalog document boundary models ----------


def _only_mappings(value: Any) -> Any:
    if value is None:
        return None
    if not isinstance(value, list):
        return []
    return [item for item in value if isinstance(item, dict)]


class RawElement(BaseModel):
    """One element of a catalog page as written by the survey editor."""

    model_config = ConfigDict(extra="allow", populate_by_name=True)

    name: Any = None
    type: Any = None
    title: Any = None
    visible: Any = True
    rate_max: Any = Field(None, alias="rateMax")
    rate_values: list[Any] | None = Field(None, alias="rateValues")
    choices: list[Any] | None = None
    elements: list[RawElement] | None = None
    template_elements: list[RawElement] | None = Field(None, alias="templateElements")

    @field_validator("elements", "template_elements", mode="before")
    def keep_element_objects(cls, v):
        return _only_mappings(v)

    @field_validator("rate_values", "choices", mode="before")
    def listify(cls, v):
        if v is None or isinstance(v, list):
            return v
        return None

    def children(self) -> list[RawElement]:
        return [*(self.elements or []), *(self.template_elements or [])]

    @property
    def is_container(self) -> bool:
        return self.elements is not None or self.template_elements is not None


class RawPage(BaseModel):
    model_config = ConfigDict(extra="allow")

    name: Any = None
    title: Any = None
    elements: list[RawElement] = Field(default_factory=list)

    @field_validator("elements", mode="before")
    def keep_element_objects(cls, v):
        return _only_mappings(v) or []


class RawCatalogDocument(BaseModel):
    model_config = ConfigDict(extra="allow")

    title: Any = None
    pages: list[RawPage] = Field(default_factory=list)

    @field_validator("pages", mode="before")
    def keep_page_objects(cls, v):
        return _only_mappings(v) or []


RawElement.model_rebuild()


# ---------- User input schemas ----------


class SubmissionFilter(BaseValidationSchema):
    """
    Filter over historical submissions.

    Unset fields, empty strings and the "all" sentinel apply no filter.
    ``teams`` is OR-matched; all fields combine with AND.

    Example:
        >>> SubmissionFilter(teams=["SDK Inbound"], catalog="Bewertung Inbound")
    """

    date_from: date | None = None
    date_to: date | None = None
    teams: list[str] = Field(default_factory=list)
    catalog: str | None = Field(None, max_length=255)
    evaluator: str | None = Field(None, max_length=255)
    employee: str | None = Field(None, max_length=255)

    @field_validator("date_from", "date_to", mode="before")
    def parse_dates(cls, v):
        if v is None or v == "":
            return None
        if isinstance(v, datetime):
            return v.date()
        if isinstance(v, str):
            parsed = parse_submission_timestamp(v)
            if parsed is None:
                raise ValueError(f"Unrecognised date: {v}")
            return parsed.date()
        return v

    @field_validator("teams", mode="before")
    def normalise_teams(cls, v):
        if v is None:
            return []
        if isinstance(v, str):
            v = [v]
        return [t.strip() for t in v if isinstance(t, str) and t.strip()]

    @field_validator("catalog", "evaluator", "employee")
    def empty_to_none(cls, v):
        if v is not None and not v.strip():
            return None
        return v

    @model_validator(mode="after")
    def validate_date_range(self):
        if self.date_from and self.date_to and self.date_from > self.date_to:
            raise ValueError("date_from must not be after date_to")
        return self

    def narrows_team_or_catalog(self, all_sentinel: str = "all") -> bool:
        teams = [t for t in self.teams if t != all_sentinel]
        return bool(teams) or self.catalog not in (None, all_sentinel)


class CatalogInput(BaseModel):
    """Validation schema for catalog documents handed to the catalog store.

    Not sanitised like the other inputs: the definition is JSON and may carry markup.
    """

    model_config = ConfigDict(str_strip_whitespace=True)

    name: str = Field(..., min_length=1, max_length=255)
    json_data: str | dict[str, Any]
    teams: list[str] = Field(default_factory=list)

    @field_validator("json_data", mode="before")
    def validate_json_data(cls, v):
        data = v
        # tolerate double-encoded documents
        for _ in range(2):
            if not isinstance(data, str):
                break
            try:
                data = json.loads(data)
            except ValueError as e:
                raise ValueError(f"Catalog definition is not valid JSON: {e}") from e
        if not isinstance(data, dict):
            raise ValueError("Catalog definition must be a JSON object")
        if not isinstance(data.get("pages", []), list):
            raise ValueError("Catalog 'pages' must be a list")
        return json.dumps(data, ensure_ascii=False)

    @field_validator("name")
    def validate_name(cls, v):
        if _FORBIDDEN_NAME_CHARS.search(v):
            raise ValueError("Catalog name contains invalid characters")
        return v

    @field_validator("teams", mode="before")
    def normalise_teams(cls, v):
        if v is None:
            return []
        return [t.strip() for t in v if isinstance(t, str) and t.strip()]


class DimensionInput(BaseValidationSchema):
    """Validation schema for dimension data."""

    name: str = Field(..., min_length=1, max_length=255)
    color: str = Field("#9e9e9e", pattern=_HEX_COLOR)

    @field_validator("name")
    def validate_dimension_name(cls, v):
        if _FORBIDDEN_NAME_CHARS.search(v):
            raise ValueError("Dimension name contains invalid characters")
        return v.strip()


class CategoryMappingInput(BaseValidationSchema):
    """Validation schema for category to dimension assignments."""

    category_name: str = Field(..., min_length=1, max_length=255)
    dimension_id: int | None = Field(None, gt=0)


class ExportFormat(BaseValidationSchema):
    """Validation schema for export formats."""

    format_type: str = Field(..., pattern=r"^(json|xlsx)$")


class ValidationErrorDetail(BaseModel):
    """Schema for validation error details."""

    field: str
    message: str
    value: Any = None


class ValidationResponse(BaseModel):
    """Schema for validation responses."""

    success: bool
    errors: list[ValidationErrorDetail] = []
    data: dict[str, Any] | None = None


def validate_input(schema_class: type[BaseModel], data: dict[str, Any]) -> ValidationResponse:
    """
    Centralized validation function that returns structured validation results.

    Example:
        >>> result = validate_input(DimensionInput, {"name": "Kommunikation", "color": "#ff9800"})
        >>> if not result.success:
        ...     for error in result.errors:
        ...         print(f"Error in {error.field}: {error.message}")
    """
    try:
        validated = schema_class(**data)
        return ValidationResponse(success=True, data=validated.model_dump())
    except Exception as e:
        errors = []
        if hasattr(e, "errors"):  # Pydantic validation errors
            for error in e.errors():
                errors.append(
                    ValidationErrorDetail(
                        field=".".join(str(x) for x in error["loc"]) or "general",
                        message=error["msg"],
                        value=error.get("input"),
                    )
                )
        else:
            errors.append(ValidationErrorDetail(field="general", message=str(e)))

        return ValidationResponse(success=False, errors=errors)
