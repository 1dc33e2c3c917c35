"""Schema bases and reusable field types.

Create schemas list their fields as insert columns; update schemas list only
the fields the caller actually sent, in declaration order, so repositories
can build ``SET`` clauses without looking at the payload themselves.
"""

import re
import uuid
from datetime import date, datetime, timezone
from typing import Annotated, Any, ClassVar, Dict, FrozenSet, List, Mapping, Optional, Tuple, Type, TypeVar, Union

from pydantic import AfterValidator, BaseModel, ConfigDict, Field, ValidationInfo, field_validator, model_validator
from pydantic import ValidationError as PydanticValidationError
from pydantic.alias_generators import to_camel, to_snake

from school_portal.errors import ValidationError

EMAIL_RE = re.compile(r"^[^@\s]+@[^@\s]+\.[A-Za-z]{2,}$")

SchemaT = TypeVar("SchemaT", bound="Schema")

Columns = List[Tuple[str, Any]]


def bounded(low: Union[int, float], high: Union[int, float], label: str) -> AfterValidator:
    def check(value):
        if not low <= value <= high:
            raise ValueError(f"{label} must be between {low} and {high}")
        return value

    return AfterValidator(check)


def text(min_length: int, max_length: int, label: str) -> AfterValidator:
    def check(value: str) -> str:
        if len(value) < min_length:
            if min_length == 1:
                raise ValueError(f"{label} is required")
            raise ValueError(f"{label} must be at least {min_length} characters")
        if len(value) > max_length:
            raise ValueError(f"{label} must be at most {max_length} characters")
        return value

    return AfterValidator(check)


def _email(value: str) -> str:
    value = value.strip().lower()
    if not EMAIL_RE.match(value):
        raise ValueError("email must be valid")
    return value


def _identifier(value: str) -> str:
    try:
        return str(uuid.UUID(value))
    except ValueError:
        raise ValueError("must be a valid id") from None


Email = Annotated[str, AfterValidator(_email)]
Identifier = Annotated[str, AfterValidator(_identifier)]
Year = Annotated[int, bounded(2000, 2100, "year")]
Term = Annotated[int, bounded(1, 3, "term")]


def _utc_naive(value: datetime) -> datetime:
    if value.tzinfo is not None:
        value = value.astimezone(timezone.utc).replace(tzinfo=None)
    return value


# Stored timestamps are naive UTC.
Timestamp = Annotated[datetime, AfterValidator(_utc_naive)]


def ensure_ordered(start: Optional[date], end: Optional[date]) -> Optional[date]:
    if start is not None and end is not None and end < start:
        raise ValueError("end date must not precede start date")
    return end


class Schema(BaseModel):
    """Accepts snake_case or camelCase keys, trims strings, ignores unknown keys."""

    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        str_strip_whitespace=True,
        extra="ignore",
    )

    # Fields handled by the repository itself (junction tables, lookups).
    relation_fields: ClassVar[FrozenSet[str]] = frozenset()
    # Field name -> column name where they differ.
    column_map: ClassVar[Dict[str, str]] = {}

    def relations(self) -> Dict[str, Any]:
        return {name: getattr(self, name) for name in self.relation_fields if name in self.model_fields_set}


class CreateSchema(Schema):
    def columns(self) -> Columns:
        return [
            (self.column_map.get(name, name), getattr(self, name))
            for name in type(self).model_fields
            if name not in self.relation_fields
        ]


class UpdateSchema(Schema):
    """Every field optional; at least one must be present."""

    # Fields that may be explicitly cleared with null.
    nullable_fields: ClassVar[FrozenSet[str]] = frozenset()

    @field_validator("*")
    @classmethod
    def _reject_null(cls, value: Any, info: ValidationInfo) -> Any:
        if value is None and info.field_name not in cls.nullable_fields:
            raise ValueError("cannot be null")
        return value

    @model_validator(mode="after")
    def _require_a_field(self):
        if not self.model_fields_set:
            raise ValueError("at least one field required")
        return self

    def changes(self) -> Columns:
        return [
            (self.column_map.get(name, name), getattr(self, name))
            for name in type(self).model_fields
            if name in self.model_fields_set and name not in self.relation_fields
        ]


class PageParams(Schema):
    page: int = Field(default=1)
    limit: int = Field(default=10)

    @field_validator("page")
    @classmethod
    def _check_page(cls, value: int) -> int:
        if value < 1:
            raise ValueError("page must be at least 1")
        return value

    @field_validator("limit")
    @classmethod
    def _check_limit(cls, value: int) -> int:
        if not 1 <= value <= 100:
            raise ValueError("limit must be between 1 and 100")
        return value

    @property
    def offset(self) -> int:
        return (self.page - 1) * self.limit


def _field_name(loc: Tuple[Any, ...]) -> str:
    return ".".join(to_snake(str(part)) for part in loc)


def _message(error: Mapping[str, Any]) -> str:
    if error["type"] == "missing":
        return "field required"
    message = error["msg"]
    for prefix in ("Value error, ", "Assertion failed, "):
        if message.startswith(prefix):
            return message[len(prefix):]
    return message


def validate(schema: Type[SchemaT], payload: Any) -> SchemaT:
    """Validate ``payload`` against ``schema``.

    Returns the coerced schema instance, or raises ``ValidationError`` with one
    entry per violated rule.
    """
    if isinstance(payload, schema):
        return payload
    try:
        return schema.model_validate(payload if payload is not None else {})
    except PydanticValidationError as exc:
        errors = [{"field": _field_name(e["loc"]), "message": _message(e)} for e in exc.errors()]
        raise ValidationError(errors) from None
