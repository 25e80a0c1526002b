"""
Boundary with the external schema layer.

Validators return a ``Result`` instead of raising, so failure handling is
visible at the call site.
"""

from dataclasses import dataclass, field
from typing import Any, Callable, Dict, Generic, List, Optional, Type, TypeVar

import pydantic

from shared.errors import FieldErrors, ValidationError


T = TypeVar("T")


@dataclass(frozen=True)
class Result(Generic[T]):
    """Either a validated value or field-level errors."""

    value: Optional[T] = None
    errors: FieldErrors = field(default_factory=dict)

    @property
    def ok(self) -> bool:
        return not self.errors

    @classmethod
    def success(cls, value: T) -> "Result[T]":
        return cls(value=value)

    @classmethod
    def failure(cls, errors: FieldErrors) -> "Result[T]":
        return cls(errors=errors or {"__root__": ["Invalid data"]})

    def to_error(self) -> ValidationError:
        messages = [msg for field_messages in self.errors.values() for msg in field_messages]
        summary = messages[0] if messages else "Validation failed"
        return ValidationError(summary, errors=dict(self.errors))


Validator = Callable[[Any], Result[Any]]


def _field_errors(exc: pydantic.ValidationError) -> FieldErrors:
    errors: Dict[str, List[str]] = {}
    for item in exc.errors():
        location = ".".join(str(part) for part in item.get("loc", ())) or "__root__"
        errors.setdefault(location, []).append(item.get("msg", "Invalid value"))
    return errors


def model_validator(model: Type[pydantic.BaseModel]) -> Validator:
    """Adapt a pydantic model to the ``validate(data) -> Result`` contract."""

    def validate(data: Any) -> Result[Any]:
        if isinstance(data, model):
            return Result.success(data)
        try:
            return Result.success(model.model_validate(data))
        except pydantic.ValidationError as exc:
            return Result.failure(_field_errors(exc))

    return validate
