"""Shared schema building blocks and the response envelope."""

from typing import Annotated, Any, Generic, TypeVar

from pydantic import BaseModel, BeforeValidator, ConfigDict, EmailStr
from pydantic.alias_generators import to_camel

T = TypeVar("T")


def _normalize_email(value: Any) -> Any:
    if isinstance(value, str):
        return value.strip().lower()
    return value


NormalizedEmail = Annotated[EmailStr, BeforeValidator(_normalize_email)]


class CamelModel(BaseModel):
    """Base model serialised with camelCase field names."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class ErrorBody(BaseModel):
    """Error details inside the envelope."""

    code: str
    message: str
    details: Any = None


class ApiResponse(BaseModel, Generic[T]):
    """Success envelope."""

    ok: bool = True
    data: T


class ErrorResponse(BaseModel):
    """Failure envelope."""

    ok: bool = False
    error: ErrorBody


class MessageResponse(CamelModel):
    """Plain message payload."""

    message: str
