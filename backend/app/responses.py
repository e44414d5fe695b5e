"""Tagged result type and the uniform JSON envelope.

Controllers build an `Ok` or `Err` and hand it to `envelope()`, which
renders `{success, message?, data?}` (plus `errors` for validation
failures).
"""

from dataclasses import dataclass, field
from typing import Any, Generic, Optional, TypeVar, Union
from fastapi.encoders import jsonable_encoder
from fastapi.responses import JSONResponse
from .errors import ErrorKind, PortalError

T = TypeVar("T")

_STATUS_BY_KIND = {
    ErrorKind.VALIDATION: 400,
    ErrorKind.PATH_ESCAPE: 400,
    ErrorKind.AUTH: 401,
    ErrorKind.FORBIDDEN: 403,
    ErrorKind.NOT_FOUND: 404,
    ErrorKind.INTERNAL: 500,
}


@dataclass
class Ok(Generic[T]):
    data: T = None
    message: Optional[str] = None
    status_code: int = 200


@dataclass
class Err:
    kind: ErrorKind
    message: str
    errors: list = field(default_factory=list)

    @property
    def status_code(self) -> int:
        return _STATUS_BY_KIND[self.kind]

    @classmethod
    def from_exception(cls, exc: PortalError) -> "Err":
        return cls(kind=exc.kind, message=exc.message, errors=list(getattr(exc, "errors", [])))


Result = Union[Ok, Err]


def envelope_body(result: Result) -> dict[str, Any]:
    if isinstance(result, Ok):
        body: dict[str, Any] = {"success": True}
        if result.message is not None:
            body["message"] = result.message
        if result.data is not None:
            body["data"] = result.data
        return body
    body = {"success": False, "message": result.message}
    if result.errors:
        body["errors"] = result.errors
    return body


def envelope(result: Result, headers: dict | None = None) -> JSONResponse:
    """Render a result as a JSONResponse with the matching status code."""
    return JSONResponse(
        status_code=result.status_code,
        content=jsonable_encoder(envelope_body(result)),
        headers=headers,
    )
