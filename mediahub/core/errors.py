"""Domain error taxonomy.

Services and repositories raise these; the HTTP layer maps them to responses
in one place (see ``register_error_handlers``). Never raise ``HTTPException``
below the router.
"""
import logging
import uuid
from typing import Any

from fastapi import FastAPI, Request, status
from fastapi.responses import JSONResponse

log = logging.getLogger(__name__)


class DomainError(Exception):
    code: str = "domain_error"
    status_code: int = status.HTTP_400_BAD_REQUEST
    # when False the client only sees a generic message; details stay in the logs
    expose: bool = True

    def __init__(self, message: str = "", *, details: dict[str, Any] | None = None) -> None:
        super().__init__(message or self.__class__.__name__)
        self.message = message or self.__class__.__name__
        self.details = details or {}

    def to_dict(self) -> dict[str, Any]:
        if not self.expose:
            return {"code": self.code, "message": "An internal error occurred.", "details": {}}
        return {"code": self.code, "message": self.message, "details": self.details}


class ValidationError(DomainError):
    code = "validation_error"
    status_code = status.HTTP_422_UNPROCESSABLE_ENTITY

    def __init__(self, message: str = "", *, field: str | None = None, details: dict[str, Any] | None = None) -> None:
        details = dict(details or {})
        if field is not None:
            details.setdefault("field", field)
        super().__init__(message, details=details)
        self.field = field


class InvalidSpecification(ValidationError):
    code = "invalid_specification"


class InvalidTransition(ValidationError):
    code = "invalid_transition"

    def __init__(self, current: str, target: str) -> None:
        super().__init__(
            f"Cannot move asset from '{current}' to '{target}'",
            field="lifecycle",
            details={"current": current, "target": target},
        )
        self.current = current
        self.target = target


class NotFoundError(DomainError):
    code = "not_found"
    status_code = status.HTTP_404_NOT_FOUND


class RecordNotFound(NotFoundError):
    code = "record_not_found"

    def __init__(self, record_id: uuid.UUID | int | str, *, kind: str = "Media asset") -> None:
        super().__init__(f"{kind} {record_id} not found", details={"id": str(record_id)})
        self.record_id = record_id


class PermissionDenied(DomainError):
    code = "permission_denied"
    status_code = status.HTTP_403_FORBIDDEN


class ConflictError(DomainError):
    code = "conflict"
    status_code = status.HTTP_409_CONFLICT


class DuplicateContentError(ConflictError):
    code = "duplicate_content"

    def __init__(self, existing_id: uuid.UUID, content_hash: str | None = None) -> None:
        details: dict[str, Any] = {"existing_id": str(existing_id)}
        if content_hash:
            details["content_hash"] = content_hash
        super().__init__(f"Content already stored as asset {existing_id}", details=details)
        self.existing_id = existing_id


class ConsistencyViolation(DomainError):
    code = "consistency_violation"
    status_code = status.HTTP_500_INTERNAL_SERVER_ERROR
    expose = False


class StorageError(DomainError):
    code = "storage_error"
    status_code = status.HTTP_503_SERVICE_UNAVAILABLE
    expose = False


def register_error_handlers(app: FastAPI) -> None:
    @app.exception_handler(DomainError)
    async def domain_error_handler(request: Request, exc: DomainError):
        if exc.expose:
            log.info("%s on %s %s: %s", exc.code, request.method, request.url.path, exc.message)
        else:
            log.error(
                "%s on %s %s: %s %s", exc.code, request.method, request.url.path, exc.message, exc.details,
                exc_info=exc,
            )
        return JSONResponse(status_code=exc.status_code, content=exc.to_dict())

    @app.exception_handler(Exception)
    async def global_exception_handler(request: Request, exc: Exception):
        log.critical(f"Unhandled exception for request {request.method} {request.url.path}", exc_info=exc)
        return JSONResponse(
            status_code=500,
            content={"code": "internal_error", "message": "An internal server error occurred.", "details": {}},
        )
