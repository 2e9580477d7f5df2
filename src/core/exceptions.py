"""Domain error taxonomy and the HTTP translation layer.

Services raise these errors with an explicit status code. ``register_exception_handlers``
installs the only place where they become HTTP responses, always with the envelope::

    {"sucesso": false, "mensagem": "...", "codigo": "...", "detalhes": ...}
"""
import asyncio
import traceback
from typing import Any

import structlog
from fastapi import FastAPI, Request, status
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from sqlalchemy.exc import DBAPIError, InterfaceError, OperationalError
from sqlalchemy.exc import TimeoutError as PoolTimeoutError
from starlette.exceptions import HTTPException as StarletteHTTPException

from src.config.settings import settings

logger = structlog.get_logger(__name__)


class AppError(Exception):
    """Base class for errors that carry their own HTTP status."""

    status_code: int = status.HTTP_500_INTERNAL_SERVER_ERROR
    code: str = "INTERNAL_ERROR"
    default_message: str = "Erro interno no servidor."

    def __init__(self, message: str | None = None, details: Any = None):
        self.message = message or self.default_message
        self.details = details
        super().__init__(self.message)


class ValidationError(AppError):
    status_code = status.HTTP_400_BAD_REQUEST
    code = "VALIDATION_ERROR"
    default_message = "Dados fornecidos são inválidos."


class AuthenticationError(AppError):
    status_code = status.HTTP_401_UNAUTHORIZED
    code = "UNAUTHENTICATED"
    default_message = "Token de acesso inválido ou ausente."


class Forbidden(AppError):
    status_code = status.HTTP_403_FORBIDDEN
    code = "FORBIDDEN"
    default_message = "Você não tem permissão para esta operação."


class NotFoundError(AppError):
    status_code = status.HTTP_404_NOT_FOUND
    code = "NOT_FOUND"
    default_message = "Recurso não encontrado."


class ConflictError(AppError):
    status_code = status.HTTP_409_CONFLICT
    code = "CONFLICT"
    default_message = "Conflito com o estado atual do recurso."


class DuplicateAssignment(ConflictError):
    code = "DUPLICATE_ASSIGNMENT"
    default_message = "Este aluno já possui uma vaga atribuída."


class InvalidStateTransition(ConflictError):
    code = "INVALID_STATE_TRANSITION"
    default_message = "Transição de status inválida."


class SlotUnavailable(AppError):
    status_code = status.HTTP_422_UNPROCESSABLE_ENTITY
    code = "SLOT_UNAVAILABLE"
    default_message = "Limite de alunos ativos atingido."


class StorageUnavailable(AppError):
    status_code = status.HTTP_503_SERVICE_UNAVAILABLE
    code = "SERVICE_UNAVAILABLE"
    default_message = "Serviço temporariamente indisponível. Tente novamente em alguns instantes."


class InternalError(AppError):
    pass


STORAGE_ERRORS = (OperationalError, InterfaceError, PoolTimeoutError, ConnectionError, asyncio.TimeoutError)


def is_storage_failure(exc: BaseException) -> bool:
    """True for connection/timeout failures of the data store."""
    if isinstance(exc, STORAGE_ERRORS):
        return True
    return isinstance(exc, DBAPIError) and bool(exc.connection_invalidated)


def error_body(message: str, code: str, details: Any = None) -> dict[str, Any]:
    body: dict[str, Any] = {"sucesso": False, "mensagem": message, "codigo": code}
    if details is not None:
        body["detalhes"] = details
    return body


async def app_error_handler(request: Request, exc: AppError) -> JSONResponse:
    if exc.status_code >= 500:
        logger.error("app_error", code=exc.code, message=exc.message, path=request.url.path)
    else:
        logger.info("app_error", code=exc.code, message=exc.message, path=request.url.path)
    return JSONResponse(
        status_code=exc.status_code,
        content=error_body(exc.message, exc.code, exc.details),
    )


async def request_validation_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    errors = [
        {"campo": ".".join(str(part) for part in err.get("loc", ())), "erro": err.get("msg")}
        for err in exc.errors()
    ]
    return JSONResponse(
        status_code=status.HTTP_400_BAD_REQUEST,
        content=error_body(ValidationError.default_message, ValidationError.code, errors),
    )


async def http_exception_handler(request: Request, exc: StarletteHTTPException) -> JSONResponse:
    message = exc.detail if isinstance(exc.detail, str) else "Erro na requisição."
    return JSONResponse(
        status_code=exc.status_code,
        content=error_body(message, f"HTTP_{exc.status_code}"),
        headers=getattr(exc, "headers", None),
    )


async def storage_error_handler(request: Request, exc: Exception) -> JSONResponse:
    if not is_storage_failure(exc):
        return await unhandled_exception_handler(request, exc)
    logger.error("storage_unavailable", error=str(exc), type=type(exc).__name__, path=request.url.path)
    return JSONResponse(
        status_code=StorageUnavailable.status_code,
        content=error_body(StorageUnavailable.default_message, StorageUnavailable.code),
    )


async def unhandled_exception_handler(request: Request, exc: Exception) -> JSONResponse:
    logger.error("unhandled_exception", error=str(exc), type=type(exc).__name__, path=request.url.path)

    from src.core.observability import capture_exception

    capture_exception(exc, extra={"path": request.url.path, "method": request.method})

    details = None
    if not settings.is_production:
        details = {
            "erro": type(exc).__name__,
            "stack": "".join(traceback.format_exception(type(exc), exc, exc.__traceback__)),
        }
    return JSONResponse(
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        content=error_body(InternalError.default_message, InternalError.code, details),
    )


def register_exception_handlers(app: FastAPI) -> None:
    """Install the error-translation layer on the app."""
    app.add_exception_handler(AppError, app_error_handler)
    app.add_exception_handler(RequestValidationError, request_validation_handler)
    app.add_exception_handler(StarletteHTTPException, http_exception_handler)
    # Storage classes get their own entries; the catch-all Exception handler
    # runs in ServerErrorMiddleware, which re-raises after responding.
    app.add_exception_handler(DBAPIError, storage_error_handler)
    for exc_class in (PoolTimeoutError, ConnectionError, asyncio.TimeoutError):
        app.add_exception_handler(exc_class, storage_error_handler)
    app.add_exception_handler(Exception, unhandled_exception_handler)
