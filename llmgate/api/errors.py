"""OpenAI-style error envelope and exception handlers."""

import logging
from typing import Optional

from fastapi import FastAPI, Request, status
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException

from llmgate.exceptions import LLMGateError

logger = logging.getLogger(__name__)


class APIError(LLMGateError):
    """Error rendered as ``{"error": {"message", "type", "code"}}``."""
    DEFAULT_CODE = "API_ERROR"

    def __init__(
        self,
        status_code: int,
        message: str,
        error_type: str = "server_error",
        error_code: Optional[str] = None,
    ):
        super().__init__(message, error_code)
        self.status_code = status_code
        self.error_type = error_type

    def to_dict(self) -> dict:
        return {"error": {"message": self.message, "type": self.error_type, "code": self.status_code}}


def error_response(status_code: int, message: str, error_type: str) -> JSONResponse:
    return JSONResponse(
        status_code=status_code,
        content={"error": {"message": message, "type": error_type, "code": status_code}},
    )


async def api_error_handler(request: Request, exc: APIError) -> JSONResponse:
    return JSONResponse(status_code=exc.status_code, content=exc.to_dict())


async def http_exception_handler(request: Request, exc: StarletteHTTPException) -> JSONResponse:
    if exc.status_code == status.HTTP_404_NOT_FOUND:
        return error_response(404, f"Route not found: {request.method} {request.url.path}", "not_found")
    if exc.status_code == status.HTTP_405_METHOD_NOT_ALLOWED:
        return error_response(405, f"Method not allowed: {request.method} {request.url.path}", "invalid_request_error")
    return error_response(exc.status_code, str(exc.detail), "server_error")


async def validation_error_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    return error_response(400, f"Invalid request: {exc.errors()}", "invalid_request_error")


async def unhandled_error_handler(request: Request, exc: Exception) -> JSONResponse:
    logger.error(f"Unhandled route error on {request.method} {request.url.path}: {exc}", exc_info=exc)
    return error_response(500, "Internal server error", "server_error")


def register_error_handlers(app: FastAPI) -> None:
    app.add_exception_handler(APIError, api_error_handler)
    app.add_exception_handler(StarletteHTTPException, http_exception_handler)
    app.add_exception_handler(RequestValidationError, validation_error_handler)
    app.add_exception_handler(Exception, unhandled_error_handler)
