"""
Content-negotiated error dispatch.

Every request-phase error is classified by `classify_error` into an
ErrorKind and a status code, then answered according to the response
content type negotiated for the request:

- application/json: ErrorResponse envelope
- application/vnd.api+json: empty object (validation errors list the fields)
- anything else: the `site/<code>` HTML page
"""

from dataclasses import dataclass
from enum import Enum
from http import HTTPStatus
from pathlib import Path
from typing import TYPE_CHECKING, Any, Dict, List, Mapping, Optional

from fastapi import Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import FileResponse, HTMLResponse, JSONResponse, Response
from pydantic import ValidationError as PydanticValidationError
from sqlalchemy.exc import NoResultFound
from starlette.exceptions import HTTPException as StarletteHTTPException

from keystone.kernel.context import (
    JSON_API_CONTENT_TYPE,
    JSON_CONTENT_TYPE,
    RequestContext,
    get_request_context,
)
from keystone.kernel.errors import RequestError, ValidationError
from keystone.logging_config import get_logger
from keystone.schemas.common import ErrorResponse, ValidationFieldError, ValidationResponse

if TYPE_CHECKING:
    from keystone.kernel.app import Kernel

logger = get_logger(__name__)


class ErrorKind(str, Enum):
    """Response branch chosen for a request error."""

    FORBIDDEN = "forbidden"
    NOT_FOUND = "not_found"
    VALIDATION = "validation"
    INTERNAL = "internal"
    OTHER = "other"


@dataclass(frozen=True)
class ErrorClassification:
    kind: ErrorKind
    status_code: int


_KIND_BY_STATUS = {
    401: ErrorKind.FORBIDDEN,
    404: ErrorKind.NOT_FOUND,
    500: ErrorKind.INTERNAL,
}

_PAGE_TITLES = {
    ErrorKind.FORBIDDEN: "Restricted access",
    ErrorKind.NOT_FOUND: "Not found",
    ErrorKind.VALIDATION: "Bad request",
    ErrorKind.INTERNAL: "Internal server error",
}


def _field_error_from_pydantic(error: Mapping[str, Any]) -> ValidationFieldError:
    ctx = error.get("ctx") or {}
    return ValidationFieldError(
        field=".".join(str(loc) for loc in error.get("loc", ())),
        tag=str(error.get("type", "")),
        value=",".join(str(v) for v in ctx.values()),
        message=str(error.get("msg", "")),
    )


def validation_field_errors(exc: BaseException) -> Optional[List[ValidationFieldError]]:
    """Field failures carried by exc, or None if exc is not a validation error."""
    if isinstance(exc, ValidationError):
        return list(exc.field_errors)
    if isinstance(exc, (RequestValidationError, PydanticValidationError)):
        return [_field_error_from_pydantic(e) for e in exc.errors()]
    return None


def explicit_status_code(exc: BaseException) -> Optional[int]:
    if isinstance(exc, RequestError):
        return exc.status_code
    if isinstance(exc, StarletteHTTPException):
        return exc.status_code
    return None


def classify_error(exc: BaseException) -> ErrorClassification:
    """
    Resolve the response branch and status for exc.

    Order:
    1. Validation failures - always 400
    2. Explicit status code on the error
    3. Record not found - 404
    4. Anything else - 500
    """
    if validation_field_errors(exc) is not None:
        return ErrorClassification(ErrorKind.VALIDATION, 400)

    code = explicit_status_code(exc)
    if code is None and isinstance(exc, NoResultFound):
        code = 404
    if code is None:
        code = 500

    return ErrorClassification(_KIND_BY_STATUS.get(code, ErrorKind.OTHER), code)


def _status_phrase(code: int) -> str:
    try:
        return HTTPStatus(code).phrase
    except ValueError:
        return "Error"


class ErrorDispatcher:
    """Turn request-phase errors into responses. Never raises."""

    def __init__(self, kernel: "Kernel"):
        self.kernel = kernel

    async def handle(self, request: Request, exc: Exception) -> Response:
        """FastAPI exception handler entry point."""
        classification = classify_error(exc)
        ctx = get_request_context(request)

        if classification.kind == ErrorKind.VALIDATION:
            response = self.validation_error(request, ctx, exc)
        elif classification.kind == ErrorKind.OTHER:
            response = self.other_error(request, ctx, exc, classification.status_code)
        else:
            if classification.kind == ErrorKind.INTERNAL:
                self._log_internal_error(exc, classification.status_code)
            response = self.status_error(request, ctx, exc, classification)

        if isinstance(exc, StarletteHTTPException) and exc.headers:
            response.headers.update(exc.headers)
        request_id = getattr(request.state, "request_id", None)
        if request_id:
            response.headers.setdefault("X-Request-ID", request_id)
        return response

    def message_for(self, exc: BaseException, status_code: int) -> str:
        if status_code >= 500 and not self.kernel.settings.debug:
            return _status_phrase(status_code)
        if isinstance(exc, RequestError) and exc.detail:
            return exc.detail
        if isinstance(exc, StarletteHTTPException) and isinstance(exc.detail, str):
            return exc.detail
        if status_code >= 500:
            return f"{type(exc).__name__}: {exc}"
        return _status_phrase(status_code)

    def json_envelope(
        self,
        status_code: int,
        message: str,
        errors: Optional[List[ValidationFieldError]] = None,
    ) -> JSONResponse:
        body = ErrorResponse(status=status_code, message=message, errors=errors or [])
        return JSONResponse(status_code=status_code, content=body.model_dump())

    def status_error(
        self,
        request: Request,
        ctx: RequestContext,
        exc: BaseException,
        classification: ErrorClassification,
    ) -> Response:
        """Forbidden, not found and internal error branches."""
        code = classification.status_code

        if ctx.response_content_type == JSON_CONTENT_TYPE:
            return self.json_envelope(code, self.message_for(exc, code))
        if ctx.response_content_type == JSON_API_CONTENT_TYPE:
            return JSONResponse(status_code=code, content={})

        ctx.title = _PAGE_TITLES[classification.kind]
        return self.render_page(request, ctx, f"site/{code}", code)

    def validation_error(self, request: Request, ctx: RequestContext, exc: BaseException) -> Response:
        resp = ValidationResponse(errors=validation_field_errors(exc) or [])

        if ctx.response_content_type == JSON_CONTENT_TYPE:
            return self.json_envelope(400, self.message_for(exc, 400), resp.errors)
        if ctx.response_content_type == JSON_API_CONTENT_TYPE:
            return JSONResponse(status_code=400, content=resp.model_dump())

        ctx.title = _PAGE_TITLES[ErrorKind.VALIDATION]
        return self.render_page(request, ctx, "site/400", 400, validation=resp)

    def other_error(self, request: Request, ctx: RequestContext, exc: BaseException, code: int) -> Response:
        """Status codes without a dedicated branch serve the static site/<code>.html page."""
        error_page = Path(self.kernel.configuration.get_f("TEMPLATE_FOLDER", "./templates")) / "site" / f"{code}.html"
        logger.warning(
            "Unknown error status code",
            extra={"error_page": str(error_page), "status_code": code, "error": repr(exc)},
        )

        if ctx.response_content_type == JSON_CONTENT_TYPE:
            return self.json_envelope(code, self.message_for(exc, code))
        if ctx.response_content_type == JSON_API_CONTENT_TYPE:
            return JSONResponse(status_code=code, content={})

        if error_page.is_file():
            return FileResponse(error_page, status_code=code, media_type="text/html")

        logger.error("Error page not found", extra={"error_page": str(error_page), "status_code": code})
        return HTMLResponse("", status_code=code)

    def render_page(
        self,
        request: Request,
        ctx: RequestContext,
        template: str,
        status_code: int,
        **extra: Any,
    ) -> Response:
        """Render an error template; a render failure degrades to an empty page."""
        try:
            return self.kernel.renderer.render(template, ctx.page_context(request, **extra), status_code)
        except Exception as exc:
            # RenderError or a failure inside a template function
            logger.error("Error page render failed", extra={"template": template, "error": str(exc)})
            return HTMLResponse("", status_code=status_code)

    def _log_internal_error(self, exc: BaseException, code: int) -> None:
        fields: Dict[str, Any] = {"code": code, "error": repr(exc)}
        if isinstance(exc, (RequestError, StarletteHTTPException)):
            logger.warning("Internal server error", extra=fields)
        else:
            logger.error("Unhandled exception", extra=fields, exc_info=exc)
