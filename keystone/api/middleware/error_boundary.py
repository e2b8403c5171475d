"""
Error boundary middleware.

Installed outermost once bootstrap finishes. Unhandled exceptions are
answered by the kernel error dispatcher here, so they never reach
Starlette's ServerErrorMiddleware, which would re-raise them to the
server after responding.
"""

from typing import Awaitable, Callable

from fastapi import Request, Response
from starlette.middleware.base import BaseHTTPMiddleware
from starlette.types import ASGIApp

ErrorHandler = Callable[[Request, Exception], Awaitable[Response]]


class ErrorBoundaryMiddleware(BaseHTTPMiddleware):
    """Turn any exception raised below into a dispatched error response."""

    def __init__(self, app: ASGIApp, handler: ErrorHandler):
        super().__init__(app)
        self.handler = handler

    async def dispatch(self, request: Request, call_next: Callable) -> Response:
        try:
            return await call_next(request)
        except Exception as exc:
            return await self.handler(request, exc)
