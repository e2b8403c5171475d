"""
Content negotiation middleware.

- Resolves the response content type from the Accept header against the
  kernel's registered response formats
- Stores a RequestContext on request.state for handlers and the error
  dispatcher
"""

from typing import Callable, List, Mapping, Optional, Tuple

from fastapi import Request, Response
from starlette.middleware.base import BaseHTTPMiddleware

from keystone.kernel.context import (
    HTML_CONTENT_TYPE,
    JSON_CONTENT_TYPE,
    RequestContext,
)

API_PATH_PREFIX = "/api"


def parse_accept(accept: Optional[str]) -> List[str]:
    """Media types from an Accept header, highest quality first."""
    if not accept:
        return []

    weighted: List[Tuple[float, int, str]] = []
    for position, part in enumerate(accept.split(",")):
        pieces = [p.strip() for p in part.split(";")]
        media_type = pieces[0].lower()
        if not media_type:
            continue
        quality = 1.0
        for param in pieces[1:]:
            if param.startswith("q="):
                try:
                    quality = float(param[2:])
                except ValueError:
                    quality = 0.0
        if quality > 0:
            weighted.append((-quality, position, media_type))

    return [media_type for _, _, media_type in sorted(weighted)]


def resolve_content_type(
    accept: Optional[str],
    path: str,
    formats: Mapping[str, str],
) -> str:
    """
    Pick the response content type for a request.

    The first accepted media type present in formats wins. Wildcards or an
    absent header fall back to JSON under /api and HTML elsewhere.
    """
    for media_type in parse_accept(accept):
        if media_type in formats:
            return media_type

    if path == API_PATH_PREFIX or path.startswith(API_PATH_PREFIX + "/"):
        return JSON_CONTENT_TYPE
    return HTML_CONTENT_TYPE


class ContentNegotiationMiddleware(BaseHTTPMiddleware):
    """Attach a RequestContext with the negotiated response type."""

    async def dispatch(self, request: Request, call_next: Callable) -> Response:
        kernel = request.app.state.kernel
        request.state.ctx = RequestContext(
            kernel=kernel,
            response_content_type=kernel.negotiate_content_type(
                request.headers.get("accept"), request.url.path
            ),
        )
        return await call_next(request)
