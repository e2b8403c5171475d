"""
Per-request context stored on `request.state.ctx`.
"""

from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any, Dict, List

from fastapi import Request

from keystone.kernel.permissions import UNAUTHENTICATED_ROLE

if TYPE_CHECKING:
    from keystone.kernel.app import Kernel

JSON_CONTENT_TYPE = "application/json"
JSON_API_CONTENT_TYPE = "application/vnd.api+json"
HTML_CONTENT_TYPE = "text/html"


@dataclass
class RequestContext:
    """Negotiated response type, page title and caller roles for one request."""

    kernel: "Kernel"
    response_content_type: str = HTML_CONTENT_TYPE
    title: str = ""
    roles: List[str] = field(default_factory=lambda: [UNAUTHENTICATED_ROLE])

    def can(self, permission: str) -> bool:
        return self.kernel.can(permission, self.roles)

    def page_context(self, request: Request, **extra: Any) -> Dict[str, Any]:
        """Variables passed to a rendered template."""
        context: Dict[str, Any] = {
            "request": request,
            "ctx": self,
            "title": self.title,
        }
        context.update(extra)
        return context


def get_request_context(request: Request) -> RequestContext:
    """Return the context set by ContentNegotiationMiddleware, creating one if absent."""
    ctx = getattr(request.state, "ctx", None)
    if ctx is None:
        kernel = request.app.state.kernel
        ctx = RequestContext(
            kernel=kernel,
            response_content_type=kernel.negotiate_content_type(
                request.headers.get("accept"), request.url.path
            ),
        )
        request.state.ctx = ctx
    return ctx
