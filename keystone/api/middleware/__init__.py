from keystone.api.middleware.content_negotiation import ContentNegotiationMiddleware
from keystone.api.middleware.error_boundary import ErrorBoundaryMiddleware
from keystone.api.middleware.request_id import REQUEST_ID_HEADER, RequestIdMiddleware

__all__ = [
    "ContentNegotiationMiddleware",
    "ErrorBoundaryMiddleware",
    "REQUEST_ID_HEADER",
    "RequestIdMiddleware",
]
