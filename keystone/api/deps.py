"""
FastAPI dependencies for the kernel, request context, authorization,
database sessions and the outbound HTTP client.
"""

from typing import TYPE_CHECKING, Annotated, AsyncGenerator, Callable

import httpx
from fastapi import Depends, HTTPException, Request, status
from sqlalchemy.ext.asyncio import AsyncSession

from keystone.database import iter_session
from keystone.kernel.context import RequestContext, get_request_context
from keystone.kernel.errors import KernelError

if TYPE_CHECKING:
    from keystone.kernel.app import Kernel


def get_kernel(request: Request) -> "Kernel":
    """The kernel that owns the application serving this request."""
    return request.app.state.kernel


async def get_db(request: Request) -> AsyncGenerator[AsyncSession, None]:
    """Dependency that yields a session on the default database."""
    kernel = get_kernel(request)
    if kernel.db is None:
        raise KernelError("Default database is not initialized; run Kernel.bootstrap first")
    async for session in iter_session(kernel.db):
        yield session


def get_http_client(request: Request) -> httpx.AsyncClient:
    """The kernel's outbound HTTP client."""
    client = get_kernel(request).http
    if client is None:
        raise KernelError("HTTP client is not initialized; run Kernel.bootstrap first")
    return client


DbSession = Annotated[AsyncSession, Depends(get_db)]
HttpClient = Annotated[httpx.AsyncClient, Depends(get_http_client)]
Ctx = Annotated[RequestContext, Depends(get_request_context)]


def require_permission(permission: str) -> Callable:
    """
    Dependency that requires the caller roles to grant permission.

    Usage:
        @group.get("/reports", dependencies=[Depends(require_permission("find_report"))])
    """

    async def _check(ctx: Ctx) -> RequestContext:
        if not ctx.can(permission):
            raise HTTPException(
                status_code=status.HTTP_401_UNAUTHORIZED,
                detail=f"Insufficient permissions. Required: {permission}",
            )
        return ctx

    return _check
