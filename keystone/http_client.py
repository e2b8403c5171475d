"""
Outbound HTTP client owned by a kernel.

The kernel builds one client during bootstrap so its plugins reuse one
connection pool instead of opening a client per call, and closes it on
shutdown. Plugins reach it as `kernel.http`, or through the `HttpClient`
dependency in request handlers.
"""

import httpx

from keystone.logging_config import get_logger

logger = get_logger(__name__)


def create_client(timeout: float = 30.0, user_agent: str = "keystone") -> httpx.AsyncClient:
    """Build the kernel's shared client."""
    client = httpx.AsyncClient(
        timeout=timeout,
        follow_redirects=True,
        headers={"User-Agent": user_agent},
    )
    logger.debug("HTTP client initialized", extra={"timeout": timeout, "user_agent": user_agent})
    return client
