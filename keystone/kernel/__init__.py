"""
Kernel Layer

The foundational components every plugin builds on:
- Event bus and the ordered lifecycle phases
- Role table (RBAC with the administrator bypass)
- Resource registrar (generic CRUD routes)
- Error dispatcher (content-negotiated error responses)

Architectural invariants:
- Bootstrap runs once, sequentially, before the listener starts
- Mandatory lifecycle failures abort startup
- Request-phase errors never crash the process
"""

from keystone.kernel.context import RequestContext
from keystone.kernel.errors import (
    ConfigurationError,
    KernelError,
    LifecycleEventError,
    PluginInitError,
    RenderError,
    RequestError,
    TemplateLoadError,
    ValidationError,
)
from keystone.kernel.events import EventBus, EventPayload, FireResult, LifecyclePhase
from keystone.kernel.permissions import ADMINISTRATOR_ROLE, Role, RoleTable
from keystone.kernel.resources import HTTPController, Resource, RouteGroup
from keystone.kernel.server_errors import ErrorDispatcher, ErrorKind, classify_error

__all__ = [
    "RequestContext",
    # Events
    "EventBus",
    "EventPayload",
    "FireResult",
    "LifecyclePhase",
    # Access control
    "ADMINISTRATOR_ROLE",
    "Role",
    "RoleTable",
    # Resources
    "HTTPController",
    "Resource",
    "RouteGroup",
    # Errors
    "ErrorDispatcher",
    "ErrorKind",
    "classify_error",
    "ConfigurationError",
    "KernelError",
    "LifecycleEventError",
    "PluginInitError",
    "RenderError",
    "RequestError",
    "TemplateLoadError",
    "ValidationError",
]
