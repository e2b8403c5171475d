"""
Application kernel.

The Kernel owns configuration, databases, the role table, plugins,
resources, route groups and template state for the process lifetime, and
runs the bootstrap pipeline that wires them into a FastAPI application.
It is passed explicitly to every plugin hook and event handler.
"""

import asyncio
from datetime import datetime, timezone
from typing import Any, Callable, Dict, List, Optional, Tuple, Type, TypeVar, Union

import httpx
import uvicorn
from fastapi import FastAPI
from fastapi.exceptions import RequestValidationError
from pydantic import ValidationError as PydanticValidationError
from sqlalchemy.exc import NoResultFound, SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncEngine
from starlette.exceptions import HTTPException as StarletteHTTPException

from keystone.api.middleware import (
    ContentNegotiationMiddleware,
    ErrorBoundaryMiddleware,
    RequestIdMiddleware,
)
from keystone.api.middleware.content_negotiation import resolve_content_type
from keystone.config import Settings
from keystone.http_client import create_client
from keystone.database import SUPPORTED_ENGINES, create_database_engine, ping
from keystone.kernel.configuration import Configuration
from keystone.kernel.context import HTML_CONTENT_TYPE, JSON_API_CONTENT_TYPE, JSON_CONTENT_TYPE
from keystone.kernel.errors import ConfigurationError, KernelError, RequestError, TemplateLoadError
from keystone.kernel.events import EventBus, EventPayload, LifecyclePhase
from keystone.kernel.permissions import RoleTable, load_roles_definition
from keystone.kernel.resources import HTTPController, Resource, RouteGroup, mount_resource
from keystone.kernel.server_errors import ErrorDispatcher
from keystone.kernel.templates import TemplateRenderer, TemplateSet, load_templates
from keystone.logging_config import get_logger
from keystone.plugins.base import Plugin, PluginRegistry
from keystone.schemas.common import HealthResponse

logger = get_logger(__name__)

T = TypeVar("T")

DEFAULT_RESPONSE_FORMATS = {
    JSON_CONTENT_TYPE: "json",
    JSON_API_CONTENT_TYPE: "jsonapi",
    HTML_CONTENT_TYPE: "html",
}

# Exceptions routed to the error dispatcher. Exception is the catch-all for
# errors raised before ErrorBoundaryMiddleware is installed or outside it.
_DISPATCHED_EXCEPTIONS: Tuple[Type[BaseException], ...] = (
    StarletteHTTPException,
    RequestValidationError,
    PydanticValidationError,
    RequestError,
    NoResultFound,
    Exception,
)


class Kernel:
    """
    Central owning object for one application.

    Usage:
        kernel = Kernel()
        kernel.register_plugin(BlogPlugin())
        await kernel.bootstrap()
        await kernel.serve()
    """

    def __init__(
        self,
        settings: Optional[Settings] = None,
        roles_definition: Optional[str] = None,
    ):
        self.init_time = datetime.now(timezone.utc)
        self.events = EventBus("app")
        self.configuration = Configuration(settings)
        self.settings = self.configuration.settings

        self.db: Optional[AsyncEngine] = None
        self.databases: Dict[str, AsyncEngine] = {}
        self.http: Optional[httpx.AsyncClient] = None

        self.plugins = PluginRegistry()
        self.models: Dict[str, Any] = {}
        self.resources: Dict[str, Resource] = {}

        self.roles_definition = (
            roles_definition
            if roles_definition is not None
            else load_roles_definition(self.configuration.get("ROLES_FILE") or None)
        )
        self.roles = RoleTable()

        self.template_functions: Dict[str, Callable[..., Any]] = {
            "now": lambda: datetime.now(timezone.utc),
            "config": self.configuration.get,
        }
        self.templates = TemplateSet()
        self.renderer = TemplateRenderer(self.templates)
        self.response_formats: Dict[str, str] = dict(DEFAULT_RESPONSE_FORMATS)

        self.completed_steps: List[str] = []
        self._bootstrap_started = False

        self.router = FastAPI(
            title=self.settings.project_name,
            version=self.settings.version,
            docs_url="/docs" if self.settings.debug else None,
            redoc_url=None,
        )
        self.router.state.kernel = self
        self._router_groups: Dict[str, RouteGroup] = {}
        self._api_router_groups: Dict[str, RouteGroup] = {}

        self.error_dispatcher = ErrorDispatcher(self)
        for exc_class in _DISPATCHED_EXCEPTIONS:
            self.router.add_exception_handler(exc_class, self.error_dispatcher.handle)

        # Last added is outermost: request id wraps negotiation
        self.router.add_middleware(ContentNegotiationMiddleware)
        self.router.add_middleware(RequestIdMiddleware)

        self.router.add_api_route("/health", self.health_check, methods=["GET"], tags=["Health"])

        self.set_router_group("main", "/")
        self.set_router_group("public", "/public")
        api = self.set_router_group("api", "/api")
        api.get("", self.health_check, tags=["Health"])

    # Plugins

    def register_plugin(self, plugin: Plugin) -> None:
        """Add plugin to the registry. Duplicate names raise ConfigurationError."""
        self.plugins.register(plugin)

    # Accessors

    def get_router(self) -> FastAPI:
        return self.router

    def get_templates(self) -> TemplateSet:
        return self.templates

    async def health_check(self) -> HealthResponse:
        """Check application health."""
        return HealthResponse(status="ok", version=self.settings.version)

    # Bootstrap

    def payload(self, topic: Union[str, LifecyclePhase], **data: Any) -> EventPayload:
        name = topic.value if isinstance(topic, LifecyclePhase) else topic
        return EventPayload(kernel=self, topic=name, data=data)

    def bootstrap_pipeline(self) -> List[Tuple[str, Callable[[], Any]]]:
        """
        Bootstrap steps in their fixed order.

        Lifecycle phases are mandatory: a failing handler aborts bootstrap
        with LifecycleEventError.
        """

        def phase(topic: LifecyclePhase) -> Tuple[str, Callable[[], Any]]:
            return topic.value, lambda: self.events.must_trigger(topic, self.payload(topic))

        return [
            ("roles", self._decode_roles),
            ("plugins", lambda: self.plugins.init_all(self)),
            phase(LifecyclePhase.CONFIGURATION),
            ("database", self._init_default_database),
            ("http_client", self._init_http_client),
            phase(LifecyclePhase.BIND_MIDDLEWARES),
            phase(LifecyclePhase.BIND_ROUTES),
            phase(LifecyclePhase.SET_RESPONSE_FORMATS),
            phase(LifecyclePhase.SET_TEMPLATE_FUNCTIONS),
            ("templates", self.load_templates),
            ("renderer", self._attach_renderer),
            phase(LifecyclePhase.BOOTSTRAP),
        ]

    async def bootstrap(self) -> None:
        """
        Run the bootstrap pipeline once.

        Raises:
            ConfigurationError: invalid roles, missing DB_URI or unsupported
                DB_ENGINE
            PluginInitError: a plugin init hook failed
            LifecycleEventError: a mandatory phase handler failed
            TemplateLoadError: templates did not parse
            KernelError: database connection failed or bootstrap already ran
        """
        if self._bootstrap_started:
            raise KernelError("Kernel.bootstrap already ran")
        self._bootstrap_started = True

        logger.debug("Kernel bootstrap running", extra={"plugins": self.plugins.names()})

        for step, run in self.bootstrap_pipeline():
            result = run()
            if asyncio.iscoroutine(result):
                await result
            self.completed_steps.append(step)

        # Added last: wraps every middleware bound during bootstrap
        self.router.add_middleware(ErrorBoundaryMiddleware, handler=self.error_dispatcher.handle)

        logger.info(
            "Kernel bootstrap complete",
            extra={
                "plugins": len(self.plugins),
                "resources": len(self.resources),
                "templates": len(self.templates),
            },
        )

    def _decode_roles(self) -> None:
        self.roles = RoleTable.decode(self.roles_definition)
        logger.debug("Roles loaded", extra={"roles": self.roles.names()})

    async def _init_default_database(self) -> None:
        await self.init_database("default", self.configuration.get_f("DB_ENGINE", "sqlite"), True)

    def _init_http_client(self) -> None:
        self.http = create_client(
            timeout=float(self.configuration.get_f("HTTP_CLIENT_TIMEOUT", "30")),
            user_agent=f"{self.settings.project_name}/{self.settings.version}",
        )

    def _attach_renderer(self) -> None:
        self.renderer = TemplateRenderer(self.templates)

    # Databases

    async def init_database(self, name: str, engine: str, is_default: bool = False) -> AsyncEngine:
        """
        Open a database connection and register it under name.

        Raises:
            ConfigurationError: DB_URI missing or engine unsupported
            KernelError: the connection could not be opened
        """
        db_uri = self.configuration.get("DB_URI")
        slow_threshold = self.configuration.get_int("DB_SLOW_THRESHOLD", 400)
        log_query = self.configuration.get_f("LOG_QUERY", "")

        logger.debug(
            "Starting database",
            extra={
                "database": name,
                "engine": engine,
                "db_slow_threshold": slow_threshold,
                "log_query": log_query,
            },
        )

        if not db_uri:
            raise ConfigurationError("DB_URI environment variable is required")
        if engine not in SUPPORTED_ENGINES:
            raise ConfigurationError(
                f"Invalid database engine '{engine}'. Options available: mysql or sqlite"
            )

        db = create_database_engine(
            engine,
            db_uri,
            slow_threshold_ms=slow_threshold,
            log_query=bool(log_query),
        )
        try:
            await ping(db)
        except (SQLAlchemyError, OSError) as exc:
            await db.dispose()
            raise KernelError(f"Error on database connection '{name}': {exc}") from exc

        self.databases[name] = db
        if is_default:
            self.db = db
        return db

    # Route groups and resources

    def set_router_group(self, name: str, path: str) -> RouteGroup:
        """Create the named group once; later calls return the cached group."""
        if name not in self._router_groups:
            self._router_groups[name] = RouteGroup(self.router, path)
        return self._router_groups[name]

    def get_router_group(self, name: str) -> Optional[RouteGroup]:
        return self._router_groups.get(name)

    def set_api_router_group(self, name: str, path: str) -> RouteGroup:
        """Named group nested under the `api` group, created once."""
        if name not in self._api_router_groups:
            self._api_router_groups[name] = self._router_groups["api"].group(path)
        return self._api_router_groups[name]

    def get_api_router_group(self, name: str) -> Optional[RouteGroup]:
        return self._api_router_groups.get(name)

    def set_resource(self, name: str, controller: HTTPController, group: RouteGroup) -> Resource:
        """
        Mount the CRUD routes of controller on group and record the resource.

        Raises:
            ConfigurationError: a resource with this name already exists
        """
        if name in self.resources:
            raise ConfigurationError(f"Resource '{name}' is already registered")
        resource = mount_resource(name, controller, group)
        self.resources[name] = resource
        logger.debug("Resource registered", extra={"resource": name, "prefix": group.prefix})
        return resource

    def add_middleware(self, middleware_class: Any, **options: Any) -> None:
        """Install an ASGI middleware; only valid before the server starts."""
        self.router.add_middleware(middleware_class, **options)

    # Models

    def set_model(self, name: str, model: Any) -> None:
        self.models[name] = model

    def get_model(self, name: str, expected: Optional[Type[T]] = None) -> Any:
        """
        Return the model registered under name, or None.

        With expected, the entry must be that class (or a subclass of it, or
        an instance of it).
        """
        model = self.models.get(name)
        if model is None or expected is None:
            return model
        if isinstance(model, expected) or (isinstance(model, type) and issubclass(model, expected)):
            return model
        raise TypeError(f"Model '{name}' is {model!r}, expected {expected.__name__}")

    # Templates and response formats

    def set_template_function(self, name: str, function: Callable[..., Any]) -> None:
        self.template_functions[name] = function

    def set_response_format(self, media_type: str, name: str) -> None:
        self.response_formats[media_type.lower()] = name

    def negotiate_content_type(self, accept: Optional[str], path: str) -> str:
        return resolve_content_type(accept, path, self.response_formats)

    def load_templates(self) -> None:
        """
        Compile templates from TEMPLATE_FOLDER unless TEMPLATE_DISABLE is set.

        On a parse failure the partial set is installed before the error is
        raised.
        """
        root_dir = self.configuration.get_f("TEMPLATE_FOLDER", "./templates")
        if self.configuration.get_bool("TEMPLATE_DISABLE"):
            logger.debug("Templating disabled")
            return

        logger.debug(
            "Loading templates",
            extra={"root_dir": root_dir, "functions": len(self.template_functions)},
        )
        try:
            self.templates = load_templates(root_dir, self.template_functions)
        except TemplateLoadError as exc:
            logger.error("Error on parse templates", extra={"root_dir": root_dir, "error": str(exc.cause)})
            self.templates = exc.templates if exc.templates is not None else TemplateSet()
            raise

        logger.debug("Templates loaded", extra={"count": len(self.templates)})

    # Access control

    def can(self, permission: str, user_roles: List[str]) -> bool:
        return self.roles.can(permission, user_roles)

    # Maintenance

    async def migrate(self) -> None:
        """Fire the migrate topic. Handlers run their schema migrations."""
        error, _ = await self.events.fire(LifecyclePhase.MIGRATE, self.payload(LifecyclePhase.MIGRATE))
        if error is not None:
            raise KernelError(f"Kernel.migrate error: {error}") from error

    async def shutdown(self) -> None:
        """Dispose database engines and close the HTTP client."""
        for name, db in list(self.databases.items()):
            await db.dispose()
            logger.debug("Database disposed", extra={"database": name})
        if self.http is not None:
            await self.http.aclose()
            self.http = None

    # Server

    async def serve(self) -> None:
        """
        Bootstrap if needed, then serve the application with uvicorn on PORT.

        Engines and the HTTP client are released on exit, including when
        bootstrap fails part way.
        """
        try:
            if not self._bootstrap_started:
                await self.bootstrap()

            port = self.configuration.get_int("PORT", 8080)
            logger.info("Server listening on port %s", port)

            config = uvicorn.Config(
                self.router,
                host=self.settings.host,
                port=port,
                log_config=None,
            )
            await uvicorn.Server(config).serve()
        finally:
            await self.shutdown()

    def start_http_server(self) -> None:
        asyncio.run(self.serve())
