"""
Pytest fixtures for kernel tests.
"""

from pathlib import Path
from typing import Any, AsyncGenerator, Callable, Dict, List

import pytest
import pytest_asyncio
from fastapi import Request
from httpx import ASGITransport, AsyncClient

from keystone.config import Settings
from keystone.kernel.app import Kernel
from keystone.kernel.events import EventPayload, LifecyclePhase
from keystone.kernel.resources import HTTPController
from keystone.plugins import Plugin

ERROR_PAGES = {
    "site/400.html": "<h1>{{ title }}</h1>{% for e in validation.errors %}<p>{{ e.field }}</p>{% endfor %}",
    "site/401.html": "<h1>{{ title }}</h1>",
    "site/404.html": "<h1>{{ title }}</h1>",
    "site/500.html": "<h1>{{ title }}</h1>",
}


def write_templates(root: Path, templates: Dict[str, str]) -> Path:
    for name, body in templates.items():
        path = root / name
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_text(body, encoding="utf-8")
    return root


@pytest.fixture
def template_dir(tmp_path: Path) -> Path:
    """Template root holding the error pages."""
    return write_templates(tmp_path / "templates", ERROR_PAGES)


@pytest.fixture
def make_settings(tmp_path: Path, template_dir: Path) -> Callable[..., Settings]:
    """Factory for isolated settings backed by a temp SQLite file."""

    def _make(**overrides: Any) -> Settings:
        values: Dict[str, Any] = {
            "db_engine": "sqlite",
            "db_uri": str(tmp_path / "test.db"),
            "template_folder": str(template_dir),
            "environment": "test",
        }
        values.update(overrides)
        return Settings(_env_file=None, **values)

    return _make


@pytest.fixture
def settings(make_settings: Callable[..., Settings]) -> Settings:
    return make_settings()


class WidgetController(HTTPController):
    """Controller that records every dispatched action."""

    def __init__(self) -> None:
        self.calls: List[tuple] = []

    async def query(self, request: Request) -> Any:
        self.calls.append(("query", None))
        return {"items": [], "total": 0}

    async def count(self, request: Request) -> Any:
        self.calls.append(("count", None))
        return {"count": 0}

    async def create(self, request: Request) -> Any:
        self.calls.append(("create", None))
        return {"created": True}

    async def find_one(self, request: Request) -> Any:
        record_id = request.path_params["id"]
        self.calls.append(("find_one", record_id))
        return {"id": record_id}

    async def update(self, request: Request) -> Any:
        record_id = request.path_params["id"]
        self.calls.append(("update", record_id))
        return {"id": record_id, "method": request.method}

    async def delete(self, request: Request) -> Any:
        record_id = request.path_params["id"]
        self.calls.append(("delete", record_id))
        return {"deleted": record_id}


class WidgetsPlugin(Plugin):
    """Binds the widgets resource under /widgets and /api/widgets."""

    def __init__(self) -> None:
        self.controller = WidgetController()
        self.phases: List[str] = []

    @property
    def name(self) -> str:
        return "widgets"

    def init(self, kernel: Kernel) -> None:
        for phase in (
            LifecyclePhase.CONFIGURATION,
            LifecyclePhase.BIND_MIDDLEWARES,
            LifecyclePhase.BIND_ROUTES,
            LifecyclePhase.SET_RESPONSE_FORMATS,
            LifecyclePhase.SET_TEMPLATE_FUNCTIONS,
            LifecyclePhase.BOOTSTRAP,
        ):
            kernel.events.subscribe(phase, self._record)
        kernel.events.subscribe(LifecyclePhase.BIND_ROUTES, self.bind_routes)

    def _record(self, payload: EventPayload) -> None:
        self.phases.append(payload.topic)

    def bind_routes(self, payload: EventPayload) -> None:
        kernel = payload.kernel
        kernel.set_resource("widgets", self.controller, kernel.set_router_group("widgets", "/widgets"))
        kernel.set_resource("api_widgets", self.controller, kernel.set_api_router_group("widgets", "/widgets"))


@pytest.fixture
def widgets_plugin() -> WidgetsPlugin:
    return WidgetsPlugin()


@pytest_asyncio.fixture
async def kernel(settings: Settings, widgets_plugin: WidgetsPlugin) -> AsyncGenerator[Kernel, None]:
    """Bootstrapped kernel with the widgets plugin."""
    app_kernel = Kernel(settings)
    app_kernel.register_plugin(widgets_plugin)
    await app_kernel.bootstrap()
    try:
        yield app_kernel
    finally:
        await app_kernel.shutdown()


@pytest_asyncio.fixture
async def client(kernel: Kernel) -> AsyncGenerator[AsyncClient, None]:
    """Async client over the kernel application; server errors become responses."""
    async with AsyncClient(
        transport=ASGITransport(app=kernel.router, raise_app_exceptions=False),
        base_url="http://test",
    ) as ac:
        yield ac
