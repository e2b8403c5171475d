"""
Route groups and generic CRUD resources.
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Any, Callable, Iterable

from fastapi import FastAPI, Request


def join_path(prefix: str, path: str) -> str:
    """Join a group prefix and a route path without doubled slashes."""
    joined = prefix.rstrip("/") + ("/" + path.lstrip("/") if path else "")
    return joined or "/"


class RouteGroup:
    """
    A path prefix on the application router.

    Routes are registered on the FastAPI application directly, so a group
    can be extended at any time before the server starts.
    """

    def __init__(self, app: FastAPI, prefix: str = "/"):
        self.app = app
        self.prefix = prefix

    def path(self, path: str = "") -> str:
        return join_path(self.prefix, path)

    def add(self, methods: Iterable[str], path: str, endpoint: Callable[..., Any], **kwargs: Any) -> None:
        self.app.add_api_route(self.path(path), endpoint, methods=list(methods), **kwargs)

    def get(self, path: str, endpoint: Callable[..., Any], **kwargs: Any) -> None:
        self.add(["GET"], path, endpoint, **kwargs)

    def post(self, path: str, endpoint: Callable[..., Any], **kwargs: Any) -> None:
        self.add(["POST"], path, endpoint, **kwargs)

    def put(self, path: str, endpoint: Callable[..., Any], **kwargs: Any) -> None:
        self.add(["PUT"], path, endpoint, **kwargs)

    def patch(self, path: str, endpoint: Callable[..., Any], **kwargs: Any) -> None:
        self.add(["PATCH"], path, endpoint, **kwargs)

    def delete(self, path: str, endpoint: Callable[..., Any], **kwargs: Any) -> None:
        self.add(["DELETE"], path, endpoint, **kwargs)

    def group(self, path: str) -> "RouteGroup":
        """Child group nested under this prefix."""
        return RouteGroup(self.app, self.path(path))

    def __repr__(self) -> str:
        return f"<RouteGroup prefix={self.prefix!r}>"


class HTTPController(ABC):
    """
    CRUD controller bound by Kernel.set_resource.

    Every action receives the request; the record id, when present, is
    `request.path_params["id"]`. Actions return a Response or data that
    FastAPI serializes.
    """

    @abstractmethod
    async def query(self, request: Request) -> Any:
        pass

    @abstractmethod
    async def count(self, request: Request) -> Any:
        pass

    @abstractmethod
    async def create(self, request: Request) -> Any:
        pass

    @abstractmethod
    async def find_one(self, request: Request) -> Any:
        pass

    @abstractmethod
    async def update(self, request: Request) -> Any:
        pass

    @abstractmethod
    async def delete(self, request: Request) -> Any:
        pass


@dataclass(frozen=True)
class Resource:
    """A named CRUD endpoint group."""

    name: str
    controller: HTTPController
    group: RouteGroup


def mount_resource(name: str, controller: HTTPController, group: RouteGroup) -> Resource:
    """Mount the eight standard CRUD routes on group."""
    options = {"response_model": None, "tags": [name]}

    group.get("", controller.query, name=f"{name}.query", **options)
    group.get("/count", controller.count, name=f"{name}.count", **options)
    group.post("", controller.create, name=f"{name}.create", **options)
    group.get("/{id}", controller.find_one, name=f"{name}.find_one", **options)
    group.add(["POST", "PATCH", "PUT"], "/{id}", controller.update, name=f"{name}.update", **options)
    group.delete("/{id}", controller.delete, name=f"{name}.delete", **options)

    return Resource(name=name, controller=controller, group=group)
