"""
In-process event bus and the kernel lifecycle phases.

Plugins subscribe handlers to topics; the kernel fires the lifecycle
topics in the order given by Kernel.bootstrap_pipeline. Firing is synchronous
from the caller's point of view: every handler for a topic has finished
before `fire` returns.
"""

import inspect
from collections import defaultdict
from dataclasses import dataclass, field
from enum import Enum
from typing import TYPE_CHECKING, Any, Awaitable, Callable, Dict, List, NamedTuple, Optional, Union

from keystone.kernel.errors import LifecycleEventError
from keystone.logging_config import get_logger

if TYPE_CHECKING:
    from keystone.kernel.app import Kernel

logger = get_logger(__name__)


class LifecyclePhase(str, Enum):
    """Topics fired by the kernel during bootstrap and maintenance."""

    CONFIGURATION = "configuration"
    BIND_MIDDLEWARES = "bindMiddlewares"
    BIND_ROUTES = "bindRoutes"
    SET_RESPONSE_FORMATS = "setResponseFormats"
    SET_TEMPLATE_FUNCTIONS = "setTemplateFunctions"
    BOOTSTRAP = "bootstrap"
    MIGRATE = "migrate"


@dataclass
class EventPayload:
    """Argument passed to every handler of a topic."""

    kernel: "Kernel"
    topic: str
    data: Dict[str, Any] = field(default_factory=dict)


EventHandler = Callable[[EventPayload], Union[Any, Awaitable[Any]]]


class FireResult(NamedTuple):
    """Outcome of firing a topic: first error raised and every handler result."""

    error: Optional[BaseException]
    results: List[Any]


def _topic_name(topic: Union[str, LifecyclePhase]) -> str:
    return topic.value if isinstance(topic, LifecyclePhase) else topic


class EventBus:
    """
    Named-topic publish/subscribe dispatcher.

    Handlers may be plain functions or coroutine functions. Within one topic
    handlers run first-subscribed-first-invoked; nothing is promised across
    topics.
    """

    def __init__(self, name: str = "app") -> None:
        self.name = name
        self._handlers: defaultdict[str, List[EventHandler]] = defaultdict(list)

    def subscribe(self, topic: Union[str, LifecyclePhase], handler: EventHandler) -> None:
        name = _topic_name(topic)
        self._handlers[name].append(handler)
        logger.debug(
            "Event handler subscribed",
            extra={"topic": name, "total_handlers": len(self._handlers[name])},
        )

    def on(self, topic: Union[str, LifecyclePhase]) -> Callable[[EventHandler], EventHandler]:
        """
        Decorator form of subscribe.

        Usage:
            @kernel.events.on(LifecyclePhase.BIND_ROUTES)
            def bind_routes(payload):
                ...
        """

        def decorator(handler: EventHandler) -> EventHandler:
            self.subscribe(topic, handler)
            return handler

        return decorator

    def listeners(self, topic: Union[str, LifecyclePhase]) -> List[EventHandler]:
        return list(self._handlers.get(_topic_name(topic), []))

    async def fire(self, topic: Union[str, LifecyclePhase], payload: EventPayload) -> FireResult:
        """
        Invoke every handler for topic.

        A failing handler does not stop the remaining ones; the first error
        is returned alongside the collected results.
        """
        name = _topic_name(topic)
        first_error: Optional[BaseException] = None
        results: List[Any] = []

        for handler in self.listeners(name):
            try:
                result = handler(payload)
                if inspect.isawaitable(result):
                    result = await result
                results.append(result)
            except Exception as exc:
                logger.error(
                    "Event handler failed",
                    extra={
                        "topic": name,
                        "handler": getattr(handler, "__qualname__", repr(handler)),
                        "error": str(exc),
                    },
                )
                if first_error is None:
                    first_error = exc

        return FireResult(first_error, results)

    async def must_trigger(self, topic: Union[str, LifecyclePhase], payload: EventPayload) -> List[Any]:
        """Fire topic and raise LifecycleEventError if any handler failed."""
        error, results = await self.fire(topic, payload)
        if error is not None:
            raise LifecycleEventError(_topic_name(topic), error) from error
        return results
