"""
Base Plugin - abstract interface for kernel extensions.
"""

import inspect
from abc import ABC, abstractmethod
from typing import TYPE_CHECKING, Any, Awaitable, Dict, Iterator, List, Optional, Union

from keystone.kernel.errors import ConfigurationError, PluginInitError

if TYPE_CHECKING:
    from keystone.kernel.app import Kernel


class Plugin(ABC):
    """
    Abstract base class for kernel plugins.

    A plugin is identified by its name. `init` runs exactly once during
    bootstrap, before any lifecycle event is fired; it is the place to
    subscribe handlers on `kernel.events`.
    """

    @property
    @abstractmethod
    def name(self) -> str:
        """Unique plugin name."""
        pass

    @abstractmethod
    def init(self, kernel: "Kernel") -> Union[None, Awaitable[None]]:
        """Initialize the plugin. May be a coroutine function."""
        pass

    def __repr__(self) -> str:
        return f"<{type(self).__name__} name={self.name!r}>"


class PluginRegistry:
    """
    Ordered collection of plugins.

    Iteration follows registration order, which is also the init order.
    Plugins must not depend on each other beyond that order.
    """

    def __init__(self) -> None:
        self._plugins: Dict[str, Plugin] = {}

    def register(self, plugin: Plugin) -> None:
        name = plugin.name
        if not name:
            raise ConfigurationError(
                f"{type(plugin).__name__}: plugin name should be returned from the name property"
            )
        if name in self._plugins:
            raise ConfigurationError(f"Plugin '{name}' is already registered")
        self._plugins[name] = plugin

    def get(self, name: str) -> Optional[Plugin]:
        return self._plugins.get(name)

    def names(self) -> List[str]:
        return list(self._plugins)

    def __iter__(self) -> Iterator[Plugin]:
        return iter(list(self._plugins.values()))

    def __len__(self) -> int:
        return len(self._plugins)

    def __contains__(self, name: Any) -> bool:
        return name in self._plugins

    async def init_all(self, kernel: "Kernel") -> None:
        """Run every init hook in order; stop at the first failure."""
        for plugin in self:
            try:
                result = plugin.init(kernel)
                if inspect.isawaitable(result):
                    await result
            except Exception as exc:
                raise PluginInitError(plugin.name, exc) from exc
