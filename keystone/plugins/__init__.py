"""
Plugins - named extension modules hooked into the kernel lifecycle.

Each plugin:
- Has a unique name
- Runs its init hook once, in registration order
- Subscribes handlers to lifecycle phases to bind routes, middlewares,
  response formats and template functions
"""

from keystone.plugins.base import Plugin, PluginRegistry

__all__ = [
    "Plugin",
    "PluginRegistry",
]
