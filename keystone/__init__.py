"""
Keystone - an extensible application kernel for HTTP services.
"""

from keystone.kernel.app import Kernel
from keystone.plugins import Plugin

__version__ = "0.1.0"

__all__ = ["Kernel", "Plugin", "__version__"]
