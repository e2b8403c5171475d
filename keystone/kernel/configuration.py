"""
String-keyed configuration accessor over the pydantic Settings.

Plugins read and override settings by their environment-style key
(`DB_URI`, `TEMPLATE_FOLDER`, ...). Lookup order: overrides set through
`set`, declared Settings fields, then the process environment.
"""

import os
from typing import Dict, Optional

from keystone.config import Settings, get_settings

_TRUE_VALUES = {"1", "true", "yes", "on", "t", "y"}


class Configuration:
    """Key to string configuration with default fallbacks."""

    def __init__(self, settings: Optional[Settings] = None):
        self.settings = settings or get_settings()
        self._overrides: Dict[str, str] = {}

    def _lookup(self, key: str) -> Optional[str]:
        name = key.upper()
        if name in self._overrides:
            return self._overrides[name]

        field = name.lower()
        if field in type(self.settings).model_fields:
            value = getattr(self.settings, field)
            if value is None:
                return None
            if isinstance(value, bool):
                return "true" if value else ""
            return str(value)

        return os.environ.get(name)

    def get(self, key: str) -> str:
        """Return the value for key, empty string if absent."""
        return self._lookup(key) or ""

    def get_f(self, key: str, default: str) -> str:
        """Return the value for key, or default when absent or empty."""
        value = self._lookup(key)
        return value if value else default

    def get_int(self, key: str, default: int) -> int:
        value = self._lookup(key)
        if not value:
            return default
        try:
            return int(value)
        except ValueError:
            return default

    def get_bool(self, key: str) -> bool:
        value = self._lookup(key)
        return bool(value) and value.strip().lower() in _TRUE_VALUES

    def set(self, key: str, value: str) -> None:
        """Override a key for the rest of the process lifetime."""
        self._overrides[key.upper()] = value

    def __contains__(self, key: str) -> bool:
        return bool(self._lookup(key))
