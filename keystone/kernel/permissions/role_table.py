"""
Role table for RBAC access control.
"""

from pathlib import Path
from typing import Dict, Iterable, List, Optional, Set

from pydantic import BaseModel, Field, TypeAdapter
from pydantic import ValidationError as PydanticValidationError

from keystone.kernel.errors import ConfigurationError

# Role granted every permission without consulting the table
ADMINISTRATOR_ROLE = "administrator"
AUTHENTICATED_ROLE = "authenticated"
UNAUTHENTICATED_ROLE = "unAuthenticated"

DEFAULT_ROLES_DEFINITION = """
{
  "administrator": {
    "name": "administrator",
    "permissions": []
  },
  "authenticated": {
    "name": "authenticated",
    "permissions": [
      "find_content",
      "create_content",
      "update_own_content",
      "delete_own_content",
      "find_user"
    ]
  },
  "unAuthenticated": {
    "name": "unAuthenticated",
    "permissions": [
      "find_content"
    ]
  }
}
"""


class Role(BaseModel):
    """A named bundle of flat permission strings."""

    name: str
    permissions: Set[str] = Field(default_factory=set)

    def can(self, permission: str) -> bool:
        return permission in self.permissions


_roles_adapter = TypeAdapter(Dict[str, Role])


class RoleTable:
    """
    Static mapping from role name to granted permissions.

    Permissions are flat strings: no wildcards and no hierarchy beyond the
    administrator bypass.
    """

    def __init__(self, roles: Optional[Dict[str, Role]] = None):
        self._roles: Dict[str, Role] = dict(roles or {})

    @classmethod
    def decode(cls, definition: str) -> "RoleTable":
        """
        Parse a JSON role definition.

        Raises:
            ConfigurationError: if the definition is not valid JSON or does
                not match the role schema
        """
        try:
            roles = _roles_adapter.validate_json(definition)
        except PydanticValidationError as exc:
            raise ConfigurationError(f"Invalid roles definition: {exc}") from exc
        return cls(roles)

    def can(self, permission: str, user_roles: Iterable[str]) -> bool:
        """
        Check if any of the user roles grants permission.

        Permission sources (in order of precedence):
        1. Administrator role - every permission
        2. First role in user_roles whose permission set contains it
        """
        user_roles = list(user_roles)
        if ADMINISTRATOR_ROLE in user_roles:
            return True

        for role_name in user_roles:
            role = self._roles.get(role_name)
            if role is not None and role.can(permission):
                return True

        return False

    def get(self, name: str) -> Optional[Role]:
        return self._roles.get(name)

    def names(self) -> List[str]:
        return list(self._roles)

    def __len__(self) -> int:
        return len(self._roles)

    def __contains__(self, name: object) -> bool:
        return name in self._roles


def load_roles_definition(roles_file: Optional[str] = None) -> str:
    """Read the JSON role definition from roles_file, or the built-in one."""
    if not roles_file:
        return DEFAULT_ROLES_DEFINITION
    try:
        return Path(roles_file).read_text(encoding="utf-8")
    except OSError as exc:
        raise ConfigurationError(f"Cannot read roles file {roles_file}: {exc}") from exc
