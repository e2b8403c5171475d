"""
Permission Core - RBAC access control.
"""

from keystone.kernel.permissions.role_table import (
    ADMINISTRATOR_ROLE,
    AUTHENTICATED_ROLE,
    UNAUTHENTICATED_ROLE,
    Role,
    RoleTable,
    load_roles_definition,
)

__all__ = [
    "ADMINISTRATOR_ROLE",
    "AUTHENTICATED_ROLE",
    "UNAUTHENTICATED_ROLE",
    "Role",
    "RoleTable",
    "load_roles_definition",
]
