"""Unit tests for the role table."""

import json

import pytest

from keystone.kernel.errors import ConfigurationError
from keystone.kernel.permissions import (
    ADMINISTRATOR_ROLE,
    RoleTable,
    load_roles_definition,
)

ROLES = json.dumps({
    "editor": {"name": "editor", "permissions": ["create_post", "update_post"]},
    "reader": {"name": "reader", "permissions": ["find_post"]},
    "administrator": {"name": "administrator", "permissions": []},
})


@pytest.fixture
def table() -> RoleTable:
    return RoleTable.decode(ROLES)


class TestRoleTable:
    """Tests for RoleTable.can."""

    @pytest.mark.parametrize("permission", ["create_post", "find_post", "drop_database", ""])
    def test_administrator_can_everything(self, table: RoleTable, permission: str):
        assert table.can(permission, [ADMINISTRATOR_ROLE]) is True
        assert table.can(permission, ["reader", ADMINISTRATOR_ROLE]) is True

    def test_role_grants_exactly_its_permissions(self, table: RoleTable):
        assert table.can("create_post", ["editor"]) is True
        assert table.can("update_post", ["editor"]) is True
        assert table.can("find_post", ["editor"]) is False
        assert table.can("delete_post", ["editor"]) is False

    def test_any_role_may_grant(self, table: RoleTable):
        assert table.can("find_post", ["editor", "reader"]) is True

    def test_unknown_roles_grant_nothing(self, table: RoleTable):
        assert table.can("find_post", ["ghost"]) is False
        assert table.can("find_post", []) is False

    def test_no_wildcards(self, table: RoleTable):
        assert table.can("create_*", ["editor"]) is False
        assert table.can("create", ["editor"]) is False


class TestRoleDecoding:
    """Tests for decoding role definitions."""

    def test_decode_builds_roles(self, table: RoleTable):
        assert sorted(table.names()) == ["administrator", "editor", "reader"]
        assert table.get("reader").permissions == {"find_post"}

    def test_invalid_json_is_fatal(self):
        with pytest.raises(ConfigurationError):
            RoleTable.decode("{not json")

    def test_invalid_shape_is_fatal(self):
        with pytest.raises(ConfigurationError):
            RoleTable.decode(json.dumps({"editor": {"permissions": "create_post"}}))

    def test_builtin_definition_decodes(self):
        table = RoleTable.decode(load_roles_definition())

        assert ADMINISTRATOR_ROLE in table
        assert table.can("find_content", ["unAuthenticated"]) is True
        assert table.can("create_content", ["unAuthenticated"]) is False

    def test_roles_file(self, tmp_path):
        path = tmp_path / "roles.json"
        path.write_text(ROLES, encoding="utf-8")

        assert load_roles_definition(str(path)) == ROLES

    def test_missing_roles_file(self, tmp_path):
        with pytest.raises(ConfigurationError):
            load_roles_definition(str(tmp_path / "missing.json"))
