"""Unit tests for Accept header negotiation."""

import pytest

from keystone.api.middleware.content_negotiation import parse_accept, resolve_content_type

FORMATS = {
    "application/json": "json",
    "application/vnd.api+json": "jsonapi",
    "text/html": "html",
}


class TestParseAccept:
    """Tests for parse_accept."""

    def test_quality_ordering(self):
        accept = "text/html;q=0.8, application/json, */*;q=0.1"

        assert parse_accept(accept) == ["application/json", "text/html", "*/*"]

    def test_zero_quality_is_dropped(self):
        assert parse_accept("text/html;q=0, application/json") == ["application/json"]

    @pytest.mark.parametrize("accept", [None, "", " , "])
    def test_empty(self, accept):
        assert parse_accept(accept) == []


class TestResolveContentType:
    """Tests for resolve_content_type."""

    def test_registered_type_wins(self):
        assert resolve_content_type("application/vnd.api+json", "/", FORMATS) == "application/vnd.api+json"
        assert resolve_content_type("application/json", "/widgets", FORMATS) == "application/json"

    def test_first_registered_match(self):
        accept = "image/webp, text/html;q=0.9, application/json;q=0.5"

        assert resolve_content_type(accept, "/api/widgets", FORMATS) == "text/html"

    @pytest.mark.parametrize(
        "path, expected",
        [
            ("/api", "application/json"),
            ("/api/widgets/7", "application/json"),
            ("/apis", "text/html"),
            ("/widgets", "text/html"),
        ],
    )
    def test_fallback_by_path(self, path: str, expected: str):
        assert resolve_content_type("*/*", path, FORMATS) == expected
        assert resolve_content_type(None, path, FORMATS) == expected
