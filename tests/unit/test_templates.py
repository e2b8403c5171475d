"""Unit tests for template loading and rendering."""

import pytest

from keystone.kernel.errors import RenderError, TemplateLoadError
from keystone.kernel.templates import TemplateRenderer, load_templates
from conftest import write_templates


class TestLoadTemplates:
    """Tests for load_templates."""

    def test_templates_keyed_by_relative_name(self, tmp_path):
        root = write_templates(tmp_path, {
            "index.html": "home",
            "site/404.html": "missing",
            "notes.txt": "ignored",
        })

        templates = load_templates(str(root), {})

        assert templates.names() == ["index", "site/404"]
        assert "site/404" in templates

    def test_functions_are_available(self, tmp_path):
        root = write_templates(tmp_path, {"greet.html": "{{ shout(name) }}"})

        templates = load_templates(str(root), {"shout": lambda s: s.upper() + "!"})

        assert templates.render("greet", {"name": "hi"}) == "HI!"

    def test_syntax_error_keeps_partial_set(self, tmp_path):
        root = write_templates(tmp_path, {
            "a.html": "fine",
            "b.html": "{% if %}",
            "c.html": "never reached",
        })

        with pytest.raises(TemplateLoadError) as exc_info:
            load_templates(str(root), {})

        partial = exc_info.value.templates
        assert partial.names() == ["a"]

    def test_undecodable_file_keeps_partial_set(self, tmp_path):
        root = write_templates(tmp_path, {"a.html": "fine"})
        (root / "b.html").write_bytes(b"\xff\xfe<h1>x</h1>")

        with pytest.raises(TemplateLoadError) as exc_info:
            load_templates(str(root), {})

        assert isinstance(exc_info.value.cause, UnicodeDecodeError)
        assert exc_info.value.templates.names() == ["a"]

    def test_missing_root(self, tmp_path):
        with pytest.raises(TemplateLoadError) as exc_info:
            load_templates(str(tmp_path / "nowhere"), {})

        assert len(exc_info.value.templates) == 0

    def test_output_is_escaped(self, tmp_path):
        root = write_templates(tmp_path, {"page.html": "{{ body }}"})

        templates = load_templates(str(root), {})

        assert templates.render("page", {"body": "<b>"}) == "&lt;b&gt;"


class TestTemplateRenderer:
    """Tests for TemplateRenderer."""

    def test_render_response(self, tmp_path):
        root = write_templates(tmp_path, {"site/404.html": "<h1>{{ title }}</h1>"})
        renderer = TemplateRenderer(load_templates(str(root), {}))

        response = renderer.render("site/404", {"title": "Not found"}, status_code=404)

        assert response.status_code == 404
        assert response.body == b"<h1>Not found</h1>"
        assert response.media_type == "text/html"

    def test_unknown_template(self, tmp_path):
        renderer = TemplateRenderer(load_templates(str(tmp_path), {}))

        with pytest.raises(RenderError):
            renderer.render("site/500", {})

    def test_runtime_template_error(self, tmp_path):
        root = write_templates(tmp_path, {"page.html": "{% include 'absent.html' %}"})
        renderer = TemplateRenderer(load_templates(str(root), {}))

        with pytest.raises(RenderError):
            renderer.render("page", {})
