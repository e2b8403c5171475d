"""
Template loading and rendering.

Every `.html` file under the template root is compiled up front and keyed
by its relative path without extension, e.g. `site/404`.
"""

from pathlib import Path
from typing import Any, Callable, Dict, List, Mapping, Optional

from fastapi.responses import HTMLResponse
from jinja2 import Environment, FileSystemLoader, Template, TemplateError, select_autoescape

from keystone.kernel.errors import RenderError, TemplateLoadError

TEMPLATE_EXTENSION = ".html"


class TemplateSet:
    """Compiled templates keyed by name."""

    def __init__(self, templates: Optional[Dict[str, Template]] = None):
        self._templates: Dict[str, Template] = dict(templates or {})

    def names(self) -> List[str]:
        return sorted(self._templates)

    def get(self, name: str) -> Optional[Template]:
        return self._templates.get(name)

    def render(self, name: str, context: Mapping[str, Any]) -> str:
        template = self._templates.get(name)
        if template is None:
            raise RenderError(f"Template '{name}' not found")
        try:
            return template.render(**context)
        except TemplateError as exc:
            raise RenderError(f"Error on render template '{name}': {exc}") from exc

    def __contains__(self, name: object) -> bool:
        return name in self._templates

    def __len__(self) -> int:
        return len(self._templates)


def load_templates(root_dir: str, functions: Mapping[str, Callable[..., Any]]) -> TemplateSet:
    """
    Compile every template under root_dir with functions available as globals.

    Raises:
        TemplateLoadError: on a missing root or the first template that does
            not parse; `templates` on the error holds what was compiled so far
    """
    root = Path(root_dir)
    compiled: Dict[str, Template] = {}

    if not root.is_dir():
        raise TemplateLoadError(
            root_dir,
            FileNotFoundError(f"template folder {root_dir} does not exist"),
            templates=TemplateSet(),
        )

    env = Environment(
        loader=FileSystemLoader(str(root)),
        autoescape=select_autoescape(["html"]),
    )
    env.globals.update(functions)

    for path in sorted(root.rglob(f"*{TEMPLATE_EXTENSION}")):
        relative = path.relative_to(root).as_posix()
        try:
            compiled[relative[: -len(TEMPLATE_EXTENSION)]] = env.get_template(relative)
        except (TemplateError, UnicodeDecodeError, OSError) as exc:
            # Undecodable or unreadable files fail the load like a syntax error
            raise TemplateLoadError(root_dir, exc, templates=TemplateSet(compiled)) from exc

    return TemplateSet(compiled)


class TemplateRenderer:
    """Active response renderer backed by a compiled TemplateSet."""

    def __init__(self, templates: TemplateSet):
        self.templates = templates

    def render(
        self,
        name: str,
        context: Mapping[str, Any],
        status_code: int = 200,
    ) -> HTMLResponse:
        """Render name into an HTML response. Raises RenderError."""
        return HTMLResponse(self.templates.render(name, context), status_code=status_code)
