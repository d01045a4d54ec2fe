"""Template rendering for node config fields.

Templates are Jinja2 strings rendered in a sandbox against the node's
inputs: ``{{name}}`` and dotted lookups such as ``{{body.user.name}}``.
Unknown variables render as an empty string.
"""

from __future__ import annotations
from typing import Any

from jinja2 import ChainableUndefined, TemplateError, meta
from jinja2.sandbox import SandboxedEnvironment

# Missing variables (and attributes of them) render empty
_env = SandboxedEnvironment(
    autoescape=False, keep_trailing_newline=True, undefined=ChainableUndefined
)


class TemplateRenderError(Exception):
    """A template failed to parse or render."""

    def __init__(self, field: str, reason: str):
        self.field = field
        self.reason = reason
        super().__init__(f"Failed to render template in '{field}': {reason}")


def render(template: str, variables: dict[str, Any], field: str = "template") -> str:
    """Render ``template`` with ``variables`` as bindings."""
    if "{{" not in template and "{%" not in template:
        return template
    try:
        return _env.from_string(template).render(variables)
    except TemplateError as e:
        raise TemplateRenderError(field, str(e)) from e


def render_value(value: Any, variables: dict[str, Any], field: str) -> Any:
    """Render every string leaf of a nested mapping/list structure."""
    if isinstance(value, str):
        return render(value, variables, field)
    if isinstance(value, dict):
        return {k: render_value(v, variables, f"{field}.{k}") for k, v in value.items()}
    if isinstance(value, list):
        return [render_value(v, variables, f"{field}[{i}]") for i, v in enumerate(value)]
    return value


def referenced_variables(template: str) -> list[str]:
    """Top-level variable names a template refers to, sorted."""
    try:
        ast = _env.parse(template)
    except TemplateError:
        return []
    return sorted(meta.find_undeclared_variables(ast))
