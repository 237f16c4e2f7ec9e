"""Template engine — {{variable}} expansion and nested path resolution."""

from __future__ import annotations

import json
import re
from typing import Any

# Matches {{path.to.var}} or {{path.to.var | default_value}}
_TEMPLATE_RE = re.compile(r"\{\{\s*([\w.\-]+)\s*(?:\|\s*(.+?))?\s*\}\}")

_LENGTH_KEYS = ("length", "len", "count")


def resolve_path(path: str, ctx: dict[str, Any]) -> Any:
    """Resolve dotted path like 'nodes.api-1.items.0' against a context dict.

    ``.length`` works on strings, lists and dicts (unless the dict has a real
    key of that name).
    """
    current: Any = ctx
    for part in path.split("."):
        if isinstance(current, dict) and part in current:
            current = current[part]
        elif isinstance(current, (str, list, tuple, dict)) and part in _LENGTH_KEYS:
            current = len(current)
        elif isinstance(current, (list, tuple)) and part.isdigit():
            idx = int(part)
            current = current[idx] if idx < len(current) else None
        else:
            return None
        if current is None:
            return None
    return current


def stringify(value: Any) -> str:
    """Text form of a node value: dicts and lists as JSON, None as ''."""
    if value is None:
        return ""
    if isinstance(value, (dict, list)):
        return json.dumps(value, ensure_ascii=False)
    return str(value)


def render_template_str(template: str, ctx: dict[str, Any]) -> str:
    """Replace all {{path}} placeholders in a string with values from ctx."""
    if not isinstance(template, str):
        return template

    def replacer(match: re.Match) -> str:
        path = match.group(1)
        default = match.group(2) if match.group(2) else ""
        value = resolve_path(path, ctx)
        if value is None:
            return default.strip().strip("'\"") if default else ""
        return stringify(value)

    return _TEMPLATE_RE.sub(replacer, template)


def render_template_value(template: Any, ctx: dict[str, Any]) -> Any:
    """Render *template*; a string that is exactly one placeholder keeps the raw value's type."""
    if isinstance(template, str):
        match = _TEMPLATE_RE.fullmatch(template.strip())
        if match and not match.group(2):
            value = resolve_path(match.group(1), ctx)
            return value if value is not None else ""
        return render_template_str(template, ctx)
    if isinstance(template, dict):
        return render_template_dict(template, ctx)
    if isinstance(template, list):
        return [render_template_value(item, ctx) for item in template]
    return template


def render_template_dict(data: dict[str, Any], ctx: dict[str, Any]) -> dict[str, Any]:
    """Recursively render templates in all values of a dict."""
    return {key: render_template_value(value, ctx) for key, value in data.items()}
