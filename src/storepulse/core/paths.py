"""Dotted-path access into nested metric bundles."""

from collections.abc import Iterator
from typing import Any

_MISSING = object()


def get_path(data: dict[str, Any], key: str, default: Any = None) -> Any:
    """Look up a dotted key such as ``system.memory.usage_percent``.

    Returns default as soon as a segment is missing or the current node is not
    a mapping. Stored values are returned as-is, including falsy ones.
    """
    node: Any = data
    for segment in key.split("."):
        if not isinstance(node, dict):
            return default
        node = node.get(segment, _MISSING)
        if node is _MISSING:
            return default
    return node


def set_path(data: dict[str, Any], key: str, value: Any) -> None:
    """Assign value at a dotted key, creating or replacing intermediate maps."""
    segments = key.split(".")
    node = data
    for segment in segments[:-1]:
        child = node.get(segment)
        if not isinstance(child, dict):
            child = {}
            node[segment] = child
        node = child
    node[segments[-1]] = value


def iter_leaves(data: dict[str, Any], prefix: str = "") -> Iterator[tuple[str, Any]]:
    """Yield ``(dotted_path, value)`` for every non-mapping value."""
    for key, value in data.items():
        path = f"{prefix}.{key}" if prefix else str(key)
        if isinstance(value, dict):
            yield from iter_leaves(value, path)
        else:
            yield path, value
