"""Unit parser implementations and discovery utilities."""

from __future__ import annotations

from importlib import metadata
from typing import Callable, Iterable, List, Sequence, Set

from .base import UnitParser
from .python import PythonParser
from .tree_sitter import TREE_SITTER_AVAILABLE, TreeSitterParser

_ENTRY_POINT_GROUP = "docsync.parsers"

_BUILTIN_FACTORIES: dict[str, Callable[[], UnitParser]] = {
    "python": PythonParser,
    "java": lambda: TreeSitterParser("java"),
    "javascript": lambda: TreeSitterParser("javascript"),
    "typescript": lambda: TreeSitterParser("typescript"),
    "rust": lambda: TreeSitterParser("rust"),
    "csharp": lambda: TreeSitterParser("csharp"),
}


def discover_parsers(languages: Sequence[str] | None = None) -> List[UnitParser]:
    """Return instantiated parsers, restricted to ``languages`` when given.

    Plugins registered under the ``docsync.parsers`` entry-point group may add
    languages or replace a built-in; the first parser registered for a
    language wins, so built-ins take precedence over plugins of the same name.
    """

    enabled_set: Set[str] | None = None
    if languages is not None:
        enabled_set = {name.lower() for name in languages}

    parsers: List[UnitParser] = []
    seen: Set[str] = set()

    def _add(name: str, factory: Callable[[], UnitParser]) -> None:
        key = name.lower()
        if enabled_set is not None and key not in enabled_set:
            return
        if key in seen:
            return
        instance = factory()
        if not isinstance(instance, UnitParser):
            raise TypeError(f"Parser factory for '{name}' did not return a UnitParser instance")
        parsers.append(instance)
        seen.add(key)

    for name, factory in _BUILTIN_FACTORIES.items():
        _add(name, factory)

    for entry in _iter_entry_points():
        name = entry.name
        try:
            loaded = entry.load()
        except Exception as exc:  # pragma: no cover - broken plugin
            raise RuntimeError(f"Failed to load parser entry point '{name}': {exc}") from exc

        def _factory(obj: object = loaded) -> UnitParser:
            return _coerce_parser(obj)

        _add(name, _factory)

    if enabled_set:
        missing = enabled_set - seen
        if missing:
            raise ValueError(f"Unknown languages requested: {', '.join(sorted(missing))}")

    return parsers


def _coerce_parser(obj: object) -> UnitParser:
    if isinstance(obj, UnitParser):
        return obj
    if isinstance(obj, type) and issubclass(obj, UnitParser):
        return obj()
    if callable(obj):
        instance = obj()
        if isinstance(instance, UnitParser):
            return instance
    raise TypeError("Parser entry point must be a UnitParser subclass or factory")


def _iter_entry_points() -> Iterable[metadata.EntryPoint]:
    return metadata.entry_points().select(group=_ENTRY_POINT_GROUP)


__all__ = [
    "PythonParser",
    "TREE_SITTER_AVAILABLE",
    "TreeSitterParser",
    "UnitParser",
    "discover_parsers",
]
