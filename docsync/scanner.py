"""Source scanning: walk source directories and build documented units."""

from __future__ import annotations

import os
from dataclasses import dataclass, field
from fnmatch import fnmatchcase
from pathlib import Path
from typing import Dict, Iterator, List, Optional, Sequence

from .config import DocSyncConfig
from .errors import SourceParseError
from .logging import get_logger
from .models import UNIT_KIND_PACKAGE, DocumentedUnit
from .parsers import UnitParser, discover_parsers

_EXCLUDED_DIRS = {
    ".git",
    ".hg",
    ".svn",
    ".venv",
    "venv",
    "node_modules",
    "__pycache__",
    ".pytest_cache",
    ".mypy_cache",
    ".tox",
    ".idea",
    "build",
    "dist",
}

_PACKAGE_DOC_FILES = ("__init__.py", "package-info.java", "index.ts", "index.js")


@dataclass
class IgnoreRule:
    """Represents an ignore rule parsed from .gitignore or ``exclude_paths``."""

    pattern: str
    directory_only: bool
    anchored: bool
    negate: bool
    has_slash: bool

    def matches(self, rel_path: str, is_dir: bool) -> bool:
        if not self.pattern:
            return False
        if self.directory_only and not is_dir:
            return False

        if self.anchored or self.has_slash:
            if fnmatchcase(rel_path, self.pattern):
                return True
            return rel_path.startswith(f"{self.pattern}/")

        return any(fnmatchcase(part, self.pattern) for part in rel_path.split("/"))


@dataclass
class ScanResult:
    """Units to document plus the files that could not be parsed."""

    units: List[DocumentedUnit] = field(default_factory=list)
    failures: Dict[str, str] = field(default_factory=dict)

    def get(self, identity: str) -> Optional[DocumentedUnit]:
        for unit in self.units:
            if unit.identity == identity:
                return unit
        return None


def _build_ignore_rule(pattern: str, negate: bool = False) -> IgnoreRule | None:
    pattern = pattern.strip().replace("\\", "/")
    if not pattern:
        return None

    directory_only = pattern.endswith("/")
    if directory_only:
        pattern = pattern.rstrip("/")

    anchored = pattern.startswith("/")
    if anchored:
        pattern = pattern.lstrip("/")

    return IgnoreRule(
        pattern=pattern,
        directory_only=directory_only,
        anchored=anchored,
        negate=negate,
        has_slash="/" in pattern,
    )


def _parse_gitignore(path: Path) -> List[IgnoreRule]:
    if not path.exists():
        return []

    rules: List[IgnoreRule] = []
    for raw_line in path.read_text(encoding="utf-8", errors="ignore").splitlines():
        line = raw_line.strip()
        if not line or line.startswith("#"):
            continue
        negate = line.startswith("!")
        if negate:
            line = line[1:]
        rule = _build_ignore_rule(line, negate=negate)
        if rule is not None:
            rules.append(rule)
    return rules


def _should_ignore(rel_path: str, is_dir: bool, rules: Sequence[IgnoreRule]) -> bool:
    ignored = False
    for rule in rules:
        if rule.matches(rel_path, is_dir):
            ignored = not rule.negate
    return ignored


def _iter_files(root: Path, start: Path, rules: Sequence[IgnoreRule]) -> Iterator[Path]:
    for dirpath, dirnames, filenames in os.walk(start):
        current_dir = Path(dirpath)
        rel_dir = current_dir.relative_to(root).as_posix() if current_dir != root else ""

        kept_dirs = []
        for name in sorted(dirnames):
            if name in _EXCLUDED_DIRS:
                continue
            rel_path = f"{rel_dir}/{name}" if rel_dir else name
            if _should_ignore(rel_path, True, rules):
                continue
            kept_dirs.append(name)
        dirnames[:] = kept_dirs

        for filename in sorted(filenames):
            rel_path = f"{rel_dir}/{filename}" if rel_dir else filename
            if _should_ignore(rel_path, False, rules):
                continue
            yield current_dir / filename


class SourceScanner:
    """Walks the configured source directories and parses every supported file.

    Each parsed file becomes a file unit whose identity is its POSIX path
    relative to the project root. Files sharing a directory are grouped into a
    package unit identified by that directory.
    """

    def __init__(self, config: DocSyncConfig, parsers: Sequence[UnitParser] | None = None) -> None:
        self.config = config
        self.parsers = list(parsers) if parsers is not None else discover_parsers(config.parsing.languages)
        self.logger = get_logger("scanner")

    def scan(self) -> ScanResult:
        root = self.config.root
        if not root.exists():
            raise FileNotFoundError(f"Project path not found: {root}")
        if not root.is_dir():
            raise NotADirectoryError(f"Project path is not a directory: {root}")

        rules = self._ignore_rules()
        result = ScanResult()
        file_units: List[DocumentedUnit] = []
        visited: set[Path] = set()

        for source_dir in self.config.source_paths:
            if not source_dir.is_dir():
                self.logger.warning("Source directory not found: %s", source_dir)
                continue
            try:
                source_dir.relative_to(root)
            except ValueError:
                self.logger.warning("Source directory %s is outside the project root", source_dir)
                continue
            for path in _iter_files(root, source_dir, rules):
                if path in visited:
                    continue
                visited.add(path)
                unit = self._parse_file(path, result)
                if unit is not None:
                    file_units.append(unit)

        generation = self.config.generation
        if generation.package_docs:
            result.units.extend(_group_packages(file_units))
        if generation.file_docs:
            result.units.extend(file_units)
        result.units.sort(key=lambda unit: unit.identity)
        self.logger.debug(
            "Scanned %d file(s) into %d documented unit(s)", len(file_units), len(result.units)
        )
        return result

    def _ignore_rules(self) -> List[IgnoreRule]:
        root = self.config.root
        rules = _parse_gitignore(root / ".gitignore")
        for pattern in self.config.project.exclude_paths:
            rule = _build_ignore_rule(pattern)
            if rule is not None:
                rules.append(rule)
        try:
            docs_rel = self.config.docs_path.relative_to(root).as_posix()
        except ValueError:
            docs_rel = ""
        if docs_rel and docs_rel != ".":
            rules.append(IgnoreRule(docs_rel, True, True, False, "/" in docs_rel))
        return rules

    def _parser_for(self, path: Path) -> Optional[UnitParser]:
        for parser in self.parsers:
            if parser.supports(path):
                return parser
        return None

    def _parse_file(self, path: Path, result: ScanResult) -> Optional[DocumentedUnit]:
        parser = self._parser_for(path)
        if parser is None:
            return None

        identity = path.relative_to(self.config.root).as_posix()
        try:
            size = path.stat().st_size
            if size > self.config.parsing.max_file_size:
                self.logger.warning(
                    "Skipping %s: %d bytes exceeds parsing.max_file_size", identity, size
                )
                return None
            source = path.read_text(encoding="utf-8")
        except (OSError, UnicodeDecodeError) as exc:
            self.logger.warning("Failed to read %s: %s", identity, exc)
            result.failures[identity] = f"unreadable source: {exc}"
            return None

        try:
            return parser.parse(source, identity)
        except SourceParseError as exc:
            self.logger.warning("Failed to parse %s: %s", identity, exc)
            result.failures[identity] = str(exc)
            return None


def _group_packages(file_units: Sequence[DocumentedUnit]) -> List[DocumentedUnit]:
    grouped: Dict[str, List[DocumentedUnit]] = {}
    for unit in file_units:
        directory, _, _ = unit.identity.rpartition("/")
        if directory:
            grouped.setdefault(directory, []).append(unit)

    packages: List[DocumentedUnit] = []
    for directory, children in grouped.items():
        languages = {child.language for child in children}
        doc = None
        for child in children:
            if child.identity.rsplit("/", 1)[-1] in _PACKAGE_DOC_FILES and child.doc:
                doc = child.doc
                break
        packages.append(
            DocumentedUnit(
                identity=directory,
                kind=UNIT_KIND_PACKAGE,
                language=languages.pop() if len(languages) == 1 else None,
                children=tuple(sorted(children, key=lambda child: child.identity)),
                doc=doc,
                source_path=directory,
            )
        )
    return packages


__all__ = ["IgnoreRule", "ScanResult", "SourceScanner"]
