"""Helper utilities for constructing temporary source trees in tests."""

from __future__ import annotations

import textwrap
from pathlib import Path
from typing import Mapping

from docsync.config import DocSyncConfig, load_config
from docsync.scanner import ScanResult, SourceScanner


class SourceBuilder:
    """Utility for writing files into a throwaway project and rescanning it."""

    def __init__(self, tmp_path: Path) -> None:
        self.root = tmp_path / "project"
        self.root.mkdir()

    def write(self, files: Mapping[str, str]) -> None:
        """Write `path -> contents` entries into the project."""
        for relative, content in files.items():
            path = self.root / relative
            path.parent.mkdir(parents=True, exist_ok=True)
            normalised = textwrap.dedent(content).lstrip("\n")
            path.write_text(normalised, encoding="utf-8")

    def config(self) -> DocSyncConfig:
        """Load the project's configuration (defaults when no .docsync.yml exists)."""
        return load_config(self.root)

    def scan(self) -> ScanResult:
        """Return a fresh scan of the project sources."""
        return SourceScanner(self.config()).scan()

    def doc(self, identity: str) -> Path:
        """Return the path of the generated document for ``identity``."""
        return self.root / "docs" / f"{identity}.md"

    def path(self) -> Path:
        """Return the project root path."""
        return self.root


__all__ = ["SourceBuilder"]
