"""Filesystem persistence for generated documents."""

from __future__ import annotations

import contextlib
import os
import tempfile
from pathlib import Path, PurePosixPath
from typing import Iterator, Optional, Protocol

from ..errors import IoFailure
from ..models import MergeResult

DOCUMENT_SUFFIX = ".md"


class DocumentStore(Protocol):
    """What the pipeline needs from a document store."""

    def read(self, identity: str) -> Optional[str]:
        ...

    def write(self, identity: str, result: MergeResult) -> Path:
        ...


class FileSystemDocumentStore:
    """Stores one markdown document per unit identity under ``docs_dir``.

    Writes go to a temporary file in the destination directory and are then
    renamed over the target, so readers only ever see the old or the new
    document.
    """

    def __init__(self, docs_dir: Path) -> None:
        self.docs_dir = Path(docs_dir)

    def path_for(self, identity: str) -> Path:
        relative = PurePosixPath(identity.replace("\\", "/"))
        if not relative.parts or relative.is_absolute() or ".." in relative.parts:
            raise IoFailure(f"Refusing to map unit identity outside the docs directory: {identity!r}")
        return self.docs_dir.joinpath(*relative.parts).with_name(relative.name + DOCUMENT_SUFFIX)

    def read(self, identity: str) -> Optional[str]:
        path = self.path_for(identity)
        try:
            with path.open("r", encoding="utf-8", newline="") as handle:
                return handle.read()
        except FileNotFoundError:
            return None
        except (OSError, UnicodeDecodeError) as exc:
            raise IoFailure(f"Failed to read {path}: {exc}", path=path) from exc

    def write(self, identity: str, result: MergeResult) -> Path:
        path = self.path_for(identity)
        try:
            path.parent.mkdir(parents=True, exist_ok=True)
            fd, tmp_name = tempfile.mkstemp(dir=path.parent, prefix=f".{path.name}.", suffix=".tmp")
        except OSError as exc:
            raise IoFailure(f"Failed to prepare {path}: {exc}", path=path) from exc

        try:
            # newline="" keeps the merged text byte-for-byte, including protected CRLF content.
            with os.fdopen(fd, "w", encoding="utf-8", newline="") as handle:
                handle.write(result.text)
            os.replace(tmp_name, path)
        except OSError as exc:
            with contextlib.suppress(OSError):
                os.unlink(tmp_name)
            raise IoFailure(f"Failed to write {path}: {exc}", path=path) from exc
        return path

    def iter_documents(self) -> Iterator[Path]:
        """Yield every stored document, sorted for stable reporting."""
        if not self.docs_dir.is_dir():
            return
        for path in sorted(self.docs_dir.rglob(f"*{DOCUMENT_SUFFIX}")):
            if path.is_file() and not path.name.startswith("."):
                yield path


__all__ = ["DOCUMENT_SUFFIX", "DocumentStore", "FileSystemDocumentStore"]
