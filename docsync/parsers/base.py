"""Base classes for unit parser plugins."""

from abc import ABC, abstractmethod
from pathlib import Path
from typing import Tuple

from ..models import DocumentedUnit


class UnitParser(ABC):
    """Contract for parsers that turn source text into a DocumentedUnit."""

    language: str = ""
    extensions: Tuple[str, ...] = ()

    def supports(self, path: Path) -> bool:
        """Return True when this parser handles ``path``."""
        return path.suffix.lower() in self.extensions

    @abstractmethod
    def parse(self, source: str, identity: str) -> DocumentedUnit:
        """Build the structural summary for one source file.

        Raises ``SourceParseError`` when the source cannot be parsed.
        """
