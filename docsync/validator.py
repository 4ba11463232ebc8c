"""Health checks for the generated documentation tree."""

from __future__ import annotations

from dataclasses import dataclass, field
from pathlib import Path
from typing import Dict, List, Mapping, Optional

from .core.fingerprint import Fingerprinter
from .core.metadata import read_document
from .core.protector import ProtectedRegionExtractor
from .errors import DocSyncError, MergeError
from .models import DocumentedUnit
from .stores import FileSystemDocumentStore


@dataclass
class ValidationIssue:
    """A single problem found in one document."""

    path: str
    message: str
    line: Optional[int] = None

    def __str__(self) -> str:
        location = f"{self.path}:{self.line}" if self.line else self.path
        return f"{location}: {self.message}"


@dataclass
class ValidationReport:
    """Errors fail validation; warnings only do so in strict mode."""

    errors: List[ValidationIssue] = field(default_factory=list)
    warnings: List[ValidationIssue] = field(default_factory=list)
    checked: int = 0

    @property
    def ok(self) -> bool:
        return not self.errors


class DocumentValidator:
    """Checks every stored document for marker balance and staleness.

    When ``units`` (the freshly scanned units keyed by identity) is provided,
    documents are also compared against the current source: stale
    fingerprints, documents for units that no longer exist, and units that
    have no document yet are all reported.
    """

    def __init__(
        self,
        store: FileSystemDocumentStore,
        units: Mapping[str, DocumentedUnit] | None = None,
        *,
        fingerprinter: Fingerprinter | None = None,
        extractor: ProtectedRegionExtractor | None = None,
    ) -> None:
        self.store = store
        self.units = dict(units) if units is not None else None
        self.fingerprinter = fingerprinter or Fingerprinter()
        self.extractor = extractor or ProtectedRegionExtractor()

    def validate(self, *, strict: bool = False) -> ValidationReport:
        report = ValidationReport()
        documented: Dict[str, str] = {}

        def _soft(issue: ValidationIssue) -> None:
            (report.errors if strict else report.warnings).append(issue)

        for path in self.store.iter_documents():
            report.checked += 1
            label = self._label(path)
            try:
                text = path.read_text(encoding="utf-8")
            except (OSError, UnicodeDecodeError) as exc:
                report.errors.append(ValidationIssue(label, f"unreadable: {exc}"))
                continue

            metadata, body = read_document(text)
            try:
                extraction = self.extractor.extract(body)
            except MergeError as exc:
                # Marker line numbers are relative to the body; report them against the file.
                offset = text[: len(text) - len(body)].count("\n")
                line = exc.line + offset if exc.line is not None else None
                report.errors.append(ValidationIssue(label, str(exc), line=line))
                extraction = None

            if metadata is None:
                _soft(ValidationIssue(label, "missing or invalid metadata header"))
                continue
            documented[metadata.unit] = label

            if extraction is not None:
                present = set(extraction.identifiers())
                for identifier in metadata.protected_blocks:
                    if identifier not in present:
                        report.warnings.append(
                            ValidationIssue(
                                label,
                                f"protected block '{identifier}' is listed in the header but missing from the body",
                            )
                        )

            if self.units is None:
                continue
            unit = self.units.get(metadata.unit)
            if unit is None:
                _soft(ValidationIssue(label, f"unit '{metadata.unit}' no longer exists in the source tree"))
                continue
            try:
                current = self.fingerprinter.fingerprint(unit)
            except DocSyncError as exc:
                report.errors.append(ValidationIssue(label, str(exc)))
                continue
            if current != metadata.fingerprint:
                _soft(ValidationIssue(label, "out of date; run 'docsync sync'"))

        if self.units is not None:
            for identity in sorted(set(self.units) - set(documented)):
                _soft(ValidationIssue(identity, "no generated document; run 'docsync generate'"))

        return report

    def _label(self, path: Path) -> str:
        try:
            return path.relative_to(self.store.docs_dir).as_posix()
        except ValueError:
            return str(path)


__all__ = ["DocumentValidator", "ValidationIssue", "ValidationReport"]
