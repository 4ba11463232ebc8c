"""Change detection against the fingerprint recorded in a document header."""

from __future__ import annotations

from ..logging import get_logger
from ..models import ChangeStatus, DocumentedUnit, DocumentMetadata
from .fingerprint import Fingerprinter


class ChangeDetector:
    """Decides whether a unit needs its document regenerated.

    Any doubt resolves to ``CHANGED``: a needless regeneration only costs time,
    a missed one leaves stale documentation behind.
    """

    def __init__(self, fingerprinter: Fingerprinter | None = None) -> None:
        self.fingerprinter = fingerprinter or Fingerprinter()
        self.logger = get_logger("detector")

    def classify(
        self, unit: DocumentedUnit, existing_metadata: DocumentMetadata | None
    ) -> ChangeStatus:
        if existing_metadata is None:
            return ChangeStatus.NEW

        current = self.fingerprinter.fingerprint(unit)
        if existing_metadata.unit != unit.identity:
            self.logger.debug(
                "Header for %s names unit %s; regenerating",
                unit.identity,
                existing_metadata.unit,
            )
            return ChangeStatus.CHANGED
        if existing_metadata.fingerprint != current:
            return ChangeStatus.CHANGED
        return ChangeStatus.UNCHANGED


__all__ = ["ChangeDetector"]
