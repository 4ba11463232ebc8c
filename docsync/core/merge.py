"""Merge freshly generated bodies with the protected blocks of a previous document."""

from __future__ import annotations

from typing import Callable, Dict, List, Optional, Sequence

from ..logging import get_logger
from ..models import DocumentedUnit, DocumentMetadata, ExtractionResult, MergeResult, ProtectedBlock
from .fingerprint import Fingerprinter
from .metadata import render_document, split_front_matter, utc_now
from .protector import ProtectedRegionExtractor


class MergeEngine:
    """Builds the complete next version of a unit's document.

    Human content wins unconditionally: every protected block of the previous
    document is either spliced into the placeholder with the same identifier in
    the fresh body, or carried over verbatim into a trailing "Preserved
    Content" section and reported as orphaned. The engine never patches the
    previous text; it always assembles a whole new document from the fresh
    skeleton.
    """

    PRESERVED_HEADING = "## Preserved Content (no longer auto-placed)"
    PRESERVED_NOTE = (
        "_The protected blocks below no longer match a generated section. "
        "Move them into place or delete them by hand._"
    )

    def __init__(
        self,
        fingerprinter: Fingerprinter | None = None,
        *,
        extractor: ProtectedRegionExtractor | None = None,
        clock: Callable[[], str] = utc_now,
    ) -> None:
        self.fingerprinter = fingerprinter or Fingerprinter()
        self.extractor = extractor or ProtectedRegionExtractor()
        self.clock = clock
        self.logger = get_logger("merge")

    def merge(
        self,
        fresh_body: str,
        previous_document: Optional[str],
        unit: DocumentedUnit,
        *,
        generator: str | None = None,
    ) -> MergeResult:
        """Merge ``fresh_body`` with ``previous_document`` for ``unit``.

        Raises ``UnbalancedProtectedRegion`` or ``NestedProtectedRegion`` when
        either document has malformed markers, and ``FingerprintInputInvalid``
        when the unit itself is malformed. Nothing is written here.
        """
        fingerprint = self.fingerprinter.fingerprint(unit)
        fresh = self.extractor.extract(fresh_body)

        if previous_document is None:
            metadata = DocumentMetadata(
                unit=unit.identity,
                unit_kind=unit.kind,
                last_updated=self.clock(),
                fingerprint=fingerprint,
                protected_blocks=tuple(fresh.identifiers()),
                generator=generator,
            )
            return MergeResult(
                text=render_document(metadata, fresh_body),
                metadata=metadata,
                orphaned=(),
                placed=tuple(fresh.identifiers()),
            )

        _, previous_body = split_front_matter(previous_document)
        previous = self.extractor.extract(previous_body)

        body, placed = self._place_blocks(fresh, previous)
        orphans = self._orphaned_blocks(fresh, previous)
        if orphans:
            body = self._append_preserved(body, orphans)

        # Unlabeled and repeated labels are numbered by position, so an orphan
        # can carry a different identifier once it sits under Preserved Content.
        written = self.extractor.extract(body).identifiers()
        metadata = DocumentMetadata(
            unit=unit.identity,
            unit_kind=unit.kind,
            last_updated=self.clock(),
            fingerprint=fingerprint,
            protected_blocks=tuple(written),
            generator=generator,
        )
        result = MergeResult(
            text=render_document(metadata, body),
            metadata=metadata,
            orphaned=tuple(block.identifier for block in orphans),
            placed=tuple(placed),
            preserved_as=tuple(written[len(written) - len(orphans):]),
        )
        if orphans:
            self.logger.debug(
                "%s: %d protected block(s) orphaned: %s",
                unit.identity,
                len(orphans),
                ", ".join(result.describe_orphans()),
            )
        return result

    def _place_blocks(
        self, fresh: ExtractionResult, previous: ExtractionResult
    ) -> tuple[str, List[str]]:
        fresh_by_id: Dict[str, ProtectedBlock] = {block.identifier: block for block in fresh.blocks}
        previous_by_id: Dict[str, ProtectedBlock] = {
            block.identifier: block for block in previous.blocks
        }
        placed: List[str] = []

        def _render(identifier: str) -> Optional[str]:
            slot = fresh_by_id.get(identifier)
            if slot is None or identifier in placed:
                return None
            placed.append(identifier)
            prior = previous_by_id.get(identifier)
            if prior is None:
                return self.extractor.render_block(slot)
            return self.extractor.render_block(slot, prior.content)

        body = self.extractor.fill_placeholders(fresh.skeleton, _render)
        return body, placed

    @staticmethod
    def _orphaned_blocks(
        fresh: ExtractionResult, previous: ExtractionResult
    ) -> List[ProtectedBlock]:
        slots = set(fresh.identifiers())
        return [block for block in previous.blocks if block.identifier not in slots]

    def _append_preserved(self, body: str, orphans: Sequence[ProtectedBlock]) -> str:
        if body and not body.endswith("\n"):
            body = f"{body}\n"
        rendered = "\n\n".join(self.extractor.render_block(block) for block in orphans)
        separator = "\n" if body else ""
        return (
            f"{body}{separator}{self.PRESERVED_HEADING}\n\n"
            f"{self.PRESERVED_NOTE}\n\n{rendered}\n"
        )


__all__ = ["MergeEngine"]
