"""Per-unit regeneration pipeline and its worker pool."""

from __future__ import annotations

import threading
from concurrent.futures import ThreadPoolExecutor
from typing import Optional, Sequence

from .core.detector import ChangeDetector
from .core.fingerprint import Fingerprinter
from .core.merge import MergeEngine
from .core.metadata import parse_metadata
from .errors import DocSyncError, GenerationFailed
from .logging import UnitLogger, get_logger, unit_logger
from .models import (
    OUTCOME_CREATED,
    OUTCOME_FAILED,
    OUTCOME_PENDING,
    OUTCOME_SKIPPED,
    OUTCOME_UPDATED,
    ChangeStatus,
    DocumentedUnit,
    RunReport,
    UnitOutcome,
)
from .rendering import ContentGenerator, GenerationContext
from .stores import DocumentStore


class UnitPipeline:
    """Runs fingerprint, classify, generate, merge and write for each unit.

    Units are independent: a failure is recorded against the unit that raised
    it and never stops the others. The generator is the only rate-limited
    collaborator; ``generator_concurrency`` caps how many calls are in flight
    across all workers.
    """

    def __init__(
        self,
        generator: ContentGenerator,
        store: DocumentStore,
        *,
        context: GenerationContext,
        fingerprinter: Fingerprinter | None = None,
        detector: ChangeDetector | None = None,
        merge_engine: MergeEngine | None = None,
        max_workers: int = 4,
        generator_concurrency: int = 2,
    ) -> None:
        if max_workers < 1 or generator_concurrency < 1:
            raise ValueError("max_workers and generator_concurrency must be at least 1")
        self.generator = generator
        self.store = store
        self.context = context
        self.fingerprinter = fingerprinter or Fingerprinter()
        self.detector = detector or ChangeDetector(self.fingerprinter)
        self.merge_engine = merge_engine or MergeEngine(self.fingerprinter)
        self.max_workers = max_workers
        self._generator_gate = threading.BoundedSemaphore(generator_concurrency)
        self.logger = get_logger("pipeline")

    def run(
        self,
        units: Sequence[DocumentedUnit],
        *,
        force: bool = False,
        dry_run: bool = False,
    ) -> RunReport:
        """Process ``units`` and return their outcomes in input order."""
        if not units:
            return RunReport()

        def _process(unit: DocumentedUnit) -> UnitOutcome:
            return self.process(unit, force=force, dry_run=dry_run)

        workers = min(self.max_workers, len(units))
        self.logger.debug("Processing %d unit(s) on %d worker(s)", len(units), workers)
        with ThreadPoolExecutor(max_workers=workers, thread_name_prefix="docsync") as executor:
            outcomes = list(executor.map(_process, units))
        return RunReport(outcomes=outcomes)

    def process(
        self, unit: DocumentedUnit, *, force: bool = False, dry_run: bool = False
    ) -> UnitOutcome:
        """Process one unit, converting any failure into a ``failed`` outcome."""
        log = unit_logger("pipeline", unit.identity)
        try:
            return self._process(unit, log, force=force, dry_run=dry_run)
        except DocSyncError as exc:
            log.error("%s", exc)
            return UnitOutcome(identity=unit.identity, status=OUTCOME_FAILED, error=str(exc))
        except Exception as exc:  # pragma: no cover - unexpected bug
            log.exception("unexpected failure")
            return UnitOutcome(
                identity=unit.identity,
                status=OUTCOME_FAILED,
                error=f"{type(exc).__name__}: {exc}",
            )

    def _process(
        self, unit: DocumentedUnit, log: UnitLogger, *, force: bool, dry_run: bool
    ) -> UnitOutcome:
        previous = self.store.read(unit.identity)
        metadata = parse_metadata(previous) if previous is not None else None
        change = self.detector.classify(unit, metadata)

        if change is ChangeStatus.UNCHANGED and not force:
            log.debug("unchanged, skipping")
            return UnitOutcome(identity=unit.identity, status=OUTCOME_SKIPPED, change=change)

        body = self._generate(unit)
        result = self.merge_engine.merge(body, previous, unit, generator=self.generator.name)
        if result.orphaned:
            log.warning(
                "%d protected block(s) moved to Preserved Content: %s",
                len(result.orphaned),
                ", ".join(result.describe_orphans()),
            )

        if dry_run:
            log.info("%s (pending)", change.value)
            return UnitOutcome(
                identity=unit.identity,
                status=OUTCOME_PENDING,
                change=change,
                orphaned=list(result.orphaned),
            )

        path = self.store.write(unit.identity, result)
        status = OUTCOME_CREATED if previous is None else OUTCOME_UPDATED
        log.info("%s", status)
        return UnitOutcome(
            identity=unit.identity,
            status=status,
            change=change,
            orphaned=list(result.orphaned),
            path=str(path),
        )

    def _generate(self, unit: DocumentedUnit) -> str:
        with self._generator_gate:
            try:
                body: Optional[str] = self.generator.generate(unit, self.context)
            except DocSyncError:
                raise
            except Exception as exc:
                raise GenerationFailed(
                    f"{unit.identity}: generator '{self.generator.name}' failed: {exc}"
                ) from exc
        if not isinstance(body, str):
            raise GenerationFailed(
                f"{unit.identity}: generator '{self.generator.name}' returned no content"
            )
        return body


__all__ = ["UnitPipeline"]
