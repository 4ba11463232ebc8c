"""Command orchestration: wires config, scanner, generator, store and pipeline."""

from __future__ import annotations

from pathlib import Path
from typing import Callable, List, Optional, Sequence

from .config import CONFIG_FILENAMES, DocSyncConfig, find_config_file, load_config, render_default_config
from .core.fingerprint import Fingerprinter
from .core.merge import MergeEngine
from .core.metadata import utc_now
from .llm import LLMRunner
from .logging import get_logger
from .models import OUTCOME_FAILED, RunReport, UnitOutcome
from .parsers import UnitParser
from .pipeline import UnitPipeline
from .rendering import ContentGenerator, GenerationContext, LLMOverviewGenerator, TemplateGenerator
from .scanner import ScanResult, SourceScanner
from .stores import FileSystemDocumentStore
from .validator import DocumentValidator, ValidationReport


class Orchestrator:
    """Runs the ``init``, ``generate``, ``sync`` and ``validate`` flows.

    Collaborators are built from the project's configuration on every call
    unless one was injected, which is how tests and the service swap in
    recording doubles.
    """

    def __init__(
        self,
        *,
        parsers: Optional[Sequence[UnitParser]] = None,
        generator: ContentGenerator | None = None,
        llm_runner: LLMRunner | None = None,
        clock: Callable[[], str] = utc_now,
    ) -> None:
        self._parsers = list(parsers) if parsers is not None else None
        self._generator = generator
        self._llm_runner = llm_runner
        self.clock = clock
        self.logger = get_logger("orchestrator")

    def run_init(self, path: str, *, force: bool = False) -> Path:
        """Write a default ``.docsync.yml`` and create the docs directory."""
        root = Path(path).expanduser().resolve()
        if not root.is_dir():
            raise FileNotFoundError(f"Project path not found: {root}")

        existing = find_config_file(root)
        if existing is not None and not force:
            raise FileExistsError(
                f"{existing.name} already exists at {existing.parent}; use --force to overwrite"
            )

        config_path = existing if existing is not None else root / CONFIG_FILENAMES[0]
        config_path.write_text(render_default_config(root.name or "Project"), encoding="utf-8")
        config = load_config(root)
        config.docs_path.mkdir(parents=True, exist_ok=True)
        self.logger.info("Wrote %s", config_path)
        return config_path

    def run_generate(
        self, path: str, *, force: bool = False, config_file: Path | None = None
    ) -> RunReport:
        """Generate documents for every unit; ``force`` also rewrites unchanged ones."""
        config = self._load_config(path, config_file)
        self.logger.info("Generating documentation for %s", config.root)
        return self._run(config, force=force, dry_run=False)

    def run_sync(
        self, path: str, *, dry_run: bool = False, config_file: Path | None = None
    ) -> RunReport:
        """Regenerate only the units whose structure changed since the last run."""
        config = self._load_config(path, config_file)
        self.logger.info("Syncing documentation for %s%s", config.root, " (dry-run)" if dry_run else "")
        return self._run(config, force=False, dry_run=dry_run)

    def run_validate(
        self, path: str, *, strict: bool = False, config_file: Path | None = None
    ) -> ValidationReport:
        """Check the docs tree for malformed markers and stale documents."""
        config = self._load_config(path, config_file)
        scan = self._scanner(config).scan()
        validator = DocumentValidator(
            FileSystemDocumentStore(config.docs_path),
            {unit.identity: unit for unit in scan.units},
            fingerprinter=Fingerprinter(config.fingerprint),
        )
        report = validator.validate(strict=strict)
        self.logger.debug(
            "Validated %d document(s): %d error(s), %d warning(s)",
            report.checked,
            len(report.errors),
            len(report.warnings),
        )
        return report

    def _run(self, config: DocSyncConfig, *, force: bool, dry_run: bool) -> RunReport:
        scan = self._scanner(config).scan()
        pipeline = self._build_pipeline(config)
        report = pipeline.run(scan.units, force=force, dry_run=dry_run)
        report.outcomes = self._merge_scan_failures(report.outcomes, scan)
        self.logger.info("Finished: %s", report.summary())
        return report

    def _build_pipeline(self, config: DocSyncConfig) -> UnitPipeline:
        fingerprinter = Fingerprinter(config.fingerprint)
        return UnitPipeline(
            self._resolve_generator(config),
            FileSystemDocumentStore(config.docs_path),
            context=GenerationContext(
                project_name=config.project_name,
                docs_dir=config.docs_path,
                settings=dict(config.templates.settings),
            ),
            fingerprinter=fingerprinter,
            merge_engine=MergeEngine(fingerprinter, clock=self.clock),
            max_workers=config.generation.max_workers,
            generator_concurrency=config.generation.generator_concurrency,
        )

    def _resolve_generator(self, config: DocSyncConfig) -> ContentGenerator:
        if self._generator is not None:
            return self._generator
        generator: ContentGenerator = TemplateGenerator(config.templates.template_dir)
        if config.llm.enabled:
            runner = self._llm_runner or LLMRunner.from_config(config.llm)
            self.logger.debug("LLM overviews enabled (model=%s)", runner.model)
            generator = LLMOverviewGenerator(generator, runner)
        return generator

    def _scanner(self, config: DocSyncConfig) -> SourceScanner:
        return SourceScanner(config, self._parsers)

    @staticmethod
    def _load_config(path: str, config_file: Path | None) -> DocSyncConfig:
        return load_config(Path(path), config_file=config_file)

    @staticmethod
    def _merge_scan_failures(outcomes: List[UnitOutcome], scan: ScanResult) -> List[UnitOutcome]:
        if not scan.failures:
            return outcomes
        failed = [
            UnitOutcome(identity=identity, status=OUTCOME_FAILED, error=reason)
            for identity, reason in scan.failures.items()
        ]
        return sorted(outcomes + failed, key=lambda outcome: outcome.identity)


__all__ = ["Orchestrator"]
