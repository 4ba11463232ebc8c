"""Tests for the per-unit regeneration pipeline."""

from __future__ import annotations

import os
import threading
import time
from pathlib import Path
from typing import Dict, List

import pytest

from docsync.core.fingerprint import Fingerprinter
from docsync.core.merge import MergeEngine
from docsync.core.metadata import parse_metadata, read_document
from docsync.core.protector import ProtectedRegionExtractor
from docsync.errors import GenerationFailed
from docsync.models import ChangeStatus, DocumentedUnit, Member
from docsync.pipeline import UnitPipeline
from docsync.rendering import GenerationContext
from docsync.stores import FileSystemDocumentStore

CONTEXT = GenerationContext(project_name="Demo")

ANALYTICS = DocumentedUnit(
    identity="pkg/analytics",
    kind="package",
    language="python",
    members=(Member(name="report", kind="function", signature="(rows)"),),
)


class RecordingGenerator:
    """Generator double that renders a fixed skeleton and records every call."""

    name = "recording"

    def __init__(self, sections: tuple[str, ...] = ("Module Overview", "Testing Strategy")) -> None:
        self.sections = sections
        self.calls: List[str] = []
        self._lock = threading.Lock()

    def generate(self, unit: DocumentedUnit, context: GenerationContext) -> str:
        with self._lock:
            self.calls.append(unit.identity)
        lines = [f"# {unit.display_name}", ""]
        for member in unit.members:
            lines.append(f"- `{member.name}{member.signature or ''}`")
        for section in self.sections:
            lines.extend(["", f"## {section}", "", ProtectedRegionExtractor.protect("_default_", section)])
        return "\n".join(lines) + "\n"


class FailingGenerator(RecordingGenerator):
    name = "failing"

    def __init__(self, failing: str) -> None:
        super().__init__()
        self.failing = failing

    def generate(self, unit: DocumentedUnit, context: GenerationContext) -> str:
        if unit.identity == self.failing:
            raise ValueError("model unavailable")
        return super().generate(unit, context)


class MemoryStore:
    """In-memory document store that counts writes."""

    def __init__(self, documents: Dict[str, str] | None = None) -> None:
        self.documents: Dict[str, str] = dict(documents or {})
        self.writes: List[str] = []

    def read(self, identity: str):
        return self.documents.get(identity)

    def write(self, identity: str, result):
        self.documents[identity] = result.text
        self.writes.append(identity)
        return Path("/virtual") / f"{identity}.md"


def _pipeline(generator, store, **kwargs) -> UnitPipeline:
    fingerprinter = Fingerprinter()
    return UnitPipeline(
        generator,
        store,
        context=CONTEXT,
        fingerprinter=fingerprinter,
        merge_engine=MergeEngine(fingerprinter, clock=lambda: "2026-10-17T09:00:00Z"),
        **kwargs,
    )


def _changed(unit: DocumentedUnit) -> DocumentedUnit:
    return DocumentedUnit(
        identity=unit.identity,
        kind=unit.kind,
        language=unit.language,
        members=unit.members + (Member(name="export", kind="function", signature="(path)"),),
    )


def _edit_block(text: str, label: str, content: str) -> str:
    opener = f"<!-- PROTECTED: {label} -->\n"
    start = text.index(opener) + len(opener)
    end = text.index("<!-- /PROTECTED -->", start)
    return text[:start] + content + text[end:]


def test_new_unit_gets_document_with_matching_fingerprint() -> None:
    store = MemoryStore()

    report = _pipeline(RecordingGenerator(), store).run([ANALYTICS])

    outcome = report.get("pkg/analytics")
    assert outcome is not None
    assert outcome.status == "created"
    assert outcome.change is ChangeStatus.NEW
    assert outcome.orphaned == []
    metadata = parse_metadata(store.documents["pkg/analytics"])
    assert metadata is not None
    assert metadata.fingerprint == Fingerprinter().fingerprint(ANALYTICS)
    assert metadata.generator == "recording"
    assert metadata.protected_blocks == ("module-overview", "testing-strategy")


def test_unchanged_unit_skips_generator_and_leaves_file_untouched(tmp_path: Path) -> None:
    store = FileSystemDocumentStore(tmp_path / "docs")
    generator = RecordingGenerator()
    pipeline = _pipeline(generator, store)
    pipeline.run([ANALYTICS])
    path = store.path_for("pkg/analytics")
    before = path.read_bytes()
    stamp = time.time() - 3600
    os.utime(path, (stamp, stamp))

    report = pipeline.run([ANALYTICS])

    assert report.get("pkg/analytics").status == "skipped"
    assert report.get("pkg/analytics").change is ChangeStatus.UNCHANGED
    assert generator.calls == ["pkg/analytics"]
    assert path.read_bytes() == before
    assert path.stat().st_mtime == pytest.approx(stamp)


def test_changed_unit_keeps_human_block_text_exactly() -> None:
    store = MemoryStore()
    pipeline = _pipeline(RecordingGenerator(), store)
    pipeline.run([ANALYTICS])
    store.documents["pkg/analytics"] = _edit_block(
        store.documents["pkg/analytics"], "Testing Strategy", "Uses fixtures under tests/fixtures\n"
    )

    report = pipeline.run([_changed(ANALYTICS)])

    assert report.get("pkg/analytics").status == "updated"
    assert report.get("pkg/analytics").change is ChangeStatus.CHANGED
    _, body = read_document(store.documents["pkg/analytics"])
    blocks = ProtectedRegionExtractor().extract(body).blocks
    assert [block.identifier for block in blocks] == ["module-overview", "testing-strategy"]
    assert blocks[1].content == "Uses fixtures under tests/fixtures\n"
    fresh = RecordingGenerator().generate(_changed(ANALYTICS), CONTEXT)
    assert body == _edit_block(fresh, "Testing Strategy", "Uses fixtures under tests/fixtures\n")


def test_user_invented_block_is_preserved_as_orphan() -> None:
    store = MemoryStore()
    pipeline = _pipeline(RecordingGenerator(), store)
    pipeline.run([ANALYTICS])
    team_block = "<!-- PROTECTED: Team Metadata -->\nOwner: data-platform\n<!-- /PROTECTED -->"
    store.documents["pkg/analytics"] += "\n" + team_block + "\n"

    report = pipeline.run([_changed(ANALYTICS)])

    outcome = report.get("pkg/analytics")
    assert outcome.orphaned == ["team-metadata"]
    document = store.documents["pkg/analytics"]
    assert MergeEngine.PRESERVED_HEADING in document
    assert team_block in document
    assert document.index(MergeEngine.PRESERVED_HEADING) < document.index(team_block)


def test_unbalanced_document_fails_alone_and_stays_on_disk(tmp_path: Path) -> None:
    store = FileSystemDocumentStore(tmp_path / "docs")
    pipeline = _pipeline(RecordingGenerator(), store)
    healthy = DocumentedUnit(identity="pkg/healthy.py", kind="module", language="python")
    pipeline.run([ANALYTICS, healthy])
    broken_path = store.path_for("pkg/analytics")
    broken = broken_path.read_text(encoding="utf-8") + "<!-- PROTECTED: Broken -->\nno close\n"
    broken_path.write_text(broken, encoding="utf-8")

    report = pipeline.run([_changed(ANALYTICS), _changed(healthy)])

    failed = report.get("pkg/analytics")
    assert failed.status == "failed"
    assert "never closed" in failed.error
    assert broken_path.read_text(encoding="utf-8") == broken
    assert report.get("pkg/healthy.py").status == "updated"
    assert report.has_failures


def test_second_run_after_regeneration_is_idempotent() -> None:
    store = MemoryStore()
    pipeline = _pipeline(RecordingGenerator(), store)
    pipeline.run([ANALYTICS])
    store.documents["pkg/analytics"] = _edit_block(
        store.documents["pkg/analytics"], "Module Overview", "Human overview.\n"
    )
    pipeline.run([_changed(ANALYTICS)])
    first = store.documents["pkg/analytics"]

    report = pipeline.run([_changed(ANALYTICS)], force=True)

    assert report.get("pkg/analytics").status == "updated"
    assert store.documents["pkg/analytics"] == first


def test_blocks_survive_repeated_regeneration_without_loss() -> None:
    store = MemoryStore()
    pipeline = _pipeline(RecordingGenerator(sections=("Notes", "Extra")), store)
    pipeline.run([ANALYTICS])
    document = _edit_block(store.documents["pkg/analytics"], "Notes", "note\n")
    store.documents["pkg/analytics"] = _edit_block(document, "Extra", "extra\n")

    # The skeleton drops "Extra", then the unit keeps changing.
    narrower = _pipeline(RecordingGenerator(sections=("Notes",)), store)
    unit = ANALYTICS
    for _ in range(3):
        unit = _changed(unit)
        narrower.run([unit])

    document = store.documents["pkg/analytics"]
    blocks = ProtectedRegionExtractor().extract(read_document(document)[1]).blocks
    assert [(block.identifier, block.content) for block in blocks] == [("notes", "note\n"), ("extra", "extra\n")]
    assert document.count(MergeEngine.PRESERVED_HEADING) == 1


def test_relabelled_block_still_matches_after_normalization() -> None:
    store = MemoryStore()
    _pipeline(RecordingGenerator(sections=("architecture-decision",)), store).run([ANALYTICS])
    store.documents["pkg/analytics"] = _edit_block(
        store.documents["pkg/analytics"], "architecture-decision", "We chose Postgres.\n"
    )

    report = _pipeline(RecordingGenerator(sections=("Architecture Decision",)), store).run(
        [_changed(ANALYTICS)]
    )

    assert report.get("pkg/analytics").orphaned == []
    assert "<!-- PROTECTED: Architecture Decision -->\nWe chose Postgres.\n" in store.documents["pkg/analytics"]


def test_dry_run_reports_pending_without_writing() -> None:
    store = MemoryStore()

    report = _pipeline(RecordingGenerator(), store).run([ANALYTICS], dry_run=True)

    assert report.get("pkg/analytics").status == "pending"
    assert report.has_changes
    assert store.writes == []


def test_force_regenerates_unchanged_units() -> None:
    store = MemoryStore()
    generator = RecordingGenerator()
    pipeline = _pipeline(generator, store)
    pipeline.run([ANALYTICS])

    report = pipeline.run([ANALYTICS], force=True)

    assert report.get("pkg/analytics").status == "updated"
    assert report.get("pkg/analytics").change is ChangeStatus.UNCHANGED
    assert generator.calls == ["pkg/analytics", "pkg/analytics"]


def test_generator_exception_becomes_failed_outcome() -> None:
    store = MemoryStore()
    units = [DocumentedUnit(identity=name, kind="module") for name in ("a.py", "b.py", "c.py")]

    report = _pipeline(FailingGenerator("b.py"), store).run(units)

    assert [outcome.status for outcome in report.outcomes] == ["created", "failed", "created"]
    assert "model unavailable" in report.get("b.py").error
    assert "b.py" not in store.documents


def test_generator_returning_nothing_fails() -> None:
    class SilentGenerator:
        name = "silent"

        def generate(self, unit, context):
            return None

    report = _pipeline(SilentGenerator(), MemoryStore()).run([ANALYTICS])

    assert report.get("pkg/analytics").status == "failed"
    assert "returned no content" in report.get("pkg/analytics").error


def test_invalid_unit_is_isolated() -> None:
    store = MemoryStore()
    bad = DocumentedUnit(identity="bad.py", kind="")

    report = _pipeline(RecordingGenerator(), store).run([bad, ANALYTICS])

    assert report.get("bad.py").status == "failed"
    assert report.get("pkg/analytics").status == "created"


def test_outcomes_follow_input_order_under_concurrency() -> None:
    units = [DocumentedUnit(identity=f"mod_{index:02d}.py", kind="module") for index in range(20)]

    report = _pipeline(RecordingGenerator(), MemoryStore(), max_workers=8).run(units)

    assert [outcome.identity for outcome in report.outcomes] == [unit.identity for unit in units]
    assert report.created == 20


def test_generator_concurrency_is_bounded() -> None:
    class SlowGenerator(RecordingGenerator):
        def __init__(self) -> None:
            super().__init__()
            self.active = 0
            self.peak = 0

        def generate(self, unit, context):
            with self._lock:
                self.active += 1
                self.peak = max(self.peak, self.active)
            time.sleep(0.02)
            with self._lock:
                self.active -= 1
            return super().generate(unit, context)

    generator = SlowGenerator()
    units = [DocumentedUnit(identity=f"mod_{index}.py", kind="module") for index in range(8)]

    _pipeline(generator, MemoryStore(), max_workers=8, generator_concurrency=2).run(units)

    assert 1 <= generator.peak <= 2


def test_empty_run_returns_empty_report() -> None:
    report = _pipeline(RecordingGenerator(), MemoryStore()).run([])

    assert report.outcomes == []
    assert report.summary() == "0 created, 0 updated, 0 skipped, 0 failed"


@pytest.mark.parametrize("kwargs", [{"max_workers": 0}, {"generator_concurrency": 0}])
def test_invalid_pool_sizes_are_rejected(kwargs) -> None:
    with pytest.raises(ValueError):
        _pipeline(RecordingGenerator(), MemoryStore(), **kwargs)


def test_generation_failed_is_not_rewrapped() -> None:
    class ExplicitFailure(RecordingGenerator):
        def generate(self, unit, context):
            raise GenerationFailed("template missing")

    report = _pipeline(ExplicitFailure(), MemoryStore()).run([ANALYTICS])

    assert report.get("pkg/analytics").error == "template missing"
