"""Tests for docsync.orchestrator."""

from __future__ import annotations

from pathlib import Path

import pytest

from docsync.core.metadata import read_document
from docsync.core.protector import ProtectedRegionExtractor
from docsync.orchestrator import Orchestrator

SOURCES = {
    "src/analytics/__init__.py": '"""Reporting helpers for the analytics team."""\n',
    "src/analytics/report.py": """
    \"\"\"Build weekly reports.\"\"\"

    def build(rows: list) -> str:
        \"\"\"Render rows as markdown.\"\"\"
        return ""
    """,
}


class RecordingRunner:
    """LLM runner double that records prompts."""

    model = "recording-model"

    def __init__(self, reply: str = "Builds weekly analytics reports.") -> None:
        self.reply = reply
        self.prompts: list[str] = []

    def run(self, prompt: str, *, system: str | None = None) -> str:
        self.prompts.append(prompt)
        return self.reply


def _orchestrator(**kwargs) -> Orchestrator:
    return Orchestrator(clock=lambda: "2026-10-17T09:00:00Z", **kwargs)


def _edit_block(path: Path, label: str, content: str) -> None:
    text = path.read_text(encoding="utf-8")
    opener = f"<!-- PROTECTED: {label} -->\n"
    start = text.index(opener) + len(opener)
    end = text.index("<!-- /PROTECTED -->", start)
    path.write_text(text[:start] + content + text[end:], encoding="utf-8")


def test_init_writes_config_and_docs_dir(source_builder) -> None:
    root = source_builder.path()

    config_path = _orchestrator().run_init(str(root))

    assert config_path == root.resolve() / ".docsync.yml"
    assert "name: project" in config_path.read_text(encoding="utf-8")
    assert (root / "docs").is_dir()


def test_init_refuses_to_overwrite_without_force(source_builder) -> None:
    root = source_builder.path()
    source_builder.write({".docsync.yml": "project:\n  name: Custom\n"})

    with pytest.raises(FileExistsError):
        _orchestrator().run_init(str(root))

    _orchestrator().run_init(str(root), force=True)
    assert "name: Custom" not in (root / ".docsync.yml").read_text(encoding="utf-8")


def test_init_rejects_missing_directory(tmp_path: Path) -> None:
    with pytest.raises(FileNotFoundError):
        _orchestrator().run_init(str(tmp_path / "absent"))


def test_generate_writes_documents_for_files_and_packages(source_builder) -> None:
    source_builder.write(SOURCES)

    report = _orchestrator().run_generate(str(source_builder.path()))

    assert [outcome.identity for outcome in report.outcomes] == [
        "src/analytics",
        "src/analytics/__init__.py",
        "src/analytics/report.py",
    ]
    assert report.created == 3
    metadata, body = read_document(source_builder.doc("src/analytics/report.py").read_text(encoding="utf-8"))
    assert metadata is not None
    assert metadata.generator == "template"
    assert metadata.last_updated == "2026-10-17T09:00:00Z"
    assert "### `build`" in body
    package_body = source_builder.doc("src/analytics").read_text(encoding="utf-8")
    assert "Reporting helpers for the analytics team." in package_body
    assert "(analytics/report.py.md)" in package_body


def test_sync_skips_unchanged_and_keeps_human_edits(source_builder) -> None:
    source_builder.write(SOURCES)
    orchestrator = _orchestrator()
    orchestrator.run_generate(str(source_builder.path()))
    report_doc = source_builder.doc("src/analytics/report.py")
    _edit_block(report_doc, "Testing Strategy", "Uses fixtures under tests/fixtures\n")

    unchanged = orchestrator.run_sync(str(source_builder.path()))
    assert unchanged.skipped == 3

    source_builder.write(
        {
            "src/analytics/report.py": """
            \"\"\"Build weekly reports.\"\"\"

            def build(rows: list, *, title: str) -> str:
                return ""
            """
        }
    )
    changed = orchestrator.run_sync(str(source_builder.path()))

    assert changed.get("src/analytics/report.py").status == "updated"
    assert changed.get("src/analytics").status == "updated"
    assert changed.get("src/analytics/__init__.py").status == "skipped"
    _, body = read_document(report_doc.read_text(encoding="utf-8"))
    block = ProtectedRegionExtractor().extract(body).blocks
    assert [entry.identifier for entry in block] == [
        "module-overview",
        "implementation-notes",
        "testing-strategy",
    ]
    assert block[2].content == "Uses fixtures under tests/fixtures\n"
    assert "title: str" in body


def test_sync_dry_run_leaves_documents_untouched(source_builder) -> None:
    source_builder.write(SOURCES)

    report = _orchestrator().run_sync(str(source_builder.path()), dry_run=True)

    assert report.pending == 3
    assert not source_builder.doc("src/analytics/report.py").exists()


def test_generate_force_rewrites_unchanged_documents(source_builder) -> None:
    source_builder.write(SOURCES)
    orchestrator = _orchestrator()
    orchestrator.run_generate(str(source_builder.path()))

    report = orchestrator.run_generate(str(source_builder.path()), force=True)

    assert report.updated == 3


def test_parse_failures_are_reported_per_file(source_builder) -> None:
    source_builder.write({**SOURCES, "src/analytics/broken.py": "def oops(:\n"})

    report = _orchestrator().run_generate(str(source_builder.path()))

    failed = report.get("src/analytics/broken.py")
    assert failed is not None
    assert failed.status == "failed"
    assert report.created == 3
    assert [outcome.identity for outcome in report.outcomes] == sorted(
        outcome.identity for outcome in report.outcomes
    )


def test_llm_overview_is_inserted_when_enabled(source_builder) -> None:
    source_builder.write({**SOURCES, ".docsync.yml": "generation:\n  package_docs: false\nllm:\n  enabled: true\n"})
    runner = RecordingRunner()

    report = _orchestrator(llm_runner=runner).run_generate(str(source_builder.path()))

    assert report.created == 2
    assert len(runner.prompts) == 2
    metadata, body = read_document(source_builder.doc("src/analytics/report.py").read_text(encoding="utf-8"))
    assert metadata.generator == "template+llm"
    assert body.startswith("# report.py\n\nBuilds weekly analytics reports.\n")


def test_validate_reports_stale_and_missing_documents(source_builder) -> None:
    source_builder.write(SOURCES)
    orchestrator = _orchestrator()
    orchestrator.run_generate(str(source_builder.path()))
    source_builder.write({"src/analytics/extra.py": "def extra():\n    pass\n"})

    report = orchestrator.run_validate(str(source_builder.path()))
    strict = orchestrator.run_validate(str(source_builder.path()), strict=True)

    messages = [str(issue) for issue in report.warnings]
    assert "src/analytics.md: out of date; run 'docsync sync'" in messages
    assert "src/analytics/extra.py: no generated document; run 'docsync generate'" in messages
    assert report.ok
    assert not strict.ok


def test_generate_uses_explicit_config_file(source_builder, tmp_path: Path) -> None:
    source_builder.write(SOURCES)
    shared = tmp_path / "shared.yml"
    shared.write_text("project:\n  docs_dir: handbook\ngeneration:\n  package_docs: false\n", encoding="utf-8")

    report = _orchestrator().run_generate(str(source_builder.path()), config_file=shared)

    assert report.created == 2
    assert (source_builder.path() / "handbook" / "src" / "analytics" / "report.py.md").exists()


def test_generate_rejects_missing_project(tmp_path: Path) -> None:
    with pytest.raises(FileNotFoundError):
        _orchestrator().run_generate(str(tmp_path / "absent"))
