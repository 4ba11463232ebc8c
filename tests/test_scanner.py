"""Tests for docsync.scanner."""

from __future__ import annotations

import pytest

from docsync.config import load_config
from docsync.models import DocumentedUnit
from docsync.parsers import PythonParser
from docsync.scanner import SourceScanner


def test_scanner_builds_file_and_package_units(source_builder) -> None:
    source_builder.write(
        {
            "src/pkg/__init__.py": '"""Analytics helpers."""\n',
            "src/pkg/core.py": """
            \"\"\"Core module.\"\"\"

            def run(x: int) -> int:
                return x
            """,
            "src/pkg/util.py": "def helper():\n    pass\n",
            "README.md": "# Demo\n",
        }
    )

    result = source_builder.scan()

    identities = [unit.identity for unit in result.units]
    assert identities == ["src/pkg", "src/pkg/__init__.py", "src/pkg/core.py", "src/pkg/util.py"]
    package = result.get("src/pkg")
    assert package.kind == "package"
    assert package.language == "python"
    assert package.doc == "Analytics helpers."
    assert [child.identity for child in package.children] == [
        "src/pkg/__init__.py",
        "src/pkg/core.py",
        "src/pkg/util.py",
    ]
    core = result.get("src/pkg/core.py")
    assert core.doc == "Core module."
    assert [member.name for member in core.members] == ["run"]
    assert result.failures == {}


def test_scanner_respects_gitignore_and_excluded_dirs(source_builder) -> None:
    source_builder.write(
        {
            ".gitignore": "generated/\n*.tmp.py\n!keep.tmp.py\n",
            "src/app.py": "x = 1\n",
            "src/generated/out.py": "x = 1\n",
            "src/scratch.tmp.py": "x = 1\n",
            "src/keep.tmp.py": "x = 1\n",
            "src/__pycache__/app.py": "x = 1\n",
            "src/node_modules/lib.py": "x = 1\n",
        }
    )

    identities = [unit.identity for unit in source_builder.scan().units]

    assert "src/app.py" in identities
    assert "src/keep.tmp.py" in identities
    assert "src/generated/out.py" not in identities
    assert "src/scratch.tmp.py" not in identities
    assert not any("__pycache__" in identity or "node_modules" in identity for identity in identities)


def test_scanner_applies_exclude_paths_and_skips_docs_dir(source_builder) -> None:
    source_builder.write(
        {
            ".docsync.yml": """
            project:
              source_dirs: ["."]
              docs_dir: docs
              exclude_paths: ["tests/"]
            generation:
              package_docs: false
            """,
            "app.py": "x = 1\n",
            "tests/test_app.py": "def test_x():\n    pass\n",
            "docs/snippet.py": "x = 1\n",
        }
    )

    identities = [unit.identity for unit in source_builder.scan().units]

    assert identities == ["app.py"]


def test_scanner_records_parse_failures(source_builder) -> None:
    source_builder.write(
        {
            "src/good.py": "x = 1\n",
            "src/bad.py": "def broken(:\n",
        }
    )

    result = source_builder.scan()

    assert "src/bad.py" in result.failures
    assert "src/bad.py" in result.failures["src/bad.py"]
    assert result.get("src/good.py") is not None
    assert result.get("src/bad.py") is None


def test_scanner_skips_oversized_files(source_builder) -> None:
    source_builder.write(
        {
            ".docsync.yml": "parsing:\n  max_file_size: 64\n",
            "src/small.py": "x = 1\n",
            "src/large.py": "x = 1\n" * 40,
        }
    )

    identities = [unit.identity for unit in source_builder.scan().units]

    assert "src/small.py" in identities
    assert "src/large.py" not in identities


def test_scanner_honours_unit_granularity_flags(source_builder) -> None:
    source_builder.write(
        {
            ".docsync.yml": "generation:\n  file_docs: false\n",
            "src/pkg/a.py": "x = 1\n",
            "src/pkg/b.py": "y = 2\n",
        }
    )

    identities = [unit.identity for unit in source_builder.scan().units]

    assert identities == ["src/pkg"]


def test_scanner_mixed_language_package_has_no_language(source_builder) -> None:
    class FakeJavaParser:
        language = "java"

        def supports(self, path):
            return path.suffix == ".java"

        def parse(self, source, identity):
            return DocumentedUnit(identity=identity, kind="file", language="java")

    source_builder.write({"src/mixed/a.py": "x = 1\n", "src/mixed/B.java": "class B {}\n"})

    result = SourceScanner(source_builder.config(), parsers=[PythonParser(), FakeJavaParser()]).scan()

    package = result.get("src/mixed")
    assert package.language is None
    assert [child.language for child in package.children] == ["java", "python"]


def test_scanner_ignores_unsupported_languages(source_builder) -> None:
    source_builder.write(
        {
            ".docsync.yml": "parsing:\n  languages: [python]\n",
            "src/app.py": "x = 1\n",
            "src/App.java": "class App {}\n",
        }
    )

    identities = [unit.identity for unit in source_builder.scan().units]

    assert "src/App.java" not in identities
    assert "src/app.py" in identities


def test_scanner_tolerates_missing_source_dir(source_builder) -> None:
    source_builder.write({"lib/app.py": "x = 1\n"})

    result = source_builder.scan()

    assert result.units == []
    assert result.failures == {}


def test_scanner_rejects_missing_root(tmp_path) -> None:
    config = load_config(tmp_path / "absent")

    with pytest.raises(FileNotFoundError):
        SourceScanner(config).scan()
