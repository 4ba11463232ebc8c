"""Tests for docsync.core.metadata."""

from __future__ import annotations

from docsync.core.metadata import (
    parse_metadata,
    read_document,
    render_document,
    render_header,
    split_front_matter,
    utc_now,
)
from docsync.models import DocumentMetadata, Fingerprint

_FINGERPRINT = Fingerprint(algorithm="sha256", digest="ab" * 32)


def _metadata(**overrides: object) -> DocumentMetadata:
    values: dict[str, object] = {
        "unit": "pkg/analytics",
        "unit_kind": "package",
        "last_updated": "2026-10-17T09:00:00Z",
        "fingerprint": _FINGERPRINT,
        "protected_blocks": ("module-overview", "testing-strategy"),
        "generator": "template",
    }
    values.update(overrides)
    return DocumentMetadata(**values)  # type: ignore[arg-type]


def test_render_header_layout() -> None:
    header = render_header(_metadata())

    assert header == (
        "---\n"
        "unit: pkg/analytics\n"
        "unit_kind: package\n"
        "last_updated: '2026-10-17T09:00:00Z'\n"
        f"fingerprint: sha256:{'ab' * 32}\n"
        "generator: template\n"
        "protected_blocks:\n"
        "- module-overview\n"
        "- testing-strategy\n"
        "---\n"
    )


def test_rendered_document_parses_back() -> None:
    metadata = _metadata()
    text = render_document(metadata, "# Body\n")

    parsed, body = read_document(text)

    assert parsed == metadata
    assert body == "# Body\n"


def test_generator_is_optional() -> None:
    metadata = _metadata(generator=None, protected_blocks=())

    header = render_header(metadata)

    assert "generator" not in header
    assert "protected_blocks: []" in header
    assert parse_metadata(header + "body") == metadata


def test_document_without_header_yields_none() -> None:
    metadata, body = read_document("# Hand written\n")

    assert metadata is None
    assert body == "# Hand written\n"


def test_unterminated_header_is_treated_as_body() -> None:
    text = "---\nunit: a\n# no closing delimiter\n"

    assert split_front_matter(text) == (None, text)
    assert parse_metadata(text) is None


def test_unparseable_header_yields_none() -> None:
    text = "---\nunit: [unclosed\n---\nbody\n"

    metadata, body = read_document(text)

    assert metadata is None
    assert body == "body\n"


def test_header_missing_fingerprint_yields_none() -> None:
    assert parse_metadata("---\nunit: a.py\nunit_kind: file\n---\n") is None


def test_header_with_malformed_fingerprint_yields_none() -> None:
    assert parse_metadata("---\nunit: a.py\nfingerprint: deadbeef\n---\n") is None


def test_unquoted_timestamp_is_normalised() -> None:
    text = f"---\nunit: a.py\nunit_kind: file\nlast_updated: 2026-10-17T09:00:00Z\nfingerprint: sha256:{'ab' * 32}\n---\n"

    metadata = parse_metadata(text)

    assert metadata is not None
    assert metadata.last_updated == "2026-10-17T09:00:00Z"


def test_utc_now_uses_z_suffix() -> None:
    assert utc_now().endswith("Z")
