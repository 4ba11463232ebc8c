"""YAML front-matter header carrying :class:`DocumentMetadata`."""

from __future__ import annotations

from datetime import UTC, datetime
from typing import Any, Dict, List, Optional, Tuple

import yaml

from ..logging import get_logger
from ..models import DocumentMetadata, Fingerprint

_DELIMITER = "---"

logger = get_logger("metadata")


def utc_now() -> str:
    """Return the current UTC time in the header's timestamp format."""
    return datetime.now(UTC).isoformat().replace("+00:00", "Z")


def split_front_matter(text: str) -> Tuple[Optional[str], str]:
    """Split ``text`` into (header YAML, body).

    Returns ``(None, text)`` when the document does not open with a complete
    ``---`` delimited block.
    """
    lines = text.splitlines(keepends=True)
    if not lines or lines[0].rstrip("\r\n") != _DELIMITER:
        return None, text
    for index in range(1, len(lines)):
        if lines[index].rstrip("\r\n") == _DELIMITER:
            header = "".join(lines[1:index])
            body = "".join(lines[index + 1 :])
            return header, body
    return None, text


def render_header(metadata: DocumentMetadata) -> str:
    payload: Dict[str, Any] = {
        "unit": metadata.unit,
        "unit_kind": metadata.unit_kind,
        "last_updated": metadata.last_updated,
        "fingerprint": str(metadata.fingerprint),
    }
    if metadata.generator:
        payload["generator"] = metadata.generator
    payload["protected_blocks"] = list(metadata.protected_blocks)
    dumped = yaml.safe_dump(payload, sort_keys=False, default_flow_style=False, allow_unicode=True)
    return f"{_DELIMITER}\n{dumped}{_DELIMITER}\n"


def render_document(metadata: DocumentMetadata, body: str) -> str:
    return render_header(metadata) + body


def parse_metadata(text: str) -> Optional[DocumentMetadata]:
    """Parse the header of a stored document.

    Anything short of a well-formed header yields None, which makes the change
    detector treat the unit as new and regenerate it.
    """
    header, _ = split_front_matter(text)
    if header is None:
        return None
    try:
        data = yaml.safe_load(header)
    except yaml.YAMLError as exc:
        logger.warning("Ignoring unparseable metadata header: %s", exc)
        return None
    if not isinstance(data, dict):
        return None

    unit = data.get("unit")
    fingerprint = Fingerprint.parse(data.get("fingerprint"))
    if not isinstance(unit, str) or not unit.strip() or fingerprint is None:
        logger.debug("Metadata header lacks unit or fingerprint; treating document as unmanaged")
        return None

    unit_kind = data.get("unit_kind")
    last_updated = data.get("last_updated")
    if isinstance(last_updated, datetime):
        last_updated = last_updated.isoformat().replace("+00:00", "Z")
    generator = data.get("generator")

    return DocumentMetadata(
        unit=unit.strip(),
        unit_kind=str(unit_kind) if unit_kind else "file",
        last_updated=str(last_updated) if last_updated is not None else "",
        fingerprint=fingerprint,
        protected_blocks=tuple(_as_identifiers(data.get("protected_blocks"))),
        generator=str(generator) if generator else None,
    )


def read_document(text: str) -> Tuple[Optional[DocumentMetadata], str]:
    """Return the parsed metadata (if any) and the body without its header."""
    _, body = split_front_matter(text)
    return parse_metadata(text), body


def _as_identifiers(value: Any) -> List[str]:
    if not isinstance(value, list):
        return []
    return [str(item) for item in value if isinstance(item, (str, int))]


__all__ = [
    "parse_metadata",
    "read_document",
    "render_document",
    "render_header",
    "split_front_matter",
    "utc_now",
]
