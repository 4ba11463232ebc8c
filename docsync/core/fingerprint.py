"""Structural fingerprints for documented units."""

from __future__ import annotations

import hashlib
import inspect
import json
from typing import Any, Dict, List, Optional, Sequence

from ..config import FingerprintConfig
from ..errors import FingerprintInputInvalid
from ..models import DocumentedUnit, Fingerprint, Member

# Bump when the canonical payload layout changes so stored fingerprints go stale.
_SCHEMA_VERSION = 1

_OPENERS = frozenset("([{<")
_CLOSERS = frozenset(")]}>,")
_QUOTES = frozenset("\"'`")


class Fingerprinter:
    """Hashes a canonical serialization of a unit's structurally significant fields.

    Signatures lose layout whitespace outside quoted literals and doc text
    loses its common indent and trailing blanks; everything else is hashed
    as given because it is rendered verbatim.

    Member order is canonicalised unless the unit kind is configured as
    order-sensitive; owned sub-units are always ordered by identity.
    """

    def __init__(self, config: FingerprintConfig | None = None) -> None:
        self.config = config or FingerprintConfig()
        try:
            sample = hashlib.new(self.config.algorithm)
        except (ValueError, TypeError) as exc:
            raise FingerprintInputInvalid(
                f"Unsupported fingerprint algorithm: {self.config.algorithm!r}"
            ) from exc
        if not sample.digest_size:
            # Variable-length digests (shake_*) have no fixed-size hex form.
            raise FingerprintInputInvalid(
                f"Fingerprint algorithm must have a fixed digest size: {self.config.algorithm!r}"
            )

    @property
    def algorithm(self) -> str:
        return self.config.algorithm

    def fingerprint(self, unit: DocumentedUnit) -> Fingerprint:
        payload = {"schema": _SCHEMA_VERSION, "unit": self._canonical_unit(unit, path=())}
        encoded = json.dumps(payload, sort_keys=True, separators=(",", ":"), ensure_ascii=False)
        digest = hashlib.new(self.config.algorithm)
        digest.update(encoded.encode("utf-8"))
        return Fingerprint(algorithm=self.config.algorithm, digest=digest.hexdigest())

    def canonical_payload(self, unit: DocumentedUnit) -> str:
        """Return the exact text that gets hashed; useful when debugging spurious changes."""
        payload = {"schema": _SCHEMA_VERSION, "unit": self._canonical_unit(unit, path=())}
        return json.dumps(payload, sort_keys=True, indent=2, ensure_ascii=False)

    def _canonical_unit(self, unit: DocumentedUnit, path: Sequence[str]) -> Dict[str, Any]:
        if not isinstance(unit, DocumentedUnit):
            raise FingerprintInputInvalid(f"Expected DocumentedUnit, got {type(unit).__name__}")
        identity = _require_text(unit.identity, "identity", path)
        kind = _require_text(unit.kind, "kind", path + (identity,)).lower()
        location = tuple(path) + (identity,)
        if identity in path:
            raise FingerprintInputInvalid(
                f"Unit {identity!r} owns itself through {' -> '.join(location)}"
            )

        ordered = self.config.is_order_sensitive(kind)
        members = [self._canonical_member(member, location, ordered) for member in unit.members]
        if not ordered:
            members.sort(key=_member_sort_key)

        children = [self._canonical_unit(child, location) for child in unit.children]
        children.sort(key=lambda entry: entry["identity"])

        return {
            "identity": identity,
            "kind": kind,
            "language": _optional_text(unit.language, "language", location),
            "doc": _normalise_doc(unit.doc, location),
            "members": members,
            "children": children,
        }

    def _canonical_member(
        self, member: Member, path: Sequence[str], ordered: bool
    ) -> Dict[str, Any]:
        if not isinstance(member, Member):
            raise FingerprintInputInvalid(
                f"Expected Member in {'/'.join(path)}, got {type(member).__name__}"
            )
        name = _require_text(member.name, "member name", path)
        location = tuple(path) + (name,)
        children = [self._canonical_member(child, location, ordered) for child in member.children]
        if not ordered:
            children.sort(key=_member_sort_key)
        return {
            "name": name,
            "kind": _require_text(member.kind, "member kind", location).lower(),
            "visibility": (_optional_text(member.visibility, "visibility", location) or "public").lower(),
            "signature": _normalise_signature(member.signature, location),
            "doc": _normalise_doc(member.doc, location),
            "children": children,
        }


def _member_sort_key(entry: Dict[str, Any]) -> tuple:
    return (entry["name"], entry["kind"], entry["signature"] or "", entry["visibility"])


def _require_text(value: Any, field_name: str, path: Sequence[str]) -> str:
    if not isinstance(value, str):
        raise FingerprintInputInvalid(
            f"{field_name} must be a string at {'/'.join(path) or '<root>'}, got {type(value).__name__}"
        )
    stripped = value.strip()
    if not stripped:
        raise FingerprintInputInvalid(f"{field_name} is empty at {'/'.join(path) or '<root>'}")
    return stripped


def _optional_text(value: Any, field_name: str, path: Sequence[str]) -> Optional[str]:
    if value is None:
        return None
    if not isinstance(value, str):
        raise FingerprintInputInvalid(
            f"{field_name} must be a string at {'/'.join(path)}, got {type(value).__name__}"
        )
    return value.strip() or None


def _normalise_signature(value: Any, path: Sequence[str]) -> Optional[str]:
    text = _optional_text(value, "signature", path)
    if text is None:
        return None
    # "f( a,\n  b )" and "f(a, b)" parse to the same structure; quoted literals
    # are copied through untouched because their spacing is part of the value.
    out: List[str] = []
    quote: Optional[str] = None
    pending_space = False
    index = 0
    while index < len(text):
        char = text[index]
        if quote is not None:
            out.append(char)
            if char == "\\" and index + 1 < len(text):
                out.append(text[index + 1])
                index += 1
            elif char == quote:
                quote = None
        elif char.isspace():
            pending_space = True
        else:
            if pending_space and out and out[-1] not in _OPENERS and char not in _CLOSERS:
                out.append(" ")
            pending_space = False
            out.append(char)
            if char in _QUOTES:
                quote = char
        index += 1
    return "".join(out)


def _normalise_doc(value: Any, path: Sequence[str]) -> Optional[str]:
    if value is None:
        return None
    if not isinstance(value, str):
        raise FingerprintInputInvalid(
            f"doc must be a string at {'/'.join(path)}, got {type(value).__name__}"
        )
    # Only the common indent and trailing blanks go; the text is rendered
    # verbatim, so inner spacing and line breaks are significant.
    lines = [line.rstrip() for line in inspect.cleandoc(value).splitlines()]
    return "\n".join(lines) or None


__all__ = ["Fingerprinter"]
