"""Protected region markers: scanning, skeletons and rendering."""

from __future__ import annotations

import re
from typing import Callable, Dict, List, Optional

from ..errors import NestedProtectedRegion, UnbalancedProtectedRegion
from ..models import ExtractionResult, ProtectedBlock

_OPEN_PATTERN = re.compile(r"^\s*<!--\s*PROTECTED(?:\s*:\s*(?P<label>.*?))?\s*-->\s*$")
_CLOSE_PATTERN = re.compile(r"^\s*<!--\s*/PROTECTED\s*-->\s*$")
_PLACEHOLDER_PATTERN = re.compile(
    r"^<!-- docsync:placeholder (?P<identifier>\S+) -->(?=\r?$)", re.MULTILINE
)
_LABEL_SEPARATORS = re.compile(r"[\s\-_#]+")
# Any line a scan could read as a marker or a placeholder.
_MARKER_LIKE = re.compile(r"^(\s*)<!--(?=\s*/?PROTECTED|\s*docsync:placeholder)")

_OUTSIDE = "outside"
_INSIDE = "inside"


def normalize_label(label: Optional[str]) -> Optional[str]:
    """Return the stable identifier for a marker label, or None when it is blank.

    ``"Architecture Decision"``, ``"architecture-decision"`` and
    ``" ARCHITECTURE_decision "`` all normalise to ``architecture-decision``.
    """
    if label is None:
        return None
    collapsed = _LABEL_SEPARATORS.sub("-", label.strip().lower()).strip("-")
    return collapsed or None


def _strip_line_ending(line: str) -> str:
    return line.rstrip("\r\n")


def _line_ending(line: str) -> str:
    return line[len(_strip_line_ending(line)):]


class ProtectedRegionExtractor:
    """Splits a document into a skeleton and the protected blocks it contains.

    The scan is a two-state machine over lines. Markers must sit on their own
    line, regions never nest, and every region must be closed.
    """

    OPEN_FMT = "<!-- PROTECTED: {label} -->"
    OPEN_UNLABELED = "<!-- PROTECTED -->"
    CLOSE = "<!-- /PROTECTED -->"
    PLACEHOLDER_FMT = "<!-- docsync:placeholder {identifier} -->"

    def extract(self, text: str) -> ExtractionResult:
        skeleton: List[str] = []
        blocks: List[ProtectedBlock] = []
        seen: Dict[str, int] = {}

        state = _OUTSIDE
        open_line = ""
        open_index = 0
        label: Optional[str] = None
        body: List[str] = []

        lines = text.splitlines(keepends=True)
        for index, line in enumerate(lines):
            bare = _strip_line_ending(line)
            opening = _OPEN_PATTERN.match(bare)
            closing = _CLOSE_PATTERN.match(bare)

            if state == _OUTSIDE:
                if opening:
                    state = _INSIDE
                    open_line = line
                    open_index = index
                    label = (opening.group("label") or "").strip() or None
                    body = []
                elif closing:
                    raise UnbalancedProtectedRegion(
                        f"Close marker at line {index + 1} has no matching open marker",
                        line=index + 1,
                    )
                else:
                    skeleton.append(line)
                continue

            if opening:
                raise NestedProtectedRegion(
                    f"Open marker at line {index + 1} is nested inside the region "
                    f"opened at line {open_index + 1}",
                    line=index + 1,
                )
            if closing:
                ordinal = len(blocks) + 1
                identifier = self._assign_identifier(label, ordinal, seen)
                blocks.append(
                    ProtectedBlock(
                        identifier=identifier,
                        label=label,
                        content="".join(body),
                        ordinal=ordinal,
                        open_marker=open_line,
                        close_marker=bare,
                        start_line=open_index + 1,
                        end_line=index + 1,
                    )
                )
                skeleton.append(self.placeholder(identifier) + _line_ending(line))
                state = _OUTSIDE
                continue
            body.append(line)

        if state == _INSIDE:
            raise UnbalancedProtectedRegion(
                f"Protected region opened at line {open_index + 1} is never closed",
                line=open_index + 1,
            )

        return ExtractionResult(skeleton="".join(skeleton), blocks=tuple(blocks))

    def validate(self, text: str) -> None:
        """Raise a MergeError subclass when the markers in ``text`` are malformed."""
        self.extract(text)

    @staticmethod
    def neutralise(text: str) -> str:
        """Escape lines of ``text`` that would otherwise read as markers or placeholders.

        Used for text lifted from source comments; markdown still renders the
        escaped line as the literal comment.
        """
        return "".join(_MARKER_LIKE.sub(r"\1&lt;!--", line) for line in text.splitlines(keepends=True))

    @staticmethod
    def has_protected_regions(text: str) -> bool:
        return any(_OPEN_PATTERN.match(_strip_line_ending(line)) for line in text.splitlines())

    @classmethod
    def placeholder(cls, identifier: str) -> str:
        return cls.PLACEHOLDER_FMT.format(identifier=identifier)

    @classmethod
    def protect(cls, content: str, label: Optional[str] = None) -> str:
        """Wrap ``content`` in protected markers."""
        opener = cls.OPEN_FMT.format(label=label.strip()) if label and label.strip() else cls.OPEN_UNLABELED
        body = content if content.endswith("\n") or not content else f"{content}\n"
        return f"{opener}\n{body}{cls.CLOSE}"

    @staticmethod
    def render_block(block: ProtectedBlock, content: Optional[str] = None) -> str:
        """Render ``block`` with its own markers, optionally swapping in other content."""
        text = block.content if content is None else content
        opener = block.open_marker
        if not opener.endswith(("\n", "\r")):
            opener = f"{opener}\n"
        if text and not text.endswith(("\n", "\r")):
            text = f"{text}\n"
        return f"{opener}{text}{block.close_marker}"

    @staticmethod
    def fill_placeholders(skeleton: str, render: Callable[[str], Optional[str]]) -> str:
        """Replace each placeholder line with ``render(identifier)``.

        Placeholders for which ``render`` returns None are left untouched.
        """

        def _substitute(match: "re.Match[str]") -> str:
            replacement = render(match.group("identifier"))
            return match.group(0) if replacement is None else replacement

        return _PLACEHOLDER_PATTERN.sub(_substitute, skeleton)

    @staticmethod
    def _assign_identifier(label: Optional[str], ordinal: int, seen: Dict[str, int]) -> str:
        base = normalize_label(label)
        if base is None:
            # Unlabeled blocks are matched by position; '#' never survives label normalisation.
            return f"#{ordinal}"
        count = seen.get(base, 0) + 1
        seen[base] = count
        return base if count == 1 else f"{base}#{count}"


__all__ = ["ProtectedRegionExtractor", "normalize_label"]
