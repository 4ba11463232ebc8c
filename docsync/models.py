"""Core data models shared across docsync components."""

from dataclasses import dataclass, field
from enum import Enum
from typing import List, Optional, Tuple

UNIT_KIND_FILE = "file"
UNIT_KIND_MODULE = "module"
UNIT_KIND_PACKAGE = "package"


@dataclass(frozen=True)
class Member:
    """A declared member of a documented unit (function, class, field, ...)."""

    name: str
    kind: str
    visibility: str = "public"
    signature: Optional[str] = None
    doc: Optional[str] = None
    children: Tuple["Member", ...] = ()


@dataclass(frozen=True)
class DocumentedUnit:
    """Structural summary of one source grouping produced by a parser."""

    identity: str
    kind: str
    language: Optional[str] = None
    members: Tuple[Member, ...] = ()
    children: Tuple["DocumentedUnit", ...] = ()
    doc: Optional[str] = None
    source_path: Optional[str] = None

    @property
    def display_name(self) -> str:
        return self.identity.rsplit("/", 1)[-1] or self.identity


@dataclass(frozen=True)
class Fingerprint:
    """Digest of a unit's structurally significant content."""

    algorithm: str
    digest: str

    def __str__(self) -> str:
        return f"{self.algorithm}:{self.digest}"

    @classmethod
    def parse(cls, value: str) -> Optional["Fingerprint"]:
        """Parse the ``algorithm:hex`` form written into metadata headers."""
        if not isinstance(value, str) or ":" not in value:
            return None
        algorithm, digest = value.split(":", 1)
        algorithm = algorithm.strip().lower()
        digest = digest.strip().lower()
        if not algorithm or not digest:
            return None
        return cls(algorithm=algorithm, digest=digest)


@dataclass(frozen=True)
class ProtectedBlock:
    """A human-authored span delimited by protected markers."""

    identifier: str
    label: Optional[str]
    content: str
    ordinal: int
    open_marker: str
    close_marker: str
    start_line: int
    end_line: int


@dataclass(frozen=True)
class ExtractionResult:
    """Skeleton text plus the protected blocks lifted out of it, in order."""

    skeleton: str
    blocks: Tuple[ProtectedBlock, ...]

    def identifiers(self) -> List[str]:
        return [block.identifier for block in self.blocks]


@dataclass(frozen=True)
class DocumentMetadata:
    """Header persisted at the top of every generated document."""

    unit: str
    unit_kind: str
    last_updated: str
    fingerprint: Fingerprint
    protected_blocks: Tuple[str, ...] = ()
    generator: Optional[str] = None


@dataclass(frozen=True)
class MergeResult:
    """Final document text with its metadata and orphan diagnostics."""

    text: str
    metadata: DocumentMetadata
    orphaned: Tuple[str, ...] = ()
    placed: Tuple[str, ...] = ()
    # Identifiers the orphaned blocks carry in the written document, same order.
    preserved_as: Tuple[str, ...] = ()

    def describe_orphans(self) -> List[str]:
        """Orphan identifiers, noting the new one where placement renumbered it."""
        moved = self.preserved_as or self.orphaned
        return [old if old == new else f"{old} (now {new})" for old, new in zip(self.orphaned, moved)]


class ChangeStatus(str, Enum):
    """Classification of a unit against its previously recorded fingerprint."""

    NEW = "new"
    UNCHANGED = "unchanged"
    CHANGED = "changed"


OUTCOME_CREATED = "created"
OUTCOME_UPDATED = "updated"
OUTCOME_SKIPPED = "skipped"
OUTCOME_PENDING = "pending"
OUTCOME_FAILED = "failed"


@dataclass
class UnitOutcome:
    """Per-unit result of a pipeline run."""

    identity: str
    status: str
    change: Optional[ChangeStatus] = None
    orphaned: List[str] = field(default_factory=list)
    error: Optional[str] = None
    path: Optional[str] = None

    @property
    def failed(self) -> bool:
        return self.status == OUTCOME_FAILED


@dataclass
class RunReport:
    """Ordered outcomes for every unit processed in a run."""

    outcomes: List[UnitOutcome] = field(default_factory=list)

    def _count(self, status: str) -> int:
        return sum(1 for outcome in self.outcomes if outcome.status == status)

    @property
    def created(self) -> int:
        return self._count(OUTCOME_CREATED)

    @property
    def updated(self) -> int:
        return self._count(OUTCOME_UPDATED)

    @property
    def skipped(self) -> int:
        return self._count(OUTCOME_SKIPPED)

    @property
    def pending(self) -> int:
        return self._count(OUTCOME_PENDING)

    @property
    def failed(self) -> int:
        return self._count(OUTCOME_FAILED)

    @property
    def has_failures(self) -> bool:
        return self.failed > 0

    @property
    def has_changes(self) -> bool:
        return any(
            outcome.status in {OUTCOME_CREATED, OUTCOME_UPDATED, OUTCOME_PENDING}
            for outcome in self.outcomes
        )

    def get(self, identity: str) -> Optional[UnitOutcome]:
        for outcome in self.outcomes:
            if outcome.identity == identity:
                return outcome
        return None

    def summary(self) -> str:
        parts = [
            f"{self.created} created",
            f"{self.updated} updated",
            f"{self.skipped} skipped",
        ]
        if self.pending:
            parts.append(f"{self.pending} pending")
        parts.append(f"{self.failed} failed")
        return ", ".join(parts)
