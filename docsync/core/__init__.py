"""Change detection and protected-region merge engine."""

from .detector import ChangeDetector
from .fingerprint import Fingerprinter
from .merge import MergeEngine
from .metadata import parse_metadata, read_document, render_document, render_header
from .protector import ProtectedRegionExtractor, normalize_label

__all__ = [
    "ChangeDetector",
    "Fingerprinter",
    "MergeEngine",
    "ProtectedRegionExtractor",
    "normalize_label",
    "parse_metadata",
    "read_document",
    "render_document",
    "render_header",
]
