"""Document persistence backends."""

from .document_store import DOCUMENT_SUFFIX, DocumentStore, FileSystemDocumentStore

__all__ = ["DOCUMENT_SUFFIX", "DocumentStore", "FileSystemDocumentStore"]
