"""docsync keeps generated code documentation current without losing human edits."""

__version__ = "0.1.0"
