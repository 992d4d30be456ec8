from __future__ import annotations


class MindMapError(Exception):
    """Base class for editor failures that are reported, never fatal."""


class InvalidOperationError(MindMapError, ValueError):
    """The requested edit would break the tree (cycle, self-parent, root removal)."""


class MalformedDocumentError(MindMapError, ValueError):
    """Persisted or imported data has an unknown or invalid shape."""
