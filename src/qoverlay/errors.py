"""Error taxonomy for the overlay engine."""

from __future__ import annotations


class OverlayError(Exception):
    """Base class for qoverlay errors."""


class CatalogAccessError(OverlayError):
    """A query or delete against the asset catalog failed."""


class InvalidArgument(OverlayError):
    """A request was rejected before any I/O took place."""


class StorageCorruption(OverlayError):
    """A persisted side-state document could not be parsed."""


class UnsupportedOperation(OverlayError):
    """The image decoder cannot perform the requested primitive on this host."""
