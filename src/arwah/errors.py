from __future__ import annotations


class CompositorError(Exception):
    """Base class for failures of a single card render."""


class DecodeError(CompositorError):
    """The supplied photo could not be interpreted as an image."""


class EncodeError(CompositorError):
    """Serializing the composited card produced no data."""
