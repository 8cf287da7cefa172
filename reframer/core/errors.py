from __future__ import annotations


class FramingError(Exception):
    """Base class for framing engine errors."""


class InvalidCropError(FramingError):
    """A computed crop rectangle falls outside the source frame."""


class ExpressionTooLargeError(FramingError):
    """The emitted crop expression exceeds the renderer's size limit."""


class FramingCancelled(FramingError):
    """The owning job asked to stop between pipeline stages."""
