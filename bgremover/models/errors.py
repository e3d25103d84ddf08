class BackgroundRemoverError(Exception):
    """Base class for everything this package raises on purpose."""


class DecodeFailure(BackgroundRemoverError):
    """The uploaded bytes could not be decoded into an image."""


class EncodeFailure(BackgroundRemoverError):
    """The result image could not be encoded to PNG."""


class InvalidTolerance(BackgroundRemoverError, ValueError):
    """Tolerance is not an integer in [0, 100]."""


class InvalidSelection(BackgroundRemoverError, ValueError):
    """A selected color is not a valid #RRGGBB value."""


class SessionStateError(BackgroundRemoverError):
    """The requested operation is not allowed in the session's current state."""


class MaskingCancelled(BackgroundRemoverError):
    """A masking pass was superseded by a newer request."""
