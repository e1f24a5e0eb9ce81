class ProcessingError(Exception):
    """Base class for attachment processing failures."""

class InvalidGeometry(ProcessingError, ValueError):
    """Malformed size specification. The request must be rejected."""

class ImageDecodeError(ProcessingError, ValueError):
    """Source is not a readable image. Not retried."""

class SourceTooLarge(ProcessingError):
    """Source exceeds the configured pixel or frame guard."""
