"""Models package."""
from improver.models.recording import Recording

__all__ = ["Recording"]
