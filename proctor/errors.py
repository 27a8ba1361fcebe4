"""
Error taxonomy for the monitoring engine.
"""


class MonitorError(RuntimeError):
    """Base class for monitor failures."""


class DetectorUnavailable(MonitorError):
    """Neither the native nor the fallback detector could be initialized."""


class DetectionFailure(MonitorError):
    """An established detector raised in the middle of a session."""

    def __init__(self, message: str, source: str | None = None):
        super().__init__(message)
        self.source = source


class PlaybackWarning(MonitorError):
    """A stream refused to start playing. Never surfaced to the user."""
