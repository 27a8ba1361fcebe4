"""
Configuration for the malpractice monitor.
"""
from pydantic import BaseModel
import os

# Fixed monitoring thresholds (seconds / fractions of the frame)
DETECTION_INTERVAL = 0.75
NO_FACE_THRESHOLD = 3.0
EDGE_THRESHOLD = 1.5
EDGE_MARGIN_RATIO = 0.08
MAX_TRACKED_FACES = 5


class Settings(BaseModel):
    """
    Host-side settings with environment-variable overrides.
    """
    CAMERA_INDEX: int = int(os.getenv("CAMERA_INDEX", "0"))
    LOG_LEVEL: str = os.getenv("LOG_LEVEL", "INFO")

    def __init__(self, **data):
        super().__init__(**data)
        # Normalize LOG_LEVEL: first word, upper-case, validate
        level = (self.LOG_LEVEL or "INFO").strip().split()[0].upper()
        if level not in ("DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"):
            level = "INFO"
        object.__setattr__(self, "LOG_LEVEL", level)
