"""
Pydantic data models shared by the engine, the display layer and the API.
"""
from __future__ import annotations
from pydantic import BaseModel, Field
from typing import Dict, List, Literal, Optional, Tuple

FlagType = Literal["MULTIPLE_FACES", "NO_FACE", "FACE_NEAR_EDGE"]
DetectorSource = Literal["native", "fallback"]

FLAG_PRIORITY: Tuple[FlagType, ...] = ("MULTIPLE_FACES", "NO_FACE", "FACE_NEAR_EDGE")

FLAG_MESSAGES: Dict[str, str] = {
    "MULTIPLE_FACES": "Multiple faces detected in frame. Possible impersonation.",
    "NO_FACE": "No face detected for several seconds. Head may be out of frame.",
    "FACE_NEAR_EDGE": "Face detected at the edge of the frame. Adjust position.",
}


class DetectionBox(BaseModel):
    x: float
    y: float
    width: float = Field(ge=0)
    height: float = Field(ge=0)

    @property
    def area(self) -> float:
        return self.width * self.height


class Flag(BaseModel):
    type: FlagType
    message: str
    since: float


class MonitorState(BaseModel):
    flags: List[Flag] = Field(default_factory=list)
    error: Optional[str] = None
    is_monitoring: bool = False
    detector_available: bool = True
    detector_source: Optional[DetectorSource] = None


# display models


class Banner(BaseModel):
    title: str
    tone: Literal["warning", "unavailable"]
    lines: List[str] = Field(default_factory=list)


class Toast(BaseModel):
    title: str
    description: str
