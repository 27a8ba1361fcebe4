"""
Flag state engine.

Turns one cycle of face detections into the debounced, prioritized list of
active warning flags:

- NO_FACE once no face has been seen for NO_FACE_THRESHOLD seconds
- MULTIPLE_FACES as soon as more than one face is in frame
- FACE_NEAR_EDGE once the primary (largest) face has stayed inside the edge
  margin for EDGE_THRESHOLD seconds, unless MULTIPLE_FACES fires in the same cycle

The condition timers live on the engine so the rules can be exercised without
the polling loop.
"""
from __future__ import annotations

from typing import Dict, List, Optional, Sequence, Tuple

from proctor.config import EDGE_MARGIN_RATIO, EDGE_THRESHOLD, NO_FACE_THRESHOLD
from proctor.models import FLAG_MESSAGES, FLAG_PRIORITY, DetectionBox, Flag


def order_by_area(boxes: Sequence[DetectionBox]) -> List[DetectionBox]:
    """Largest box first. sorted() is stable, so ties keep adapter order."""
    return sorted(boxes, key=lambda b: b.area, reverse=True)


def edge_fractions(box: DetectionBox, frame_w: float, frame_h: float) -> Tuple[float, float, float, float]:
    """Fractional (left, top, right, bottom) position of a box within the frame."""
    left = box.x / frame_w
    top = box.y / frame_h
    right = (box.x + box.width) / frame_w
    bottom = (box.y + box.height) / frame_h
    return left, top, right, bottom


def touches_edge(box: DetectionBox, frame_w: float, frame_h: float,
                 margin: float = EDGE_MARGIN_RATIO) -> bool:
    left, top, right, bottom = edge_fractions(box, frame_w, frame_h)
    return (
        left <= margin
        or top <= margin
        or right >= 1 - margin
        or bottom >= 1 - margin
    )


class FlagEngine:
    """Debounce detection snapshots into published flags."""

    def __init__(self):
        self.no_face_since: Optional[float] = None
        self.edge_since: Optional[float] = None
        self.flags: List[Flag] = []

    def reset(self) -> List[Flag]:
        """Clear published flags and both condition timers."""
        self.no_face_since = None
        self.edge_since = None
        if self.flags:
            self.flags = []
        return self.flags

    def evaluate(self,
                 snapshot: Sequence[DetectionBox],
                 frame_size: Tuple[float, float],
                 now: float) -> List[Flag]:
        """
        Apply one cycle of detections.

        Args:
            snapshot: boxes ordered largest first (see order_by_area)
            frame_size: (width, height) of the frame the boxes belong to
            now: timestamp of this cycle, seconds

        Returns:
            The published flag list. The same list object is returned when the
            ordered set of flag types did not change.
        """
        # type -> moment the condition started
        candidates: Dict[str, float] = {}

        if len(snapshot) == 0:
            if self.no_face_since is None:
                self.no_face_since = now
            if now - self.no_face_since >= NO_FACE_THRESHOLD:
                candidates["NO_FACE"] = self.no_face_since
            self.edge_since = None
        else:
            self.no_face_since = None
            if len(snapshot) > 1:
                candidates["MULTIPLE_FACES"] = now

            frame_w, frame_h = frame_size
            if frame_w and frame_h:
                if touches_edge(snapshot[0], frame_w, frame_h):
                    if self.edge_since is None:
                        self.edge_since = now
                    if (now - self.edge_since >= EDGE_THRESHOLD
                            and "MULTIPLE_FACES" not in candidates):
                        candidates["FACE_NEAR_EDGE"] = self.edge_since
                else:
                    self.edge_since = None

        if not candidates:
            # Timers keep accumulating; only the published list is cleared
            if self.flags:
                self.flags = []
            return self.flags
        return self._publish(candidates)

    def _publish(self, candidates: Dict[str, float]) -> List[Flag]:
        ordered = [t for t in FLAG_PRIORITY if t in candidates]
        if [f.type for f in self.flags] == ordered:
            return self.flags

        previous = {f.type: f for f in self.flags}
        self.flags = [
            previous.get(t) or Flag(type=t, message=FLAG_MESSAGES[t], since=candidates[t])
            for t in ordered
        ]
        return self.flags
