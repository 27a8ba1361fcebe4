"""Visualization helpers for the live overlay window.

- draw_overlays: draw the current warning banner (title + lines) on a frame
"""
from __future__ import annotations
import cv2
import numpy as np
from typing import Optional

from proctor.models import Banner

WARNING_COLOR = (0, 0, 255)
UNAVAILABLE_COLOR = (0, 165, 255)
STATUS_COLOR = (0, 255, 0)


def draw_overlays(frame: np.ndarray,
                  banner: Optional[Banner] = None,
                  status: Optional[str] = None) -> np.ndarray:
    """Draw banner text on a frame.

    Args:
        frame: BGR image
        banner: optional banner from build_banner()
        status: optional one-line status drawn at the bottom (e.g. "monitoring (native)")

    Returns:
        Annotated copy of the frame
    """
    out = frame.copy()
    h = out.shape[0]

    if banner is not None:
        color = UNAVAILABLE_COLOR if banner.tone == "unavailable" else WARNING_COLOR
        cv2.putText(out, banner.title, (10, 30), cv2.FONT_HERSHEY_SIMPLEX, 0.8, color, 2, cv2.LINE_AA)
        for i, line in enumerate(banner.lines):
            cv2.putText(out, line, (10, 55 + 20 * i), cv2.FONT_HERSHEY_SIMPLEX, 0.5, color, 1, cv2.LINE_AA)

    if status:
        cv2.putText(out, status, (10, max(15, h - 10)), cv2.FONT_HERSHEY_SIMPLEX, 0.5, STATUS_COLOR, 1, cv2.LINE_AA)

    return out
