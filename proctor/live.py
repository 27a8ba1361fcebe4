# proctor/live.py
"""
Live runners on top of MalpracticeMonitor.

- run_live_overlay: OpenCV window showing the camera with the warning banner ('q' quits)
- run_headless: monitor for a fixed number of seconds and return the last state
"""
from __future__ import annotations

import asyncio
import logging
from typing import Optional

import cv2
import numpy as np

from proctor.config import Settings
from proctor.frame_source import LocalCameraSession
from proctor.models import MonitorState
from proctor.monitor import MalpracticeMonitor
from proctor.sensor import WarningNotifier, build_banner
from proctor.visual import draw_overlays

logger = logging.getLogger(__name__)

WINDOW_NAME = "Malpractice Monitor (q to quit)"
FRAME_DELAY = 0.03
BLANK_FRAME_SHAPE = (480, 640, 3)


def _session_for(settings: Settings, camera_index: Optional[int]) -> LocalCameraSession:
    if camera_index is not None:
        settings = settings.model_copy(update={"CAMERA_INDEX": int(camera_index)})
    return LocalCameraSession(settings)


def _status_line(state: MonitorState) -> str:
    if state.is_monitoring:
        return f"monitoring ({state.detector_source})"
    return "not monitoring"


async def _overlay(settings: Settings, camera_index: Optional[int], monitor: MalpracticeMonitor) -> None:
    session = _session_for(settings, camera_index)
    subscription = monitor.subscribe(WarningNotifier())
    try:
        await monitor.start(session)
        while True:
            stream = session.camera_stream
            frame = stream.read() if stream is not None else None
            if frame is None:
                frame = np.zeros(BLANK_FRAME_SHAPE, dtype=np.uint8)

            state = monitor.state
            annotated = draw_overlays(frame, build_banner(state), _status_line(state))
            cv2.imshow(WINDOW_NAME, annotated)
            if (cv2.waitKey(1) & 0xFF) == ord("q"):
                break
            # yield to the detection loop
            await asyncio.sleep(FRAME_DELAY)
    finally:
        subscription.unsubscribe()
        monitor.stop()
        session.close()
        cv2.destroyAllWindows()


def run_live_overlay(settings: Settings,
                     camera_index: Optional[int] = None,
                     monitor: Optional[MalpracticeMonitor] = None) -> None:
    """Open the camera, run the monitor and draw its banner in a window until 'q'."""
    asyncio.run(_overlay(settings, camera_index, monitor or MalpracticeMonitor()))


async def _headless(settings: Settings, seconds: float, camera_index: Optional[int],
                    monitor: MalpracticeMonitor) -> MonitorState:
    session = _session_for(settings, camera_index)
    subscription = monitor.subscribe(WarningNotifier())
    try:
        state = await monitor.start(session)
        if state.is_monitoring:
            await asyncio.sleep(seconds)
        final = monitor.state
    finally:
        subscription.unsubscribe()
        monitor.stop()
        session.close()
    logger.debug(f"[live] headless run finished flags={[f.type for f in final.flags]}")
    return final


def run_headless(settings: Settings,
                 seconds: float,
                 camera_index: Optional[int] = None,
                 monitor: Optional[MalpracticeMonitor] = None) -> MonitorState:
    """Monitor for `seconds` and return the state observed just before teardown."""
    return asyncio.run(_headless(settings, seconds, camera_index, monitor or MalpracticeMonitor()))
