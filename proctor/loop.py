"""
Detection loop.

Polls the frame surface every DETECTION_INTERVAL seconds on the running event
loop, runs the adapter on the latest frame and feeds the ordered snapshot to
the flag engine. The next tick is scheduled only after the current one has
finished, so detect() calls never overlap on the same adapter.

Cancellation is cooperative: cancel() flips a flag that every resumption
point checks. In-flight frame reads and detect() calls are never aborted;
their results are dropped.
"""
from __future__ import annotations

import asyncio
import logging
import time
from typing import Callable, List, Optional

from proctor.config import DETECTION_INTERVAL
from proctor.detectors import DetectionAdapter
from proctor.errors import DetectionFailure
from proctor.flags import FlagEngine, order_by_area
from proctor.frame_source import FrameSourceBinder
from proctor.models import Flag

logger = logging.getLogger(__name__)


class DetectionLoop:
    STOPPED = "stopped"
    STARTING = "starting"
    RUNNING = "running"

    def __init__(self,
                 adapter: Optional[DetectionAdapter],
                 binder: Optional[FrameSourceBinder],
                 on_flags: Callable[[List[Flag]], None],
                 on_failure: Callable[[DetectionFailure], None],
                 engine: Optional[FlagEngine] = None,
                 interval: float = DETECTION_INTERVAL,
                 clock: Callable[[], float] = time.time):
        self.adapter = adapter
        self.binder = binder
        self.engine = engine or FlagEngine()
        self.interval = float(interval)
        self._on_flags = on_flags
        self._on_failure = on_failure
        self._clock = clock

        self.state = self.STOPPED
        self.cancelled = False
        self._handle: Optional[asyncio.TimerHandle] = None
        self._task: Optional[asyncio.Task] = None

    @property
    def pending(self) -> bool:
        """True while a next tick is scheduled."""
        return self._handle is not None

    # ---- lifecycle ----
    def start(self) -> None:
        if self.state != self.STOPPED or self.cancelled:
            return
        self.state = self.STARTING
        self._schedule()
        self.state = self.RUNNING

    def cancel(self) -> None:
        self.cancelled = True
        if self._handle is not None:
            self._handle.cancel()
            self._handle = None
        self.engine.reset()
        self.state = self.STOPPED

    def _schedule(self) -> None:
        if self.cancelled:
            return
        if self._handle is not None:
            self._handle.cancel()
        loop = asyncio.get_running_loop()
        self._handle = loop.call_later(self.interval, self._fire)

    def _fire(self) -> None:
        self._handle = None
        self._task = asyncio.ensure_future(self.tick())

    # ---- one polling cycle ----
    async def tick(self) -> None:
        surface = self.binder.surface if self.binder is not None else None
        if self.cancelled or self.adapter is None or surface is None:
            return

        # No camera bound: neutral state, not a NO_FACE violation
        if surface.src is None:
            self._on_flags(self.engine.reset())
            self._schedule()
            return

        # Camera reads block; keep them off the event loop like detect()
        frame = await asyncio.to_thread(surface.grab)
        if self.cancelled:
            return
        if frame is None or not surface.video_width or not surface.video_height:
            self._schedule()
            return

        try:
            boxes = await self.adapter.detect(frame)
        except Exception as e:
            if self.cancelled:
                return
            source = getattr(self.adapter, "source", None)
            logger.exception(f"[loop] face detection failed source={source}")
            self.cancel()
            self._on_failure(DetectionFailure(str(e) or "Face detection failed unexpectedly.", source=source))
            return

        if self.cancelled:
            return

        snapshot = order_by_area(boxes)
        flags = self.engine.evaluate(
            snapshot, (surface.video_width, surface.video_height), self._clock()
        )
        logger.debug(f"[loop] faces={len(snapshot)} flags={[f.type for f in flags]}")
        self._on_flags(flags)
        self._schedule()
