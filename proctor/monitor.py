"""
Session lifecycle controller.

MalpracticeMonitor wires detector resolution, frame binding and the detection
loop against one video session, owns the published MonitorState and tears
everything down on stop, session change or detection failure.
"""
from __future__ import annotations

import logging
import time
from typing import Awaitable, Callable, List, Optional

from proctor.config import DETECTION_INTERVAL
from proctor.detectors import DetectionAdapter, resolve_detector
from proctor.errors import DetectionFailure
from proctor.frame_source import Feed, FrameSourceBinder, FrameSurface, Subscription
from proctor.loop import DetectionLoop
from proctor.models import Flag, MonitorState

logger = logging.getLogger(__name__)

UNAVAILABLE_MESSAGE = (
    "Face detection libraries failed to load. Malpractice monitoring is unavailable."
)


class _Run:
    """Cancellation token for one monitoring run."""
    def __init__(self, session):
        self.session = session
        self.cancelled = False


class MalpracticeMonitor:
    """Monitor one video session at a time and publish MonitorState snapshots."""

    def __init__(self,
                 resolver: Callable[[], Awaitable[DetectionAdapter]] = resolve_detector,
                 clock: Callable[[], float] = time.time,
                 interval: float = DETECTION_INTERVAL):
        self._resolver = resolver
        self._clock = clock
        self._interval = interval

        self._state = MonitorState()
        self._updates = Feed()
        self._run: Optional[_Run] = None
        self._adapter: Optional[DetectionAdapter] = None
        self._binder: Optional[FrameSourceBinder] = None
        self._loop: Optional[DetectionLoop] = None

    # ---- read side ----
    @property
    def state(self) -> MonitorState:
        return self._state

    @property
    def session(self):
        return self._run.session if self._run is not None else None

    @property
    def detection_loop(self) -> Optional[DetectionLoop]:
        return self._loop

    @property
    def binder(self) -> Optional[FrameSourceBinder]:
        return self._binder

    def subscribe(self, listener: Callable[[MonitorState], None]) -> Subscription:
        return self._updates.subscribe(listener)

    def _update(self, **changes) -> None:
        new = self._state.model_copy(update=changes)
        if new == self._state:
            return
        self._state = new
        self._updates.publish(new)

    # ---- lifecycle ----
    async def start(self, session) -> MonitorState:
        """
        Start monitoring `session`. Starting the session already being monitored
        is a no-op; a different session replaces the current one.
        """
        if self._run is not None:
            if self._run.session is session:
                return self._state
            self.stop()

        run = self._run = _Run(session)
        self._binder = FrameSourceBinder(FrameSurface())
        self._update(detector_available=True, error=None)

        try:
            adapter = await self._resolver()
        except Exception:
            if run.cancelled:
                return self._state
            logger.exception("[monitor] detector resolution failed; monitoring not started")
            self._teardown()
            self._update(
                detector_available=False,
                detector_source=None,
                error=UNAVAILABLE_MESSAGE,
                is_monitoring=False,
                flags=[],
            )
            return self._state

        if run.cancelled:
            self._dispose(adapter)
            return self._state

        self._adapter = adapter
        self._update(detector_source=adapter.source, detector_available=True, is_monitoring=True)
        logger.info(f"[monitor] monitoring session={getattr(session, 'session_id', None)} source={adapter.source}")

        self._binder.attach(session.camera_stream)
        self._binder.follow(session.stream_changes)

        self._loop = DetectionLoop(
            adapter,
            self._binder,
            on_flags=self._on_flags,
            on_failure=self._on_failure,
            interval=self._interval,
            clock=self._clock,
        )
        self._loop.start()
        return self._state

    def stop(self) -> MonitorState:
        self._teardown()
        self._update(flags=[], is_monitoring=False, detector_source=None)
        return self._state

    # ---- internals ----
    def _teardown(self) -> None:
        if self._run is not None:
            self._run.cancelled = True
            self._run = None
        if self._loop is not None:
            self._loop.cancel()
            self._loop = None
        adapter, self._adapter = self._adapter, None
        if adapter is not None:
            self._dispose(adapter)
        if self._binder is not None:
            self._binder.release()
            self._binder = None

    def _dispose(self, adapter: DetectionAdapter) -> None:
        try:
            adapter.dispose()
        except Exception:
            logger.warning(f"[monitor] failed to dispose detector source={adapter.source}", exc_info=True)

    def _on_flags(self, flags: List[Flag]) -> None:
        self._update(flags=flags)

    def _on_failure(self, err: DetectionFailure) -> None:
        logger.error(f"[monitor] monitoring stopped after detection failure source={err.source}")
        self._teardown()
        self._update(
            error=str(err),
            detector_available=False,
            detector_source=None,
            is_monitoring=False,
            flags=[],
        )
