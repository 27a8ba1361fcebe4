"""
Frame source binding.

- FrameSurface: hidden, non-interactive surface the detection loop pulls frames from
- FrameSourceBinder: keeps the surface bound to the session's current camera stream
- LocalCameraSession: default session collaborator backed by cv2.VideoCapture

A stream is anything with start() / read() -> frame | None / stop().
A session exposes session_id, camera_stream (or None) and a stream_changes Feed.
"""
from __future__ import annotations

import itertools
import logging
import threading
import uuid
from typing import Any, Callable, List, Optional

import cv2
import numpy as np

from proctor.config import Settings
from proctor.errors import PlaybackWarning

logger = logging.getLogger(__name__)


# -----------------------------------------------------------------------------
# Minimal publish/subscribe
# -----------------------------------------------------------------------------
class Subscription:
    def __init__(self, feed: "Feed", callback: Callable[[Any], None]):
        self._feed: Optional[Feed] = feed
        self._callback = callback

    @property
    def closed(self) -> bool:
        return self._feed is None

    def unsubscribe(self) -> None:
        if self._feed is not None:
            self._feed._remove(self._callback)
            self._feed = None


class Feed:
    """Synchronous notification channel (stream changes, state updates)."""
    def __init__(self):
        self._listeners: List[Callable[[Any], None]] = []

    @property
    def subscriber_count(self) -> int:
        return len(self._listeners)

    def subscribe(self, callback: Callable[[Any], None]) -> Subscription:
        self._listeners.append(callback)
        return Subscription(self, callback)

    def publish(self, value: Any) -> None:
        for callback in list(self._listeners):
            try:
                callback(value)
            except Exception:
                logger.exception("[feed] subscriber failed")

    def _remove(self, callback: Callable[[Any], None]) -> None:
        try:
            self._listeners.remove(callback)
        except ValueError:
            pass


# -----------------------------------------------------------------------------
# Streams & sessions
# -----------------------------------------------------------------------------
_stream_ids = itertools.count(1)


class CameraStream:
    """Camera stream handle over cv2.VideoCapture, opened on first start()."""
    def __init__(self, camera_index: int = 0):
        self.camera_index = int(camera_index)
        self.stream_id = next(_stream_ids)
        self._cap = None
        # read() runs on a worker thread; never release mid-read
        self._lock = threading.Lock()

    @property
    def active(self) -> bool:
        return self._cap is not None

    def start(self) -> None:
        with self._lock:
            if self._cap is not None:
                return
            cap = cv2.VideoCapture(self.camera_index)
            if not cap.isOpened():
                cap.release()
                raise PlaybackWarning(f"Could not open camera index {self.camera_index}")
            # 1-frame buffer so every grab is the latest frame
            cap.set(cv2.CAP_PROP_BUFFERSIZE, 1)
            self._cap = cap
        logger.debug(f"[camera] stream {self.stream_id} started on index {self.camera_index}")

    def read(self) -> Optional[np.ndarray]:
        with self._lock:
            if self._cap is None:
                return None
            ok, frame = self._cap.read()
        return frame if ok else None

    def stop(self) -> None:
        with self._lock:
            if self._cap is None:
                return
            self._cap.release()
            self._cap = None
        logger.debug(f"[camera] stream {self.stream_id} stopped")


class LocalCameraSession:
    """Video session over local cameras; publishes on stream_changes when the device changes."""
    def __init__(self, settings: Settings, session_id: Optional[str] = None):
        self.session_id = session_id or uuid.uuid4().hex
        self.stream_changes = Feed()
        self.camera_stream: Optional[CameraStream] = CameraStream(settings.CAMERA_INDEX)

    def switch_camera(self, camera_index: int) -> CameraStream:
        # Release the old device first; the same index cannot be opened twice
        self._stop_current()
        self.camera_stream = CameraStream(camera_index)
        self.stream_changes.publish(self.camera_stream)
        return self.camera_stream

    def disable_camera(self) -> None:
        self._stop_current()
        self.camera_stream = None
        self.stream_changes.publish(None)

    def _stop_current(self) -> None:
        if self.camera_stream is not None:
            self.camera_stream.stop()

    def close(self) -> None:
        self._stop_current()


# -----------------------------------------------------------------------------
# Surface & binder
# -----------------------------------------------------------------------------
class FrameSurface:
    """Offscreen frame surface: one bound stream, a play state and the last grabbed frame."""
    def __init__(self):
        self.src = None
        self.playing = False
        self._frame: Optional[np.ndarray] = None

    def bind(self, stream) -> None:
        self.src = stream
        self.playing = False
        self._frame = None

    def play(self) -> None:
        if self.src is None:
            raise PlaybackWarning("no stream bound")
        self.src.start()
        self.playing = True

    def pause(self) -> None:
        self.playing = False

    def clear(self) -> None:
        self.pause()
        self.src = None
        self._frame = None

    def grab(self) -> Optional[np.ndarray]:
        """Pull the latest frame; None while unbound, paused or not producing data."""
        if self.src is None or not self.playing:
            return None
        self._frame = self.src.read()
        return self._frame

    @property
    def has_data(self) -> bool:
        return self._frame is not None and self._frame.size > 0

    @property
    def video_width(self) -> int:
        return int(self._frame.shape[1]) if self.has_data else 0

    @property
    def video_height(self) -> int:
        return int(self._frame.shape[0]) if self.has_data else 0


class FrameSourceBinder:
    """Keep a FrameSurface attached to the session's active camera stream."""
    def __init__(self, surface: Optional[FrameSurface] = None):
        self.surface = surface or FrameSurface()
        self._subscription: Optional[Subscription] = None

    @property
    def following(self) -> bool:
        return self._subscription is not None

    def attach(self, stream=None) -> None:
        surface = self.surface
        if stream is not None:
            if surface.src is not stream:
                surface.bind(stream)
                try:
                    surface.play()
                except Exception:
                    # Expected when the device is busy or playback is restricted
                    logger.debug("[binder] playback start rejected", exc_info=True)
        else:
            surface.clear()

    def follow(self, feed: Feed) -> None:
        self.unfollow()
        self._subscription = feed.subscribe(self.attach)

    def unfollow(self) -> None:
        if self._subscription is not None:
            self._subscription.unsubscribe()
            self._subscription = None

    def release(self) -> None:
        self.unfollow()
        self.surface.clear()
