import numpy as np
import pytest

import proctor.detectors as detectors
from proctor.errors import PlaybackWarning
from proctor.frame_source import Feed
from proctor.models import DetectionBox

FRAME_W, FRAME_H = 640, 480


def box(x, y, w, h):
    return DetectionBox(x=x, y=y, width=w, height=h)


def blank_frame(w=FRAME_W, h=FRAME_H):
    return np.zeros((h, w, 3), dtype=np.uint8)


class FakeStream:
    """Stream that always yields the same frame (or None when frame=None and empty=True)."""
    def __init__(self, frame=None, empty=False, fail_start=False):
        self.frame = None if empty else (blank_frame() if frame is None else frame)
        self.fail_start = fail_start
        self.started = 0
        self.stopped = False

    def start(self):
        self.started += 1
        if self.fail_start:
            raise PlaybackWarning("autoplay blocked")

    def read(self):
        return self.frame

    def stop(self):
        self.stopped = True


class FakeSession:
    def __init__(self, stream=None, session_id="session-1"):
        self.session_id = session_id
        self.camera_stream = stream
        self.stream_changes = Feed()
        self.closed = False

    def switch(self, stream):
        self.camera_stream = stream
        self.stream_changes.publish(stream)

    def switch_camera(self, camera_index):
        self.switch(FakeStream())

    def disable_camera(self):
        self.switch(None)

    def close(self):
        self.closed = True


class ScriptedAdapter:
    """Adapter returning queued results in order; queued exceptions are raised."""
    def __init__(self, results=None, source="native", default=None):
        self.source = source
        self.results = list(results or [])
        self.default = default if default is not None else []
        self.calls = 0
        self.frames = []
        self.disposed = False

    async def detect(self, frame):
        self.calls += 1
        self.frames.append(frame)
        result = self.results.pop(0) if self.results else self.default
        if isinstance(result, Exception):
            raise result
        return result

    def dispose(self):
        self.disposed = True


@pytest.fixture(autouse=True)
def fresh_runtime():
    detectors.SHARED_RUNTIME.reset()
    yield
    detectors.SHARED_RUNTIME.reset()
