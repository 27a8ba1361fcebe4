import asyncio
import time

from proctor.errors import DetectionFailure
from proctor.frame_source import FrameSourceBinder
from proctor.loop import DetectionLoop
from conftest import FakeStream, ScriptedAdapter, box


class Clock:
    def __init__(self, start=1_000.0, step=0.75):
        self.now = start
        self.step = step
    def __call__(self):
        t = self.now
        self.now += self.step
        return t


def _make(adapter, stream=None, clock=None, interval=0.75):
    binder = FrameSourceBinder()
    if stream is not None:
        binder.attach(stream)
    published, failures = [], []
    loop = DetectionLoop(
        adapter, binder,
        on_flags=published.append,
        on_failure=failures.append,
        interval=interval,
        clock=clock or Clock(),
    )
    return loop, published, failures


def test_tick_without_camera_is_neutral_and_reschedules():
    async def main():
        adapter = ScriptedAdapter()
        loop, published, _ = _make(adapter)
        loop.engine.no_face_since = 1.0
        await loop.tick()
        assert published == [[]]
        assert adapter.calls == 0
        assert loop.engine.no_face_since is None
        assert loop.pending
        loop.cancel()
        assert not loop.pending
    asyncio.run(main())


def test_tick_skips_when_frame_not_ready():
    async def main():
        adapter = ScriptedAdapter()
        loop, published, _ = _make(adapter, stream=FakeStream(empty=True))
        await loop.tick()
        assert adapter.calls == 0 and published == []
        assert loop.pending
        loop.cancel()
    asyncio.run(main())


def test_tick_orders_snapshot_and_publishes_flags():
    small, large = box(300, 200, 20, 25), box(0, 200, 30, 30)
    async def main():
        adapter = ScriptedAdapter(results=[[small, large]])
        loop, published, _ = _make(adapter, stream=FakeStream())
        await loop.tick()
        assert adapter.calls == 1
        assert adapter.frames[0].shape == (480, 640, 3)
        assert [f.type for f in published[-1]] == ["MULTIPLE_FACES"]
        assert loop.engine.edge_since == 1_000.0   # primary is the larger, edge-touching box
        loop.cancel()
    asyncio.run(main())


def test_no_face_appears_once_threshold_elapses():
    async def main():
        adapter = ScriptedAdapter(default=[])
        loop, published, _ = _make(adapter, stream=FakeStream())
        for _ in range(4):
            await loop.tick()
            assert published[-1] == []
        await loop.tick()                      # 3.0s after the first empty snapshot
        flags = published[-1]
        assert [f.type for f in flags] == ["NO_FACE"]
        assert flags[0].since == 1_000.0
        await loop.tick()
        assert published[-1] is flags
        loop.cancel()
    asyncio.run(main())


def test_detect_failure_stops_loop():
    async def main():
        adapter = ScriptedAdapter(results=[RuntimeError("model crashed")])
        loop, published, failures = _make(adapter, stream=FakeStream())
        loop.engine.no_face_since = 5.0
        await loop.tick()
        assert len(failures) == 1
        assert isinstance(failures[0], DetectionFailure)
        assert str(failures[0]) == "model crashed"
        assert failures[0].source == "native"
        assert loop.cancelled and not loop.pending
        assert loop.state == DetectionLoop.STOPPED
        assert loop.engine.no_face_since is None

        # Cancelled loop is a terminal no-op
        await loop.tick()
        assert adapter.calls == 1 and not loop.pending
    asyncio.run(main())


def test_failure_without_message_gets_default_text():
    async def main():
        loop, _, failures = _make(ScriptedAdapter(results=[RuntimeError()]), stream=FakeStream())
        await loop.tick()
        assert str(failures[0]) == "Face detection failed unexpectedly."
    asyncio.run(main())


def test_results_after_cancellation_are_discarded():
    class SlowAdapter(ScriptedAdapter):
        def __init__(self):
            super().__init__()
            self.release = asyncio.Event()
        async def detect(self, frame):
            self.calls += 1
            await self.release.wait()
            return [box(0, 0, 10, 10), box(50, 50, 10, 10)]

    async def main():
        adapter = SlowAdapter()
        loop, published, failures = _make(adapter, stream=FakeStream())
        task = asyncio.ensure_future(loop.tick())
        while adapter.calls == 0:
            await asyncio.sleep(0.001)
        assert adapter.calls == 1
        loop.cancel()
        adapter.release.set()
        await task
        assert published == [] and failures == []
        assert not loop.pending
    asyncio.run(main())


class SlowStream(FakeStream):
    def __init__(self, delay):
        super().__init__()
        self.delay = delay

    def read(self):
        time.sleep(self.delay)
        return super().read()


def test_slow_camera_read_does_not_block_event_loop():
    async def main():
        adapter = ScriptedAdapter(default=[])
        loop, published, _ = _make(adapter, stream=SlowStream(0.3))
        beats = []

        async def heartbeat():
            while True:
                beats.append(time.monotonic())
                await asyncio.sleep(0.01)

        beat_task = asyncio.ensure_future(heartbeat())
        await asyncio.sleep(0.02)
        await loop.tick()
        beat_task.cancel()
        loop.cancel()

        gaps = [b - a for a, b in zip(beats, beats[1:])]
        assert adapter.calls == 1 and published == [[]]
        assert max(gaps) < 0.15
    asyncio.run(main())


def test_cancel_during_frame_read_discards_frame():
    async def main():
        adapter = ScriptedAdapter(default=[])
        loop, published, _ = _make(adapter, stream=SlowStream(0.1))
        task = asyncio.ensure_future(loop.tick())
        await asyncio.sleep(0.02)
        loop.cancel()
        await task
        assert adapter.calls == 0 and published == []
        assert not loop.pending
    asyncio.run(main())


def test_start_schedules_ticks_until_cancelled():
    async def main():
        adapter = ScriptedAdapter(default=[])
        loop, published, _ = _make(adapter, stream=FakeStream(), interval=0.01)
        loop.start()
        assert loop.state == DetectionLoop.RUNNING and loop.pending
        assert adapter.calls == 0          # first tick waits one interval
        await asyncio.sleep(0.1)
        assert adapter.calls >= 2
        loop.cancel()
        calls = adapter.calls
        await asyncio.sleep(0.05)
        assert adapter.calls == calls
    asyncio.run(main())


def test_loop_without_adapter_does_nothing():
    async def main():
        loop, published, _ = _make(None, stream=FakeStream())
        await loop.tick()
        assert published == [] and not loop.pending
    asyncio.run(main())
