
import numpy as np
from proctor.models import Banner
from proctor.visual import draw_overlays


def test_draw_overlays_cases():
    frame = np.zeros((120, 160, 3), dtype=np.uint8)
    out1 = draw_overlays(frame)
    assert out1.shape == frame.shape
    assert not out1.any()

    banner = Banner(title="Malpractice Detected", tone="warning", lines=["Flagged 3s ago"])
    out2 = draw_overlays(frame, banner, status="monitoring (native)")
    assert out2.shape == frame.shape
    assert out2.any()
    # input frame is left untouched
    assert not frame.any()

    out3 = draw_overlays(frame, Banner(title="Malpractice sensor unavailable", tone="unavailable"))
    assert out3.any()
