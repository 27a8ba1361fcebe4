
from proctor.config import Settings, DETECTION_INTERVAL, NO_FACE_THRESHOLD, EDGE_THRESHOLD, EDGE_MARGIN_RATIO, MAX_TRACKED_FACES

def test_Settings():
    s = Settings()
    assert s.CAMERA_INDEX >= 0
    # override via env-like behavior (construct new instance)
    s2 = Settings(CAMERA_INDEX=2, LOG_LEVEL="debug  # verbose")
    assert s2.CAMERA_INDEX == 2
    assert s2.LOG_LEVEL == "DEBUG"
    assert Settings(LOG_LEVEL="chatty").LOG_LEVEL == "INFO"

def test_fixed_thresholds():
    assert (DETECTION_INTERVAL, NO_FACE_THRESHOLD, EDGE_THRESHOLD) == (0.75, 3.0, 1.5)
    assert EDGE_MARGIN_RATIO == 0.08
    assert MAX_TRACKED_FACES == 5
