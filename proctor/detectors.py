"""
Face detector adapters.

Two interchangeable backends behind one async interface:
- native: OpenCV's bundled Haar cascade, local and cheap to build
- fallback: a downloadable ML detector driven through DeepFace (TensorFlow)

resolve_detector() uses the native one whenever OpenCV ships it, so the heavy
ML stack is only loaded on hosts where it is actually needed.
"""
from __future__ import annotations

import asyncio
import contextlib
import logging
import os
from typing import Callable, List, Optional, Sequence, Tuple

import cv2
import numpy as np

from proctor.config import MAX_TRACKED_FACES
from proctor.errors import DetectorUnavailable
from proctor.models import DetectionBox, DetectorSource

logger = logging.getLogger(__name__)


# -----------------------------------------------------------------------------
# Backend configuration
# -----------------------------------------------------------------------------
HAAR_CASCADE_FILE = "haarcascade_frontalface_default.xml"
FAST_SCALE_FACTOR = 1.35       # coarse pyramid = "fast mode"
FAST_MIN_NEIGHBORS = 6
FAST_MIN_SIZE = (28, 28)

PRIMARY_DETECTOR_BACKEND = "retinaface"
SECONDARY_DETECTOR_BACKEND = "mtcnn"
WARMUP_SIZE = 64
# -----------------------------------------------------------------------------


class DetectionAdapter:
    """Uniform interface over one face detection backend."""
    source: DetectorSource

    async def detect(self, frame: np.ndarray) -> List[DetectionBox]:
        raise NotImplementedError

    def dispose(self) -> None:
        """Release backend resources (optional)."""


def to_pixel_box(x_min: float, y_min: float, width: float, height: float,
                 frame_w: int, frame_h: int,
                 x_max: Optional[float] = None,
                 y_max: Optional[float] = None) -> DetectionBox:
    """
    Convert a model box to frame pixels.

    Boxes whose max extents are both known and <= 1 are treated as normalized
    and scaled by the frame size, provided the frame size is valid. Everything
    else is already in pixels and passes through.
    """
    normalized = (
        frame_w > 0 and frame_h > 0
        and x_max is not None and y_max is not None
        and x_max <= 1 and y_max <= 1
    )
    sx = frame_w if normalized else 1
    sy = frame_h if normalized else 1
    return DetectionBox(
        x=float(x_min) * sx,
        y=float(y_min) * sy,
        width=max(0.0, float(width) * sx),
        height=max(0.0, float(height) * sy),
    )


# -----------------------------------------------------------------------------
# Native: OpenCV Haar cascade
# -----------------------------------------------------------------------------
def _cascade_path() -> str:
    data = getattr(cv2, "data", None)
    return os.path.join(getattr(data, "haarcascades", ""), HAAR_CASCADE_FILE)


def native_detector_supported() -> bool:
    return hasattr(cv2, "CascadeClassifier") and os.path.exists(_cascade_path())


class NativeFaceAdapter(DetectionAdapter):
    source: DetectorSource = "native"

    def __init__(self, classifier, max_faces: int = MAX_TRACKED_FACES):
        self._classifier = classifier
        self.max_faces = int(max_faces)

    async def detect(self, frame: np.ndarray) -> List[DetectionBox]:
        return await asyncio.to_thread(self._detect_sync, frame)

    def _detect_sync(self, frame: np.ndarray) -> List[DetectionBox]:
        gray = cv2.cvtColor(frame, cv2.COLOR_BGR2GRAY) if frame.ndim == 3 else frame
        faces = self._classifier.detectMultiScale(
            gray, FAST_SCALE_FACTOR, FAST_MIN_NEIGHBORS, minSize=FAST_MIN_SIZE
        )
        return [
            DetectionBox(x=float(x), y=float(y), width=float(w), height=float(h))
            for (x, y, w, h) in list(faces)[:self.max_faces]
        ]


def create_native_adapter() -> NativeFaceAdapter:
    path = _cascade_path()
    classifier = cv2.CascadeClassifier(path)
    if classifier.empty():
        raise DetectorUnavailable(f"Haar cascade failed to load: {path}")
    return NativeFaceAdapter(classifier)


# -----------------------------------------------------------------------------
# Fallback: DeepFace on a lazily initialized, process-wide ML runtime
# -----------------------------------------------------------------------------
class RuntimeHandle:
    def __init__(self, deepface, backend: str, device: Optional[str] = None):
        self.deepface = deepface
        self.backend = backend
        self.device = device


def _load_deepface():
    # Lazy import: TensorFlow is only loaded when the fallback is needed
    from deepface import DeepFace
    return DeepFace


def _check_device(tf, device: str) -> None:
    """Execute a tiny op on `device` so a broken driver fails now, not mid-session."""
    with tf.device(device):
        tf.reduce_sum(tf.ones((2, 2))).numpy()


def _init_gpu_backend() -> str:
    import tensorflow as tf
    if not tf.config.list_physical_devices("GPU"):
        raise RuntimeError("no GPU visible to TensorFlow")
    device = "/GPU:0"
    _check_device(tf, device)
    return device


def _init_cpu_backend() -> str:
    import tensorflow as tf
    if not tf.config.list_physical_devices("CPU"):
        raise RuntimeError("no CPU device visible to TensorFlow")
    try:
        tf.config.set_visible_devices([], "GPU")
    except RuntimeError:
        # Devices are frozen once a GPU attempt touched them; ops are pinned instead
        logger.debug("[detectors] GPU visibility already fixed; pinning ops to CPU", exc_info=True)
    device = "/CPU:0"
    _check_device(tf, device)
    return device


def _device_scope(device: Optional[str]):
    if device is None:
        return contextlib.nullcontext()
    import tensorflow as tf
    return tf.device(device)


# Each initializer returns the TensorFlow device string to pin model work to
ExecutionBackend = Tuple[str, Callable[[], Optional[str]]]
EXECUTION_BACKENDS: Tuple[ExecutionBackend, ...] = (
    ("gpu", _init_gpu_backend),
    ("cpu", _init_cpu_backend),
)


class MLRuntime:
    """
    Memoized handle to the ML runtime.

    States: uninitialized -> initializing -> ready | failed.
    Concurrent acquire() calls during initialization await the same pending
    task. A failure drops the pending task so the next call retries.
    """
    UNINITIALIZED = "uninitialized"
    INITIALIZING = "initializing"
    READY = "ready"
    FAILED = "failed"

    def __init__(self,
                 loader: Callable[[], object] = _load_deepface,
                 backends: Sequence[ExecutionBackend] = EXECUTION_BACKENDS):
        self._loader = loader
        self._backends = tuple(backends)
        self.state = self.UNINITIALIZED
        self._pending: Optional[asyncio.Task] = None
        self._handle: Optional[RuntimeHandle] = None

    async def acquire(self) -> RuntimeHandle:
        if self._handle is not None:
            return self._handle
        if self._pending is None:
            self.state = self.INITIALIZING
            self._pending = asyncio.ensure_future(self._initialize())
        # shield: a cancelled caller must not abort the shared initialization
        return await asyncio.shield(self._pending)

    def reset(self) -> None:
        self.state = self.UNINITIALIZED
        self._pending = None
        self._handle = None

    async def _initialize(self) -> RuntimeHandle:
        try:
            handle = await asyncio.to_thread(self._initialize_sync)
        except Exception:
            self.state = self.FAILED
            self._pending = None
            raise
        self._handle = handle
        self.state = self.READY
        self._pending = None
        return handle

    def _initialize_sync(self) -> RuntimeHandle:
        try:
            deepface = self._loader()
        except Exception as e:
            raise DetectorUnavailable(f"ML runtime import failed: {e}") from e

        for name, init in self._backends:
            try:
                device = init()
            except Exception:
                logger.warning(f"[detectors] execution backend '{name}' failed to initialize", exc_info=True)
                continue
            logger.info(f"[detectors] ML runtime ready on backend '{name}' device={device}")
            return RuntimeHandle(deepface=deepface, backend=name, device=device)

        raise DetectorUnavailable("No ML execution backend available")


SHARED_RUNTIME = MLRuntime()


class FallbackFaceAdapter(DetectionAdapter):
    source: DetectorSource = "fallback"

    def __init__(self, deepface, detector_backend: str,
                 max_faces: int = MAX_TRACKED_FACES, device: Optional[str] = None):
        self._deepface = deepface
        self.detector_backend = detector_backend
        self.max_faces = int(max_faces)
        self.device = device

    async def detect(self, frame: np.ndarray) -> List[DetectionBox]:
        return await asyncio.to_thread(self._detect_sync, frame)

    def _detect_sync(self, frame: np.ndarray) -> List[DetectionBox]:
        if self._deepface is None:
            raise RuntimeError("fallback detector used after dispose()")
        frame_h, frame_w = frame.shape[:2]
        with _device_scope(self.device):
            dets = self._deepface.extract_faces(
                img_path=frame,
                detector_backend=self.detector_backend,
                enforce_detection=False,
                align=False,
            )
        boxes: List[DetectionBox] = []
        for d in dets or []:
            d = d or {}
            fa = d.get("facial_area") or {}
            conf = d.get("confidence")
            # enforce_detection=False yields a whole-frame placeholder with confidence 0
            if not fa or (conf is not None and float(conf) <= 0):
                continue
            boxes.append(to_pixel_box(
                fa.get("x", 0), fa.get("y", 0), fa.get("w", 0), fa.get("h", 0),
                frame_w, frame_h,
                x_max=fa.get("x_max"), y_max=fa.get("y_max"),
            ))
        return boxes[:self.max_faces]

    def dispose(self) -> None:
        self._deepface = None


def _warm_up(deepface, detector_backend: str, device: Optional[str] = None) -> None:
    """Build the detector once so a broken backend fails here, not mid-session."""
    blank = np.zeros((WARMUP_SIZE, WARMUP_SIZE, 3), dtype=np.uint8)
    with _device_scope(device):
        deepface.extract_faces(
            img_path=blank,
            detector_backend=detector_backend,
            enforce_detection=False,
            align=False,
        )


async def create_fallback_adapter(
    runtime: Optional[MLRuntime] = None,
    detector_backends: Sequence[str] = (PRIMARY_DETECTOR_BACKEND, SECONDARY_DETECTOR_BACKEND),
) -> FallbackFaceAdapter:
    handle = await (runtime or SHARED_RUNTIME).acquire()

    last_error: Optional[BaseException] = None
    for name in detector_backends:
        try:
            await asyncio.to_thread(_warm_up, handle.deepface, name, handle.device)
        except Exception as e:
            last_error = e
            logger.warning(
                f"[detectors] fallback detector '{name}' failed to initialize on backend '{handle.backend}'",
                exc_info=True,
            )
            continue
        logger.info(f"[detectors] fallback detector '{name}' ready")
        return FallbackFaceAdapter(handle.deepface, name, device=handle.device)

    raise DetectorUnavailable("Unable to initialize fallback face detector") from last_error


async def resolve_detector(
    probe: Callable[[], bool] = native_detector_supported,
    runtime: Optional[MLRuntime] = None,
) -> DetectionAdapter:
    """
    Pick a usable detection backend.

    Raises:
        DetectorUnavailable: neither backend could be constructed.
    """
    if probe():
        try:
            return create_native_adapter()
        except DetectorUnavailable:
            logger.warning("[detectors] native detector present but failed to load; trying fallback", exc_info=True)
    return await create_fallback_adapter(runtime)
