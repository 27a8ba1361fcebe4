"""
Display-side helpers: banner text and one-shot warning toasts derived from MonitorState.
"""
from __future__ import annotations

import logging
import time
from typing import Callable, Optional, Set

from proctor.models import Banner, MonitorState, Toast

logger = logging.getLogger(__name__)

UNAVAILABLE_HINT = (
    "Install a supported face detection backend or restart monitoring to enable proctoring safeguards."
)
COMPATIBILITY_NOTE = "Face detection running in compatibility mode."
PAUSED_NOTE = "Monitoring paused. Ensure camera access is granted."


def format_duration(since: float, now: Optional[float] = None) -> str:
    now = time.time() if now is None else now
    elapsed = now - since
    if elapsed < 1:
        return "just now"
    if elapsed < 60:
        return f"{int(elapsed + 0.5)}s ago"
    return f"{int(elapsed / 60 + 0.5)}m ago"


def build_banner(state: MonitorState, now: Optional[float] = None) -> Optional[Banner]:
    """
    Summarize the monitor state for display.

    Returns None when there is nothing to show (detector fine, no flags, no error).
    """
    if not state.detector_available:
        return Banner(
            title="Malpractice sensor unavailable",
            tone="unavailable",
            lines=[state.error or UNAVAILABLE_HINT],
        )

    if not state.flags and not state.error:
        return None

    lines = []
    for flag in state.flags:
        lines.append(flag.message)
        lines.append(f"Flagged {format_duration(flag.since, now)}")
    if state.detector_source == "fallback" and not state.error:
        lines.append(COMPATIBILITY_NOTE)
    if not state.flags and state.error:
        lines.append(state.error)
    if not state.is_monitoring and not state.error:
        lines.append(PAUSED_NOTE)
    return Banner(title="Malpractice Detected", tone="warning", lines=lines)


def _log_toast(toast: Toast) -> None:
    logger.warning(f"[sensor] {toast.title}: {toast.description}")


class WarningNotifier:
    """
    Monitor listener that raises one toast per newly active flag type and one
    per newly reported error.
    """
    def __init__(self, sink: Callable[[Toast], None] = _log_toast):
        self._sink = sink
        self._previous: Set[str] = set()
        self._last_error: Optional[str] = None

    def __call__(self, state: MonitorState) -> None:
        for flag in state.flags:
            if flag.type not in self._previous:
                self._sink(Toast(title="Malpractice warning", description=flag.message))
        self._previous = {flag.type for flag in state.flags}

        if state.error and state.error != self._last_error:
            self._sink(Toast(title="Malpractice sensor disabled", description=state.error))
        self._last_error = state.error
