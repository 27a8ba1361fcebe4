"""
REST endpoints for the malpractice monitor.
"""
from fastapi import APIRouter, HTTPException
from pydantic import BaseModel
import logging

from proctor.config import Settings
from proctor.frame_source import LocalCameraSession
from proctor.monitor import MalpracticeMonitor
from proctor.sensor import WarningNotifier, build_banner


router = APIRouter()
settings = Settings()
logger = logging.getLogger(__name__)

monitor = MalpracticeMonitor()
monitor.subscribe(WarningNotifier())
live_session = {"session": None}


class CameraRequest(BaseModel):
    camera_index: int | None = None


@router.post("/monitor/start")
async def monitor_start():
    """
    Start monitoring the local camera session.

    Returns:
        dict: status ("started", "already_running" or "unavailable") and the monitor state.
    """
    session = live_session["session"]
    if session is not None and monitor.session is session:
        return {"status": "already_running", "state": monitor.state.model_dump()}

    if session is None:
        session = LocalCameraSession(settings)
        live_session["session"] = session
    logger.debug(f"[api] /monitor/start session={session.session_id} camera={settings.CAMERA_INDEX}")

    try:
        state = await monitor.start(session)
    except Exception as e:
        logger.exception("[api] monitor start failed")
        raise HTTPException(status_code=500, detail=str(e))

    status = "started" if state.is_monitoring else "unavailable"
    return {"status": status, "state": state.model_dump()}


@router.get("/monitor/status")
async def monitor_status():
    state = monitor.state
    return {"running": state.is_monitoring, "state": state.model_dump()}


@router.get("/monitor/banner")
async def monitor_banner():
    banner = build_banner(monitor.state)
    return {"banner": banner.model_dump() if banner is not None else None}


@router.post("/monitor/camera")
async def monitor_camera(req: CameraRequest):
    """
    Switch the session to another camera index, or turn the camera off when no index is given.
    """
    session = live_session["session"]
    if session is None:
        raise HTTPException(status_code=409, detail="No active session")
    if req.camera_index is None:
        session.disable_camera()
        return {"status": "camera_disabled"}
    session.switch_camera(req.camera_index)
    return {"status": "camera_switched", "camera_index": req.camera_index}


@router.post("/monitor/stop")
async def monitor_stop():
    session = live_session["session"]
    if session is None:
        return {"status": "not_running"}
    monitor.stop()
    session.close()
    live_session["session"] = None
    return {"status": "stopped"}
