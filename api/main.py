"""
FastAPI application entrypoint.
"""
import logging
from contextlib import asynccontextmanager
from fastapi import FastAPI
import api.routes as routes

logging.basicConfig(level=routes.settings.LOG_LEVEL)


@asynccontextmanager
async def lifespan(app: FastAPI):
    yield
    # Cancel pending ticks and release the camera on shutdown
    routes.monitor.stop()
    session = routes.live_session["session"]
    if session is not None:
        session.close()
        routes.live_session["session"] = None


app = FastAPI(title="Malpractice Monitor API", version="1.0.0", lifespan=lifespan)
app.include_router(routes.router)

@app.get("/health")
def health() -> dict:
    """
    Health check endpoint.

    Returns:
        dict: Simple status payload.
    """
    return {"status": "ok"}
