import logging
from pathlib import Path
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from .settings import settings
from .api import router as api_router
from .context import ContextStore
from .devices import load_devices
from .errors import ConfigurationError
from .realtime import Broadcaster
from .sse import event_stream
from .state import Bridge

logging.basicConfig(level=getattr(logging, settings.LOG_LEVEL, "INFO"))
log = logging.getLogger("startup")

broadcaster = Broadcaster()

app = FastAPI(title="Accessory Bridge", version="0.1.0")
app.include_router(api_router)
app.add_middleware(CORSMiddleware, allow_origins=["*"], allow_methods=["*"], allow_headers=["*"])

@app.on_event("startup")
async def on_start():
    if settings.DB_URL.startswith("sqlite:///"):
        Path(settings.DB_URL[len("sqlite:///"):]).parent.mkdir(parents=True, exist_ok=True)
    store = ContextStore()
    store.init_db()
    bridge = Bridge.from_settings(settings, broadcaster, store=store)
    try:
        bridge.load(load_devices(settings))
    except ConfigurationError as e:
        log.error("No accessories loaded: %s", e)
    app.state.bridge = bridge
    bridge.start()

@app.on_event("shutdown")
async def on_stop():
    await app.state.bridge.stop()

@app.get("/api/v1/status/stream")
async def stream():
    return event_stream(broadcaster.register(), ping=15)

@app.get("/")
def root():
    return {"name": "accessory-bridge", "status": "ok"}
