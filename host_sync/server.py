import time
from fastapi import FastAPI, Depends, HTTPException, Header
from fastapi.responses import PlainTextResponse
from typing import Optional
from .config import settings
from .controller import SyncController
from .models import ControllerState

app = FastAPI(title="Host Sync")
controller: Optional[SyncController] = None

def get_token(x_token: Optional[str] = Header(None, alias="X-Token")):
    if settings.HTTP_SERVER_TOKEN and x_token != settings.HTTP_SERVER_TOKEN:
        raise HTTPException(status_code=401, detail="Invalid token")

@app.get("/healthz")
def healthz():
    if not controller:
        return {"status": "starting"}

    if controller.needs_reauthentication:
        return {"status": "reauth_required"}

    if controller.state != ControllerState.ACTIVE:
        return {"status": controller.state.value}

    return {"status": "ok", "last_publish_age": time.time() - controller.last_publish_at if controller.last_publish_at else None}

@app.get("/status", dependencies=[Depends(get_token)])
def status():
    if not controller:
        return {"status": "not_ready"}

    result = controller.status().model_dump(mode="json")
    if controller.presence:
        result["message"] = controller.presence.describe()
        result["has_listeners"] = controller.presence.has_listeners
    result["config"] = {
        "seek_threshold_ms": controller.classifier.seek_threshold_ms,
        "debounce_window_ms": controller.emitter.window_ms if controller.emitter else settings.DEBOUNCE_WINDOW_MS,
    }
    return result

@app.get("/metrics", response_class=PlainTextResponse)
def metrics():
    # Simple prometheus-style text format
    if not controller:
        return ""

    s = controller.status()
    lines = [
        f'host_sync_active {1 if s.state == ControllerState.ACTIVE else 0}',
        f'host_sync_updates_forwarded {s.forwarded_count}',
        f'host_sync_updates_suppressed {s.suppressed_count}',
        f'host_sync_publish_failures {s.publish_failure_count}',
        f'host_sync_refresh_failures {s.refresh_failure_count}',
        f'host_sync_listeners {s.listener_count}',
        f'host_sync_last_publish_timestamp {s.last_publish_at}'
    ]
    return "\n".join(lines)
