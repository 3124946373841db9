"""Local web surface hosting one dashboard instance."""

from __future__ import annotations

import asyncio
import json
import logging
import os
import secrets
from contextlib import asynccontextmanager
from datetime import datetime
from typing import Any, AsyncGenerator, AsyncIterator, Dict, Optional, Set
from urllib.parse import urlparse

from dotenv import load_dotenv
from fastapi import FastAPI, HTTPException, Request
from fastapi.responses import HTMLResponse, JSONResponse, StreamingResponse

from controlplane_dashboard.auto_refresh import RefreshCoordinator
from controlplane_dashboard.config import load_config
from controlplane_dashboard.controller import DashboardController
from controlplane_dashboard.models import ACTIONS, SERVICE_TYPES
from controlplane_dashboard.views import TABS

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncIterator[None]:
    await startup_event()
    try:
        yield
    finally:
        await shutdown_event()


app = FastAPI(title="Control Plane Dashboard (Local)", lifespan=lifespan)

_controller: Optional[DashboardController] = None
_coordinator = RefreshCoordinator()

CSRF_HEADER = "X-Dashboard-CSRF"
CSRF_TOKEN = secrets.token_urlsafe(32)
ALLOWED_HOSTS = {"127.0.0.1:8081", "localhost:8081", "testserver"}


def _get_controller() -> DashboardController:
    if _controller is None:
        raise HTTPException(status_code=503, detail="Dashboard not started")
    return _controller


def _require_main_view(controller: DashboardController) -> None:
    if controller.view.mode != "main":
        raise HTTPException(status_code=409, detail="Login required")


def _origin_from_url(value: str | None) -> str | None:
    if not value:
        return None
    try:
        parsed = urlparse(value)
    except ValueError:
        return None
    if not parsed.scheme or not parsed.netloc:
        return None
    return f"{parsed.scheme}://{parsed.netloc}"


def _expected_origins(request: Request) -> Set[str]:
    host = request.headers.get("host")
    allowed_hosts = set(ALLOWED_HOSTS)
    if host:
        allowed_hosts.add(host)
    origins: Set[str] = set()
    for entry in allowed_hosts:
        origins.add(f"http://{entry}")
        origins.add(f"https://{entry}")
    return origins


def _require_authorized_post(request: Request) -> None:
    allowed_origins = _expected_origins(request)

    origin = _origin_from_url(request.headers.get("origin"))
    if origin and origin not in allowed_origins:
        raise HTTPException(status_code=403, detail="Cross-origin POST blocked")

    referer = _origin_from_url(request.headers.get("referer"))
    if referer and referer not in allowed_origins:
        raise HTTPException(status_code=403, detail="Cross-site POST blocked")

    token = request.headers.get(CSRF_HEADER)
    if token != CSRF_TOKEN:
        raise HTTPException(status_code=403, detail="Invalid or missing CSRF token")


def _state_response(controller: DashboardController, **extra: Any) -> JSONResponse:
    payload: Dict[str, Any] = dict(extra)
    payload["state"] = controller.view.snapshot()
    return JSONResponse(payload)


INDEX_HTML = """<!doctype html>
<html lang="en">
  <head>
    <meta charset="utf-8" />
    <meta name="dashboard-csrf" content="__CSRF_TOKEN__" />
    <title>Control Plane Dashboard (Local)</title>
  </head>
  <body>
    <pre id="state">Loading...</pre>
    <script>
      const stateEl = document.getElementById("state");

      async function refreshState() {
        const response = await fetch("/api/state", { cache: "no-store" });
        if (!response.ok) {
          stateEl.textContent = "Failed to load dashboard state";
          return;
        }
        stateEl.textContent = JSON.stringify(await response.json(), null, 2);
      }

      const source = new EventSource("/api/events");
      source.addEventListener("message", () => {
        refreshState().catch((error) => console.error("Refresh failed:", error));
      });
      refreshState();
    </script>
  </body>
</html>
"""


@app.get("/", response_class=HTMLResponse)
async def index() -> HTMLResponse:
    """Serve a minimal page that mirrors the dashboard state."""

    return HTMLResponse(content=INDEX_HTML.replace("__CSRF_TOKEN__", CSRF_TOKEN))


@app.get("/api/state")
async def get_state() -> JSONResponse:
    """Return the current rendered state of every region."""

    controller = _get_controller()
    return JSONResponse(controller.view.snapshot())


@app.post("/api/login")
async def login(payload: Dict[str, Any], request: Request) -> JSONResponse:
    """Validate a bearer token and enter the main view."""

    _require_authorized_post(request)
    controller = _get_controller()

    token = payload.get("token")
    if not isinstance(token, str) or not token:
        raise HTTPException(status_code=400, detail="Missing token value")

    accepted = await controller.login(token)
    return _state_response(controller, status="ok" if accepted else "rejected")


@app.post("/api/logout")
async def logout(request: Request) -> JSONResponse:
    _require_authorized_post(request)
    controller = _get_controller()
    await controller.logout()
    return _state_response(controller, status="ok")


@app.post("/api/tabs/{tab}")
async def select_tab(tab: str, request: Request) -> JSONResponse:
    """Switch the active tab and refresh its data."""

    _require_authorized_post(request)
    controller = _get_controller()
    _require_main_view(controller)

    if tab not in TABS:
        raise HTTPException(status_code=400, detail=f"Unknown tab: {tab}")

    await controller.select_tab(tab)
    return _state_response(controller, status="ok")


@app.post("/api/forms/{service_type}")
async def submit_schedule_form(
    service_type: str, payload: Dict[str, Any], request: Request
) -> JSONResponse:
    """Fill in and submit one of the create-schedule forms."""

    _require_authorized_post(request)
    controller = _get_controller()
    _require_main_view(controller)

    if service_type not in SERVICE_TYPES:
        raise HTTPException(status_code=400, detail=f"Unknown service type: {service_type}")

    action = payload.get("action", "on")
    if action not in ACTIONS:
        raise HTTPException(status_code=400, detail="action must be 'on' or 'off'")

    view = controller.view
    form = view.project_form if service_type == "project" else view.database_form
    form.selection.select(str(payload.get("selection") or ""))
    form.action.value = action
    form.cron.value = str(payload.get("cron") or "")

    if service_type == "project":
        added = await controller.schedules.submit_project_schedule()
    else:
        added = await controller.schedules.submit_database_schedule()
    return _state_response(controller, status="ok" if added else "failed")


@app.post("/api/schedules/{job_id}/delete")
async def delete_schedule(job_id: str, payload: Dict[str, Any], request: Request) -> JSONResponse:
    """Delete a listed schedule once the operator has confirmed.

    The body carries the operator's answer as ``{"confirmed": bool}``.
    """

    _require_authorized_post(request)
    controller = _get_controller()
    _require_main_view(controller)

    # The list may be mid-refresh, so look the job up in the last good render.
    schedule = next(
        (s for s in controller.engine.last_schedules if s.job_id == job_id),
        None,
    )
    if schedule is None:
        raise HTTPException(status_code=404, detail="Schedule not listed")

    confirmed = bool(payload.get("confirmed"))
    deleted = await controller.schedules.request_delete(
        job_id,
        schedule.service_type,
        schedule.service_name,
        confirm=lambda message: confirmed,
    )
    if not confirmed:
        status = "cancelled"
    else:
        status = "ok" if deleted else "failed"
    return _state_response(controller, status=status)


@app.get("/api/events")
async def events_stream(request: Request) -> StreamingResponse:
    """Server-Sent Events stream of view updates."""

    async def event_generator() -> AsyncGenerator[str, None]:
        """Generate SSE-formatted events."""
        try:
            async for event in _coordinator.subscribe():
                # Check if client disconnected
                if await request.is_disconnected():
                    break

                yield f"data: {json.dumps(event)}\n\n"

        except asyncio.CancelledError:
            logger.info("SSE client disconnected")
            raise

    return StreamingResponse(
        event_generator(),
        media_type="text/event-stream",
        headers={
            "Cache-Control": "no-cache",
            "Connection": "keep-alive",
            "X-Accel-Buffering": "no",  # Disable nginx buffering
        },
    )


@app.get("/api/health")
async def health_check() -> JSONResponse:
    """Health check endpoint with refresh statistics."""

    controller = _get_controller()
    return JSONResponse({
        "status": "ok",
        "timestamp": datetime.now().isoformat(),
        "mode": controller.view.mode,
        "poller": controller.poller.get_stats(),
        "sync": controller.engine.get_stats(),
        "coordinator": _coordinator.get_stats(),
    })


async def startup_event():
    """Create the dashboard (unless one was injected) and restore its session."""
    global _controller

    if _controller is None:
        _controller = DashboardController(load_config())

    _controller.view.add_listener(_coordinator.notify)
    await _controller.start()
    logger.info(f"Dashboard started in {_controller.view.mode} view")


async def shutdown_event():
    """Stop polling and close the HTTP client."""
    if _controller is None:
        return

    _controller.view.remove_listener(_coordinator.notify)
    try:
        await _controller.shutdown()
    except Exception as e:
        logger.error(f"Error shutting down dashboard: {e}")
    logger.info("Dashboard shutdown complete")


def run() -> None:
    """Convenience entry point for running with `python -m`."""

    import uvicorn

    load_dotenv()
    logging.basicConfig(
        level=os.getenv("LOG_LEVEL", "INFO"),
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
    )

    config = load_config()
    ALLOWED_HOSTS.update({f"127.0.0.1:{config.port}", f"localhost:{config.port}"})
    uvicorn.run(
        "controlplane_dashboard.local_app:app",
        host=config.host,
        port=config.port,
    )


if __name__ == "__main__":
    run()
