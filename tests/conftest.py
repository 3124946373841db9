"""Shared fixtures: an in-process fake of the control-plane API."""

from __future__ import annotations

import inspect
from pathlib import Path
from typing import Any, Callable, Dict, List, Optional, Tuple

import httpx
import pytest

from controlplane_dashboard.api_client import ControlPlaneClient
from controlplane_dashboard.config import DashboardConfig
from controlplane_dashboard.session import Session, SessionStore
from controlplane_dashboard.sync import ResourceSyncEngine
from controlplane_dashboard.views import DashboardView

BASE_URL = "http://controlplane.test"

SAMPLE_PROJECTS = [
    {"project_id": "shop-api", "type": "node", "status": "ACTIVE", "scale": 1},
    {"project_id": "blog", "type": "php", "status": "STOPPED", "scale": 0},
]
SAMPLE_DATABASES = [
    {"DBId": "orders-db", "type": "postgres", "status": "RUNNING", "scale": 1, "hostname": "orders.db.internal"},
    {"DBId": "", "type": "redis", "status": "RUNNING", "scale": 1, "hostname": "cache.db.internal"},
]
SAMPLE_SCHEDULES = {
    "currentTime": "2026-10-19T13:53:00.123456789Z",
    "schedules": [
        {
            "JobID": 3,
            "ServiceName": "shop-api",
            "ServiceType": "project",
            "Action": "off",
            "CronSpec": "0 22 * * *",
            "LastRun": "2026-10-18T22:00:00Z",
        },
        {
            "JobID": 4,
            "ServiceName": "orders-db",
            "ServiceType": "database",
            "Action": "on",
            "CronSpec": "0 7 * * *",
            "NextRun": "2026-10-20T07:00:00Z",
        },
    ],
}

Route = Any


class FakeControlPlane:
    """Routes requests to canned responses and records what was sent."""

    def __init__(self) -> None:
        self.routes: Dict[Tuple[str, str], Route] = {
            ("POST", "/login"): (200, {"message": "Login successful"}),
            ("GET", "/projects"): (200, SAMPLE_PROJECTS),
            ("GET", "/databases"): (200, SAMPLE_DATABASES),
            ("GET", "/schedules"): (200, SAMPLE_SCHEDULES),
            ("POST", "/schedule"): (200, {"message": "Schedule added successfully"}),
            ("DELETE", "/schedule/delete"): (200, {"message": "Schedule deleted successfully"}),
            ("GET", "/logs"): (200, "2026/10/19 13:50:00 scheduler started\n"),
            ("GET", "/uptime"): (200, {"uptime": "3h12m5s"}),
        }
        self.requests: List[httpx.Request] = []
        self.down = False
        self.on_request: Optional[Callable[[httpx.Request], None]] = None

    def set(self, method: str, path: str, status: int, body: Any = None) -> None:
        self.routes[(method, path)] = (status, body)

    def set_handler(self, method: str, path: str, handler: Callable) -> None:
        self.routes[(method, path)] = handler

    def calls(self, method: str, path: str) -> List[httpx.Request]:
        return [
            r for r in self.requests
            if r.method == method and r.url.path.startswith(path)
        ]

    async def _handle(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        if self.on_request:
            self.on_request(request)
        if self.down:
            raise httpx.ConnectError("Connection refused", request=request)

        path = request.url.path
        if path.startswith("/schedule/delete/"):
            path = "/schedule/delete"
        route = self.routes.get((request.method, path))
        if route is None:
            return httpx.Response(404, text="404 page not found")

        if callable(route):
            result = route(request)
            if inspect.isawaitable(result):
                result = await result
            return result

        status, body = route
        if isinstance(body, str):
            return httpx.Response(status, text=body)
        return httpx.Response(status, json=body)

    @property
    def transport(self) -> httpx.MockTransport:
        return httpx.MockTransport(self._handle)


@pytest.fixture
def fake() -> FakeControlPlane:
    return FakeControlPlane()


@pytest.fixture
def session(tmp_path: Path) -> Session:
    session = Session(SessionStore(tmp_path / "session.json"))
    session.set("valid-token")
    return session


@pytest.fixture
def client(fake: FakeControlPlane, session: Session) -> ControlPlaneClient:
    return ControlPlaneClient(BASE_URL, session, transport=fake.transport)


@pytest.fixture
def view() -> DashboardView:
    return DashboardView()


@pytest.fixture
def engine(client: ControlPlaneClient, view: DashboardView) -> ResourceSyncEngine:
    return ResourceSyncEngine(client, view)


@pytest.fixture
def dashboard_config(tmp_path: Path) -> DashboardConfig:
    return DashboardConfig(
        api_base_url=BASE_URL,
        poll_interval=3600,
        session_path=str(tmp_path / "dashboard-session.json"),
    )
