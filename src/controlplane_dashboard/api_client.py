"""HTTP client for the control-plane API.

Every call either returns its payload or raises one of the errors below:

* ``ApplicationError`` - the server answered with a non-2xx status. The
  message is the server's ``error`` field verbatim when one is present.
* ``AuthenticationError`` - a 401 on an authenticated call, meaning the
  stored credential is no longer accepted.
* ``TransportError`` - no response was obtained at all.
"""

from __future__ import annotations

import json
import logging
from typing import Any, Callable, List, Optional, TypeVar

import httpx

from controlplane_dashboard.models import Database, Project, ScheduleSnapshot
from controlplane_dashboard.session import Session

logger = logging.getLogger(__name__)

NETWORK_ERROR_MESSAGE = "Network error or server unavailable."

T = TypeVar("T")


class DashboardError(Exception):
    """Base class for failures surfaced to the operator."""

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message


class ApplicationError(DashboardError):
    """The control plane responded, but with an error status."""

    def __init__(self, message: str, status_code: int):
        super().__init__(message)
        self.status_code = status_code


class AuthenticationError(ApplicationError):
    """The bearer credential was rejected mid-session."""


class TransportError(DashboardError):
    """No response could be obtained from the control plane."""

    def __init__(self, detail: str = ""):
        super().__init__(NETWORK_ERROR_MESSAGE)
        self.detail = detail


def _error_message(response: httpx.Response, fallback: str) -> str:
    """Extract the server's ``error`` string, falling back when there is none."""

    # Error bodies are JSON even when served as text/plain, so parse the text.
    try:
        data = json.loads(response.text)
    except ValueError:
        return fallback
    if isinstance(data, dict) and data.get("error"):
        return str(data["error"])
    return fallback


class ControlPlaneClient:
    """Async client for the control-plane endpoints."""

    def __init__(
        self,
        base_url: str,
        session: Session,
        timeout: float = 10.0,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        """Initialize the client.

        Args:
            base_url: Root URL of the control-plane service.
            session: Session holding the active bearer token.
            timeout: Per-request timeout in seconds.
            transport: Optional httpx transport (tests pass a MockTransport).
        """
        self.session = session
        self._http = httpx.AsyncClient(
            base_url=base_url.rstrip("/"),
            timeout=timeout,
            transport=transport,
        )

    async def __aenter__(self) -> ControlPlaneClient:
        return self

    async def __aexit__(self, *exc_info: Any) -> None:
        await self.aclose()

    async def aclose(self) -> None:
        await self._http.aclose()

    def _auth_headers(self) -> dict[str, str]:
        return {"Authorization": f"Bearer {self.session.token or ''}"}

    async def _send(
        self,
        method: str,
        path: str,
        *,
        authenticated: bool = True,
        json_body: Any = None,
    ) -> httpx.Response:
        headers = self._auth_headers() if authenticated else {}
        try:
            return await self._http.request(method, path, headers=headers, json=json_body)
        except httpx.HTTPError as e:
            logger.error(f"Network error on {method} {path}: {e}")
            raise TransportError(str(e)) from e

    def _raise_for_status(
        self,
        response: httpx.Response,
        fallback: str,
        *,
        authenticated: bool = True,
        raw: bool = False,
    ) -> None:
        if response.is_success:
            return

        message = (response.text or fallback) if raw else _error_message(response, fallback)
        if authenticated and response.status_code == httpx.codes.UNAUTHORIZED:
            raise AuthenticationError(message, response.status_code)
        raise ApplicationError(message, response.status_code)

    async def _get_json(self, path: str, fallback: str, parse: Callable[[Any], T]) -> T:
        """GET ``path`` and build its payload with ``parse``.

        A 2xx body that is not JSON, or whose shape ``parse`` cannot handle,
        is reported as an ``ApplicationError`` carrying ``fallback``.
        """
        response = await self._send("GET", path)
        self._raise_for_status(response, fallback)
        try:
            return parse(response.json())
        except (AttributeError, TypeError, ValueError) as e:
            logger.error(f"Malformed response from {path}: {e}")
            raise ApplicationError(fallback, response.status_code) from e

    # ------------------------------------------------------------------
    # Remote operations
    # ------------------------------------------------------------------

    async def login(self, token: str) -> None:
        """Ask the control plane to validate ``token``.

        A rejection raises ``ApplicationError`` (never ``AuthenticationError``),
        since there is no session to invalidate yet.
        """
        response = await self._send(
            "POST", "/login", authenticated=False, json_body={"token": token}
        )
        self._raise_for_status(response, "Login failed.", authenticated=False)

    async def list_projects(self) -> List[Project]:
        return await self._get_json(
            "/projects",
            "Failed to fetch projects.",
            lambda data: [Project.from_dict(item) for item in data or []],
        )

    async def list_databases(self) -> List[Database]:
        return await self._get_json(
            "/databases",
            "Failed to fetch databases.",
            lambda data: [Database.from_dict(item) for item in data or []],
        )

    async def list_schedules(self) -> ScheduleSnapshot:
        return await self._get_json(
            "/schedules",
            "Failed to fetch schedules.",
            lambda data: ScheduleSnapshot.from_dict(data or {}),
        )

    async def create_schedule(
        self, service: str, service_type: str, action: str, cron: str
    ) -> None:
        payload = {
            "service": service,
            "serviceType": service_type,
            "action": action,
            "cron": cron,
        }
        response = await self._send("POST", "/schedule", json_body=payload)
        self._raise_for_status(response, "Unknown error")

    async def delete_schedule(self, job_id: str) -> None:
        response = await self._send("DELETE", f"/schedule/delete/{job_id}")
        self._raise_for_status(response, "Unknown error")

    async def fetch_logs(self) -> str:
        """Return the server log as raw text."""
        response = await self._send("GET", "/logs")
        self._raise_for_status(response, "Unknown error", raw=True)
        return response.text

    async def fetch_uptime(self) -> str:
        return await self._get_json(
            "/uptime", "Unknown error", lambda data: str(data.get("uptime", ""))
        )
