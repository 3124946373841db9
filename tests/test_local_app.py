"""Tests for the local dashboard FastAPI app."""

from __future__ import annotations

import pytest
from fastapi.testclient import TestClient

from conftest import BASE_URL
from controlplane_dashboard import local_app
from controlplane_dashboard.api_client import ControlPlaneClient
from controlplane_dashboard.controller import DashboardController
from controlplane_dashboard.session import Session, SessionStore
from controlplane_dashboard.views import RegionState


@pytest.fixture
def controller(fake, dashboard_config, monkeypatch) -> DashboardController:
    store = SessionStore(dashboard_config.session_path)
    client = ControlPlaneClient(BASE_URL, Session(store), transport=fake.transport)
    controller = DashboardController(dashboard_config, session_store=store, client=client)
    monkeypatch.setattr(local_app, "_controller", controller)
    return controller


def _client() -> TestClient:
    return TestClient(local_app.app)


def _auth_headers(origin: str = "http://testserver") -> dict[str, str]:
    return {
        "Origin": origin,
        "X-Dashboard-CSRF": local_app.CSRF_TOKEN,
    }


def _login(client: TestClient) -> dict:
    response = client.post("/api/login", headers=_auth_headers(), json={"token": "good-token"})
    assert response.status_code == 200
    return response.json()


def test_index_embeds_csrf_token(controller):
    with _client() as client:
        response = client.get("/")
    assert response.status_code == 200
    assert local_app.CSRF_TOKEN in response.text


def test_starts_in_login_view(controller):
    with _client() as client:
        state = client.get("/api/state").json()
    assert state["mode"] == "login"
    assert state["activeTab"] == "projects"


def test_login_requires_csrf(controller):
    with _client() as client:
        response = client.post("/api/login", json={"token": "good-token"})
    assert response.status_code == 403


def test_login_rejects_untrusted_origin(controller):
    with _client() as client:
        response = client.post(
            "/api/login",
            headers=_auth_headers(origin="http://evil.test"),
            json={"token": "good-token"},
        )
    assert response.status_code == 403


def test_login_requires_token(controller):
    with _client() as client:
        response = client.post("/api/login", headers=_auth_headers(), json={})
    assert response.status_code == 400


def test_login_populates_every_tab(controller):
    with _client() as client:
        body = _login(client)

    assert body["status"] == "ok"
    state = body["state"]
    assert state["mode"] == "main"
    assert state["projects"]["list"]["state"] == "result"
    assert state["databases"]["list"]["state"] == "result"
    assert state["schedules"]["list"]["items"][0]["jobId"] == "3"
    assert state["uptime"]["text"] == "Server has been running for: 3h12m5s"


def test_login_rejected_reports_server_message(fake, controller):
    fake.set("POST", "/login", 401, {"error": "Invalid Liara API Token or API error"})
    with _client() as client:
        body = client.post("/api/login", headers=_auth_headers(), json={"token": "bad"}).json()

    assert body["status"] == "rejected"
    assert body["state"]["mode"] == "login"
    assert body["state"]["loginError"] == "Invalid Liara API Token or API error"


def test_tabs_require_login(controller):
    with _client() as client:
        response = client.post("/api/tabs/logs", headers=_auth_headers())
    assert response.status_code == 409


def test_select_tab(fake, controller):
    with _client() as client:
        _login(client)
        fake.requests.clear()
        response = client.post("/api/tabs/uptime", headers=_auth_headers())
        unknown = client.post("/api/tabs/billing", headers=_auth_headers())

    assert response.status_code == 200
    assert response.json()["state"]["activeTab"] == "uptime"
    assert [r.url.path for r in fake.requests] == ["/uptime"]
    assert unknown.status_code == 400


def test_submit_project_form(fake, controller):
    with _client() as client:
        _login(client)
        response = client.post(
            "/api/forms/project",
            headers=_auth_headers(),
            json={"selection": "blog", "action": "off", "cron": "0 22 * * *"},
        )

    body = response.json()
    assert body["status"] == "ok"
    assert body["state"]["forms"]["project"]["cron"] == ""
    assert len(fake.calls("POST", "/schedule")) == 1


def test_submit_form_without_selection_is_local_error(fake, controller):
    with _client() as client:
        _login(client)
        fake.requests.clear()
        response = client.post(
            "/api/forms/database",
            headers=_auth_headers(),
            json={"selection": "", "cron": "@daily"},
        )

    body = response.json()
    assert body["status"] == "failed"
    assert body["state"]["forms"]["database"]["error"] == "Please select a database."
    assert fake.requests == []


def test_submit_form_validates_action(controller):
    with _client() as client:
        _login(client)
        response = client.post(
            "/api/forms/project",
            headers=_auth_headers(),
            json={"selection": "blog", "action": "reboot", "cron": "@daily"},
        )
    assert response.status_code == 400


def test_delete_requires_confirmation(fake, controller):
    with _client() as client:
        _login(client)
        declined = client.post(
            "/api/schedules/3/delete", headers=_auth_headers(), json={"confirmed": False}
        )
        assert fake.calls("DELETE", "/schedule/delete/") == []
        confirmed = client.post(
            "/api/schedules/3/delete", headers=_auth_headers(), json={"confirmed": True}
        )
        missing = client.post(
            "/api/schedules/77/delete", headers=_auth_headers(), json={"confirmed": True}
        )

    assert declined.json()["status"] == "cancelled"
    assert confirmed.json()["status"] == "ok"
    assert fake.calls("DELETE", "/schedule/delete/")[0].url.path == "/schedule/delete/3"
    assert missing.status_code == 404


def test_health_reports_poller_and_sync_stats(controller):
    with _client() as client:
        _login(client)
        payload = client.get("/api/health").json()

    assert payload["status"] == "ok"
    assert payload["mode"] == "main"
    assert payload["poller"]["running"] is True
    assert payload["sync"]["kinds"]["projects"]["runs"] == 1


def test_delete_resolves_row_while_list_is_refreshing(fake, controller):
    with _client() as client:
        _login(client)
        controller.view.schedule_list.show_message("Loading schedules...", RegionState.LOADING)
        response = client.post(
            "/api/schedules/3/delete", headers=_auth_headers(), json={"confirmed": True}
        )

    assert response.json()["status"] == "ok"
    assert fake.calls("DELETE", "/schedule/delete/")[0].url.path == "/schedule/delete/3"


def test_restarted_app_registers_one_change_listener(controller):
    for _ in range(2):
        with _client():
            assert controller.view._listeners == [local_app._coordinator.notify]
        assert controller.view._listeners == []
