"""Login state machine and tab switching for the dashboard."""

from __future__ import annotations

import logging
from typing import Optional

from controlplane_dashboard.api_client import (
    AuthenticationError,
    ControlPlaneClient,
    DashboardError,
)
from controlplane_dashboard.auto_refresh import PollScheduler
from controlplane_dashboard.config import DashboardConfig
from controlplane_dashboard.schedules import ScheduleWorkflow
from controlplane_dashboard.session import Session, SessionStore
from controlplane_dashboard.sync import ResourceSyncEngine
from controlplane_dashboard.views import TABS, DashboardView

logger = logging.getLogger(__name__)

SESSION_EXPIRED_MESSAGE = "Session expired. Please log in again."


class DashboardController:
    """Owns the session, the active tab, and the refresh loop.

    The main view is only shown while a credential is held. Entering it
    (at startup with a stored token, or after a successful login) runs
    every sync cycle once and starts the poll scheduler; leaving it stops
    the scheduler.
    """

    def __init__(
        self,
        config: DashboardConfig,
        session_store: Optional[SessionStore] = None,
        client: Optional[ControlPlaneClient] = None,
        view: Optional[DashboardView] = None,
    ):
        self.config = config
        self.session = Session(session_store or SessionStore(config.session_path))
        self.client = client or ControlPlaneClient(
            config.api_base_url, self.session, timeout=config.request_timeout
        )
        # A client built elsewhere must still read this controller's session.
        self.client.session = self.session
        self.view = view or DashboardView()
        self.engine = ResourceSyncEngine(
            self.client, self.view, on_auth_failure=self._handle_auth_failure
        )
        self.schedules = ScheduleWorkflow(
            self.client, self.view, self.engine, on_auth_failure=self._handle_auth_failure
        )
        self.poller = PollScheduler(self.engine.sync_all, interval=config.poll_interval)

    @property
    def active_tab(self) -> str:
        return self.view.active_tab

    async def start(self) -> None:
        """Restore a stored session, or show the login view."""

        if self.session.init():
            logger.info("Restored stored session")
            await self._enter_main()
        else:
            self.view.show_login()

    async def login(self, token: str) -> bool:
        """Validate ``token`` with the control plane and enter the main view."""

        self.view.token_input.value = token
        try:
            await self.client.login(token)
        except DashboardError as e:
            logger.warning(f"Login rejected: {e.message}")
            self.view.login_error.set_text(e.message)
            self.view.changed()
            return False

        self.session.set(token)
        self.view.login_error.set_text("")
        logger.info("Login succeeded")
        await self._enter_main()
        return True

    async def logout(self) -> None:
        await self.poller.stop()
        self.session.clear()
        self.view.show_login()
        logger.info("Logged out")

    async def select_tab(self, tab: str) -> None:
        """Activate ``tab`` and run its sync cycle once."""

        if tab not in TABS:
            raise ValueError(f"Unknown tab: {tab}")
        self.view.activate_tab(tab)
        await self.engine.sync(tab)

    async def shutdown(self) -> None:
        await self.poller.stop()
        await self.client.aclose()

    async def _enter_main(self) -> None:
        self.view.show_main()
        await self.engine.sync_all()
        # The first refresh may already have found the credential stale.
        if self.session.is_authenticated:
            await self.poller.start()

    def _handle_auth_failure(self, error: AuthenticationError) -> None:
        if not self.session.is_authenticated:
            return

        logger.warning(f"Credential rejected ({error.message}); returning to login")
        self.poller.cancel()
        self.session.clear()
        self.view.login_error.set_text(SESSION_EXPIRED_MESSAGE)
        self.view.show_login()
