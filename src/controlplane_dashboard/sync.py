"""Fetch-and-render cycles for each resource kind.

Each cycle renders a loading state before its request goes out, then
replaces it with the result, an application error, or a transport error.
Renders are full replacements; nothing is merged with what was shown
before.

Two cycles of the same kind may overlap (a tab click racing a poll tick).
Every cycle takes a new generation number for its kind, and a completion
whose generation is no longer the newest is dropped, so an older response
can never overwrite a newer one.
"""

from __future__ import annotations

import asyncio
import logging
from datetime import datetime
from typing import Callable, Dict, List, Optional

from controlplane_dashboard.api_client import (
    NETWORK_ERROR_MESSAGE,
    AuthenticationError,
    ControlPlaneClient,
    DashboardError,
    TransportError,
)
from controlplane_dashboard.models import Schedule, format_timestamp
from controlplane_dashboard.views import (
    TABS,
    DashboardView,
    ListItem,
    Option,
    RegionState,
)

logger = logging.getLogger(__name__)

RESOURCE_KINDS = TABS


def _error_state(error: DashboardError) -> RegionState:
    if isinstance(error, TransportError):
        return RegionState.TRANSPORT_ERROR
    return RegionState.APP_ERROR


def schedule_row_text(schedule: Schedule) -> str:
    """Describe one schedule; run times are only included when known."""

    text = (
        f"Service: {schedule.service_name} ({schedule.service_type})"
        f" | Action: {schedule.action} | Cron: {schedule.cron_spec}"
    )
    if schedule.last_run:
        text += f" | Last Run: {format_timestamp(schedule.last_run)}"
    if schedule.next_run:
        text += f" | Next Run: {format_timestamp(schedule.next_run)}"
    return text


class ResourceSyncEngine:
    """Runs the per-kind sync cycles against one view."""

    def __init__(
        self,
        client: ControlPlaneClient,
        view: DashboardView,
        on_auth_failure: Optional[Callable[[AuthenticationError], None]] = None,
    ):
        self.client = client
        self.view = view
        self.on_auth_failure = on_auth_failure
        self._generations: Dict[str, int] = {kind: 0 for kind in RESOURCE_KINDS}
        self._stats: Dict[str, Dict[str, int]] = {
            kind: {"runs": 0, "errors": 0, "stale": 0} for kind in RESOURCE_KINDS
        }
        self._last_sync: Optional[datetime] = None
        # Schedules from the newest successful render; rows are looked up here
        # while the list itself shows a loading or error state.
        self.last_schedules: List[Schedule] = []

    # ------------------------------------------------------------------
    # Bookkeeping
    # ------------------------------------------------------------------

    def _begin(self, kind: str) -> int:
        self._generations[kind] += 1
        self._stats[kind]["runs"] += 1
        return self._generations[kind]

    def _superseded(self, kind: str, generation: int) -> bool:
        if generation == self._generations[kind]:
            return False
        logger.debug(f"Dropping stale {kind} response (generation {generation})")
        self._stats[kind]["stale"] += 1
        return True

    def _failed(self, kind: str, error: DashboardError) -> None:
        self._stats[kind]["errors"] += 1
        if isinstance(error, TransportError):
            logger.error(f"Network error while syncing {kind}: {error.detail}")
        else:
            logger.error(f"Failed to fetch {kind}: {error.message}")
        if isinstance(error, AuthenticationError) and self.on_auth_failure:
            self.on_auth_failure(error)

    def get_stats(self) -> dict:
        return {
            "kinds": {kind: dict(stats) for kind, stats in self._stats.items()},
            "last_sync": self._last_sync.isoformat() if self._last_sync else None,
        }

    # ------------------------------------------------------------------
    # Entry points
    # ------------------------------------------------------------------

    async def sync(self, kind: str) -> None:
        cycles = {
            "projects": self.sync_projects,
            "databases": self.sync_databases,
            "schedules": self.sync_schedules,
            "logs": self.sync_logs,
            "uptime": self.sync_uptime,
        }
        if kind not in cycles:
            raise ValueError(f"Unknown resource kind: {kind}")
        await cycles[kind]()

    async def sync_all(self) -> None:
        """Run all five cycles concurrently; one failing never blocks the rest."""

        self._last_sync = datetime.now()
        results = await asyncio.gather(
            self.sync_projects(),
            self.sync_databases(),
            self.sync_schedules(),
            self.sync_logs(),
            self.sync_uptime(),
            return_exceptions=True,
        )
        for kind, result in zip(RESOURCE_KINDS, results):
            if isinstance(result, Exception):
                logger.error(f"Unexpected error in {kind} sync: {result}", exc_info=result)

    # ------------------------------------------------------------------
    # Cycles
    # ------------------------------------------------------------------

    async def sync_projects(self) -> None:
        view = self.view
        generation = self._begin("projects")
        view.project_list.show_message("Loading projects...", RegionState.LOADING)
        view.project_select.set_options(
            [Option("", "Loading projects...")], RegionState.LOADING
        )
        view.changed()

        try:
            projects = await self.client.list_projects()
        except DashboardError as e:
            if self._superseded("projects", generation):
                return
            state = _error_state(e)
            if state is RegionState.TRANSPORT_ERROR:
                view.project_list.show_message(NETWORK_ERROR_MESSAGE, state)
            else:
                view.project_list.show_message("Error loading projects.", state)
            view.project_select.set_options([Option("", "Error loading projects")], state)
            view.project_error.set_text(e.message, state)
            view.changed()
            self._failed("projects", e)
            return

        if self._superseded("projects", generation):
            return

        if not projects:
            view.project_list.show_message("No projects found.", RegionState.EMPTY)
            view.project_select.set_options(
                [Option("", "No projects found")], RegionState.EMPTY
            )
        else:
            view.project_list.show_items(
                [
                    ListItem(
                        f"ID: {p.project_id} | Type: {p.type} | Status: {p.status} | Scale: {p.scale}"
                    )
                    for p in projects
                ]
            )
            view.project_select.set_options(
                [Option(p.project_id, p.project_id) for p in projects],
                RegionState.RESULT,
            )
        view.changed()

    async def sync_databases(self) -> None:
        view = self.view
        generation = self._begin("databases")
        view.database_list.show_message("Loading databases...", RegionState.LOADING)
        view.database_select.set_options(
            [Option("", "Loading databases...")], RegionState.LOADING
        )
        view.changed()

        try:
            databases = await self.client.list_databases()
        except DashboardError as e:
            if self._superseded("databases", generation):
                return
            state = _error_state(e)
            if state is RegionState.TRANSPORT_ERROR:
                view.database_list.show_message(NETWORK_ERROR_MESSAGE, state)
            else:
                view.database_list.show_message("Error loading databases.", state)
            view.database_select.set_options([Option("", "Error loading databases")], state)
            view.database_error.set_text(e.message, state)
            view.changed()
            self._failed("databases", e)
            return

        if self._superseded("databases", generation):
            return

        if not databases:
            view.database_list.show_message("No databases found.", RegionState.EMPTY)
            view.database_select.set_options(
                [Option("", "No databases found")], RegionState.EMPTY
            )
        else:
            view.database_list.show_items(
                [
                    ListItem(
                        f"ID: {db.db_id} | Type: {db.type} | Status: {db.status}"
                        f" | Scale: {db.scale} | Host: {db.hostname}"
                    )
                    for db in databases
                ]
            )
            # Entries without an id stay selectable, just unlabeled.
            options = [Option("", "Select a database...")]
            options.extend(
                Option(db.db_id, f"{db.db_id} ({db.type} - {db.hostname})")
                for db in databases
            )
            view.database_select.set_options(options, RegionState.RESULT)
        view.changed()

    async def sync_schedules(self) -> None:
        view = self.view
        generation = self._begin("schedules")
        view.schedule_list.show_message("Loading schedules...", RegionState.LOADING)
        view.changed()

        try:
            snapshot = await self.client.list_schedules()
        except DashboardError as e:
            if self._superseded("schedules", generation):
                return
            state = _error_state(e)
            if state is RegionState.TRANSPORT_ERROR:
                view.schedule_list.show_message(NETWORK_ERROR_MESSAGE, state)
            else:
                view.schedule_list.show_message("Error loading schedules.", state)
            view.changed()
            self._failed("schedules", e)
            return

        if self._superseded("schedules", generation):
            return

        if snapshot.current_time:
            view.current_time.set_text(
                f"Current Time: {format_timestamp(snapshot.current_time)}"
            )
        else:
            view.current_time.set_text("")

        self.last_schedules = list(snapshot.schedules)
        if not snapshot.schedules:
            view.schedule_list.show_message("No schedules added yet.", RegionState.EMPTY)
        else:
            view.schedule_list.show_items(
                [
                    ListItem(
                        schedule_row_text(s),
                        job_id=s.job_id,
                        service_type=s.service_type,
                        service_name=s.service_name,
                    )
                    for s in snapshot.schedules
                ]
            )
        view.changed()

    async def sync_logs(self) -> None:
        view = self.view
        generation = self._begin("logs")
        view.logs.set_text("Loading logs...", RegionState.LOADING)
        view.changed()

        try:
            logs = await self.client.fetch_logs()
        except DashboardError as e:
            if self._superseded("logs", generation):
                return
            state = _error_state(e)
            if state is RegionState.TRANSPORT_ERROR:
                view.logs.set_text(NETWORK_ERROR_MESSAGE, state)
            else:
                view.logs.set_text(f"Error loading logs: {e.message}", state)
            view.changed()
            self._failed("logs", e)
            return

        if self._superseded("logs", generation):
            return
        view.logs.set_text(logs)
        view.changed()

    async def sync_uptime(self) -> None:
        view = self.view
        generation = self._begin("uptime")
        view.uptime.set_text("Loading uptime...", RegionState.LOADING)
        view.changed()

        try:
            uptime = await self.client.fetch_uptime()
        except DashboardError as e:
            if self._superseded("uptime", generation):
                return
            state = _error_state(e)
            if state is RegionState.TRANSPORT_ERROR:
                view.uptime.set_text(NETWORK_ERROR_MESSAGE, state)
            else:
                view.uptime.set_text(f"Error loading uptime: {e.message}", state)
            view.changed()
            self._failed("uptime", e)
            return

        if self._superseded("uptime", generation):
            return
        view.uptime.set_text(f"Server has been running for: {uptime}")
        view.changed()
