"""Create and delete schedules, then reconcile with the server's list."""

from __future__ import annotations

import logging
from typing import Callable, Optional

from controlplane_dashboard.api_client import (
    AuthenticationError,
    ControlPlaneClient,
    DashboardError,
    TransportError,
)
from controlplane_dashboard.sync import ResourceSyncEngine
from controlplane_dashboard.views import DashboardView, ScheduleForm

logger = logging.getLogger(__name__)


class ScheduleWorkflow:
    """Schedule mutations.

    Nothing is updated locally after a mutation; a successful create or
    delete re-runs the schedules cycle and the server's list is shown.
    """

    def __init__(
        self,
        client: ControlPlaneClient,
        view: DashboardView,
        engine: ResourceSyncEngine,
        on_auth_failure: Optional[Callable[[AuthenticationError], None]] = None,
    ):
        self.client = client
        self.view = view
        self.engine = engine
        self.on_auth_failure = on_auth_failure

    async def submit_project_schedule(self) -> bool:
        return await self._submit(self.view.project_form)

    async def submit_database_schedule(self) -> bool:
        return await self._submit(self.view.database_form)

    async def _submit(self, form: ScheduleForm) -> bool:
        """Submit one create form; return True if the schedule was added."""

        label = form.service_type
        selected = form.selection.value
        if not selected:
            form.error.set_text(f"Please select a {label}.")
            self.view.changed()
            return False
        form.error.set_text("")

        try:
            await self.client.create_schedule(
                selected, form.service_type, form.action.value, form.cron.value
            )
        except DashboardError as e:
            logger.error(f"Failed to add {label} schedule for {selected}: {e.message}")
            self.view.alert(f"Failed to add {label} schedule: {e.message}")
            self._check_auth(e)
            return False

        logger.info(f"Added {label} schedule: {selected} {form.action.value} @ {form.cron.value}")
        self.view.alert(f"{label.capitalize()} schedule added successfully!")
        form.cron.value = ""
        await self.engine.sync_schedules()
        return True

    async def request_delete(
        self,
        job_id: str,
        service_type: str,
        service_name: str,
        confirm: Optional[Callable[[str], bool]] = None,
    ) -> bool:
        """Ask the operator to confirm, then delete. Declining sends nothing."""

        message = (
            f'Are you sure you want to delete the schedule for {service_type} "{service_name}"?'
        )
        confirmed = confirm(message) if confirm else self.view.confirm(message)
        if not confirmed:
            logger.info(f"Deletion of schedule {job_id} cancelled")
            return False
        return await self.delete_schedule(job_id)

    async def delete_schedule(self, job_id: str) -> bool:
        try:
            await self.client.delete_schedule(job_id)
        except TransportError as e:
            logger.error(f"Network error deleting schedule {job_id}: {e.detail}")
            self.view.alert(e.message)
            return False
        except DashboardError as e:
            logger.error(f"Failed to delete schedule {job_id}: {e.message}")
            self.view.alert(f"Failed to delete schedule: {e.message}")
            self._check_auth(e)
            return False

        logger.info(f"Deleted schedule {job_id}")
        self.view.alert("Schedule deleted successfully!")
        await self.engine.sync_schedules()
        return True

    def _check_auth(self, error: DashboardError) -> None:
        if isinstance(error, AuthenticationError) and self.on_auth_failure:
            self.on_auth_failure(error)
