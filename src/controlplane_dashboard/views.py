"""Renderable regions the dashboard logic draws into.

The sync engine and mutation workflow only talk to these small
capabilities (list, selector, text, input), so they run the same against
the in-memory regions used by the local app and by the tests.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Callable, Dict, List, Optional, Protocol, Tuple

TABS = ("projects", "databases", "schedules", "logs", "uptime")
DEFAULT_TAB = "projects"


class RegionState(str, Enum):
    """Lifecycle of a region during one sync cycle."""

    IDLE = "idle"
    LOADING = "loading"
    RESULT = "result"
    EMPTY = "empty"
    APP_ERROR = "app_error"
    TRANSPORT_ERROR = "transport_error"


@dataclass
class ListItem:
    text: str
    # Set on schedule rows; the row's delete affordance acts on this id.
    job_id: Optional[str] = None
    service_type: Optional[str] = None
    service_name: Optional[str] = None

    def to_dict(self) -> dict:
        data: Dict[str, Any] = {"text": self.text}
        if self.job_id is not None:
            data["jobId"] = self.job_id
            data["serviceType"] = self.service_type
            data["serviceName"] = self.service_name
        return data


@dataclass
class Option:
    value: str
    label: str


class ListRegion(Protocol):
    def show_items(self, items: List[ListItem]) -> None: ...

    def show_message(self, message: str, state: RegionState) -> None: ...


class SelectRegion(Protocol):
    value: str

    def set_options(self, options: List[Option], state: RegionState) -> None: ...


class TextRegion(Protocol):
    def set_text(self, text: str, state: RegionState = RegionState.RESULT) -> None: ...


class MemoryList:
    """List region that keeps its rows and a history of state changes."""

    def __init__(self) -> None:
        self.items: List[ListItem] = []
        self.state = RegionState.IDLE
        self.history: List[RegionState] = []

    def show_items(self, items: List[ListItem]) -> None:
        self.items = list(items)
        self._record(RegionState.RESULT)

    def show_message(self, message: str, state: RegionState) -> None:
        self.items = [ListItem(message)]
        self._record(state)

    def texts(self) -> List[str]:
        return [item.text for item in self.items]

    def _record(self, state: RegionState) -> None:
        self.state = state
        self.history.append(state)

    def to_dict(self) -> dict:
        return {"state": self.state.value, "items": [item.to_dict() for item in self.items]}


class MemorySelect:
    """Selector region; ``value`` is the operator's current selection."""

    def __init__(self) -> None:
        self.options: List[Option] = []
        self.value = ""
        self.state = RegionState.IDLE
        self.history: List[RegionState] = []

    def set_options(self, options: List[Option], state: RegionState) -> None:
        # Like a <select>, a rebuild selects the first option.
        self.options = list(options)
        self.value = self.options[0].value if self.options else ""
        self.state = state
        self.history.append(state)

    def select(self, value: str) -> None:
        self.value = value

    def to_dict(self) -> dict:
        return {
            "state": self.state.value,
            "value": self.value,
            "options": [{"value": o.value, "label": o.label} for o in self.options],
        }


class MemoryText:
    def __init__(self, text: str = "") -> None:
        self.text = text
        self.state = RegionState.IDLE
        self.history: List[Tuple[RegionState, str]] = []

    def set_text(self, text: str, state: RegionState = RegionState.RESULT) -> None:
        self.text = text
        self.state = state
        self.history.append((state, text))

    def to_dict(self) -> dict:
        return {"state": self.state.value, "text": self.text}


@dataclass
class MemoryInput:
    value: str = ""


@dataclass
class ScheduleForm:
    """One create-schedule form: a resource selector plus action and cron inputs."""

    service_type: str
    selection: MemorySelect
    error: MemoryText
    action: MemoryInput = field(default_factory=lambda: MemoryInput("on"))
    cron: MemoryInput = field(default_factory=MemoryInput)

    def to_dict(self) -> dict:
        return {
            "serviceType": self.service_type,
            "selection": self.selection.value,
            "action": self.action.value,
            "cron": self.cron.value,
            "error": self.error.text,
        }


class DashboardView:
    """Every region of the dashboard, plus the operator's alert/confirm hooks."""

    def __init__(self, confirm: Optional[Callable[[str], bool]] = None) -> None:
        self.mode = "login"
        self.active_tab = DEFAULT_TAB
        self.token_input = MemoryInput()
        self.login_error = MemoryText()

        self.project_list = MemoryList()
        self.project_select = MemorySelect()
        self.project_error = MemoryText()

        self.database_list = MemoryList()
        self.database_select = MemorySelect()
        self.database_error = MemoryText()

        self.current_time = MemoryText()
        self.schedule_list = MemoryList()

        self.logs = MemoryText()
        self.uptime = MemoryText()

        # The create forms share the selector and error slot of their resource tab.
        self.project_form = ScheduleForm("project", self.project_select, self.project_error)
        self.database_form = ScheduleForm("database", self.database_select, self.database_error)

        self.alerts: List[str] = []
        self.confirmations: List[str] = []
        self._confirm = confirm or (lambda message: False)
        self._listeners: List[Callable[[], None]] = []

    def show_login(self) -> None:
        self.mode = "login"
        self.changed()

    def show_main(self) -> None:
        self.mode = "main"
        self.changed()

    def activate_tab(self, tab: str) -> None:
        self.active_tab = tab
        self.changed()

    def alert(self, message: str) -> None:
        self.alerts.append(message)
        self.changed()

    def confirm(self, message: str) -> bool:
        self.confirmations.append(message)
        return self._confirm(message)

    def add_listener(self, callback: Callable[[], None]) -> None:
        """Register a callback run after each operator-visible change."""
        self._listeners.append(callback)

    def remove_listener(self, callback: Callable[[], None]) -> None:
        if callback in self._listeners:
            self._listeners.remove(callback)

    def changed(self) -> None:
        for callback in self._listeners:
            callback()

    def snapshot(self) -> dict:
        """Return the whole view as a JSON-serializable dictionary."""

        return {
            "mode": self.mode,
            "activeTab": self.active_tab,
            "loginError": self.login_error.text,
            "projects": {
                "list": self.project_list.to_dict(),
                "select": self.project_select.to_dict(),
                "error": self.project_error.text,
            },
            "databases": {
                "list": self.database_list.to_dict(),
                "select": self.database_select.to_dict(),
                "error": self.database_error.text,
            },
            "schedules": {
                "currentTime": self.current_time.text,
                "list": self.schedule_list.to_dict(),
            },
            "logs": self.logs.to_dict(),
            "uptime": self.uptime.to_dict(),
            "forms": {
                "project": self.project_form.to_dict(),
                "database": self.database_form.to_dict(),
            },
            "alerts": list(self.alerts[-20:]),
        }
