"""Records returned by the control-plane API."""

from __future__ import annotations

import re
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, List, Optional

SERVICE_TYPES = ("project", "database")
ACTIONS = ("on", "off")

# The server trims trailing zeros and may send nanoseconds; datetime wants exactly 6 digits.
_FRACTION_RE = re.compile(r"\.(\d+)")


def parse_timestamp(value: Any) -> Optional[datetime]:
    """Parse an RFC 3339 timestamp, returning None for absent values."""

    if not value:
        return None

    text = _FRACTION_RE.sub(
        lambda m: "." + m.group(1)[:6].ljust(6, "0"), str(value).strip()
    )
    if text.endswith("Z"):
        text = text[:-1] + "+00:00"
    try:
        return datetime.fromisoformat(text)
    except ValueError:
        return None


def format_timestamp(value: datetime) -> str:
    """Render a timestamp the way the dashboard shows it, e.g. ``Oct 19, 2026, 13:53:00``."""

    local = value.astimezone() if value.tzinfo else value
    return f"{local:%b} {local.day}, {local:%Y, %H:%M:%S}"


@dataclass
class Project:
    project_id: str
    type: str
    status: str
    scale: int

    @classmethod
    def from_dict(cls, data: dict) -> Project:
        return cls(
            project_id=str(data.get("project_id") or ""),
            type=str(data.get("type") or ""),
            status=str(data.get("status") or ""),
            scale=data.get("scale", 0),
        )


@dataclass
class Database:
    db_id: str
    type: str
    status: str
    scale: int
    hostname: str

    @classmethod
    def from_dict(cls, data: dict) -> Database:
        return cls(
            db_id=str(data.get("DBId") or ""),
            type=str(data.get("type") or ""),
            status=str(data.get("status") or ""),
            scale=data.get("scale", 0),
            hostname=str(data.get("hostname") or ""),
        )


@dataclass
class Schedule:
    """A cron job bound to one project or database.

    ``job_id`` is assigned by the server and is the only handle used to
    delete the job. ``last_run`` and ``next_run`` are None when the server
    omits them.
    """

    job_id: str
    service_name: str
    service_type: str
    action: str
    cron_spec: str
    last_run: Optional[datetime] = None
    next_run: Optional[datetime] = None

    @classmethod
    def from_dict(cls, data: dict) -> Schedule:
        job_id = data.get("JobID")
        return cls(
            job_id="" if job_id is None else str(job_id),
            service_name=str(data.get("ServiceName") or ""),
            service_type=str(data.get("ServiceType") or ""),
            action=str(data.get("Action") or ""),
            cron_spec=str(data.get("CronSpec") or ""),
            last_run=parse_timestamp(data.get("LastRun")),
            next_run=parse_timestamp(data.get("NextRun")),
        )


@dataclass
class ScheduleSnapshot:
    """Schedule list plus the server clock at the time it was read."""

    schedules: List[Schedule] = field(default_factory=list)
    current_time: Optional[datetime] = None

    @classmethod
    def from_dict(cls, data: dict) -> ScheduleSnapshot:
        # An empty job list is serialised as null by the server.
        raw = data.get("schedules") or []
        return cls(
            schedules=[Schedule.from_dict(item) for item in raw],
            current_time=parse_timestamp(data.get("currentTime")),
        )
