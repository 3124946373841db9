"""Configuration utilities for the control-plane dashboard."""

from __future__ import annotations

import json
import logging
import os
from dataclasses import dataclass, field, asdict
from pathlib import Path

logger = logging.getLogger(__name__)

CONFIG_ENV_VAR = "CONTROLPLANE_DASHBOARD_CONFIG"
BASE_URL_ENV_VAR = "CONTROLPLANE_API_BASE_URL"
POLL_INTERVAL_ENV_VAR = "CONTROLPLANE_POLL_INTERVAL"

CONFIG_DIR = Path.home() / ".config" / "controlplane-dashboard"
DEFAULT_CONFIG_PATH = CONFIG_DIR / "config.json"

DEFAULT_BASE_URL = "http://127.0.0.1:8080"
DEFAULT_POLL_INTERVAL = 10.0
DEFAULT_REQUEST_TIMEOUT = 10.0


def default_session_path() -> str:
    """Return the file used to persist the bearer credential."""

    return str(CONFIG_DIR / "session.json")


@dataclass
class DashboardConfig:
    """Serializable configuration for the dashboard client."""

    api_base_url: str = DEFAULT_BASE_URL
    poll_interval: float = DEFAULT_POLL_INTERVAL
    request_timeout: float = DEFAULT_REQUEST_TIMEOUT
    session_path: str = field(default_factory=default_session_path)
    host: str = "127.0.0.1"
    port: int = 8081

    def to_dict(self) -> dict:
        """Return the config as a JSON-serializable dictionary."""

        data = asdict(self)
        data["session_path"] = str(Path(self.session_path).expanduser())
        return data

    def apply_env_overrides(self) -> None:
        """Let environment variables win over values read from disk."""

        base_url = os.getenv(BASE_URL_ENV_VAR)
        if base_url:
            self.api_base_url = base_url

        interval = os.getenv(POLL_INTERVAL_ENV_VAR)
        if interval:
            try:
                self.poll_interval = float(interval)
            except ValueError:
                logger.warning(f"Ignoring invalid {POLL_INTERVAL_ENV_VAR}={interval!r}")


def config_path() -> Path:
    """Return the filesystem path where config is stored."""

    override = os.getenv(CONFIG_ENV_VAR)
    if override:
        return Path(override).expanduser().resolve()

    return DEFAULT_CONFIG_PATH


def load_config() -> DashboardConfig:
    """Load configuration from disk, falling back to defaults."""

    path = config_path()
    config = DashboardConfig()
    if not path.exists():
        config.apply_env_overrides()
        return config

    try:
        data = json.loads(path.read_text())
    except json.JSONDecodeError:
        # Malformed config; fall back to defaults but keep original file for inspection.
        config.apply_env_overrides()
        return config

    config.api_base_url = str(data.get("api_base_url", config.api_base_url))
    config.poll_interval = float(data.get("poll_interval", config.poll_interval))
    config.request_timeout = float(data.get("request_timeout", config.request_timeout))
    config.session_path = str(
        Path(data.get("session_path", config.session_path)).expanduser()
    )
    config.host = str(data.get("host", config.host))
    config.port = int(data.get("port", config.port))
    config.apply_env_overrides()
    return config


def save_config(config: DashboardConfig) -> None:
    """Persist configuration to disk."""

    path = config_path()
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(json.dumps(config.to_dict(), indent=2))
