"""Configuration management for TaxPilot."""

import json
import os
from pathlib import Path
from typing import Any

APP_NAME = "taxpilot"
DEFAULT_CONFIG_DIR = Path.home() / ".taxpilot"

ENV_CONFIG_DIR = "TAXPILOT_CONFIG_DIR"
ENV_ROSTER_PATH = "TAXPILOT_ROSTER_PATH"

LOG_LEVELS = ("DEBUG", "INFO", "WARNING", "ERROR")


class Config:
    """Manages application configuration."""

    def __init__(self, config_dir: Path | None = None):
        env_dir = os.environ.get(ENV_CONFIG_DIR)
        self.config_dir = config_dir or (Path(env_dir) if env_dir else DEFAULT_CONFIG_DIR)
        self.config_file = self.config_dir / "config.json"
        self._config: dict[str, Any] = {}
        self._load()

    def _load(self) -> None:
        """Load configuration from file, filling gaps with defaults."""
        self._config = self._default_config()
        if self.config_file.exists():
            with open(self.config_file) as f:
                self._config.update(json.load(f))

    def _save(self) -> None:
        """Save configuration to file."""
        self.config_dir.mkdir(parents=True, exist_ok=True)
        with open(self.config_file, "w") as f:
            json.dump(self._config, f, indent=2)

    def _default_config(self) -> dict[str, Any]:
        """Return default configuration."""
        return {
            "roster_path": None,  # CSV of tax professionals; built-in roster when unset
            "max_alternates": 2,
            "default_appointment_type": "virtual",
            "appointment_reminder_hours": [24, 1],
            "document_reminder_lead_days": 3,
            "log_level": "WARNING",
        }

    def get(self, key: str, default: Any = None) -> Any:
        """Get a configuration value."""
        return self._config.get(key, default)

    def set(self, key: str, value: Any) -> None:
        """Set a configuration value."""
        self._config[key] = value
        self._save()

    @property
    def roster_path(self) -> Path | None:
        """Get the tax professional roster path (environment wins over file)."""
        env_path = os.environ.get(ENV_ROSTER_PATH)
        if env_path:
            return Path(env_path)
        value = self._config.get("roster_path")
        return Path(value) if value else None

    @roster_path.setter
    def roster_path(self, path: Path | str | None) -> None:
        self.set("roster_path", str(path) if path else None)

    @property
    def max_alternates(self) -> int:
        """Number of alternate professionals offered alongside a match."""
        return int(self._config.get("max_alternates", 2))

    @max_alternates.setter
    def max_alternates(self, count: int) -> None:
        self.set("max_alternates", max(0, min(count, 10)))

    @property
    def default_appointment_type(self) -> str:
        return self._config.get("default_appointment_type", "virtual")

    @property
    def appointment_reminder_hours(self) -> list[int]:
        """Hours before an appointment at which reminders go out."""
        return list(self._config.get("appointment_reminder_hours", [24, 1]))

    @property
    def document_reminder_lead_days(self) -> int:
        return int(self._config.get("document_reminder_lead_days", 3))

    @property
    def log_level(self) -> str:
        """Get the logging level name."""
        return str(self._config.get("log_level", "WARNING")).upper()

    @log_level.setter
    def log_level(self, level: str) -> None:
        level = level.upper()
        if level not in LOG_LEVELS:
            raise ValueError(f"Invalid log level: {level}")
        self.set("log_level", level)

    def to_dict(self) -> dict[str, Any]:
        """Return configuration as a dictionary."""
        return {k: v for k, v in self._config.items()}


def get_config() -> Config:
    """Get the process-wide configuration instance."""
    from taxpilot.registry import get_registry

    return get_registry().config
