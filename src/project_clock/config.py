"""Configuration models and helpers for the project clock."""

from __future__ import annotations

import logging
import re
from dataclasses import dataclass
from datetime import timedelta
from enum import Enum
from pathlib import Path
from typing import Mapping, Optional, TypeVar

from .logcodec import read_lines
from .models import AutoCountPolicy, WindowBehaviour
from .paths import get_config_path, get_log_path, get_projects_path

logger = logging.getLogger(__name__)

E = TypeVar("E", bound=Enum)

_SEPARATOR = re.compile(r"\s*[=:]\s*")
_TRUE_VALUES = {"true", "yes", "on", "1"}
_FALSE_VALUES = {"false", "no", "off", "0"}


@dataclass(slots=True)
class ClockSettings:
    """Runtime configuration for the recorder and the review flow."""

    active_period: timedelta = timedelta(hours=1)
    semi_active_period: timedelta = timedelta(hours=1)
    auto_count: AutoCountPolicy = AutoCountPolicy.PREVIOUS
    behaviour: WindowBehaviour = WindowBehaviour.MINIMISE
    write_timeouts: bool = False
    user_id: str = ""
    log_path: Optional[Path] = None
    projects_path: Optional[Path] = None
    use_hub: bool = False
    hub: Optional[Path] = None
    username_on_hub: str = "undefined"
    team: str = ""

    @classmethod
    def from_intervals(
        cls,
        interval_seconds: float,
        wait_seconds: float,
        **kwargs: object,
    ) -> "ClockSettings":
        return cls(
            active_period=timedelta(seconds=interval_seconds),
            semi_active_period=timedelta(seconds=wait_seconds),
            **kwargs,  # type: ignore[arg-type]
        )

    @classmethod
    def from_properties(cls, values: Mapping[str, str]) -> "ClockSettings":
        reader = SettingsReader(values)
        defaults = cls()
        return cls.from_intervals(
            reader.get_int("intervalInSeconds", 3600),
            reader.get_int("waitInSeconds", 3600),
            auto_count=reader.get_enum("autoCountTowards", defaults.auto_count),
            behaviour=reader.get_enum("behaviour", defaults.behaviour),
            write_timeouts=reader.get_bool("writeTimeouts", defaults.write_timeouts),
            user_id=reader.get_str("uid", defaults.user_id),
            log_path=reader.get_path("logFilename"),
            projects_path=reader.get_path("projectsFilename"),
            use_hub=reader.get_bool("useHub", defaults.use_hub),
            hub=reader.get_path("hub"),
            username_on_hub=reader.get_str("usernameOnHub", defaults.username_on_hub),
            team=reader.get_str("team", defaults.team),
        )

    def resolve_log_path(self) -> Path:
        return self.log_path or get_log_path()

    def resolve_projects_path(self) -> Path:
        return self.projects_path or get_projects_path()


class SettingsReader:
    """Typed accessors over raw key/value settings.

    Every accessor returns ``default`` when the key is absent. A value that
    cannot be converted also yields ``default`` and logs a warning naming the
    key and the offending value.
    """

    def __init__(self, values: Mapping[str, str]) -> None:
        self._values = dict(values)

    def __contains__(self, key: str) -> bool:
        return key in self._values

    def get_str(self, key: str, default: str) -> str:
        value = self._values.get(key)
        return default if value is None else value

    def get_int(self, key: str, default: int) -> int:
        value = self._values.get(key)
        if value is None:
            return default
        try:
            return int(value)
        except ValueError:
            return self._invalid("integer", key, value, default)

    def get_float(self, key: str, default: Optional[float]) -> Optional[float]:
        value = self._values.get(key)
        if value is None:
            return default
        try:
            return float(value)
        except ValueError:
            return self._invalid("float", key, value, default)

    def get_bool(self, key: str, default: bool) -> bool:
        value = self._values.get(key)
        if value is None:
            return default
        lowered = value.strip().lower()
        if lowered in _TRUE_VALUES:
            return True
        if lowered in _FALSE_VALUES:
            return False
        return self._invalid("boolean", key, value, default)

    def get_path(self, key: str, default: Optional[Path] = None) -> Optional[Path]:
        value = self._values.get(key)
        if not value:
            return default
        return Path(value).expanduser()

    def get_enum(self, key: str, default: E) -> E:
        value = self._values.get(key)
        if value is None:
            return default
        enum_type = type(default)
        try:
            return enum_type[value.strip().upper()]
        except KeyError:
            return self._invalid("option", key, value, default)

    @staticmethod
    def _invalid(kind: str, key: str, value: str, default):
        logger.warning(
            "Could not parse %s setting for '%s': %r; using %r.", kind, key, value, default
        )
        return default


def read_properties(path: Path) -> dict[str, str]:
    """Read a ``key=value`` file; ``#`` and ``!`` start comment lines."""
    values: dict[str, str] = {}
    for _, raw_line in read_lines(path):
        line = raw_line.strip()
        if not line or line[0] in "#!":
            continue
        parts = _SEPARATOR.split(line, maxsplit=1)
        key = parts[0].strip()
        values[key] = parts[1].strip() if len(parts) > 1 else ""
    return values


def load_settings(path: Optional[Path] = None) -> ClockSettings:
    """Load settings from ``path`` (or the per-user config file)."""
    config_path = Path(path) if path else get_config_path()
    if not config_path.exists():
        logger.info("No configuration at %s; using defaults.", config_path)
        return ClockSettings()
    logger.debug("Loading configuration from %s", config_path)
    return ClockSettings.from_properties(read_properties(config_path))


def save_setting(path: Path, key: str, value: str) -> None:
    """Set a single key in a settings file, keeping every other line."""
    config_path = Path(path)
    lines: list[str] = []
    if config_path.exists():
        with config_path.open(encoding="utf-8") as handle:
            lines = handle.read().splitlines()

    replaced = False
    for index, line in enumerate(lines):
        stripped = line.strip()
        if not stripped or stripped[0] in "#!":
            continue
        if _SEPARATOR.split(stripped, maxsplit=1)[0].strip() == key:
            lines[index] = f"{key}={value}"
            replaced = True
    if not replaced:
        lines.append(f"{key}={value}")

    config_path.parent.mkdir(parents=True, exist_ok=True)
    with config_path.open("w", encoding="utf-8") as handle:
        handle.write("\n".join(lines) + "\n")
