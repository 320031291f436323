"""Domain models for recorded project time."""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from enum import Enum
from typing import Optional, Sequence

ProjectPath = tuple[str, ...]

UNKNOWN_PATH: ProjectPath = ("unknown",)
TIMED_OUT_PATH: ProjectPath = ("(timed out)",)


def project_path(parts: Sequence[str]) -> ProjectPath:
    """Build a validated project path from root-to-leaf names."""
    path = tuple(part.strip() for part in parts)
    if not path or any(not part for part in path):
        raise ValueError(f"Invalid project path: {list(parts)!r}")
    return path


@dataclass(frozen=True, slots=True)
class LogEntry:
    """A single interval written to the activity log."""

    start: datetime
    end: datetime
    path: ProjectPath
    user_id: Optional[str] = None

    @property
    def project(self) -> str:
        return self.path[0]

    @property
    def duration_seconds(self) -> float:
        return (self.end - self.start).total_seconds()


class RecordingState(str, Enum):
    STOPPED = "stopped"
    RUNNING = "running"
    AUTOMATIC = "automatic"


@dataclass(frozen=True, slots=True)
class RecordingSession:
    """The interval currently being recorded."""

    path: ProjectPath
    started_at: datetime


class AutoCountPolicy(str, Enum):
    """What an unconfirmed semi-active span is counted towards."""

    PREVIOUS = "PREVIOUS"
    UNKNOWN = "UNKNOWN"
    NOTHING = "NOTHING"


class WindowBehaviour(str, Enum):
    """How the interface reacts when a project is selected."""

    MINIMISE = "MINIMISE"
    HIDE = "HIDE"
    SHOW = "SHOW"
