"""Summaries of the activity log per top-level project."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime, timedelta
from pathlib import Path
from typing import Iterable, Optional

from .logcodec import read_entries
from .models import LogEntry

logger = logging.getLogger(__name__)

MILLIS_PER_HOUR = 3_600_000.0
_ONE_MILLISECOND = timedelta(milliseconds=1)


def clip(
    entry: LogEntry, start: Optional[datetime], end: Optional[datetime]
) -> Optional[tuple[datetime, datetime]]:
    """Fit an entry into ``[start, end)``; ``None`` when nothing is left."""
    clipped_start = max(entry.start, start) if start is not None else entry.start
    clipped_end = min(entry.end, end) if end is not None else entry.end
    if clipped_start > clipped_end:
        return None
    return clipped_start, clipped_end


def sum_entries(
    entries: Iterable[LogEntry],
    start: Optional[datetime] = None,
    end: Optional[datetime] = None,
) -> dict[str, int]:
    """Total milliseconds per top-level project, keys in sorted order."""
    sums: dict[str, int] = {}
    for entry in entries:
        window = clip(entry, start, end)
        if window is None:
            continue
        millis = (window[1] - window[0]) // _ONE_MILLISECOND
        sums[entry.project] = sums.get(entry.project, 0) + millis
    return dict(sorted(sums.items()))


def analyse_log(
    log_path: Path,
    start: Optional[datetime] = None,
    end: Optional[datetime] = None,
) -> dict[str, int]:
    """Read ``log_path`` and sum the time spent on each top-level project."""
    logger.debug("Analysing %s for [%s, %s)", log_path, start, end)
    return sum_entries((parsed.entry for parsed in read_entries(log_path)), start, end)


def millis_to_hours(millis: int) -> float:
    return millis / MILLIS_PER_HOUR


@dataclass(slots=True)
class ReviewRow:
    project: str
    hours: float


class ReviewSheet:
    """Hours per top-level project for a period, editable before submission."""

    def __init__(self, rows: Iterable[ReviewRow]) -> None:
        self._rows = {row.project: row for row in sorted(rows, key=lambda row: row.project)}

    @classmethod
    def from_sums(
        cls, sums: dict[str, int], top_level_projects: Iterable[str] = ()
    ) -> "ReviewSheet":
        rows = [ReviewRow(project, millis_to_hours(millis)) for project, millis in sums.items()]
        rows.extend(ReviewRow(project, 0.0) for project in top_level_projects if project not in sums)
        return cls(rows)

    @classmethod
    def from_log(
        cls,
        log_path: Path,
        start: Optional[datetime],
        end: Optional[datetime],
        top_level_projects: Iterable[str] = (),
    ) -> "ReviewSheet":
        return cls.from_sums(analyse_log(log_path, start, end), top_level_projects)

    @property
    def rows(self) -> list[ReviewRow]:
        return list(self._rows.values())

    @property
    def total(self) -> float:
        return sum(row.hours for row in self._rows.values())

    def set_hours(self, project: str, hours: float) -> None:
        if hours < 0:
            raise ValueError(f"Hours for {project!r} cannot be negative")
        row = self._rows.get(project)
        if row is None:
            self._rows[project] = ReviewRow(project, hours)
            self._rows = dict(sorted(self._rows.items()))
        else:
            row.hours = hours

    def percentages(self) -> Optional[dict[str, float]]:
        total = self.total
        if total <= 0:
            return None
        return {project: 100 * row.hours / total for project, row in self._rows.items()}

    def fractions(self) -> dict[str, float]:
        total = self.total
        if total <= 0:
            raise ValueError("No hours to distribute")
        return {project: row.hours / total for project, row in self._rows.items()}

    def dumps(self) -> str:
        return "".join(
            f"{project},{fraction:.2f}\r\n" for project, fraction in self.fractions().items()
        )

    def write_percentages(self, path: Path) -> None:
        content = self.dumps()
        with Path(path).open("w", encoding="utf-8", newline="") as handle:
            handle.write(content)
