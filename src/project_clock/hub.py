"""Layout of the shared hub directory where weekly submissions are collected."""

from __future__ import annotations

import logging
import os
import random
from datetime import date, datetime
from pathlib import Path
from typing import Iterable, Optional

from .analyser import ReviewSheet
from .logcodec import format_timestamp

logger = logging.getLogger(__name__)

SUBMITTED_FILENAME = "submitted.txt"
SETTINGS_FILENAME = "settings.txt"
TEAMS_FILENAME = "teams.txt"
UNDEFINED_USERNAME = "undefined"

# writable and enterable by everyone, listable only by the owner
DROP_BOX_MODE = 0o733


class HubError(RuntimeError):
    """A hub operation cannot be carried out."""


def week_id_for(day: date) -> str:
    """Identifier of the ISO week containing ``day``, e.g. ``2020wk01``."""
    year, week, _ = day.isocalendar()
    return f"{year}wk{week:02d}"


class Hub:
    """Paths and operations on a hub rooted at ``root``."""

    def __init__(self, root: Path) -> None:
        self.root = Path(root)

    @property
    def teams_file(self) -> Path:
        return self.root / "settings" / TEAMS_FILENAME

    def team_dir(self, team: str) -> Path:
        return self.root / "raw" / team

    def week_dir(self, team: str, week_id: str) -> Path:
        return self.team_dir(team) / week_id

    def fetch_teams(self) -> list[str]:
        try:
            with self.teams_file.open(encoding="utf-8") as handle:
                return [line.strip() for line in handle if line.strip()]
        except OSError as exc:
            raise HubError(f"Could not read the hub's team list at {self.teams_file}") from exc

    def week_dirs(self, team: str) -> list[Path]:
        """Week directories of a team that hold a roster, sorted by name."""
        team_dir = self.team_dir(team)
        return sorted(
            path
            for path in team_dir.iterdir()
            if path.is_dir() and (path / SUBMITTED_FILENAME).exists()
        )

    def submit(
        self,
        team: str,
        week_id: str,
        username: str,
        sheet: ReviewSheet,
        now: Optional[datetime] = None,
    ) -> Path:
        """Drop a review sheet into a team's week and record it in the roster."""
        if not username or username == UNDEFINED_USERNAME:
            raise HubError(
                "Please set 'usernameOnHub' in the configuration to your username "
                f"on the filesystem that contains '{self.root}'."
            )
        if team not in self.fetch_teams():
            raise HubError(f"Unknown team {team!r}")
        week_dir = self.week_dir(team, week_id)
        if not week_dir.is_dir():
            raise HubError(f"No drop box for week {week_id} of team {team!r}")

        submission_id = self._fresh_submission_id(week_dir)
        percentages_path = week_dir / f"{submission_id}.log"
        sheet.write_percentages(percentages_path)
        stamp = format_timestamp(now or datetime.now())
        with (week_dir / SUBMITTED_FILENAME).open("a", encoding="utf-8", newline="") as handle:
            handle.write(f"{submission_id},{username},{stamp}\r\n")
        logger.info("Submitted %s for %s/%s as %s", username, team, week_id, submission_id)
        return percentages_path

    def provision(self, years: Iterable[int], weeks: int = 52) -> list[Path]:
        """Create the per-team weekly drop boxes."""
        created: list[Path] = []
        for team in self.fetch_teams():
            for year in years:
                for week in range(1, weeks + 1):
                    week_dir = self.week_dir(team, f"{year}wk{week:02d}")
                    week_dir.mkdir(parents=True, exist_ok=True)
                    os.chmod(week_dir, DROP_BOX_MODE)
                    created.append(week_dir)
        logger.info("Provisioned %d drop boxes under %s", len(created), self.root)
        return created

    @staticmethod
    def _fresh_submission_id(week_dir: Path) -> int:
        while True:
            candidate = random.randint(10000, 99999)
            if not (week_dir / f"{candidate}.log").exists():
                return candidate
