"""Reconciliation of weekly percentage submissions across teams."""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path
from typing import Iterable, Optional

from .config import SettingsReader, read_properties
from .hub import SETTINGS_FILENAME, SUBMITTED_FILENAME, Hub
from .logcodec import read_lines

logger = logging.getLogger(__name__)

DEFAULT_TOLERANCE = 0.005


@dataclass(slots=True)
class Week:
    """What a team (or the whole organization) reported for one week."""

    headcount: float = 0.0
    reported: float = 0.0
    missing: float = 0.0
    per_project: dict[str, float] = field(default_factory=dict)
    provided: dict[str, float] = field(default_factory=dict)

    def add_project(self, project: str, fraction: float) -> None:
        self.per_project[project] = self.per_project.get(project, 0.0) + fraction

    def add_provided(self, user: str, fraction: float) -> None:
        self.provided[user] = self.provided.get(user, 0.0) + fraction

    def recompute(self) -> None:
        self.reported = sum(self.per_project.values())
        self.missing = self.headcount - self.reported


@dataclass(slots=True)
class Actuals:
    weeks: dict[str, Week] = field(default_factory=dict)
    projects: set[str] = field(default_factory=set)
    users: set[str] = field(default_factory=set)

    def week(self, week_id: str) -> Week:
        week = self.weeks.get(week_id)
        if week is None:
            week = self.weeks[week_id] = Week()
        return week

    def merge(self, other: "Actuals") -> None:
        """Add another set of actuals into this one, week by week."""
        for week_id, other_week in other.weeks.items():
            week = self.week(week_id)
            week.headcount += other_week.headcount
            for project, fraction in other_week.per_project.items():
                week.add_project(project, fraction)
            for user, fraction in other_week.provided.items():
                week.add_provided(user, fraction)
        self.projects |= other.projects
        self.users |= other.users

    def recompute(self) -> None:
        for week in self.weeks.values():
            week.recompute()

    def sorted_weeks(self) -> list[str]:
        return sorted(self.weeks)


class Anomaly(str, Enum):
    NO_DATA = "No data"
    UNDER = "~"
    OVER = "!!"
    NOMINAL = "/"


def classify(provided: Optional[float], tolerance: float = DEFAULT_TOLERANCE) -> Anomaly:
    if provided is None:
        return Anomaly.NO_DATA
    if provided < 1.0 - tolerance:
        return Anomaly.UNDER
    if provided > 1.0 + tolerance:
        return Anomaly.OVER
    return Anomaly.NOMINAL


@dataclass(slots=True)
class Aggregation:
    teams: dict[str, Actuals]
    combined: Actuals
    tolerance: float = DEFAULT_TOLERANCE

    def anomalies(self) -> dict[str, dict[str, Anomaly]]:
        """Per user, per week classification of the provided totals."""
        weeks = self.combined.sorted_weeks()
        return {
            user: {
                week_id: classify(self.combined.weeks[week_id].provided.get(user), self.tolerance)
                for week_id in weeks
            }
            for user in sorted(self.combined.users)
        }


def read_roster(path: Path) -> dict[str, str]:
    """Map each user to their latest submission id."""
    submissions: dict[str, str] = {}
    for line_number, raw_line in read_lines(path):
        line = raw_line.strip()
        if not line:
            continue
        fields = [part.strip() for part in line.split(",")]
        if len(fields) < 2 or not fields[0] or not fields[1]:
            logger.warning("Skipping malformed roster line %d in %s: %r", line_number, path, line)
            continue
        submission_id, user = fields[0], fields[1]
        if user in submissions:
            logger.warning("Multiple entries for user %s in %s. Using the latest.", user, path)
        submissions[user] = submission_id
    return submissions


def read_percentages(path: Path) -> dict[str, float]:
    """Read ``project,fraction`` lines; repeated projects are summed."""
    fractions: dict[str, float] = {}
    for line_number, raw_line in read_lines(path):
        line = raw_line.strip()
        if not line:
            continue
        fields = [part.strip() for part in line.split(",")]
        try:
            if len(fields) != 2 or not fields[0]:
                raise ValueError("expected 'project,fraction'")
            fraction = float(fields[1])
        except ValueError:
            logger.warning(
                "Skipping malformed percentage line %d in %s: %r", line_number, path, line
            )
            continue
        fractions[fields[0]] = fractions.get(fields[0], 0.0) + fraction
    return fractions


def fold_week(week_dir: Path, headcount: float, actuals: Actuals) -> Week:
    """Fold every submission of one week directory into ``actuals``."""
    week = actuals.week(week_dir.name)
    week.headcount = headcount
    for user, submission_id in read_roster(week_dir / SUBMITTED_FILENAME).items():
        actuals.users.add(user)
        percentages_path = week_dir / f"{submission_id}.log"
        try:
            fractions = read_percentages(percentages_path)
        except OSError:
            logger.warning("Missing submission %s of user %s", percentages_path, user)
            continue
        for project, fraction in fractions.items():
            week.add_project(project, fraction)
        week.add_provided(user, sum(fractions.values()))
        actuals.projects.update(fractions)
    week.recompute()
    return week


def aggregate_team(hub: Hub, team: str) -> Optional[Actuals]:
    """Build the actuals of one team; ``None`` if the team has no settings."""
    team_dir = hub.team_dir(team)
    try:
        team_settings = read_properties(team_dir / SETTINGS_FILENAME)
    except OSError:
        logger.warning("No settings file found for team %s in %s; skipping.", team, team_dir)
        return None

    actuals = Actuals()
    for week_dir in hub.week_dirs(team):
        settings = dict(team_settings)
        week_settings_path = week_dir / SETTINGS_FILENAME
        if week_settings_path.exists():
            settings.update(read_properties(week_settings_path))
        headcount = SettingsReader(settings).get_float("headcount", None)
        if headcount is None:
            logger.warning("No usable headcount for week %s; skipping.", week_dir)
            continue
        fold_week(week_dir, headcount, actuals)
    return actuals


def combine(team_actuals: Iterable[Actuals]) -> Actuals:
    combined = Actuals()
    for actuals in team_actuals:
        combined.merge(actuals)
    combined.recompute()
    return combined


def aggregate_hub(root: Path, tolerance: float = DEFAULT_TOLERANCE) -> Aggregation:
    """Aggregate every team listed in the hub."""
    hub = Hub(root)
    teams: dict[str, Actuals] = {}
    for team in hub.fetch_teams():
        actuals = aggregate_team(hub, team)
        if actuals is not None:
            teams[team] = actuals
    logger.info("Aggregated %d teams from %s", len(teams), root)
    return Aggregation(teams=teams, combined=combine(teams.values()), tolerance=tolerance)
