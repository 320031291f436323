"""Text rendering of analyser results and hub aggregations."""

from __future__ import annotations

import csv
import io
from typing import Iterable, Optional

from .aggregator import Actuals, Aggregation
from .analyser import millis_to_hours

SEPARATOR = "====================="


def format_hours(millis: int) -> str:
    return f"{millis_to_hours(millis):.2f}"


def render_project_hours(sums: dict[str, int]) -> str:
    """``project: hours`` lines sorted by project name."""
    return "".join(f"{project}: {format_hours(sums[project])}\n" for project in sorted(sums))


def _number(value: Optional[float]) -> str:
    return "" if value is None else f"{value:.2f}"


def _summary_rows(actuals: Actuals, weeks: list[str], label: str) -> list[list[str]]:
    present = [actuals.weeks.get(w) for w in weeks]
    return [
        [label, "Headcount->", *(_number(week.headcount if week else None) for week in present)],
        ["", "Reported->", *(_number(week.reported if week else None) for week in present)],
        ["", "Missing->", *(_number(week.missing if week else None) for week in present)],
    ]


def _project_rows(actuals: Actuals, weeks: list[str], label: str) -> list[list[str]]:
    rows = []
    for project in sorted(actuals.projects):
        values = []
        for week_id in weeks:
            week = actuals.weeks.get(week_id)
            values.append(_number(week.per_project.get(project) if week else None))
        rows.append([label, project, *values])
    return rows


def _to_csv(rows: Iterable[list[str]]) -> str:
    buffer = io.StringIO()
    writer = csv.writer(buffer, lineterminator="\n")
    writer.writerows(rows)
    return buffer.getvalue()


def render_team_totals(aggregation: Aggregation) -> str:
    """Per team, per project, per week breakdown."""
    weeks = aggregation.combined.sorted_weeks()
    rows: list[list[str]] = [["Team", "Code", *weeks]]
    for team in sorted(aggregation.teams):
        actuals = aggregation.teams[team]
        rows.extend(_summary_rows(actuals, weeks, team))
        rows.extend(_project_rows(actuals, weeks, team))
        rows.append([])
    return _to_csv(rows)


def render_overall_totals(aggregation: Aggregation) -> str:
    """The same breakdown collapsed across every team."""
    combined = aggregation.combined
    weeks = combined.sorted_weeks()
    rows: list[list[str]] = [["", "Code", *weeks]]
    rows.extend(_summary_rows(combined, weeks, ""))
    rows.extend(_project_rows(combined, weeks, ""))
    return _to_csv(rows)


def render_provided(aggregation: Aggregation) -> str:
    """Per user, per week anomaly grid."""
    weeks = aggregation.combined.sorted_weeks()
    rows: list[list[str]] = [["User", *weeks]]
    for user, flags in aggregation.anomalies().items():
        rows.append([user, *(flags[w].value for w in weeks)])
    return _to_csv(rows)


def render_aggregation(aggregation: Aggregation) -> str:
    parts = [
        render_team_totals(aggregation),
        render_overall_totals(aggregation),
        render_provided(aggregation),
    ]
    return SEPARATOR + "\n" + "".join(part + SEPARATOR + "\n" for part in parts)
