"""FastAPI application that exposes the recorder, project tree and review flow."""

from __future__ import annotations

import logging
import threading
from datetime import date, datetime, time, timedelta
from pathlib import Path
from typing import Any, Dict, List, Optional

from fastapi import FastAPI, HTTPException, Query
from fastapi.middleware.cors import CORSMiddleware
from pydantic import BaseModel, ConfigDict, Field

from .analyser import ReviewSheet
from .config import ClockSettings, load_settings, save_setting
from .hub import Hub, HubError, week_id_for
from .models import WindowBehaviour
from .projects import ProjectHierarchy
from .recorder import LogWriteError, Recorder

logger = logging.getLogger(__name__)


class DashboardNotifier:
    """Tracks whether the dashboard should currently be in front of the user."""

    def __init__(self, behaviour: WindowBehaviour) -> None:
        self.behaviour = behaviour
        self._lock = threading.Lock()
        self._visible = True

    @property
    def visible(self) -> bool:
        with self._lock:
            return self._visible

    def hide(self) -> None:
        if self.behaviour is WindowBehaviour.SHOW:
            return
        with self._lock:
            self._visible = False
        logger.debug("Dashboard %s", "minimised" if self.behaviour is WindowBehaviour.MINIMISE else "hidden")

    def show(self) -> None:
        with self._lock:
            self._visible = True
        logger.debug("Dashboard shown")


class ProblemLog:
    """Keeps the most recent recorder problems for the status endpoint."""

    def __init__(self, limit: int = 20) -> None:
        self._limit = limit
        self._lock = threading.Lock()
        self._problems: list[Dict[str, Any]] = []

    def __call__(self, problem: LogWriteError) -> None:
        with self._lock:
            self._problems.append(
                {
                    "message": str(problem),
                    "path": list(problem.entry.path),
                    "at": datetime.now().isoformat(timespec="seconds"),
                }
            )
            del self._problems[: -self._limit]

    def snapshot(self) -> list[Dict[str, Any]]:
        with self._lock:
            return list(self._problems)


class SelectPayload(BaseModel):
    path: List[str] = Field(min_length=1)

    model_config = ConfigDict(extra="forbid")


class ProjectPayload(BaseModel):
    parent: List[str] = Field(default_factory=list)
    name: str
    description: Optional[str] = None

    model_config = ConfigDict(extra="forbid")


class RemoveProjectPayload(BaseModel):
    path: List[str] = Field(min_length=1)

    model_config = ConfigDict(extra="forbid")


class SubmitPayload(BaseModel):
    week: date
    team: Optional[str] = None
    hours: Dict[str, float] = Field(default_factory=dict)
    remember_team: bool = True

    model_config = ConfigDict(extra="forbid")


def create_app(
    *,
    settings: Optional[ClockSettings] = None,
    config_path: Optional[Path] = None,
    recorder: Optional[Recorder] = None,
) -> FastAPI:
    """Instantiate the FastAPI application."""
    resolved_settings = settings or load_settings(config_path)
    notifier = DashboardNotifier(resolved_settings.behaviour)
    problems = ProblemLog()
    recorder = recorder or Recorder(resolved_settings, notifier=notifier)
    recorder.add_problem_listener(problems)
    projects_path = resolved_settings.resolve_projects_path()
    hierarchy = ProjectHierarchy.load_or_create(projects_path)
    hierarchy_lock = threading.Lock()

    app = FastAPI(title="Project Clock", version="0.3.0")
    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_methods=["*"],
        allow_headers=["*"],
    )

    app.state.settings = resolved_settings
    app.state.recorder = recorder
    app.state.hierarchy = hierarchy

    @app.on_event("startup")
    async def _startup() -> None:
        logging.basicConfig(
            level=logging.INFO,
            format="%(asctime)s %(levelname)s %(name)s %(message)s",
        )

    @app.on_event("shutdown")
    async def _shutdown() -> None:
        recorder.stop()

    def _status() -> Dict[str, Any]:
        session = recorder.session
        return {
            "state": recorder.state.value,
            "path": list(session.path) if session else None,
            "started_at": session.started_at.isoformat() if session else None,
            "visible": notifier.visible,
            "log_path": str(resolved_settings.resolve_log_path()),
            "active_seconds": resolved_settings.active_period.total_seconds(),
            "semi_active_seconds": resolved_settings.semi_active_period.total_seconds(),
            "problems": problems.snapshot(),
        }

    @app.get("/api/status")
    def status() -> Dict[str, Any]:
        return _status()

    @app.get("/api/projects")
    def list_projects() -> Dict[str, Any]:
        with hierarchy_lock:
            return {
                "projects": hierarchy.to_list(),
                "top_level": hierarchy.top_level_projects(),
            }

    @app.post("/api/projects")
    def add_project(payload: ProjectPayload) -> Dict[str, Any]:
        with hierarchy_lock:
            try:
                path = hierarchy.add_child(payload.parent, payload.name, payload.description)
            except KeyError as exc:
                raise HTTPException(status_code=404, detail="Parent project not found") from exc
            except ValueError as exc:
                raise HTTPException(status_code=400, detail=str(exc)) from exc
            hierarchy.save(projects_path)
        return {"path": list(path)}

    @app.delete("/api/projects")
    def remove_project(payload: RemoveProjectPayload) -> Dict[str, Any]:
        with hierarchy_lock:
            try:
                hierarchy.remove(payload.path)
            except KeyError as exc:
                raise HTTPException(status_code=404, detail="Project not found") from exc
            hierarchy.save(projects_path)
        return {"removed": payload.path}

    @app.post("/api/recording/select")
    def select(payload: SelectPayload) -> Dict[str, Any]:
        with hierarchy_lock:
            known = payload.path in hierarchy
        if not known:
            raise HTTPException(status_code=404, detail="Project not found")
        recorder.select(payload.path)
        return _status()

    @app.post("/api/recording/stop")
    def stop() -> Dict[str, Any]:
        recorder.stop()
        return _status()

    @app.get("/api/review")
    def review(
        start: Optional[str] = Query(
            default=None, description="Start date in YYYY-MM-DD format (inclusive)."
        ),
        end: Optional[str] = Query(
            default=None, description="End date in YYYY-MM-DD format (exclusive)."
        ),
    ) -> Dict[str, Any]:
        end_day = _parse_date(end) if end else _start_of_day(datetime.now())
        start_day = _parse_date(start) if start else end_day - timedelta(days=7)
        if end_day < start_day:
            raise HTTPException(
                status_code=400, detail="end date must be on or after start date"
            )
        sheet = _load_sheet(start_day, end_day)
        return _sheet_payload(sheet, start_day, end_day)

    @app.post("/api/review/submit")
    def submit(payload: SubmitPayload) -> Dict[str, Any]:
        hub_root = resolved_settings.hub
        if hub_root is None or not resolved_settings.use_hub:
            raise HTTPException(status_code=400, detail="No hub is configured")
        if payload.week.weekday() != 0:
            raise HTTPException(status_code=400, detail="week must be a Monday")
        start_day = datetime.combine(payload.week, time.min)
        end_day = start_day + timedelta(days=7)
        sheet = _load_sheet(start_day, end_day)
        team = payload.team or resolved_settings.team
        try:
            for project, hours in payload.hours.items():
                sheet.set_hours(project, hours)
            path = Hub(hub_root).submit(
                team, week_id_for(payload.week), resolved_settings.username_on_hub, sheet
            )
        except (HubError, ValueError) as exc:
            raise HTTPException(status_code=400, detail=str(exc)) from exc
        if payload.remember_team and config_path is not None and team != resolved_settings.team:
            save_setting(config_path, "team", team)
            resolved_settings.team = team
        return {
            "submission": path.name,
            "week_id": week_id_for(payload.week),
            "team": team,
            **_sheet_payload(sheet, start_day, end_day),
        }

    def _load_sheet(start_day: datetime, end_day: datetime) -> ReviewSheet:
        with hierarchy_lock:
            top_level = hierarchy.top_level_projects()
        log_path = resolved_settings.resolve_log_path()
        if not log_path.exists():
            return ReviewSheet.from_sums({}, top_level)
        return ReviewSheet.from_log(log_path, start_day, end_day, top_level)

    return app


def _sheet_payload(sheet: ReviewSheet, start_day: datetime, end_day: datetime) -> Dict[str, Any]:
    percentages = sheet.percentages() or {}
    return {
        "start": start_day.strftime("%Y-%m-%d"),
        "end": end_day.strftime("%Y-%m-%d"),
        "rows": [
            {
                "project": row.project,
                "hours": round(row.hours, 2),
                "percent": round(percentages[row.project], 2) if row.project in percentages else None,
            }
            for row in sheet.rows
        ],
        "total": round(sheet.total, 2),
    }


def _parse_date(value: str) -> datetime:
    try:
        parsed = datetime.strptime(value, "%Y-%m-%d")
    except ValueError as exc:
        raise HTTPException(status_code=400, detail="Invalid date format") from exc
    return _start_of_day(parsed)


def _start_of_day(value: datetime) -> datetime:
    return value.replace(hour=0, minute=0, second=0, microsecond=0)
