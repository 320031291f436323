from __future__ import annotations

from pathlib import Path

import pytest
from fastapi.testclient import TestClient

from project_clock.config import ClockSettings, load_settings
from project_clock.models import WindowBehaviour
from project_clock.recorder import Recorder
from project_clock.webapp import DashboardNotifier, create_app


@pytest.fixture
def settings(tmp_path: Path) -> ClockSettings:
    projects = tmp_path / "projects.txt"
    projects.write_text("ENG\n\tbackend\nADMIN\nSALES\n", encoding="utf-8")
    return ClockSettings(log_path=tmp_path / "log.txt", projects_path=projects)


@pytest.fixture
def recorder(settings, timer_factory, clock) -> Recorder:
    return Recorder(settings, timer_factory=timer_factory, clock=clock)


@pytest.fixture
def client(settings, recorder) -> TestClient:
    return TestClient(create_app(settings=settings, recorder=recorder))


def test_select_and_stop_write_the_log(client, settings, clock) -> None:
    response = client.post("/api/recording/select", json={"path": ["ENG", "backend"]})
    assert response.status_code == 200
    assert response.json()["state"] == "running"
    assert response.json()["path"] == ["ENG", "backend"]

    clock.advance(minutes=30)
    response = client.post("/api/recording/stop")

    assert response.json()["state"] == "stopped"
    assert settings.log_path.read_text(encoding="utf-8") == (
        "01/01/2020 09:00:00,01/01/2020 09:30:00,ENG,backend\n"
    )


def test_select_unknown_project_is_404(client) -> None:
    response = client.post("/api/recording/select", json={"path": ["NOPE"]})

    assert response.status_code == 404
    assert client.get("/api/status").json()["state"] == "stopped"


def test_select_rejects_empty_path(client) -> None:
    assert client.post("/api/recording/select", json={"path": []}).status_code == 422


def test_timer_expiry_moves_to_automatic(client, timers, clock) -> None:
    client.post("/api/recording/select", json={"path": ["ENG"]})
    clock.advance(hours=1)
    timers[0].fire()

    status = client.get("/api/status").json()

    assert status["state"] == "automatic"
    assert status["started_at"] == "2020-01-01T10:00:00"


def test_log_write_failure_is_reported(tmp_path, timer_factory, clock) -> None:
    projects = tmp_path / "projects.txt"
    projects.write_text("ENG\n", encoding="utf-8")
    log_dir = tmp_path / "log.txt"
    log_dir.mkdir()
    settings = ClockSettings(log_path=log_dir, projects_path=projects)
    recorder = Recorder(settings, timer_factory=timer_factory, clock=clock)
    client = TestClient(create_app(settings=settings, recorder=recorder))

    client.post("/api/recording/select", json={"path": ["ENG"]})
    status = client.post("/api/recording/stop").json()

    assert status["state"] == "stopped"
    assert status["problems"][0]["path"] == ["ENG"]


def test_review_lists_all_top_level_projects(client, settings) -> None:
    settings.log_path.write_text(
        "06/01/2020 09:00:00,06/01/2020 12:00:00,ENG,backend\n"
        "07/01/2020 09:00:00,07/01/2020 10:00:00,ADMIN\n",
        encoding="utf-8",
    )

    body = client.get("/api/review", params={"start": "2020-01-06", "end": "2020-01-13"}).json()

    assert body["total"] == 4.0
    assert body["rows"] == [
        {"project": "ADMIN", "hours": 1.0, "percent": 25.0},
        {"project": "ENG", "hours": 3.0, "percent": 75.0},
        {"project": "SALES", "hours": 0.0, "percent": 0.0},
    ]


def test_review_without_log_has_no_percentages(client) -> None:
    body = client.get("/api/review", params={"start": "2020-01-06", "end": "2020-01-13"}).json()

    assert body["total"] == 0.0
    assert {row["percent"] for row in body["rows"]} == {None}


def test_review_rejects_bad_dates(client) -> None:
    assert client.get("/api/review", params={"start": "06/01/2020"}).status_code == 400
    response = client.get("/api/review", params={"start": "2020-01-13", "end": "2020-01-06"})
    assert response.status_code == 400


def test_add_and_remove_projects(client, settings) -> None:
    response = client.post("/api/projects", json={"parent": ["ADMIN"], "name": "hiring"})
    assert response.json() == {"path": ["ADMIN", "hiring"]}
    assert "\thiring" in settings.projects_path.read_text(encoding="utf-8")

    assert client.post("/api/projects", json={"parent": ["NOPE"], "name": "x"}).status_code == 404
    assert client.post("/api/projects", json={"parent": ["ADMIN"], "name": "hiring"}).status_code == 400

    response = client.request("DELETE", "/api/projects", json={"path": ["SALES"]})
    assert response.status_code == 200
    assert client.get("/api/projects").json()["top_level"] == ["ENG", "ADMIN"]
    assert client.request("DELETE", "/api/projects", json={"path": ["SALES"]}).status_code == 404


def test_submit_requires_a_hub(client) -> None:
    response = client.post("/api/review/submit", json={"week": "2020-01-06"})

    assert response.status_code == 400


def test_submit_to_hub_with_overrides(tmp_path, make_hub, timer_factory, clock) -> None:
    root = make_hub({"alpha": {"settings": {"headcount": 1}, "weeks": {"2020wk02": {"submissions": {}}}}})
    projects = tmp_path / "projects.txt"
    projects.write_text("ENG\nADMIN\n", encoding="utf-8")
    log = tmp_path / "log.txt"
    log.write_text("06/01/2020 09:00:00,06/01/2020 12:00:00,ENG\n", encoding="utf-8")
    config = tmp_path / "config.txt"
    config.write_text(
        f"logFilename={log}\nprojectsFilename={projects}\nhub={root}\nuseHub=true\n"
        "usernameOnHub=ann\n",
        encoding="utf-8",
    )
    settings = load_settings(config)
    recorder = Recorder(settings, timer_factory=timer_factory, clock=clock)
    client = TestClient(create_app(settings=settings, config_path=config, recorder=recorder))

    assert client.post("/api/review/submit", json={"week": "2020-01-07", "team": "alpha"}).status_code == 400
    response = client.post(
        "/api/review/submit",
        json={"week": "2020-01-06", "team": "alpha", "hours": {"ADMIN": 1.0}},
    )

    assert response.status_code == 200, response.text
    body = response.json()
    assert body["week_id"] == "2020wk02"
    assert body["total"] == 4.0
    submission = root / "raw" / "alpha" / "2020wk02" / body["submission"]
    assert submission.read_bytes() == b"ADMIN,0.25\r\nENG,0.75\r\n"
    assert load_settings(config).team == "alpha"


def test_dashboard_notifier_respects_behaviour() -> None:
    notifier = DashboardNotifier(WindowBehaviour.SHOW)
    notifier.hide()
    assert notifier.visible

    notifier = DashboardNotifier(WindowBehaviour.HIDE)
    notifier.hide()
    assert not notifier.visible
    notifier.show()
    assert notifier.visible
