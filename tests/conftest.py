from __future__ import annotations

from datetime import datetime, timedelta
from pathlib import Path
from typing import Callable, Optional

import pytest


class FakeTimer:
    """Countdown that only fires when a test says so."""

    def __init__(self, callback: Callable[[int], object]) -> None:
        self.callback = callback
        self.delay: Optional[timedelta] = None
        self.arm_count = 0

    def arm(self, delay: timedelta) -> int:
        self.delay = delay
        self.arm_count += 1
        return self.arm_count

    def cancel(self) -> None:
        self.delay = None

    @property
    def armed(self) -> bool:
        return self.delay is not None

    def fire(self, token: Optional[int] = None) -> object:
        """Fire with the latest arm's token, or with an older one."""
        self.delay = None
        return self.callback(self.arm_count if token is None else token)


class FakeClock:
    def __init__(self, start: datetime) -> None:
        self.now = start

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs: float) -> None:
        self.now += timedelta(**kwargs)


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock(datetime(2020, 1, 1, 9, 0, 0))


@pytest.fixture
def timers() -> list[FakeTimer]:
    return []


@pytest.fixture
def timer_factory(timers: list[FakeTimer]) -> Callable[[Callable[[int], object]], FakeTimer]:
    def _factory(callback: Callable[[int], object]) -> FakeTimer:
        timer = FakeTimer(callback)
        timers.append(timer)
        return timer

    return _factory


def write_lines(path: Path, *lines: str) -> Path:
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text("".join(line + "\n" for line in lines), encoding="utf-8")
    return path


@pytest.fixture
def make_hub(tmp_path: Path) -> Callable[..., Path]:
    """Build a hub tree: ``{team: {"settings": {...}, "weeks": {week: {...}}}}``."""

    def _make(teams: dict) -> Path:
        root = tmp_path / "hub"
        write_lines(root / "settings" / "teams.txt", *teams)
        for team, layout in teams.items():
            team_dir = root / "raw" / team
            team_dir.mkdir(parents=True, exist_ok=True)
            if layout.get("settings") is not None:
                write_lines(
                    team_dir / "settings.txt",
                    *(f"{key}={value}" for key, value in layout["settings"].items()),
                )
            for week_id, week in layout.get("weeks", {}).items():
                week_dir = team_dir / week_id
                week_dir.mkdir(parents=True, exist_ok=True)
                if "settings" in week:
                    write_lines(
                        week_dir / "settings.txt",
                        *(f"{key}={value}" for key, value in week["settings"].items()),
                    )
                roster = []
                for submission_id, (user, fractions) in week.get("submissions", {}).items():
                    roster.append(f"{submission_id},{user},06/01/2020 17:00:00")
                    if fractions is not None:
                        write_lines(
                            week_dir / f"{submission_id}.log",
                            *(f"{project},{value}" for project, value in fractions),
                        )
                write_lines(week_dir / "submitted.txt", *roster)
        return root

    return _make
