from __future__ import annotations

import logging
from datetime import timedelta
from pathlib import Path

from project_clock.config import (
    ClockSettings,
    SettingsReader,
    load_settings,
    read_properties,
    save_setting,
)
from project_clock.models import AutoCountPolicy, WindowBehaviour


def test_read_properties_accepts_both_separators(tmp_path) -> None:
    path = tmp_path / "config.txt"
    path.write_text(
        "# comment\n! another comment\n\nintervalInSeconds = 1800\nteam: core\nflag\n",
        encoding="utf-8",
    )

    assert read_properties(path) == {"intervalInSeconds": "1800", "team": "core", "flag": ""}


def test_settings_from_properties(tmp_path) -> None:
    settings = ClockSettings.from_properties(
        {
            "intervalInSeconds": "1800",
            "waitInSeconds": "600",
            "autoCountTowards": "unknown",
            "behaviour": "hide",
            "writeTimeouts": "true",
            "uid": "alice",
            "logFilename": str(tmp_path / "log.txt"),
            "hub": str(tmp_path / "hub"),
            "useHub": "yes",
        }
    )

    assert settings.active_period == timedelta(minutes=30)
    assert settings.semi_active_period == timedelta(minutes=10)
    assert settings.auto_count is AutoCountPolicy.UNKNOWN
    assert settings.behaviour is WindowBehaviour.HIDE
    assert settings.write_timeouts is True
    assert settings.user_id == "alice"
    assert settings.resolve_log_path() == tmp_path / "log.txt"
    assert settings.hub == tmp_path / "hub"
    assert settings.use_hub is True


def test_bad_values_fall_back_to_defaults_with_warning(caplog) -> None:
    with caplog.at_level(logging.WARNING):
        settings = ClockSettings.from_properties(
            {"intervalInSeconds": "soon", "autoCountTowards": "everything", "writeTimeouts": "maybe"}
        )

    assert settings.active_period == timedelta(hours=1)
    assert settings.auto_count is AutoCountPolicy.PREVIOUS
    assert settings.write_timeouts is False
    assert "intervalInSeconds" in caplog.text
    assert "'soon'" in caplog.text
    assert "autoCountTowards" in caplog.text


def test_reader_float_and_path() -> None:
    reader = SettingsReader({"headcount": "7.5", "broken": "x", "home": "~/logs"})

    assert reader.get_float("headcount", None) == 7.5
    assert reader.get_float("broken", None) is None
    assert reader.get_float("absent", 2.0) == 2.0
    assert reader.get_path("home") == Path("~/logs").expanduser()
    assert "headcount" in reader


def test_load_settings_missing_file_uses_defaults(tmp_path) -> None:
    settings = load_settings(tmp_path / "missing.txt")

    assert settings.auto_count is AutoCountPolicy.PREVIOUS
    assert settings.username_on_hub == "undefined"


def test_save_setting_replaces_or_appends(tmp_path) -> None:
    path = tmp_path / "config.txt"
    path.write_text("# settings\nteam=old\nuid=bob\n", encoding="utf-8")

    save_setting(path, "team", "new")
    save_setting(path, "usernameOnHub", "bob")

    assert path.read_text(encoding="utf-8") == (
        "# settings\nteam=new\nuid=bob\nusernameOnHub=bob\n"
    )
    assert load_settings(path).team == "new"
