from __future__ import annotations

import logging
from datetime import datetime

import pytest

from project_clock.logcodec import (
    NEW_FORMAT,
    OLD_FORMAT,
    MalformedLineError,
    append_entry,
    format_entry,
    parse_line,
    read_entries,
)
from project_clock.models import LogEntry


def test_new_format_round_trip() -> None:
    entry = LogEntry(
        start=datetime(2020, 3, 2, 9, 15, 30),
        end=datetime(2020, 3, 2, 11, 0, 5),
        path=("ENG", "backend", "api"),
    )

    line = format_entry(entry)

    assert line == "02/03/2020 09:15:30,02/03/2020 11:00:05,ENG,backend,api"
    assert parse_line(line) == entry


def test_user_id_is_written_first_and_read_back() -> None:
    entry = LogEntry(
        start=datetime(2020, 3, 2, 9, 0),
        end=datetime(2020, 3, 2, 10, 0),
        path=("ENG",),
        user_id="alice",
    )

    line = format_entry(entry)

    assert line.startswith("alice,02/03/2020 09:00:00,")
    assert parse_line(line) == entry


def test_empty_user_id_is_omitted() -> None:
    entry = LogEntry(
        start=datetime(2020, 3, 2, 9, 0),
        end=datetime(2020, 3, 2, 10, 0),
        path=("ENG",),
        user_id="",
    )

    assert format_entry(entry).startswith("02/03/2020")


def test_old_format_line() -> None:
    entry = parse_line("ENG,backend,01/01/2020 09:00:00,01/01/2020 10:00:00")

    assert entry.path == ("ENG", "backend")
    assert entry.project == "ENG"
    assert entry.duration_seconds == 3600


def test_whitespace_around_fields_is_ignored() -> None:
    entry = parse_line("  01/01/2020 09:00:00 ,  01/01/2020 09:30:00 , ENG ,  backend  ")

    assert entry.path == ("ENG", "backend")
    assert entry.duration_seconds == 1800


@pytest.mark.parametrize(
    "line",
    [
        "just some text",
        "ENG,backend",
        "01/01/2020 09:00:00,01/01/2020 10:00:00",
        "32/01/2020 09:00:00,01/02/2020 10:00:00,ENG",
        "ENG,backend,01/01/2020 09:00:00,not a date",
        "ENG,backend,extra,01/01/2020 09:00:00,01/01/2020 10:00:00",
    ],
)
def test_malformed_lines_raise(line: str) -> None:
    with pytest.raises(MalformedLineError):
        parse_line(line)


def test_read_entries_skips_malformed_lines(tmp_path, caplog) -> None:
    log = tmp_path / "log.txt"
    log.write_text(
        "01/01/2020 09:00:00,01/01/2020 10:00:00,ENG\r\n"
        "garbage line\r\n"
        "\r\n"
        "ADMIN,mail,01/01/2020 10:00:00,01/01/2020 10:30:00\r\n",
        encoding="utf-8",
    )

    with caplog.at_level(logging.WARNING):
        parsed = list(read_entries(log))

    assert [p.line_number for p in parsed] == [1, 4]
    assert [p.layout for p in parsed] == [NEW_FORMAT, OLD_FORMAT]
    assert parsed[1].entry.path == ("ADMIN", "mail")
    assert "line 2" in caplog.text
    assert "garbage line" in caplog.text


def test_read_entries_skips_lines_that_are_not_utf8(tmp_path, caplog) -> None:
    log = tmp_path / "log.txt"
    log.write_bytes(
        b"01/01/2020 09:00:00,01/01/2020 10:00:00,ENG\r\n"
        b"01/01/2020 10:00:00,01/01/2020 11:00:00,Caf\xe9\r\n"
        b"01/01/2020 11:00:00,01/01/2020 11:30:00,ADMIN\r\n"
    )

    with caplog.at_level(logging.WARNING):
        parsed = list(read_entries(log))

    assert [p.entry.project for p in parsed] == ["ENG", "ADMIN"]
    assert [p.line_number for p in parsed] == [1, 3]
    assert "line 2" in caplog.text


def test_read_entries_accepts_utf8_project_names(tmp_path) -> None:
    log = tmp_path / "log.txt"
    log.write_bytes("01/01/2020 09:00:00,01/01/2020 10:00:00,Café\n".encode("utf-8"))

    assert [p.entry.project for p in read_entries(log)] == ["Café"]


def test_read_entries_missing_file(tmp_path) -> None:
    with pytest.raises(OSError):
        list(read_entries(tmp_path / "missing.txt"))


def test_append_entry_appends(tmp_path) -> None:
    log = tmp_path / "nested" / "log.txt"
    first = LogEntry(datetime(2020, 1, 1, 9), datetime(2020, 1, 1, 10), ("A",))
    second = LogEntry(datetime(2020, 1, 1, 10), datetime(2020, 1, 1, 11), ("B", "b1"))

    append_entry(log, first)
    append_entry(log, second)

    assert [p.entry for p in read_entries(log)] == [first, second]
