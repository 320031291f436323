"""Reading and writing activity log lines.

Two layouts are accepted when reading:

* new: ``[userId,]start,end,project[,subProject...]``
* old: ``project,subProject,start,end`` (exactly four fields)

Only the new layout is ever written. Timestamps use ``dd/MM/yyyy HH:mm:ss``.
"""

from __future__ import annotations

import logging
import re
from dataclasses import dataclass
from datetime import datetime
from pathlib import Path
from typing import Iterator, Optional

from .models import LogEntry

logger = logging.getLogger(__name__)

TIMESTAMP_FMT = "%d/%m/%Y %H:%M:%S"
DATE_FMT = "%d/%m/%Y"

_TIMESTAMP_PATTERN = re.compile(r"^\d{1,2}/\d{1,2}/\d{4} \d{1,2}:\d{1,2}:\d{1,2}$")
_FIELD_SEPARATOR = re.compile(r"\s*,\s*")

NEW_FORMAT = "new"
OLD_FORMAT = "old"


class MalformedLineError(ValueError):
    """Raised when a log line matches neither layout."""


@dataclass(frozen=True, slots=True)
class ParsedLine:
    line_number: int
    entry: LogEntry
    layout: str


def looks_like_timestamp(value: str) -> bool:
    return bool(_TIMESTAMP_PATTERN.match(value))


def format_timestamp(value: datetime) -> str:
    return value.strftime(TIMESTAMP_FMT)


def parse_timestamp(value: str) -> datetime:
    return datetime.strptime(value, TIMESTAMP_FMT)


def format_entry(entry: LogEntry) -> str:
    """Serialize an entry in the new layout; an empty user id is omitted."""
    fields = [format_timestamp(entry.start), format_timestamp(entry.end), *entry.path]
    if entry.user_id:
        fields.insert(0, entry.user_id)
    return ",".join(fields)


def detect_layout(fields: list[str]) -> tuple[str, bool]:
    """Return the layout of split fields and whether a user id leads them."""
    if fields and looks_like_timestamp(fields[0]):
        return NEW_FORMAT, False
    if len(fields) >= 4 and looks_like_timestamp(fields[1]) and looks_like_timestamp(fields[2]):
        return NEW_FORMAT, True
    if len(fields) == 4 and looks_like_timestamp(fields[2]) and looks_like_timestamp(fields[3]):
        return OLD_FORMAT, False
    raise MalformedLineError("line matches neither the new nor the old log layout")


def parse_fields(line: str) -> tuple[LogEntry, str]:
    fields = _FIELD_SEPARATOR.split(line.strip())
    layout, has_user = detect_layout(fields)
    user_id: Optional[str] = None
    if layout == OLD_FORMAT:
        start_text, end_text = fields[2], fields[3]
        path = (fields[0], fields[1])
    else:
        if has_user:
            user_id = fields[0] or None
            fields = fields[1:]
        if len(fields) < 3:
            raise MalformedLineError("line has no project after its timestamps")
        start_text, end_text = fields[0], fields[1]
        path = tuple(fields[2:])

    if any(not part for part in path):
        raise MalformedLineError("line contains an empty project name")
    try:
        start = parse_timestamp(start_text)
        end = parse_timestamp(end_text)
    except ValueError as exc:
        raise MalformedLineError(str(exc)) from exc
    return LogEntry(start=start, end=end, path=path, user_id=user_id), layout


def parse_line(line: str) -> LogEntry:
    """Parse one log line, raising ``MalformedLineError`` when it is invalid."""
    entry, _ = parse_fields(line)
    return entry


def read_lines(path: Path) -> Iterator[tuple[int, str]]:
    """Yield ``(line_number, text)`` for every UTF-8 line of a file.

    Lines that are not valid UTF-8 are logged and skipped; line numbers keep
    counting so that later warnings still point at the right line.
    """
    with Path(path).open("rb") as handle:
        for line_number, raw_line in enumerate(handle, start=1):
            raw_line = raw_line.rstrip(b"\r\n")
            try:
                line = raw_line.decode("utf-8")
            except UnicodeDecodeError as exc:
                logger.warning(
                    "Skipping undecodable line %d in %s: %r (%s)", line_number, path, raw_line, exc
                )
                continue
            yield line_number, line


def read_entries(path: Path) -> Iterator[ParsedLine]:
    """Yield the valid entries of a log file.

    Malformed lines are logged as warnings and skipped. Opening the file is
    not guarded: a missing or unreadable log raises ``OSError``.
    """
    for line_number, line in read_lines(path):
        if not line.strip():
            continue
        try:
            entry, layout = parse_fields(line)
        except MalformedLineError as exc:
            logger.warning(
                "Could not process log entry on line %d: %r (%s)", line_number, line, exc
            )
            continue
        yield ParsedLine(line_number=line_number, entry=entry, layout=layout)


def append_entry(path: Path, entry: LogEntry) -> None:
    """Append a single entry to the log file."""
    log_path = Path(path)
    log_path.parent.mkdir(parents=True, exist_ok=True)
    with log_path.open("a", encoding="utf-8") as handle:
        handle.write(format_entry(entry) + "\n")
