"""Recording state machine.

The recorder is driven by three commands: the user selects a project path,
the user stops recording, or the countdown fires. ``transition`` decides the
next state and the effects to perform; ``Recorder`` owns the state, runs the
effects and serializes every command.
"""

from __future__ import annotations

import logging
import threading
import time
from dataclasses import dataclass
from datetime import datetime, timedelta
from enum import Enum
from typing import Callable, Optional, Protocol, Sequence, Union

from .config import ClockSettings
from .logcodec import append_entry
from .models import (
    TIMED_OUT_PATH,
    UNKNOWN_PATH,
    AutoCountPolicy,
    LogEntry,
    ProjectPath,
    RecordingSession,
    RecordingState,
    project_path,
)
from .timer import Countdown, RearmableTimer

logger = logging.getLogger(__name__)

HIDE_DELAY_SECONDS = 0.15


class LogWriteError(OSError):
    """A log entry could not be persisted."""

    def __init__(self, entry: LogEntry, cause: BaseException) -> None:
        super().__init__(f"Could not write log entry for {'/'.join(entry.path)}: {cause}")
        self.entry = entry
        self.cause = cause


# Commands


@dataclass(frozen=True, slots=True)
class SelectPath:
    path: ProjectPath


@dataclass(frozen=True, slots=True)
class Stop:
    pass


@dataclass(frozen=True, slots=True)
class TimerFired:
    pass


Command = Union[SelectPath, Stop, TimerFired]


# Effects


class UiAction(str, Enum):
    HIDE = "hide"
    SHOW = "show"


@dataclass(frozen=True, slots=True)
class WriteLog:
    entry: LogEntry


@dataclass(frozen=True, slots=True)
class ArmTimer:
    delay: timedelta


@dataclass(frozen=True, slots=True)
class CancelTimer:
    pass


@dataclass(frozen=True, slots=True)
class NotifyUi:
    action: UiAction


Effect = Union[WriteLog, ArmTimer, CancelTimer, NotifyUi]


@dataclass(frozen=True, slots=True)
class Transition:
    state: RecordingState
    session: Optional[RecordingSession]
    effects: tuple[Effect, ...] = ()


def transition(
    state: RecordingState,
    session: Optional[RecordingSession],
    command: Command,
    settings: ClockSettings,
    now: datetime,
) -> Transition:
    """Compute the next state, session and effects for ``command``."""
    if isinstance(command, SelectPath):
        effects: list[Effect] = []
        if state is RecordingState.RUNNING and session is not None:
            effects.append(WriteLog(_entry(session.path, session.started_at, now, settings)))
        elif state is RecordingState.AUTOMATIC and session is not None:
            effects.extend(_auto_count(session, settings, now))
        effects.append(ArmTimer(settings.active_period))
        effects.append(NotifyUi(UiAction.HIDE))
        return Transition(
            RecordingState.RUNNING,
            RecordingSession(path=command.path, started_at=now),
            tuple(effects),
        )

    if isinstance(command, Stop):
        if state is RecordingState.STOPPED or session is None:
            return Transition(RecordingState.STOPPED, None)
        effects = [CancelTimer()]
        if state is RecordingState.RUNNING:
            effects.append(WriteLog(_entry(session.path, session.started_at, now, settings)))
        else:
            effects.extend(_auto_count(session, settings, now))
        return Transition(RecordingState.STOPPED, None, tuple(effects))

    if isinstance(command, TimerFired):
        if state is RecordingState.RUNNING and session is not None:
            return Transition(
                RecordingState.AUTOMATIC,
                RecordingSession(path=session.path, started_at=now),
                (
                    WriteLog(_entry(session.path, session.started_at, now, settings)),
                    ArmTimer(settings.semi_active_period),
                    NotifyUi(UiAction.SHOW),
                ),
            )
        if state is RecordingState.AUTOMATIC and session is not None:
            effects = [CancelTimer(), *_auto_count(session, settings, now)]
            if settings.write_timeouts:
                effects.append(
                    WriteLog(
                        _entry(TIMED_OUT_PATH, session.started_at, session.started_at, settings)
                    )
                )
            effects.append(NotifyUi(UiAction.SHOW))
            return Transition(RecordingState.STOPPED, None, tuple(effects))
        # late firing after the recorder already stopped
        return Transition(state, session)

    raise TypeError(f"Unknown recorder command: {command!r}")


def _auto_count(
    session: RecordingSession, settings: ClockSettings, now: datetime
) -> tuple[Effect, ...]:
    policy = settings.auto_count
    if policy is AutoCountPolicy.NOTHING:
        return ()
    path = UNKNOWN_PATH if policy is AutoCountPolicy.UNKNOWN else session.path
    return (WriteLog(_entry(path, session.started_at, now, settings)),)


def _entry(
    path: ProjectPath, start: datetime, end: datetime, settings: ClockSettings
) -> LogEntry:
    return LogEntry(start=start, end=end, path=path, user_id=settings.user_id or None)


class UiNotifier(Protocol):
    def hide(self) -> None: ...

    def show(self) -> None: ...


class Recorder:
    """Owns the recording state and performs transition effects.

    Commands coming from the user and from the countdown are serialized by a
    single lock, so each transition (including its log write) completes
    before the next one starts. Write failures never abort a transition: they
    are handed to the problem listeners and returned from ``dispatch``.
    """

    def __init__(
        self,
        settings: ClockSettings,
        *,
        writer: Optional[Callable[[LogEntry], None]] = None,
        notifier: Optional[UiNotifier] = None,
        timer_factory: Callable[[Callable[[int], None]], Countdown] = RearmableTimer,
        clock: Callable[[], datetime] = datetime.now,
        hide_delay: float = HIDE_DELAY_SECONDS,
    ) -> None:
        self.settings = settings
        self._writer = writer or self._append_to_log
        self._notifier = notifier
        self._clock = clock
        self._hide_delay = hide_delay
        self._timer = timer_factory(self.timer_fired)
        self._armed_token: Optional[int] = None
        self._lock = threading.RLock()
        self._state = RecordingState.STOPPED
        self._session: Optional[RecordingSession] = None
        self._problem_listeners: list[Callable[[LogWriteError], None]] = []

    @property
    def state(self) -> RecordingState:
        with self._lock:
            return self._state

    @property
    def session(self) -> Optional[RecordingSession]:
        with self._lock:
            return self._session

    def add_problem_listener(self, listener: Callable[[LogWriteError], None]) -> None:
        self._problem_listeners.append(listener)

    def select(self, path: Sequence[str]) -> list[LogWriteError]:
        return self.dispatch(SelectPath(project_path(path)))

    def stop(self) -> list[LogWriteError]:
        return self.dispatch(Stop())

    def timer_fired(self, token: Optional[int] = None) -> list[LogWriteError]:
        """Handle a countdown expiry.

        A ``token`` from an arm that has since been replaced or cancelled is
        ignored, even when its firing was already waiting for the lock.
        """
        return self._run(TimerFired(), token)

    def dispatch(self, command: Command) -> list[LogWriteError]:
        return self._run(command, None)

    def _run(self, command: Command, token: Optional[int]) -> list[LogWriteError]:
        with self._lock:
            if token is not None and token != self._armed_token:
                logger.debug("Ignoring superseded timer firing %s", token)
                return []
            now = self._clock().replace(microsecond=0)
            result = transition(self._state, self._session, command, self.settings, now)
            if result.state is not self._state:
                logger.info("Recording %s -> %s", self._state.value, result.state.value)
            self._state = result.state
            self._session = result.session
            problems: list[LogWriteError] = []
            for effect in result.effects:
                problem = self._perform(effect)
                if problem is not None:
                    problems.append(problem)

        for problem in problems:
            logger.error("%s", problem)
            for listener in self._problem_listeners:
                listener(problem)
        return problems

    def _perform(self, effect: Effect) -> Optional[LogWriteError]:
        if isinstance(effect, WriteLog):
            try:
                self._writer(effect.entry)
            except OSError as exc:
                return LogWriteError(effect.entry, exc)
            logger.debug("Logged %s", effect.entry)
        elif isinstance(effect, ArmTimer):
            self._armed_token = self._timer.arm(effect.delay)
        elif isinstance(effect, CancelTimer):
            self._timer.cancel()
            self._armed_token = None
        elif isinstance(effect, NotifyUi):
            self._notify(effect.action)
        return None

    def _notify(self, action: UiAction) -> None:
        if self._notifier is None:
            return
        if action is UiAction.SHOW:
            self._notifier.show()
            return
        threading.Thread(target=self._hide_after_delay, daemon=True).start()

    def _hide_after_delay(self) -> None:
        time.sleep(self._hide_delay)
        try:
            self._notifier.hide()  # type: ignore[union-attr]
        except Exception:
            logger.exception("Failed to hide the interface.")

    def _append_to_log(self, entry: LogEntry) -> None:
        append_entry(self.settings.resolve_log_path(), entry)
