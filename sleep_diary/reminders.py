"""Medication reminders polled on a fixed interval."""

from __future__ import annotations

import threading
from dataclasses import dataclass
from datetime import datetime, timedelta
from enum import Enum
from typing import Callable, Protocol

import structlog

from .store import DiaryStore

logger = structlog.get_logger(__name__)

CHECK_INTERVAL_SECONDS = 30.0
SNOOZE_MINUTES = 5
NOTIFICATION_TITLE = "Medication reminder"
MORNING_MESSAGE = "Time for the morning medication!"
EVENING_MESSAGE = "Time for the evening medication!"

Clock = Callable[[], datetime]


class Permission(str, Enum):
    GRANTED = "granted"
    DENIED = "denied"
    DEFAULT = "default"


@dataclass(frozen=True)
class Reminder:
    slot: str
    time: str
    message: str

    @property
    def tag(self) -> str:
        return f"med-reminder-{self.time}"


@dataclass(frozen=True)
class ReminderState:
    snooze_until: datetime | None
    active: Reminder | None
    dismissed: dict[str, str]


class Notifier(Protocol):
    def notify(self, title: str, message: str, tag: str) -> None: ...


class LogNotifier:
    def notify(self, title: str, message: str, tag: str) -> None:
        logger.warning("reminder", title=title, message=message, tag=tag)


class ReminderScheduler:
    def __init__(
        self,
        store: DiaryStore,
        notifier: Notifier,
        permission: Callable[[], Permission] | Permission = Permission.DEFAULT,
        interval_seconds: float = CHECK_INTERVAL_SECONDS,
        clock: Clock | None = None,
    ):
        self._store = store
        self._notifier = notifier
        self._permission = permission
        self._interval_seconds = max(1.0, float(interval_seconds))
        self._clock = clock or (lambda: datetime.now().astimezone())
        self._lock = threading.Lock()
        self._thread: threading.Thread | None = None
        self._stop_event = threading.Event()
        self._fired_for: dict[str, set[str]] = {"morning": set(), "evening": set()}
        self._snooze_until: datetime | None = None
        self._active: Reminder | None = None
        self._pending: Reminder | None = None

    @property
    def active(self) -> Reminder | None:
        return self._active

    @property
    def snooze_until(self) -> datetime | None:
        return self._snooze_until

    @property
    def state(self) -> ReminderState:
        with self._lock:
            return ReminderState(
                snooze_until=self._snooze_until,
                active=self._active,
                dismissed=self._store.dismissed_reminders(),
            )

    @property
    def is_running(self) -> bool:
        return self._thread is not None and self._thread.is_alive()

    def due_reminders(self) -> list[Reminder]:
        settings = self._store.settings
        return [
            Reminder("morning", settings.morning_reminder.strip(), MORNING_MESSAGE),
            Reminder("evening", settings.evening_reminder.strip(), EVENING_MESSAGE),
        ]

    def check(self, now: datetime | None = None) -> Reminder | None:
        """One tick. Returns the reminder that fired, if any."""
        now = now or self._clock()
        with self._lock:
            if not self._store.settings.notifications_enabled:
                return None
            if self._current_permission() is not Permission.GRANTED:
                return None
            if self._active is not None:
                return None
            if self._snooze_until is not None:
                if now < self._snooze_until:
                    return None
                self._snooze_until = None
                if self._pending is not None:
                    reminder, self._pending = self._pending, None
                    return self._fire(reminder, now)

            today = now.date().isoformat()
            hhmm = now.strftime("%H:%M")
            dismissed = self._store.dismissed_reminders()
            for reminder in self.due_reminders():
                if not reminder.time or reminder.time != hhmm:
                    continue
                if today in self._fired_for[reminder.slot]:
                    continue
                if dismissed.get(reminder.time) == today:
                    continue
                return self._fire(reminder, now)
        return None

    def snooze(self, minutes: int = SNOOZE_MINUTES, now: datetime | None = None) -> datetime:
        now = now or self._clock()
        with self._lock:
            self._pending = self._active
            self._active = None
            self._snooze_until = now + timedelta(minutes=minutes)
            logger.info("reminder_snoozed", until=self._snooze_until.isoformat())
            return self._snooze_until

    def dismiss(self, now: datetime | None = None) -> None:
        now = now or self._clock()
        with self._lock:
            active, self._active = self._active, None
            self._snooze_until = None
            self._pending = None
            if active is None:
                return
            self._store.dismiss_reminder(active.time, now.date())
            logger.info("reminder_dismissed", slot=active.slot, time=active.time)

    def start(self) -> bool:
        with self._lock:
            if self.is_running:
                return False
            self._stop_event.clear()
            self._thread = threading.Thread(
                target=self._run_loop,
                name="sleep-diary-reminders",
                daemon=True,
            )
            self._thread.start()
            return True

    def stop(self, timeout_seconds: float = 5.0) -> None:
        with self._lock:
            thread = self._thread
            if thread is None:
                return
            self._stop_event.set()

        thread.join(timeout=timeout_seconds)

        with self._lock:
            if self._thread is thread:
                self._thread = None

    def _run_loop(self) -> None:
        while not self._stop_event.is_set():
            try:
                self.check()
            except Exception as exc:  # noqa: BLE001
                logger.error("reminder_check_failed", error=str(exc))
            if self._stop_event.wait(self._interval_seconds):
                break

    def _fire(self, reminder: Reminder, now: datetime) -> Reminder:
        self._fired_for[reminder.slot].add(now.date().isoformat())
        self._active = reminder
        self._notifier.notify(NOTIFICATION_TITLE, reminder.message, reminder.tag)
        logger.info("reminder_fired", slot=reminder.slot, time=reminder.time)
        return reminder

    def _current_permission(self) -> Permission:
        permission = self._permission() if callable(self._permission) else self._permission
        return Permission(permission)
