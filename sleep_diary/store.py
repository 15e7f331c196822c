"""Local JSON persistence for the diary records."""

from __future__ import annotations

import json
import os
import tempfile
import threading
from datetime import date
from pathlib import Path
from typing import Any, Iterable, Mapping, TypeVar

import structlog

from .models import DEFAULT_SETTINGS, AppSettings, LogEntry
from .paths import store_path

logger = structlog.get_logger(__name__)

LOGS_KEY = "sleepLogs"
SETTINGS_KEY = "appSettings"
DISMISSED_REMINDERS_KEY = "dismissedReminders"

T = TypeVar("T")


def merge_with_defaults(defaults: Mapping[str, Any], stored: Any) -> dict[str, Any]:
    """Shallow merge of a stored record over the current defaults.

    Every key of ``defaults`` is present in the result; every key of
    ``stored`` (known or not) overrides it.
    """
    merged = dict(defaults)
    if isinstance(stored, Mapping):
        merged.update(stored)
    return merged


class KeyValueStore:
    def __init__(self, path: Path):
        self._path = Path(path)
        self._lock = threading.Lock()

    @property
    def path(self) -> Path:
        return self._path

    def load(self, key: str, default: T) -> T:
        with self._lock:
            raw = self._read_document().get(key)
        if raw is None:
            return default

        try:
            stored = json.loads(raw) if isinstance(raw, str) else raw
        except json.JSONDecodeError as exc:
            logger.warning("store_value_unparsable", key=key, error=str(exc))
            return default

        if stored is None:
            return default
        if isinstance(default, Mapping) and not isinstance(stored, list):
            return merge_with_defaults(default, stored)  # type: ignore[return-value]
        return stored

    def save(self, key: str, value: Any) -> bool:
        try:
            serialized = json.dumps(value, ensure_ascii=False)
        except (TypeError, ValueError) as exc:
            logger.error("store_value_unserializable", key=key, error=str(exc))
            return False

        with self._lock:
            document = self._read_document()
            document[key] = serialized
            try:
                self._write_document(document)
            except OSError as exc:
                logger.error("store_write_failed", key=key, path=str(self._path), error=str(exc))
                return False
        return True

    def remove(self, key: str) -> bool:
        with self._lock:
            document = self._read_document()
            if key not in document:
                return False
            del document[key]
            try:
                self._write_document(document)
            except OSError as exc:
                logger.error("store_write_failed", key=key, path=str(self._path), error=str(exc))
                return False
        return True

    def keys(self) -> list[str]:
        with self._lock:
            return sorted(self._read_document())

    def _read_document(self) -> dict[str, Any]:
        try:
            text = self._path.read_text(encoding="utf-8")
        except FileNotFoundError:
            return {}
        except OSError as exc:
            logger.warning("store_read_failed", path=str(self._path), error=str(exc))
            return {}

        if not text.strip():
            return {}
        try:
            document = json.loads(text)
        except json.JSONDecodeError as exc:
            logger.warning("store_document_unparsable", path=str(self._path), error=str(exc))
            return {}
        if not isinstance(document, dict):
            logger.warning("store_document_not_object", path=str(self._path))
            return {}
        return document

    def _write_document(self, document: dict[str, Any]) -> None:
        self._path.parent.mkdir(parents=True, exist_ok=True)
        fd, tmp_name = tempfile.mkstemp(prefix=".store-", suffix=".json", dir=self._path.parent)
        try:
            with os.fdopen(fd, "w", encoding="utf-8") as handle:
                json.dump(document, handle, ensure_ascii=False, indent=2)
            os.replace(tmp_name, self._path)
        except OSError:
            try:
                os.unlink(tmp_name)
            except OSError:
                pass
            raise


class DiaryStore:
    """The log collection and the settings record, loaded once."""

    def __init__(self, kv: KeyValueStore):
        self._kv = kv
        self._logs = _sorted_desc(_parse_logs(kv.load(LOGS_KEY, [])))
        self._settings = AppSettings.from_dict(kv.load(SETTINGS_KEY, DEFAULT_SETTINGS.to_dict()))

    @classmethod
    def open(cls, path: Path | None = None) -> "DiaryStore":
        return cls(KeyValueStore(path or store_path()))

    @property
    def kv(self) -> KeyValueStore:
        return self._kv

    @property
    def logs(self) -> list[LogEntry]:
        return list(self._logs)

    @property
    def settings(self) -> AppSettings:
        return self._settings

    def get_log(self, day: str | date) -> LogEntry | None:
        key = _day_key(day)
        for entry in self._logs:
            if entry.date == key:
                return entry
        return None

    def logs_by_date(self) -> dict[str, LogEntry]:
        return {entry.date: entry for entry in self._logs}

    def logs_between(self, start: str | date, end: str | date) -> list[LogEntry]:
        """Entries with ``start <= date <= end`` in ascending date order."""
        low, high = _day_key(start), _day_key(end)
        return sorted(
            (entry for entry in self._logs if low <= entry.date <= high),
            key=lambda entry: entry.date,
        )

    def add_or_update_log(self, entry: LogEntry) -> bool:
        for index, existing in enumerate(self._logs):
            if existing.date == entry.date:
                self._logs[index] = entry
                break
        else:
            self._logs = _sorted_desc([*self._logs, entry])
        logger.info("log_saved", date=entry.date)
        return self._persist_logs()

    def delete_log(self, day: str | date) -> bool:
        """Returns ``False`` when there is no entry for the day or the write failed."""
        key = _day_key(day)
        remaining = [entry for entry in self._logs if entry.date != key]
        if len(remaining) == len(self._logs):
            return False
        self._logs = remaining
        logger.info("log_deleted", date=key)
        return self._persist_logs()

    def update_settings(self, settings: AppSettings) -> bool:
        self._settings = settings
        return self._kv.save(SETTINGS_KEY, settings.to_dict())

    def replace_all(self, logs: Iterable[LogEntry], settings: AppSettings) -> bool:
        self._logs = _sorted_desc(_dedupe(logs))
        self._settings = settings
        logs_ok = self._persist_logs()
        settings_ok = self._kv.save(SETTINGS_KEY, settings.to_dict())
        return logs_ok and settings_ok

    def dismissed_reminders(self) -> dict[str, str]:
        raw = self._kv.load(DISMISSED_REMINDERS_KEY, {})
        return {str(k): str(v) for k, v in raw.items()} if isinstance(raw, Mapping) else {}

    def dismiss_reminder(self, reminder_time: str, day: str | date) -> bool:
        record = self.dismissed_reminders()
        record[reminder_time] = _day_key(day)
        return self._kv.save(DISMISSED_REMINDERS_KEY, record)

    def _persist_logs(self) -> bool:
        return self._kv.save(LOGS_KEY, [entry.to_dict() for entry in self._logs])


def _parse_logs(raw: Any) -> list[LogEntry]:
    if not isinstance(raw, list):
        logger.warning("stored_logs_not_a_list", kind=type(raw).__name__)
        return []
    entries: list[LogEntry] = []
    for item in raw:
        try:
            entries.append(LogEntry.from_dict(item))
        except ValueError as exc:
            logger.warning("stored_log_skipped", error=str(exc))
    return _dedupe(entries)


def _dedupe(entries: Iterable[LogEntry]) -> list[LogEntry]:
    # Later duplicates win, matching replace-on-match.
    by_date: dict[str, LogEntry] = {}
    for entry in entries:
        by_date[entry.date] = entry
    return list(by_date.values())


def _sorted_desc(entries: Iterable[LogEntry]) -> list[LogEntry]:
    return sorted(entries, key=lambda entry: entry.date, reverse=True)


def _day_key(day: str | date) -> str:
    return day.isoformat() if isinstance(day, date) else str(day).strip()
