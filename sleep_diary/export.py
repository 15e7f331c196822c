from __future__ import annotations

import csv
import io
import json
from datetime import date, datetime
from pathlib import Path
from typing import IO, Any, Iterable, Mapping

import structlog

from .errors import BackupFormatError
from .models import AppSettings, LogEntry
from .report import format_duration, sleep_duration, total_dosage
from .store import LOGS_KEY, SETTINGS_KEY, DiaryStore, merge_with_defaults

logger = structlog.get_logger(__name__)

EXPORT_COLUMNS = ("Date", "Sleep duration", "Night wakings", "Total dosage", "Seizure")
EXPORTED_AT_KEY = "exportedAt"


def export_rows(entries: Iterable[LogEntry]) -> list[dict[str, str]]:
    rows: list[dict[str, str]] = []
    for entry in entries:
        rows.append(
            {
                "Date": entry.date,
                "Sleep duration": format_duration(sleep_duration(entry.bedtime, entry.wakeup_time)),
                "Night wakings": str(len(entry.night_wakings)),
                "Total dosage": total_dosage(entry),
                "Seizure": "yes" if entry.had_seizure else "no",
            }
        )
    return rows


def write_csv(entries: Iterable[LogEntry], target: Path | IO[str]) -> int:
    rows = export_rows(entries)
    if isinstance(target, (str, Path)):
        path = Path(target)
        path.parent.mkdir(parents=True, exist_ok=True)
        with path.open("w", encoding="utf-8", newline="") as handle:
            _write_rows(rows, handle)
    else:
        _write_rows(rows, target)
    logger.info("csv_exported", rows=len(rows))
    return len(rows)


def csv_text(entries: Iterable[LogEntry]) -> str:
    buffer = io.StringIO()
    _write_rows(export_rows(entries), buffer)
    return buffer.getvalue()


def default_export_filename(start: str | date, end: str | date) -> str:
    return f"sleep_report_{_iso(start)}_to_{_iso(end)}.csv"


def build_backup(store: DiaryStore) -> dict[str, Any]:
    return {
        LOGS_KEY: [entry.to_dict() for entry in store.logs],
        SETTINGS_KEY: store.settings.to_dict(),
        EXPORTED_AT_KEY: datetime.now().astimezone().isoformat(),
    }


def write_backup(store: DiaryStore, path: Path) -> Path:
    path = Path(path)
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(json.dumps(build_backup(store), ensure_ascii=False, indent=2), encoding="utf-8")
    logger.info("backup_written", path=str(path), logs=len(store.logs))
    return path


def read_backup(path: Path | str) -> tuple[list[LogEntry], AppSettings]:
    """Read, parse and validate a backup file. Raises ``BackupFormatError`` on any problem."""
    try:
        text = Path(path).read_text(encoding="utf-8")
    except OSError as exc:
        raise BackupFormatError(f"Could not read backup file: {exc}") from exc
    return parse_backup_text(text)


def parse_backup_text(text: str) -> tuple[list[LogEntry], AppSettings]:
    try:
        payload = json.loads(text)
    except json.JSONDecodeError as exc:
        raise BackupFormatError("Backup file is not valid JSON.") from exc
    return parse_backup(payload)


def parse_backup(payload: Any) -> tuple[list[LogEntry], AppSettings]:
    if not isinstance(payload, Mapping):
        raise BackupFormatError("Backup file must contain a JSON object.")
    missing = [key for key in (LOGS_KEY, SETTINGS_KEY) if key not in payload]
    if missing:
        raise BackupFormatError(f"Backup file is missing: {', '.join(missing)}.")
    raw_logs = payload[LOGS_KEY]
    raw_settings = payload[SETTINGS_KEY]
    if not isinstance(raw_logs, list):
        raise BackupFormatError(f"'{LOGS_KEY}' must be a list.")
    if not isinstance(raw_settings, Mapping):
        raise BackupFormatError(f"'{SETTINGS_KEY}' must be an object.")

    entries: list[LogEntry] = []
    for index, raw in enumerate(raw_logs):
        try:
            entries.append(LogEntry.from_dict(raw))
        except ValueError as exc:
            raise BackupFormatError(f"Log #{index + 1} is invalid: {exc}") from exc

    settings = AppSettings.from_dict(merge_with_defaults(AppSettings().to_dict(), raw_settings))
    return entries, settings


def restore_backup(store: DiaryStore, path: Path | str) -> tuple[int, bool]:
    """Replace both records with the backup's. Returns the entry count and whether it was saved."""
    entries, settings = read_backup(path)
    saved = store.replace_all(entries, settings)
    logger.info("backup_restored", logs=len(store.logs), saved=saved)
    return len(store.logs), saved


def _write_rows(rows: list[dict[str, str]], handle: IO[str]) -> None:
    writer = csv.DictWriter(handle, fieldnames=list(EXPORT_COLUMNS))
    writer.writeheader()
    writer.writerows(rows)


def _iso(value: str | date) -> str:
    return value.isoformat() if isinstance(value, date) else str(value)
