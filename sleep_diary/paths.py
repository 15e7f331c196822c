from __future__ import annotations

import os
from datetime import date
from pathlib import Path

APP_DIR_NAME = "SleepDiary"
STORE_FILENAME = "store.json"


def data_directory() -> Path:
    override = os.environ.get("SLEEP_DIARY_HOME")
    if override:
        return Path(override).expanduser()
    local_appdata = os.environ.get("LOCALAPPDATA")
    if local_appdata:
        return Path(local_appdata) / APP_DIR_NAME
    xdg_data = os.environ.get("XDG_DATA_HOME")
    base = Path(xdg_data) if xdg_data else Path.home() / ".local" / "share"
    return base / APP_DIR_NAME


def store_path(base: Path | None = None) -> Path:
    return (base or data_directory()) / STORE_FILENAME


def exports_directory(base: Path | None = None) -> Path:
    return (base or data_directory()) / "exports"


def ensure_directories(base: Path | None = None) -> None:
    exports_directory(base).mkdir(parents=True, exist_ok=True)


def backup_path(day: date, base: Path | None = None) -> Path:
    return exports_directory(base) / f"sleep_diary_backup_{day.isoformat()}.json"
