from __future__ import annotations

import re
from datetime import date, datetime
from typing import Callable, Iterable, Sequence, TypeVar

from .errors import InvalidEntryError
from .models import LogEntry, Medication, MedicationTemplate, NightWaking, Seizure

DEFAULT_BEDTIME = "21:00"
DEFAULT_WAKEUP_TIME = "07:00"

_TAG_RE = re.compile(r"#(\w+)")

ItemT = TypeVar("ItemT")


def build_log_entry(
    day: str | date,
    bedtime: str,
    wakeup_time: str,
    target_wakeup_time: str,
    morning_meds: Medication | None = None,
    evening_meds: Medication | None = None,
    woke_up_at_night: bool = False,
    night_wakings: Iterable[NightWaking] = (),
    had_seizure: bool = False,
    seizures: Iterable[Seizure] = (),
    notes: str = "",
    trigger: str = "",
) -> LogEntry:
    day_key = parse_date(day).isoformat()
    bedtime = normalize_hhmm(bedtime, "bedtime")
    wakeup_time = normalize_hhmm(wakeup_time, "wake-up time")

    return LogEntry(
        date=day_key,
        bedtime=bedtime,
        wakeup_time=wakeup_time,
        morning_meds=morning_meds or Medication(),
        evening_meds=evening_meds or Medication(),
        woke_up_at_night=woke_up_at_night,
        night_wakings=tuple(night_wakings) if woke_up_at_night else (),
        had_seizure=had_seizure,
        seizures=tuple(seizures) if had_seizure else (),
        notes=notes.strip(),
        trigger=trigger.strip(),
        is_early_wakeup=is_early_wakeup(wakeup_time, target_wakeup_time),
    )


def is_early_wakeup(wakeup_time: str, target_wakeup_time: str) -> bool:
    # Zero-padded HH:MM strings compare correctly as text.
    if not is_valid_hhmm(wakeup_time) or not is_valid_hhmm(target_wakeup_time):
        return False
    return wakeup_time < target_wakeup_time


def resize(items: Sequence[ItemT], count: int, factory: Callable[[], ItemT]) -> list[ItemT]:
    size = max(0, int(count))
    current = list(items)
    if size > len(current):
        current.extend(factory() for _ in range(size - len(current)))
    return current[:size]


def toggle_gate(enabled: bool, items: Sequence[ItemT], factory: Callable[[], ItemT]) -> list[ItemT]:
    if not enabled:
        return []
    if not items:
        return [factory()]
    return list(items)


def apply_template(template: MedicationTemplate) -> Medication:
    return Medication(name=template.name, dosage=template.dosage)


def extract_tags(text: str | None) -> list[str]:
    if not text:
        return []
    return [f"#{match}" for match in _TAG_RE.findall(text)]


def append_tag(text: str, tag: str) -> str:
    tag = tag.strip()
    if not tag:
        return text
    if not tag.startswith("#"):
        tag = f"#{tag}"
    if tag in extract_tags(text):
        return text
    return f"{text.rstrip()} {tag}".strip()


def is_valid_hhmm(value: str | None) -> bool:
    if not value or len(value) != 5 or value[2] != ":":
        return False
    hh, mm = value[:2], value[3:]
    if not (hh.isdigit() and mm.isdigit()):
        return False
    return 0 <= int(hh) <= 23 and 0 <= int(mm) <= 59


def normalize_hhmm(value: str, field_name: str = "time") -> str:
    value = (value or "").strip()
    if len(value) == 4 and value[1] == ":":
        value = f"0{value}"
    if not is_valid_hhmm(value):
        raise InvalidEntryError(f"Invalid {field_name}: expected HH:MM, got {value!r}.")
    return value


def parse_date(value: str | date) -> date:
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    try:
        return date.fromisoformat(str(value).strip())
    except ValueError as exc:
        raise InvalidEntryError(f"Invalid date: expected YYYY-MM-DD, got {value!r}.") from exc
