from __future__ import annotations

import re
from collections import Counter
from dataclasses import dataclass
from datetime import date, timedelta
from typing import Iterable, Sequence

from .entries import extract_tags, is_valid_hhmm
from .models import LogEntry

WEEKDAY_NAMES = ("Monday", "Tuesday", "Wednesday", "Thursday", "Friday", "Saturday", "Sunday")
NO_DATA = "-"

_DAY = timedelta(hours=24)
_NUMBER_RE = re.compile(r"\d+(?:\.\d+)?")
_UNIT_RE = re.compile(r"[^\W\d_]+")


@dataclass(frozen=True)
class ChartSeries:
    labels: list[str]
    sleep_hours: list[float]
    seizure_counts: list[int]
    waking_counts: list[int]


@dataclass(frozen=True)
class ReportSummary:
    start: str
    end: str
    day_count: int
    average_sleep: timedelta | None
    total_seizures: int
    most_frequent_trigger: str | None
    seizure_weekday: str | None
    night_waking_days: int
    early_wakeup_days: int

    @property
    def has_data(self) -> bool:
        return self.day_count > 0

    def as_text_rows(self) -> list[tuple[str, str]]:
        return [
            ("Period", f"{self.start} to {self.end}"),
            ("Days logged", str(self.day_count)),
            (
                "Average sleep",
                format_duration(self.average_sleep) if self.average_sleep is not None else NO_DATA,
            ),
            ("Total seizures", str(self.total_seizures)),
            ("Most frequent trigger", self.most_frequent_trigger or NO_DATA),
            ("Seizure-prone weekday", self.seizure_weekday or NO_DATA),
            ("Days with night wakings", str(self.night_waking_days)),
            ("Early wake-ups", str(self.early_wakeup_days)),
        ]


def filter_range(logs: Iterable[LogEntry], start: str | date, end: str | date) -> list[LogEntry]:
    low = start.isoformat() if isinstance(start, date) else str(start)
    high = end.isoformat() if isinstance(end, date) else str(end)
    return sorted((log for log in logs if low <= log.date <= high), key=lambda log: log.date)


def sleep_duration(bedtime: str, wakeup_time: str) -> timedelta:
    """Time asleep; a wake-up earlier than bedtime rolls over midnight."""
    bed = _minutes(bedtime)
    wake = _minutes(wakeup_time)
    if bed is None or wake is None or bed == wake:
        return timedelta(0)
    delta = timedelta(minutes=wake - bed)
    if delta < timedelta(0):
        delta += _DAY
    return delta


def format_duration(delta: timedelta) -> str:
    total_minutes = max(0, int(delta.total_seconds() // 60))
    hours, minutes = divmod(total_minutes, 60)
    return f"{hours}h {minutes}m"


def average_sleep(entries: Sequence[LogEntry]) -> timedelta | None:
    if not entries:
        return None
    total = sum(
        (sleep_duration(entry.bedtime, entry.wakeup_time).total_seconds() for entry in entries),
        0.0,
    )
    return timedelta(seconds=round(total / len(entries)))


def tag_counts(entries: Iterable[LogEntry], field: str = "trigger") -> Counter[str]:
    counts: Counter[str] = Counter()
    for entry in entries:
        counts.update(extract_tags(getattr(entry, field, "")))
    return counts


def most_frequent_tag(entries: Iterable[LogEntry], field: str = "trigger") -> str | None:
    best: str | None = None
    best_count = 0
    # Counter keeps first-seen order, so a tie keeps the earlier tag.
    for tag, count in tag_counts(entries, field).items():
        if count > best_count:
            best, best_count = tag, count
    return best


def seizure_weekday_counts(entries: Iterable[LogEntry]) -> list[int]:
    buckets = [0] * 7
    for entry in entries:
        if not entry.seizures:
            continue
        try:
            weekday = date.fromisoformat(entry.date).weekday()
        except ValueError:
            continue
        buckets[weekday] += len(entry.seizures)
    return buckets


def seizure_weekday(entries: Iterable[LogEntry]) -> str | None:
    buckets = seizure_weekday_counts(entries)
    peak = max(buckets)
    if peak == 0:
        return None
    return WEEKDAY_NAMES[buckets.index(peak)]


def total_seizures(entries: Iterable[LogEntry]) -> int:
    return sum(len(entry.seizures) for entry in entries)


def total_dosage(entry: LogEntry) -> str:
    """Sum of the numbers in both dosage fields followed by the unit words."""
    total = 0.0
    units: list[str] = []
    for dosage in (entry.morning_meds.dosage, entry.evening_meds.dosage):
        if not dosage:
            continue
        total += sum(float(number) for number in _NUMBER_RE.findall(dosage))
        for unit in _UNIT_RE.findall(dosage):
            if unit not in units:
                units.append(unit)
    return f"{_format_number(total)} {' '.join(units)}".strip()


def chart_series(entries: Sequence[LogEntry]) -> ChartSeries:
    return ChartSeries(
        labels=[_chart_label(entry.date) for entry in entries],
        sleep_hours=[
            round(sleep_duration(entry.bedtime, entry.wakeup_time).total_seconds() / 3600, 2)
            for entry in entries
        ],
        seizure_counts=[len(entry.seizures) for entry in entries],
        waking_counts=[len(entry.night_wakings) for entry in entries],
    )


def build_report(logs: Iterable[LogEntry], start: str | date, end: str | date) -> ReportSummary:
    entries = filter_range(logs, start, end)
    return ReportSummary(
        start=start.isoformat() if isinstance(start, date) else str(start),
        end=end.isoformat() if isinstance(end, date) else str(end),
        day_count=len(entries),
        average_sleep=average_sleep(entries),
        total_seizures=total_seizures(entries),
        most_frequent_trigger=most_frequent_tag(entries),
        seizure_weekday=seizure_weekday(entries),
        night_waking_days=sum(1 for entry in entries if entry.woke_up_at_night),
        early_wakeup_days=sum(1 for entry in entries if entry.is_early_wakeup),
    )


def _minutes(value: str) -> int | None:
    if not is_valid_hhmm(value):
        return None
    return int(value[:2]) * 60 + int(value[3:])


def _format_number(value: float) -> str:
    if value == int(value):
        return str(int(value))
    return f"{value:g}"


def _chart_label(day: str) -> str:
    try:
        return date.fromisoformat(day).strftime("%d.%m")
    except ValueError:
        return day
