from __future__ import annotations

import calendar
from collections import Counter
from dataclasses import dataclass
from datetime import date
from typing import Mapping

from .classifier import DayFactors, classify
from .models import LogEntry, Tier


@dataclass(frozen=True)
class CalendarCell:
    day: date | None
    tier: Tier = Tier.NONE

    @property
    def in_month(self) -> bool:
        return self.day is not None


def month_grid(
    year: int,
    month: int,
    logs_by_date: Mapping[str, LogEntry],
    factors: DayFactors,
    first_weekday: int = calendar.MONDAY,
) -> list[list[CalendarCell]]:
    weeks: list[list[CalendarCell]] = []
    for week in calendar.Calendar(first_weekday).monthdayscalendar(year, month):
        row: list[CalendarCell] = []
        for day_number in week:
            if day_number == 0:
                row.append(CalendarCell(day=None))
                continue
            day = date(year, month, day_number)
            row.append(CalendarCell(day=day, tier=classify(logs_by_date.get(day.isoformat()), factors)))
        weeks.append(row)
    return weeks


def shift_month(year: int, month: int, delta: int) -> tuple[int, int]:
    index = year * 12 + (month - 1) + delta
    return index // 12, index % 12 + 1


def tier_counts(weeks: list[list[CalendarCell]]) -> dict[Tier, int]:
    counts = Counter(cell.tier for week in weeks for cell in week if cell.in_month)
    return {tier: counts.get(tier, 0) for tier in Tier}


def render_month(
    year: int,
    month: int,
    weeks: list[list[CalendarCell]],
    first_weekday: int = calendar.MONDAY,
) -> str:
    """Plain-text month view; each day is suffixed with its tier initial."""
    markers = {
        Tier.NONE: " ",
        Tier.GREEN: "G",
        Tier.YELLOW: "Y",
        Tier.ORANGE: "O",
        Tier.RED: "R",
    }
    header_days = [calendar.day_abbr[(first_weekday + i) % 7][:2] for i in range(7)]
    lines = [f"{calendar.month_name[month]} {year}".center(7 * 4 - 1), " ".join(f"{d:>3}" for d in header_days)]
    for week in weeks:
        cells = []
        for cell in week:
            if cell.day is None:
                cells.append("   ")
            else:
                cells.append(f"{cell.day.day:>2}{markers[cell.tier]}")
        lines.append(" ".join(cells).rstrip())
    return "\n".join(lines)
