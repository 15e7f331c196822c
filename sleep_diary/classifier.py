from __future__ import annotations

from dataclasses import dataclass

from .models import AppSettings, FactorSet, LogEntry, Tier


@dataclass(frozen=True)
class DayFactors:
    red: FactorSet
    orange: FactorSet
    yellow: FactorSet

    @classmethod
    def from_settings(cls, settings: AppSettings) -> "DayFactors":
        return cls(
            red=settings.red_day_factors,
            orange=settings.orange_day_factors,
            yellow=settings.yellow_day_factors,
        )


def classify(entry: LogEntry | None, factors: DayFactors) -> Tier:
    """Severity tier of a calendar day.

    Red is checked before orange before yellow and the first match wins.
    A day with an entry that matches no tier is green.
    """
    if entry is None:
        return Tier.NONE
    for tier, factor_set in (
        (Tier.RED, factors.red),
        (Tier.ORANGE, factors.orange),
        (Tier.YELLOW, factors.yellow),
    ):
        if matches(entry, factor_set):
            return tier
    return Tier.GREEN


def matches(entry: LogEntry, factor_set: FactorSet) -> bool:
    return (
        (factor_set.seizure and entry.had_seizure)
        or (factor_set.night_wakings and entry.woke_up_at_night)
        or (factor_set.early_wakeup and entry.is_early_wakeup)
    )
