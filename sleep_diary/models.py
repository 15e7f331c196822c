from __future__ import annotations

from dataclasses import dataclass, field, replace
from enum import Enum
from typing import Any, Mapping


class Tier(str, Enum):
    NONE = "none"
    GREEN = "green"
    YELLOW = "yellow"
    ORANGE = "orange"
    RED = "red"

    @property
    def label(self) -> str:
        return _TIER_LABELS[self]


_TIER_LABELS = {
    Tier.NONE: "No entry",
    Tier.GREEN: "Normal day",
    Tier.YELLOW: "Mild day",
    Tier.ORANGE: "Hard day",
    Tier.RED: "Severe day",
}


@dataclass(frozen=True)
class Medication:
    name: str = ""
    dosage: str = ""

    def to_dict(self) -> dict[str, str]:
        return {"name": self.name, "dosage": self.dosage}

    @classmethod
    def from_dict(cls, raw: Any) -> "Medication":
        if not isinstance(raw, Mapping):
            return cls()
        return cls(name=_text(raw.get("name")), dosage=_text(raw.get("dosage")))


@dataclass(frozen=True)
class NightWaking:
    wake_time: str = ""
    back_to_sleep_time: str = ""

    def to_dict(self) -> dict[str, str]:
        return {"wakeTime": self.wake_time, "backToSleepTime": self.back_to_sleep_time}

    @classmethod
    def from_dict(cls, raw: Any) -> "NightWaking":
        if not isinstance(raw, Mapping):
            return cls()
        return cls(
            wake_time=_text(raw.get("wakeTime")),
            back_to_sleep_time=_text(raw.get("backToSleepTime")),
        )


@dataclass(frozen=True)
class Seizure:
    start_time: str = ""
    end_time: str = ""

    def to_dict(self) -> dict[str, str]:
        return {"startTime": self.start_time, "endTime": self.end_time}

    @classmethod
    def from_dict(cls, raw: Any) -> "Seizure":
        if not isinstance(raw, Mapping):
            return cls()
        return cls(start_time=_text(raw.get("startTime")), end_time=_text(raw.get("endTime")))


@dataclass(frozen=True)
class LogEntry:
    """One diary day. ``date`` is both the identity and the lookup key."""

    date: str
    bedtime: str = ""
    wakeup_time: str = ""
    morning_meds: Medication = field(default_factory=Medication)
    evening_meds: Medication = field(default_factory=Medication)
    woke_up_at_night: bool = False
    night_wakings: tuple[NightWaking, ...] = ()
    had_seizure: bool = False
    seizures: tuple[Seizure, ...] = ()
    notes: str = ""
    trigger: str = ""
    # Snapshot of ``wakeup_time < target`` taken when the entry was saved.
    is_early_wakeup: bool = False

    @property
    def id(self) -> str:
        return self.date

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.date,
            "date": self.date,
            "bedtime": self.bedtime,
            "wakeupTime": self.wakeup_time,
            "morningMeds": self.morning_meds.to_dict(),
            "eveningMeds": self.evening_meds.to_dict(),
            "wokeUpAtNight": self.woke_up_at_night,
            "nightWakings": [w.to_dict() for w in self.night_wakings],
            "hadSeizure": self.had_seizure,
            "seizures": [s.to_dict() for s in self.seizures],
            "notes": self.notes,
            "trigger": self.trigger,
            "isEarlyWakeup": self.is_early_wakeup,
        }

    @classmethod
    def from_dict(cls, raw: Mapping[str, Any]) -> "LogEntry":
        if not isinstance(raw, Mapping):
            raise ValueError("Log entry must be an object.")
        day = _text(raw.get("date") or raw.get("id")).strip()
        if not day:
            raise ValueError("Log entry is missing its date.")

        woke_up = bool(raw.get("wokeUpAtNight", False))
        had_seizure = bool(raw.get("hadSeizure", False))
        wakings = tuple(NightWaking.from_dict(item) for item in _list(raw.get("nightWakings")))
        seizures = tuple(Seizure.from_dict(item) for item in _list(raw.get("seizures")))

        return cls(
            date=day,
            bedtime=_text(raw.get("bedtime")),
            wakeup_time=_text(raw.get("wakeupTime")),
            morning_meds=Medication.from_dict(raw.get("morningMeds")),
            evening_meds=Medication.from_dict(raw.get("eveningMeds")),
            woke_up_at_night=woke_up,
            night_wakings=wakings if woke_up else (),
            had_seizure=had_seizure,
            seizures=seizures if had_seizure else (),
            notes=_text(raw.get("notes")),
            trigger=_text(raw.get("trigger")),
            # Older blobs named this flag ``isRedDay``; it is not carried over.
            is_early_wakeup=bool(raw.get("isEarlyWakeup", False)),
        )


@dataclass(frozen=True)
class MedicationTemplate:
    id: str
    name: str
    dosage: str

    def to_dict(self) -> dict[str, str]:
        return {"id": self.id, "name": self.name, "dosage": self.dosage}

    @classmethod
    def from_dict(cls, raw: Any) -> "MedicationTemplate | None":
        if not isinstance(raw, Mapping):
            return None
        name = _text(raw.get("name")).strip()
        if not name:
            return None
        return cls(
            id=_text(raw.get("id")).strip() or name,
            name=name,
            dosage=_text(raw.get("dosage")),
        )


@dataclass(frozen=True)
class FactorSet:
    """Which conditions push a day into a tier. Disabled flags are ignored."""

    seizure: bool = False
    night_wakings: bool = False
    early_wakeup: bool = False

    @property
    def is_empty(self) -> bool:
        return not (self.seizure or self.night_wakings or self.early_wakeup)

    def to_dict(self) -> dict[str, bool]:
        return {
            "seizure": self.seizure,
            "nightWakings": self.night_wakings,
            "earlyWakeup": self.early_wakeup,
        }

    @classmethod
    def from_dict(cls, raw: Any, fallback: "FactorSet | None" = None) -> "FactorSet":
        if not isinstance(raw, Mapping):
            return fallback if fallback is not None else cls()
        return cls(
            seizure=bool(raw.get("seizure", False)),
            night_wakings=bool(raw.get("nightWakings", False)),
            early_wakeup=bool(raw.get("earlyWakeup", False)),
        )


@dataclass(frozen=True)
class AppSettings:
    target_wakeup_time: str = "07:00"
    morning_reminder: str = "08:00"
    evening_reminder: str = "20:00"
    notifications_enabled: bool = False
    medications: tuple[MedicationTemplate, ...] = ()
    note_tags: tuple[str, ...] = ("#good_mood", "#irritable", "#fever", "#new_food")
    trigger_tags: tuple[str, ...] = ("#lack_of_sleep", "#stress", "#missed_dose", "#illness")
    red_day_factors: FactorSet = FactorSet(seizure=True)
    orange_day_factors: FactorSet = FactorSet(night_wakings=True)
    yellow_day_factors: FactorSet = FactorSet(early_wakeup=True)

    def to_dict(self) -> dict[str, Any]:
        return {
            "targetWakeupTime": self.target_wakeup_time,
            "morningReminder": self.morning_reminder,
            "eveningReminder": self.evening_reminder,
            "notificationsEnabled": self.notifications_enabled,
            "medications": [m.to_dict() for m in self.medications],
            "noteTags": list(self.note_tags),
            "triggerTags": list(self.trigger_tags),
            "redDayFactors": self.red_day_factors.to_dict(),
            "orangeDayFactors": self.orange_day_factors.to_dict(),
            "yellowDayFactors": self.yellow_day_factors.to_dict(),
        }

    @classmethod
    def from_dict(cls, raw: Mapping[str, Any]) -> "AppSettings":
        """Build settings from an already merged record.

        Values of the wrong type fall back to the defaults field by field.
        """
        if not isinstance(raw, Mapping):
            return cls()
        defaults = cls()
        medications = tuple(
            template
            for template in (MedicationTemplate.from_dict(item) for item in _list(raw.get("medications")))
            if template is not None
        )
        return cls(
            target_wakeup_time=_text(raw.get("targetWakeupTime")) or defaults.target_wakeup_time,
            morning_reminder=_text(raw.get("morningReminder", defaults.morning_reminder)),
            evening_reminder=_text(raw.get("eveningReminder", defaults.evening_reminder)),
            notifications_enabled=bool(raw.get("notificationsEnabled", defaults.notifications_enabled)),
            medications=medications,
            note_tags=_tags(raw.get("noteTags"), defaults.note_tags),
            trigger_tags=_tags(raw.get("triggerTags"), defaults.trigger_tags),
            red_day_factors=FactorSet.from_dict(raw.get("redDayFactors"), defaults.red_day_factors),
            orange_day_factors=FactorSet.from_dict(
                raw.get("orangeDayFactors"), defaults.orange_day_factors
            ),
            yellow_day_factors=FactorSet.from_dict(
                raw.get("yellowDayFactors"), defaults.yellow_day_factors
            ),
        )

    def with_changes(self, **changes: Any) -> "AppSettings":
        return replace(self, **changes)


DEFAULT_SETTINGS = AppSettings()


def _text(value: Any) -> str:
    if value is None:
        return ""
    return value if isinstance(value, str) else str(value)


def _list(value: Any) -> list[Any]:
    return list(value) if isinstance(value, (list, tuple)) else []


def _tags(value: Any, fallback: tuple[str, ...]) -> tuple[str, ...]:
    if not isinstance(value, (list, tuple)):
        return fallback
    return tuple(str(tag).strip() for tag in value if str(tag).strip())
