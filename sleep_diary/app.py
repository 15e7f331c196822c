from __future__ import annotations

import argparse
import sys
import time
from dataclasses import replace
from datetime import date, datetime, timedelta
from pathlib import Path
from typing import Callable, Sequence, TextIO, TypeVar

import structlog

from . import __version__
from .ai import AnalysisClient
from .calendar_grid import month_grid, render_month, tier_counts
from .classifier import DayFactors, classify
from .config import RuntimeConfig
from .entries import (
    DEFAULT_BEDTIME,
    DEFAULT_WAKEUP_TIME,
    append_tag,
    apply_template,
    build_log_entry,
    normalize_hhmm,
    parse_date,
    resize,
    toggle_gate,
)
from .errors import SleepDiaryError
from .export import default_export_filename, restore_backup, write_backup, write_csv
from .log import configure_logging
from .models import FactorSet, LogEntry, Medication, MedicationTemplate, NightWaking, Seizure, Tier
from .paths import backup_path, ensure_directories, exports_directory, store_path
from .reminders import LogNotifier, Permission, ReminderScheduler
from .report import build_report, format_duration, sleep_duration
from .store import DiaryStore

logger = structlog.get_logger(__name__)

T = TypeVar("T")

DEFAULT_REPORT_DAYS = 7
SCALAR_SETTINGS = {
    "targetWakeupTime": "target_wakeup_time",
    "morningReminder": "morning_reminder",
    "eveningReminder": "evening_reminder",
}
TIER_FACTOR_FIELDS = {
    "red": "red_day_factors",
    "orange": "orange_day_factors",
    "yellow": "yellow_day_factors",
}


class ConsoleNotifier:
    def __init__(self, stream: TextIO | None = None):
        self._stream = stream or sys.stdout

    def notify(self, title: str, message: str, tag: str) -> None:
        stamp = datetime.now().strftime("%H:%M")
        print(f"[{stamp}] {title}: {message}", file=self._stream, flush=True)


def create_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="sleep-diary",
        description="Sleep, medication and seizure diary.",
    )
    parser.add_argument("--version", action="store_true", help="Print app version and exit")
    parser.add_argument("--data-dir", type=Path, default=None, help="Directory holding store.json")
    sub = parser.add_subparsers(dest="command")

    log_cmd = sub.add_parser("log", help="Add or update the entry for a day")
    log_cmd.add_argument("date", nargs="?", default=None, help="YYYY-MM-DD (default: today)")
    log_cmd.add_argument("--bedtime")
    log_cmd.add_argument("--wakeup")
    log_cmd.add_argument("--morning-med", help="Morning medication name or template name")
    log_cmd.add_argument("--morning-dose")
    log_cmd.add_argument("--evening-med", help="Evening medication name or template name")
    log_cmd.add_argument("--evening-dose")
    log_cmd.add_argument(
        "--waking",
        action="append",
        metavar="HH:MM-HH:MM",
        help="Night waking, repeatable; either time may be left blank",
    )
    log_cmd.add_argument("--wakings", type=int, metavar="N", help="Number of night wakings")
    log_cmd.add_argument("--woke-up", dest="woke_up", action="store_const", const=True, default=None)
    log_cmd.add_argument(
        "--no-woke-up",
        "--no-wakings",
        dest="woke_up",
        action="store_const",
        const=False,
        help="Clear night wakings",
    )
    log_cmd.add_argument(
        "--seizure",
        action="append",
        metavar="HH:MM-HH:MM",
        help="Seizure, repeatable; either time may be left blank",
    )
    log_cmd.add_argument("--seizures", type=int, metavar="N", help="Number of seizures")
    log_cmd.add_argument("--had-seizure", dest="had_seizure", action="store_const", const=True, default=None)
    log_cmd.add_argument(
        "--no-had-seizure",
        "--no-seizures",
        dest="had_seizure",
        action="store_const",
        const=False,
        help="Clear seizures",
    )
    log_cmd.add_argument("--notes")
    log_cmd.add_argument("--trigger")
    log_cmd.add_argument("--note-tag", action="append", default=[], help="Append a #tag to the notes")
    log_cmd.add_argument("--trigger-tag", action="append", default=[], help="Append a #tag to the trigger")

    show_cmd = sub.add_parser("show", help="Show one day or the most recent entries")
    show_cmd.add_argument("date", nargs="?", default=None)
    show_cmd.add_argument("--limit", type=int, default=7)

    delete_cmd = sub.add_parser("delete", help="Delete the entry for a day")
    delete_cmd.add_argument("date")

    cal_cmd = sub.add_parser("calendar", help="Month view with day tiers")
    cal_cmd.add_argument("month", nargs="?", default=None, help="YYYY-MM (default: this month)")

    for name, help_text in (
        ("report", "Summary statistics for a period"),
        ("export", "Write a CSV table for a period"),
        ("analyze", "Ask the AI service to review a period"),
    ):
        cmd = sub.add_parser(name, help=help_text)
        cmd.add_argument("--start", default=None, help="YYYY-MM-DD (default: a week ago)")
        cmd.add_argument("--end", default=None, help="YYYY-MM-DD (default: today)")
        if name == "export":
            cmd.add_argument("--output", type=Path, default=None)

    backup_cmd = sub.add_parser("backup", help="Write a JSON backup of the whole diary")
    backup_cmd.add_argument("--output", type=Path, default=None)

    restore_cmd = sub.add_parser("restore", help="Replace the diary with a JSON backup")
    restore_cmd.add_argument("file", type=Path)
    restore_cmd.add_argument("--yes", action="store_true", help="Do not ask for confirmation")

    settings_cmd = sub.add_parser("settings", help="Show or change settings")
    settings_sub = settings_cmd.add_subparsers(dest="settings_command")
    settings_sub.add_parser("show")
    set_cmd = settings_sub.add_parser("set")
    set_cmd.add_argument("key", choices=sorted([*SCALAR_SETTINGS, "notificationsEnabled"]))
    set_cmd.add_argument("value")
    factors_cmd = settings_sub.add_parser("factors")
    factors_cmd.add_argument("tier", choices=sorted(TIER_FACTOR_FIELDS))
    factors_cmd.add_argument("--seizure", action="store_true")
    factors_cmd.add_argument("--night-wakings", action="store_true")
    factors_cmd.add_argument("--early-wakeup", action="store_true")
    med_cmd = settings_sub.add_parser("add-medication")
    med_cmd.add_argument("name")
    med_cmd.add_argument("dosage")
    tag_cmd = settings_sub.add_parser("add-tag")
    tag_cmd.add_argument("kind", choices=["note", "trigger"])
    tag_cmd.add_argument("tag")

    remind_cmd = sub.add_parser("remind", help="Run the medication reminder loop")
    remind_cmd.add_argument(
        "--permission",
        choices=[p.value for p in Permission],
        default=Permission.GRANTED.value,
    )
    remind_cmd.add_argument("--once", action="store_true", help="Run a single check and exit")

    return parser


def main(argv: list[str] | None = None) -> int:
    parser = create_parser()
    args = parser.parse_args(argv)
    if args.version:
        print(__version__)
        return 0
    if not args.command:
        parser.print_help()
        return 0

    config = RuntimeConfig.from_env()
    configure_logging(config.log_level, config.log_json)

    store = DiaryStore.open(store_path(args.data_dir))
    logger.debug("command_started", command=args.command, store=str(store.kv.path))
    handlers = {
        "log": _cmd_log,
        "show": _cmd_show,
        "delete": _cmd_delete,
        "calendar": _cmd_calendar,
        "report": _cmd_report,
        "export": _cmd_export,
        "analyze": _cmd_analyze,
        "backup": _cmd_backup,
        "restore": _cmd_restore,
        "settings": _cmd_settings,
        "remind": _cmd_remind,
    }
    try:
        return handlers[args.command](store, args, config)
    except SleepDiaryError as exc:
        print(f"Error: {exc}", file=sys.stderr)
        return 1


def _cmd_log(store: DiaryStore, args: argparse.Namespace, config: RuntimeConfig) -> int:
    day = parse_date(args.date or date.today())
    existing = store.get_log(day)
    settings = store.settings

    morning = _medication(
        args.morning_med,
        args.morning_dose,
        existing.morning_meds if existing else None,
        settings.medications,
    )
    evening = _medication(
        args.evening_med,
        args.evening_dose,
        existing.evening_meds if existing else None,
        settings.medications,
    )

    notes = args.notes if args.notes is not None else (existing.notes if existing else "")
    trigger = args.trigger if args.trigger is not None else (existing.trigger if existing else "")
    for tag in args.note_tag:
        notes = append_tag(notes, tag)
    for tag in args.trigger_tag:
        trigger = append_tag(trigger, tag)

    woke_up, wakings = _gated_items(
        existing.woke_up_at_night if existing else False,
        existing.night_wakings if existing else (),
        gate=args.woke_up,
        timed=args.waking,
        count=args.wakings,
        factory=NightWaking,
    )
    had_seizure, seizures = _gated_items(
        existing.had_seizure if existing else False,
        existing.seizures if existing else (),
        gate=args.had_seizure,
        timed=args.seizure,
        count=args.seizures,
        factory=Seizure,
    )

    entry = build_log_entry(
        day,
        bedtime=args.bedtime or (existing.bedtime if existing else DEFAULT_BEDTIME),
        wakeup_time=args.wakeup or (existing.wakeup_time if existing else DEFAULT_WAKEUP_TIME),
        target_wakeup_time=settings.target_wakeup_time,
        morning_meds=morning,
        evening_meds=evening,
        woke_up_at_night=woke_up,
        night_wakings=wakings,
        had_seizure=had_seizure,
        seizures=seizures,
        notes=notes,
        trigger=trigger,
    )
    saved = store.add_or_update_log(entry)
    tier = classify(entry, DayFactors.from_settings(settings))
    print(f"Saved {entry.date} ({tier.label}).")
    if not saved:
        _warn_unsaved()
    return 0


def _cmd_show(store: DiaryStore, args: argparse.Namespace, config: RuntimeConfig) -> int:
    factors = DayFactors.from_settings(store.settings)
    if args.date:
        entry = store.get_log(parse_date(args.date))
        if entry is None:
            print(f"No entry for {parse_date(args.date).isoformat()}.")
            return 1
        print(_describe_entry(entry, classify(entry, factors)))
        return 0

    logs = store.logs[: max(0, args.limit)]
    if not logs:
        print("The diary is empty.")
        return 0
    for entry in logs:
        duration = format_duration(sleep_duration(entry.bedtime, entry.wakeup_time))
        tier = classify(entry, factors)
        print(f"{entry.date}  {entry.bedtime}-{entry.wakeup_time}  {duration:>7}  {tier.value}")
    return 0


def _cmd_delete(store: DiaryStore, args: argparse.Namespace, config: RuntimeConfig) -> int:
    day = parse_date(args.date)
    if store.get_log(day) is None:
        print(f"No entry for {day.isoformat()}.")
        return 1
    saved = store.delete_log(day)
    print(f"Deleted {day.isoformat()}.")
    if not saved:
        _warn_unsaved()
    return 0


def _cmd_calendar(store: DiaryStore, args: argparse.Namespace, config: RuntimeConfig) -> int:
    if args.month:
        try:
            first = datetime.strptime(args.month, "%Y-%m").date()
        except ValueError as exc:
            raise SleepDiaryError(f"Invalid month: expected YYYY-MM, got {args.month!r}.") from exc
    else:
        first = date.today().replace(day=1)

    weeks = month_grid(first.year, first.month, store.logs_by_date(), DayFactors.from_settings(store.settings))
    print(render_month(first.year, first.month, weeks))
    print()
    counts = tier_counts(weeks)
    for tier in (Tier.RED, Tier.ORANGE, Tier.YELLOW, Tier.GREEN):
        print(f"  {tier.value[0].upper()} {tier.label}: {counts[tier]}")
    return 0


def _cmd_report(store: DiaryStore, args: argparse.Namespace, config: RuntimeConfig) -> int:
    start, end = _period(args.start, args.end)
    summary = build_report(store.logs, start, end)
    if not summary.has_data:
        print(f"No entries between {start.isoformat()} and {end.isoformat()}.")
    for label, value in summary.as_text_rows():
        print(f"{label:<24} {value}")
    return 0


def _cmd_export(store: DiaryStore, args: argparse.Namespace, config: RuntimeConfig) -> int:
    start, end = _period(args.start, args.end)
    entries = store.logs_between(start, end)
    if not entries:
        print(f"No entries between {start.isoformat()} and {end.isoformat()}; nothing exported.")
        return 1
    output = args.output or exports_directory(args.data_dir) / default_export_filename(start, end)
    count = write_csv(entries, output)
    print(f"Exported {count} day(s) to {output}.")
    return 0


def _cmd_analyze(store: DiaryStore, args: argparse.Namespace, config: RuntimeConfig) -> int:
    start, end = _period(args.start, args.end)
    client = AnalysisClient.from_config(config)
    print(client.generate_analysis(store.logs_between(start, end)))
    return 0


def _cmd_backup(store: DiaryStore, args: argparse.Namespace, config: RuntimeConfig) -> int:
    if args.output is None:
        ensure_directories(args.data_dir)
    path = write_backup(store, args.output or backup_path(date.today(), args.data_dir))
    print(f"Backup written to {path}.")
    return 0


def _cmd_restore(store: DiaryStore, args: argparse.Namespace, config: RuntimeConfig) -> int:
    if not args.yes:
        try:
            answer = input("Restoring replaces every entry and all settings. Continue? [y/N] ")
        except EOFError:
            answer = ""
        if answer.strip().lower() not in {"y", "yes"}:
            print("Restore cancelled.")
            return 1
    count, saved = restore_backup(store, args.file)
    print(f"Restored {count} entr{'y' if count == 1 else 'ies'} and settings.")
    if not saved:
        _warn_unsaved()
    return 0


def _cmd_settings(store: DiaryStore, args: argparse.Namespace, config: RuntimeConfig) -> int:
    settings = store.settings
    command = args.settings_command or "show"

    if command == "set":
        if args.key == "notificationsEnabled":
            value = args.value.strip().lower()
            if value not in {"true", "false", "1", "0", "on", "off"}:
                raise SleepDiaryError("notificationsEnabled must be true or false.")
            settings = replace(settings, notifications_enabled=value in {"true", "1", "on"})
        else:
            settings = replace(settings, **{SCALAR_SETTINGS[args.key]: normalize_hhmm(args.value, args.key)})
    elif command == "factors":
        factor_set = FactorSet(
            seizure=args.seizure,
            night_wakings=args.night_wakings,
            early_wakeup=args.early_wakeup,
        )
        settings = replace(settings, **{TIER_FACTOR_FIELDS[args.tier]: factor_set})
    elif command == "add-medication":
        template = MedicationTemplate(id=args.name.strip().lower(), name=args.name.strip(), dosage=args.dosage.strip())
        others = tuple(m for m in settings.medications if m.id != template.id)
        settings = replace(settings, medications=(*others, template))
    elif command == "add-tag":
        tag = args.tag.strip()
        tag = tag if tag.startswith("#") else f"#{tag}"
        field_name = "note_tags" if args.kind == "note" else "trigger_tags"
        current = getattr(settings, field_name)
        if tag not in current:
            settings = replace(settings, **{field_name: (*current, tag)})

    saved = store.update_settings(settings) if command != "show" else True

    for key, value in settings.to_dict().items():
        print(f"{key:<22} {value}")
    if not saved:
        _warn_unsaved()
    return 0


def _cmd_remind(store: DiaryStore, args: argparse.Namespace, config: RuntimeConfig) -> int:
    if not store.settings.notifications_enabled:
        print("Notifications are disabled; enable them with 'settings set notificationsEnabled true'.")
        return 1
    notifier = ConsoleNotifier() if sys.stdout.isatty() else LogNotifier()
    scheduler = ReminderScheduler(store, notifier, permission=Permission(args.permission))
    if args.once:
        scheduler.check()
        return 0

    print("Reminder loop running, press Ctrl+C to stop.")
    scheduler.start()
    try:
        while True:
            time.sleep(1)
            if scheduler.active is not None:
                answer = input("Press Enter to dismiss or type 's' to snooze: ")
                if answer.strip().lower().startswith("s"):
                    scheduler.snooze()
                else:
                    scheduler.dismiss()
    except (KeyboardInterrupt, EOFError):
        print()
    finally:
        scheduler.stop()
    return 0


def _medication(
    name: str | None,
    dosage: str | None,
    existing: Medication | None,
    templates: Sequence[MedicationTemplate],
) -> Medication:
    base = existing or Medication()
    if name is not None:
        for template in templates:
            if template.name.lower() == name.strip().lower() or template.id == name.strip().lower():
                base = apply_template(template)
                break
        else:
            base = Medication(name=name.strip(), dosage=base.dosage)
    if dosage is not None:
        base = Medication(name=base.name, dosage=dosage.strip())
    return base


def _gated_items(
    enabled: bool,
    items: Sequence[T],
    gate: bool | None,
    timed: list[str] | None,
    count: int | None,
    factory: Callable[..., T],
) -> tuple[bool, list[T]]:
    current = list(items) if enabled else []
    if timed:
        current = [factory(*_time_range(value)) for value in timed]
        enabled = True
    if count is not None:
        if count < 0:
            raise SleepDiaryError("A count must not be negative.")
        current = resize(current, count, factory)
        enabled = count > 0
    if gate is not None:
        enabled = gate
    return enabled, toggle_gate(enabled, current, factory)


def _time_range(value: str) -> tuple[str, str]:
    start, sep, end = value.partition("-")
    if not sep:
        raise SleepDiaryError(f"Expected HH:MM-HH:MM, got {value!r}.")
    return _optional_hhmm(start, "start time"), _optional_hhmm(end, "end time")


def _optional_hhmm(value: str, field_name: str) -> str:
    return normalize_hhmm(value, field_name) if value.strip() else ""


def _warn_unsaved() -> None:
    print("Warning: the diary file could not be written; changes are kept for this session only.")


def _period(start: str | None, end: str | None) -> tuple[date, date]:
    end_day = parse_date(end) if end else date.today()
    start_day = parse_date(start) if start else end_day - timedelta(days=DEFAULT_REPORT_DAYS)
    if start_day > end_day:
        raise SleepDiaryError("The start date must not be after the end date.")
    return start_day, end_day


def _describe_entry(entry: LogEntry, tier: Tier) -> str:
    lines = [
        f"Date:            {entry.date} ({tier.label})",
        f"Sleep:           {entry.bedtime} - {entry.wakeup_time} "
        f"({format_duration(sleep_duration(entry.bedtime, entry.wakeup_time))})",
        f"Morning meds:    {entry.morning_meds.name} {entry.morning_meds.dosage}".rstrip(),
        f"Evening meds:    {entry.evening_meds.name} {entry.evening_meds.dosage}".rstrip(),
    ]
    if entry.is_early_wakeup:
        lines.append("Early wake-up")
    if entry.woke_up_at_night:
        lines.append("Night wakings:   " + ", ".join(
            f"{w.wake_time or '?'}-{w.back_to_sleep_time or '?'}" for w in entry.night_wakings
        ))
    if entry.had_seizure:
        lines.append("Seizures:        " + ", ".join(
            f"{s.start_time or '?'}-{s.end_time or '?'}" for s in entry.seizures
        ))
    if entry.trigger:
        lines.append(f"Trigger:         {entry.trigger}")
    if entry.notes:
        lines.append(f"Notes:           {entry.notes}")
    return "\n".join(lines)


if __name__ == "__main__":
    sys.exit(main())
