from __future__ import annotations

import csv
import io
import json
import tempfile
import unittest
from pathlib import Path

from sleep_diary.errors import BackupFormatError
from sleep_diary.export import (
    EXPORT_COLUMNS,
    build_backup,
    csv_text,
    default_export_filename,
    export_rows,
    parse_backup_text,
    read_backup,
    restore_backup,
    write_backup,
    write_csv,
)
from sleep_diary.models import DEFAULT_SETTINGS, FactorSet, LogEntry, Medication, NightWaking
from sleep_diary.store import DiaryStore


def _entry(day: str, **kwargs) -> LogEntry:
    return LogEntry(date=day, bedtime="22:00", wakeup_time="06:30", **kwargs)


class CsvExportTests(unittest.TestCase):
    def test_rows(self) -> None:
        rows = export_rows(
            [
                _entry(
                    "2026-01-01",
                    morning_meds=Medication("Valproate", "300 mg"),
                    evening_meds=Medication("Valproate", "300 mg"),
                    woke_up_at_night=True,
                    night_wakings=(NightWaking("02:00", "02:30"),),
                    had_seizure=True,
                )
            ]
        )
        self.assertEqual(
            rows[0],
            {
                "Date": "2026-01-01",
                "Sleep duration": "8h 30m",
                "Night wakings": "1",
                "Total dosage": "600 mg",
                "Seizure": "yes",
            },
        )

    def test_csv_text_has_header(self) -> None:
        text = csv_text([_entry("2026-01-01"), _entry("2026-01-02")])
        reader = list(csv.reader(io.StringIO(text)))
        self.assertEqual(tuple(reader[0]), EXPORT_COLUMNS)
        self.assertEqual(len(reader), 3)
        self.assertEqual(reader[2][4], "no")

    def test_write_csv_to_path(self) -> None:
        with tempfile.TemporaryDirectory() as tmp_dir:
            target = Path(tmp_dir) / "out" / default_export_filename("2026-01-01", "2026-01-07")
            count = write_csv([_entry("2026-01-01")], target)
            self.assertEqual(count, 1)
            self.assertEqual(target.name, "sleep_report_2026-01-01_to_2026-01-07.csv")
            self.assertIn("2026-01-01", target.read_text(encoding="utf-8"))


class BackupTests(unittest.TestCase):
    def test_backup_and_restore_replace_everything(self) -> None:
        with tempfile.TemporaryDirectory() as tmp_dir:
            source = DiaryStore.open(Path(tmp_dir) / "a.json")
            source.add_or_update_log(_entry("2026-01-01", notes="from backup"))
            source.update_settings(
                DEFAULT_SETTINGS.with_changes(red_day_factors=FactorSet(night_wakings=True))
            )
            backup_file = write_backup(source, Path(tmp_dir) / "backup.json")

            target = DiaryStore.open(Path(tmp_dir) / "b.json")
            target.add_or_update_log(_entry("2026-02-01"))
            restored, saved = restore_backup(target, backup_file)

            self.assertEqual(restored, 1)
            self.assertTrue(saved)
            self.assertEqual([entry.date for entry in target.logs], ["2026-01-01"])
            self.assertEqual(target.settings.red_day_factors, FactorSet(night_wakings=True))

            reopened = DiaryStore.open(Path(tmp_dir) / "b.json")
            self.assertEqual(reopened.get_log("2026-01-01").notes, "from backup")

    def test_backup_document_keys(self) -> None:
        with tempfile.TemporaryDirectory() as tmp_dir:
            store = DiaryStore.open(Path(tmp_dir) / "a.json")
            payload = build_backup(store)
            self.assertIn("sleepLogs", payload)
            self.assertIn("appSettings", payload)
            self.assertIn("exportedAt", payload)

    def test_invalid_backups_leave_store_untouched(self) -> None:
        bad_payloads = [
            "not json at all",
            json.dumps([1, 2, 3]),
            json.dumps({"sleepLogs": []}),
            json.dumps({"appSettings": {}}),
            json.dumps({"sleepLogs": {}, "appSettings": {}}),
            json.dumps({"sleepLogs": [], "appSettings": []}),
            json.dumps({"sleepLogs": [{"bedtime": "21:00"}], "appSettings": {}}),
        ]
        with tempfile.TemporaryDirectory() as tmp_dir:
            path = Path(tmp_dir) / "store.json"
            store = DiaryStore.open(path)
            store.add_or_update_log(_entry("2026-01-01"))
            before = path.read_text(encoding="utf-8")

            for payload in bad_payloads:
                with self.subTest(payload=payload):
                    backup_file = Path(tmp_dir) / "backup.json"
                    backup_file.write_text(payload, encoding="utf-8")
                    with self.assertRaises(BackupFormatError):
                        restore_backup(store, backup_file)
                    self.assertEqual(path.read_text(encoding="utf-8"), before)
                    self.assertEqual([entry.date for entry in store.logs], ["2026-01-01"])

    def test_missing_backup_file(self) -> None:
        with tempfile.TemporaryDirectory() as tmp_dir:
            with self.assertRaises(BackupFormatError):
                read_backup(Path(tmp_dir) / "nope.json")

    def test_restore_accepts_string_path(self) -> None:
        with tempfile.TemporaryDirectory() as tmp_dir:
            source = DiaryStore.open(Path(tmp_dir) / "a.json")
            source.add_or_update_log(_entry("2026-01-01"))
            backup_file = write_backup(source, Path(tmp_dir) / "backup.json")

            target = DiaryStore.open(Path(tmp_dir) / "b.json")
            restored, saved = restore_backup(target, str(backup_file))
            self.assertEqual((restored, saved), (1, True))
            self.assertIsNotNone(target.get_log("2026-01-01"))

    def test_restore_keeps_one_entry_per_date(self) -> None:
        payload = {
            "sleepLogs": [
                _entry("2026-01-01", notes="first").to_dict(),
                _entry("2026-01-03").to_dict(),
                _entry("2026-01-01", notes="second").to_dict(),
                _entry("2026-01-02").to_dict(),
            ],
            "appSettings": {},
        }
        with tempfile.TemporaryDirectory() as tmp_dir:
            backup_file = Path(tmp_dir) / "backup.json"
            backup_file.write_text(json.dumps(payload), encoding="utf-8")
            store = DiaryStore.open(Path(tmp_dir) / "store.json")

            restored, _ = restore_backup(store, backup_file)

            self.assertEqual(restored, 3)
            self.assertEqual(
                [entry.date for entry in store.logs],
                ["2026-01-03", "2026-01-02", "2026-01-01"],
            )
            self.assertEqual(store.get_log("2026-01-01").notes, "second")
            reopened = DiaryStore.open(Path(tmp_dir) / "store.json")
            self.assertEqual(len(reopened.logs), 3)

    def test_old_settings_in_backup_are_completed(self) -> None:
        payload = json.dumps({"sleepLogs": [], "appSettings": {"targetWakeupTime": "06:00"}})
        entries, settings = parse_backup_text(payload)
        self.assertEqual(entries, [])
        self.assertEqual(settings.target_wakeup_time, "06:00")
        self.assertEqual(settings.yellow_day_factors, DEFAULT_SETTINGS.yellow_day_factors)


if __name__ == "__main__":
    unittest.main()
