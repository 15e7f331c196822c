from __future__ import annotations


class SleepDiaryError(Exception):
    """Base class for errors surfaced to the user."""


class InvalidEntryError(SleepDiaryError, ValueError):
    pass


class BackupFormatError(SleepDiaryError):
    pass


class AnalysisError(SleepDiaryError):
    pass
