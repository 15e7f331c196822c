from __future__ import annotations

from typing import Sequence

import google.generativeai as genai
import requests
import structlog

from .config import RuntimeConfig
from .errors import AnalysisError
from .models import LogEntry

logger = structlog.get_logger(__name__)

NOT_ENOUGH_DATA = "Not enough data to analyze. Please choose a period that has entries."
SERVICE_UNREACHABLE = "Could not reach the AI service. Please try again later."
OLLAMA_TIMEOUT_SECONDS = 120


def format_logs_for_prompt(entries: Sequence[LogEntry]) -> str:
    if not entries:
        return "No data to analyze."

    ordered = sorted(entries, key=lambda entry: entry.date)
    blocks = []
    for entry in ordered:
        if entry.woke_up_at_night and entry.night_wakings:
            wakings = f"{len(entry.night_wakings)} time(s): " + "; ".join(
                f"(woke at {w.wake_time or '?'}, back to sleep at {w.back_to_sleep_time or '?'})"
                for w in entry.night_wakings
            )
        else:
            wakings = "Did not wake up"

        if entry.had_seizure and entry.seizures:
            seizures = f"{len(entry.seizures)}: " + "; ".join(
                f"{s.start_time or '?'}-{s.end_time or '?'}" for s in entry.seizures
            )
        else:
            seizures = "None"

        blocks.append(
            "\n".join(
                [
                    f"Date: {entry.date}",
                    f"- Went to bed: {entry.bedtime}",
                    f"- Woke up: {entry.wakeup_time}",
                    f"- Night wakings: {wakings}",
                    f"- Wake-up: {'Early' if entry.is_early_wakeup else 'Normal'}",
                    f"- Seizures: {seizures}",
                    f"- Possible trigger: {entry.trigger or 'None'}",
                    f"- Morning medication: {entry.morning_meds.name} ({entry.morning_meds.dosage})",
                    f"- Evening medication: {entry.evening_meds.name} ({entry.evening_meds.dosage})",
                    f"- Notes: {entry.notes or 'No notes'}",
                ]
            )
        )

    return (
        "Sleep diary of a child with epilepsy for the period "
        f"{ordered[0].date} to {ordered[-1].date}:\n\n" + "\n\n".join(blocks)
    )


def build_analysis_prompt(entries: Sequence[LogEntry]) -> str:
    return (
        "You are an empathetic assistant helping a caregiver review the sleep diary of a child "
        "with epilepsy. Give a short, structured and clear overview of the data below. "
        "Do not give medical advice or diagnoses, and stress that this information should be "
        "shown to the treating doctor.\n\n"
        f"{format_logs_for_prompt(entries)}\n\n"
        "Your answer must include:\n"
        "1. Overall summary: how many days were analyzed, how many had seizures, night wakings "
        "or early wake-ups.\n"
        "2. Night wakings: are they linked to seizures, early wake-ups or anything in the notes?\n"
        "3. Trends: are seizures, wakings or early wake-ups becoming more or less frequent?\n"
        "4. Key observations from the notes and triggers, if any.\n"
        "5. Recommendation: remind the reader to discuss the results with the doctor."
    )


class AnalysisClient:
    """Sends a date range of diary entries to a language model.

    Never touches the store; callers decide what to do with the text.
    """

    def __init__(self, provider: str, model: str, api_key: str = "", endpoint: str = ""):
        self.provider = provider.strip().lower()
        self.model = model.strip()
        self.api_key = api_key.strip()
        self.endpoint = endpoint.strip().rstrip("/")

    @classmethod
    def from_config(cls, config: RuntimeConfig) -> "AnalysisClient":
        return cls(
            provider=config.ai_provider,
            model=config.model,
            api_key=config.gemini_api_key,
            endpoint=config.ollama_base_url,
        )

    def generate_analysis(self, entries: Sequence[LogEntry]) -> str:
        if not entries:
            return NOT_ENOUGH_DATA
        if not self.model:
            raise AnalysisError("Model is required.")

        prompt = build_analysis_prompt(entries)
        logger.info("analysis_requested", provider=self.provider, model=self.model, days=len(entries))

        if self.provider == "gemini":
            if not self.api_key:
                raise AnalysisError("GEMINI_API_KEY is not set.")
            text = self._call_gemini(prompt)
        elif self.provider == "ollama":
            text = self._call_ollama(prompt)
        else:
            raise AnalysisError(f"Unsupported provider: {self.provider}")

        text = text.strip()
        if not text:
            raise AnalysisError("The AI service returned an empty answer.")
        return text

    def _call_gemini(self, prompt: str) -> str:
        try:
            genai.configure(api_key=self.api_key)
            model = genai.GenerativeModel(self.model)
            response = model.generate_content(prompt)
            return response.text
        except Exception as exc:  # noqa: BLE001
            logger.error("gemini_request_failed", error=str(exc))
            raise AnalysisError(SERVICE_UNREACHABLE) from exc

    def _call_ollama(self, prompt: str) -> str:
        base_url = self.endpoint or RuntimeConfig.ollama_base_url
        try:
            response = requests.post(
                f"{base_url}/api/generate",
                json={"model": self.model, "prompt": prompt, "stream": False},
                timeout=OLLAMA_TIMEOUT_SECONDS,
            )
            response.raise_for_status()
            payload = response.json()
        except (requests.RequestException, ValueError) as exc:
            logger.error("ollama_request_failed", url=base_url, error=str(exc))
            raise AnalysisError(SERVICE_UNREACHABLE) from exc

        text = payload.get("response") if isinstance(payload, dict) else None
        if not isinstance(text, str):
            raise AnalysisError("The AI service returned an unexpected response.")
        return text
