from __future__ import annotations

import unittest
from unittest import mock

import requests

from sleep_diary.ai import (
    NOT_ENOUGH_DATA,
    SERVICE_UNREACHABLE,
    AnalysisClient,
    build_analysis_prompt,
    format_logs_for_prompt,
)
from sleep_diary.config import RuntimeConfig
from sleep_diary.errors import AnalysisError
from sleep_diary.models import LogEntry, Medication, NightWaking, Seizure


def _entries() -> list[LogEntry]:
    return [
        LogEntry(
            date="2026-02-11",
            bedtime="21:30",
            wakeup_time="06:10",
            morning_meds=Medication("Valproate", "300 mg"),
            woke_up_at_night=True,
            night_wakings=(NightWaking("02:00", "02:40"),),
            had_seizure=True,
            seizures=(Seizure("02:05", "02:07"),),
            trigger="#fever",
            is_early_wakeup=True,
        ),
        LogEntry(date="2026-02-10", bedtime="21:00", wakeup_time="07:00", notes="calm day"),
    ]


class PromptTests(unittest.TestCase):
    def test_format_logs_orders_and_describes_days(self) -> None:
        text = format_logs_for_prompt(_entries())
        self.assertIn("for the period 2026-02-10 to 2026-02-11", text)
        self.assertLess(text.index("Date: 2026-02-10"), text.index("Date: 2026-02-11"))
        self.assertIn("1 time(s): (woke at 02:00, back to sleep at 02:40)", text)
        self.assertIn("- Seizures: 1: 02:05-02:07", text)
        self.assertIn("- Wake-up: Early", text)
        self.assertIn("- Notes: calm day", text)
        self.assertIn("- Night wakings: Did not wake up", text)

    def test_format_logs_empty(self) -> None:
        self.assertEqual(format_logs_for_prompt([]), "No data to analyze.")

    def test_prompt_mentions_doctor(self) -> None:
        self.assertIn("doctor", build_analysis_prompt(_entries()))


class ClientTests(unittest.TestCase):
    def test_empty_range_skips_the_call(self) -> None:
        client = AnalysisClient("gemini", "gemini-2.5-flash", api_key="k")
        with mock.patch("sleep_diary.ai.genai") as genai:
            self.assertEqual(client.generate_analysis([]), NOT_ENOUGH_DATA)
            genai.GenerativeModel.assert_not_called()

    def test_gemini_success(self) -> None:
        client = AnalysisClient("gemini", "gemini-2.5-flash", api_key="secret")
        with mock.patch("sleep_diary.ai.genai") as genai:
            genai.GenerativeModel.return_value.generate_content.return_value.text = "  Summary text \n"
            result = client.generate_analysis(_entries())

        self.assertEqual(result, "Summary text")
        genai.configure.assert_called_once_with(api_key="secret")
        genai.GenerativeModel.assert_called_once_with("gemini-2.5-flash")

    def test_gemini_failure_is_wrapped(self) -> None:
        client = AnalysisClient("gemini", "gemini-2.5-flash", api_key="secret")
        with mock.patch("sleep_diary.ai.genai") as genai:
            genai.GenerativeModel.return_value.generate_content.side_effect = RuntimeError("403")
            with self.assertRaises(AnalysisError) as ctx:
                client.generate_analysis(_entries())
        self.assertEqual(str(ctx.exception), SERVICE_UNREACHABLE)
        self.assertIsInstance(ctx.exception.__cause__, RuntimeError)

    def test_gemini_requires_key(self) -> None:
        client = AnalysisClient("gemini", "gemini-2.5-flash", api_key="")
        with self.assertRaises(AnalysisError):
            client.generate_analysis(_entries())

    def test_ollama_success(self) -> None:
        client = AnalysisClient("ollama", "llama3.1", endpoint="http://localhost:11434/")
        response = mock.Mock()
        response.json.return_value = {"response": "Local answer"}
        with mock.patch("sleep_diary.ai.requests.post", return_value=response) as post:
            self.assertEqual(client.generate_analysis(_entries()), "Local answer")

        url = post.call_args.args[0]
        self.assertEqual(url, "http://localhost:11434/api/generate")
        self.assertEqual(post.call_args.kwargs["json"]["model"], "llama3.1")
        self.assertFalse(post.call_args.kwargs["json"]["stream"])

    def test_ollama_network_error(self) -> None:
        client = AnalysisClient("ollama", "llama3.1")
        with mock.patch(
            "sleep_diary.ai.requests.post",
            side_effect=requests.ConnectionError("refused"),
        ):
            with self.assertRaises(AnalysisError):
                client.generate_analysis(_entries())

    def test_unsupported_provider(self) -> None:
        with self.assertRaises(AnalysisError):
            AnalysisClient("carrier-pigeon", "m").generate_analysis(_entries())

    def test_from_config(self) -> None:
        config = RuntimeConfig.from_env(
            {"SLEEP_DIARY_AI_PROVIDER": "ollama", "OLLAMA_MODEL": "mistral", "OLLAMA_BASE_URL": "http://box:1"}
        )
        client = AnalysisClient.from_config(config)
        self.assertEqual(client.provider, "ollama")
        self.assertEqual(client.model, "mistral")
        self.assertEqual(client.endpoint, "http://box:1")


class ConfigTests(unittest.TestCase):
    def test_defaults(self) -> None:
        config = RuntimeConfig.from_env({})
        self.assertEqual(config.ai_provider, "gemini")
        self.assertEqual(config.model, "gemini-2.5-flash")
        self.assertEqual(config.gemini_api_key, "")
        self.assertEqual(config.log_level, "WARNING")

    def test_unknown_provider_falls_back(self) -> None:
        config = RuntimeConfig.from_env({"SLEEP_DIARY_AI_PROVIDER": "other", "GEMINI_API_KEY": " k "})
        self.assertEqual(config.ai_provider, "gemini")
        self.assertEqual(config.gemini_api_key, "k")


if __name__ == "__main__":
    unittest.main()
