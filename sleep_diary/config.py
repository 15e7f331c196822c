from __future__ import annotations

import os
from dataclasses import dataclass
from typing import Mapping

SUPPORTED_PROVIDERS = ("gemini", "ollama")


@dataclass(frozen=True)
class RuntimeConfig:
    ai_provider: str = "gemini"
    ai_model: str = "gemini-2.5-flash"
    gemini_api_key: str = ""
    ollama_base_url: str = "http://localhost:11434"
    ollama_model: str = "llama3.1"
    log_level: str = "WARNING"
    log_json: bool = False

    @classmethod
    def from_env(cls, environ: Mapping[str, str] | None = None) -> "RuntimeConfig":
        env = os.environ if environ is None else environ
        provider = env.get("SLEEP_DIARY_AI_PROVIDER", "gemini").strip().lower() or "gemini"
        if provider not in SUPPORTED_PROVIDERS:
            provider = "gemini"
        return cls(
            ai_provider=provider,
            ai_model=env.get("SLEEP_DIARY_AI_MODEL", "").strip() or cls.ai_model,
            gemini_api_key=(env.get("GEMINI_API_KEY") or env.get("GOOGLE_API_KEY") or "").strip(),
            ollama_base_url=env.get("OLLAMA_BASE_URL", "").strip() or cls.ollama_base_url,
            ollama_model=env.get("OLLAMA_MODEL", "").strip() or cls.ollama_model,
            log_level=env.get("SLEEP_DIARY_LOG_LEVEL", "").strip().upper() or cls.log_level,
            log_json=env.get("SLEEP_DIARY_LOG_JSON", "0").strip() in {"1", "true", "yes"},
        )

    @property
    def model(self) -> str:
        return self.ollama_model if self.ai_provider == "ollama" else self.ai_model
