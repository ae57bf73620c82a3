"""
Application configuration for the Contract Analysis API.

Settings are read once from the environment (and an optional .env file) and
passed explicitly into the services that need them.
"""

import os
from dataclasses import dataclass
from typing import Optional

from dotenv import load_dotenv


def _env_bool(name: str, default: bool) -> bool:
    raw = os.getenv(name, "").strip().lower()
    if not raw:
        return default
    return raw in {"1", "true", "yes", "on"}


def _env_optional(name: str) -> Optional[str]:
    value = os.getenv(name, "").strip()
    return value or None


@dataclass(frozen=True)
class Settings:
    """Configuration values for the analysis pipeline and its collaborators."""

    # Supabase (blob store + identity service)
    supabase_url: Optional[str] = None
    supabase_service_role_key: Optional[str] = None
    supabase_anon_key: Optional[str] = None

    # Completion service
    openai_api_key: Optional[str] = None
    openai_base_url: Optional[str] = None
    completion_model: str = "gpt-4o-mini"
    completion_temperature: float = 0.2
    completion_max_output_tokens: int = 1200
    max_contract_text_chars: int = 24000

    # Record store ("redis", or "memory" for local development)
    contract_store_backend: str = "redis"
    redis_url: str = "redis://localhost:6379"
    stale_analysis_seconds: int = 900

    # Logging
    log_level: str = "INFO"
    log_json: bool = True

    @classmethod
    def from_env(cls, dotenv_path: Optional[str] = None) -> "Settings":
        """
        Build settings from environment variables.

        Args:
            dotenv_path: Optional path to a .env file. When omitted, python-dotenv
                         searches upward from the working directory.

        Returns:
            Populated Settings instance
        """
        load_dotenv(dotenv_path)

        return cls(
            supabase_url=_env_optional("SUPABASE_URL"),
            supabase_service_role_key=_env_optional("SUPABASE_SERVICE_ROLE_KEY"),
            supabase_anon_key=_env_optional("SUPABASE_ANON_KEY"),
            openai_api_key=_env_optional("OPENAI_API_KEY"),
            openai_base_url=_env_optional("OPENAI_BASE_URL"),
            completion_model=os.getenv("COMPLETION_MODEL", "gpt-4o-mini"),
            completion_temperature=float(os.getenv("COMPLETION_TEMPERATURE", "0.2")),
            completion_max_output_tokens=int(os.getenv("COMPLETION_MAX_OUTPUT_TOKENS", "1200")),
            max_contract_text_chars=int(os.getenv("MAX_CONTRACT_TEXT_CHARS", "24000")),
            contract_store_backend=os.getenv("CONTRACT_STORE_BACKEND", "redis").strip().lower(),
            redis_url=os.getenv("REDIS_URL", "redis://localhost:6379"),
            stale_analysis_seconds=int(os.getenv("STALE_ANALYSIS_SECONDS", "900")),
            log_level=os.getenv("LOG_LEVEL", "INFO"),
            log_json=_env_bool("LOG_JSON", True),
        )

    def missing_settings(self) -> list:
        """Return the names of unset settings the collaborators depend on."""
        required = {
            "SUPABASE_URL": self.supabase_url,
            "SUPABASE_SERVICE_ROLE_KEY": self.supabase_service_role_key,
            "SUPABASE_ANON_KEY": self.supabase_anon_key,
            "OPENAI_API_KEY": self.openai_api_key,
        }
        return [name for name, value in required.items() if not value]
