"""Configuration settings for the background replacement service."""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from functools import cached_property, lru_cache
from pathlib import Path
from typing import Any, Dict, Optional

import yaml
from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict

REMOVE_BG_PLACEHOLDER = "your_remove_bg_api_key_here"
OPENAI_PLACEHOLDER = "your_openai_api_key_here"
STABILITY_PLACEHOLDER = "your_stability_ai_key_here"


class CredentialState(str, Enum):
    """Whether a provider secret can be used."""
    USABLE = "usable"
    ABSENT = "absent"


@dataclass(frozen=True)
class ProviderCredential:
    state: CredentialState
    value: Optional[str] = None

    @classmethod
    def from_raw(cls, raw: Optional[str], placeholder: str) -> "ProviderCredential":
        """Placeholder sentinels and blank values count as absent."""
        if raw is None:
            return cls(CredentialState.ABSENT)
        value = raw.strip()
        if not value or value == placeholder:
            return cls(CredentialState.ABSENT)
        return cls(CredentialState.USABLE, value)

    @property
    def usable(self) -> bool:
        return self.state is CredentialState.USABLE

    def __repr__(self) -> str:
        return f"ProviderCredential(state={self.state.value})"


@dataclass(frozen=True)
class ProviderCredentials:
    remove_bg: ProviderCredential
    openai: ProviderCredential
    stability: ProviderCredential


class Settings(BaseSettings):
    """Application settings loaded from environment and an optional YAML providers file."""

    # Service configuration
    host: str = Field(default="0.0.0.0")
    port: int = Field(default=3000)
    environment: str = Field(default="development")

    # Logging
    log_level: str = Field(default="INFO")
    log_dir: Optional[Path] = Field(default=None)

    # API keys
    remove_bg_api_key: Optional[str] = Field(default=None, repr=False)
    openai_api_key: Optional[str] = Field(default=None, repr=False)
    stability_ai_api_key: Optional[str] = Field(default=None, repr=False)

    # Provider endpoints and tuning
    remove_bg_base_url: str = Field(default="https://api.remove.bg/v1.0")
    openai_base_url: str = Field(default="https://api.openai.com/v1")
    stability_base_url: str = Field(default="https://api.stability.ai/v1")
    providers_config: Optional[Path] = Field(default=None)

    # Deadlines for provider calls, in seconds
    removal_timeout_seconds: float = Field(default=30.0, gt=0)
    generation_timeout_seconds: float = Field(default=120.0, gt=0)

    # Admission
    max_upload_bytes: int = Field(default=10 * 1024 * 1024, gt=0)
    max_concurrent_jobs: int = Field(default=4, ge=1)
    max_queued_jobs: int = Field(default=16, ge=0)

    # Simulated pipeline timings, in seconds
    simulated_removal_delay: float = Field(default=2.0, ge=0)
    simulated_generation_delay: float = Field(default=3.0, ge=0)

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    @cached_property
    def credentials(self) -> ProviderCredentials:
        return ProviderCredentials(
            remove_bg=ProviderCredential.from_raw(self.remove_bg_api_key, REMOVE_BG_PLACEHOLDER),
            openai=ProviderCredential.from_raw(self.openai_api_key, OPENAI_PLACEHOLDER),
            stability=ProviderCredential.from_raw(self.stability_ai_api_key, STABILITY_PLACEHOLDER),
        )

    @cached_property
    def providers(self) -> Dict[str, Any]:
        if self.providers_config is None:
            return {}
        return self._load_yaml(self.providers_config)

    def _load_yaml(self, path: Path) -> Dict[str, Any]:
        resolved = Path(path).expanduser().resolve()
        if not resolved.exists():
            raise FileNotFoundError(f"Config file not found: {resolved}")
        with resolved.open("r", encoding="utf-8") as handle:
            data: Dict[str, Any] = yaml.safe_load(handle) or {}
        return data


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    return Settings()
