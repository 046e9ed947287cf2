"""Application configuration helpers."""

from __future__ import annotations

import os
from functools import lru_cache
from pathlib import Path
from typing import Any, Final, Literal

from dotenv import load_dotenv
from pydantic import AnyHttpUrl, BaseModel, Field, ValidationError, field_validator

# Load environment variables from .env file
env_path = Path(__file__).parent.parent / ".env"
load_dotenv(dotenv_path=env_path)

CONFIG_TYPES: Final[tuple[str, ...]] = ("github", "jira", "ai", "thresholds")

AIProviderName = Literal["openai", "anthropic", "google", "groq"]
AutoMergeMode = Literal["at_most", "at_least"]

_LEGACY_MODES: Final[dict[str, str]] = {"less": "at_most", "greater": "at_least"}


class SettingsError(RuntimeError):
    """Raised when application configuration is invalid or incomplete."""


class GitHubConfig(BaseModel):
    token: str
    owner: str
    repo: str
    webhook_secret: str | None = None

    @property
    def full_name(self) -> str:
        return f"{self.owner}/{self.repo}"


class JiraConfig(BaseModel):
    enabled: bool = False
    domain: str = ""
    email: str = ""
    api_token: str = ""
    project_key_pattern: str | None = None


class AutoMergeConfig(BaseModel):
    """Thresholds and comparison mode for the auto-merge decision."""

    enabled: bool = False
    mode: AutoMergeMode = "at_most"
    ai_threshold: float = Field(default=70, ge=0, le=100)
    sonar_threshold: int = Field(default=5, ge=0)
    junit_threshold: float | None = Field(default=None, ge=0, le=100)
    require_junit_for_java: bool = False
    # When false, a default-score (fallback) AI result never counts towards a merge.
    use_fallback_score: bool = False

    @field_validator("mode", mode="before")
    @classmethod
    def _normalize_mode(cls, value: Any) -> Any:
        if isinstance(value, str):
            normalized = value.strip().lower().replace("-", "_")
            return _LEGACY_MODES.get(normalized, normalized)
        return value


class AIConfig(BaseModel):
    provider: AIProviderName = "openai"
    api_key: str = ""
    model: str = "gpt-4o-mini"
    temperature: float = 0.3
    max_tokens: int = 4000
    auto_merge: AutoMergeConfig = Field(default_factory=AutoMergeConfig)


class ThresholdConfig(BaseModel):
    bugs: int = 0
    vulnerabilities: int = 0
    code_smells: int = 10
    security_hotspots: int = 0
    coverage_min: float = 80
    duplicated_lines_max: float = 3
    blocker_issues: int = 0
    critical_issues: int = 0


CONFIG_MODELS: Final[dict[str, type[BaseModel]]] = {
    "github": GitHubConfig,
    "jira": JiraConfig,
    "ai": AIConfig,
    "thresholds": ThresholdConfig,
}


def parse_config_blob(config_type: str, blob: dict[str, Any]) -> BaseModel:
    """Validate a stored blob against the model registered for ``config_type``."""

    model = CONFIG_MODELS.get(config_type)
    if model is None:
        raise SettingsError(f"Unknown configuration type '{config_type}'.")
    try:
        return model.model_validate(blob)
    except ValidationError as exc:
        raise SettingsError(f"Invalid '{config_type}' configuration: {exc.error_count()} error(s).") from exc


class Settings(BaseModel):
    """Runtime settings loaded from environment variables."""

    github_api_base_url: AnyHttpUrl = "https://api.github.com"
    db_path: str | None = None
    http_timeout: float = 30.0
    github_token: str | None = None
    github_owner: str | None = None
    github_repo: str | None = None

    @property
    def normalized_github_api_base_url(self) -> str:
        """Return the GitHub API base URL without a trailing slash."""
        return str(self.github_api_base_url).rstrip("/")

    def bootstrap_github_config(self) -> GitHubConfig | None:
        """Return a GitHub config assembled from the environment, if complete."""

        if self.github_token and self.github_owner and self.github_repo:
            return GitHubConfig(token=self.github_token, owner=self.github_owner, repo=self.github_repo)
        return None


def _build_settings() -> Settings:
    timeout_raw = os.getenv("CODEGATE_HTTP_TIMEOUT")
    try:
        timeout = float(timeout_raw) if timeout_raw and timeout_raw.strip() else 30.0
    except ValueError as exc:
        raise SettingsError("Invalid value for CODEGATE_HTTP_TIMEOUT. It must be a number.") from exc

    try:
        return Settings(
            github_api_base_url=os.getenv("GITHUB_API_BASE_URL") or "https://api.github.com",
            db_path=os.getenv("CODEGATE_DB_PATH") or None,
            http_timeout=timeout,
            github_token=os.getenv("GITHUB_TOKEN") or None,
            github_owner=os.getenv("GITHUB_OWNER") or None,
            github_repo=os.getenv("GITHUB_REPO") or None,
        )
    except ValidationError as exc:
        raise SettingsError("Invalid application configuration.") from exc


@lru_cache(maxsize=1)
def _cached_settings() -> Settings:
    return _build_settings()


def get_settings() -> Settings:
    """Retrieve cached application settings."""
    return _cached_settings()


def reset_settings_cache() -> None:
    """Clear the cached settings (primarily for tests)."""
    _cached_settings.cache_clear()
