"""AI provider transports: request shape, auth header convention and response envelope per vendor."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Dict, Protocol

from codegate.config import AIConfig


@dataclass(slots=True)
class ProviderRequest:
    url: str
    headers: Dict[str, str]
    json: Dict[str, Any]
    params: Dict[str, str] = field(default_factory=dict)


@dataclass(slots=True, frozen=True)
class ProviderResponse:
    """A raw provider envelope tagged with the provider that produced it."""

    provider: str
    payload: Dict[str, Any]


class ProviderStrategy(Protocol):
    name: str

    def build_request(self, config: AIConfig, prompt: str, *, temperature: float | None = None) -> ProviderRequest: ...

    def extract_text(self, response: ProviderResponse) -> str: ...


def _first(items: Any) -> Dict[str, Any]:
    if isinstance(items, list) and items and isinstance(items[0], dict):
        return items[0]
    return {}


def _mapping(value: Any) -> Dict[str, Any]:
    return value if isinstance(value, dict) else {}


def _text_parts(parts: Any, *, kind_key: str | None = None) -> str:
    if not isinstance(parts, list):
        return ""
    texts = []
    for part in parts:
        if not isinstance(part, dict):
            continue
        if kind_key is not None and part.get(kind_key, "text") != "text":
            continue
        text = part.get("text")
        if isinstance(text, str):
            texts.append(text)
    return "".join(texts)


class ChatCompletionsProvider:
    """OpenAI-compatible chat completions with bearer authentication."""

    def __init__(self, name: str, url: str) -> None:
        self.name = name
        self.url = url

    def build_request(self, config: AIConfig, prompt: str, *, temperature: float | None = None) -> ProviderRequest:
        return ProviderRequest(
            url=self.url,
            headers={"Content-Type": "application/json", "Authorization": f"Bearer {config.api_key}"},
            json={
                "model": config.model,
                "messages": [{"role": "user", "content": prompt}],
                "temperature": config.temperature if temperature is None else temperature,
                "max_tokens": config.max_tokens,
            },
        )

    def extract_text(self, response: ProviderResponse) -> str:
        message = _mapping(_first(response.payload.get("choices")).get("message"))
        content = message.get("content")
        return content if isinstance(content, str) else ""


class AnthropicProvider:
    name = "anthropic"
    url = "https://api.anthropic.com/v1/messages"
    api_version = "2023-06-01"

    def build_request(self, config: AIConfig, prompt: str, *, temperature: float | None = None) -> ProviderRequest:
        return ProviderRequest(
            url=self.url,
            headers={
                "Content-Type": "application/json",
                "x-api-key": config.api_key,
                "anthropic-version": self.api_version,
            },
            json={
                "model": config.model,
                "max_tokens": config.max_tokens,
                "temperature": config.temperature if temperature is None else temperature,
                "messages": [{"role": "user", "content": prompt}],
            },
        )

    def extract_text(self, response: ProviderResponse) -> str:
        return _text_parts(response.payload.get("content"), kind_key="type")


class GoogleProvider:
    """Gemini generateContent; the key travels as a query parameter."""

    name = "google"
    base_url = "https://generativelanguage.googleapis.com/v1beta/models"

    def build_request(self, config: AIConfig, prompt: str, *, temperature: float | None = None) -> ProviderRequest:
        return ProviderRequest(
            url=f"{self.base_url}/{config.model}:generateContent",
            headers={"Content-Type": "application/json"},
            params={"key": config.api_key},
            json={
                "contents": [{"parts": [{"text": prompt}]}],
                "generationConfig": {
                    "temperature": config.temperature if temperature is None else temperature,
                    "maxOutputTokens": config.max_tokens,
                },
            },
        )

    def extract_text(self, response: ProviderResponse) -> str:
        content = _mapping(_first(response.payload.get("candidates")).get("content"))
        return _text_parts(content.get("parts"))


PROVIDERS: Dict[str, ProviderStrategy] = {
    "openai": ChatCompletionsProvider("openai", "https://api.openai.com/v1/chat/completions"),
    "anthropic": AnthropicProvider(),
    "google": GoogleProvider(),
    "groq": ChatCompletionsProvider("groq", "https://api.groq.com/openai/v1/chat/completions"),
}
