"""Generation client: send a fact sheet to an OpenAI-compatible Responses API."""

from __future__ import annotations

import json
import logging
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any

import httpx

from codefacts.errors import CodefactsError

if TYPE_CHECKING:
    from pathlib import Path

logger = logging.getLogger(__name__)

DEFAULT_API_BASE = "https://api.openai.com/v1"
DEFAULT_MODEL = "gpt-4.1-mini"
DEFAULT_MAX_OUTPUT_TOKENS = 1200
RATE_LIMIT_PREFIX = "x-ratelimit-"


class LLMError(CodefactsError):
    """Raised when a generation API call fails."""


@dataclass(frozen=True)
class LLMConfig:
    """Resolved generation endpoint and limits for one call."""

    model: str = DEFAULT_MODEL
    api_base: str = DEFAULT_API_BASE
    api_key: str | None = None
    max_output_tokens: int = DEFAULT_MAX_OUTPUT_TOKENS
    profile: str = "openai"


@dataclass(frozen=True)
class Usage:
    input_tokens: int = 0
    output_tokens: int = 0
    total_tokens: int = 0


@dataclass(frozen=True)
class Completion:
    """Text returned by the model, plus token usage when the API reports it."""

    output_text: str
    usage: Usage | None = None


@dataclass(frozen=True)
class Attachment:
    """A file forwarded to the model alongside the prompt."""

    filename: str
    content: str

    @classmethod
    def from_path(cls, path: Path) -> Attachment:
        return cls(filename=path.name, content=path.read_text(encoding="utf-8", errors="replace"))


def build_request(
    config: LLMConfig,
    system_text: str,
    user_text: str,
    attachment: Attachment | None = None,
) -> dict[str, Any]:
    """Build the Responses API request body."""
    user_content: list[dict[str, str]] = [{"type": "input_text", "text": user_text}]
    if attachment is not None:
        user_content.append({
            "type": "input_text",
            "text": f"[FILE {attachment.filename}]\n{attachment.content}",
        })

    items: list[dict[str, Any]] = []
    if system_text:
        items.append({
            "role": "system",
            "content": [{"type": "input_text", "text": system_text}],
        })
    items.append({"role": "user", "content": user_content})
    return {
        "model": config.model,
        "max_output_tokens": config.max_output_tokens,
        "input": items,
    }


def extract_output_text(data: dict[str, Any]) -> str:
    """Pull the generated text out of a Responses API payload.

    Prefers the top-level ``output_text`` convenience field; otherwise joins
    every ``output_text`` content part of the ``message`` output items.
    """
    text = data.get("output_text")
    if isinstance(text, str):
        return text
    parts: list[str] = []
    for item in data.get("output") or []:
        if not isinstance(item, dict):
            continue
        for content in item.get("content") or []:
            if isinstance(content, dict) and content.get("type") == "output_text":
                parts.append(str(content.get("text", "")))
    return "\n".join(parts)


def _auth_headers(config: LLMConfig) -> dict[str, str]:
    if not config.api_key:
        msg = (
            f"API key is missing for profile {config.profile!r}: set OPENAI_API_KEY "
            "or profiles.<name>.api_key_env / api_key"
        )
        raise LLMError(msg)
    return {"Authorization": f"Bearer {config.api_key}"}


def _parse_usage(data: dict[str, Any]) -> Usage | None:
    raw = data.get("usage")
    if not isinstance(raw, dict):
        return None
    return Usage(
        input_tokens=int(raw.get("input_tokens") or 0),
        output_tokens=int(raw.get("output_tokens") or 0),
        total_tokens=int(raw.get("total_tokens") or 0),
    )


def generate(
    config: LLMConfig,
    system_text: str,
    user_text: str,
    attachment: Attachment | None = None,
) -> Completion:
    """Call the configured endpoint and return its completion.

    Raises
    ------
    LLMError
        If no API key is configured, the request fails in transport, or the
        API answers with a non-200 status.
    """
    headers = {**_auth_headers(config), "Content-Type": "application/json"}
    url = f"{config.api_base.rstrip('/')}/responses"
    body = build_request(config, system_text, user_text, attachment)
    logger.debug("POST %s model=%s", url, config.model)
    logger.debug("Request body: %s", json.dumps(body, ensure_ascii=False))
    try:
        response = httpx.post(url, headers=headers, json=body, timeout=120.0)
    except httpx.HTTPError as exc:
        msg = f"Request to {url} failed: {exc}"
        raise LLMError(msg) from exc

    if response.status_code != 200:
        msg = f"Generation API error {response.status_code}: {response.text}"
        raise LLMError(msg)

    logger.debug("Response %d: %s", response.status_code, response.text)
    data = response.json()
    return Completion(output_text=extract_output_text(data), usage=_parse_usage(data))


@dataclass(frozen=True)
class EndpointStatus:
    """Result of a ``GET /models`` check against the configured endpoint."""

    status_code: int
    reason: str
    model_count: int | None = None
    rate_limits: dict[str, str] = field(default_factory=dict)

    @property
    def ok(self) -> bool:
        return 200 <= self.status_code < 300


def check_endpoint(config: LLMConfig) -> EndpointStatus:
    """List the endpoint's models to verify the key and read rate-limit headers.

    Any HTTP status is reported, not raised, so a rejected key still shows
    its headers.

    Raises
    ------
    LLMError
        If no API key is configured or the request fails in transport.
    """
    headers = _auth_headers(config)
    url = f"{config.api_base.rstrip('/')}/models"
    logger.debug("GET %s", url)
    try:
        response = httpx.get(url, headers=headers, timeout=30.0)
    except httpx.HTTPError as exc:
        msg = f"Request to {url} failed: {exc}"
        raise LLMError(msg) from exc
    logger.debug("Response %d: %s", response.status_code, response.text)

    model_count = None
    if response.status_code == 200:
        try:
            models = response.json().get("data")
        except (ValueError, AttributeError):
            models = None
        if isinstance(models, list):
            model_count = len(models)
    return EndpointStatus(
        status_code=response.status_code,
        reason=response.reason_phrase,
        model_count=model_count,
        rate_limits={
            k.lower(): v for k, v in response.headers.items()
            if k.lower().startswith(RATE_LIMIT_PREFIX)
        },
    )
