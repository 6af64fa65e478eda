"""The three supported chat-completion providers.

Behaviour that differs per provider lives in data (``ProviderSpec``) plus a
small table of plain functions, so adding a provider means adding a record
rather than a subclass.
"""
from __future__ import annotations

import json

from story_vocab.providers.base import PromptFamily, ProviderId, ProviderSpec

PROVIDERS: dict[ProviderId, ProviderSpec] = {
    ProviderId.OPENAI: ProviderSpec(
        id=ProviderId.OPENAI,
        display_name="OpenAI",
        base_url="https://api.openai.com/",
        model="gpt-4o",
        prompt_family=PromptFamily.ENGLISH,
        uses_system_message=True,
        temperature=0.7,
        max_tokens=1500,
        api_key_env="OPENAI_API_KEY",
    ),
    ProviderId.DEEPSEEK: ProviderSpec(
        id=ProviderId.DEEPSEEK,
        display_name="DeepSeek",
        base_url="https://api.deepseek.com/",
        model="deepseek-chat",
        prompt_family=PromptFamily.CHINESE,
        uses_system_message=False,
        temperature=0.5,
        max_tokens=2000,
        api_key_env="DEEPSEEK_API_KEY",
    ),
    ProviderId.KIMI: ProviderSpec(
        id=ProviderId.KIMI,
        display_name="Kimi",
        base_url="https://api.moonshot.cn/",
        model="moonshot-v1-8k",
        prompt_family=PromptFamily.CHINESE,
        uses_system_message=False,
        temperature=0.5,
        max_tokens=2000,
        api_key_env="MOONSHOT_API_KEY",
    ),
}

OUTAGE_STATUSES = (500, 502, 503)
RAW_BODY_PREVIEW = 100


def get_provider(provider: str | ProviderId) -> ProviderSpec:
    try:
        return PROVIDERS[ProviderId(provider)]
    except ValueError:
        known = ", ".join(p.value for p in ProviderId)
        raise ValueError(f"Unknown LLM provider: {provider} (expected one of: {known})") from None


def request_params(spec: ProviderSpec, target_length: int) -> tuple[float, int]:
    """Return (temperature, max_tokens) for a story of *target_length* words."""
    return spec.temperature, max(spec.max_tokens, target_length * 3)


def decode_body(body: str) -> str:
    """Pull a readable message out of an error response body."""
    try:
        data = json.loads(body)
    except (json.JSONDecodeError, TypeError):
        return body[:RAW_BODY_PREVIEW]
    if isinstance(data, dict):
        error = data.get("error")
        if isinstance(error, dict) and error.get("message"):
            return str(error["message"])
        if data.get("message"):
            return str(data["message"])
    return body[:RAW_BODY_PREVIEW]


def decode_error(spec: ProviderSpec, status_code: int, body: str) -> str:
    name = spec.display_name
    if status_code == 401:
        return f"Invalid API Key: check your {name} API Key"
    if status_code == 429:
        return f"{name} rate limit reached or quota exhausted, try again later"
    if status_code in OUTAGE_STATUSES:
        return f"{name} service is temporarily unavailable ({status_code})"
    return f"{name} API error: {decode_body(body)}"
