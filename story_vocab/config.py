from __future__ import annotations

import json
import os
from dataclasses import dataclass
from pathlib import Path

from story_vocab.providers.base import ProviderSpec
from story_vocab.providers.registry import get_provider

CONFIG_PATH = Path(__file__).resolve().parent.parent / "config.json"

DEFAULTS = {
    "llm_provider": "openai",
    "api_key": "",
    "story_theme": "adventure",
    "story_length": 250,
    "last_word_input": "",
    "db_path": "stories.db",
}


@dataclass
class Settings:
    llm_provider: str = DEFAULTS["llm_provider"]
    api_key: str = DEFAULTS["api_key"]
    story_theme: str = DEFAULTS["story_theme"]
    story_length: int = DEFAULTS["story_length"]
    last_word_input: str = DEFAULTS["last_word_input"]
    db_path: str = DEFAULTS["db_path"]

    def __post_init__(self):
        self.story_length = coerce_setting("story_length", self.story_length)

    @property
    def project_root(self) -> Path:
        return Path(__file__).resolve().parent.parent

    @property
    def db_full_path(self) -> Path:
        return self.project_root / self.db_path

    @property
    def provider(self) -> ProviderSpec:
        return get_provider(self.llm_provider)

    def resolved_api_key(self, spec: ProviderSpec | None = None) -> str:
        """Key for *spec* (default: the configured provider).

        The stored key belongs to the configured provider only; any other
        provider is looked up in its own environment variable.
        """
        spec = spec or self.provider
        if spec.id == self.provider.id and self.api_key.strip():
            return self.api_key.strip()
        return os.environ.get(spec.api_key_env, "").strip()

    def to_dict(self) -> dict:
        return {
            "llm_provider": self.llm_provider,
            "api_key": self.api_key,
            "story_theme": self.story_theme,
            "story_length": self.story_length,
            "last_word_input": self.last_word_input,
            "db_path": self.db_path,
        }

    def to_public_dict(self) -> dict:
        d = self.to_dict()
        d["api_key"] = mask_api_key(self.api_key)
        d["has_api_key"] = bool(self.resolved_api_key())
        return d


def mask_api_key(key: str) -> str:
    if not key:
        return ""
    if len(key) <= 8:
        return "*" * len(key)
    return f"{key[:3]}…{key[-4:]}"


INT_FIELDS = {"story_length"}
STR_FIELDS = {"llm_provider", "api_key", "story_theme", "last_word_input", "db_path"}


def coerce_setting(name: str, value):
    """Return *value* converted to the type of field *name*.

    Raises ValueError for unknown fields or values that do not fit.
    """
    if name in INT_FIELDS:
        if isinstance(value, bool):
            raise ValueError(f"{name} must be a positive integer")
        try:
            number = int(value)
        except (TypeError, ValueError):
            raise ValueError(f"{name} must be a positive integer") from None
        if isinstance(value, float) and value != number:
            raise ValueError(f"{name} must be a positive integer")
        if number <= 0:
            raise ValueError(f"{name} must be a positive integer")
        return number
    if name in STR_FIELDS:
        if not isinstance(value, str):
            raise ValueError(f"{name} must be a string")
        if name == "llm_provider":
            get_provider(value)
        return value
    raise ValueError(f"Unknown setting: {name}")


def load_settings() -> Settings:
    if CONFIG_PATH.exists():
        raw = json.loads(CONFIG_PATH.read_text())
        known = {f.name for f in Settings.__dataclass_fields__.values()}
        filtered = {}
        for k, v in raw.items():
            if k not in known:
                continue
            try:
                filtered[k] = coerce_setting(k, v)
            except ValueError:
                continue  # keep the default
        return Settings(**filtered)
    return Settings()


def save_settings(settings: Settings) -> None:
    CONFIG_PATH.write_text(json.dumps(settings.to_dict(), indent=4, ensure_ascii=False) + "\n")
