from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum

from story_vocab.models import TokenUsage


class ProviderId(str, Enum):
    OPENAI = "openai"
    DEEPSEEK = "deepseek"
    KIMI = "kimi"


class PromptFamily(str, Enum):
    ENGLISH = "en"
    CHINESE = "zh"


@dataclass(frozen=True)
class ProviderSpec:
    id: ProviderId
    display_name: str
    base_url: str  # trailing slash; paths are appended as "v1/..."
    model: str
    prompt_family: PromptFamily
    uses_system_message: bool
    temperature: float
    max_tokens: int
    api_key_env: str

    @property
    def chat_url(self) -> str:
        return f"{self.base_url}v1/chat/completions"

    @property
    def models_url(self) -> str:
        return f"{self.base_url}v1/models"


@dataclass
class ChatRequest:
    model: str
    messages: list[dict[str, str]]
    max_tokens: int
    temperature: float

    def to_json(self) -> dict:
        return {
            "model": self.model,
            "messages": self.messages,
            "max_tokens": self.max_tokens,
            "temperature": self.temperature,
        }


@dataclass
class ChatResponse:
    content: str
    usage: TokenUsage | None = None
    raw: dict = field(default_factory=dict, repr=False)
