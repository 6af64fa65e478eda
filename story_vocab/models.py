from __future__ import annotations

from dataclasses import dataclass, field


@dataclass(frozen=True)
class WordDefinition:
    word: str  # lowercased
    part_of_speech: str
    translation: str
    context_meaning: str | None = None

    def to_dict(self) -> dict:
        return {
            "word": self.word,
            "part_of_speech": self.part_of_speech,
            "translation": self.translation,
            "context_meaning": self.context_meaning,
        }

    @classmethod
    def from_dict(cls, d: dict) -> WordDefinition:
        return cls(
            word=d["word"],
            part_of_speech=d.get("part_of_speech", "unknown"),
            translation=d["translation"],
            context_meaning=d.get("context_meaning"),
        )


@dataclass(frozen=True)
class QuizQuestion:
    word: str
    prompt_text: str
    options: list[str]
    correct_index: int
    correct_translation: str
    part_of_speech: str = "unknown"
    context_meaning: str | None = None


@dataclass(frozen=True)
class WrongAnswer:
    word: str
    part_of_speech: str
    correct_translation: str
    user_answer: str
    context_meaning: str | None = None


@dataclass(frozen=True)
class TokenUsage:
    prompt_tokens: int = 0
    completion_tokens: int = 0
    total_tokens: int = 0


@dataclass
class SavedStory:
    id: str
    title: str
    content: str
    word_definitions: list[WordDefinition]
    original_words: list[str]
    theme: str
    created_at: str
    llm_provider: str


@dataclass
class StoryResult:
    story: str
    definitions: list[WordDefinition]
    token_usage: TokenUsage | None = None
    story_id: str | None = None
    attempts: int = 0
    demo: bool = False


@dataclass
class QuizResult:
    total: int
    correct: int
    wrong_answers: list[WrongAnswer] = field(default_factory=list)

    @property
    def percentage(self) -> float:
        if self.total == 0:
            return 0.0
        return round(self.correct / self.total * 100, 1)

    @property
    def evaluation(self) -> str:
        if self.percentage >= 90:
            return "Excellent! You know these words cold."
        if self.percentage >= 70:
            return "Nice work! A little more review and you'll have them all."
        return "Keep practising: review the wrong answers and try again."
