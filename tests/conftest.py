"""Shared test fixtures."""
from __future__ import annotations

import pytest

from story_vocab.config import Settings
from story_vocab.db import Database
from story_vocab.models import SavedStory, WordDefinition


@pytest.fixture
def tmp_db(tmp_path):
    """Create a fresh temporary history database."""
    db = Database(tmp_path / "test.db")
    yield db
    db.close()


@pytest.fixture
def settings():
    """Settings with an API key so generation goes to the (fake) network."""
    return Settings(api_key="sk-test-key", story_theme="adventure", story_length=120)


@pytest.fixture(autouse=True)
def no_env_api_keys(monkeypatch):
    for var in ("OPENAI_API_KEY", "DEEPSEEK_API_KEY", "MOONSHOT_API_KEY"):
        monkeypatch.delenv(var, raising=False)


@pytest.fixture
def sample_story():
    return (
        "He had to **abandon** [v.] (放弃) *give up* the plan, because the "
        "old bridge remains **fragile** [adj.] (脆弱的) *easily broken* after the storm."
    )


@pytest.fixture
def sample_definitions():
    return [
        WordDefinition("abandon", "v.", "放弃", "give up"),
        WordDefinition("fragile", "adj.", "脆弱的", "easily broken"),
        WordDefinition("compel", "v.", "强迫", "force"),
        WordDefinition("weary", "adj.", "疲惫的", "very tired"),
        WordDefinition("vivid", "adj.", "生动的", "bright and clear"),
    ]


@pytest.fixture
def make_saved_story():
    def _make(story_id: str, created_at: str, title: str = "Adventure story") -> SavedStory:
        return SavedStory(
            id=story_id,
            title=title,
            content="He had to **abandon** [v.] (放弃) *give up* the plan.",
            word_definitions=[WordDefinition("abandon", "v.", "放弃", "give up")],
            original_words=["abandon"],
            theme="adventure",
            created_at=created_at,
            llm_provider="OpenAI",
        )
    return _make
