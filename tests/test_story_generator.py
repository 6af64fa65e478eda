"""Tests for story generation: validation, retries, demo path, persistence."""
from __future__ import annotations

import asyncio

import pytest

from story_vocab.errors import (
    AllAttemptsExhausted,
    GenerationInProgress,
    ProviderRejected,
)
from story_vocab.models import TokenUsage, WordDefinition
from story_vocab.providers.base import ChatResponse
from story_vocab.providers.registry import decode_error, get_provider
from story_vocab.story_generator import (
    MAX_ATTEMPTS,
    Err,
    Ok,
    StoryGenerator,
    find_missing_words,
    load_demo_story,
    make_story_title,
    validate_story,
)

WORDS = ["abandon", "fragile"]
GOOD_STORY = (
    "He had to **abandon** [v.] (放弃) *give up* ... remains "
    "**fragile** [adj.] (脆弱的) *easily broken* ..."
)
PARTIAL_STORY = "He had to **abandon** [v.] (放弃) *give up* the fragile plan."


class FakeClient:
    """Returns canned responses in order (repeating the last); exceptions are raised."""

    def __init__(self, responses, usage=None):
        self._responses = responses
        self._usage = usage
        self.requests = []

    async def generate(self, request):
        idx = min(len(self.requests), len(self._responses) - 1)
        self.requests.append(request)
        item = self._responses[idx]
        if isinstance(item, Exception):
            raise item
        return ChatResponse(content=item, usage=self._usage)

    def name(self) -> str:
        return "fake/llm"

    @property
    def call_count(self):
        return len(self.requests)


class FakeSleep:
    def __init__(self):
        self.calls = []

    async def __call__(self, seconds: float) -> None:
        self.calls.append(seconds)


def _generator(settings, client, history=None, sleep=None):
    return StoryGenerator(
        settings,
        history=history,
        client_factory=lambda spec, key: client,
        sleep=sleep or FakeSleep(),
    )


class TestValidation:
    def test_complete(self):
        result = validate_story(GOOD_STORY, WORDS)
        assert isinstance(result, Ok)
        assert result.definitions == [
            WordDefinition("abandon", "v.", "放弃", "give up"),
            WordDefinition("fragile", "adj.", "脆弱的", "easily broken"),
        ]

    def test_case_insensitive_and_trimmed(self):
        assert isinstance(validate_story(GOOD_STORY, [" Abandon ", "FRAGILE"]), Ok)

    def test_missing_word_reported(self):
        result = validate_story(PARTIAL_STORY, ["Abandon", "Fragile"])
        assert isinstance(result, Err)
        assert result.cause == "missing words: fragile"

    def test_malformed(self):
        result = validate_story("A story with no tags at all.", WORDS)
        assert isinstance(result, Err)
        assert "Malformed" in result.cause

    def test_find_missing_exact_set(self):
        defs = [WordDefinition("abandon", "v.", "放弃")]
        assert find_missing_words(["abandon", "Weary"], defs) == ["weary"]
        assert find_missing_words(["ABANDON"], defs) == []

    def test_single_word_list(self):
        assert isinstance(validate_story(GOOD_STORY, ["abandon"]), Ok)


class TestGenerateStory:
    @pytest.mark.asyncio
    async def test_first_attempt_succeeds(self, settings):
        usage = TokenUsage(100, 200, 300)
        client = FakeClient([GOOD_STORY], usage=usage)
        sleep = FakeSleep()
        result = await _generator(settings, client, sleep=sleep).generate_story(WORDS)

        assert result.story == GOOD_STORY
        assert [d.word for d in result.definitions] == WORDS
        assert result.token_usage == usage
        assert result.attempts == 1
        assert not result.demo
        assert client.call_count == 1
        assert sleep.calls == []

    @pytest.mark.asyncio
    async def test_retries_until_complete(self, settings):
        client = FakeClient(["no markup here", PARTIAL_STORY, GOOD_STORY])
        sleep = FakeSleep()
        result = await _generator(settings, client, sleep=sleep).generate_story(WORDS)

        assert result.attempts == 3
        assert client.call_count == 3
        assert sleep.calls == [1.0, 1.0]

    @pytest.mark.asyncio
    async def test_always_invalid_exhausts_five_attempts(self, settings):
        client = FakeClient([PARTIAL_STORY])
        sleep = FakeSleep()
        with pytest.raises(AllAttemptsExhausted) as exc_info:
            await _generator(settings, client, sleep=sleep).generate_story(WORDS)

        assert client.call_count == MAX_ATTEMPTS == 5
        assert len(sleep.calls) == 4
        assert exc_info.value.attempts == 5
        assert exc_info.value.last_cause == "missing words: fragile"
        assert "5 attempts" in str(exc_info.value)
        assert "switching to another provider" in str(exc_info.value)

    @pytest.mark.asyncio
    async def test_unauthorized_every_attempt(self, settings):
        spec = get_provider("openai")
        error = ProviderRejected(401, decode_error(spec, 401, ""))
        client = FakeClient([error])
        with pytest.raises(AllAttemptsExhausted) as exc_info:
            await _generator(settings, client).generate_story(WORDS)

        assert client.call_count == 5
        assert "API Key" in str(exc_info.value)
        assert "5" in str(exc_info.value)

    @pytest.mark.asyncio
    async def test_last_cause_only(self, settings):
        client = FakeClient([ProviderRejected(429, "rate limited"), "plain prose"])
        with pytest.raises(AllAttemptsExhausted) as exc_info:
            await _generator(settings, client).generate_story(WORDS)
        assert "Malformed" in exc_info.value.last_cause
        assert "rate limited" not in str(exc_info.value)

    @pytest.mark.asyncio
    async def test_unexpected_exception_retried(self, settings):
        client = FakeClient([RuntimeError("boom"), GOOD_STORY])
        result = await _generator(settings, client).generate_story(WORDS)
        assert result.attempts == 2

    @pytest.mark.asyncio
    async def test_prompt_uses_settings_and_provider(self, settings):
        client = FakeClient([GOOD_STORY])
        await _generator(settings, client).generate_story(WORDS, provider="kimi")
        request = client.requests[0]
        assert request.model == "moonshot-v1-8k"
        assert request.temperature == 0.5
        assert "120" in request.messages[-1]["content"]
        assert "adventure" in request.messages[-1]["content"]

    @pytest.mark.asyncio
    async def test_concurrent_request_rejected(self, settings):
        release = asyncio.Event()

        class SlowClient(FakeClient):
            async def generate(self, request):
                await release.wait()
                return await super().generate(request)

        generator = _generator(settings, SlowClient([GOOD_STORY]))
        first = asyncio.create_task(generator.generate_story(WORDS))
        await asyncio.sleep(0)
        assert generator.busy
        with pytest.raises(GenerationInProgress):
            await generator.generate_story(WORDS)
        release.set()
        result = await first
        assert result.attempts == 1
        assert not generator.busy


class TestDemoPath:
    @pytest.mark.asyncio
    async def test_no_api_key_uses_demo(self, tmp_db):
        from story_vocab.config import Settings

        client = FakeClient([GOOD_STORY])
        generator = _generator(Settings(api_key=""), client, history=tmp_db)
        result = await generator.generate_story(WORDS)

        assert result.demo
        assert result.token_usage is None
        assert result.definitions
        assert client.call_count == 0
        assert tmp_db.get_story_count() == 0

    def test_demo_story_fully_tagged(self):
        result = load_demo_story()
        assert len(result.definitions) == 10
        assert all(d.part_of_speech != "unknown" for d in result.definitions)
        assert result.definitions[0].word == "abandon"


class TestPersistence:
    @pytest.mark.asyncio
    async def test_success_saves_story(self, settings, tmp_db):
        client = FakeClient([GOOD_STORY])
        result = await _generator(settings, client, history=tmp_db).generate_story(WORDS)

        saved = tmp_db.get_story(result.story_id)
        assert saved is not None
        assert saved.content == GOOD_STORY
        assert saved.original_words == WORDS
        assert saved.llm_provider == "OpenAI"
        assert saved.theme == "adventure"
        assert [d.word for d in saved.word_definitions] == WORDS

    @pytest.mark.asyncio
    async def test_failure_saves_nothing(self, settings, tmp_db):
        client = FakeClient(["nothing"])
        with pytest.raises(AllAttemptsExhausted):
            await _generator(settings, client, history=tmp_db).generate_story(WORDS)
        assert tmp_db.get_story_count() == 0

    def test_title(self):
        assert make_story_title("adventure", ["a", "b"]) == "Adventure story: a, b"
        assert make_story_title("sci-fi", ["a", "b", "c", "d"]) == "Sci-fi story: a, b, c…"


class TestProviderOverride:
    @pytest.mark.asyncio
    async def test_other_provider_key_not_sent(self, monkeypatch):
        from story_vocab.config import Settings

        monkeypatch.setenv("OPENAI_API_KEY", "sk-openai-secret")
        monkeypatch.setenv("DEEPSEEK_API_KEY", "sk-deepseek")
        built = []
        client = FakeClient([GOOD_STORY])

        def factory(spec, key):
            built.append((spec.id.value, key))
            return client

        generator = StoryGenerator(
            Settings(llm_provider="openai"), client_factory=factory, sleep=FakeSleep(),
        )
        await generator.generate_story(WORDS, provider="deepseek")
        assert built == [("deepseek", "sk-deepseek")]

    @pytest.mark.asyncio
    async def test_override_without_its_key_uses_demo(self, monkeypatch):
        from story_vocab.config import Settings

        monkeypatch.setenv("OPENAI_API_KEY", "sk-openai-secret")
        built = []
        generator = StoryGenerator(
            Settings(llm_provider="openai"),
            client_factory=lambda spec, key: built.append(key),
            sleep=FakeSleep(),
        )
        result = await generator.generate_story(WORDS, provider="deepseek")
        assert result.demo
        assert built == []

    @pytest.mark.asyncio
    async def test_override_with_only_its_env_key_goes_to_network(self, monkeypatch):
        from story_vocab.config import Settings

        monkeypatch.setenv("DEEPSEEK_API_KEY", "sk-deepseek")
        client = FakeClient([GOOD_STORY])
        generator = StoryGenerator(
            Settings(llm_provider="openai"),
            client_factory=lambda spec, key: client,
            sleep=FakeSleep(),
        )
        result = await generator.generate_story(WORDS, provider="deepseek")
        assert not result.demo
        assert client.call_count == 1
        assert client.requests[0].model == "deepseek-chat"

    @pytest.mark.asyncio
    async def test_string_story_length_coerced(self):
        from story_vocab.config import Settings

        client = FakeClient([GOOD_STORY])
        generator = _generator(Settings(api_key="k", story_length="300"), client)
        result = await generator.generate_story(WORDS)
        assert result.attempts == 1
        assert "300" in client.requests[0].messages[-1]["content"]
