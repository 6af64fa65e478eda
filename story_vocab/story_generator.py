"""Generate a vocabulary story with an LLM and validate its markup.

Each attempt builds the prompt, calls the provider and checks the output:
it must contain markup at all, and every requested word must come back
tagged. Attempts run strictly one after another with a fixed pause between
them; only the last failure reason is kept and surfaced once all attempts
are spent.
"""
from __future__ import annotations

import asyncio
import logging
import uuid
from collections.abc import Awaitable, Callable
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import TYPE_CHECKING, Union

from story_vocab.errors import (
    AllAttemptsExhausted,
    GenerationInProgress,
    IncompleteOutput,
    MalformedOutput,
    StoryVocabError,
)
from story_vocab.models import SavedStory, StoryResult, TokenUsage, WordDefinition
from story_vocab.parsers.markup_parser import has_markup, parse_word_definitions
from story_vocab.parsers.word_list_parser import normalize_words
from story_vocab.prompts import build_story_prompt
from story_vocab.providers.base import ChatRequest, ProviderSpec
from story_vocab.providers.llm_chat import ChatCompletionClient
from story_vocab.providers.registry import get_provider

if TYPE_CHECKING:
    from story_vocab.config import Settings
    from story_vocab.db import Database

_log = logging.getLogger("story_vocab.storygen")

MAX_ATTEMPTS = 5
RETRY_DELAY_SECONDS = 1.0
TITLE_WORDS = 3

DEMO_STORY = """\
Once upon a time, a young adventurer found himself in a difficult situation. \
He had to **abandon** [v.] (放弃) *give up completely* his original plan when he \
discovered that the ancient map was **fragile** [adj.] (脆弱的) *easily torn* and \
barely readable. The strange circumstances seemed to **compel** [v.] (强迫) \
*force him* to take a different path through the **obscure** [adj.] (模糊的) \
*hard to see* forest.

Along the way, he met a stranger who tried to **deceive** [v.] (欺骗) \
*trick with lies* him with false promises of treasure. However, the adventurer \
had made a **pledge** [n.] (承诺) *a solemn promise* to his village to return with \
the sacred artifact. Despite feeling **weary** [adj.] (疲惫的) *very tired* from \
the long journey, he pressed on, carried by **vivid** [adj.] (生动的) \
*bright and clear* memories of home.

In the end, truth and determination would **prevail** [v.] (获胜) \
*win in the end*, and he would finally **embrace** [v.] (拥抱) *accept gladly* \
the success that awaited him.
"""

DEMO_WORDS = [
    "abandon", "fragile", "compel", "obscure", "deceive",
    "pledge", "weary", "vivid", "prevail", "embrace",
]


@dataclass
class Ok:
    story: str
    definitions: list[WordDefinition]
    usage: TokenUsage | None = None


@dataclass
class Err:
    cause: str


AttemptResult = Union[Ok, Err]

ClientFactory = Callable[[ProviderSpec, str], ChatCompletionClient]
SleepFn = Callable[[float], Awaitable[None]]


def find_missing_words(words: list[str], definitions: list[WordDefinition]) -> list[str]:
    """Requested words (lowercased, in request order) with no tagged definition."""
    parsed = {d.word.strip().lower() for d in definitions}
    return [w for w in normalize_words(words) if w not in parsed]


def validate_story(story: str, words: list[str]) -> AttemptResult:
    if not has_markup(story):
        return Err(str(MalformedOutput()))
    definitions = parse_word_definitions(story)
    missing = find_missing_words(words, definitions)
    if missing:
        return Err(str(IncompleteOutput(missing)))
    return Ok(story=story, definitions=definitions)


def load_demo_story() -> StoryResult:
    """The built-in story, parsed; never touches the network."""
    return StoryResult(
        story=DEMO_STORY,
        definitions=parse_word_definitions(DEMO_STORY),
        token_usage=None,
        attempts=0,
        demo=True,
    )


def make_story_title(theme: str, words: list[str]) -> str:
    shown = ", ".join(words[:TITLE_WORDS])
    if len(words) > TITLE_WORDS:
        shown += "…"
    return f"{theme.strip().capitalize() or 'Untitled'} story: {shown}"


class StoryGenerator:
    """Runs one generation at a time; a second concurrent request is rejected."""

    def __init__(
        self,
        settings: Settings,
        history: Database | None = None,
        client_factory: ClientFactory = ChatCompletionClient,
        sleep: SleepFn = asyncio.sleep,
        max_attempts: int = MAX_ATTEMPTS,
        retry_delay: float = RETRY_DELAY_SECONDS,
    ):
        self.settings = settings
        self.history = history
        self.client_factory = client_factory
        self.sleep = sleep
        self.max_attempts = max_attempts
        self.retry_delay = retry_delay
        self._lock = asyncio.Lock()

    @property
    def busy(self) -> bool:
        return self._lock.locked()

    async def generate_story(self, words: list[str], provider: str | None = None) -> StoryResult:
        spec = get_provider(provider or self.settings.llm_provider)
        api_key = self.settings.resolved_api_key(spec)
        if not api_key:
            _log.info("No API key configured for %s, using the demo story", spec.display_name)
            return load_demo_story()

        if self._lock.locked():
            raise GenerationInProgress()
        async with self._lock:
            client = self.client_factory(spec, api_key)
            ok, attempts = await self._run_attempts(client, spec, words)

        story_id = self._save(ok, words, spec)
        return StoryResult(
            story=ok.story,
            definitions=ok.definitions,
            token_usage=ok.usage,
            story_id=story_id,
            attempts=attempts,
        )

    async def _run_attempts(
        self, client: ChatCompletionClient, spec: ProviderSpec, words: list[str]
    ) -> tuple[Ok, int]:
        last_cause = ""
        for attempt in range(1, self.max_attempts + 1):
            _log.info("Generate story with %s (attempt %d/%d)",
                      spec.display_name, attempt, self.max_attempts)
            result = await self._attempt(client, spec, words)
            if isinstance(result, Ok):
                _log.info("  Attempt %d OK: %d words tagged", attempt, len(result.definitions))
                return result, attempt
            last_cause = result.cause
            _log.info("  Attempt %d failed: %s", attempt, last_cause)
            if attempt < self.max_attempts:
                await self.sleep(self.retry_delay)

        _log.warning("Story generation failed after %d attempts: %s",
                     self.max_attempts, last_cause)
        raise AllAttemptsExhausted(self.max_attempts, last_cause)

    async def _attempt(
        self, client: ChatCompletionClient, spec: ProviderSpec, words: list[str]
    ) -> AttemptResult:
        prompt = build_story_prompt(
            words, self.settings.story_theme, self.settings.story_length, spec,
        )
        request = ChatRequest(
            model=spec.model,
            messages=prompt.messages(),
            max_tokens=prompt.max_output_tokens,
            temperature=prompt.temperature,
        )
        try:
            response = await client.generate(request)
        except StoryVocabError as e:
            return Err(str(e))
        except Exception as e:
            _log.warning("  Unexpected error from %s: %r", spec.display_name, e)
            return Err(str(e) or type(e).__name__)

        result = validate_story(response.content, words)
        if isinstance(result, Ok):
            result.usage = response.usage
        return result

    def _save(self, ok: Ok, words: list[str], spec: ProviderSpec) -> str | None:
        if self.history is None:
            return None
        story = SavedStory(
            id=uuid.uuid4().hex,
            title=make_story_title(self.settings.story_theme, words),
            content=ok.story,
            word_definitions=ok.definitions,
            original_words=list(words),
            theme=self.settings.story_theme,
            created_at=datetime.now(timezone.utc).isoformat(),
            llm_provider=spec.display_name,
        )
        self.history.save_story(story)
        _log.info("  Saved story %s (%s)", story.id, story.title)
        return story.id
