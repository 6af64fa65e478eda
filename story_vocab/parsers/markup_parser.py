"""Extract tagged vocabulary from generated stories.

Stories mark every vocabulary word inline:

  **abandon** [v.] (放弃) *to give up on a plan*
  **WORD**    [POS] (TRANSLATION) *CONTEXT MEANING*

Older stories (and some model outputs) use the reduced legacy form
``**abandon** (放弃)``, which is only consulted when the full form yields
nothing at all.
"""
from __future__ import annotations

import re

from story_vocab.models import WordDefinition

UNKNOWN_POS = "unknown"

TAGGED_WORD_RE = re.compile(
    r"\*\*([A-Za-z0-9_]+)\*\*\s*"
    r"\[([^\]]+)\]\s*"
    r"\(([^)]+)\)\s*"
    r"\*([^*]+)\*"
)

LEGACY_TAGGED_WORD_RE = re.compile(r"\*\*([A-Za-z0-9_]+)\*\*\s*\(([^)]+)\)")

# Used by the format check before a full parse
BOLD_MARKER = "**"


def parse_word_definitions(story: str) -> list[WordDefinition]:
    """Return definitions in order of first appearance in *story*.

    Repeated tags produce repeated entries; callers pick first or last.
    """
    definitions = [
        WordDefinition(
            word=m.group(1).lower(),
            part_of_speech=m.group(2).strip(),
            translation=m.group(3).strip(),
            context_meaning=m.group(4).strip() or None,
        )
        for m in TAGGED_WORD_RE.finditer(story)
        if m.group(3).strip()
    ]
    if definitions:
        return definitions
    return _parse_legacy(story)


def _parse_legacy(story: str) -> list[WordDefinition]:
    results: list[WordDefinition] = []
    for m in LEGACY_TAGGED_WORD_RE.finditer(story):
        translation = m.group(2).strip()
        if not translation:
            continue
        results.append(WordDefinition(
            word=m.group(1).lower(),
            part_of_speech=UNKNOWN_POS,
            translation=translation,
            context_meaning=None,
        ))
    return results


def has_markup(story: str) -> bool:
    """Cheap format check: at least one bold marker and one parenthesis."""
    return BOLD_MARKER in story and "(" in story


def first_definitions_by_word(definitions: list[WordDefinition]) -> dict[str, WordDefinition]:
    """Map each word to its first definition."""
    by_word: dict[str, WordDefinition] = {}
    for d in definitions:
        by_word.setdefault(d.word, d)
    return by_word
