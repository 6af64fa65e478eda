"""Split free-form word input ("abandon, fragile\ncompel") into a word list."""
from __future__ import annotations

import re

_SEPARATORS_RE = re.compile(r"[,，、;；\s]+")


def split_word_input(text: str) -> list[str]:
    words: list[str] = []
    seen: set[str] = set()
    for token in _SEPARATORS_RE.split(text):
        token = token.strip()
        if not token:
            continue
        key = token.lower()
        if key in seen:
            continue
        seen.add(key)
        words.append(token)
    return words


def normalize_words(words: list[str]) -> list[str]:
    """Lowercase and trim, dropping blanks, keeping order and duplicates out."""
    result: list[str] = []
    for w in words:
        key = w.strip().lower()
        if key and key not in result:
            result.append(key)
    return result
