"""Error taxonomy for story generation.

Every error carries a plain-string message suitable for showing to the user
as-is (``str(exc)``).
"""
from __future__ import annotations


class StoryVocabError(Exception):
    pass


# ── Transport ─────────────────────────────────────────────────────────────

class NetworkUnavailable(StoryVocabError):
    def __init__(self, message: str = "Network unavailable: check your internet connection"):
        super().__init__(message)


class RequestTimeout(StoryVocabError):
    def __init__(self, message: str = "Request timed out: the server took too long to respond"):
        super().__init__(message)


class SecureConnectionError(StoryVocabError):
    def __init__(self, message: str = "Secure connection error: could not establish a TLS session"):
        super().__init__(message)


# ── Provider ──────────────────────────────────────────────────────────────

class ProviderRejected(StoryVocabError):
    def __init__(self, status_code: int, decoded_message: str):
        super().__init__(decoded_message)
        self.status_code = status_code
        self.decoded_message = decoded_message


# ── Output validation ─────────────────────────────────────────────────────

class MalformedOutput(StoryVocabError):
    def __init__(self, message: str = "Malformed output: the story contains no tagged words"):
        super().__init__(message)


class IncompleteOutput(StoryVocabError):
    def __init__(self, missing_words: list[str]):
        super().__init__(f"missing words: {', '.join(missing_words)}")
        self.missing_words = missing_words


class AllAttemptsExhausted(StoryVocabError):
    def __init__(self, attempts: int, last_cause: str):
        super().__init__(
            f"Story generation failed after {attempts} attempts. "
            "Try increasing the story length, reducing the number of words, "
            f"or switching to another provider. Last error: {last_cause}"
        )
        self.attempts = attempts
        self.last_cause = last_cause


# ── Session ───────────────────────────────────────────────────────────────

class GenerationInProgress(StoryVocabError):
    def __init__(self, message: str = "A story is already being generated, please wait"):
        super().__init__(message)


class QuizFinished(StoryVocabError):
    def __init__(self, message: str = "The quiz is already finished"):
        super().__init__(message)
