"""FastAPI application with all routes."""
from __future__ import annotations

import itertools
import logging
from dataclasses import asdict

import httpx

logging.basicConfig(level=logging.INFO, format="%(name)s | %(message)s")

from fastapi import FastAPI, HTTPException, Request

from story_vocab.config import Settings, coerce_setting, load_settings, save_settings
from story_vocab.db import Database
from story_vocab.errors import (
    AllAttemptsExhausted,
    GenerationInProgress,
    QuizFinished,
    StoryVocabError,
)
from story_vocab.models import QuizQuestion, SavedStory, StoryResult, WordDefinition
from story_vocab.parsers.word_list_parser import split_word_input
from story_vocab.providers.llm_chat import ChatCompletionClient
from story_vocab.providers.registry import PROVIDERS
from story_vocab.quiz import QuizSession, build_quiz
from story_vocab.story_generator import StoryGenerator, load_demo_story

app = FastAPI(title="Story Vocab")

MIN_WORDS = 2
MAX_QUIZ_SESSIONS = 50

# Global state (initialized in startup)
_db: Database | None = None
_settings: Settings | None = None
_generator: StoryGenerator | None = None
_quiz_sessions: dict[int, QuizSession] = {}
_session_ids = itertools.count(1)

_log = logging.getLogger("story_vocab.app")


def get_db() -> Database:
    assert _db is not None
    return _db


def get_settings() -> Settings:
    assert _settings is not None
    return _settings


def get_generator() -> StoryGenerator:
    global _generator
    if _generator is None:
        _generator = StoryGenerator(get_settings(), history=get_db())
    return _generator


def _get_client(settings: Settings) -> ChatCompletionClient:
    return ChatCompletionClient(settings.provider, settings.resolved_api_key())


@app.on_event("startup")
async def startup():
    global _db, _settings
    if _db is not None:
        return  # Already initialized (e.g. by tests)
    _settings = load_settings()
    _db = Database(_settings.db_full_path)


@app.on_event("shutdown")
async def shutdown():
    if _db:
        _db.close()


# ── Serialization ─────────────────────────────────────────────────────────

def _story_result_dict(result: StoryResult) -> dict:
    return {
        "story": result.story,
        "definitions": [d.to_dict() for d in result.definitions],
        "token_usage": asdict(result.token_usage) if result.token_usage else None,
        "story_id": result.story_id,
        "attempts": result.attempts,
        "demo": result.demo,
    }


def _saved_story_dict(story: SavedStory) -> dict:
    return {
        "id": story.id,
        "title": story.title,
        "content": story.content,
        "definitions": [d.to_dict() for d in story.word_definitions],
        "original_words": story.original_words,
        "theme": story.theme,
        "created_at": story.created_at,
        "llm_provider": story.llm_provider,
    }


def _question_dict(q: QuizQuestion, index: int, total: int) -> dict:
    # correct_index stays server-side until the answer is submitted
    return {
        "index": index,
        "total": total,
        "word": q.word,
        "prompt": q.prompt_text,
        "options": q.options,
    }


# ── API: Providers & settings ─────────────────────────────────────────────

@app.get("/api/providers")
async def api_providers():
    return [
        {"id": p.id.value, "name": p.display_name, "model": p.model}
        for p in PROVIDERS.values()
    ]


@app.get("/api/settings")
async def api_get_settings():
    return get_settings().to_public_dict()


@app.put("/api/settings")
async def api_update_settings(request: Request):
    body = await request.json()
    s = get_settings()
    if not isinstance(body, dict):
        raise HTTPException(400, "Expected a JSON object")
    known = {f.name for f in Settings.__dataclass_fields__.values()} - {"db_path"}
    updates = {}
    for k, v in body.items():
        if k not in known:
            continue
        try:
            updates[k] = coerce_setting(k, v)
        except ValueError as e:
            raise HTTPException(400, str(e))
    for k, v in updates.items():
        setattr(s, k, v)
    save_settings(s)
    return s.to_public_dict()


@app.post("/api/check")
async def api_check():
    s = get_settings()
    if not s.resolved_api_key():
        return {"ok": False, "message": "No API key configured"}
    try:
        ok, message = await _get_client(s).check_connection()
    except (StoryVocabError, httpx.HTTPError) as e:
        return {"ok": False, "message": str(e)}
    return {"ok": ok, "message": message}


# ── API: Story generation ─────────────────────────────────────────────────

@app.post("/api/story/generate")
async def api_generate_story(request: Request):
    body = await request.json()
    if "words" in body:
        words = [str(w) for w in body["words"] if str(w).strip()]
    else:
        text = body.get("text", "")
        words = split_word_input(text)
        s = get_settings()
        s.last_word_input = text
        save_settings(s)

    if len(words) < MIN_WORDS:
        raise HTTPException(400, f"Enter at least {MIN_WORDS} words")

    try:
        result = await get_generator().generate_story(words, provider=body.get("provider"))
    except GenerationInProgress as e:
        raise HTTPException(409, str(e))
    except AllAttemptsExhausted as e:
        raise HTTPException(502, str(e))
    except ValueError as e:
        raise HTTPException(400, str(e))

    data = _story_result_dict(result)
    data["original_words"] = words
    return data


@app.post("/api/story/demo")
async def api_demo_story():
    return _story_result_dict(load_demo_story())


# ── API: Quiz ─────────────────────────────────────────────────────────────

def _is_int(value) -> bool:
    return isinstance(value, int) and not isinstance(value, bool)


def _evict_quiz_sessions() -> None:
    """Keep at most MAX_QUIZ_SESSIONS, dropping finished sessions first, then the oldest."""
    while len(_quiz_sessions) > MAX_QUIZ_SESSIONS:
        finished = [sid for sid, s in _quiz_sessions.items() if s.finished]
        victim = finished[0] if finished else next(iter(_quiz_sessions))
        del _quiz_sessions[victim]


@app.post("/api/quiz/start")
async def api_quiz_start(request: Request):
    body = await request.json()
    if body.get("story_id"):
        story = get_db().get_story(body["story_id"])
        if story is None:
            raise HTTPException(404, "Story not found")
        original_words = story.original_words
        definitions = story.word_definitions
    else:
        try:
            definitions = [WordDefinition.from_dict(d) for d in body.get("definitions", [])]
        except (KeyError, TypeError) as e:
            raise HTTPException(400, f"Invalid definitions: {e}")
        original_words = body.get("original_words") or [d.word for d in definitions]

    questions = build_quiz(original_words, definitions)
    if not questions:
        raise HTTPException(400, "None of the words were defined in the story")

    session_id = next(_session_ids)
    session = QuizSession(questions)
    _quiz_sessions[session_id] = session
    _evict_quiz_sessions()
    _log.info("Quiz %d started with %d questions", session_id, len(questions))
    return {
        "session_id": session_id,
        "question": _question_dict(questions[0], 0, len(questions)),
    }


@app.post("/api/quiz/answer")
async def api_quiz_answer(request: Request):
    body = await request.json()
    session_id = body.get("session_id") if isinstance(body, dict) else None
    selected_index = body.get("selected_index") if isinstance(body, dict) else None
    if not _is_int(session_id) or not _is_int(selected_index):
        raise HTTPException(400, "session_id and selected_index must be integers")

    session = _quiz_sessions.get(session_id)
    if session is None:
        raise HTTPException(404, "Quiz session not found")

    question = session.current_question
    try:
        score, finished = session.submit_answer(selected_index)
    except QuizFinished as e:
        raise HTTPException(400, str(e))

    result = {
        "correct": selected_index == question.correct_index,
        "correct_index": question.correct_index,
        "correct_translation": question.correct_translation,
        "context_meaning": question.context_meaning,
        "score": score,
        "finished": finished,
    }
    if finished:
        summary = session.result()
        result["summary"] = {
            "total": summary.total,
            "correct": summary.correct,
            "percentage": summary.percentage,
            "evaluation": summary.evaluation,
            "wrong_answers": [asdict(w) for w in summary.wrong_answers],
        }
    else:
        result["next_question"] = _question_dict(
            session.current_question, session.current_index, len(session.questions),
        )
    return result


@app.get("/api/quiz/{session_id}/wrong-answers")
async def api_quiz_wrong_answers(session_id: int):
    session = _quiz_sessions.get(session_id)
    if session is None:
        raise HTTPException(404, "Quiz session not found")
    return [asdict(w) for w in session.wrong_answers]


# ── API: History ──────────────────────────────────────────────────────────

@app.get("/api/history")
async def api_history():
    return [_saved_story_dict(s) for s in get_db().get_stories()]


@app.get("/api/history/{story_id}")
async def api_history_story(story_id: str):
    story = get_db().get_story(story_id)
    if story is None:
        raise HTTPException(404, "Story not found")
    return _saved_story_dict(story)


@app.patch("/api/history/{story_id}")
async def api_history_rename(story_id: str, request: Request):
    body = await request.json()
    title = str(body.get("title", "")).strip()
    if not title:
        raise HTTPException(400, "Title must not be empty")
    if not get_db().update_story_title(story_id, title):
        raise HTTPException(404, "Story not found")
    return {"id": story_id, "title": title}


@app.delete("/api/history/{story_id}")
async def api_history_delete(story_id: str):
    if not get_db().delete_story(story_id):
        raise HTTPException(404, "Story not found")
    return {"deleted": story_id}
