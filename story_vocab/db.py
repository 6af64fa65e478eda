from __future__ import annotations

import json
import sqlite3
from pathlib import Path

from story_vocab.models import SavedStory, WordDefinition

HISTORY_LIMIT = 20

SCHEMA = """
CREATE TABLE IF NOT EXISTS stories (
    id TEXT PRIMARY KEY,
    title TEXT NOT NULL,
    content TEXT NOT NULL,
    definitions_json TEXT NOT NULL DEFAULT '[]',
    original_words_json TEXT NOT NULL DEFAULT '[]',
    theme TEXT,
    created_at TEXT NOT NULL,
    llm_provider TEXT
);

CREATE INDEX IF NOT EXISTS idx_stories_created ON stories(created_at);
"""


def _row_to_story(row: sqlite3.Row) -> SavedStory:
    return SavedStory(
        id=row["id"],
        title=row["title"],
        content=row["content"],
        word_definitions=[
            WordDefinition.from_dict(d) for d in json.loads(row["definitions_json"])
        ],
        original_words=json.loads(row["original_words_json"]),
        theme=row["theme"] or "",
        created_at=row["created_at"],
        llm_provider=row["llm_provider"] or "",
    )


class Database:
    """Story history: newest first, capped at ``HISTORY_LIMIT`` entries."""

    def __init__(self, db_path: Path, limit: int = HISTORY_LIMIT):
        self.db_path = db_path
        self.limit = limit
        self.conn = sqlite3.connect(str(db_path), check_same_thread=False)
        self.conn.row_factory = sqlite3.Row
        self.conn.execute("PRAGMA journal_mode=WAL")
        self._init_schema()

    def _init_schema(self) -> None:
        self.conn.executescript(SCHEMA)
        self.conn.commit()

    def close(self) -> None:
        self.conn.close()

    # ── Stories ───────────────────────────────────────────────────────────

    def save_story(self, story: SavedStory) -> int:
        """Insert (or replace) *story*, then evict the oldest beyond the cap.

        Returns the number of evicted stories.
        """
        self.conn.execute(
            "INSERT OR REPLACE INTO stories "
            "(id, title, content, definitions_json, original_words_json, theme, created_at, llm_provider) "
            "VALUES (?, ?, ?, ?, ?, ?, ?, ?)",
            (
                story.id,
                story.title,
                story.content,
                json.dumps([d.to_dict() for d in story.word_definitions], ensure_ascii=False),
                json.dumps(story.original_words, ensure_ascii=False),
                story.theme,
                story.created_at,
                story.llm_provider,
            ),
        )
        cur = self.conn.execute(
            "DELETE FROM stories WHERE id NOT IN "
            "(SELECT id FROM stories ORDER BY created_at DESC, rowid DESC LIMIT ?)",
            (self.limit,),
        )
        self.conn.commit()
        return cur.rowcount

    def get_stories(self) -> list[SavedStory]:
        rows = self.conn.execute(
            "SELECT * FROM stories ORDER BY created_at DESC, rowid DESC"
        ).fetchall()
        return [_row_to_story(r) for r in rows]

    def get_story(self, story_id: str) -> SavedStory | None:
        row = self.conn.execute(
            "SELECT * FROM stories WHERE id = ?", (story_id,)
        ).fetchone()
        return _row_to_story(row) if row else None

    def update_story_title(self, story_id: str, title: str) -> bool:
        cur = self.conn.execute(
            "UPDATE stories SET title = ? WHERE id = ?", (title, story_id)
        )
        self.conn.commit()
        return cur.rowcount > 0

    def delete_story(self, story_id: str) -> bool:
        cur = self.conn.execute("DELETE FROM stories WHERE id = ?", (story_id,))
        self.conn.commit()
        return cur.rowcount > 0

    def get_story_count(self) -> int:
        return self.conn.execute("SELECT COUNT(*) FROM stories").fetchone()[0]
