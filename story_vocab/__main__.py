"""CLI entry point for story-vocab.

Usage:
  python -m story_vocab serve [--port PORT] [--host HOST]
  python -m story_vocab generate WORD WORD... [--provider openai|deepseek|kimi]
  python -m story_vocab demo
  python -m story_vocab check
  python -m story_vocab history
"""
from __future__ import annotations

import asyncio
import logging
import sys


def main():
    args = sys.argv[1:]
    command = args[0] if args else "serve"

    if command == "serve":
        _serve(args[1:])
    elif command == "generate":
        _generate(args[1:])
    elif command == "demo":
        _demo()
    elif command == "check":
        _check()
    elif command == "history":
        _history()
    else:
        print(f"Unknown command: {command}")
        print("Commands: serve, generate, demo, check, history")
        sys.exit(1)


def _parse_flag(args: list[str], name: str, default: str) -> str:
    for i, a in enumerate(args):
        if a == name and i + 1 < len(args):
            return args[i + 1]
    return default


def _positional(args: list[str], flags: tuple[str, ...]) -> list[str]:
    """Arguments that are neither flags nor flag values."""
    result = []
    skip = False
    for a in args:
        if skip:
            skip = False
            continue
        if a in flags:
            skip = True
            continue
        result.append(a)
    return result


def _serve(args: list[str]):
    import uvicorn

    port = int(_parse_flag(args, "--port", "8765"))
    host = _parse_flag(args, "--host", "127.0.0.1")
    print(f"Starting Story Vocab on http://{host}:{port}")
    print("Press Ctrl+C to stop\n")
    uvicorn.run(
        "story_vocab.app:app",
        host=host,
        port=port,
        reload=False,
        timeout_graceful_shutdown=5,
    )


def _print_result(result) -> None:
    print(result.story)
    print()
    print(f"{len(result.definitions)} words:")
    for d in result.definitions:
        ctx = f"  ({d.context_meaning})" if d.context_meaning else ""
        print(f"  {d.word:<16} {d.part_of_speech:<8} {d.translation}{ctx}")
    if result.token_usage:
        u = result.token_usage
        print(f"\nTokens: {u.prompt_tokens} prompt + {u.completion_tokens} completion "
              f"= {u.total_tokens}")


def _generate(args: list[str]):
    from story_vocab.config import load_settings
    from story_vocab.db import Database
    from story_vocab.errors import StoryVocabError
    from story_vocab.parsers.word_list_parser import split_word_input
    from story_vocab.story_generator import StoryGenerator

    logging.basicConfig(level=logging.INFO, format="%(name)s | %(message)s")
    words = split_word_input(" ".join(_positional(args, ("--provider",))))
    if len(words) < 2:
        print("Give at least 2 words, e.g.: generate abandon fragile compel")
        sys.exit(1)

    settings = load_settings()
    provider = _parse_flag(args, "--provider", settings.llm_provider)
    db = Database(settings.db_full_path)
    generator = StoryGenerator(settings, history=db)
    try:
        result = asyncio.run(generator.generate_story(words, provider=provider))
    except (StoryVocabError, ValueError) as e:
        print(f"Error: {e}")
        sys.exit(1)
    finally:
        db.close()

    if result.demo:
        print("No API key configured, showing the demo story.\n")
    _print_result(result)


def _demo():
    from story_vocab.story_generator import load_demo_story

    _print_result(load_demo_story())


def _check():
    from story_vocab.config import load_settings
    from story_vocab.errors import StoryVocabError
    from story_vocab.providers.llm_chat import ChatCompletionClient

    settings = load_settings()
    api_key = settings.resolved_api_key()
    if not api_key:
        print(f"No API key configured for {settings.provider.display_name}.")
        sys.exit(1)
    client = ChatCompletionClient(settings.provider, api_key)
    try:
        ok, message = asyncio.run(client.check_connection())
    except StoryVocabError as e:
        ok, message = False, str(e)
    print(message)
    if not ok:
        sys.exit(1)


def _history():
    from story_vocab.config import load_settings
    from story_vocab.db import Database

    settings = load_settings()
    db = Database(settings.db_full_path)
    stories = db.get_stories()
    db.close()

    if not stories:
        print("No stories yet.")
        return
    for s in stories:
        print(f"{s.created_at[:19]}  {s.llm_provider:<9} {s.title}  "
              f"[{len(s.word_definitions)} words]  {s.id}")


if __name__ == "__main__":
    main()
