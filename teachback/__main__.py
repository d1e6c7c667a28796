"""CLI entry point for teachback.

Usage:
  python -m teachback serve [--port PORT] [--host HOST]
  python -m teachback stop
  python -m teachback restart [--port PORT]
  python -m teachback status
  python -m teachback simplify FILE [--category CATEGORY]
  python -m teachback stats
  python -m teachback glossary
"""
from __future__ import annotations

import asyncio
import mimetypes
import os
import signal
import sys
from pathlib import Path

PID_FILE = Path(__file__).resolve().parent.parent / ".server.pid"


def main():
    args = sys.argv[1:]
    command = args[0] if args else "serve"

    if command == "serve":
        _serve(args[1:])
    elif command == "stop":
        _stop()
    elif command == "restart":
        _restart(args[1:])
    elif command == "status":
        _status()
    elif command == "simplify":
        _simplify(args[1:])
    elif command == "stats":
        _stats()
    elif command == "glossary":
        _glossary()
    else:
        print(f"Unknown command: {command}")
        print("Commands: serve, stop, restart, status, simplify, stats, glossary")
        sys.exit(1)


def _parse_flag(args: list[str], name: str, default: str | None) -> str | None:
    for i, a in enumerate(args):
        if a == name and i + 1 < len(args):
            return args[i + 1]
    return default


def _read_pid() -> int | None:
    """Read PID from file, return None if stale or missing."""
    if not PID_FILE.exists():
        return None
    try:
        pid = int(PID_FILE.read_text().strip())
        os.kill(pid, 0)
        return pid
    except (ValueError, ProcessLookupError, PermissionError):
        PID_FILE.unlink(missing_ok=True)
        return None


def _write_pid() -> None:
    PID_FILE.write_text(str(os.getpid()))


def _remove_pid() -> None:
    PID_FILE.unlink(missing_ok=True)


def _stop() -> bool:
    """Stop a running server. Returns True if a server was stopped."""
    pid = _read_pid()
    if pid is None:
        print("Server is not running.")
        return False
    try:
        os.kill(pid, signal.SIGTERM)
        print(f"Stopped server (PID {pid}).")
        PID_FILE.unlink(missing_ok=True)
        return True
    except ProcessLookupError:
        print("Server was not running (stale PID file removed).")
        PID_FILE.unlink(missing_ok=True)
        return False


def _status():
    pid = _read_pid()
    if pid is None:
        print("Server is not running.")
    else:
        print(f"Server is running (PID {pid}).")


def _restart(args: list[str]):
    import time
    _stop()
    time.sleep(1)
    _serve(args)


def _serve(args: list[str]):
    import uvicorn

    existing = _read_pid()
    if existing is not None:
        print(f"Server already running (PID {existing}). Use 'restart' or 'stop' first.")
        sys.exit(1)

    port = int(_parse_flag(args, "--port", "8766"))
    host = _parse_flag(args, "--host", "127.0.0.1")
    _write_pid()

    print(f"Starting Teach-Back Engine on http://{host}:{port}")
    print("Press Ctrl+C to stop\n")
    try:
        uvicorn.run(
            "teachback.app:app",
            host=host,
            port=port,
            reload=False,
            timeout_graceful_shutdown=5,
        )
    finally:
        _remove_pid()


def _build_llm(settings):
    if settings.llm_provider == "gemini":
        from teachback.providers.llm_gemini import GeminiProvider
        return GeminiProvider(model=settings.llm_model)
    elif settings.llm_provider == "ollama":
        from teachback.providers.llm_ollama import OllamaProvider
        return OllamaProvider(base_url=settings.ollama_url, model=settings.llm_model)
    elif settings.llm_provider == "anthropic":
        from teachback.providers.llm_anthropic import AnthropicProvider
        return AnthropicProvider(model=settings.llm_model)
    elif settings.llm_provider == "openai":
        from teachback.providers.llm_openai import OpenAIProvider
        return OpenAIProvider(model=settings.llm_model)
    print(f"Unknown LLM provider: {settings.llm_provider}")
    sys.exit(1)


def _simplify(args: list[str]):
    if not args or args[0].startswith("--"):
        print("Usage: python -m teachback simplify FILE [--category CATEGORY]")
        sys.exit(1)
    path = Path(args[0])
    if not path.exists():
        print(f"File not found: {path}")
        sys.exit(1)
    category = _parse_flag(args, "--category", None)

    from teachback.config import load_settings
    from teachback.db import Database
    from teachback.errors import TeachBackError
    from teachback.gateway import AIGateway
    from teachback.orchestrator import SessionOrchestrator
    from teachback.summary import render_summary

    text, image, mime_type = None, None, None
    guessed, _ = mimetypes.guess_type(path.name)
    if path.suffix.lower() == ".pdf":
        from teachback.pdf import extract_pdf_text
        try:
            text = extract_pdf_text(path.read_bytes())
        except TeachBackError as e:
            print(e)
            sys.exit(1)
    elif guessed and guessed.startswith("image/"):
        image, mime_type = path.read_bytes(), guessed
    else:
        text = path.read_text()

    settings = load_settings()
    db = Database(settings.db_full_path)
    orchestrator = SessionOrchestrator(
        AIGateway(_build_llm(settings), timeout_seconds=settings.gateway_timeout_seconds),
        db,
        settings,
    )

    async def run():
        content = await orchestrator.generate(text, image=image, mime_type=mime_type)
        if content is not None and category and category != orchestrator.effective_category:
            content = await orchestrator.override_category(category)
        return content

    try:
        content = asyncio.run(run())
    except TeachBackError as e:
        print(e)
        db.close()
        sys.exit(1)

    if content is None:
        print(f"Error: {orchestrator.error}")
        db.close()
        sys.exit(1)

    c = orchestrator.classification
    print(f"Category: {orchestrator.effective_category} "
          f"(classified {c.context}, confidence {c.confidence:.2f})")
    if not orchestrator.is_confident and not orchestrator.override_context:
        print("Low confidence: showing general mode. Use --category to pick one.")
    print()
    print(render_summary(content))
    db.close()


def _stats():
    from teachback.config import load_settings
    from teachback.db import Database
    from teachback.glossary import Glossary
    from teachback.persistence import Counters, SessionRepository

    settings = load_settings()
    db = Database(settings.db_full_path)
    stats = Counters(db).snapshot()

    print("Teach-Back Stats")
    print("=" * 40)
    print(f"App sessions:       {stats['total_sessions']}")
    print(f"Quizzes mastered:   {stats['mastered']}")
    print(f"Category overrides: {stats['overrides']}")
    print(f"General mode runs:  {stats['unknown']}")
    print(f"Glossary terms:     {len(Glossary(db))}")
    print(f"Cached audio clips: {db.audio_cache_count()}")
    print(f"Saved session:      {'yes' if SessionRepository(db).exists() else 'no'}")
    db.close()


def _glossary():
    from teachback.config import load_settings
    from teachback.db import Database
    from teachback.glossary import Glossary

    settings = load_settings()
    db = Database(settings.db_full_path)
    terms = Glossary(db).terms
    if not terms:
        print("Your glossary is empty.")
    for t in terms:
        print(f"{t.term}: {t.definition}")
    db.close()


if __name__ == "__main__":
    main()
