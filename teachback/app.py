"""FastAPI application with all routes."""
from __future__ import annotations

import base64
import binascii
import json
import logging

logging.basicConfig(level=logging.INFO, format="%(name)s | %(message)s")

from fastapi import FastAPI, HTTPException, Request
from fastapi.responses import FileResponse, JSONResponse, PlainTextResponse, StreamingResponse

from teachback.audio import get_or_create_audio, strip_markdown, text_hash
from teachback.chat import ChatSession
from teachback.config import Settings, load_settings, save_settings
from teachback.db import Database
from teachback.errors import (
    DeviceUnavailable,
    GenerationFailure,
    InputTooShort,
    QuizStateError,
    TeachBackError,
    UnsupportedPlatform,
)
from teachback.gateway import AIGateway
from teachback.glossary import Glossary
from teachback.live import LiveAudioSession
from teachback.models import SUPPORTED_LANGUAGES
from teachback.orchestrator import SessionOrchestrator
from teachback.pdf import PdfUnreadable, ScannedPdf, extract_pdf_text
from teachback.persistence import TOTAL_SESSIONS, Counters
from teachback.summary import render_summary
from teachback.tour import Tab, TourCoordinator
from teachback.translate import transcribe_and_translate

app = FastAPI(title="Teach-Back Engine")

log = logging.getLogger("teachback.app")

# Global state (initialized on startup, or directly by tests)
_db: Database | None = None
_settings: Settings | None = None
_orchestrator: SessionOrchestrator | None = None
_glossary: Glossary | None = None
_chat: ChatSession | None = None
_tour: TourCoordinator | None = None
_live: LiveAudioSession | None = None


def get_db() -> Database:
    assert _db is not None
    return _db


def get_settings() -> Settings:
    assert _settings is not None
    return _settings


def get_orchestrator() -> SessionOrchestrator:
    assert _orchestrator is not None
    return _orchestrator


def get_tour() -> TourCoordinator:
    assert _tour is not None
    return _tour


def _get_llm():
    s = get_settings()
    if s.llm_provider == "gemini":
        from teachback.providers.llm_gemini import GeminiProvider
        return GeminiProvider(model=s.llm_model)
    elif s.llm_provider == "ollama":
        from teachback.providers.llm_ollama import OllamaProvider
        return OllamaProvider(base_url=s.ollama_url, model=s.llm_model)
    elif s.llm_provider == "anthropic":
        from teachback.providers.llm_anthropic import AnthropicProvider
        return AnthropicProvider(model=s.llm_model)
    elif s.llm_provider == "openai":
        from teachback.providers.llm_openai import OpenAIProvider
        return OpenAIProvider(model=s.llm_model)
    raise ValueError(f"Unknown LLM provider: {s.llm_provider}")


def _get_tts():
    s = get_settings()
    if s.tts_provider == "gemini":
        from teachback.providers.tts_gemini import GeminiTTSProvider
        return GeminiTTSProvider(model=s.tts_model)
    elif s.tts_provider == "edge-tts":
        from teachback.providers.tts_edge import EdgeTTSProvider
        return EdgeTTSProvider()
    elif s.tts_provider == "elevenlabs":
        from teachback.providers.tts_elevenlabs import ElevenLabsProvider
        return ElevenLabsProvider()
    raise ValueError(f"Unknown TTS provider: {s.tts_provider}")


def _get_live_connector():
    from teachback.providers.live_gemini import GeminiLiveConnector
    return GeminiLiveConnector(model=get_settings().live_model)


def _build_sessions() -> None:
    """(Re)build everything that depends on the configured providers."""
    global _orchestrator, _glossary, _chat, _tour, _live
    db, s = get_db(), get_settings()
    llm = _get_llm()
    _orchestrator = SessionOrchestrator(
        AIGateway(llm, timeout_seconds=s.gateway_timeout_seconds), db, s
    )
    _glossary = Glossary(db)
    _chat = ChatSession(llm, _glossary)
    _tour = TourCoordinator(_orchestrator, db)
    _live = LiveAudioSession(_get_live_connector())


async def _sync_demo() -> None:
    """Chat and Live follow the orchestrator's demo flag."""
    global _chat, _live
    demo = get_orchestrator().demo_active
    if _chat is not None and _chat.demo != demo:
        _chat = ChatSession(_chat.llm, _chat.glossary, demo=demo)
    if _live is not None and _live.demo != demo:
        await _live.stop()
        _live = LiveAudioSession(
            _live.connector, _live.microphone_factory, _live.speaker_factory, _live.probe, demo=demo
        )


@app.on_event("startup")
async def startup():
    global _db, _settings
    if _db is not None:
        return  # Already initialized (e.g. by tests)
    _settings = load_settings()
    _db = Database(_settings.db_full_path)
    Counters(_db).increment(TOTAL_SESSIONS)
    _build_sessions()


@app.on_event("shutdown")
async def shutdown():
    if _live:
        await _live.stop()
    if _db:
        _db.close()


# ── Helpers ───────────────────────────────────────────────────────────────

def _state() -> dict:
    o = get_orchestrator()
    state = o.to_dict()
    state["notices"] = [{"level": n.level, "message": n.message} for n in o.drain_notices()]
    state["active_tab"] = get_tour().active_tab.value
    return state


def _require_idle() -> SessionOrchestrator:
    o = get_orchestrator()
    if o.busy:
        raise HTTPException(409, "A generation is already in progress")
    return o


def _str_field(body: dict, key: str, default: str | None = "") -> str | None:
    value = body.get(key)
    if value is None:
        return default
    if not isinstance(value, str):
        raise HTTPException(400, f"{key} must be a string")
    return value


def _decode_b64(value, what: str) -> bytes:
    if not isinstance(value, str) or not value:
        raise HTTPException(400, f"No {what} provided")
    try:
        return base64.b64decode(value, validate=True)
    except (binascii.Error, ValueError):
        raise HTTPException(400, f"Invalid base64 {what}")


# ── API: Teach-back pipeline ──────────────────────────────────────────────

@app.get("/api/state")
async def api_state():
    return _state()


@app.post("/api/generate")
async def api_generate(request: Request):
    body = await request.json()
    o = _require_idle()
    image = None
    if body.get("image_base64"):
        image = _decode_b64(body["image_base64"], "image")
        if not str(body.get("mime_type", "")).startswith("image/"):
            raise HTTPException(400, "Images need an image/* mime_type")
    try:
        content = await o.generate(
            _str_field(body, "text", None), image=image, mime_type=_str_field(body, "mime_type", None)
        )
    except InputTooShort as e:
        raise HTTPException(400, str(e))
    await _sync_demo()
    if content is None:
        return JSONResponse(status_code=502, content=_state())
    return _state()


@app.post("/api/override")
async def api_override(request: Request):
    body = await request.json()
    o = _require_idle()
    try:
        content = await o.override_category(_str_field(body, "category"))
    except QuizStateError as e:
        raise HTTPException(409, str(e))
    except ValueError as e:
        raise HTTPException(400, str(e))
    if content is None:
        return JSONResponse(status_code=502, content=_state())
    return _state()


@app.post("/api/answer")
async def api_answer(request: Request):
    body = await request.json()
    try:
        get_orchestrator().answer(int(body["index"]), body["choice"])
    except QuizStateError as e:
        raise HTTPException(409, str(e))
    except (KeyError, TypeError, ValueError) as e:
        raise HTTPException(400, str(e))
    return _state()


@app.post("/api/submit")
async def api_submit():
    try:
        get_orchestrator().submit()
    except QuizStateError as e:
        raise HTTPException(409, str(e))
    return _state()


@app.post("/api/try-again")
async def api_try_again():
    try:
        get_orchestrator().try_again()
    except QuizStateError as e:
        raise HTTPException(409, str(e))
    return _state()


# ── API: Saved session ────────────────────────────────────────────────────

@app.post("/api/session/save")
async def api_session_save():
    _require_idle().save()
    return _state()


@app.post("/api/session/load")
async def api_session_load():
    o = _require_idle()
    if o.load():
        get_tour().switch_tab(Tab.TEACH_BACK)
    await _sync_demo()
    return _state()


@app.post("/api/session/clear")
async def api_session_clear(request: Request):
    body = await request.json() if await request.body() else {}
    _require_idle().clear(keep_input=bool(body.get("keep_input", False)))
    await _sync_demo()
    return _state()


@app.get("/api/summary")
async def api_summary():
    o = get_orchestrator()
    if o.content is None:
        raise HTTPException(404, "Nothing to summarize yet")
    return PlainTextResponse(render_summary(o.content, o.answers), media_type="text/markdown")


# ── API: Glossary ─────────────────────────────────────────────────────────

@app.get("/api/glossary")
async def api_glossary():
    return {"terms": [{"term": t.term, "definition": t.definition} for t in _glossary.terms]}


@app.post("/api/glossary")
async def api_glossary_add(request: Request):
    body = await request.json()
    try:
        added = _glossary.add(_str_field(body, "term"), _str_field(body, "definition"))
    except ValueError as e:
        raise HTTPException(400, str(e))
    return {"added": added, "terms": [{"term": t.term, "definition": t.definition} for t in _glossary.terms]}


@app.delete("/api/glossary/{term}")
async def api_glossary_remove(term: str):
    if not _glossary.remove(term):
        raise HTTPException(404, "Term not in glossary")
    return {"terms": [{"term": t.term, "definition": t.definition} for t in _glossary.terms]}


# ── API: Chat ─────────────────────────────────────────────────────────────

@app.get("/api/chat")
async def api_chat_state():
    return _chat.to_dict()


@app.post("/api/chat")
async def api_chat(request: Request):
    body = await request.json()
    message = _str_field(body, "message").strip()
    if not message:
        raise HTTPException(400, "No message provided")
    chat = _chat
    if chat.demo:
        raise HTTPException(409, "Chat is read-only during the demo")
    if chat.sending:
        raise HTTPException(409, "A reply is still streaming")

    o = get_orchestrator()
    document = o.content.simplified_text if o.content else None

    async def stream():
        # send() claims the session on its first step, so a concurrent refusal lands here
        try:
            async for token in chat.send(message, document=document):
                yield f"data: {json.dumps({'token': token})}\n\n"
        except QuizStateError as e:
            yield f"data: {json.dumps({'error': str(e)})}\n\n"
            return
        yield f"data: {json.dumps({'done': True, 'turn': chat.turns[-1].to_dict()})}\n\n"

    return StreamingResponse(
        stream(),
        media_type="text/event-stream",
        headers={"Cache-Control": "no-cache", "X-Accel-Buffering": "no"},
    )


@app.post("/api/chat/glossary")
async def api_chat_glossary(request: Request):
    body = await request.json()
    try:
        added = _chat.add_to_glossary(int(body.get("index", -1)))
    except (TypeError, ValueError) as e:
        raise HTTPException(400, str(e))
    return {"added": added}


# ── API: Audio ────────────────────────────────────────────────────────────

@app.get("/api/audio/{filename}")
async def api_audio(filename: str):
    s = get_settings()
    if "/" in filename or "\\" in filename or filename.startswith("."):
        raise HTTPException(404, "Audio not found")
    audio_path = s.audio_cache_full_path / filename
    if not audio_path.exists():
        raise HTTPException(404, "Audio not found")
    media_type = "audio/wav" if audio_path.suffix == ".wav" else "audio/mpeg"
    return FileResponse(audio_path, media_type=media_type)


@app.post("/api/tts/generate")
async def api_tts_generate(request: Request):
    """Speak arbitrary text (simplified instructions, translations, chat replies)."""
    body = await request.json()
    text = _str_field(body, "text").strip()
    language = _str_field(body, "language", "en")
    if not text:
        raise HTTPException(400, "No text provided")
    if language not in SUPPORTED_LANGUAGES:
        raise HTTPException(400, f"Unsupported language: {language}")

    try:
        tts = _get_tts()
        s = get_settings()
        audio_path = await get_or_create_audio(text, language, tts, get_db(), s.audio_cache_full_path)
    except ValueError as e:
        raise HTTPException(500, f"TTS error: {e}")
    if audio_path is None:
        raise HTTPException(500, "TTS generation failed")
    return {
        "audio_file": audio_path.name,
        "audio_hash": text_hash(strip_markdown(text), language),
    }


@app.post("/api/translate")
async def api_translate(request: Request):
    body = await request.json()
    audio = _decode_b64(body.get("audio_base64"), "audio")
    try:
        text = await transcribe_and_translate(
            _get_llm(),
            audio,
            _str_field(body, "mime_type", "audio/webm"),
            _str_field(body, "source", "en"),
            _str_field(body, "target", "es"),
        )
    except GenerationFailure as e:
        raise HTTPException(502, str(e))
    except ValueError as e:
        raise HTTPException(400, str(e))
    return {"text": text}


@app.post("/api/pdf/extract")
async def api_pdf_extract(request: Request):
    body = await request.json()
    data = _decode_b64(body.get("data_base64"), "PDF")
    try:
        return {"text": extract_pdf_text(data)}
    except ScannedPdf as e:
        raise HTTPException(422, str(e))
    except PdfUnreadable as e:
        raise HTTPException(400, str(e))


# ── API: Tour ─────────────────────────────────────────────────────────────

@app.get("/api/tour")
async def api_tour():
    return get_tour().to_dict()


@app.post("/api/tour/{action}")
async def api_tour_action(action: str, request: Request):
    tour = get_tour()
    _require_idle()
    try:
        if action == "start":
            tour.start()
        elif action == "next":
            tour.next()
        elif action == "back":
            tour.back()
        elif action == "skip":
            tour.skip()
        elif action == "offer":
            body = await request.json()
            tour.resolve_offer(bool(body.get("discard", False)))
        else:
            raise HTTPException(404, f"Unknown tour action: {action}")
    except QuizStateError as e:
        raise HTTPException(409, str(e))
    await _sync_demo()
    return {**tour.to_dict(), "state": _state()}


@app.post("/api/tab")
async def api_tab(request: Request):
    body = await request.json()
    try:
        get_tour().switch_tab(Tab(body.get("tab")))
    except ValueError:
        raise HTTPException(400, f"Unknown tab: {body.get('tab')}")
    return {"active_tab": get_tour().active_tab.value}


# ── API: Live Q&A ─────────────────────────────────────────────────────────

@app.get("/api/live")
async def api_live():
    return _live.to_dict()


@app.post("/api/live/start")
async def api_live_start():
    try:
        await _live.start()
    except (UnsupportedPlatform, DeviceUnavailable) as e:
        raise HTTPException(503, str(e))
    except QuizStateError as e:
        raise HTTPException(409, str(e))
    except TeachBackError as e:
        raise HTTPException(502, str(e))
    return _live.to_dict()


@app.post("/api/live/stop")
async def api_live_stop():
    await _live.stop()
    return _live.to_dict()


# ── API: Stats & settings ─────────────────────────────────────────────────

@app.get("/api/stats")
async def api_stats():
    stats = Counters(get_db()).snapshot()
    stats["glossary_terms"] = len(_glossary) if _glossary is not None else 0
    stats["cached_audio"] = get_db().audio_cache_count()
    stats["tour_completed"] = get_tour().tour_completed
    return stats


@app.get("/api/settings")
async def api_get_settings():
    return get_settings().to_dict()


@app.put("/api/settings")
async def api_update_settings(request: Request):
    body = await request.json()
    _require_idle()
    s = get_settings()
    known = {f.name for f in Settings.__dataclass_fields__.values()}
    for k, v in body.items():
        if k in known:
            setattr(s, k, v)
    save_settings(s)
    if _live is not None:
        await _live.stop()
    _build_sessions()
    return s.to_dict()
