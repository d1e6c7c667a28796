"""Tests for the FastAPI application routes."""
from __future__ import annotations

import base64
import json
from unittest.mock import patch

import pytest
from fastapi.testclient import TestClient

from conftest import CLASSIFICATION_REPLY, SAMPLE_TEXT, TEACHBACK_REPLY, FakeLLM, FakeTTS
from teachback import app as app_module
from teachback.app import app
from teachback.config import Settings
from teachback.db import Database
from teachback.persistence import SESSION_KEY


def _llm(*responses, tokens=None):
    return FakeLLM([r if isinstance(r, str) else json.dumps(r) for r in responses], tokens=tokens)


@pytest.fixture
def make_client(tmp_path):
    """Build a client whose LLM replies with *responses* in order."""
    db = Database(tmp_path / "test.db")
    settings = Settings(
        db_path=str(tmp_path / "test.db"),
        audio_cache_dir=str(tmp_path / "audio"),
    )
    clients = []

    def _make(*responses, tokens=None):
        llm = _llm(*responses, tokens=tokens)
        # Set globals BEFORE creating TestClient so startup() is a no-op
        app_module._db = db
        app_module._settings = settings
        with patch("teachback.app._get_llm", return_value=llm), \
             patch("teachback.app._get_live_connector", return_value=None):
            app_module._build_sessions()
        client = TestClient(app, raise_server_exceptions=False)
        clients.append(client)
        return client, llm

    # Patch save_settings and _get_tts so tests never touch real config or speech
    with patch("teachback.app.save_settings"), \
         patch("teachback.app._get_tts", return_value=FakeTTS()):
        yield _make, db, settings

    for client in clients:
        client.close()
    db.close()
    app_module._db = None
    app_module._settings = None
    app_module._orchestrator = None
    app_module._glossary = None
    app_module._chat = None
    app_module._tour = None
    app_module._live = None


@pytest.fixture
def ready_client(make_client):
    make, db, _ = make_client
    client, llm = make(CLASSIFICATION_REPLY, TEACHBACK_REPLY)
    resp = client.post("/api/generate", json={"text": SAMPLE_TEXT})
    assert resp.status_code == 200
    return client, llm, db


class TestPipeline:
    def test_initial_state(self, make_client):
        client, _ = make_client[0]()
        data = client.get("/api/state").json()
        assert data["status"] == "IDLE"
        assert data["quiz"] is None
        assert data["active_tab"] == "teach-back"

    def test_generate(self, ready_client):
        client, llm, _ = ready_client
        data = client.get("/api/state").json()
        assert data["status"] == "READY"
        assert data["effective_category"] == "prescription"
        assert len(data["quiz"]["questions"]) == 3
        assert list(data["content"]["domain"]) == ["prescription"]
        assert llm.call_count == 2

    def test_short_input(self, make_client):
        client, llm = make_client[0](CLASSIFICATION_REPLY)
        resp = client.post("/api/generate", json={"text": "hi"})
        assert resp.status_code == 400
        assert llm.call_count == 0

    def test_generation_failure(self, make_client):
        client, _ = make_client[0]("bad", "worse")
        resp = client.post("/api/generate", json={"text": SAMPLE_TEXT})
        assert resp.status_code == 502
        data = resp.json()
        assert data["status"] == "ERROR"
        assert data["notices"][-1]["level"] == "error"

    def test_image_needs_image_mime(self, make_client):
        client, _ = make_client[0](CLASSIFICATION_REPLY, TEACHBACK_REPLY)
        payload = {"image_base64": base64.b64encode(b"%PDF").decode(), "mime_type": "application/pdf"}
        assert client.post("/api/generate", json=payload).status_code == 400

    def test_answer_and_submit(self, ready_client):
        client, _, _ = ready_client
        for i, qa in enumerate(TEACHBACK_REPLY["qa"]):
            resp = client.post("/api/answer", json={"index": i, "choice": qa["a_correct"]})
            assert resp.status_code == 200
        data = client.post("/api/submit").json()
        assert data["quiz"]["state"] == "MASTERED"
        assert data["metrics"]["mastery_time_seconds"] is not None

    def test_submit_incomplete(self, ready_client):
        client, _, _ = ready_client
        assert client.post("/api/submit").status_code == 409

    def test_bad_answer(self, ready_client):
        client, _, _ = ready_client
        assert client.post("/api/answer", json={"index": 0, "choice": "nope"}).status_code == 400

    def test_try_again(self, ready_client):
        client, _, _ = ready_client
        for i, qa in enumerate(TEACHBACK_REPLY["qa"]):
            client.post("/api/answer", json={"index": i, "choice": qa["a_distractors"][0]})
        assert client.post("/api/submit").json()["quiz"]["state"] == "SUBMITTED"
        data = client.post("/api/try-again").json()
        assert data["quiz"]["state"] == "IN_PROGRESS"
        assert data["metrics"]["attempts"] == 2

    def test_override(self, ready_client):
        client, llm, _ = ready_client
        data = client.post("/api/override", json={"category": "lab"}).json()
        assert data["override_context"] == "lab"
        assert data["content"]["context"] == "lab"
        assert llm.call_count == 3

    def test_override_unknown_category(self, ready_client):
        client, _, _ = ready_client
        assert client.post("/api/override", json={"category": "horoscope"}).status_code == 400


class TestSession:
    def test_save_load_clear(self, ready_client):
        client, _, db = ready_client
        data = client.post("/api/session/save").json()
        assert data["notices"][-1]["message"] == "Session saved successfully!"
        assert db.get(SESSION_KEY) is not None

        data = client.post("/api/session/load").json()
        assert data["status"] == "READY"
        assert data["notices"][-1]["message"] == "Session loaded!"

        data = client.post("/api/session/clear", json={}).json()
        assert data["status"] == "IDLE"
        assert data["has_saved_session"] is False

    def test_corrupted_load(self, make_client):
        make, db, _ = make_client
        client, _ = make()
        db.set(SESSION_KEY, "{{{")
        data = client.post("/api/session/load").json()
        assert data["notices"][-1]["message"] == "Failed to load session. Data might be corrupted."
        assert db.get(SESSION_KEY) is None

    def test_summary(self, ready_client):
        client, _, _ = ready_client
        resp = client.get("/api/summary")
        assert resp.status_code == 200
        assert resp.text.startswith("# Teach-Back Summary")

    def test_summary_without_content(self, make_client):
        client, _ = make_client[0]()
        assert client.get("/api/summary").status_code == 404


class TestGlossaryAndChat:
    def test_glossary_crud(self, make_client):
        client, _ = make_client[0]()
        resp = client.post("/api/glossary", json={"term": "CBC", "definition": "Blood count."})
        assert resp.json()["added"] is True
        assert client.post("/api/glossary", json={"term": "cbc", "definition": "x"}).json()["added"] is False
        assert client.delete("/api/glossary/CBC").json()["terms"] == []
        assert client.delete("/api/glossary/CBC").status_code == 404

    def test_chat_streams(self, make_client):
        client, _ = make_client[0](tokens=["A CBC ", "counts blood cells."])
        resp = client.post("/api/chat", json={"message": "What is a CBC?"})
        assert resp.status_code == 200
        events = [json.loads(line[6:]) for line in resp.text.splitlines() if line.startswith("data: ")]
        assert [e["token"] for e in events if "token" in e] == ["A CBC ", "counts blood cells."]
        assert events[-1]["done"] is True
        assert events[-1]["turn"]["text"] == "A CBC counts blood cells."

    def test_chat_definition_to_glossary(self, make_client):
        tokens = ['{"isDefinition": true, "term": "CBC", "definition": "A blood count."}']
        client, _ = make_client[0](tokens=tokens)
        client.post("/api/chat", json={"message": "What is a CBC?"})
        turns = client.get("/api/chat").json()["turns"]
        assert turns[-1]["definition"]["term"] == "CBC"
        assert client.post("/api/chat/glossary", json={"index": len(turns) - 1}).json()["added"] is True
        assert client.get("/api/glossary").json()["terms"][0]["term"] == "CBC"

    def test_chat_refusal_inside_stream_is_an_event(self, make_client):
        client, _ = make_client[0](tokens=["unused"])
        app_module._chat.llm = None
        resp = client.post("/api/chat", json={"message": "What is a CBC?"})
        assert resp.status_code == 200
        events = [json.loads(line[6:]) for line in resp.text.splitlines() if line.startswith("data: ")]
        assert len(events) == 1
        assert "error" in events[0]
        assert client.get("/api/chat").json()["sending"] is False

    @pytest.mark.parametrize("message", [None, 42, ["hi"]])
    def test_chat_non_string_message(self, make_client, message):
        client, _ = make_client[0]()
        assert client.post("/api/chat", json={"message": message}).status_code == 400

    @pytest.mark.parametrize("body", [
        {"term": "CBC", "definition": 5},
        {"term": None, "definition": "Blood count."},
        {"term": ["CBC"], "definition": "Blood count."},
    ])
    def test_glossary_bad_fields(self, make_client, body):
        client, _ = make_client[0]()
        assert client.post("/api/glossary", json=body).status_code == 400

    def test_chat_empty_message(self, make_client):
        client, _ = make_client[0]()
        assert client.post("/api/chat", json={"message": " "}).status_code == 400


class TestTourRoutes:
    def test_tour_puts_chat_in_demo(self, make_client):
        client, llm = make_client[0]()
        data = client.post("/api/tour/start").json()
        assert data["running"] is True
        assert data["state"]["demo_active"] is True
        assert client.get("/api/chat").json()["demo"] is True
        assert client.post("/api/chat", json={"message": "hi"}).status_code == 409
        assert llm.call_count == 0

        client.post("/api/tour/skip")
        data = client.post("/api/tour/offer", json={"discard": True}).json()
        assert data["state"]["status"] == "IDLE"
        assert client.get("/api/chat").json()["demo"] is False

    def test_unknown_action(self, make_client):
        client, _ = make_client[0]()
        assert client.post("/api/tour/fly").status_code == 404

    def test_tab(self, make_client):
        client, _ = make_client[0]()
        assert client.post("/api/tab", json={"tab": "live-qa"}).json()["active_tab"] == "live-qa"
        assert client.post("/api/tab", json={"tab": "nowhere"}).status_code == 400


class TestMisc:
    def test_tts(self, make_client):
        client, _ = make_client[0]()
        data = client.post("/api/tts/generate", json={"text": "Take **one** pill", "language": "es"}).json()
        assert data["audio_file"].endswith(".mp3")
        resp = client.get(f"/api/audio/{data['audio_file']}")
        assert resp.status_code == 200
        assert resp.content == b"fake audio data"

    def test_generate_non_string_text(self, make_client):
        client, llm = make_client[0](CLASSIFICATION_REPLY)
        assert client.post("/api/generate", json={"text": 12345}).status_code == 400
        assert llm.call_count == 0

    def test_tts_non_string_text(self, make_client):
        client, _ = make_client[0]()
        assert client.post("/api/tts/generate", json={"text": None}).status_code == 400

    def test_tts_unsupported_language(self, make_client):
        client, _ = make_client[0]()
        assert client.post("/api/tts/generate", json={"text": "hi", "language": "xx"}).status_code == 400

    def test_audio_path_traversal(self, make_client):
        client, _ = make_client[0]()
        assert client.get("/api/audio/..secret").status_code == 404

    def test_translate(self, make_client):
        make, _, _ = make_client
        client, _ = make()
        with patch("teachback.app._get_llm", return_value=_llm("Hola", "Hello")):
            resp = client.post("/api/translate", json={
                "audio_base64": base64.b64encode(b"webm").decode(),
                "source": "es",
                "target": "en",
            })
        assert resp.json() == {"text": "Hello"}

    def test_pdf_bad_base64(self, make_client):
        client, _ = make_client[0]()
        assert client.post("/api/pdf/extract", json={"data_base64": "!!"}).status_code == 400

    def test_live_without_backend(self, make_client):
        client, _ = make_client[0]()
        assert client.post("/api/live/start").status_code == 409
        assert client.post("/api/live/stop").json()["state"] == "idle"

    def test_stats(self, make_client):
        client, _ = make_client[0]()
        data = client.get("/api/stats").json()
        assert data["total_sessions"] == 0
        assert data["glossary_terms"] == 0
        assert data["tour_completed"] is False

    def test_update_settings(self, make_client):
        client, _ = make_client[0]()
        with patch("teachback.app._get_llm", return_value=FakeLLM()), \
             patch("teachback.app._get_live_connector", return_value=None):
            data = client.put("/api/settings", json={"confidence_threshold": 0.8, "bogus": 1}).json()
        assert data["confidence_threshold"] == 0.8
        assert "bogus" not in data
        app_module.save_settings.assert_called_once()
