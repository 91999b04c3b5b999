"""
Tests for the HTTP surface, with fake generation clients behind the orchestrator.
"""
import time
import asyncio
import pytest
from fastapi import HTTPException, Request, Response
from fastapi.testclient import TestClient

from fact_video.app import app, generate
from fact_video.credentials import CredentialGate, MemoryCredentialStore
from fact_video.errors import GeminiError
from fact_video.models import GenerateRequest, Stage
from fact_video.orchestrator import GenerationOrchestrator

REQUEST = {
    "mode": "both",
    "narration_text": "Octopuses have three hearts.",
    "visual_prompt": "octopus, photorealistic",
    "voice": "Kore",
    "speaking_rate": 1.0,
}


@pytest.fixture
def api(monkeypatch, clients, tmp_path):
    audio = tmp_path / "narration.wav"
    audio.write_bytes(b"RIFF-fake-wav")
    image = tmp_path / "image.png"
    image.write_bytes(b"\x89PNG-fake")
    clients.audio_handle = str(audio)
    clients.image_handle = str(image)

    store = MemoryCredentialStore("test-key")
    orchestrator = GenerationOrchestrator(
        CredentialGate(store),
        synthesize_narration=clients.synthesize_narration,
        synthesize_image=clients.synthesize_image,
    )
    monkeypatch.setattr(app.state, "store", store)
    monkeypatch.setattr(app.state, "orchestrator", orchestrator)
    with TestClient(app) as client:
        yield client


def test_health(api):
    r = api.get("/health")
    assert r.status_code == 200
    assert r.json() == {"ok": True, "has_credential": True}


def test_credential_set_and_clear(api):
    assert api.delete("/v1/credential").json()["has_credential"] is False
    assert api.get("/health").json()["has_credential"] is False

    assert api.put("/v1/credential", json={"api_key": "new-key"}).status_code == 200
    assert api.get("/health").json()["has_credential"] is True


def test_empty_credential_rejected(api):
    assert api.put("/v1/credential", json={"api_key": "  "}).status_code == 400


def test_generate_and_wait(api, clients):
    r = api.post("/v1/generate?wait=true", json=REQUEST)
    assert r.status_code == 200
    body = r.json()
    assert body["stage"] == "complete"
    assert body["is_generating"] is False
    assert body["completed_jobs"] == ["image", "narration"]
    assert body["artifact"]["audio_url"] == clients.audio_handle
    assert body["artifact"]["mode"] == "both"


def test_generate_in_background(api):
    r = api.post("/v1/generate", json={**REQUEST, "mode": "image"})
    assert r.status_code == 202

    for _ in range(200):
        body = api.get("/v1/generation").json()
        if body["stage"] == "complete":
            break
        time.sleep(0.01)
    assert body["stage"] == "complete"
    assert body["artifact"]["audio_url"] is None


def test_missing_credential_status(api, clients):
    api.delete("/v1/credential")
    body = api.post("/v1/generate?wait=true", json=REQUEST).json()
    assert body["stage"] == "requiring-credential"
    assert body["error_kind"] == "missing_credential"
    assert clients.narration_calls == []


def test_empty_narration_status(api):
    body = api.post("/v1/generate?wait=true", json={**REQUEST, "narration_text": ""}).json()
    assert body["stage"] == "error"
    assert body["error_kind"] == "empty_narration"


def test_rate_out_of_range_rejected(api, clients):
    r = api.post("/v1/generate", json={**REQUEST, "speaking_rate": 3.0})
    assert r.status_code == 422
    assert clients.narration_calls == []


def test_downloads(api):
    api.post("/v1/generate?wait=true", json=REQUEST)

    audio = api.get("/v1/generation/audio")
    assert audio.status_code == 200
    assert audio.content == b"RIFF-fake-wav"
    assert audio.headers["content-type"] == "audio/wav"

    image = api.get("/v1/generation/image")
    assert image.status_code == 200
    assert image.content == b"\x89PNG-fake"


def test_download_excluded_job(api):
    api.post("/v1/generate?wait=true", json={**REQUEST, "mode": "narration"})
    assert api.get("/v1/generation/image").status_code == 409


def test_download_before_generation(api):
    assert api.get("/v1/generation/audio").status_code == 409


def test_reset(api):
    api.post("/v1/generate?wait=true", json=REQUEST)
    body = api.post("/v1/generation:reset").json()
    assert body["stage"] == "idle"
    assert body["artifact"] is None
    assert body["error"] is None
    assert body["progress_message"] == ""


def test_generate_and_credential_change_rejected_while_active(api, monkeypatch):
    orchestrator = app.state.orchestrator
    busy = orchestrator.run.advance(Stage.GENERATING_AUDIO, "busy")
    monkeypatch.setattr(orchestrator, "_run", busy)

    assert api.post("/v1/generate", json=REQUEST).status_code == 409
    assert api.put("/v1/credential", json={"api_key": "other"}).status_code == 409
    assert api.delete("/v1/credential").status_code == 409
    assert orchestrator.run is busy


def test_failed_stage_reported(api, clients):
    clients.image_error = GeminiError("image backend down")
    body = api.post("/v1/generate?wait=true", json=REQUEST).json()
    assert body["stage"] == "error"
    assert body["error_kind"] == "generation_failed"
    assert body["failed_stage"] == "generating-visuals"
    assert body["error"] == "image backend down"
    assert body["artifact"] is None


@pytest.mark.asyncio
async def test_concurrent_generate_second_refused(monkeypatch, clients):
    clients.narration_gate = asyncio.Event()
    orchestrator = GenerationOrchestrator(
        CredentialGate(MemoryCredentialStore("test-key")),
        synthesize_narration=clients.synthesize_narration,
        synthesize_image=clients.synthesize_image,
    )
    monkeypatch.setattr(app.state, "orchestrator", orchestrator)
    request = Request({"type": "http", "app": app, "method": "POST", "path": "/v1/generate", "headers": [], "query_string": b""})
    body = GenerateRequest(**REQUEST)

    results = await asyncio.gather(
        generate(body, request, Response()),
        generate(body, request, Response()),
        return_exceptions=True,
    )

    accepted = [r for r in results if isinstance(r, dict)]
    refused = [r for r in results if isinstance(r, HTTPException)]
    assert len(accepted) == 1
    assert len(refused) == 1
    assert refused[0].status_code == 409
    assert accepted[0]["stage"] == "validating"

    clients.narration_gate.set()
    for _ in range(200):
        if orchestrator.run.is_terminal:
            break
        await asyncio.sleep(0.01)
    assert orchestrator.run.stage == Stage.COMPLETE
    assert orchestrator.run.run_id == accepted[0]["run_id"]
    assert len(clients.narration_calls) == 1
    assert len(clients.image_calls) == 1
