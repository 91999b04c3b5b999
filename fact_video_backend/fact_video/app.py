import os, asyncio
from fastapi import FastAPI, HTTPException, Request, Response
from fastapi.responses import StreamingResponse
from fastapi.middleware.cors import CORSMiddleware
import logging

from .settings import ALLOWED_ORIGINS, CREDENTIAL_FILE, GEMINI_API_KEY
from .models import GenerateRequest, CredentialRequest, RunStatus, Stage
from .credentials import CredentialGate, FileCredentialStore
from .errors import MissingCredential, RunAlreadyActive
from .gemini_client import GeminiClient
from .orchestrator import GenerationOrchestrator

logger = logging.getLogger(__name__)

app = FastAPI(title="Fact Video Creator Backend")

app.add_middleware(
    CORSMiddleware,
    allow_origins=ALLOWED_ORIGINS or ["*"],
    allow_credentials=True,
    allow_methods=["GET", "POST", "PUT", "DELETE", "OPTIONS"],
    allow_headers=["*"],
)

def build_orchestrator(store, client: GeminiClient) -> GenerationOrchestrator:
    return GenerationOrchestrator(
        CredentialGate(store),
        synthesize_narration=client.synthesize_narration,
        synthesize_image=client.synthesize_image,
    )

app.state.store = FileCredentialStore(CREDENTIAL_FILE, default=GEMINI_API_KEY)
app.state.orchestrator = build_orchestrator(app.state.store, GeminiClient())
# Keeps background runs referenced until they finish
_RUNS = set()

def _orchestrator(request: Request) -> GenerationOrchestrator:
    return request.app.state.orchestrator

def _status(request: Request) -> dict:
    return RunStatus.from_run(_orchestrator(request).run).model_dump(mode="json")

def _reject_if_active(request: Request, action: str):
    run = _orchestrator(request).run
    if run.is_active:
        logger.warning(f"Refusing to {action}: run {run.run_id} is {run.stage.value}")
        raise HTTPException(409, f"generation {run.run_id} is in progress")

@app.get("/health")
def health(request: Request):
    has_credential = CredentialGate(request.app.state.store).has_credential()
    logger.info(f"Health check: API key present = {has_credential}")
    return {"ok": True, "has_credential": has_credential}

@app.put("/v1/credential")
def set_credential(body: CredentialRequest, request: Request):
    _reject_if_active(request, "change the API key")
    try:
        request.app.state.store.set(body.api_key)
    except MissingCredential as e:
        raise HTTPException(400, str(e))
    return {"ok": True, "has_credential": True}

@app.delete("/v1/credential")
def clear_credential(request: Request):
    _reject_if_active(request, "clear the API key")
    request.app.state.store.clear()
    return {"ok": True, "has_credential": False}

def _log_run_outcome(task: asyncio.Task):
    _RUNS.discard(task)
    if task.cancelled():
        return
    exc = task.exception()
    if exc is not None:
        logger.error(f"Background generation crashed: {exc!r}")

@app.post("/v1/generate", status_code=202)
async def generate(body: GenerateRequest, request: Request, response: Response, wait: bool = False):
    orchestrator = _orchestrator(request)
    try:
        # begin() claims the run before anything is awaited
        execution = orchestrator.begin(body.to_inputs(), body.mode)
    except RunAlreadyActive as e:
        logger.warning(f"Refusing to start a new generation: {e}")
        raise HTTPException(409, str(e))

    if wait:
        await execution
        response.status_code = 200
        return _status(request)

    task = asyncio.create_task(execution)
    _RUNS.add(task)
    task.add_done_callback(_log_run_outcome)
    return _status(request)

@app.get("/v1/generation")
def generation_status(request: Request):
    return _status(request)

@app.post("/v1/generation:reset")
def reset_generation(request: Request):
    _orchestrator(request).reset()
    return _status(request)

def _download(request: Request, field: str, media_type: str, ext: str):
    run = _orchestrator(request).run
    artifact = run.artifact
    path = getattr(artifact, field) if artifact and run.stage == Stage.COMPLETE else None
    if not path:
        raise HTTPException(409, f"no {ext} file in the current result")
    if not os.path.exists(path):
        raise HTTPException(404, f"{ext} file is no longer available")
    def iterfile(p):
        with open(p, "rb") as f:
            for chunk in iter(lambda: f.read(1024 * 1024), b""):
                yield chunk
    filename = f"fact-video-{run.run_id}.{ext}"
    headers = {"Content-Disposition": f'attachment; filename="{filename}"'}
    return StreamingResponse(iterfile(path), media_type=media_type, headers=headers)

@app.get("/v1/generation/audio")
def download_audio(request: Request):
    return _download(request, "audio_url", "audio/wav", "wav")

@app.get("/v1/generation/image")
def download_image(request: Request):
    return _download(request, "image_url", "image/png", "png")
