import logging
from typing import Awaitable, Callable, List, Optional
from langgraph.graph import StateGraph, END
from pydantic import BaseModel, Field
from .models import (
    GeneratedArtifact, GenerationInputs, GenerationMode, GenerationRun, ErrorKind, Job, Stage, Voice,
)
from .errors import FactVideoError, GenerationFailed, MissingCredential, RunAlreadyActive, GENERIC_ERROR_MESSAGE
from .credentials import CredentialGate
from .request_builder import build_job_set, validate

logger = logging.getLogger(__name__)

PROGRESS_VALIDATING = "Validating inputs..."
PROGRESS_AUDIO = "Generating Voiceover (TTS)..."
PROGRESS_VISUALS = "Generating 16:9 Visuals with Gemini Flash..."
PROGRESS_COMPLETE = "Generation Complete!"

NarrationClient = Callable[[str, Voice, float, str], Awaitable[str]]
ImageClient = Callable[[str, str], Awaitable[str]]
RunListener = Callable[[GenerationRun], None]

class OrchestrationState(BaseModel):
    run_id: str
    mode: GenerationMode
    inputs: GenerationInputs
    narration_required: bool = False
    image_required: bool = False
    credential: Optional[str] = Field(default=None, repr=False)
    audio_handle: Optional[str] = None
    image_handle: Optional[str] = None

def _field(state, name: str):
    # langgraph hands routers either the model or its dict form
    return state.get(name) if isinstance(state, dict) else getattr(state, name)

class _RunDiscarded(Exception):
    """The run was reset while a node was still working on it."""

class GenerationOrchestrator:
    """Runs one generation at a time: validate, narration, visuals, assemble.

    The current run is only ever replaced whole. A ``reset()`` while a call is
    in flight swaps in a fresh idle run; whatever the old run produces later
    is dropped because its ``run_id`` no longer matches.
    """

    def __init__(self, gate: CredentialGate, synthesize_narration: NarrationClient, synthesize_image: ImageClient):
        self.gate = gate
        self.synthesize_narration = synthesize_narration
        self.synthesize_image = synthesize_image
        self._run = GenerationRun()
        self._listeners: List[RunListener] = []
        self._graph = self._build_graph()

    @property
    def run(self) -> GenerationRun:
        return self._run

    def subscribe(self, listener: RunListener) -> Callable[[], None]:
        self._listeners.append(listener)
        def _unsubscribe():
            if listener in self._listeners:
                self._listeners.remove(listener)
        return _unsubscribe

    def _replace(self, run: GenerationRun):
        self._run = run
        logger.info(f"Run {run.run_id} -> {run.stage.value}")
        for listener in list(self._listeners):
            try:
                listener(run)
            except Exception:
                logger.exception(f"Run listener failed on {run.stage.value}")

    def _advance(self, run_id: str, transition: Callable[[GenerationRun], GenerationRun]) -> GenerationRun:
        if self._run.run_id != run_id:
            raise _RunDiscarded(run_id)
        self._replace(transition(self._run))
        return self._run

    # --- graph nodes ---

    async def node_validate(self, state: OrchestrationState) -> dict:
        job_set = build_job_set(state.mode)
        self._advance(state.run_id, lambda run: run.model_copy(update={"required_jobs": job_set.jobs}))
        validate(state.inputs, job_set)
        credential = self.gate.require_credential()
        return {
            "narration_required": job_set.narration_required,
            "image_required": job_set.image_required,
            "credential": credential,
        }

    async def node_narration(self, state: OrchestrationState) -> dict:
        self._advance(state.run_id, lambda run: run.advance(Stage.GENERATING_AUDIO, PROGRESS_AUDIO))
        inputs = state.inputs
        try:
            handle = await self.synthesize_narration(inputs.narration_text, inputs.voice, inputs.speaking_rate, state.credential)
        except Exception as e:
            logger.error(f"Narration failed for run {state.run_id}: {e}")
            raise GenerationFailed(Stage.GENERATING_AUDIO, str(e)) from e
        logger.info(f"Narration ready for run {state.run_id}: {handle}")
        self._advance(state.run_id, lambda run: run.complete_job(Job.NARRATION, audio_handle=handle))
        return {"audio_handle": handle}

    async def node_visuals(self, state: OrchestrationState) -> dict:
        self._advance(state.run_id, lambda run: run.advance(Stage.GENERATING_VISUALS, PROGRESS_VISUALS))
        try:
            handle = await self.synthesize_image(state.inputs.visual_prompt, state.credential)
        except Exception as e:
            logger.error(f"Image generation failed for run {state.run_id}: {e}")
            raise GenerationFailed(Stage.GENERATING_VISUALS, str(e)) from e
        logger.info(f"Image ready for run {state.run_id}: {handle}")
        self._advance(state.run_id, lambda run: run.complete_job(Job.IMAGE, image_handle=handle))
        return {"image_handle": handle}

    async def node_assemble(self, state: OrchestrationState) -> dict:
        def _complete(run: GenerationRun) -> GenerationRun:
            missing = run.required_jobs - run.completed_jobs
            if missing:
                raise GenerationFailed(run.stage, f"Missing results for: {', '.join(sorted(j.value for j in missing))}")
            artifact = GeneratedArtifact(
                audio_url=run.audio_handle,
                image_url=run.image_handle,
                narration_text=state.inputs.narration_text,
                visual_prompt=state.inputs.visual_prompt,
                mode=state.mode,
            )
            return run.advance(Stage.COMPLETE, PROGRESS_COMPLETE, artifact=artifact)
        self._advance(state.run_id, _complete)
        return {}

    def _build_graph(self):
        g = StateGraph(OrchestrationState)
        g.add_node("validate", self.node_validate)
        g.add_node("narration", self.node_narration)
        g.add_node("visuals", self.node_visuals)
        g.add_node("assemble", self.node_assemble)
        g.set_entry_point("validate")
        g.add_conditional_edges(
            "validate",
            lambda s: "narration" if _field(s, "narration_required") else "visuals",
            {"narration": "narration", "visuals": "visuals"},
        )
        g.add_conditional_edges(
            "narration",
            lambda s: "visuals" if _field(s, "image_required") else "assemble",
            {"visuals": "visuals", "assemble": "assemble"},
        )
        g.add_edge("visuals", "assemble")
        g.add_edge("assemble", END)
        return g.compile()

    # --- public operations ---

    async def start(self, inputs: GenerationInputs, mode: GenerationMode) -> GenerationRun:
        """Run one generation to a terminal state and return that run.

        Raises ``RunAlreadyActive`` when another run is still in progress.
        Every other failure ends up on the returned run.
        """
        return await self.begin(inputs, mode)

    def begin(self, inputs: GenerationInputs, mode: GenerationMode) -> Awaitable[GenerationRun]:
        """Claim the orchestrator for a new run and return the coroutine that executes it.

        The run is in ``validating`` before this returns, so a caller can
        schedule the coroutine as a task without leaving a window for a
        second start.
        """
        if self._run.is_active:
            logger.warning(f"Rejected start: run {self._run.run_id} is {self._run.stage.value}")
            raise RunAlreadyActive(self._run.run_id)

        mode = GenerationMode(mode)
        run = GenerationRun(stage=Stage.VALIDATING, mode=mode, inputs=inputs, progress_message=PROGRESS_VALIDATING)
        self._replace(run)
        logger.info(f"Starting run {run.run_id} in {mode.value} mode")
        return self._execute(run, inputs, mode)

    async def _execute(self, run: GenerationRun, inputs: GenerationInputs, mode: GenerationMode) -> GenerationRun:
        try:
            await self._graph.ainvoke(OrchestrationState(run_id=run.run_id, mode=mode, inputs=inputs))
        except _RunDiscarded:
            logger.info(f"Run {run.run_id} was reset before finishing; result discarded")
        except MissingCredential as e:
            self._fail(run.run_id, e.kind, str(e), Stage.REQUIRING_CREDENTIAL)
        except FactVideoError as e:
            self._fail(run.run_id, e.kind, str(e))
        except Exception as e:
            logger.exception(f"Run {run.run_id} failed unexpectedly")
            self._fail(run.run_id, ErrorKind.GENERATION_FAILED, str(e) or GENERIC_ERROR_MESSAGE)
        return self._run

    def _fail(self, run_id: str, kind: ErrorKind, message: str, stage: Stage = Stage.ERROR):
        if self._run.run_id != run_id:
            logger.info(f"Dropping failure of reset run {run_id}: {message}")
            return
        logger.error(f"Run {run_id} failed ({kind.value}) during {self._run.stage.value}: {message}")
        self._replace(self._run.fail(kind, message, stage))

    def reset(self) -> GenerationRun:
        previous = self._run
        if previous.is_active:
            logger.info(f"Resetting in-flight run {previous.run_id}")
        self._replace(GenerationRun())
        return self._run
