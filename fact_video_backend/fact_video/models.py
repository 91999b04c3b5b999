import uuid
from enum import Enum
from pydantic import BaseModel, ConfigDict, Field
from typing import FrozenSet, Optional

class GenerationMode(str, Enum):
    BOTH = "both"
    NARRATION = "narration"
    IMAGE = "image"

class Voice(str, Enum):
    KORE = "Kore"
    PUCK = "Puck"
    CHARON = "Charon"
    FENRIR = "Fenrir"
    ZEPHYR = "Zephyr"

class Job(str, Enum):
    NARRATION = "narration"
    IMAGE = "image"

class Stage(str, Enum):
    IDLE = "idle"
    VALIDATING = "validating"
    REQUIRING_CREDENTIAL = "requiring-credential"
    GENERATING_AUDIO = "generating-audio"
    GENERATING_VISUALS = "generating-visuals"
    COMPLETE = "complete"
    ERROR = "error"

ACTIVE_STAGES = frozenset({Stage.VALIDATING, Stage.GENERATING_AUDIO, Stage.GENERATING_VISUALS})
TERMINAL_STAGES = frozenset({Stage.COMPLETE, Stage.ERROR, Stage.REQUIRING_CREDENTIAL})

class ErrorKind(str, Enum):
    MISSING_CREDENTIAL = "missing_credential"
    EMPTY_NARRATION = "empty_narration"
    EMPTY_VISUAL_PROMPT = "empty_visual_prompt"
    GENERATION_FAILED = "generation_failed"

MIN_SPEAKING_RATE = 0.5
MAX_SPEAKING_RATE = 2.0

class GenerationInputs(BaseModel):
    """Snapshot of what the user typed, taken when a run starts."""
    model_config = ConfigDict(frozen=True)

    narration_text: str = ""
    visual_prompt: str = ""
    voice: Voice = Voice.KORE
    speaking_rate: float = Field(default=1.0, ge=MIN_SPEAKING_RATE, le=MAX_SPEAKING_RATE)

class JobSet(BaseModel):
    model_config = ConfigDict(frozen=True)

    narration_required: bool
    image_required: bool

    @property
    def jobs(self) -> FrozenSet[Job]:
        jobs = set()
        if self.narration_required:
            jobs.add(Job.NARRATION)
        if self.image_required:
            jobs.add(Job.IMAGE)
        return frozenset(jobs)

class GeneratedArtifact(BaseModel):
    """Result of a completed run. A None url means the mode excluded that job."""
    model_config = ConfigDict(frozen=True)

    audio_url: Optional[str] = None
    image_url: Optional[str] = None
    narration_text: str
    visual_prompt: str
    mode: GenerationMode

class GenerationRun(BaseModel):
    """One orchestration attempt.

    Instances are immutable: every transition builds a new run with
    ``model_copy(update=...)`` and the orchestrator swaps it in whole.
    """
    model_config = ConfigDict(frozen=True)

    run_id: str = Field(default_factory=lambda: str(uuid.uuid4()))
    stage: Stage = Stage.IDLE
    mode: Optional[GenerationMode] = None
    inputs: Optional[GenerationInputs] = None
    required_jobs: FrozenSet[Job] = frozenset()
    completed_jobs: FrozenSet[Job] = frozenset()
    audio_handle: Optional[str] = None
    image_handle: Optional[str] = None
    error: Optional[str] = None
    error_kind: Optional[ErrorKind] = None
    failed_stage: Optional[Stage] = None
    progress_message: str = ""
    artifact: Optional[GeneratedArtifact] = None

    @property
    def is_active(self) -> bool:
        return self.stage in ACTIVE_STAGES

    @property
    def is_terminal(self) -> bool:
        return self.stage in TERMINAL_STAGES

    def advance(self, stage: Stage, progress_message: str, **changes) -> "GenerationRun":
        return self.model_copy(update={"stage": stage, "progress_message": progress_message, **changes})

    def complete_job(self, job: Job, **changes) -> "GenerationRun":
        return self.model_copy(update={"completed_jobs": self.completed_jobs | {job}, **changes})

    def fail(self, kind: ErrorKind, message: str, stage: Stage = Stage.ERROR) -> "GenerationRun":
        # Exactly one error is visible; it replaces the progress message
        return self.model_copy(update={
            "stage": stage,
            "error": message,
            "error_kind": kind,
            "failed_stage": self.stage,
            "progress_message": "",
            "artifact": None,
        })

# --- API bodies ---

class GenerateRequest(BaseModel):
    mode: GenerationMode = GenerationMode.BOTH
    narration_text: str = ""
    visual_prompt: str = ""
    voice: Voice = Voice.KORE
    speaking_rate: float = Field(default=1.0, ge=MIN_SPEAKING_RATE, le=MAX_SPEAKING_RATE)

    def to_inputs(self) -> GenerationInputs:
        return GenerationInputs(
            narration_text=self.narration_text,
            visual_prompt=self.visual_prompt,
            voice=self.voice,
            speaking_rate=self.speaking_rate,
        )

class CredentialRequest(BaseModel):
    api_key: str

class RunStatus(BaseModel):
    run_id: str
    stage: Stage
    mode: Optional[GenerationMode] = None
    is_generating: bool
    progress_message: str
    error: Optional[str] = None
    error_kind: Optional[ErrorKind] = None
    failed_stage: Optional[Stage] = None
    completed_jobs: list = Field(default_factory=list)
    artifact: Optional[GeneratedArtifact] = None

    @classmethod
    def from_run(cls, run: GenerationRun) -> "RunStatus":
        return cls(
            run_id=run.run_id,
            stage=run.stage,
            mode=run.mode,
            is_generating=run.is_active,
            progress_message=run.progress_message,
            error=run.error,
            error_kind=run.error_kind,
            failed_stage=run.failed_stage,
            completed_jobs=sorted(job.value for job in run.completed_jobs),
            artifact=run.artifact,
        )
