from .models import GenerationInputs, GenerationMode, JobSet
from .errors import EmptyNarration, EmptyVisualPrompt

_JOB_SETS = {
    GenerationMode.BOTH: JobSet(narration_required=True, image_required=True),
    GenerationMode.NARRATION: JobSet(narration_required=True, image_required=False),
    GenerationMode.IMAGE: JobSet(narration_required=False, image_required=True),
}

def build_job_set(mode: GenerationMode) -> JobSet:
    return _JOB_SETS[GenerationMode(mode)]

def validate(inputs: GenerationInputs, job_set: JobSet) -> None:
    """Raise the first input problem for the jobs that will run."""
    if job_set.narration_required and not inputs.narration_text.strip():
        raise EmptyNarration()
    if job_set.image_required and not inputs.visual_prompt.strip():
        raise EmptyVisualPrompt()
