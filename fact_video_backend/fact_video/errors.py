from typing import Optional
from .models import ErrorKind, Stage

GENERIC_ERROR_MESSAGE = "An unexpected error occurred."

class FactVideoError(Exception):
    kind: Optional[ErrorKind] = None

class MissingCredential(FactVideoError):
    kind = ErrorKind.MISSING_CREDENTIAL

    def __init__(self, message: str = "A Gemini API key is required before generating."):
        super().__init__(message)

class EmptyNarration(FactVideoError):
    kind = ErrorKind.EMPTY_NARRATION

    def __init__(self, message: str = "Please provide the narration text."):
        super().__init__(message)

class EmptyVisualPrompt(FactVideoError):
    kind = ErrorKind.EMPTY_VISUAL_PROMPT

    def __init__(self, message: str = "Please provide a visual description."):
        super().__init__(message)

class GenerationFailed(FactVideoError):
    """An external generation call failed during ``stage``."""
    kind = ErrorKind.GENERATION_FAILED

    def __init__(self, stage: Stage, message: str):
        self.stage = stage
        self.message = message.strip() or GENERIC_ERROR_MESSAGE
        super().__init__(self.message)

class RunAlreadyActive(FactVideoError):
    def __init__(self, run_id: str):
        self.run_id = run_id
        super().__init__(f"Generation {run_id} is already in progress")

class GeminiError(RuntimeError):
    """Raised by the Gemini clients for any backend or transport failure."""

    def __init__(self, message: str, status_code: Optional[int] = None):
        self.status_code = status_code
        super().__init__(message)
