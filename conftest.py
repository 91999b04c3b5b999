"""Shared fixtures: fake generation clients that count their calls."""
import asyncio
import pytest

from fact_video.credentials import CredentialGate, MemoryCredentialStore
from fact_video.models import GenerationInputs, Voice
from fact_video.orchestrator import GenerationOrchestrator


class FakeClients:
    def __init__(self):
        self.narration_calls = []
        self.image_calls = []
        self.narration_error = None
        self.image_error = None
        self.audio_handle = "media/narration.wav"
        self.image_handle = "media/image.png"
        # Set these to hold a call open until the test releases it
        self.narration_gate = None
        self.narration_started = asyncio.Event()

    async def synthesize_narration(self, text, voice, rate, credential):
        self.narration_calls.append((text, voice, rate, credential))
        self.narration_started.set()
        if self.narration_gate is not None:
            await self.narration_gate.wait()
        if self.narration_error is not None:
            raise self.narration_error
        return self.audio_handle

    async def synthesize_image(self, prompt, credential):
        self.image_calls.append((prompt, credential))
        if self.image_error is not None:
            raise self.image_error
        return self.image_handle


@pytest.fixture
def clients():
    return FakeClients()


@pytest.fixture
def store():
    return MemoryCredentialStore("test-gemini-key")


@pytest.fixture
def orchestrator(store, clients):
    return GenerationOrchestrator(
        CredentialGate(store),
        synthesize_narration=clients.synthesize_narration,
        synthesize_image=clients.synthesize_image,
    )


@pytest.fixture
def inputs():
    return GenerationInputs(
        narration_text="Octopuses have three hearts.",
        visual_prompt="octopus, photorealistic",
        voice=Voice.PUCK,
        speaking_rate=1.25,
    )
