#!/usr/bin/env python3
"""
Manual check that the Gemini TTS and image endpoints work with the configured key.
Runs one full generation and prints where the files landed.

    GEMINI_API_KEY=... python scripts/check_gemini.py [both|narration|image]
"""
import asyncio
import sys

from fact_video.credentials import CredentialGate, MemoryCredentialStore
from fact_video.gemini_client import GeminiClient
from fact_video.models import GenerationInputs, GenerationMode, Stage
from fact_video.orchestrator import GenerationOrchestrator
from fact_video.settings import GEMINI_API_KEY, has_api_key

async def check(mode: GenerationMode) -> bool:
    if not has_api_key():
        print("GEMINI_API_KEY is not set. Please check your .env file.")
        return False

    client = GeminiClient()
    orchestrator = GenerationOrchestrator(
        CredentialGate(MemoryCredentialStore(GEMINI_API_KEY)),
        synthesize_narration=client.synthesize_narration,
        synthesize_image=client.synthesize_image,
    )
    orchestrator.subscribe(lambda run: run.progress_message and print(f"  {run.progress_message}"))

    inputs = GenerationInputs(
        narration_text="Octopuses have three hearts and blue blood.",
        visual_prompt="an octopus drifting over a coral reef, photorealistic",
    )
    print(f"Generating in {mode.value} mode...")
    run = await orchestrator.start(inputs, mode)

    if run.stage != Stage.COMPLETE:
        print(f"FAILED ({run.error_kind.value}): {run.error}")
        return False
    print(f"Audio: {run.artifact.audio_url}")
    print(f"Image: {run.artifact.image_url}")
    return True

if __name__ == "__main__":
    mode = GenerationMode(sys.argv[1]) if len(sys.argv) > 1 else GenerationMode.BOTH
    ok = asyncio.run(check(mode))
    sys.exit(0 if ok else 1)
