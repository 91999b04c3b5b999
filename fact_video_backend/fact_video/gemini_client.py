import re, base64, httpx, logging
from typing import Optional
from .errors import GeminiError
from .media import PCM_SAMPLE_RATE, save_audio, save_image
from .models import Voice
from .settings import GEMINI_API_BASE, GEMINI_TTS_MODEL, GEMINI_IMAGE_MODEL, GEMINI_TIMEOUT_S, MEDIA_DIR

logger = logging.getLogger(__name__)

IMAGE_STYLE_SUFFIX = "cinematic 16:9 horizontal composition, high detail, vivid lighting, no text or captions"

def _headers(credential: str) -> dict:
    if not credential:
        raise GeminiError("Gemini API key is empty")
    return {
        "x-goog-api-key": credential,
        "Content-Type": "application/json"
    }

def pace_instruction(rate: float) -> str:
    if abs(rate - 1.0) < 1e-9:
        return ""
    pace = "slowly" if rate < 1.0 else "quickly"
    return f"Read the following {pace}, at about {rate:g}x normal speaking speed: "

def _error_message(r: httpx.Response) -> str:
    try:
        body = r.json()
    except ValueError:
        body = None
    # Gemini normally sends {"error": {"message": ...}}; proxies may not
    detail = body.get("error") if isinstance(body, dict) else None
    if isinstance(detail, dict):
        detail = detail.get("message")
    if not isinstance(detail, str):
        detail = None
    return f"Gemini request failed ({r.status_code}): {detail or r.text or r.reason_phrase}"

def _inline_part(body: dict, prefix: str) -> dict:
    candidates = body.get("candidates") or []
    if not candidates:
        feedback = body.get("promptFeedback") or {}
        reason = feedback.get("blockReason")
        raise GeminiError(f"Gemini returned no candidates{f' (blocked: {reason})' if reason else ''}")
    for part in (candidates[0].get("content") or {}).get("parts") or []:
        inline = part.get("inlineData") or part.get("inline_data")
        if inline and inline.get("data") and (inline.get("mimeType") or inline.get("mime_type") or "").startswith(prefix):
            return inline
    finish = candidates[0].get("finishReason")
    raise GeminiError(f"Gemini response contained no {prefix.rstrip('/')} data{f' (finishReason: {finish})' if finish else ''}")

def _sample_rate(mime_type: str) -> int:
    m = re.search(r"rate=(\d+)", mime_type or "")
    return int(m.group(1)) if m else PCM_SAMPLE_RATE

class GeminiClient:
    """Text-to-speech and text-to-image calls against the Gemini REST API.

    Each method makes exactly one request. The returned handle is the path of
    the file written under ``media_dir``.
    """

    def __init__(
        self,
        api_base: str = GEMINI_API_BASE,
        tts_model: str = GEMINI_TTS_MODEL,
        image_model: str = GEMINI_IMAGE_MODEL,
        timeout: float = GEMINI_TIMEOUT_S,
        media_dir: str = MEDIA_DIR,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.api_base = api_base.rstrip("/")
        self.tts_model = tts_model
        self.image_model = image_model
        self.timeout = timeout
        self.media_dir = media_dir
        self.transport = transport

    def _url(self, model: str) -> str:
        return f"{self.api_base}/models/{model}:generateContent"

    async def _generate(self, model: str, payload: dict, credential: str) -> dict:
        headers = _headers(credential)
        try:
            async with httpx.AsyncClient(timeout=self.timeout, transport=self.transport) as client:
                r = await client.post(self._url(model), headers=headers, json=payload)
        except httpx.HTTPError as e:
            logger.error(f"Gemini {model} request error: {e!r}")
            raise GeminiError(f"Could not reach Gemini: {e}") from e
        if r.status_code >= 400:
            message = _error_message(r)
            logger.error(message)
            raise GeminiError(message, status_code=r.status_code)
        try:
            return r.json()
        except ValueError as e:
            raise GeminiError("Gemini returned a malformed response") from e

    async def synthesize_narration(self, text: str, voice: Voice, rate: float, credential: str) -> str:
        voice_name = Voice(voice).value
        logger.info(f"Requesting narration from {self.tts_model} (voice={voice_name}, rate={rate})")
        payload = {
            "contents": [{"parts": [{"text": f"{pace_instruction(rate)}{text}"}]}],
            "generationConfig": {
                "responseModalities": ["AUDIO"],
                "speechConfig": {
                    "voiceConfig": {"prebuiltVoiceConfig": {"voiceName": voice_name}}
                },
            },
        }
        body = await self._generate(self.tts_model, payload, credential)
        inline = _inline_part(body, "audio/")
        try:
            pcm = base64.b64decode(inline["data"])
        except ValueError as e:
            raise GeminiError("Gemini returned undecodable audio data") from e
        return save_audio(pcm, sample_rate=_sample_rate(inline.get("mimeType", "")), media_dir=self.media_dir)

    async def synthesize_image(self, prompt: str, credential: str) -> str:
        logger.info(f"Requesting 16:9 image from {self.image_model} for prompt: {prompt[:100]}...")
        payload = {
            "contents": [{"parts": [{"text": f"{prompt}, {IMAGE_STYLE_SUFFIX}"}]}],
            "generationConfig": {
                "responseModalities": ["IMAGE"],
                "imageConfig": {"aspectRatio": "16:9"},
            },
        }
        body = await self._generate(self.image_model, payload, credential)
        inline = _inline_part(body, "image/")
        try:
            image_data = base64.b64decode(inline["data"])
            return save_image(image_data, media_dir=self.media_dir)
        except (ValueError, OSError) as e:
            logger.error(f"Could not decode Gemini image: {e}")
            raise GeminiError("Gemini returned an unreadable image") from e
