import os, io, uuid, wave, logging
from PIL import Image
from .settings import MEDIA_DIR

logger = logging.getLogger(__name__)

# Gemini TTS returns raw 16-bit mono PCM at 24kHz
PCM_SAMPLE_RATE = 24000
PCM_SAMPLE_WIDTH = 2
PCM_CHANNELS = 1

def media_path(suffix: str, media_dir: str = MEDIA_DIR) -> str:
    return os.path.join(media_dir, f"{uuid.uuid4().hex}{suffix}")

def write_bytes(path: str, data: bytes):
    os.makedirs(os.path.dirname(path), exist_ok=True)
    with open(path, "wb") as f:
        f.write(data)

def pcm_to_wav(pcm: bytes, sample_rate: int = PCM_SAMPLE_RATE) -> bytes:
    buf = io.BytesIO()
    with wave.open(buf, "wb") as w:
        w.setnchannels(PCM_CHANNELS)
        w.setsampwidth(PCM_SAMPLE_WIDTH)
        w.setframerate(sample_rate)
        w.writeframes(pcm)
    return buf.getvalue()

def to_png(image_data: bytes) -> bytes:
    """Re-encode any image Pillow can read as PNG, flattening transparency on white."""
    with Image.open(io.BytesIO(image_data)) as pil_img:
        if pil_img.format == "PNG" and pil_img.mode == "RGB":
            return image_data
        logger.info(f"Converting {pil_img.format} ({pil_img.mode}) image to PNG")
        if pil_img.mode in ("RGBA", "LA"):
            if pil_img.mode == "LA":
                pil_img = pil_img.convert("RGBA")
            background = Image.new("RGB", pil_img.size, (255, 255, 255))
            background.paste(pil_img, mask=pil_img.split()[-1])
            pil_img = background
        elif pil_img.mode != "RGB":
            pil_img = pil_img.convert("RGB")
        png_buffer = io.BytesIO()
        pil_img.save(png_buffer, format="PNG")
        return png_buffer.getvalue()

def save_audio(pcm: bytes, sample_rate: int = PCM_SAMPLE_RATE, media_dir: str = MEDIA_DIR) -> str:
    path = media_path(".wav", media_dir)
    write_bytes(path, pcm_to_wav(pcm, sample_rate))
    logger.info(f"Saved narration audio to {path}")
    return path

def save_image(image_data: bytes, media_dir: str = MEDIA_DIR) -> str:
    path = media_path(".png", media_dir)
    write_bytes(path, to_png(image_data))
    logger.info(f"Saved image to {path}")
    return path
