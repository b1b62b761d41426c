"""Generative AI backends used by the slot extractor.

The extractor only needs ``generate(prompt, media) -> str``. GeminiBackend
implements it over the ``generateContent`` REST endpoint with inline base64
media parts, and also speaks replies aloud through ``synthesize_speech`` for
citizens who ask to be answered by audio.
"""

import base64
import io
import logging
import wave
from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Optional

import httpx

from demand_intake.config import settings

logger = logging.getLogger(__name__)

SPEECH_MIME_TYPE = "audio/wav"


class AIError(Exception):
    """Raised when the AI backend fails or returns an unusable answer."""


@dataclass
class MediaPart:
    data: bytes
    mime_type: str


class AIBackend(ABC):
    """Abstract base class for generative backends."""

    @abstractmethod
    async def generate(
        self,
        prompt: str,
        media: Optional[MediaPart] = None,
        temperature: Optional[float] = None,
    ) -> str:
        """Return the raw model text for a prompt, optionally with one media part."""

    async def synthesize_speech(self, text: str) -> MediaPart:
        """Return ``text`` spoken aloud. Backends without a voice raise AIError."""
        raise AIError(f"{type(self).__name__} cannot synthesize speech")


def pcm_to_wav(pcm: bytes, sample_rate: int, channels: int = 1, sample_width: int = 2) -> bytes:
    """Wrap raw little-endian PCM samples in a WAV container."""
    buffer = io.BytesIO()
    with wave.open(buffer, "wb") as wav:
        wav.setnchannels(channels)
        wav.setsampwidth(sample_width)
        wav.setframerate(sample_rate)
        wav.writeframes(pcm)
    return buffer.getvalue()


class GeminiBackend(AIBackend):
    """Google Gemini ``generateContent`` over httpx."""

    def __init__(
        self,
        api_key: Optional[str] = None,
        model: Optional[str] = None,
        base_url: Optional[str] = None,
        client: Optional[httpx.AsyncClient] = None,
        tts_model: Optional[str] = None,
        voice: Optional[str] = None,
    ) -> None:
        cfg = settings.ai
        self.api_key = api_key if api_key is not None else cfg.api_key
        self.model = model or cfg.model
        self.tts_model = tts_model or cfg.tts_model
        self.voice = voice or cfg.tts_voice
        self.base_url = (base_url or cfg.base_url).rstrip("/")
        self._client = client
        self._owns_client = client is None

    def _get_client(self) -> httpx.AsyncClient:
        if self._client is None:
            self._client = httpx.AsyncClient(timeout=settings.ai.timeout_sec)
        return self._client

    async def aclose(self) -> None:
        if self._client is not None and self._owns_client:
            await self._client.aclose()
            self._client = None

    def _build_payload(
        self, prompt: str, media: Optional[MediaPart], temperature: float
    ) -> dict:
        parts: list[dict] = [{"text": prompt}]
        if media is not None:
            parts.append({
                "inline_data": {
                    "mime_type": media.mime_type,
                    "data": base64.b64encode(media.data).decode("ascii"),
                }
            })
        return {
            "contents": [{"parts": parts}],
            "generationConfig": {
                "temperature": temperature,
                "maxOutputTokens": settings.ai.max_output_tokens,
            },
        }

    async def _post(self, model: str, payload: dict) -> dict:
        """POST a generateContent request and return the decoded body.

        Raises:
            AIError: On transport errors, non-200 answers or a body that is
                not a JSON object without an ``error`` member.
        """
        if not self.api_key:
            raise AIError("GEMINI_API_KEY is not configured")
        url = f"{self.base_url}/models/{model}:generateContent"
        try:
            response = await self._get_client().post(
                url, params={"key": self.api_key}, json=payload
            )
        except httpx.HTTPError as exc:
            raise AIError(f"Gemini transport error: {exc}") from exc

        if response.status_code != 200:
            logger.error("Gemini error %s: %s", response.status_code, response.text[:300])
            raise AIError(f"Gemini API error: {response.status_code}")

        try:
            data = response.json()
        except ValueError as exc:
            raise AIError("Gemini returned a non-JSON body") from exc

        if not isinstance(data, dict):
            raise AIError("Gemini returned a non-object body")
        error = data.get("error")
        if error:
            message = error.get("message", "unknown") if isinstance(error, dict) else error
            raise AIError(f"Gemini API error: {message}")
        return data

    async def generate(
        self,
        prompt: str,
        media: Optional[MediaPart] = None,
        temperature: Optional[float] = None,
    ) -> str:
        if temperature is None:
            temperature = settings.ai.text_temperature
        logger.debug(
            "Gemini request: model=%s, media=%s",
            self.model, media.mime_type if media else None,
        )
        data = await self._post(self.model, self._build_payload(prompt, media, temperature))

        try:
            text = data["candidates"][0]["content"]["parts"][0]["text"]
        except (KeyError, IndexError, TypeError):
            raise AIError("Gemini returned no candidates") from None
        if not isinstance(text, str) or not text.strip():
            raise AIError("Gemini returned empty text")
        logger.debug("Gemini returned %d characters", len(text))
        return text

    async def synthesize_speech(self, text: str) -> MediaPart:
        """Speak ``text`` with a prebuilt Gemini voice and return it as a WAV file.

        Gemini answers with raw 16-bit mono PCM, which is wrapped in a WAV
        container so messaging providers accept it as a voice note.
        """
        cfg = settings.ai
        if len(text) > cfg.tts_max_chars:
            text = text[:cfg.tts_max_chars] + "..."
        payload = {
            "contents": [{"parts": [{"text": text}]}],
            "generationConfig": {
                "responseModalities": ["AUDIO"],
                "speechConfig": {
                    "voiceConfig": {"prebuiltVoiceConfig": {"voiceName": self.voice}},
                },
            },
        }
        logger.debug("Gemini TTS request: model=%s, %d characters", self.tts_model, len(text))
        data = await self._post(self.tts_model, payload)

        try:
            encoded = data["candidates"][0]["content"]["parts"][0]["inlineData"]["data"]
            pcm = base64.b64decode(encoded)
        except (KeyError, IndexError, TypeError, ValueError):
            raise AIError("Gemini TTS returned no audio") from None
        if not pcm:
            raise AIError("Gemini TTS returned empty audio")
        audio = pcm_to_wav(pcm, cfg.tts_sample_rate)
        logger.info("Gemini TTS produced %.1f KB of audio", len(audio) / 1024)
        return MediaPart(data=audio, mime_type=SPEECH_MIME_TYPE)
