"""
Slot extraction from citizen messages with a deterministic fallback.

Wraps an AIBackend and never raises: any AIError (HTTP failure, empty or
malformed JSON) degrades to the keyword classifier for text, or to a
generic "tell me more" result for media. Timeouts are the caller's job;
on timeout the caller uses ``fallback_for(event)``.

Usage:
    extractor = SlotExtractor(GeminiBackend())
    result = await extractor.analyze_text("tem um buraco na Rua das Acácias")
    result.address_text  # "Rua das Acácias"
"""

import json
import logging
import re
from typing import Any, Optional

from demand_intake.config import settings
from demand_intake.extraction.ai_backend import AIBackend, AIError, MediaPart
from demand_intake.prompts.system_prompts import (
    build_audio_prompt,
    build_image_prompt,
    build_text_prompt,
    build_video_prompt,
)
from demand_intake.schemas.event_schema import EventKind, InboundEvent
from demand_intake.schemas.extraction_schema import (
    ExtractionResult,
    ExtractionSource,
    Urgency,
)
from demand_intake.schemas.session_schema import Role, Session
from demand_intake.tools.categories import (
    classify_by_keywords,
    detect_urgency,
    extract_street,
    find_neighborhood,
    has_demand_signal,
)
from demand_intake.utils import fold

logger = logging.getLogger(__name__)

MIN_CAPTION_LENGTH = 11
AI_CONFIDENCE = 0.8

_FENCED_JSON = re.compile(r"```(?:json)?\s*(\{.*?\})\s*```", re.DOTALL)
_NULL_WORDS = {"", "null", "none", "nao informado", "n/a", "desconhecido"}

MEDIA_FALLBACK_REPLY = {
    EventKind.IMAGE: "Recebi a imagem! Me conta qual é o problema que aparece nela?",
    EventKind.VIDEO: "Recebi o vídeo! Me conta qual é o problema que aparece nele?",
    EventKind.AUDIO: "Não consegui entender o áudio direito. Pode me escrever qual é o problema?",
}


def parse_ai_json(raw: str) -> dict[str, Any]:
    """Pull the JSON object out of a model answer.

    Accepts fenced ```json blocks or the outermost {...} in surrounding prose.

    Raises:
        AIError: If no JSON object can be decoded.
    """
    match = _FENCED_JSON.search(raw)
    candidate = match.group(1) if match else None
    if candidate is None:
        start, end = raw.find("{"), raw.rfind("}")
        if start == -1 or end <= start:
            raise AIError("AI answer contains no JSON object")
        candidate = raw[start:end + 1]
    try:
        data = json.loads(candidate)
    except json.JSONDecodeError as exc:
        raise AIError(f"AI answer is not valid JSON: {exc}") from exc
    if not isinstance(data, dict):
        raise AIError("AI answer JSON is not an object")
    return data


def _clean(value: Any) -> Optional[str]:
    if not isinstance(value, str):
        return None
    value = value.strip()
    if fold(value) in _NULL_WORDS:
        return None
    return value


def _parse_urgency(value: Any) -> Optional[Urgency]:
    cleaned = _clean(value)
    if cleaned is None:
        return None
    try:
        return Urgency(fold(cleaned))
    except ValueError:
        return None


def summarize_context(session: Session) -> str:
    """Recent turns plus known slots, fed to the AI as conversation context."""
    lines: list[str] = []
    recent = session.conversation_log[-settings.session.ai_context_turns:]
    if recent:
        lines.append("Contexto da conversa:")
        for entry in recent:
            speaker = "Cidadão" if entry.role == Role.USER else "Assistente"
            lines.append(f"{speaker}: {entry.content}")
    slots = session.slots
    if slots.description:
        lines.append(f"Problema relatado: {slots.description}")
    if slots.address_text:
        lines.append(f"Endereço: {slots.address_text}")
    if slots.coordinates:
        lines.append(f"Localização: {slots.coordinates.lat}, {slots.coordinates.lon}")
    if slots.photos:
        lines.append(f"Fotos recebidas: {len(slots.photos)}")
    return "\n".join(lines)


class SlotExtractor:
    """Turns messages into ExtractionResults using an AI backend when one is set."""

    def __init__(self, backend: Optional[AIBackend] = None) -> None:
        self.backend = backend

    async def analyze_text(self, text: str, context_summary: str = "") -> ExtractionResult:
        if self.backend is None:
            return self.fallback_text(text)
        try:
            raw = await self.backend.generate(
                build_text_prompt(text, context_summary),
                temperature=settings.ai.text_temperature,
            )
            result = self._from_payload(
                parse_ai_json(raw), address_keys=("endereco",), description_keys=("descricao",)
            )
        except AIError as exc:
            logger.warning("AI text extraction failed, using keyword fallback: %s", exc)
            return self.fallback_text(text)
        except Exception:
            logger.exception("Unexpected error in AI text extraction, using keyword fallback")
            return self.fallback_text(text)
        return self._fill_from_text(result, text)

    async def analyze_image(
        self, data: bytes, mime_type: str, caption: Optional[str] = None
    ) -> ExtractionResult:
        return await self._analyze_media(
            EventKind.IMAGE, data, mime_type, caption,
            prompt=build_image_prompt(caption),
            temperature=settings.ai.media_temperature,
            address_keys=("enderecoVisivel", "endereco"),
        )

    async def analyze_video(
        self, data: bytes, mime_type: str, caption: Optional[str] = None
    ) -> ExtractionResult:
        return await self._analyze_media(
            EventKind.VIDEO, data, mime_type, caption,
            prompt=build_video_prompt(caption),
            temperature=settings.ai.media_temperature,
            address_keys=("endereco", "enderecoVisivel"),
            transcript_keys=("transcricaoAudio", "transcricao"),
        )

    async def analyze_audio(self, data: bytes, mime_type: str) -> ExtractionResult:
        result = await self._analyze_media(
            EventKind.AUDIO, data, mime_type, None,
            prompt=build_audio_prompt(),
            temperature=settings.ai.audio_temperature,
            address_keys=("endereco",),
            transcript_keys=("transcricao",),
        )
        if result.transcript:
            result = self._fill_from_text(result, result.transcript)
            if not result.description and result.is_demand:
                result = result.model_copy(update={"description": result.transcript})
        return result

    async def _analyze_media(
        self,
        kind: EventKind,
        data: bytes,
        mime_type: str,
        caption: Optional[str],
        prompt: str,
        temperature: float,
        address_keys: tuple[str, ...],
        transcript_keys: tuple[str, ...] = (),
    ) -> ExtractionResult:
        if self.backend is None:
            return self.fallback_media(kind, caption)
        try:
            raw = await self.backend.generate(
                prompt, MediaPart(data=data, mime_type=mime_type), temperature=temperature
            )
            result = self._from_payload(
                parse_ai_json(raw),
                address_keys=address_keys,
                description_keys=("descricao",),
                transcript_keys=transcript_keys,
            )
        except AIError as exc:
            logger.warning("AI %s analysis failed, using fallback: %s", kind.value, exc)
            return self.fallback_media(kind, caption)
        except Exception:
            logger.exception("Unexpected error in AI %s analysis, using fallback", kind.value)
            return self.fallback_media(kind, caption)
        if caption and len(caption.strip()) >= MIN_CAPTION_LENGTH:
            result = self._fill_from_text(result, caption)
        return result

    def _from_payload(
        self,
        data: dict[str, Any],
        address_keys: tuple[str, ...],
        description_keys: tuple[str, ...],
        transcript_keys: tuple[str, ...] = (),
    ) -> ExtractionResult:
        def first(keys: tuple[str, ...]) -> Optional[str]:
            for key in keys:
                value = _clean(data.get(key))
                if value:
                    return value
            return None

        is_demand = bool(data.get("ehDemanda"))
        return ExtractionResult(
            description=first(description_keys) if is_demand else None,
            category=_clean(data.get("categoria")),
            address_text=first(address_keys),
            neighborhood=_clean(data.get("bairro")),
            urgency=_parse_urgency(data.get("urgencia")),
            suggested_reply=_clean(data.get("resposta")) or "",
            transcript=first(transcript_keys) if transcript_keys else None,
            is_demand=is_demand,
            confidence=AI_CONFIDENCE,
            source=ExtractionSource.AI,
        )

    def _fill_from_text(self, result: ExtractionResult, text: str) -> ExtractionResult:
        """Fill address and neighborhood the AI missed using street heuristics."""
        updates: dict[str, Any] = {}
        if not result.address_text:
            street = extract_street(text)
            if street:
                updates["address_text"] = street
        if not result.neighborhood:
            neighborhood = find_neighborhood(text)
            if neighborhood:
                updates["neighborhood"] = neighborhood
        return result.model_copy(update=updates) if updates else result

    def fallback_text(self, text: str) -> ExtractionResult:
        """Deterministic keyword classification of a text message."""
        category, confidence, _ = classify_by_keywords(text)
        is_demand = has_demand_signal(text)
        return ExtractionResult(
            description=text.strip() if is_demand else None,
            category=category,
            address_text=extract_street(text),
            neighborhood=find_neighborhood(text),
            urgency=detect_urgency(text) if is_demand else None,
            is_demand=is_demand,
            confidence=confidence,
            source=ExtractionSource.FALLBACK,
        )

    def fallback_media(self, kind: EventKind, caption: Optional[str] = None) -> ExtractionResult:
        """Generic result for media the AI could not analyze."""
        result = ExtractionResult(
            suggested_reply=MEDIA_FALLBACK_REPLY.get(kind, ""),
            is_demand=kind in (EventKind.IMAGE, EventKind.VIDEO),
            confidence=0.3,
            source=ExtractionSource.FALLBACK,
        )
        if caption and len(caption.strip()) >= MIN_CAPTION_LENGTH:
            text_result = self.fallback_text(caption)
            result = result.model_copy(update={
                "description": text_result.description,
                "category": text_result.category if text_result.description else None,
                "address_text": text_result.address_text,
                "neighborhood": text_result.neighborhood,
                "urgency": text_result.urgency,
            })
        return result

    def fallback_for(self, event: InboundEvent) -> ExtractionResult:
        """Fallback used by the caller when extraction timed out."""
        if event.kind == EventKind.TEXT:
            return self.fallback_text(event.text or "")
        return self.fallback_media(event.kind, event.caption)

    async def analyze_event(self, event: InboundEvent, context_summary: str = "") -> ExtractionResult:
        """Dispatch an event to the matching analyze_* operation."""
        if event.kind == EventKind.TEXT:
            return await self.analyze_text(event.text or "", context_summary)
        data = event.media_bytes or b""
        mime = event.mime_type or "application/octet-stream"
        if event.kind == EventKind.IMAGE:
            return await self.analyze_image(data, mime, event.caption)
        if event.kind == EventKind.VIDEO:
            return await self.analyze_video(data, mime, event.caption)
        if event.kind == EventKind.AUDIO:
            return await self.analyze_audio(data, mime)
        raise ValueError(f"No extraction for {event.kind.value} events")
