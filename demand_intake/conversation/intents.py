"""Keyword predicates for commands, greetings, yes/no answers and status queries."""

import re
from typing import Optional

from demand_intake.utils import contains_any, fold

CANCEL_COMMANDS = {"cancelar", "cancela", "sair"}
MENU_COMMANDS = {"menu", "ajuda", "help"}

GREETINGS = [
    "oi", "ola", "bom dia", "boa tarde", "boa noite", "e ai", "eae", "opa",
    "hello", "hi", "hey",
]

STATUS_QUERY_PHRASES = [
    "protocolo", "consultar", "consulta", "status", "andamento",
    "minha demanda", "meu pedido", "minha solicitacao",
    "verificar", "acompanhar", "resultado", "situacao",
    "ja resolveram", "foi resolvido", "resolveu",
]

AFFIRMATIVE_WORDS = {
    "sim", "s", "isso", "pode", "confirmo", "confirmar", "ok", "claro", "certo",
    "yes", "bora", "manda", "tenta", "tentar", "positivo",
}
NEGATIVE_WORDS = {"nao", "n", "errado", "no", "negativo", "recomecar", "nunca"}
ACKNOWLEDGMENTS = {
    "obrigado", "obrigada", "valeu", "beleza", "blz", "entendi", "entendido",
    "tranquilo", "show", "perfeito", "otimo", "aguardo", "combinado",
}

AUDIO_REQUEST_PHRASES = [
    "manda um audio", "manda audio", "mande um audio", "mande audio",
    "envia um audio", "envia audio", "envie um audio", "envie audio",
    "pode mandar audio", "pode enviar audio",
    "responde em audio", "responde por audio", "responda em audio", "responda por audio",
    "explica por audio", "explica em audio", "quero ouvir", "quero escutar",
    "nao consigo ler", "nao sei ler",
]

PROTOCOL_PATTERN = re.compile(r"\b(\d{6}-[A-Z0-9]{6})\b")

_PUNCTUATION = re.compile(r"[^\w\s]")


def _bare(text: str) -> str:
    return " ".join(_PUNCTUATION.sub(" ", fold(text)).split())


def is_cancel(text: str) -> bool:
    return _bare(text) in CANCEL_COMMANDS


def is_menu(text: str) -> bool:
    return _bare(text) in MENU_COMMANDS


def is_greeting(text: str) -> bool:
    """True when the message opens with a greeting such as "oi" or "bom dia"."""
    bare = _bare(text)
    return any(bare == g or bare.startswith(g + " ") for g in GREETINGS)


def is_status_query(text: str) -> bool:
    return contains_any(text, STATUS_QUERY_PHRASES)


def extract_protocol(text: str) -> Optional[str]:
    """Find a protocol number (YYYYMM-XXXXXX) anywhere in the text."""
    match = PROTOCOL_PATTERN.search(text.upper())
    return match.group(1) if match else None


def is_affirmative(text: str) -> bool:
    words = _bare(text).split()
    return bool(words) and words[0] in AFFIRMATIVE_WORDS and not is_negative(text)


def is_negative(text: str) -> bool:
    words = _bare(text).split()
    return bool(words) and words[0] in NEGATIVE_WORDS


def is_acknowledgment(text: str) -> bool:
    """Small talk such as "obrigado" or "beleza, aguardo"."""
    words = _bare(text).split()
    return bool(words) and words[0] in ACKNOWLEDGMENTS


def wants_audio_reply(text: str) -> bool:
    """True when the citizen asks to be answered with a voice note."""
    return contains_any(text, AUDIO_REQUEST_PHRASES)
