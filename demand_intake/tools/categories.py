"""Service category catalog with keyword tables, SLA days and text heuristics.

The keyword tables are the single source of truth for the deterministic
fallback classifier, the demand-signal detector and the ticket desk's
category resolution.
"""

import logging
import re
from typing import Optional

from demand_intake.schemas.extraction_schema import Urgency
from demand_intake.utils import contains_any, fold

logger = logging.getLogger(__name__)

DEFAULT_CATEGORY = "Outros"
DEFAULT_CATEGORY_NAME = "Outros Serviços"

CATEGORY_CATALOG: dict[str, dict] = {
    "tapa-buraco": {
        "name": "Tapa-buraco",
        "code": "PAVIMENTACAO",
        "sla_days": 2,
        "keywords": ["buraco", "asfalto", "pavimento", "cratera", "rua", "avenida"],
    },
    "iluminacao-publica": {
        "name": "Iluminação Pública",
        "code": "ILUMINACAO",
        "sla_days": 1,
        "keywords": ["luz", "poste", "lampada", "escuro", "iluminacao", "apagado"],
    },
    "limpeza-urbana": {
        "name": "Limpeza Urbana",
        "code": "LIMPEZA",
        "sla_days": 2,
        "keywords": ["lixo", "sujeira", "limpeza", "coleta", "varricao", "mato"],
    },
    "poda-de-arvores": {
        "name": "Poda de Árvores",
        "code": "PODA",
        "sla_days": 5,
        "keywords": ["arvore", "galho", "poda", "corte", "vegetal", "raiz"],
    },
    "drenagem-e-esgoto": {
        "name": "Drenagem e Esgoto",
        "code": "DRENAGEM",
        "sla_days": 1,
        "keywords": ["bueiro", "esgoto", "agua", "alagamento", "entupido", "drenagem"],
    },
    "calcadas-e-passeios": {
        "name": "Calçadas e Passeios",
        "code": "CALCADA",
        "sla_days": 7,
        "keywords": ["calcada", "passeio", "piso", "quebrado", "acessibilidade"],
    },
    "sinalizacao": {
        "name": "Sinalização",
        "code": "SINALIZACAO",
        "sla_days": 3,
        "keywords": ["placa", "sinalizacao", "transito", "faixa", "pintura"],
    },
    "pracas-e-areas-verdes": {
        "name": "Praças e Áreas Verdes",
        "code": "PRACAS",
        "sla_days": 5,
        "keywords": ["praca", "jardim", "parque", "banco", "brinquedo", "lazer"],
    },
    "entulho-e-descarte-irregular": {
        "name": "Entulho e Descarte Irregular",
        "code": "ENTULHO",
        "sla_days": 3,
        "keywords": ["entulho", "descarte", "irregular", "obra", "material"],
    },
    "animais": {
        "name": "Animais",
        "code": "ANIMAIS",
        "sla_days": 1,
        "keywords": ["animal", "cachorro", "gato", "morto", "rato", "inseto"],
    },
    "outros": {
        "name": DEFAULT_CATEGORY_NAME,
        "code": "OUTROS",
        "sla_days": 20,
        "keywords": [],
    },
}

DEMAND_KEYWORDS = [
    "buraco", "poste", "lampada", "luz", "iluminacao", "lixo", "entulho", "sujeira",
    "mato", "capim", "arvore", "poda", "galho", "bueiro", "esgoto", "agua",
    "alagamento", "enxurrada", "calcada", "placa", "sinalizacao", "rua", "avenida",
    "quebrado", "quebrada", "problema", "reclamar", "reclamacao", "denunciar",
    "denuncia", "conserto", "consertar", "arrumar", "arrumem", "resolver",
    "precisando", "ta caindo", "ta estragado", "nao funciona", "praca", "parque",
    "escola", "creche", "posto", "hospital", "abandonado", "abandonada",
    "faz tempo", "ha dias", "semanas", "meses",
]

LOCATION_PHRASES = [
    "rua ", "av ", "avenida ", "bairro ", "proximo", "perto de", "em frente",
    "esquina", "numero",
]

CRITICAL_KEYWORDS = [
    "urgente", "emergencia", "perigo", "risco", "caindo", "desabando", "fogo", "incendio",
]
HIGH_KEYWORDS = ["grave", "perigoso", "muito", "varios", "dias", "semanas"]

KNOWN_NEIGHBORHOODS = [
    "Centro", "Nova Parnamirim", "Rosa dos Ventos", "Emaús", "Pium",
    "Parque Industrial", "Cohabinal", "Passagem de Areia", "Pirangi",
    "Liberdade", "Monte Castelo", "Boa Esperança", "Parque das Nações",
]

MIN_DEMAND_TEXT_LENGTH = 16

# Word stems that name a concrete problem on their own, so a short message
# such as "poste apagado" or "lixo" still reads as a report.
PROBLEM_STEMS = [
    "buraco", "cratera", "asfalto", "poste", "lampada", "apagad", "escuro",
    "lixo", "entulho", "sujeira", "mato", "capim", "arvore", "galho", "poda",
    "bueiro", "esgoto", "vazamento", "alagamento", "alagad", "entupid",
    "calcada", "quebrad", "sinalizacao", "semaforo",
]

_WORD = re.compile(r"\w+")

_STREET_PATTERN = re.compile(
    r"\b(?:rua|avenida|av\.?|travessa|alameda|estrada|rodovia)\s+[^,.;!?\n]+?"
    r"(?=\s+(?:no bairro|perto|em frente|próximo|proximo|esquina)\b|[,.;!?\n]|$)",
    re.IGNORECASE,
)
_HOUSE_NUMBER = re.compile(r"^,?\s*(?:n[°º.]?\s*)?\d+", re.IGNORECASE)


def has_demand_signal(text: str) -> bool:
    """Check whether a free-text message looks like a problem report.

    Requires a problem keyword or a location phrase and a minimum length,
    so short chit-chat such as "oi" never counts.
    """
    if len(text.strip()) < MIN_DEMAND_TEXT_LENGTH:
        return False
    return contains_any(text, DEMAND_KEYWORDS) or contains_any(text, LOCATION_PHRASES)


def names_a_problem(text: str) -> bool:
    """True when some word of the text starts with a problem stem, whatever the length."""
    words = _WORD.findall(fold(text))
    return any(word.startswith(stem) for word in words for stem in PROBLEM_STEMS)


def classify_by_keywords(text: str) -> tuple[str, float, list[str]]:
    """Classify text against the catalog keyword tables.

    Returns:
        (category name, confidence, matched keywords). The category with the
        most matches wins, ties resolved by catalog order. No match yields
        the default category with confidence 0.3.
    """
    folded = fold(text)
    best_name = DEFAULT_CATEGORY
    best_matches: list[str] = []
    for info in CATEGORY_CATALOG.values():
        matched = [kw for kw in info["keywords"] if kw in folded]
        if len(matched) > len(best_matches):
            best_name = info["name"]
            best_matches = matched
    if not best_matches:
        return DEFAULT_CATEGORY, 0.3, []
    confidence = min(len(best_matches) * 0.3, 0.9)
    logger.debug("Keyword classification: %s (%s)", best_name, best_matches)
    return best_name, confidence, best_matches


def detect_urgency(text: str) -> Urgency:
    """Estimate urgency from alarm words in the text."""
    if contains_any(text, CRITICAL_KEYWORDS):
        return Urgency.CRITICAL
    if contains_any(text, HIGH_KEYWORDS):
        return Urgency.HIGH
    return Urgency.MEDIUM


def extract_street(text: str) -> Optional[str]:
    """Pull a street phrase such as "Rua das Acácias, 120" out of free text."""
    match = _STREET_PATTERN.search(text)
    if not match:
        return None
    street = match.group(0).strip()
    number = _HOUSE_NUMBER.match(text[match.end():])
    if number:
        street += number.group(0).rstrip()
    return street or None


def find_neighborhood(text: str) -> Optional[str]:
    """Return the longest known neighborhood name mentioned in the text."""
    folded = fold(text)
    found = [n for n in KNOWN_NEIGHBORHOODS if fold(n) in folded]
    if not found:
        return None
    return max(found, key=len)


def resolve_category(label: Optional[str]) -> dict:
    """Map a classifier label, AI code or catalog slug to a catalog entry."""
    if label:
        key = fold(label)
        for slug, info in CATEGORY_CATALOG.items():
            if key in (slug, fold(info["name"]), fold(info["code"])):
                return {"slug": slug, **info}
        for slug, info in CATEGORY_CATALOG.items():
            if any(kw in key for kw in info["keywords"]):
                return {"slug": slug, **info}
    return {"slug": "outros", **CATEGORY_CATALOG["outros"]}
