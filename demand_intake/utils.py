"""Shared utilities used across the intake engine."""

import re
import unicodedata

_JID_SUFFIXES = ("@s.whatsapp.net", "@c.us", "@lid")


def sender_id_from_jid(jid: str) -> str:
    """Strip the provider suffix and device part from a WhatsApp JID.

    Examples:
        >>> sender_id_from_jid("5584999990000@s.whatsapp.net")
        '5584999990000'
        >>> sender_id_from_jid("5584999990000:12@s.whatsapp.net")
        '5584999990000'
    """
    value = jid.strip()
    for suffix in _JID_SUFFIXES:
        if value.endswith(suffix):
            value = value[: -len(suffix)]
            break
    return value.split(":", 1)[0]


def strip_accents(value: str) -> str:
    """Remove diacritics, keeping the base letters.

    Examples:
        >>> strip_accents("iluminação")
        'iluminacao'
    """
    decomposed = unicodedata.normalize("NFKD", value)
    return "".join(ch for ch in decomposed if not unicodedata.combining(ch))


def fold(value: str) -> str:
    """Lowercase and strip accents so keyword lookups ignore spelling of diacritics."""
    return strip_accents(value.lower().strip())


def contains_any(text: str, needles) -> bool:
    """Check whether any needle occurs in text. Both sides are folded."""
    folded = fold(text)
    return any(fold(n) in folded for n in needles)


def split_message(text: str, limit: int) -> list[str]:
    """Split a long outbound text into chunks of at most ``limit`` characters.

    Cuts at the last line break or space inside each window when there is one.
    """
    if len(text) <= limit:
        return [text]
    chunks: list[str] = []
    remaining = text
    while len(remaining) > limit:
        window = remaining[:limit]
        cut = max(window.rfind("\n"), window.rfind(" "))
        if cut <= 0:
            cut = limit
        chunks.append(remaining[:cut].rstrip())
        remaining = remaining[cut:].lstrip()
    if remaining:
        chunks.append(remaining)
    return chunks


def first_words(text: str, count: int, max_chars: int) -> str:
    """Return the first ``count`` words of text, cut to ``max_chars``."""
    words = re.split(r"\s+", text.strip())
    title = " ".join(words[:count])
    if len(title) > max_chars:
        title = title[: max_chars - 3].rstrip() + "..."
    return title
