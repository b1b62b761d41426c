"""
Short-lived attachment byte storage.

Sessions only carry AttachmentRef handles; bytes sit here until the ticket
desk copies them or the session is reset or evicted.
"""

import logging
import uuid
from typing import Iterable, Optional

from demand_intake.schemas.session_schema import AttachmentRef

logger = logging.getLogger(__name__)

MIME_EXTENSIONS: dict[str, str] = {
    "image/jpeg": ".jpg",
    "image/jpg": ".jpg",
    "image/png": ".png",
    "image/gif": ".gif",
    "image/webp": ".webp",
    "video/mp4": ".mp4",
    "video/3gpp": ".3gp",
    "video/quicktime": ".mov",
    "video/webm": ".webm",
    "audio/ogg": ".ogg",
    "audio/mpeg": ".mp3",
    "audio/mp4": ".m4a",
    "application/pdf": ".pdf",
}


def extension_for(mime_type: str) -> str:
    return MIME_EXTENSIONS.get(mime_type.split(";")[0].strip().lower(), ".bin")


class AttachmentStash:
    """In-memory byte store addressed by AttachmentRef."""

    def __init__(self) -> None:
        self._blobs: dict[str, bytes] = {}

    def put(self, data: bytes, kind: str, mime_type: str) -> AttachmentRef:
        ref = AttachmentRef(
            ref=f"att-{uuid.uuid4().hex[:12]}",
            kind=kind,
            mime_type=mime_type,
            size=len(data),
        )
        self._blobs[ref.ref] = data
        logger.debug("Stashed %s (%s, %d bytes)", ref.ref, mime_type, len(data))
        return ref

    def get(self, ref: AttachmentRef) -> Optional[bytes]:
        return self._blobs.get(ref.ref)

    def discard(self, refs: Iterable[AttachmentRef]) -> None:
        for ref in refs:
            self._blobs.pop(ref.ref, None)

    def __contains__(self, ref: AttachmentRef) -> bool:
        return ref.ref in self._blobs

    def __len__(self) -> int:
        return len(self._blobs)
