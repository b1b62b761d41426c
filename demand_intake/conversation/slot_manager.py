"""
Slot merge rules for a demand: description, location and photo.

A slot that is already set is never overwritten by an empty value, photos
are only appended, and the three slots together decide completeness.
Missing slots are asked one at a time in the order photo, location,
description.

Usage:
    manager = SlotManager(session.slots)
    filled = manager.merge_extraction(result)
    if manager.is_complete():
        ...  # materialize
"""

import logging
from dataclasses import dataclass
from enum import Enum
from typing import Optional

from demand_intake.schemas.extraction_schema import ExtractionResult, GeoResult
from demand_intake.schemas.session_schema import AttachmentRef, Coordinates, DemandSlots
from demand_intake.tools.categories import DEFAULT_CATEGORY

logger = logging.getLogger(__name__)


class SlotName(str, Enum):
    DESCRIPTION = "description"
    LOCATION = "location"
    PHOTO = "photo"


@dataclass(frozen=True)
class SlotDefinition:
    """A slot the citizen must provide before a ticket can be created."""

    name: SlotName
    display_name: str
    prompt_priority: int


class SlotManager:
    """Applies merge rules to a DemandSlots instance in place."""

    SLOT_DEFINITIONS: list[SlotDefinition] = [
        SlotDefinition(SlotName.PHOTO, "foto", prompt_priority=0),
        SlotDefinition(SlotName.LOCATION, "localização", prompt_priority=1),
        SlotDefinition(SlotName.DESCRIPTION, "descrição", prompt_priority=2),
    ]

    def __init__(self, slots: DemandSlots) -> None:
        self.slots = slots

    def has(self, name: SlotName) -> bool:
        if name == SlotName.DESCRIPTION:
            return bool(self.slots.description)
        if name == SlotName.LOCATION:
            return bool(self.slots.address_text) or self.slots.coordinates is not None
        return bool(self.slots.photos)

    def merge_extraction(self, result: Optional[ExtractionResult]) -> set[SlotName]:
        """Merge non-empty extracted fields. Returns the slots this call filled."""
        if result is None:
            return set()
        before = {name for name in SlotName if self.has(name)}
        s = self.slots
        if result.description and not s.description:
            s.description = result.description.strip()
        if result.address_text and not s.address_text:
            s.address_text = result.address_text.strip()
        if result.neighborhood and not s.neighborhood:
            s.neighborhood = result.neighborhood.strip()
        if result.urgency and not s.urgency:
            s.urgency = result.urgency
        if result.category and (not s.category or s.category == DEFAULT_CATEGORY):
            s.category = result.category
        filled = {name for name in SlotName if self.has(name)} - before
        if filled:
            logger.debug("Slots filled from extraction: %s", sorted(f.value for f in filled))
        return filled

    def fill_description(self, text: str) -> bool:
        """Take a free-text answer as the description if none is recorded yet."""
        if self.has(SlotName.DESCRIPTION) or not text.strip():
            return False
        self.slots.description = text.strip()
        return True

    def set_coordinates(self, lat: float, lon: float) -> bool:
        """Record a GPS pin. The latest pin wins."""
        had_location = self.has(SlotName.LOCATION)
        self.slots.coordinates = Coordinates(lat=lat, lon=lon)
        return not had_location

    def merge_geo(self, geo: Optional[GeoResult]) -> None:
        if geo is None:
            return
        if not self.slots.address_text:
            self.slots.address_text = geo.address_text
        if geo.neighborhood and not self.slots.neighborhood:
            self.slots.neighborhood = geo.neighborhood

    def add_photo(self, ref: AttachmentRef) -> bool:
        had_photo = self.has(SlotName.PHOTO)
        self.slots.photos.append(ref)
        return not had_photo

    def missing(self) -> list[SlotName]:
        """Unfilled slots in the order they should be asked for."""
        ordered = sorted(self.SLOT_DEFINITIONS, key=lambda d: d.prompt_priority)
        return [d.name for d in ordered if not self.has(d.name)]

    def next_missing(self) -> Optional[SlotName]:
        missing = self.missing()
        return missing[0] if missing else None

    def is_complete(self) -> bool:
        return not self.missing()

    def reset(self) -> list[AttachmentRef]:
        """Clear every slot. Returns the photo refs that were dropped."""
        dropped = list(self.slots.photos)
        self.slots.description = None
        self.slots.category = None
        self.slots.address_text = None
        self.slots.neighborhood = None
        self.slots.coordinates = None
        self.slots.urgency = None
        self.slots.photos = []
        return dropped

    def to_dict(self) -> dict:
        """Export collected values without attachment handles."""
        return self.slots.model_dump(exclude={"photos"}, exclude_none=True) | {
            "photos": len(self.slots.photos)
        }
