"""Bounded memory of processed provider message ids."""

from collections import OrderedDict

from demand_intake.config import settings


class SeenMessages:
    """Remembers the most recent provider message ids to drop redeliveries."""

    def __init__(self, capacity: int = 0) -> None:
        self.capacity = capacity or settings.session.seen_message_cache
        self._ids: OrderedDict[str, None] = OrderedDict()

    def check_and_add(self, message_id: str) -> bool:
        """Record a message id. Returns True when it was already seen."""
        if not message_id:
            return False
        if message_id in self._ids:
            self._ids.move_to_end(message_id)
            return True
        self._ids[message_id] = None
        while len(self._ids) > self.capacity:
            self._ids.popitem(last=False)
        return False

    def __len__(self) -> int:
        return len(self._ids)
