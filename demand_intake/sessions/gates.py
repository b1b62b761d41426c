"""
Per-sender serialization and cancellation.

Each sender gets a gate: a FIFO asyncio.Lock, an epoch counter and the set
of in-flight extraction tasks. A turn enters the gate synchronously on
receipt, so lock acquisition follows receipt order. Cancelling bumps the
epoch and cancels in-flight extraction; a turn whose captured epoch is
stale discards its work.

Usage:
    gate, epoch = gates.enter("5584999990000")
    try:
        async with gate.lock:
            if gate.epoch != epoch:
                return
            ...
    finally:
        gates.leave("5584999990000", gate)
"""

import asyncio
import logging
from contextlib import asynccontextmanager
from dataclasses import dataclass, field
from typing import AsyncIterator

logger = logging.getLogger(__name__)


@dataclass
class SenderGate:
    lock: asyncio.Lock = field(default_factory=asyncio.Lock)
    epoch: int = 0
    inflight: set = field(default_factory=set)
    users: int = 0


class SenderGates:
    """Lazily created gates, dropped once nobody holds or waits on them."""

    def __init__(self) -> None:
        self._gates: dict[str, SenderGate] = {}

    def enter(self, sender_id: str) -> tuple[SenderGate, int]:
        """Register interest in a sender's gate and capture its current epoch."""
        gate = self._gates.get(sender_id)
        if gate is None:
            gate = SenderGate()
            self._gates[sender_id] = gate
        gate.users += 1
        return gate, gate.epoch

    def leave(self, sender_id: str, gate: SenderGate) -> None:
        gate.users -= 1
        if gate.users <= 0 and self._gates.get(sender_id) is gate:
            del self._gates[sender_id]

    @asynccontextmanager
    async def hold(self, sender_id: str) -> AsyncIterator[SenderGate]:
        """Hold a sender's lock for housekeeping, queued behind any pending turn."""
        gate, _ = self.enter(sender_id)
        try:
            async with gate.lock:
                yield gate
        finally:
            self.leave(sender_id, gate)

    def cancel(self, sender_id: str) -> int:
        """Invalidate queued and running turns for a sender.

        Returns the number of in-flight extraction tasks that were cancelled.
        """
        gate = self._gates.get(sender_id)
        if gate is None:
            return 0
        gate.epoch += 1
        tasks = [t for t in gate.inflight if not t.done()]
        for task in tasks:
            task.cancel()
        if tasks:
            logger.info("Cancelled %d in-flight extraction(s) for %s", len(tasks), sender_id)
        return len(tasks)

    def track(self, gate: SenderGate, task: asyncio.Task) -> None:
        gate.inflight.add(task)
        task.add_done_callback(gate.inflight.discard)

    def busy(self) -> frozenset[str]:
        """Senders with a turn running or queued."""
        return frozenset(sid for sid, gate in self._gates.items() if gate.users > 0)

    def __contains__(self, sender_id: str) -> bool:
        return sender_id in self._gates
