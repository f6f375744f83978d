"""Storage interfaces the worker and service depend on."""

from typing import Protocol

from hands_protocol.store.models import HistoryEntry, Plan, QueueItem


class QueueBackend(Protocol):
    def enqueue(self, plan: Plan) -> QueueItem: ...

    def list_pending(self) -> list[QueueItem]: ...

    def mark_picked_up(self, plan_id: str) -> QueueItem | None: ...

    def remove(self, plan_id: str) -> bool: ...


class HistoryBackend(Protocol):
    def append(self, entry: HistoryEntry) -> None: ...

    def list(self) -> list[HistoryEntry]: ...

    def clear(self) -> None: ...
