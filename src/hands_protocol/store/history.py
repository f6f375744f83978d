"""Bounded execution history stored as a single JSON array."""

import logging
from pathlib import Path

from hands_protocol.store.engine import init_store_dir, read_json_list, write_json
from hands_protocol.store.models import HistoryEntry

logger = logging.getLogger(__name__)

HISTORY_FILE = "history.json"


class HistoryStore:
    """Append-only log that keeps only the most recent ``limit`` entries.

    Entries are stored oldest-first on disk and returned newest-first.
    """

    def __init__(self, queue_dir: Path, limit: int = 100):
        if limit < 1:
            raise ValueError("History limit must be at least 1")
        self.history_file = init_store_dir(Path(queue_dir)) / HISTORY_FILE
        self.limit = limit

    def _load(self) -> list[dict]:
        return [e for e in read_json_list(self.history_file) if isinstance(e, dict)]

    def append(self, entry: HistoryEntry) -> None:
        history = self._load()
        history.append(entry.to_dict())
        if len(history) > self.limit:
            history = history[-self.limit:]
        write_json(self.history_file, history)

    def list(self) -> list[HistoryEntry]:
        return [HistoryEntry.from_dict(e) for e in reversed(self._load())]

    def clear(self) -> None:
        write_json(self.history_file, [])
        logger.info("History cleared")
