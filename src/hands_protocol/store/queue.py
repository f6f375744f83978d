"""Durable plan queue backed by a directory of JSON files.

Layout::

    <queue_dir>/pending.json      consolidated list of queued items (FIFO)
    <queue_dir>/<planId>.json     one document per in-flight plan

Every mutation re-reads ``pending.json`` right before rewriting it. This
narrows, but does not close, the race between the submission process and the
worker; the store assumes a single worker.
"""

import logging
import re
from pathlib import Path

from hands_protocol.store.engine import init_store_dir, read_json, read_json_list, write_json
from hands_protocol.store.models import Plan, QueueItem

logger = logging.getLogger(__name__)

PENDING_FILE = "pending.json"
_SAFE_ID = re.compile(r"^[A-Za-z0-9_.-]+$")


def is_valid_plan_id(plan_id) -> bool:
    """Plan ids double as file names, so they are restricted to a safe charset."""
    return isinstance(plan_id, str) and bool(_SAFE_ID.match(plan_id)) and not plan_id.startswith(".")


class QueueStore:
    def __init__(self, queue_dir: Path):
        self.queue_dir = init_store_dir(Path(queue_dir))
        self.pending_file = self.queue_dir / PENDING_FILE

    def _item_file(self, plan_id: str) -> Path:
        if not is_valid_plan_id(plan_id):
            raise ValueError(f"Invalid plan id: {plan_id!r}")
        return self.queue_dir / f"{plan_id}.json"

    def _load_pending(self) -> list[QueueItem]:
        items = []
        for raw in read_json_list(self.pending_file):
            if not isinstance(raw, dict):
                continue
            try:
                item = QueueItem.from_dict(raw)
            except (ValueError, TypeError) as e:
                logger.warning("Skipping malformed queue entry: %s", e)
                continue
            if not is_valid_plan_id(item.id):
                logger.warning("Skipping queue entry with invalid plan id %r", item.id)
                continue
            items.append(item)
        return items

    def _save_pending(self, items: list[QueueItem]) -> None:
        write_json(self.pending_file, [i.to_dict() for i in items])

    def enqueue(self, plan: Plan) -> QueueItem:
        """Persist a confirmed plan as a new pending item."""
        item = QueueItem(plan=plan)
        write_json(self._item_file(plan.plan_id), item.to_dict())

        pending = [i for i in self._load_pending() if i.id != plan.plan_id]
        pending.append(item)
        self._save_pending(pending)

        logger.info("Queued plan %s", plan.plan_id)
        return item

    def list_pending(self) -> list[QueueItem]:
        """Items in insertion order, including any currently picked up."""
        return self._load_pending()

    def get(self, plan_id: str) -> QueueItem | None:
        """Point lookup through the individual item file."""
        raw = read_json(self._item_file(plan_id))
        if not isinstance(raw, dict):
            return None
        try:
            return QueueItem.from_dict(raw)
        except (ValueError, TypeError):
            return None

    def mark_picked_up(self, plan_id: str) -> QueueItem | None:
        """Transition a pending item to ``picked_up``. Returns None if it is gone."""
        pending = self._load_pending()
        updated = None
        for idx, item in enumerate(pending):
            if item.id == plan_id:
                updated = item.picked_up()
                pending[idx] = updated
                break
        if updated is None:
            return None
        self._save_pending(pending)
        write_json(self._item_file(plan_id), updated.to_dict())
        return updated

    def remove(self, plan_id: str) -> bool:
        """Drop an item from the pending list and delete its file.

        Entries are matched in the raw pending list so that one with an id the
        store cannot load is still removable.
        """
        fresh = read_json_list(self.pending_file)
        remaining = [r for r in fresh if not (isinstance(r, dict) and r.get("planId") == plan_id)]
        removed = len(remaining) != len(fresh)
        try:
            if removed:
                write_json(self.pending_file, remaining)
        finally:
            item_file = self._item_file(plan_id) if is_valid_plan_id(plan_id) else None
            if item_file is not None and item_file.exists():
                item_file.unlink()
                removed = True
        return removed

    def clear(self) -> int:
        """Remove every pending item. Returns the number removed."""
        pending = self._load_pending()
        for item in pending:
            self._item_file(item.id).unlink(missing_ok=True)
        self._save_pending([])
        return len(pending)
