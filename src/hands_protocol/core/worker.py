"""Queue worker: drains pending plans one at a time and records outcomes."""

import logging
import threading
from collections.abc import Callable

from hands_protocol.core.executor import ExecutionResult, PlanExecutor
from hands_protocol.store.base import HistoryBackend, QueueBackend
from hands_protocol.store.models import HistoryEntry, QueueItem

logger = logging.getLogger(__name__)

INTERRUPTED_ERROR = "Interrupted: the worker stopped while this plan was executing"


class ExecutionWorker:
    """Polls the queue on a fixed interval and executes the first pending plan.

    Only one plan is ever in flight. A plan found already ``picked_up`` belongs
    to a worker that died mid-run; it is recorded as failed instead of re-run.
    """

    def __init__(
        self,
        queue: QueueBackend,
        history: HistoryBackend,
        executor: PlanExecutor,
        poll_interval: float = 2.0,
        notifier: Callable[[HistoryEntry], None] | None = None,
    ):
        self.queue = queue
        self.history = history
        self.executor = executor
        self.poll_interval = poll_interval
        self.notifier = notifier
        self._busy = threading.Lock()
        self._stop_event = threading.Event()
        self._thread: threading.Thread | None = None

    def start(self):
        """Start polling in a background thread."""
        if self._thread and self._thread.is_alive():
            return
        self._stop_event.clear()
        self._thread = threading.Thread(target=self._run, name="plan-worker", daemon=True)
        self._thread.start()
        logger.info("Execution worker started")

    def stop(self):
        self._stop_event.set()
        if self._thread:
            self._thread.join(timeout=10)
        logger.info("Execution worker stopped")

    def run_forever(self):
        """Poll in the calling thread until ``stop`` is called."""
        self._stop_event.clear()
        logger.info("Execution worker polling every %ss", self.poll_interval)
        self._run()

    def _run(self):
        while not self._stop_event.is_set():
            try:
                self.poll_once()
            except Exception:
                logger.exception("Error in worker poll loop")
            self._stop_event.wait(self.poll_interval)

    def poll_once(self) -> HistoryEntry | None:
        """Process at most one queued plan. Returns its history entry, if any."""
        if not self._busy.acquire(blocking=False):
            return None
        try:
            pending = self.queue.list_pending()
            if not pending:
                return None
            item = pending[0]

            if item.status == "picked_up":
                logger.warning("Plan %s was interrupted mid-run; recording as failed", item.id)
                return self._finish(item, ExecutionResult(False, None, INTERRUPTED_ERROR))

            picked = self.queue.mark_picked_up(item.id)
            if picked is None:
                return None
            logger.info("Picked up plan %s: %s", picked.id, picked.plan.original_command[:80])

            try:
                result = self.executor.execute(picked.plan)
            except Exception as e:
                logger.exception("Critical execution failure for plan %s", picked.id)
                result = ExecutionResult(False, [], str(e))
            return self._finish(picked, result)
        finally:
            self._busy.release()

    def _finish(self, item: QueueItem, result: ExecutionResult) -> HistoryEntry:
        item.status = "completed" if result.success else "failed"
        entry = HistoryEntry(
            id=item.id,
            original_command=item.plan.original_command,
            status=item.status,
            result=result.results,
            error=None if result.success else (result.error or "Execution failed"),
            queued_at=item.queued_at,
        )
        try:
            self.history.append(entry)
        except Exception:
            logger.exception("Failed to record history for plan %s", item.id)
        finally:
            try:
                self.queue.remove(item.id)
            except Exception:
                logger.exception("Failed to remove plan %s from the queue", item.id)

        logger.info("Plan %s %s", item.id, item.status)
        self._notify(entry)
        return entry

    def _notify(self, entry: HistoryEntry):
        if self.notifier is None:
            return
        try:
            self.notifier(entry)
        except Exception:
            logger.exception("Failed to send completion notification for plan %s", entry.id)
