from __future__ import annotations

import logging
import threading
from typing import TYPE_CHECKING, Callable, Iterable, Optional

from .models import ProgressState

if TYPE_CHECKING:
    from .repository import DocumentStore

logger = logging.getLogger(__name__)

ProgressSink = Callable[[int, int], None]


class ProgressTracker:
    """
    Shared completed-page counter for one run. The sink is invoked while the
    lock is held so observers always see a non-decreasing sequence.
    """

    def __init__(self, total: int, sink: Optional[ProgressSink] = None):
        self.total = total
        self.sink = sink
        self._completed = 0
        self._lock = threading.Lock()

    @property
    def state(self) -> ProgressState:
        with self._lock:
            return ProgressState(completed=self._completed, total=self.total)

    def advance(self) -> ProgressState:
        with self._lock:
            if self._completed < self.total:
                self._completed += 1
            else:
                logger.warning("Progress advanced past total %s; holding at %s", self.total, self._completed)
            state = ProgressState(completed=self._completed, total=self.total)
            if self.sink is not None:
                try:
                    self.sink(state.completed, state.total)
                except Exception:  # noqa: BLE001
                    logger.exception("Progress sink failed at %s/%s", state.completed, state.total)
            return state


class LoggingProgressSink:
    def __init__(self, label: str):
        self.label = label

    def __call__(self, completed: int, total: int) -> None:
        percent = round(completed * 100 / total) if total else 0
        logger.info("%s: %s/%s pages (%s%%)", self.label, completed, total, percent)


class RepositoryProgressSink:
    def __init__(self, store: "DocumentStore", job_id: str):
        self.store = store
        self.job_id = job_id

    def __call__(self, completed: int, total: int) -> None:
        self.store.update_job(self.job_id, completed_pages=completed, total_pages=total)


class CompositeProgressSink:
    def __init__(self, sinks: Iterable[ProgressSink]):
        self.sinks = list(sinks)

    def __call__(self, completed: int, total: int) -> None:
        for sink in self.sinks:
            sink(completed, total)
