from __future__ import annotations

import logging
import threading
from typing import TYPE_CHECKING, Protocol

from .models import JobState

if TYPE_CHECKING:
    from .repository import DocumentStore

logger = logging.getLogger(__name__)


class Cancellation(Protocol):
    def is_set(self) -> bool:
        ...


class CancellationFlag:
    """
    Cooperative abort signal for one ingestion run. Polled between batches,
    never awaited. Once set it stays set.
    """

    def __init__(self) -> None:
        self._event = threading.Event()

    def set(self) -> None:
        self._event.set()

    def is_set(self) -> bool:
        return self._event.is_set()


class RepositoryCancellationFlag:
    """
    Cancellation driven by the persisted job state, so a cancel request made
    through the API (or from another process) reaches a running job.
    """

    def __init__(self, store: "DocumentStore", job_id: str):
        self.store = store
        self.job_id = job_id
        self._latched = CancellationFlag()

    def set(self) -> None:
        self._latched.set()

    def is_set(self) -> bool:
        if self._latched.is_set():
            return True
        try:
            job = self.store.get_job(self.job_id)
        except Exception:  # noqa: BLE001
            logger.warning("Could not read job %s while polling for cancellation", self.job_id, exc_info=True)
            return False
        if job and job.state == JobState.CANCELLED:
            logger.info("Cancellation observed for job %s", self.job_id)
            self._latched.set()
        return self._latched.is_set()
