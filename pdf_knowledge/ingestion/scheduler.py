from __future__ import annotations

import logging
from concurrent.futures import Future, ThreadPoolExecutor, wait
from dataclasses import dataclass, field
from typing import Callable, Dict, List, Optional, Sequence

from .cancellation import Cancellation
from .models import PageResult
from .progress import ProgressSink, ProgressTracker

logger = logging.getLogger(__name__)

DEFAULT_CONCURRENCY = 15


def partition_batches(page_numbers: Sequence[int], width: int) -> List[List[int]]:
    if width < 1:
        raise ValueError(f"Batch width must be positive, got {width}")
    pages = list(page_numbers)
    return [pages[i : i + width] for i in range(0, len(pages), width)]


@dataclass
class ScheduleReport:
    results: List[PageResult] = field(default_factory=list)
    batches_run: int = 0
    cancelled: bool = False

    @property
    def failed_pages(self) -> List[int]:
        return sorted(r.page_number for r in self.results if not r.success)

    @property
    def completed(self) -> int:
        return len(self.results)


class BatchScheduler:
    """
    Runs a per-page function over a document's pages in fixed-width batches.

    Every page of a batch is dispatched to the thread pool at once and the
    batch must fully settle before the next one starts, which caps in-flight
    render and extraction calls at ``concurrency`` regardless of page count.
    A page that raises becomes a failed PageResult; it is not retried here.
    Cancellation is checked only before a batch is launched, so a batch that
    has started always runs to completion.
    """

    def __init__(self, concurrency: int = DEFAULT_CONCURRENCY):
        if concurrency < 1:
            raise ValueError(f"Concurrency must be positive, got {concurrency}")
        self.concurrency = concurrency

    def run(
        self,
        page_numbers: Sequence[int],
        process: Callable[[int], PageResult],
        cancellation: Cancellation,
        on_progress: Optional[ProgressSink] = None,
    ) -> ScheduleReport:
        batches = partition_batches(page_numbers, self.concurrency)
        tracker = ProgressTracker(total=len(page_numbers), sink=on_progress)
        report = ScheduleReport()

        with ThreadPoolExecutor(max_workers=self.concurrency, thread_name_prefix="page-worker") as executor:
            for index, batch in enumerate(batches, start=1):
                if cancellation.is_set():
                    logger.info("Cancellation requested; stopping before batch %s/%s", index, len(batches))
                    report.cancelled = True
                    break

                logger.debug("Dispatching batch %s/%s: pages %s-%s", index, len(batches), batch[0], batch[-1])
                futures: Dict[Future, int] = {
                    executor.submit(self._run_page, process, page_number, tracker): page_number
                    for page_number in batch
                }
                wait(futures)
                batch_results = [future.result() for future in futures]
                report.results.extend(sorted(batch_results, key=lambda r: r.page_number))
                report.batches_run += 1

        return report

    def _run_page(
        self,
        process: Callable[[int], PageResult],
        page_number: int,
        tracker: ProgressTracker,
    ) -> PageResult:
        try:
            result = process(page_number)
        except Exception as exc:  # noqa: BLE001
            logger.warning("Page %s failed but continuing: %s", page_number, exc)
            result = PageResult.failed(page_number, str(exc) or exc.__class__.__name__)
        finally:
            tracker.advance()
        return result
