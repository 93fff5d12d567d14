"""Drive the slot processor over a slot range with bounded concurrency."""

import asyncio
import logging
import time
from dataclasses import dataclass, field
from typing import Callable, Iterable, Optional

from ..exceptions import ResourceNotFoundError
from .aggregator import Aggregator, SlotDelta
from .exceptions import RetryExhaustedError
from .observer import LoggingObserver, ScanObserver
from .processor import RETRY_EXHAUSTED, SLOT_ERROR, SlotProcessor
from .retry import DEFAULT_BACKOFF_BASE, DEFAULT_MAX_ATTEMPTS, retry_async

logger = logging.getLogger(__name__)

DEFAULT_CONCURRENCY = 90
DEFAULT_PROGRESS_INTERVAL = 4.0


@dataclass
class ScanProgress:
    """Slots settled so far out of the scan total."""

    processed: int = 0
    total: int = 0

    def advance(self, count: int) -> None:
        if count < 0:
            raise ValueError("progress cannot go backwards")
        self.processed += count


@dataclass
class ScanResult:
    """Outcome of a scan; the totals themselves live in the aggregator."""

    progress: ScanProgress
    failed_slots: list[int] = field(default_factory=list)
    anomaly_counts: dict[str, int] = field(default_factory=dict)


class BoundedScanner:
    """Runs at most ``concurrency`` slot units at a time.

    Slots are launched in batches; a batch is awaited in full before the
    next one starts, and its deltas are committed only once it has settled.
    """

    def __init__(
        self,
        processor: SlotProcessor,
        aggregator: Aggregator,
        concurrency: int = DEFAULT_CONCURRENCY,
        max_attempts: int = DEFAULT_MAX_ATTEMPTS,
        backoff_base: float = DEFAULT_BACKOFF_BASE,
        progress_interval: float = DEFAULT_PROGRESS_INTERVAL,
        observer: Optional[ScanObserver] = None,
        clock: Callable[[], float] = time.monotonic,
    ):
        if concurrency < 1:
            raise ValueError("concurrency must be at least 1")
        self.processor = processor
        self.aggregator = aggregator
        self.concurrency = concurrency
        self.max_attempts = max_attempts
        self.backoff_base = backoff_base
        self.progress_interval = progress_interval
        self.observer = observer or LoggingObserver()
        self.clock = clock

    async def _run_slot(self, slot: int) -> SlotDelta:
        return await retry_async(
            lambda: self.processor.process(slot),
            max_attempts=self.max_attempts,
            backoff_base=self.backoff_base,
            description=f"slot {slot}",
        )

    async def scan(self, start_slot: int, end_slot: int) -> ScanResult:
        """Process every slot from ``start_slot`` to ``end_slot`` inclusive."""
        if start_slot > end_slot:
            raise ValueError(f"start slot {start_slot} is after end slot {end_slot}")
        total = end_slot - start_slot + 1
        return await self.scan_slots(range(start_slot, end_slot + 1), total)

    async def scan_slots(self, slots: Iterable[int], total: int) -> ScanResult:
        """Process ``slots`` in launch order, ``concurrency`` at a time."""
        result = ScanResult(progress=ScanProgress(total=total))
        logger.info(f"Starting scan of {total} slots (concurrency {self.concurrency})")

        last_emit = self.clock()
        batch: list[int] = []
        for slot in slots:
            batch.append(slot)
            if len(batch) >= self.concurrency:
                await self._settle(batch, result)
                batch = []
                now = self.clock()
                if now - last_emit >= self.progress_interval:
                    self._progress(result.progress)
                    last_emit = now
        if batch:
            await self._settle(batch, result)

        self._progress(result.progress)
        logger.info(
            f"Scan complete: processed {result.progress.processed} / {total} slots, "
            f"{len(result.failed_slots)} failed"
        )
        result.failed_slots.sort()
        return result

    async def _settle(self, batch: list[int], result: ScanResult) -> None:
        tasks = [asyncio.create_task(self._run_slot(slot)) for slot in batch]
        outcomes = await asyncio.gather(*tasks, return_exceptions=True)

        # Commit the whole batch before anyone is notified
        anomalies: list[tuple[int, str]] = []
        for slot, outcome in zip(batch, outcomes):
            if isinstance(outcome, SlotDelta):
                self.aggregator.commit(outcome)
                anomalies.extend((slot, reason) for reason in outcome.anomalies)
            elif isinstance(outcome, RetryExhaustedError):
                logger.error(f"Error processing slot {slot}: {outcome.last_error!r}")
                result.failed_slots.append(slot)
                anomalies.append((slot, RETRY_EXHAUSTED))
            elif isinstance(outcome, ResourceNotFoundError):
                anomalies.append((slot, type(outcome).__name__))
            elif isinstance(outcome, asyncio.CancelledError):
                raise outcome
            else:
                logger.error(f"Unexpected error processing slot {slot}: {outcome!r}")
                result.failed_slots.append(slot)
                anomalies.append((slot, SLOT_ERROR))

        result.progress.advance(len(batch))
        for slot, reason in anomalies:
            self._anomaly(slot, reason, result)

    def _anomaly(self, slot: int, reason: str, result: ScanResult) -> None:
        result.anomaly_counts[reason] = result.anomaly_counts.get(reason, 0) + 1
        try:
            self.observer.on_anomaly(slot, reason)
        except Exception:
            logger.exception(f"Observer failed on anomaly for slot {slot}")

    def _progress(self, progress: ScanProgress) -> None:
        try:
            self.observer.on_progress(progress.processed, progress.total)
        except Exception:
            logger.exception("Observer failed on progress update")
