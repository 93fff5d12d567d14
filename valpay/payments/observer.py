"""Progress and anomaly notifications emitted during a scan."""

import logging
from typing import Protocol

from .. import metrics
from .processor import BLOCK_NOT_FOUND

logger = logging.getLogger(__name__)


class ScanObserver(Protocol):
    """Receives scan events. Implementations must return quickly."""

    def on_progress(self, processed: int, total: int) -> None: ...

    def on_anomaly(self, slot: int, reason: str) -> None: ...


class LoggingObserver:
    """Logs scan events and mirrors them into Prometheus metrics."""

    def on_progress(self, processed: int, total: int) -> None:
        percent = (processed / total * 100) if total else 100.0
        logger.info(f"Progress: processed {processed} / {total} slots ({percent:.2f}%)")
        metrics.update_scan_progress(processed, total)

    def on_anomaly(self, slot: int, reason: str) -> None:
        # Missed proposals are routine
        if reason == BLOCK_NOT_FOUND:
            logger.debug(f"Slot {slot}: {reason}")
        else:
            logger.warning(f"Slot {slot}: {reason}")
        metrics.record_slot_anomaly(reason)
