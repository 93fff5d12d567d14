"""Validator payment scan.

``compute_payments`` is the entry point: it turns a date interval into a
slot range, resolves the validators to track, scans every slot and returns
per-address totals of consensus withdrawals and execution priority fees.
"""

import logging
from dataclasses import dataclass, field
from decimal import Decimal
from typing import Iterable, Optional

from ..beacon import BeaconClient
from ..config import Config, ScanSettings
from ..execution import ExecutionRPCClient
from .aggregator import (
    Aggregator,
    PaymentCategory,
    SlotDelta,
    ValidatorRecord,
)
from .exceptions import (
    InvalidRangeError,
    NoValidatorsResolvedError,
    PaymentsError,
    RetryExhaustedError,
)
from .observer import LoggingObserver, ScanObserver
from .processor import SlotProcessor, strip_principal
from .registry import ValidatorRegistry, WithdrawalLookup
from .retry import retry_async
from .scanner import BoundedScanner, ScanProgress, ScanResult
from .slots import resolve_slot_range, slot_range_for_timestamps, to_timestamp

logger = logging.getLogger(__name__)


@dataclass
class PaymentReport:
    """Totals of a finished scan, in whole coins."""

    consensus_totals_by_address: dict[str, Decimal]
    execution_totals_by_address: dict[str, Decimal]
    validators: list[ValidatorRecord]
    start_slot: int
    end_slot: int
    processed_slots: int
    failed_slots: list[int] = field(default_factory=list)
    anomaly_counts: dict[str, int] = field(default_factory=dict)

    @property
    def incomplete(self) -> bool:
        """True when some slots failed, making the totals a lower bound."""
        return bool(self.failed_slots)


async def compute_payments(
    ids: Iterable[str],
    start_date,
    end_date,
    *,
    beacon: BeaconClient,
    rpc: ExecutionRPCClient,
    settings: Optional[ScanSettings] = None,
    observer: Optional[ScanObserver] = None,
) -> PaymentReport:
    """Scan ``[start_date, end_date)`` for payments to the validators ``ids``.

    Raises ``InvalidRangeError`` for bad dates, ``RetryExhaustedError`` when
    genesis cannot be fetched and ``NoValidatorsResolvedError`` when none of
    the identifiers resolve. Per-slot failures never raise; they are listed
    in ``PaymentReport.failed_slots``.
    """
    settings = settings or ScanSettings()
    start_ts = to_timestamp(start_date)
    end_ts = to_timestamp(end_date)

    genesis = await retry_async(
        beacon.get_genesis,
        max_attempts=settings.max_attempts,
        backoff_base=settings.backoff_base,
        description="genesis",
    )
    start_slot, end_slot = slot_range_for_timestamps(
        start_ts, end_ts, genesis.genesis_time, settings.seconds_per_slot
    )
    logger.info(f"Genesis time {genesis.genesis_time}, scanning slots {start_slot}..{end_slot}")

    registry = ValidatorRegistry(
        beacon,
        state_id=settings.validator_state_id,
        max_attempts=settings.max_attempts,
        backoff_base=settings.backoff_base,
    )
    records = await registry.resolve(ids)

    aggregator = Aggregator(records)
    processor = SlotProcessor(
        beacon,
        rpc,
        registry.indices,
        max_effective_balance=settings.max_effective_balance,
        max_attempts=settings.max_attempts,
        backoff_base=settings.backoff_base,
    )
    scanner = BoundedScanner(
        processor,
        aggregator,
        concurrency=settings.concurrency,
        max_attempts=settings.max_attempts,
        backoff_base=settings.backoff_base,
        progress_interval=settings.progress_interval,
        observer=observer or LoggingObserver(),
    )
    result = await scanner.scan(start_slot, end_slot)

    if result.failed_slots:
        logger.warning(
            f"{len(result.failed_slots)} slots could not be processed; "
            "totals are a lower bound"
        )

    return PaymentReport(
        consensus_totals_by_address=aggregator.totals_in_coins(PaymentCategory.CONSENSUS),
        execution_totals_by_address=aggregator.totals_in_coins(PaymentCategory.EXECUTION),
        validators=registry.records,
        start_slot=start_slot,
        end_slot=end_slot,
        processed_slots=result.progress.processed,
        failed_slots=result.failed_slots,
        anomaly_counts=result.anomaly_counts,
    )


async def run_payments(
    config: Config, ids: Iterable[str], start_date, end_date
) -> PaymentReport:
    """Run ``compute_payments`` with clients built from ``config``."""
    beacon = BeaconClient(config.beacon_api_url, timeout=config.request_timeout)
    rpc = ExecutionRPCClient(
        config.rpc_url,
        jwt_secret=config.rpc_jwt_secret,
        timeout=config.request_timeout,
    )
    try:
        return await compute_payments(
            ids,
            start_date,
            end_date,
            beacon=beacon,
            rpc=rpc,
            settings=config.scan_settings,
        )
    finally:
        await beacon.close()
        await rpc.close()


async def run_withdrawal_lookup(config: Config, ids: Iterable[str]) -> list[WithdrawalLookup]:
    """Look up execution withdrawal addresses with a client built from ``config``."""
    beacon = BeaconClient(config.beacon_api_url, timeout=config.request_timeout)
    try:
        registry = ValidatorRegistry(
            beacon,
            state_id=config.validator_state_id,
            max_attempts=config.max_attempts,
            backoff_base=config.backoff_base,
        )
        return await registry.lookup_withdrawal_addresses(ids)
    finally:
        await beacon.close()


__all__ = [
    "compute_payments",
    "run_payments",
    "run_withdrawal_lookup",
    "PaymentReport",
    "PaymentCategory",
    "Aggregator",
    "SlotDelta",
    "ValidatorRecord",
    "ValidatorRegistry",
    "WithdrawalLookup",
    "SlotProcessor",
    "BoundedScanner",
    "ScanProgress",
    "ScanResult",
    "ScanObserver",
    "LoggingObserver",
    "PaymentsError",
    "InvalidRangeError",
    "NoValidatorsResolvedError",
    "RetryExhaustedError",
    "retry_async",
    "resolve_slot_range",
    "slot_range_for_timestamps",
    "strip_principal",
]
