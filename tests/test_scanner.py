"""Tests for the bounded-concurrency slot scanner."""

import asyncio
import random

import pytest

from valpay.payments.aggregator import Aggregator, PaymentCategory, ValidatorRecord
from valpay.payments.processor import BLOCK_NOT_FOUND, RETRY_EXHAUSTED, SLOT_ERROR, SlotProcessor
from valpay.payments.scanner import BoundedScanner, ScanProgress

from conftest import ADDRESS_A, ADDRESS_B, FEE_RECIPIENT, FakeBeacon, FakeRPC, make_block

GWEI = 10**9
TRACKED = (5, 6)


def populate(beacon, rpc, slots=range(40)):
    """Blocks with a mix of withdrawals, proposals and missed slots."""
    for slot in slots:
        if slot % 7 == 3:
            continue
        proposer = TRACKED[slot % 2] if slot % 3 == 0 else 100 + slot
        withdrawals = [
            (5, ADDRESS_A, (slot + 1) * 1_000_000),
            (6, ADDRESS_B, 32 * GWEI + slot),
            (77, ADDRESS_A, 5 * GWEI),
        ]
        beacon.blocks[slot] = make_block(slot, proposer, withdrawals, block_number=1000 + slot)
        rpc.add_block(
            1000 + slot,
            base_fee=slot,
            transactions=[
                (f"0x{slot}a", 21_000, {"max_priority_fee_per_gas": 2, "max_fee_per_gas": slot + 5}),
                (f"0x{slot}b", 50_000 + slot, {"gas_price": slot + 3}),
            ],
        )


def make_scanner(beacon, rpc, observer, concurrency=4, clock=None, max_attempts=3):
    aggregator = Aggregator([ValidatorRecord(index=i, pubkey=f"0x{i}") for i in TRACKED])
    processor = SlotProcessor(beacon, rpc, frozenset(TRACKED), max_attempts=max_attempts, backoff_base=0.0)
    kwargs = {}
    if clock is not None:
        kwargs["clock"] = clock
    scanner = BoundedScanner(
        processor,
        aggregator,
        concurrency=concurrency,
        max_attempts=max_attempts,
        backoff_base=0.0,
        observer=observer,
        **kwargs,
    )
    return scanner, aggregator


def snapshot(aggregator):
    return (
        aggregator.totals(PaymentCategory.CONSENSUS),
        aggregator.totals(PaymentCategory.EXECUTION),
        {i: (v.consensus_total_gwei, v.execution_total_wei) for i, v in aggregator.validators.items()},
    )


class TestScanProgress:
    def test_advance(self):
        progress = ScanProgress(total=10)
        progress.advance(4)
        assert progress.processed == 4

    def test_never_decreases(self):
        with pytest.raises(ValueError):
            ScanProgress(total=10).advance(-1)


class TestBoundedScanner:
    async def test_scans_inclusive_range(self, beacon, rpc, observer):
        populate(beacon, rpc)
        scanner, aggregator = make_scanner(beacon, rpc, observer)

        result = await scanner.scan(0, 39)

        assert result.progress.processed == 40
        assert result.progress.total == 40
        assert result.failed_slots == []
        assert sorted(beacon.block_calls) == list(range(40))
        assert observer.progress[-1] == (40, 40)
        missed = [slot for slot in range(40) if slot % 7 == 3]
        assert sorted(s for s, r in observer.anomalies if r == BLOCK_NOT_FOUND) == missed
        assert result.anomaly_counts == {BLOCK_NOT_FOUND: len(missed)}

        consensus, execution, _ = snapshot(aggregator)
        assert set(consensus) == {ADDRESS_A, ADDRESS_B}
        assert set(execution) == {FEE_RECIPIENT}

    async def test_order_and_batching_do_not_change_totals(self, rpc, observer):
        results = []
        orders = [list(range(40)), list(reversed(range(40)))]
        shuffled = list(range(40))
        random.Random(7).shuffle(shuffled)
        orders.append(shuffled)

        for order in orders:
            for concurrency in (1, 3, 16, 90):
                beacon = FakeBeacon()
                populate(beacon, rpc)
                scanner, aggregator = make_scanner(beacon, rpc, observer, concurrency=concurrency)
                await scanner.scan_slots(order, total=len(order))
                results.append(snapshot(aggregator))

        assert all(r == results[0] for r in results)

    async def test_concurrency_ceiling(self, beacon, rpc, observer):
        populate(beacon, rpc)
        in_flight = 0
        peak = 0
        original = beacon.get_block

        async def tracked_get_block(slot):
            nonlocal in_flight, peak
            in_flight += 1
            peak = max(peak, in_flight)
            try:
                await asyncio.sleep(0.001)
                return await original(slot)
            finally:
                in_flight -= 1

        beacon.get_block = tracked_get_block
        scanner, _ = make_scanner(beacon, rpc, observer, concurrency=5)
        await scanner.scan(0, 39)
        assert peak == 5

    async def test_transient_failures_are_retried_without_double_count(self, beacon, rpc, observer):
        populate(beacon, rpc)
        scanner, aggregator = make_scanner(beacon, rpc, observer)
        await scanner.scan(0, 39)
        expected = snapshot(aggregator)

        beacon2, rpc2 = FakeBeacon(), FakeRPC()
        populate(beacon2, rpc2)
        # Slot 0 has tracked withdrawals and a tracked proposer; its
        # execution block fails after the withdrawals were read.
        rpc2.block_failures[1000] = 2
        beacon2.failures[6] = 1
        scanner2, aggregator2 = make_scanner(beacon2, rpc2, observer)
        result = await scanner2.scan(0, 39)

        assert result.failed_slots == []
        assert beacon2.block_calls[0] == 3
        assert snapshot(aggregator2) == expected

    async def test_exhausted_slot_contributes_nothing(self, beacon, rpc, observer):
        populate(beacon, rpc, slots=[0, 1])
        beacon.failures[1] = 100
        scanner, aggregator = make_scanner(beacon, rpc, observer, max_attempts=3)

        result = await scanner.scan(0, 1)

        assert result.failed_slots == [1]
        assert result.progress.processed == 2
        assert (1, RETRY_EXHAUSTED) in observer.anomalies
        assert beacon.block_calls[1] == 3
        consensus, _, validators = snapshot(aggregator)
        assert consensus[ADDRESS_A] == 1_000_000
        assert validators[5][0] == 1_000_000

    async def test_unexpected_error_fails_only_that_slot(self, beacon, rpc, observer):
        populate(beacon, rpc, slots=[0, 1, 2])
        original = beacon.get_block

        async def broken(slot):
            if slot == 1:
                raise ZeroDivisionError()
            return await original(slot)

        beacon.get_block = broken
        scanner, aggregator = make_scanner(beacon, rpc, observer, concurrency=3)

        result = await scanner.scan(0, 2)

        assert result.failed_slots == [1]
        assert result.progress.processed == 3
        assert (1, SLOT_ERROR) in observer.anomalies
        # siblings in the batch still committed
        assert aggregator.validators[5].consensus_total_gwei == 1_000_000 + 3_000_000

    async def test_failing_observer_does_not_stop_scan(self, beacon, rpc):
        class ExplodingObserver:
            def on_progress(self, processed, total):
                raise RuntimeError("progress sink down")

            def on_anomaly(self, slot, reason):
                raise RuntimeError("anomaly sink down")

        populate(beacon, rpc, slots=[0, 2, 4])
        scanner, aggregator = make_scanner(beacon, rpc, ExplodingObserver(), concurrency=3)

        result = await scanner.scan(0, 5)

        assert result.progress.processed == 6
        assert result.anomaly_counts == {BLOCK_NOT_FOUND: 3}
        assert aggregator.validators[5].consensus_total_gwei == 1_000_000 + 3_000_000 + 5_000_000

    async def test_progress_is_rate_limited(self, beacon, rpc, observer):
        populate(beacon, rpc)
        ticks = iter(range(0, 1000))

        scanner, _ = make_scanner(beacon, rpc, observer, concurrency=4, clock=lambda: next(ticks))
        scanner.progress_interval = 3
        await scanner.scan(0, 39)

        processed = [p for p, _ in observer.progress]
        assert processed == sorted(processed)
        assert processed[-1] == 40
        # 10 batches, clock advances one tick per batch
        assert len(observer.progress) < 10

    def test_rejects_zero_concurrency(self, beacon, rpc, observer):
        with pytest.raises(ValueError):
            make_scanner(beacon, rpc, observer, concurrency=0)
