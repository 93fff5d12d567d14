"""Tests for the synchronized payment accumulator."""

import threading
from decimal import Decimal

import pytest

from valpay.payments.aggregator import (
    Aggregator,
    PaymentCategory,
    SlotDelta,
    ValidatorRecord,
)

from conftest import ADDRESS_A, ADDRESS_B


def make_aggregator(*indices):
    return Aggregator([ValidatorRecord(index=i, pubkey=f"0x{i:02x}") for i in indices])


def assert_views_agree(aggregator):
    for category in PaymentCategory:
        by_address = sum(aggregator.totals(category).values())
        if category is PaymentCategory.CONSENSUS:
            by_validator = sum(v.consensus_total_gwei for v in aggregator.validators.values())
        else:
            by_validator = sum(v.execution_total_wei for v in aggregator.validators.values())
        assert by_address == by_validator


class TestCategory:
    def test_consensus_in_gwei(self):
        assert PaymentCategory.CONSENSUS.to_coins(1_500_000_000) == Decimal("1.5")

    def test_execution_in_wei(self):
        assert PaymentCategory.EXECUTION.to_coins(2000) == Decimal("2E-15")


class TestAggregator:
    def test_credit_normalizes_address(self):
        aggregator = make_aggregator(1)
        aggregator.credit(ADDRESS_A.upper().replace("0X", "0x"), PaymentCategory.CONSENSUS, 5)
        aggregator.credit(ADDRESS_A, PaymentCategory.CONSENSUS, 7)
        assert aggregator.totals(PaymentCategory.CONSENSUS) == {ADDRESS_A: 12}
        assert aggregator.totals(PaymentCategory.EXECUTION) == {}

    def test_credit_validator(self):
        aggregator = make_aggregator(1, 2)
        aggregator.credit_validator(2, PaymentCategory.EXECUTION, 10)
        aggregator.credit_validator(2, PaymentCategory.CONSENSUS, 3)
        assert aggregator.validators[2].execution_total_wei == 10
        assert aggregator.validators[2].consensus_total_gwei == 3
        assert aggregator.validators[1].execution_total_wei == 0

    def test_negative_credit_rejected(self):
        aggregator = make_aggregator(1)
        with pytest.raises(ValueError):
            aggregator.credit(ADDRESS_A, PaymentCategory.CONSENSUS, -1)
        with pytest.raises(ValueError):
            aggregator.credit_validator(1, PaymentCategory.CONSENSUS, -1)

    def test_untracked_validator_rejected(self):
        aggregator = make_aggregator(1)
        with pytest.raises(KeyError):
            aggregator.credit_validator(9, PaymentCategory.CONSENSUS, 1)

    def test_commit_updates_both_views(self):
        aggregator = make_aggregator(1, 2)
        delta = SlotDelta(slot=3)
        delta.add(1, ADDRESS_A, PaymentCategory.CONSENSUS, 100)
        delta.add(2, ADDRESS_A, PaymentCategory.CONSENSUS, 50)
        delta.add(2, ADDRESS_B, PaymentCategory.EXECUTION, 7)
        aggregator.commit(delta)

        assert aggregator.totals(PaymentCategory.CONSENSUS) == {ADDRESS_A: 150}
        assert aggregator.totals(PaymentCategory.EXECUTION) == {ADDRESS_B: 7}
        assert aggregator.validators[1].consensus_total_gwei == 100
        assert aggregator.validators[2].execution_total_wei == 7
        assert_views_agree(aggregator)

    def test_commit_with_unknown_validator_applies_nothing(self):
        aggregator = make_aggregator(1)
        delta = SlotDelta(slot=3)
        delta.add(1, ADDRESS_A, PaymentCategory.CONSENSUS, 100)
        delta.add(4, ADDRESS_A, PaymentCategory.CONSENSUS, 100)
        with pytest.raises(KeyError):
            aggregator.commit(delta)
        assert aggregator.totals(PaymentCategory.CONSENSUS) == {}
        assert aggregator.validators[1].consensus_total_gwei == 0

    def test_delta_rejects_negative_amount(self):
        with pytest.raises(ValueError):
            SlotDelta(slot=1).add(1, ADDRESS_A, PaymentCategory.EXECUTION, -5)

    def test_concurrent_commits_lose_nothing(self):
        aggregator = make_aggregator(1, 2)
        threads_count = 8
        commits_per_thread = 500

        def worker():
            for i in range(commits_per_thread):
                delta = SlotDelta(slot=i)
                delta.add(1, ADDRESS_A, PaymentCategory.CONSENSUS, 1)
                delta.add(2, ADDRESS_B, PaymentCategory.EXECUTION, 3)
                aggregator.commit(delta)

        threads = [threading.Thread(target=worker) for _ in range(threads_count)]
        for t in threads:
            t.start()
        for t in threads:
            t.join()

        expected = threads_count * commits_per_thread
        assert aggregator.totals(PaymentCategory.CONSENSUS) == {ADDRESS_A: expected}
        assert aggregator.totals(PaymentCategory.EXECUTION) == {ADDRESS_B: 3 * expected}
        assert_views_agree(aggregator)

    def test_totals_in_coins(self):
        aggregator = make_aggregator(1)
        aggregator.credit(ADDRESS_A, PaymentCategory.CONSENSUS, 1_000_000_000)
        assert aggregator.totals_in_coins(PaymentCategory.CONSENSUS) == {ADDRESS_A: Decimal(1)}
