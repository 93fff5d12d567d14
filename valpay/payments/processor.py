"""Compute what a single slot pays to the tracked validators."""

import logging
from decimal import Decimal
from typing import AbstractSet

from ..beacon import BeaconClient, BlockNotFoundError
from ..beacon.types import BeaconBlockSummary
from ..execution import (
    ExecutionBlock,
    ExecutionBlockNotFoundError,
    ExecutionRPCClient,
    ReceiptNotFoundError,
)
from .aggregator import GWEI_PER_COIN, PaymentCategory, SlotDelta
from .retry import DEFAULT_BACKOFF_BASE, DEFAULT_MAX_ATTEMPTS, retry_async

logger = logging.getLogger(__name__)

DEFAULT_MAX_EFFECTIVE_BALANCE = Decimal(32)

# Anomaly reasons reported for a slot
BLOCK_NOT_FOUND = "block_not_found"
MISSING_EXECUTION_PAYLOAD = "missing_execution_payload"
EXECUTION_BLOCK_NOT_FOUND = "execution_block_not_found"
RECEIPT_NOT_FOUND = "receipt_not_found"
RETRY_EXHAUSTED = "retry_exhausted"
SLOT_ERROR = "slot_error"


def strip_principal(amount_gwei: int, max_effective_balance_gwei: int) -> int:
    """Yield portion of a withdrawal.

    Withdrawals of at least the maximum effective balance are full exits;
    the returned principal is removed and only the remainder counts.
    """
    if amount_gwei >= max_effective_balance_gwei:
        return amount_gwei - max_effective_balance_gwei
    return amount_gwei


class SlotProcessor:
    """Turns one slot into an uncommitted ``SlotDelta``.

    ``process`` never touches shared totals, so running it again after a
    failure cannot double count anything.
    """

    def __init__(
        self,
        beacon: BeaconClient,
        rpc: ExecutionRPCClient,
        tracked: AbstractSet[int],
        max_effective_balance: Decimal = DEFAULT_MAX_EFFECTIVE_BALANCE,
        max_attempts: int = DEFAULT_MAX_ATTEMPTS,
        backoff_base: float = DEFAULT_BACKOFF_BASE,
    ):
        self.beacon = beacon
        self.rpc = rpc
        self.tracked = tracked
        self.max_effective_balance_gwei = int(Decimal(max_effective_balance) * GWEI_PER_COIN)
        self.max_attempts = max_attempts
        self.backoff_base = backoff_base

    async def process(self, slot: int) -> SlotDelta:
        delta = SlotDelta(slot)
        try:
            block = await self.beacon.get_block(slot)
        except BlockNotFoundError:
            delta.anomalies.append(BLOCK_NOT_FOUND)
            return delta

        self._collect_withdrawals(block, delta)

        if block.proposer_index in self.tracked:
            await self._collect_priority_fees(block, delta)

        return delta

    def _collect_withdrawals(self, block: BeaconBlockSummary, delta: SlotDelta) -> None:
        for withdrawal in block.withdrawals:
            if withdrawal.validator_index not in self.tracked:
                continue
            amount = strip_principal(withdrawal.amount, self.max_effective_balance_gwei)
            delta.add(
                withdrawal.validator_index,
                withdrawal.address,
                PaymentCategory.CONSENSUS,
                amount,
            )
            logger.debug(
                f"Slot {delta.slot}: withdrawal of {withdrawal.amount} gwei for "
                f"validator {withdrawal.validator_index}, credited {amount}"
            )

    async def _collect_priority_fees(self, block: BeaconBlockSummary, delta: SlotDelta) -> None:
        payload = block.execution_payload
        if payload is None:
            logger.warning(
                f"Slot {delta.slot} proposed by tracked validator {block.proposer_index} "
                "has no execution payload"
            )
            delta.anomalies.append(MISSING_EXECUTION_PAYLOAD)
            return

        try:
            execution_block = await self.rpc.get_block_by_number(payload.block_number)
        except ExecutionBlockNotFoundError:
            logger.warning(
                f"Slot {delta.slot}: execution block {payload.block_number} not found"
            )
            delta.anomalies.append(EXECUTION_BLOCK_NOT_FOUND)
            return

        tips = await self._sum_tips(execution_block, delta)
        delta.add(
            block.proposer_index,
            payload.fee_recipient,
            PaymentCategory.EXECUTION,
            tips,
        )
        logger.debug(
            f"Slot {delta.slot}: block {payload.block_number} paid {tips} wei in tips "
            f"to {payload.fee_recipient}"
        )

    async def _sum_tips(self, block: ExecutionBlock, delta: SlotDelta) -> int:
        total = 0
        for tx in block.transactions:
            tip = tx.effective_tip(block.base_fee_per_gas)
            if tip == 0:
                continue
            try:
                receipt = await retry_async(
                    lambda: self.rpc.get_transaction_receipt(tx.hash),
                    max_attempts=self.max_attempts,
                    backoff_base=self.backoff_base,
                    description=f"receipt {tx.hash}",
                )
            except ReceiptNotFoundError:
                logger.warning(f"Slot {delta.slot}: receipt not found for {tx.hash}")
                delta.anomalies.append(RECEIPT_NOT_FOUND)
                continue
            total += tip * receipt.gas_used
        return total
