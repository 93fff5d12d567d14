"""Shared fixtures: in-memory beacon and execution query services."""

from collections import Counter
from typing import Optional

import pytest

from valpay.beacon import BeaconAPIError, BlockNotFoundError, ValidatorNotFoundError
from valpay.beacon.types import (
    BeaconBlockSummary,
    ExecutionPayloadSummary,
    Genesis,
    ValidatorInfo,
    Withdrawal,
)
from valpay.config import ScanSettings
from valpay.execution import (
    ExecutionBlock,
    ExecutionBlockNotFoundError,
    ExecutionTransaction,
    ReceiptNotFoundError,
    RPCError,
    TransactionReceipt,
)

ADDRESS_A = "0x" + "aa" * 20
ADDRESS_B = "0x" + "bb" * 20
FEE_RECIPIENT = "0x" + "cc" * 20


def eth1_credentials(address: str) -> bytes:
    return bytes([0x01]) + bytes(11) + bytes.fromhex(address[2:])


def bls_credentials() -> bytes:
    return bytes([0x00]) + bytes(31)


def make_validator(index: int, address: Optional[str] = ADDRESS_A) -> ValidatorInfo:
    credentials = eth1_credentials(address) if address else bls_credentials()
    return ValidatorInfo(
        index=index,
        pubkey="0x" + f"{index:02x}" * 48,
        withdrawal_credentials=credentials,
    )


def make_block(
    slot: int,
    proposer: int,
    withdrawals=(),
    block_number: Optional[int] = None,
    fee_recipient: str = FEE_RECIPIENT,
    with_payload: bool = True,
) -> BeaconBlockSummary:
    payload = None
    if with_payload:
        payload = ExecutionPayloadSummary(
            block_number=slot + 1000 if block_number is None else block_number,
            fee_recipient=fee_recipient,
            withdrawals=[
                Withdrawal(index=i, validator_index=v, address=a.lower(), amount=amt)
                for i, (v, a, amt) in enumerate(withdrawals)
            ],
        )
    return BeaconBlockSummary(slot=slot, proposer_index=proposer, execution_payload=payload)


class FakeBeacon:
    """Beacon query service backed by dictionaries.

    ``failures`` maps a slot to how many times ``get_block`` fails with a
    server error before answering.
    """

    def __init__(self, genesis_time: int = 0):
        self.genesis_time = genesis_time
        self.validators: dict[str, ValidatorInfo] = {}
        self.blocks: dict[int, BeaconBlockSummary] = {}
        self.failures: Counter = Counter()
        self.genesis_failures = 0
        self.block_calls: Counter = Counter()
        self.validator_calls: Counter = Counter()

    def add_validator(self, info: ValidatorInfo, *aliases: str) -> None:
        self.validators[str(info.index)] = info
        self.validators[info.pubkey] = info
        for alias in aliases:
            self.validators[alias] = info

    async def get_genesis(self) -> Genesis:
        if self.genesis_failures:
            self.genesis_failures -= 1
            raise BeaconAPIError(503, "unavailable")
        return Genesis(genesis_time=self.genesis_time)

    async def get_validator(self, validator_id: str, state_id: str = "finalized") -> ValidatorInfo:
        self.validator_calls[validator_id] += 1
        if validator_id not in self.validators:
            raise ValidatorNotFoundError(f"Validator not found: {validator_id}")
        return self.validators[validator_id]

    async def get_block(self, slot: int) -> BeaconBlockSummary:
        self.block_calls[slot] += 1
        if self.failures[slot] > 0:
            self.failures[slot] -= 1
            raise BeaconAPIError(500, "internal error")
        if slot not in self.blocks:
            raise BlockNotFoundError(f"Block not found: {slot}")
        return self.blocks[slot]

    async def close(self) -> None:
        pass


class FakeRPC:
    """Execution query service backed by dictionaries."""

    def __init__(self):
        self.blocks: dict[int, ExecutionBlock] = {}
        self.receipts: dict[str, TransactionReceipt] = {}
        self.block_failures: Counter = Counter()
        self.receipt_failures: Counter = Counter()
        self.receipt_calls: Counter = Counter()

    def add_block(self, number: int, base_fee: int, transactions) -> None:
        """``transactions`` holds ``(hash, gas_used, fee fields...)`` tuples."""
        txs = []
        for tx_hash, gas_used, fields in transactions:
            txs.append(ExecutionTransaction(hash=tx_hash, **fields))
            self.receipts[tx_hash] = TransactionReceipt(transaction_hash=tx_hash, gas_used=gas_used)
        self.blocks[number] = ExecutionBlock(number=number, base_fee_per_gas=base_fee, transactions=txs)

    async def get_block_by_number(self, number: int) -> ExecutionBlock:
        if self.block_failures[number] > 0:
            self.block_failures[number] -= 1
            raise RPCError(-32000, "header not found")
        if number not in self.blocks:
            raise ExecutionBlockNotFoundError(f"Execution block not found: {number}")
        return self.blocks[number]

    async def get_transaction_receipt(self, tx_hash: str) -> TransactionReceipt:
        self.receipt_calls[tx_hash] += 1
        if self.receipt_failures[tx_hash] > 0:
            self.receipt_failures[tx_hash] -= 1
            raise RPCError(-32000, "busy")
        if tx_hash not in self.receipts:
            raise ReceiptNotFoundError(f"Receipt not found: {tx_hash}")
        return self.receipts[tx_hash]

    async def close(self) -> None:
        pass


class RecordingObserver:
    """Collects scan events for assertions."""

    def __init__(self):
        self.progress: list[tuple[int, int]] = []
        self.anomalies: list[tuple[int, str]] = []

    def on_progress(self, processed: int, total: int) -> None:
        self.progress.append((processed, total))

    def on_anomaly(self, slot: int, reason: str) -> None:
        self.anomalies.append((slot, reason))


@pytest.fixture
def beacon():
    return FakeBeacon()


@pytest.fixture
def rpc():
    return FakeRPC()


@pytest.fixture
def observer():
    return RecordingObserver()


@pytest.fixture
def settings():
    return ScanSettings(backoff_base=0.0, concurrency=4)
