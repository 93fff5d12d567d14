"""Execution JSON-RPC data types."""

from dataclasses import dataclass, field
from typing import Optional

from ..exceptions import MalformedResponseError, ResourceNotFoundError


class RPCError(Exception):
    """Error returned by the execution JSON-RPC endpoint."""

    def __init__(self, code: int, message: str):
        self.code = code
        self.message = message
        super().__init__(f"RPC error {code}: {message}")


class ExecutionBlockNotFoundError(ResourceNotFoundError):
    """The execution node returned no block for the requested number."""


class ReceiptNotFoundError(ResourceNotFoundError):
    """The execution node returned no receipt for the requested transaction."""


def _quantity(value: Optional[str]) -> Optional[int]:
    if value is None:
        return None
    return int(value, 16)


@dataclass
class ExecutionTransaction:
    """Fee fields of a transaction.

    EIP-1559 transactions carry ``max_priority_fee_per_gas`` and
    ``max_fee_per_gas``; legacy ones only ``gas_price``.
    """

    hash: str
    max_priority_fee_per_gas: Optional[int] = None
    max_fee_per_gas: Optional[int] = None
    gas_price: Optional[int] = None

    def effective_tip(self, base_fee_per_gas: int) -> int:
        """Priority fee paid to the proposer per unit of gas, in wei."""
        if self.max_fee_per_gas is not None and self.max_priority_fee_per_gas is not None:
            tip = min(self.max_priority_fee_per_gas, self.max_fee_per_gas - base_fee_per_gas)
        elif self.gas_price is not None:
            tip = self.gas_price - base_fee_per_gas
        else:
            tip = 0
        return max(tip, 0)

    @classmethod
    def from_dict(cls, data: dict) -> "ExecutionTransaction":
        return cls(
            hash=data["hash"],
            max_priority_fee_per_gas=_quantity(data.get("maxPriorityFeePerGas")),
            max_fee_per_gas=_quantity(data.get("maxFeePerGas")),
            gas_price=_quantity(data.get("gasPrice")),
        )


@dataclass
class ExecutionBlock:
    """Result of ``eth_getBlockByNumber`` with full transactions."""

    number: int
    base_fee_per_gas: int
    transactions: list[ExecutionTransaction] = field(default_factory=list)

    @classmethod
    def from_dict(cls, data: dict) -> "ExecutionBlock":
        try:
            return cls(
                number=int(data["number"], 16),
                base_fee_per_gas=_quantity(data.get("baseFeePerGas")) or 0,
                transactions=[
                    ExecutionTransaction.from_dict(tx) for tx in data.get("transactions") or []
                ],
            )
        except (KeyError, TypeError, ValueError) as e:
            raise MalformedResponseError(f"Invalid execution block: {e}") from e


@dataclass
class TransactionReceipt:
    """The part of ``eth_getTransactionReceipt`` used for fee accounting."""

    transaction_hash: str
    gas_used: int

    @classmethod
    def from_dict(cls, data: dict) -> "TransactionReceipt":
        try:
            return cls(
                transaction_hash=data["transactionHash"],
                gas_used=int(data["gasUsed"], 16),
            )
        except (KeyError, TypeError, ValueError) as e:
            raise MalformedResponseError(f"Invalid transaction receipt: {e}") from e
