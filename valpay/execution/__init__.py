"""Execution layer JSON-RPC client."""

from .client import ExecutionRPCClient
from .types import (
    ExecutionBlock,
    ExecutionBlockNotFoundError,
    ExecutionTransaction,
    ReceiptNotFoundError,
    RPCError,
    TransactionReceipt,
)

__all__ = [
    "ExecutionRPCClient",
    "ExecutionBlock",
    "ExecutionTransaction",
    "TransactionReceipt",
    "RPCError",
    "ExecutionBlockNotFoundError",
    "ReceiptNotFoundError",
]
