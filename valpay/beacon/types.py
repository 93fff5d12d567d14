"""Beacon API response types."""

from dataclasses import dataclass, field
from typing import Optional

from ..exceptions import MalformedResponseError

ETH1_ADDRESS_WITHDRAWAL_PREFIX = 0x01
COMPOUNDING_WITHDRAWAL_PREFIX = 0x02

# 0x02 (compounding, EIP-7251) credentials carry an execution address in the
# same trailing 20 bytes as 0x01 ones
EXECUTION_ADDRESS_PREFIXES = (
    ETH1_ADDRESS_WITHDRAWAL_PREFIX,
    COMPOUNDING_WITHDRAWAL_PREFIX,
)


def _hex_to_bytes(value: str) -> bytes:
    return bytes.fromhex(value[2:] if value.startswith("0x") else value)


def withdrawal_address_from_credentials(credentials: bytes) -> Optional[str]:
    """Return the execution address encoded in withdrawal credentials, if any."""
    if len(credentials) != 32 or credentials[0] not in EXECUTION_ADDRESS_PREFIXES:
        return None
    return "0x" + credentials[12:].hex()


@dataclass
class Genesis:
    """Genesis information."""

    genesis_time: int

    @classmethod
    def from_dict(cls, data: dict) -> "Genesis":
        try:
            return cls(genesis_time=int(data["genesis_time"]))
        except (KeyError, TypeError, ValueError) as e:
            raise MalformedResponseError(f"Invalid genesis response: {e}") from e


@dataclass
class ValidatorInfo:
    """A validator as returned by the state validators endpoint."""

    index: int
    pubkey: str
    withdrawal_credentials: bytes

    @property
    def withdrawal_address(self) -> Optional[str]:
        return withdrawal_address_from_credentials(self.withdrawal_credentials)

    @classmethod
    def from_dict(cls, data: dict) -> "ValidatorInfo":
        try:
            validator = data["validator"]
            return cls(
                index=int(data["index"]),
                pubkey=validator["pubkey"].lower(),
                withdrawal_credentials=_hex_to_bytes(validator["withdrawal_credentials"]),
            )
        except (KeyError, TypeError, ValueError, AttributeError) as e:
            raise MalformedResponseError(f"Invalid validator response: {e}") from e


@dataclass
class Withdrawal:
    """A consensus-layer withdrawal carried in an execution payload."""

    index: int
    validator_index: int
    address: str
    amount: int

    @classmethod
    def from_dict(cls, data: dict) -> "Withdrawal":
        return cls(
            index=int(data.get("index", 0)),
            validator_index=int(data["validator_index"]),
            address=data["address"].lower(),
            amount=int(data["amount"]),
        )


@dataclass
class ExecutionPayloadSummary:
    """The execution payload fields needed for payment accounting."""

    block_number: int
    fee_recipient: str
    withdrawals: list[Withdrawal] = field(default_factory=list)

    @classmethod
    def from_dict(cls, data: dict) -> "ExecutionPayloadSummary":
        return cls(
            block_number=int(data["block_number"]),
            fee_recipient=data["fee_recipient"].lower(),
            withdrawals=[Withdrawal.from_dict(w) for w in data.get("withdrawals") or []],
        )


@dataclass
class BeaconBlockSummary:
    """A proposed beacon block reduced to proposer and execution payload."""

    slot: int
    proposer_index: int
    execution_payload: Optional[ExecutionPayloadSummary] = None

    @property
    def withdrawals(self) -> list[Withdrawal]:
        if self.execution_payload is None:
            return []
        return self.execution_payload.withdrawals

    @classmethod
    def from_dict(cls, data: dict) -> "BeaconBlockSummary":
        """Decode the ``data`` object of a ``/eth/v2/beacon/blocks`` response."""
        try:
            message = data["message"]
            body = message.get("body") or {}
            payload = body.get("execution_payload")
            return cls(
                slot=int(message["slot"]),
                proposer_index=int(message["proposer_index"]),
                execution_payload=(
                    ExecutionPayloadSummary.from_dict(payload) if payload else None
                ),
            )
        except (KeyError, TypeError, ValueError, AttributeError) as e:
            raise MalformedResponseError(f"Invalid block response: {e}") from e
