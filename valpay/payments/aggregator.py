"""Synchronized accumulation of payment totals.

Totals are kept in integer sub-units: gwei for consensus withdrawals and wei
for execution priority fees. Whole-coin values are only derived when a
report is built.
"""

import threading
from dataclasses import dataclass, field
from decimal import Decimal
from enum import Enum
from typing import Iterable, Optional

GWEI_PER_COIN = 10**9
WEI_PER_COIN = 10**18


class PaymentCategory(str, Enum):
    """Kind of payment credited to a validator."""

    CONSENSUS = "consensus"
    EXECUTION = "execution"

    @property
    def units_per_coin(self) -> int:
        if self is PaymentCategory.CONSENSUS:
            return GWEI_PER_COIN
        return WEI_PER_COIN

    def to_coins(self, amount: int) -> Decimal:
        """Convert an integer sub-unit amount into whole coins."""
        return Decimal(amount) / Decimal(self.units_per_coin)


@dataclass
class ValidatorRecord:
    """A tracked validator and its running totals."""

    index: int
    pubkey: str
    withdrawal_address: Optional[str] = None
    consensus_total_gwei: int = 0
    execution_total_wei: int = 0

    @property
    def consensus_total(self) -> Decimal:
        return PaymentCategory.CONSENSUS.to_coins(self.consensus_total_gwei)

    @property
    def execution_total(self) -> Decimal:
        return PaymentCategory.EXECUTION.to_coins(self.execution_total_wei)


@dataclass(frozen=True)
class Credit:
    """One payment to a validator, paid out to ``address``."""

    validator_index: int
    address: str
    category: PaymentCategory
    amount: int


@dataclass
class SlotDelta:
    """Everything one slot contributes, not yet applied to the totals."""

    slot: int
    credits: list[Credit] = field(default_factory=list)
    anomalies: list[str] = field(default_factory=list)

    def add(self, validator_index: int, address: str, category: PaymentCategory, amount: int) -> None:
        if amount < 0:
            raise ValueError(f"Negative {category.value} credit for slot {self.slot}: {amount}")
        self.credits.append(Credit(validator_index, address.lower(), category, amount))

    @property
    def is_empty(self) -> bool:
        return not self.credits and not self.anomalies


class Aggregator:
    """Address-keyed and validator-keyed payment totals.

    Every mutation happens under a single lock so concurrent credits never
    lose updates, whether they come from one event loop or several threads.
    """

    def __init__(self, validators: Iterable[ValidatorRecord]):
        self._validators = {v.index: v for v in validators}
        self._totals: dict[PaymentCategory, dict[str, int]] = {
            category: {} for category in PaymentCategory
        }
        self._lock = threading.Lock()

    @property
    def validators(self) -> dict[int, ValidatorRecord]:
        return self._validators

    def _credit_address(self, address: str, category: PaymentCategory, amount: int) -> None:
        totals = self._totals[category]
        key = address.lower()
        totals[key] = totals.get(key, 0) + amount

    def _credit_validator(self, index: int, category: PaymentCategory, amount: int) -> None:
        record = self._validators[index]
        if category is PaymentCategory.CONSENSUS:
            record.consensus_total_gwei += amount
        else:
            record.execution_total_wei += amount

    def credit(self, address: str, category: PaymentCategory, amount: int) -> None:
        """Add ``amount`` sub-units to ``address`` for ``category``."""
        if amount < 0:
            raise ValueError(f"Credit amount must be non-negative, got {amount}")
        with self._lock:
            self._credit_address(address, category, amount)

    def credit_validator(self, index: int, category: PaymentCategory, amount: int) -> None:
        """Add ``amount`` sub-units to validator ``index`` for ``category``."""
        if amount < 0:
            raise ValueError(f"Credit amount must be non-negative, got {amount}")
        if index not in self._validators:
            raise KeyError(f"Validator {index} is not tracked")
        with self._lock:
            self._credit_validator(index, category, amount)

    def commit(self, delta: SlotDelta) -> None:
        """Apply every credit of a slot at once.

        Both views are updated under one lock acquisition, so they agree at
        any point another task can observe them.
        """
        for c in delta.credits:
            if c.validator_index not in self._validators:
                raise KeyError(f"Validator {c.validator_index} is not tracked")
        with self._lock:
            for c in delta.credits:
                self._credit_address(c.address, c.category, c.amount)
                self._credit_validator(c.validator_index, c.category, c.amount)

    def totals(self, category: PaymentCategory) -> dict[str, int]:
        """Snapshot of the per-address sub-unit totals for ``category``."""
        with self._lock:
            return dict(self._totals[category])

    def totals_in_coins(self, category: PaymentCategory) -> dict[str, Decimal]:
        return {
            address: category.to_coins(amount)
            for address, amount in self.totals(category).items()
        }
