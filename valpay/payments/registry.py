"""Resolve validator identifiers into canonical validator records."""

import logging
from dataclasses import dataclass
from typing import Iterable, Optional

from ..beacon import BeaconClient
from ..exceptions import ResourceNotFoundError
from .aggregator import ValidatorRecord
from .exceptions import NoValidatorsResolvedError, RetryExhaustedError
from .retry import DEFAULT_BACKOFF_BASE, DEFAULT_MAX_ATTEMPTS, retry_async

logger = logging.getLogger(__name__)


@dataclass
class WithdrawalLookup:
    """Outcome of looking up one identifier's withdrawal address."""

    identifier: str
    index: Optional[int] = None
    withdrawal_address: Optional[str] = None
    error: Optional[str] = None


def normalize_identifier(identifier: str) -> str:
    """Strip whitespace; public keys are lower-cased and ``0x`` prefixed."""
    value = identifier.strip()
    if value.isdigit():
        return str(int(value))
    value = value.lower()
    if not value.startswith("0x"):
        value = "0x" + value
    return value


class ValidatorRegistry:
    """The set of validators a scan tracks, keyed by validator index."""

    def __init__(
        self,
        beacon: BeaconClient,
        state_id: str = "finalized",
        max_attempts: int = DEFAULT_MAX_ATTEMPTS,
        backoff_base: float = DEFAULT_BACKOFF_BASE,
    ):
        self.beacon = beacon
        self.state_id = state_id
        self.max_attempts = max_attempts
        self.backoff_base = backoff_base
        self._records: dict[int, ValidatorRecord] = {}
        self._indices: frozenset[int] = frozenset()

    @property
    def records(self) -> list[ValidatorRecord]:
        return [self._records[i] for i in sorted(self._records)]

    @property
    def indices(self) -> frozenset[int]:
        return self._indices

    def __contains__(self, index: int) -> bool:
        return index in self._indices

    def __len__(self) -> int:
        return len(self._records)

    async def _fetch(self, identifier: str):
        return await retry_async(
            lambda: self.beacon.get_validator(identifier, self.state_id),
            max_attempts=self.max_attempts,
            backoff_base=self.backoff_base,
            description=f"validator {identifier}",
        )

    async def resolve(self, identifiers: Iterable[str]) -> list[ValidatorRecord]:
        """Look up every identifier and build one record per validator index.

        Identifiers that cannot be resolved are logged and skipped. Raises
        ``NoValidatorsResolvedError`` if nothing resolves.
        """
        records: dict[int, ValidatorRecord] = {}
        for raw in identifiers:
            identifier = normalize_identifier(raw)
            if not identifier or identifier == "0x":
                logger.warning(f"Skipping empty validator identifier: {raw!r}")
                continue
            try:
                info = await self._fetch(identifier)
            except ResourceNotFoundError:
                logger.error(f"Validator {identifier} not found, skipping")
                continue
            except RetryExhaustedError as e:
                logger.error(f"Failed to fetch validator {identifier}: {e.last_error!r}")
                continue

            if info.index in records:
                logger.debug(f"Identifier {identifier} resolves to already tracked validator {info.index}")
                continue
            records[info.index] = ValidatorRecord(
                index=info.index,
                pubkey=info.pubkey,
                withdrawal_address=info.withdrawal_address,
            )
            logger.info(
                f"Tracking validator {info.index} ({info.pubkey[:18]}...), "
                f"withdrawal address: {info.withdrawal_address or 'none'}"
            )

        if not records:
            raise NoValidatorsResolvedError("No valid validators found")

        self._records = records
        self._indices = frozenset(records)
        return self.records

    async def lookup_withdrawal_addresses(
        self, identifiers: Iterable[str]
    ) -> list[WithdrawalLookup]:
        """Report the execution withdrawal address of each identifier.

        Unlike ``resolve`` this keeps one entry per input identifier and
        reports failures in the entry instead of skipping them.
        """
        results = []
        for raw in identifiers:
            identifier = normalize_identifier(raw)
            try:
                info = await self._fetch(identifier)
            except ResourceNotFoundError:
                results.append(WithdrawalLookup(raw, error="validator not found"))
                continue
            except RetryExhaustedError as e:
                results.append(WithdrawalLookup(raw, error=str(e.last_error)))
                continue
            error = None
            if info.withdrawal_address is None:
                error = "withdrawal credentials do not encode an execution address"
            results.append(
                WithdrawalLookup(
                    raw,
                    index=info.index,
                    withdrawal_address=info.withdrawal_address,
                    error=error,
                )
            )
        return results
