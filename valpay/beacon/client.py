"""Beacon API client for reading genesis, validators and proposed blocks."""

import logging
import time
from typing import Optional

import aiohttp

from .. import metrics
from ..exceptions import MalformedResponseError
from .exceptions import BeaconAPIError, BlockNotFoundError, ValidatorNotFoundError
from .types import BeaconBlockSummary, Genesis, ValidatorInfo

logger = logging.getLogger(__name__)

DEFAULT_REQUEST_TIMEOUT = 30.0

# Beacon nodes answer 400 for slots or ids they cannot parse and 404 for
# ones they know nothing about. Both mean "nothing there".
NOT_FOUND_STATUSES = (400, 404)


class BeaconClient:
    """Client for any conformant Beacon API."""

    def __init__(self, base_url: str, timeout: float = DEFAULT_REQUEST_TIMEOUT):
        self.base_url = base_url.rstrip("/")
        self.timeout = timeout
        self._session: Optional[aiohttp.ClientSession] = None

    async def _ensure_session(self) -> aiohttp.ClientSession:
        if self._session is None or self._session.closed:
            self._session = aiohttp.ClientSession(
                timeout=aiohttp.ClientTimeout(total=self.timeout),
            )
        return self._session

    async def _get_data(self, endpoint: str, path: str) -> dict:
        """GET a Beacon API path and return its ``data`` member.

        404/400 responses are raised as ``BeaconAPIError`` with the status
        preserved so callers can map them onto their own not-found errors.
        """
        session = await self._ensure_session()
        url = f"{self.base_url}{path}"

        start_time = time.time()
        error_type = None
        try:
            async with session.get(
                url, headers={"Accept": "application/json"}
            ) as response:
                if response.status != 200:
                    error_type = str(response.status)
                    text = await response.text()
                    raise BeaconAPIError(response.status, text)
                try:
                    body = await response.json(content_type=None)
                except ValueError as e:
                    error_type = "decode_error"
                    raise MalformedResponseError(f"Invalid JSON from {path}: {e}") from e
        except aiohttp.ClientError as e:
            error_type = "connection_error"
            logger.debug(f"Beacon API connection error on {path}: {e}")
            raise
        finally:
            metrics.record_beacon_api_call(endpoint, time.time() - start_time, error_type)

        if not isinstance(body, dict) or "data" not in body:
            raise MalformedResponseError(f"Missing data in response from {path}")
        return body["data"]

    async def get_genesis(self) -> Genesis:
        """Get genesis information."""
        data = await self._get_data("genesis", "/eth/v1/beacon/genesis")
        return Genesis.from_dict(data)

    async def get_validator(
        self, validator_id: str, state_id: str = "finalized"
    ) -> ValidatorInfo:
        """Look up a validator by index or public key."""
        try:
            data = await self._get_data(
                "validator",
                f"/eth/v1/beacon/states/{state_id}/validators/{validator_id}",
            )
        except BeaconAPIError as e:
            if e.status in NOT_FOUND_STATUSES:
                raise ValidatorNotFoundError(
                    f"Validator not found: {validator_id}", status=e.status
                ) from e
            raise
        return ValidatorInfo.from_dict(data)

    async def get_block(self, slot: int) -> BeaconBlockSummary:
        """Fetch the block proposed at ``slot``.

        Raises ``BlockNotFoundError`` for missed or not-yet-produced slots.
        """
        try:
            data = await self._get_data("block", f"/eth/v2/beacon/blocks/{slot}")
        except BeaconAPIError as e:
            if e.status in NOT_FOUND_STATUSES:
                raise BlockNotFoundError(
                    f"Block not found: {slot}", status=e.status
                ) from e
            raise
        return BeaconBlockSummary.from_dict(data)

    async def close(self) -> None:
        """Close the client and cleanup resources."""
        if self._session and not self._session.closed:
            await self._session.close()
            self._session = None
