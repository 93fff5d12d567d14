"""JSON-RPC client for reading blocks and receipts from an execution node."""

import logging
import time
from typing import Any, Optional

import aiohttp
import jwt

from .. import metrics
from ..exceptions import MalformedResponseError
from .types import (
    ExecutionBlock,
    ExecutionBlockNotFoundError,
    ReceiptNotFoundError,
    RPCError,
    TransactionReceipt,
)

logger = logging.getLogger(__name__)

DEFAULT_REQUEST_TIMEOUT = 30.0


class ExecutionRPCClient:
    """Client for the standard ``eth_*`` JSON-RPC namespace.

    Public endpoints need no authentication. When a JWT secret is given, each
    request carries an HS256 bearer token the same way the Engine API does.
    """

    def __init__(
        self,
        url: str,
        jwt_secret: bytes = b"",
        timeout: float = DEFAULT_REQUEST_TIMEOUT,
    ):
        self.url = url
        self.jwt_secret = jwt_secret
        self.timeout = timeout
        self._session: Optional[aiohttp.ClientSession] = None
        self._request_id = 0

    async def _ensure_session(self) -> aiohttp.ClientSession:
        """Ensure we have an active session."""
        if self._session is None or self._session.closed:
            self._session = aiohttp.ClientSession(
                timeout=aiohttp.ClientTimeout(total=self.timeout),
            )
        return self._session

    def _create_jwt_token(self) -> str:
        """Create a JWT token for authentication."""
        now = int(time.time())
        payload = {"iat": now}
        return jwt.encode(payload, self.jwt_secret, algorithm="HS256")

    async def _call(self, method: str, params: list) -> Any:
        """Make a JSON-RPC call and return its ``result``."""
        session = await self._ensure_session()
        self._request_id += 1

        headers = {"Content-Type": "application/json"}
        if self.jwt_secret:
            headers["Authorization"] = f"Bearer {self._create_jwt_token()}"

        payload = {
            "jsonrpc": "2.0",
            "method": method,
            "params": params,
            "id": self._request_id,
        }

        start_time = time.time()
        error_type = None

        try:
            async with session.post(
                self.url, json=payload, headers=headers
            ) as response:
                if response.status != 200:
                    error_type = str(response.status)
                    text = await response.text()
                    raise RPCError(response.status, text)
                try:
                    data = await response.json(content_type=None)
                except ValueError as e:
                    error_type = "decode_error"
                    raise MalformedResponseError(f"Invalid JSON from {method}: {e}") from e

                if not isinstance(data, dict):
                    error_type = "decode_error"
                    raise MalformedResponseError(f"Unexpected {method} response: {data!r}")
                if "error" in data:
                    error = data["error"] or {}
                    if not isinstance(error, dict):
                        # Some providers send a bare string, e.g. on rate limiting
                        error_type = "decode_error"
                        raise MalformedResponseError(f"Unexpected {method} error: {error!r}")
                    error_type = str(error.get("code", "unknown"))
                    raise RPCError(error.get("code", -1), error.get("message", ""))
                return data.get("result")
        except aiohttp.ClientError as e:
            error_type = "connection_error"
            logger.debug(f"RPC connection error on {method}: {e}")
            raise
        finally:
            latency = time.time() - start_time
            metrics.record_rpc_call(method, latency, error_type)

    async def get_block_by_number(self, number: int) -> ExecutionBlock:
        """Fetch a block with full transaction objects."""
        result = await self._call("eth_getBlockByNumber", [hex(number), True])
        if result is None:
            raise ExecutionBlockNotFoundError(f"Execution block not found: {number}")
        return ExecutionBlock.from_dict(result)

    async def get_transaction_receipt(self, tx_hash: str) -> TransactionReceipt:
        """Fetch the receipt for a mined transaction."""
        result = await self._call("eth_getTransactionReceipt", [tx_hash])
        if result is None:
            raise ReceiptNotFoundError(f"Receipt not found: {tx_hash}")
        return TransactionReceipt.from_dict(result)

    async def close(self) -> None:
        """Close the client session."""
        if self._session and not self._session.closed:
            await self._session.close()
            self._session = None
