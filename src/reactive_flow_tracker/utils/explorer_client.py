"""
Block explorer client for reading receipts and logs.

Talks to Etherscan-style explorer APIs (Etherscan, Polygonscan, Basescan...)
for a given chain. Provider-specific error shapes are converted into
``ExplorerError`` so callers never inspect raw response bodies.
"""

import logging
from typing import Any

import httpx

from ..config import ChainConfig
from ..errors import ExplorerError, FlowTimeoutError, NotFoundError, RateLimitError
from ..models import LogEntry, TransactionReceipt, parse_quantity
from .retry import RetryPolicy, with_retry

logger = logging.getLogger(__name__)


class ExplorerClient:
    """Read-only client for Etherscan-compatible explorer APIs."""

    NO_RECORDS_MESSAGE: str = "No records found"
    RATE_LIMIT_MARKER: str = "rate limit"

    def __init__(
        self,
        request_timeout: float = 30.0,
        retry_policy: RetryPolicy | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        """
        Initialize the explorer client.

        Args:
            request_timeout: Timeout in seconds for each HTTP request
            retry_policy: Retry policy for transient failures
            transport: Optional HTTP transport (tests inject a mock transport)
        """
        self.request_timeout = request_timeout
        self.retry_policy = retry_policy or RetryPolicy()
        self.transport = transport

    async def _send(self, chain: ChainConfig, params: dict[str, Any]) -> Any:
        async with httpx.AsyncClient(transport=self.transport, timeout=self.request_timeout) as client:
            response = await client.get(chain.explorer_api_url, params=params)
            response.raise_for_status()

        try:
            body = response.json()
        except ValueError as e:
            raise ExplorerError(f"{chain.name} explorer returned invalid JSON") from e

        # Etherscan throttles with HTTP 200 and status "0"
        if isinstance(body, dict) and body.get("status") == "0":
            if self.RATE_LIMIT_MARKER in str(body.get("result", "")).lower():
                raise RateLimitError(f"{chain.name} explorer rate limit: {body.get('result')}")
        return body

    async def _get(self, chain: ChainConfig, params: dict[str, Any], operation: str) -> Any:
        """Issue an explorer request and return its ``result`` field.

        Raises:
            ExplorerError: On transport failure, invalid JSON or a provider error
            RateLimitError: If the explorer kept throttling after every retry
            FlowTimeoutError: If the request timed out on every attempt
            NotFoundError: If the explorer reports no records
        """
        query = {**params, "apikey": chain.explorer_api_key}
        logger.debug(f"{operation} on {chain.name}: {params}")

        try:
            body = await with_retry(
                self._send,
                chain,
                query,
                policy=self.retry_policy,
                operation=f"{operation} on {chain.name}",
            )
        except httpx.TimeoutException as e:
            raise FlowTimeoutError(
                f"{operation} on {chain.name} timed out after {self.request_timeout}s"
            ) from e
        except httpx.HTTPError as e:
            raise ExplorerError(f"{operation} on {chain.name} failed: {e}") from e

        return self._unwrap(body, chain, operation)

    def _unwrap(self, body: Any, chain: ChainConfig, operation: str) -> Any:
        if not isinstance(body, dict):
            raise ExplorerError(f"{chain.name} explorer returned a malformed response")

        match body.get("error"):
            case None:
                pass
            case {"message": message, **rest}:
                code = rest.get("code")
                raise ExplorerError(f"{chain.name} explorer error{f' {code}' if code else ''}: {message}")
            case error:
                raise ExplorerError(f"{chain.name} explorer error: {error}")

        # Etherscan module endpoints signal failure with status "0"
        if body.get("status") == "0":
            message = str(body.get("message", ""))
            if message.startswith(self.NO_RECORDS_MESSAGE):
                raise NotFoundError(f"{operation}: no records found")
            raise ExplorerError(f"{chain.name} explorer error: {message} ({body.get('result')})")

        return body.get("result")

    async def fetch_transaction_receipt(self, tx_hash: str, chain: ChainConfig) -> TransactionReceipt:
        """
        Fetch a transaction receipt.

        Args:
            tx_hash: Transaction hash
            chain: Chain to query

        Returns:
            Parsed transaction receipt

        Raises:
            NotFoundError: If the transaction is unknown or not yet mined
            ExplorerError: If the explorer fails or returns a malformed receipt
        """
        result = await self._get(
            chain,
            {"module": "proxy", "action": "eth_getTransactionReceipt", "txhash": tx_hash},
            "eth_getTransactionReceipt",
        )
        if result is None:
            raise NotFoundError(f"transaction not found: {tx_hash} on {chain.name}")

        try:
            return TransactionReceipt.from_api(result)
        except ValueError as e:
            raise ExplorerError(f"Malformed receipt for {tx_hash} from {chain.name}: {e}") from e

    async def fetch_transaction_logs(self, tx_hash: str, chain: ChainConfig) -> tuple[LogEntry, ...]:
        """
        Fetch the logs emitted by a transaction, in log order.

        Raises:
            NotFoundError: If the explorer has no logs for the transaction
            ExplorerError: If the explorer fails or returns malformed logs
        """
        result = await self._get(
            chain,
            {"module": "logs", "action": "getLogs", "txhash": tx_hash},
            "getLogs",
        )
        if result is None:
            raise NotFoundError(f"no logs found for transaction {tx_hash} on {chain.name}")
        if not isinstance(result, list):
            raise ExplorerError(f"Malformed log list for {tx_hash} from {chain.name}")

        try:
            return tuple(LogEntry.from_api(entry) for entry in result)
        except ValueError as e:
            raise ExplorerError(f"Malformed log entry for {tx_hash} from {chain.name}: {e}") from e

    async def fetch_block_timestamp(self, block_number: int, chain: ChainConfig) -> int:
        """
        Fetch the Unix timestamp of a block.

        Raises:
            NotFoundError: If the block is unknown
            ExplorerError: If the explorer fails or returns a malformed block
        """
        result = await self._get(
            chain,
            {"module": "proxy", "action": "eth_getBlockByNumber", "tag": hex(block_number), "boolean": "false"},
            "eth_getBlockByNumber",
        )
        if result is None:
            raise NotFoundError(f"block {block_number} not found on {chain.name}")
        if not isinstance(result, dict) or result.get("timestamp") is None:
            raise ExplorerError(f"Malformed block {block_number} from {chain.name}")

        try:
            return parse_quantity(result["timestamp"], "timestamp")
        except ValueError as e:
            raise ExplorerError(f"Malformed block {block_number} from {chain.name}: {e}") from e
