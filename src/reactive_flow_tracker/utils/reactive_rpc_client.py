"""
JSON-RPC client for the Reactive Network.

Wraps the three ``rnk_*`` methods needed to follow an event through a
Reactive VM: address mapping, time-pivoted transaction history and callback
lookup. Every call carries a fresh request id.
"""

import logging
import uuid
from typing import Any

import httpx

from ..config import ReactiveNetworkConfig
from ..errors import FlowTimeoutError, NotFoundError, RpcError
from ..models import AddressMapping, CallbackTransaction, ReactiveTransaction
from .retry import RetryPolicy, with_retry

logger = logging.getLogger(__name__)


class ReactiveRpcClient:
    """Client for the Reactive Network (RNK) JSON-RPC API."""

    def __init__(
        self,
        config: ReactiveNetworkConfig,
        request_timeout: float = 30.0,
        retry_policy: RetryPolicy | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        """
        Initialize the RPC client.

        Args:
            config: Reactive Network endpoint configuration
            request_timeout: Timeout in seconds for each HTTP request
            retry_policy: Retry policy for transient failures
            transport: Optional HTTP transport (tests inject a mock transport)
        """
        self.rpc_url = config.rpc_url
        self.request_timeout = request_timeout
        self.retry_policy = retry_policy or RetryPolicy()
        self.transport = transport

    @staticmethod
    def _new_request_id() -> str:
        return uuid.uuid4().hex

    async def _post(self, payload: dict[str, Any]) -> httpx.Response:
        async with httpx.AsyncClient(transport=self.transport, timeout=self.request_timeout) as client:
            response = await client.post(self.rpc_url, json=payload)
            response.raise_for_status()
            return response

    async def call(self, method: str, params: list[Any]) -> Any:
        """
        Invoke an RPC method and return its ``result``.

        Args:
            method: RPC method name
            params: Positional parameters

        Returns:
            The ``result`` member of the response

        Raises:
            RpcError: On transport failure, malformed response or RPC error
            FlowTimeoutError: If the request timed out on every attempt
        """
        request_id = self._new_request_id()
        payload = {
            "jsonrpc": "2.0",
            "id": request_id,
            "method": method,
            "params": params,
        }
        logger.debug(f"RPC {method} id={request_id} params={params}")

        try:
            response: httpx.Response = await with_retry(
                self._post, payload, policy=self.retry_policy, operation=method
            )
        except httpx.TimeoutException as e:
            raise FlowTimeoutError(f"{method} timed out after {self.request_timeout}s") from e
        except httpx.HTTPError as e:
            raise RpcError(f"{method} request failed: {e}") from e

        try:
            body = response.json()
        except ValueError as e:
            raise RpcError(f"{method} returned invalid JSON") from e

        match body:
            case {"error": {"message": message, **rest}}:
                raise RpcError(f"{method} failed: {message}", code=rest.get("code"))
            case {"error": error} if error:
                raise RpcError(f"{method} failed: {error}")
            case {"id": response_id} if response_id is not None and response_id != request_id:
                raise RpcError(f"{method} response id {response_id!r} does not match request {request_id!r}")
            case dict() if "result" in body:
                return body["result"]
            case _:
                raise RpcError(f"{method} returned a malformed response")

    async def get_address_mapping(self, address: str) -> AddressMapping:
        """
        Resolve the Reactive VM that runs a watched contract.

        Raises:
            NotFoundError: If the address has no RVM
            RpcError: On RPC failure or malformed mapping
        """
        result = await self.call("rnk_getRnkAddressMapping", [address])
        if not result or (isinstance(result, dict) and not result.get("rvmId")):
            raise NotFoundError(f"RVM id not found for {address}")

        try:
            return AddressMapping.from_api(result)
        except ValueError as e:
            raise RpcError(f"Malformed address mapping for {address}: {e}") from e

    async def get_transactions_batch(
        self,
        rvm_id: str,
        pivot_time: int,
        batch_size: int,
    ) -> list[ReactiveTransaction]:
        """
        Fetch up to ``batch_size`` RVM transactions anchored at ``pivot_time``.

        Returns:
            Transactions in the order the network returned them
        """
        result = await self.call("rnk_getTransactions", [rvm_id, pivot_time, batch_size])
        if result is None:
            return []
        if not isinstance(result, list):
            raise RpcError(f"Malformed transaction batch for {rvm_id} at {pivot_time}")

        try:
            return [ReactiveTransaction.from_api(entry) for entry in result]
        except ValueError as e:
            raise RpcError(f"Malformed transaction in batch for {rvm_id} at {pivot_time}: {e}") from e

    async def get_callback_transactions(self, rvm_id: str, ref_tx_hash: str) -> list[CallbackTransaction]:
        """
        Fetch the callbacks an RVM transaction produced.

        A single object result is treated as a one-element list.
        """
        result = await self.call("rnk_getCallbackTransaction", [rvm_id, ref_tx_hash])
        match result:
            case None:
                return []
            case dict():
                entries = [result]
            case list():
                entries = result
            case _:
                raise RpcError(f"Malformed callback list for {ref_tx_hash}")

        try:
            return [CallbackTransaction.from_api(entry) for entry in entries]
        except ValueError as e:
            raise RpcError(f"Malformed callback for {ref_tx_hash}: {e}") from e
