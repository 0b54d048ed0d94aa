#!/usr/bin/env python3
"""Tests for the block explorer client."""

import httpx
import pytest

from reactive_flow_tracker.config import ChainConfig
from reactive_flow_tracker.errors import ExplorerError, FlowTimeoutError, NotFoundError, RateLimitError
from reactive_flow_tracker.utils.explorer_client import ExplorerClient
from reactive_flow_tracker.utils.retry import RetryPolicy

TX_HASH = "0x" + "ab" * 32
TOPIC = "0x" + "cd" * 32
NO_WAIT = RetryPolicy(max_retries=1, base_delay=0, jitter=False)

CHAIN = ChainConfig(
    chain_id=11155111,
    name="Ethereum Sepolia",
    rpc_url="",
    explorer_url="https://sepolia.etherscan.io",
    explorer_api_url="https://api-sepolia.etherscan.io/api",
    explorer_api_key="test-key",
)

RECEIPT = {
    "transactionHash": TX_HASH,
    "status": "0x1",
    "blockNumber": "0x10",
    "from": "0x1111111111111111111111111111111111111111",
    "to": "0x2222222222222222222222222222222222222222",
    "logs": [],
}


class FakeExplorer:
    """Records requests and answers them from a queue of responses."""

    def __init__(self, *responses):
        self.responses = list(responses)
        self.requests: list[httpx.Request] = []

    def __call__(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        response = self.responses.pop(0) if len(self.responses) > 1 else self.responses[0]
        if isinstance(response, Exception):
            raise response
        if isinstance(response, httpx.Response):
            return response
        return httpx.Response(200, json=response)

    def client(self, retry_policy=NO_WAIT) -> ExplorerClient:
        return ExplorerClient(retry_policy=retry_policy, transport=httpx.MockTransport(self))


class TestFetchTransactionReceipt:
    """Tests for eth_getTransactionReceipt."""

    @pytest.mark.asyncio
    async def test_request_parameters(self):
        explorer = FakeExplorer({"jsonrpc": "2.0", "id": 1, "result": RECEIPT})

        receipt = await explorer.client().fetch_transaction_receipt(TX_HASH, CHAIN)

        params = explorer.requests[0].url.params
        assert explorer.requests[0].url.host == "api-sepolia.etherscan.io"
        assert params["module"] == "proxy"
        assert params["action"] == "eth_getTransactionReceipt"
        assert params["txhash"] == TX_HASH
        assert params["apikey"] == "test-key"
        assert receipt.succeeded
        assert receipt.block_number == 16

    @pytest.mark.asyncio
    async def test_unknown_transaction(self):
        explorer = FakeExplorer({"jsonrpc": "2.0", "id": 1, "result": None})

        with pytest.raises(NotFoundError, match="transaction not found"):
            await explorer.client().fetch_transaction_receipt(TX_HASH, CHAIN)

    @pytest.mark.asyncio
    async def test_error_object(self):
        explorer = FakeExplorer({"jsonrpc": "2.0", "id": 1, "error": {"code": -32602, "message": "invalid argument"}})

        with pytest.raises(ExplorerError, match="invalid argument"):
            await explorer.client().fetch_transaction_receipt(TX_HASH, CHAIN)

    @pytest.mark.asyncio
    async def test_notok_status(self):
        explorer = FakeExplorer({"status": "0", "message": "NOTOK", "result": "Invalid API Key"})

        with pytest.raises(ExplorerError, match="Invalid API Key"):
            await explorer.client().fetch_transaction_receipt(TX_HASH, CHAIN)

    @pytest.mark.asyncio
    async def test_malformed_receipt(self):
        explorer = FakeExplorer({"jsonrpc": "2.0", "id": 1, "result": {"transactionHash": TX_HASH}})

        with pytest.raises(ExplorerError, match="Malformed receipt"):
            await explorer.client().fetch_transaction_receipt(TX_HASH, CHAIN)

    @pytest.mark.asyncio
    async def test_invalid_json(self):
        explorer = FakeExplorer(httpx.Response(200, text="<html>rate limited</html>"))

        with pytest.raises(ExplorerError, match="invalid JSON"):
            await explorer.client().fetch_transaction_receipt(TX_HASH, CHAIN)

    @pytest.mark.asyncio
    async def test_transient_failure_is_retried(self):
        explorer = FakeExplorer(httpx.Response(503), {"jsonrpc": "2.0", "id": 1, "result": RECEIPT})

        receipt = await explorer.client().fetch_transaction_receipt(TX_HASH, CHAIN)

        assert receipt.transaction_hash == TX_HASH
        assert len(explorer.requests) == 2

    @pytest.mark.asyncio
    async def test_rate_limit_reply_is_retried(self):
        explorer = FakeExplorer(
            {"status": "0", "message": "NOTOK", "result": "Max rate limit reached"},
            {"jsonrpc": "2.0", "id": 1, "result": RECEIPT},
        )

        receipt = await explorer.client().fetch_transaction_receipt(TX_HASH, CHAIN)

        assert receipt.transaction_hash == TX_HASH
        assert len(explorer.requests) == 2

    @pytest.mark.asyncio
    async def test_persistent_rate_limit(self):
        explorer = FakeExplorer(
            {"status": "0", "message": "NOTOK", "result": "Max calls per sec rate limit reached (5/sec)"}
        )

        with pytest.raises(RateLimitError, match="rate limit"):
            await explorer.client().fetch_transaction_receipt(TX_HASH, CHAIN)
        assert len(explorer.requests) == 2

    @pytest.mark.asyncio
    async def test_client_error_is_not_retried(self):
        explorer = FakeExplorer(httpx.Response(404))

        with pytest.raises(ExplorerError, match="failed"):
            await explorer.client().fetch_transaction_receipt(TX_HASH, CHAIN)
        assert len(explorer.requests) == 1

    @pytest.mark.asyncio
    async def test_timeout(self):
        request = httpx.Request("GET", CHAIN.explorer_api_url)
        explorer = FakeExplorer(httpx.ReadTimeout("timed out", request=request))

        with pytest.raises(FlowTimeoutError, match="timed out"):
            await explorer.client(RetryPolicy(max_retries=0)).fetch_transaction_receipt(TX_HASH, CHAIN)


class TestFetchTransactionLogs:
    """Tests for getLogs."""

    @pytest.mark.asyncio
    async def test_logs_in_order(self):
        explorer = FakeExplorer({
            "status": "1",
            "message": "OK",
            "result": [
                {"address": "0xaa", "topics": ["0x" + "00" * 32], "data": "0x", "logIndex": "0x"},
                {"address": "0xaa", "topics": [TOPIC, "0x" + "01" * 32], "data": "0x", "logIndex": "0x1"},
            ],
        })

        logs = await explorer.client().fetch_transaction_logs(TX_HASH, CHAIN)

        assert explorer.requests[0].url.params["module"] == "logs"
        assert explorer.requests[0].url.params["action"] == "getLogs"
        assert [log.log_index for log in logs] == [0, 1]
        assert logs[1].topic0 == TOPIC

    @pytest.mark.asyncio
    async def test_empty_log_list(self):
        explorer = FakeExplorer({"status": "1", "message": "OK", "result": []})

        assert await explorer.client().fetch_transaction_logs(TX_HASH, CHAIN) == ()

    @pytest.mark.asyncio
    async def test_no_records(self):
        explorer = FakeExplorer({"status": "0", "message": "No records found", "result": []})

        with pytest.raises(NotFoundError):
            await explorer.client().fetch_transaction_logs(TX_HASH, CHAIN)

    @pytest.mark.asyncio
    async def test_malformed_log(self):
        explorer = FakeExplorer({"status": "1", "message": "OK", "result": [{"topics": "0x00"}]})

        with pytest.raises(ExplorerError, match="Malformed log entry"):
            await explorer.client().fetch_transaction_logs(TX_HASH, CHAIN)


class TestFetchBlockTimestamp:
    """Tests for eth_getBlockByNumber."""

    @pytest.mark.asyncio
    async def test_block_timestamp(self):
        explorer = FakeExplorer({"jsonrpc": "2.0", "id": 1, "result": {"number": "0x10", "timestamp": "0x6553f100"}})

        timestamp = await explorer.client().fetch_block_timestamp(16, CHAIN)

        assert explorer.requests[0].url.params["tag"] == "0x10"
        assert timestamp == 0x6553F100

    @pytest.mark.asyncio
    async def test_missing_block(self):
        explorer = FakeExplorer({"jsonrpc": "2.0", "id": 1, "result": None})

        with pytest.raises(NotFoundError, match="block 16 not found"):
            await explorer.client().fetch_block_timestamp(16, CHAIN)
