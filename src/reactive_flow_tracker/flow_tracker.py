"""
Flow tracker implementation.

This module contains the verification pipeline that follows one cross-chain
automation through its five stages: origin transaction, event emission,
Reactive Network capture, callback transaction and destination execution.
Stages run strictly in order and the pipeline stops at the first failure.
The flow status is immutable and threaded through the stages, so every run
owns its own snapshot.
"""

import asyncio
import logging
import time
from typing import Any, Awaitable, Callable

from .config import ChainRegistry, TrackerConfig, TrackingConfig
from .errors import FlowTrackerError, NotFoundError
from .models import (
    CallbackTransaction,
    FlowRequest,
    FlowStatus,
    LogEntry,
    OriginTransaction,
    ReactiveCapture,
    StepStatus,
    TransactionReceipt,
)
from .utils.explorer_client import ExplorerClient
from .utils.reactive_rpc_client import ReactiveRpcClient
from .utils.retry import RetryPolicy
from .window_search import TimeWindowSearch

logger = logging.getLogger(__name__)

Stage = Callable[[FlowStatus], Awaitable[Any]]


class FlowTracker:
    """
    Verifies that a cross-chain automation executed end to end.

    Construction resolves both chain configurations and fails with
    ``ConfigurationError`` before any network call is made. ``run`` never
    raises: failures are recorded on the stage that hit them.
    """

    def __init__(
        self,
        request: FlowRequest,
        chains: ChainRegistry,
        explorer: ExplorerClient,
        reactive: ReactiveRpcClient,
        settings: TrackingConfig | None = None,
        clock: Callable[[], float] = time.time,
    ) -> None:
        """
        Initialize the tracker.

        Args:
            request: The flow to verify
            chains: Registry used to resolve origin and destination chains
            explorer: Client for the origin and destination explorers
            reactive: Client for the Reactive Network RPC
            settings: Search, timeout and deadline settings
            clock: Wall clock used for stage timestamps

        Raises:
            ConfigurationError: If either chain is not registered
        """
        self.request = request
        self.origin_chain = chains.get(request.origin_chain_id)
        self.destination_chain = chains.get(request.destination_chain_id)
        self.explorer = explorer
        self.reactive = reactive
        self.settings = settings or TrackingConfig()
        self.clock = clock

    def _stages(self) -> tuple[tuple[str, Stage], ...]:
        return (
            ("origin_transaction", self.verify_origin_transaction),
            ("event_emission", self.verify_event_emission),
            ("reactive_capture", self.track_reactive_capture),
            ("callback_transaction", self.verify_callback_transaction),
            ("destination_execution", self.verify_destination_execution),
        )

    async def run(self) -> FlowStatus:
        """
        Run all stages in order and return the final flow status.

        Returns:
            FlowStatus snapshot; every stage is success only if the flow completed
        """
        loop = asyncio.get_running_loop()
        deadline = loop.time() + self.settings.session_deadline
        status = FlowStatus.initial(self.clock())

        logger.info(
            f"Tracking flow for {self.request.origin_tx_hash[:10]}... "
            f"({self.origin_chain.name} -> {self.destination_chain.name})"
        )

        for stage, work in self._stages():
            status = await self._run_stage(status, stage, work, deadline - loop.time())
            if status.failed_stage:
                logger.warning(f"Flow halted at {stage}: {status.step(stage).error}")
                return status

        logger.info(f"Flow for {self.request.origin_tx_hash[:10]}... verified end to end")
        return status

    async def _run_stage(self, status: FlowStatus, stage: str, work: Stage, remaining: float) -> FlowStatus:
        """Run one stage under its timeout and record the outcome."""
        timeout = min(self.settings.stage_timeout, remaining)
        if timeout <= 0:
            error = f"session deadline of {self.settings.session_deadline}s exceeded before {stage}"
            return status.advance(stage, StepStatus.failed(error, self.clock()))

        logger.info(f"Running stage {stage}")
        try:
            payload = await asyncio.wait_for(work(status), timeout=timeout)
        except asyncio.TimeoutError:
            error = f"{stage} timed out after {timeout:g}s"
        except FlowTrackerError as e:
            error = str(e)
        except Exception as e:
            logger.error(f"Unexpected error in {stage}: {e}", exc_info=True)
            error = f"unexpected error: {e}"
        else:
            logger.info(f"Stage {stage} succeeded")
            return status.advance(stage, StepStatus.succeeded(payload, self.clock()))

        return status.advance(stage, StepStatus.failed(error, self.clock()))

    async def verify_origin_transaction(self, status: FlowStatus) -> OriginTransaction:
        """Stage 1: the origin transaction exists and succeeded."""
        receipt = await self.explorer.fetch_transaction_receipt(
            self.request.origin_tx_hash, self.origin_chain
        )
        if not receipt.succeeded:
            raise FlowTrackerError(f"transaction reverted: {self.request.origin_tx_hash}")

        timestamp = receipt.timestamp
        if timestamp is None:
            timestamp = await self.explorer.fetch_block_timestamp(receipt.block_number, self.origin_chain)

        return OriginTransaction(receipt=receipt, timestamp=timestamp)

    async def verify_event_emission(self, status: FlowStatus) -> LogEntry:
        """Stage 2: the origin transaction emitted the target event."""
        logs = await self.explorer.fetch_transaction_logs(
            self.request.origin_tx_hash, self.origin_chain
        )
        target = self.request.target_event_signature.lower()

        if event := next((log for log in logs if log.topic0 and log.topic0.lower() == target), None):
            return event
        raise NotFoundError("target event not found in transaction logs")

    async def track_reactive_capture(self, status: FlowStatus) -> ReactiveCapture:
        """Stage 3: the Reactive Network captured the origin transaction."""
        mapping = await self.reactive.get_address_mapping(self.request.watched_address)
        origin: OriginTransaction = status.payload("origin_transaction")

        search = TimeWindowSearch(
            fetch_batch=self.reactive.get_transactions_batch,
            window=self.settings.search_window,
            batch_size=self.settings.batch_size,
        )
        transaction = await search.find(mapping.rvm_id, self.request.origin_tx_hash, origin.timestamp)
        if transaction is None:
            raise NotFoundError("transaction not found")

        return ReactiveCapture(rvm_id=mapping.rvm_id, transaction=transaction)

    async def verify_callback_transaction(self, status: FlowStatus) -> CallbackTransaction:
        """Stage 4: the captured transaction produced a callback."""
        capture: ReactiveCapture = status.payload("reactive_capture")
        callbacks = await self.reactive.get_callback_transactions(capture.rvm_id, capture.transaction.hash)
        if not callbacks:
            raise NotFoundError("no callback transactions found")
        return callbacks[0]

    async def verify_destination_execution(self, status: FlowStatus) -> TransactionReceipt:
        """Stage 5: the callback executed successfully on the destination chain."""
        callback: CallbackTransaction = status.payload("callback_transaction")
        receipt = await self.explorer.fetch_transaction_receipt(callback.tx_hash, self.destination_chain)
        if not receipt.succeeded:
            raise FlowTrackerError(f"destination transaction reverted: {callback.tx_hash}")
        return receipt


async def track_flow(
    request: FlowRequest,
    config: TrackerConfig,
    explorer: ExplorerClient | None = None,
    reactive: ReactiveRpcClient | None = None,
) -> FlowStatus:
    """
    Verify one flow with clients built from ``config``.

    Raises:
        ConfigurationError: If either chain of the request is not configured
    """
    tracking = config.tracking
    policy = RetryPolicy(max_retries=tracking.retry_count, base_delay=tracking.retry_backoff)
    tracker = FlowTracker(
        request=request,
        chains=config.chains,
        explorer=explorer or ExplorerClient(request_timeout=tracking.request_timeout, retry_policy=policy),
        reactive=reactive or ReactiveRpcClient(
            config.reactive, request_timeout=tracking.request_timeout, retry_policy=policy
        ),
        settings=tracking,
    )
    return await tracker.run()
