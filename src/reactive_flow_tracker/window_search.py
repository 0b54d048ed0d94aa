"""
Time-window reconciliation search over Reactive VM history.

The Reactive Network has no lookup by origin transaction hash: RVM history is
only available as time-ordered batches anchored at a pivot timestamp. This
module binary-searches pivots around the origin timestamp until it finds a
batch holding the transaction whose ``refTx`` points back at the origin.

A batch anchored at a pivot holds the first ``batch_size`` transactions at or
after the pivot, in ascending time order. The first probe is the origin
timestamp itself, so a capture among the first ``batch_size`` RVM transactions
after the origin is found immediately. Unrelated RVM activity between an
earlier capture and the origin steers the search upward, past the capture.
"""

import logging
from typing import Awaitable, Callable

from .models import ReactiveTransaction

logger = logging.getLogger(__name__)

BatchFetcher = Callable[[str, int, int], Awaitable[list[ReactiveTransaction]]]


class TimeWindowSearch:
    """Binary search for the RVM transaction that captured an origin transaction."""

    DEFAULT_WINDOW: int = 1000  # seconds either side of the origin timestamp
    DEFAULT_BATCH_SIZE: int = 100

    def __init__(
        self,
        fetch_batch: BatchFetcher,
        window: int = DEFAULT_WINDOW,
        batch_size: int = DEFAULT_BATCH_SIZE,
    ) -> None:
        """
        Initialize the search.

        Args:
            fetch_batch: Coroutine ``(rvm_id, pivot_time, batch_size)`` returning
                transactions in ascending time order
            window: Half-width of the search window in seconds
            batch_size: Maximum transactions requested per pivot
        """
        if window <= 0:
            raise ValueError(f"Search window must be positive, got {window}")
        if batch_size <= 0:
            raise ValueError(f"Batch size must be positive, got {batch_size}")
        self.fetch_batch = fetch_batch
        self.window = window
        self.batch_size = batch_size
        self.probes: list[int] = []

    async def find(
        self,
        rvm_id: str,
        origin_tx_hash: str,
        origin_timestamp: int,
    ) -> ReactiveTransaction | None:
        """
        Locate the RVM transaction referencing ``origin_tx_hash``.

        Args:
            rvm_id: Reactive VM to search
            origin_tx_hash: Hash of the origin-chain transaction
            origin_timestamp: Unix timestamp of the origin transaction

        Returns:
            The matching transaction, or None if the window holds no match
        """
        self.probes = []
        start = origin_timestamp - self.window
        end = origin_timestamp + self.window

        while start <= end:
            mid = (start + end) // 2
            self.probes.append(mid)
            batch = await self.fetch_batch(rvm_id, mid, self.batch_size)

            if match := next((tx for tx in batch if tx.references(origin_tx_hash)), None):
                logger.info(
                    f"Found RVM transaction {match.hash[:10]}... for {origin_tx_hash[:10]}... "
                    f"after {len(self.probes)} probes (pivot {mid})"
                )
                return match

            if not batch:
                # Nothing at or after the pivot: every indexed transaction is earlier
                logger.debug(f"Empty batch at pivot {mid}, searching below it")
                end = mid - 1
                continue

            if any(a.time > b.time for a, b in zip(batch, batch[1:])):
                logger.warning(f"Batch at pivot {mid} is not in ascending time order")

            if batch[0].time < origin_timestamp:
                start = mid + 1
            else:
                end = mid - 1

        logger.info(
            f"No RVM transaction references {origin_tx_hash[:10]}... within "
            f"+/-{self.window}s of {origin_timestamp} ({len(self.probes)} probes)"
        )
        return None
