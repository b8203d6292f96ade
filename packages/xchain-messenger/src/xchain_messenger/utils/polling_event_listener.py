"""
Polling-based event listener utility for MessageSent monitoring.

The poller is the correctness backstop of the relay: subscriptions can drop
events on reconnect, the trailing re-scan cannot.
"""

import logging
from collections.abc import Awaitable, Callable
from typing import TYPE_CHECKING, Any

from .retry import retry_with_backoff

if TYPE_CHECKING:
    from ..chain_client import SourceChain


class PollingEventListener:
    """
    Utility for polling MessageSent events from a source chain.

    The cursor is the last block whose events were handed to the callback.
    Each poll scans [cursor + 1, head] in ascending order.
    """

    def __init__(
        self,
        source: "SourceChain",
        lookback_blocks: int = 100,
        request_timeout: float = 30,
        retry_count: int = 3,
        name: str = "MessageSent",
    ):
        """
        Initialize the polling event listener.

        Args:
            source: Source chain to query
            lookback_blocks: Number of blocks to look back on startup
            request_timeout: Timeout for each RPC call in seconds
            retry_count: Retries for transient query failures
            name: Label used in log lines
        """
        self.source = source
        self.lookback_blocks = lookback_blocks
        self.request_timeout = request_timeout
        self.retry_count = retry_count
        self.name = name

        # State tracking
        self.last_processed_block: int | None = None
        self.polls = 0
        self.errors = 0

        # Lowest block a rewind asked to re-scan, applied at the next poll
        self._rewind_floor: int | None = None

        self.logger = logging.getLogger(f"{__name__}.{self.__class__.__name__}")

    async def _query(self, fn: Callable[..., Awaitable[Any]], *args: Any) -> Any:
        return await retry_with_backoff(
            fn,
            *args,
            max_attempts=self.retry_count + 1,
            timeout=self.request_timeout,
        )

    async def initial_sync(self, callback: Callable[[Any], Awaitable[Any]]) -> None:
        """
        Perform initial sync to catch up on recent events.

        Args:
            callback: Async function to call for each event found
        """
        try:
            current_block = await self._query(self.source.get_block_number)
            from_block = max(0, current_block - self.lookback_blocks)

            self.logger.info(
                f"Initial sync for {self.name} events "
                f"from block {from_block} to {current_block}"
            )

            events = await self._query(self.source.get_message_events, from_block, current_block)

            if events:
                self.logger.info(f"Found {len(events)} historical {self.name} events")
                for event in events:
                    await callback(event)
            else:
                self.logger.info(f"No historical {self.name} events found")

            self.last_processed_block = current_block

        except Exception as e:
            self.logger.error(f"Error during initial sync: {e}")
            raise

    def rewind(self, block_number: int) -> None:
        """
        Make the next poll start at or before block_number.

        Safe to call while a poll is in flight: the floor is applied when the
        next poll starts, so an in-flight poll cannot overwrite it.
        """
        if self._rewind_floor is None or block_number < self._rewind_floor:
            self._rewind_floor = block_number
            self.logger.debug(f"Rewind requested to block {block_number}")

    def _apply_rewind(self) -> None:
        # Before the first successful scan the backfill window covers it
        if self._rewind_floor is None or self.last_processed_block is None:
            return
        floor, self._rewind_floor = self._rewind_floor, None
        if floor - 1 < self.last_processed_block:
            self.logger.info(f"Rewinding {self.name} cursor from {self.last_processed_block} to {floor - 1}")
            self.last_processed_block = max(-1, floor - 1)

    async def poll_for_events(self, callback: Callable[[Any], Awaitable[Any]]) -> None:
        """
        Poll for new events since last processed block.

        Args:
            callback: Async function to call for each new event
        """
        self._apply_rewind()
        self.polls += 1
        try:
            current_block = await self._query(self.source.get_block_number)

            if self.last_processed_block is not None and current_block <= self.last_processed_block:
                return

            from_block = (
                self.last_processed_block + 1
                if self.last_processed_block is not None
                else max(0, current_block - self.lookback_blocks)
            )

            events = await self._query(self.source.get_message_events, from_block, current_block)

            if events:
                self.logger.info(
                    f"Found {len(events)} new {self.name} events "
                    f"in blocks {from_block}-{current_block}"
                )
                for event in events:
                    await callback(event)

            self.last_processed_block = current_block

        except Exception as e:
            self.errors += 1
            self.logger.warning(f"Error polling for events: {e}")
            # Cursor stays put so the range is scanned again next tick

    async def scan(self, callback: Callable[[Any], Awaitable[Any]]) -> None:
        """
        Run one tick: the initial sync until it has succeeded, then incremental polls.

        Args:
            callback: Async function to call for each event found
        """
        if self.last_processed_block is not None:
            await self.poll_for_events(callback)
            return

        try:
            await self.initial_sync(callback)
        except Exception:
            self.errors += 1
            self.logger.warning(f"Initial sync for {self.name} failed, retrying next tick")

    def get_status(self) -> dict[str, Any]:
        """
        Get current status of the polling listener.

        Returns:
            Dictionary with status information
        """
        return {
            "last_processed_block": self.last_processed_block,
            "pending_rewind": self._rewind_floor,
            "polls": self.polls,
            "errors": self.errors,
            "event_name": self.name,
        }
