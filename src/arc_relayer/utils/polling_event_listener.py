"""
Polling-based event listener for the source bridge.

Uses eth_getLogs over HTTP RPC, so it works against providers without
filter or websocket support.
"""

import asyncio
import logging
from collections.abc import Awaitable, Callable
from typing import Any

from web3.contract import Contract
from web3.types import EventData

EventCallback = Callable[[EventData], Awaitable[Any]]


class PollingEventListener:
    """
    Polls one contract event over a moving block window.

    On start the last `lookback_blocks` blocks are replayed, then every
    poll covers (last processed block, current block]. A failed poll leaves
    the window where it was, so its blocks are covered by the next poll.
    """

    def __init__(
        self,
        contract: Contract,
        event_name: str,
        lookback_blocks: int = 100
    ) -> None:
        """
        Initialize the polling event listener.

        Args:
            contract: Contract instance bound to a Web3 connection
            event_name: Name of the event to listen for
            lookback_blocks: Number of blocks to replay on startup
        """
        self.contract = contract
        self.w3 = contract.w3
        self.contract_address = contract.address
        self.event_name = event_name
        self.lookback_blocks = lookback_blocks

        if not hasattr(self.contract.events, event_name):
            raise ValueError(f"Event {event_name} not found in contract ABI")
        self.event_obj = getattr(self.contract.events, event_name)

        self.last_processed_block: int | None = None
        self.is_running = False

        self.logger = logging.getLogger(f"{__name__}.{self.__class__.__name__}")

    async def _get_block_number(self) -> int:
        return await asyncio.to_thread(lambda: self.w3.eth.block_number)

    async def _get_logs(self, from_block: int, to_block: int) -> list[EventData]:
        return await asyncio.to_thread(
            self.event_obj.get_logs, from_block=from_block, to_block=to_block
        )

    async def initial_sync(self, callback: EventCallback) -> None:
        """
        Replay events from the lookback window.

        Args:
            callback: Async function to call for each event found

        Raises:
            Exception: Any RPC error; startup cannot continue without a window
        """
        try:
            current_block = await self._get_block_number()
            from_block = max(0, current_block - self.lookback_blocks)

            self.logger.info(
                f"Initial sync for {self.event_name} events "
                f"from block {from_block} to {current_block}"
            )

            events = await self._get_logs(from_block, current_block)

            if events:
                self.logger.info(f"Found {len(events)} historical {self.event_name} events")
                for event in events:
                    await callback(event)
            else:
                self.logger.info(f"No historical {self.event_name} events found")

            self.last_processed_block = current_block

        except Exception as e:
            self.logger.error(f"Error during initial sync: {e}")
            raise

    async def poll_for_events(self, callback: EventCallback) -> int:
        """
        Poll for new events since the last processed block.

        Args:
            callback: Async function to call for each new event

        Returns:
            Number of events delivered to the callback
        """
        try:
            current_block = await self._get_block_number()

            if self.last_processed_block is not None and current_block <= self.last_processed_block:
                return 0

            from_block = (
                self.last_processed_block + 1
                if self.last_processed_block is not None
                else current_block
            )

            events = await self._get_logs(from_block, current_block)

            if events:
                self.logger.info(
                    f"Found {len(events)} new {self.event_name} events "
                    f"in blocks {from_block}-{current_block}"
                )
                for event in events:
                    await callback(event)

            self.last_processed_block = current_block
            return len(events)

        except Exception as e:
            self.logger.error(f"Error polling for events: {e}")
            # Window stays put, the next poll retries these blocks
            return 0

    async def start_polling(self, callback: EventCallback, interval: int = 10) -> None:
        """
        Sync the lookback window, then poll at the given interval until stopped.

        Args:
            callback: Async function to call when events are received
            interval: Polling interval in seconds
        """
        if self.is_running:
            self.logger.warning("Polling already running")
            return

        self.is_running = True
        self.logger.info(
            f"Starting polling for {self.event_name} events "
            f"on {self.contract_address} every {interval} seconds"
        )

        await self.initial_sync(callback)

        while self.is_running:
            try:
                await asyncio.sleep(interval)
                await self.poll_for_events(callback)
            except asyncio.CancelledError:
                self.logger.info("Polling cancelled")
                break

    async def stop(self) -> None:
        """Stop the polling loop."""
        self.logger.info(f"Stopping polling for {self.event_name} events")
        self.is_running = False

    def get_status(self) -> dict[str, Any]:
        return {
            "is_running": self.is_running,
            "last_processed_block": self.last_processed_block,
            "contract_address": self.contract_address,
            "event_name": self.event_name,
        }
