"""
Event processor for bridge transfer events.

This module turns CrossChainTransferInitiated events into relay jobs,
keeping event handling separate from the service lifecycle in relayer.py.
"""

import asyncio
import logging
from collections import OrderedDict
from collections.abc import Mapping
from typing import TYPE_CHECKING, Any

from web3 import Web3
from web3.types import EventData

from .exceptions import AttestationTimeout
from .models import TransferInitiatedEvent

if TYPE_CHECKING:
    from .orchestrator import RelayOrchestrator

logger = logging.getLogger(__name__)


class EventProcessor:
    """Schedules a relay for every new bridge transfer."""

    MAX_PROCESSED_HASHES: int = 10_000

    def __init__(self, orchestrator: "RelayOrchestrator | None" = None, retry_count: int = 3) -> None:
        """Initialize the event processor.

        Args:
            orchestrator: RelayOrchestrator used to relay each transfer
            retry_count: Extra relay attempts after an attestation timeout
        """
        # OrderedDict provides O(1) lookups and maintains insertion order for LRU
        self.processed_tx_hashes: OrderedDict[str, None] = OrderedDict()

        self.orchestrator = orchestrator
        self.retry_count = retry_count

        self.in_flight: dict[str, asyncio.Task] = {}
        self.relayed_count = 0
        self.skipped_count = 0
        self.failed_count = 0

    async def process_transfer_event(self, event: EventData) -> TransferInitiatedEvent | None:
        """
        Process a CrossChainTransferInitiated event from the source bridge.

        Args:
            event: The decoded event log

        Returns:
            TransferInitiatedEvent if a relay was scheduled, None if skipped or invalid
        """
        try:
            match event.get('transactionHash'):
                case None:
                    logger.warning("Event missing transaction hash")
                    return None
                case bytes() as tx_hash_bytes:
                    tx_hash = Web3.to_hex(tx_hash_bytes)
                case str() as tx_hash:
                    pass
                case _:
                    logger.warning(f"Unexpected transaction hash type: {type(event.get('transactionHash'))}")
                    return None

            # One relay per source transaction
            if tx_hash in self.processed_tx_hashes:
                return None

            self._track_processed_hash(tx_hash)

            args: Mapping[str, Any] = event.get('args', {})
            nullifier = args.get('nullifier', b'')
            transfer = TransferInitiatedEvent(
                tx_hash=tx_hash,
                block_number=event.get('blockNumber', 0),
                burn_nonce=args.get('burnNonce', 0),
                destination_domain=args.get('destinationDomain', 0),
                amount=args.get('amount', 0),
                nullifier=Web3.to_hex(nullifier) if isinstance(nullifier, bytes) else str(nullifier),
            )

            logger.info(
                f"Transfer detected - {transfer} block={transfer.block_number} "
                f"amount={transfer.amount}"
            )

            if self.orchestrator:
                self.in_flight[tx_hash] = asyncio.create_task(
                    self.relay_with_retry(tx_hash), name=f"relay-{tx_hash[:10]}"
                )

            return transfer

        except Exception as e:
            logger.error(f"Error processing transfer event: {e}", exc_info=True)
            return None

    def _track_processed_hash(self, tx_hash: str) -> None:
        """
        Track a processed transaction hash with automatic LRU eviction.

        Args:
            tx_hash: Transaction hash to track
        """
        if tx_hash in self.processed_tx_hashes:
            self.processed_tx_hashes.move_to_end(tx_hash)
        else:
            if len(self.processed_tx_hashes) >= self.MAX_PROCESSED_HASHES:
                self.processed_tx_hashes.popitem(last=False)

            self.processed_tx_hashes[tx_hash] = None

    async def relay_with_retry(self, tx_hash: str) -> None:
        """
        Relay one transfer, starting over after attestation timeouts.

        Each retry is a fresh relay, so the attestation poll budget starts
        again. Errors are logged and counted; they never reach the poll loop.
        """
        try:
            for attempt in range(1, self.retry_count + 2):
                try:
                    outcome = await self.orchestrator.relay(tx_hash)
                except AttestationTimeout as e:
                    if attempt > self.retry_count:
                        logger.error(f"Giving up on {tx_hash[:10]}... after {attempt} relay attempts: {e}")
                        self.failed_count += 1
                        return
                    logger.warning(f"{e}; retrying relay of {tx_hash[:10]}... ({attempt}/{self.retry_count})")
                    continue

                if outcome is None:
                    self.skipped_count += 1
                elif outcome.succeeded:
                    self.relayed_count += 1
                else:
                    logger.error(f"Relay of {tx_hash[:10]}... failed: {outcome.error} (tx={outcome.hash or 'not sent'})")
                    self.failed_count += 1
                return

        except Exception as e:
            logger.error(f"Failed to relay {tx_hash[:10]}...: {e}", exc_info=True)
            self.failed_count += 1
        finally:
            self.in_flight.pop(tx_hash, None)

    async def cancel_in_flight(self) -> None:
        """Cancel relays that are still running."""
        tasks = list(self.in_flight.values())
        for task in tasks:
            task.cancel()
        await asyncio.gather(*tasks, return_exceptions=True)
        self.in_flight.clear()

    def get_stats(self) -> dict:
        """
        Get current processor statistics.

        Returns:
            Dictionary with current state metrics
        """
        return {
            'processed_hashes': len(self.processed_tx_hashes),
            'in_flight': len(self.in_flight),
            'relayed': self.relayed_count,
            'skipped': self.skipped_count,
            'failed': self.failed_count,
        }
