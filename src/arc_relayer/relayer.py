"""
Arc relayer service.

This module contains the long-running watcher that polls the source bridge
for transfers and hands each one to the EventProcessor, which relays the
underlying message to the destination chain.
"""

import asyncio
import logging

from .config import RelayerConfig
from .event_processor import EventProcessor
from .models import RelayerIdentity
from .orchestrator import RelayOrchestrator
from .utils.polling_event_listener import PollingEventListener

logger = logging.getLogger(__name__)


class ArcRelayer:
    """
    Main relayer service that watches the source bridge and relays transfers.

    This class focuses on coordination and lifecycle management, delegating
    event handling to the EventProcessor and relaying to the RelayOrchestrator.
    """

    STATUS_LOG_INTERVAL = 30  # seconds

    def __init__(self, config: RelayerConfig, orchestrator: RelayOrchestrator | None = None) -> None:
        """
        Initialize the Arc Relayer.

        Args:
            config: Relayer configuration
            orchestrator: Pre-built orchestrator (built from config if omitted)
        """
        if not config.source_chain.bridge_address:
            raise ValueError("SOURCE_BRIDGE_ADDRESS is required to watch for transfers")

        self.config = config
        self.running = False

        self.identity = RelayerIdentity.from_private_key(config.private_key)
        self.orchestrator = orchestrator or RelayOrchestrator.from_config(config, self.identity)

        self.event_processor = EventProcessor(
            orchestrator=self.orchestrator,
            retry_count=config.monitoring.retry_count
        )
        self.transfer_listener: PollingEventListener | None = None

        self.shutdown_event = asyncio.Event()

    @classmethod
    def from_env(cls) -> "ArcRelayer":
        """
        Create an ArcRelayer instance from environment variables.

        Raises:
            ValueError: If required environment variables are missing
        """
        config = RelayerConfig.from_env()
        config.log_config()
        return cls(config)

    def init_event_monitoring(self) -> None:
        """Create the polling listener for the source bridge."""
        logger.info("Initializing event monitoring...")

        bridge = self.orchestrator.source_util.get_contract(
            "PrivateCCTPBridge", self.config.source_chain.bridge_address
        )
        self.transfer_listener = PollingEventListener(
            contract=bridge,
            event_name="CrossChainTransferInitiated",
            lookback_blocks=self.config.monitoring.lookback_blocks
        )

        logger.info(f"Bridge listener: {self.config.source_chain.bridge_address}")
        logger.info(f"Relaying as: {self.identity.address}")

    async def _periodic_status_logger(self) -> None:
        """Log status periodically while running."""
        while self.running:
            await asyncio.sleep(self.STATUS_LOG_INTERVAL)
            stats = self.event_processor.get_stats()
            if stats['processed_hashes'] > 0:
                logger.info(
                    f"Status: {stats['in_flight']} relays in flight, "
                    f"{stats['relayed']} relayed, {stats['failed']} failed, "
                    f"{stats['skipped']} skipped"
                )

    async def _check_task_health(self, tasks: dict[str, asyncio.Task]) -> bool:
        """Check if any critical task has failed."""
        for name, task in tasks.items():
            if task.done() and name != "status":
                try:
                    await task
                except Exception as e:
                    logger.error(f"{name} task failed: {e}", exc_info=True)
                return False
        return True

    async def _cleanup_tasks(self, tasks: dict[str, asyncio.Task]) -> None:
        """Stop the listener, cancel service tasks and in-flight relays."""
        if self.transfer_listener:
            await self.transfer_listener.stop()

        for task in tasks.values():
            if not task.done():
                task.cancel()
        await asyncio.gather(*tasks.values(), return_exceptions=True)

        await self.event_processor.cancel_in_flight()

    async def run(self) -> None:
        """Main event loop for the relayer service."""
        self.running = True
        logger.info("Arc Relayer starting...")
        logger.info(f"Polling interval: {self.config.monitoring.polling_interval}s")
        logger.info(f"Lookback blocks: {self.config.monitoring.lookback_blocks}")

        tasks: dict[str, asyncio.Task] = {}
        try:
            self.init_event_monitoring()

            if not self.transfer_listener:
                raise RuntimeError("Event listener not properly initialized")

            tasks = {
                "transfers": asyncio.create_task(
                    self.transfer_listener.start_polling(
                        callback=self.event_processor.process_transfer_event,
                        interval=self.config.monitoring.polling_interval
                    )
                ),
                "status": asyncio.create_task(self._periodic_status_logger())
            }

            logger.info("Event monitoring started, waiting for transfers...")

            while self.running:
                try:
                    await asyncio.wait_for(self.shutdown_event.wait(), timeout=1.0)
                    break
                except asyncio.TimeoutError:
                    pass

                if not await self._check_task_health(tasks):
                    logger.error("Critical task failure, shutting down")
                    break

        except Exception as e:
            logger.error(f"Error in main loop: {e}", exc_info=True)
            raise
        finally:
            self.running = False
            await self._cleanup_tasks(tasks)
            logger.info("Arc Relayer stopped")

    def stop(self) -> None:
        """Stop the relayer service."""
        self.running = False
        self.shutdown_event.set()
