"""
Relay orchestration.

Drives one cross-chain message from the source transaction to the
destination message transmitter:

    fetch receipt -> extract message -> wait for attestation -> receiveMessage -> confirm

A source transaction without a message is a no-op. Attestation timeouts and
missing source transactions are raised to the caller; everything that goes
wrong while delivering is reported as a failed TxOutcome.
"""

import asyncio
import logging

from hexbytes import HexBytes
from web3 import Web3
from web3.contract import Contract
from web3.exceptions import TransactionNotFound
from web3.types import TxParams, TxReceipt

from .attestation_client import AttestationClient
from .config import DestinationChainConfig, RelayerConfig, SourceChainConfig
from .exceptions import SourceTxNotFound
from .models import Message, RelayerIdentity, TxOutcome, TxStatus
from .source_events import content_hash, extract_message
from .utils.contract_utility import ContractUtility

logger = logging.getLogger(__name__)


class RelayOrchestrator:
    """Relays messages from the source chain to the destination chain."""

    def __init__(
        self,
        source_chain: SourceChainConfig,
        destination_chain: DestinationChainConfig,
        attestation_client: AttestationClient,
        source_util: ContractUtility,
        destination_util: ContractUtility,
    ) -> None:
        """
        Initialize the RelayOrchestrator.

        Args:
            source_chain: Source chain settings (message transmitter address)
            destination_chain: Destination chain settings (transmitter, gas limit)
            attestation_client: Client for the attestation oracle
            source_util: Read-only contract utility for the source chain
            destination_util: Signing contract utility for the destination chain
        """
        self.source_chain = source_chain
        self.destination_chain = destination_chain
        self.attestation_client = attestation_client
        self.source_util = source_util
        self.destination_util = destination_util

        self.destination_transmitter: Contract = self.destination_util.get_contract(
            "MessageTransmitter", destination_chain.message_transmitter_address
        )

    @classmethod
    def from_config(cls, config: RelayerConfig, identity: RelayerIdentity) -> "RelayOrchestrator":
        """Build an orchestrator with its own source and destination connections."""
        return cls(
            source_chain=config.source_chain,
            destination_chain=config.destination_chain,
            attestation_client=AttestationClient(config.attestation),
            source_util=ContractUtility(rpc_url=config.source_chain.rpc_url),
            destination_util=ContractUtility(
                rpc_url=config.destination_chain.rpc_url, identity=identity
            ),
        )

    async def get_source_receipt(self, source_tx_hash: str) -> TxReceipt:
        """
        Fetch the receipt of the source transaction.

        Raises:
            SourceTxNotFound: If the source chain does not know the transaction
        """
        try:
            receipt = await asyncio.to_thread(
                self.source_util.w3.eth.get_transaction_receipt, source_tx_hash
            )
        except TransactionNotFound:
            raise SourceTxNotFound(source_tx_hash) from None

        if receipt is None:
            raise SourceTxNotFound(source_tx_hash)
        return receipt

    async def deliver(self, message: Message, attestation: bytes) -> TxOutcome:
        """
        Call receiveMessage(message, attestation) on the destination chain.

        Never raises: send and confirmation problems become a failed outcome,
        which keeps the hash once the transaction has been sent.
        """
        tx_hash = ""

        try:
            data = self.destination_transmitter.encode_abi(
                "receiveMessage", args=[message.body, attestation]
            )
            gas_price = await asyncio.to_thread(lambda: self.destination_util.w3.eth.gas_price)

            tx_params: TxParams = {
                'to': self.destination_transmitter.address,
                'data': data,
                'gas': self.destination_chain.relay_gas_limit,
                'gasPrice': gas_price,
            }
            sent_hash: HexBytes = await self.destination_util.send_transaction(tx_params)
            tx_hash = Web3.to_hex(sent_hash)
            logger.info(f"Relay TX sent: {tx_hash}")

            receipt = await self.destination_util.wait_for_receipt(
                sent_hash, wait_interval=self.destination_chain.receipt_wait_interval
            )
            return self.destination_util.outcome_from_receipt(tx_hash, receipt)

        except Exception as e:
            error_msg = str(e) or type(e).__name__
            logger.error(f"Relay TX failed: {error_msg}", exc_info=True)
            return TxOutcome(hash=tx_hash, status=TxStatus.FAILED, error=error_msg)

    async def relay(self, source_tx_hash: str) -> TxOutcome | None:
        """
        Relay the message emitted by a source transaction.

        Args:
            source_tx_hash: Hash of the source chain transaction

        Returns:
            The destination TxOutcome, or None if the transaction emitted no
            cross-chain message (nothing is relayed)

        Raises:
            SourceTxNotFound: If the source transaction cannot be found
            AttestationTimeout: If the attestation did not complete in time
        """
        logger.info(f"Relaying message from source TX: {source_tx_hash}")

        receipt = await self.get_source_receipt(source_tx_hash)

        message = extract_message(receipt, self.source_chain.message_transmitter_address)
        if message is None:
            logger.info(f"Nothing to relay for {source_tx_hash}")
            return None

        message_hash = content_hash(message.body)
        logger.info(f"Message hash: {Web3.to_hex(message_hash)}")

        attestation = await self.attestation_client.fetch_attestation(message_hash)

        outcome = await self.deliver(message, attestation)
        if outcome.succeeded:
            logger.info(f"Message relayed in block {outcome.block_number}: {outcome.hash}")
        return outcome
