import asyncio
import json
import logging
from pathlib import Path
from typing import Any

from hexbytes import HexBytes
from web3 import Web3
from web3.contract import Contract
from web3.exceptions import TimeExhausted
from web3.middleware import SignAndSendRawMiddlewareBuilder
from web3.types import TxParams, TxReceipt

from ..models import RelayerIdentity, TxOutcome, TxStatus
from .submission_lock import get_submission_lock

logger = logging.getLogger(__name__)


class ContractUtility:
    """
    Utility for contract interaction and ABI loading on one chain.

    Can be used in two modes:
    1. Signing mode: Initialize with an identity to sign and send transactions
    2. Read-only mode: Initialize with RPC URL only for reads and receipts
    """

    def __init__(self, rpc_url: str, identity: RelayerIdentity | None = None, request_timeout: int = 30) -> None:
        """
        Initialize the ContractUtility.

        Args:
            rpc_url: RPC URL for the network (required)
            identity: Relayer signing identity (optional - if not provided, read-only mode)
            request_timeout: HTTP timeout for RPC requests in seconds
        """
        if not rpc_url:
            raise ValueError("RPC URL is required")

        self.rpc_url = rpc_url
        self.identity = identity

        self.w3 = Web3(Web3.HTTPProvider(self.rpc_url, request_kwargs={'timeout': request_timeout}))

        # Add signing middleware only if an identity is provided
        if identity:
            self._add_signing_middleware(identity)

    def _add_signing_middleware(self, identity: RelayerIdentity) -> None:
        """
        Add signing middleware to the existing Web3 instance.

        Args:
            identity: Relayer identity whose account signs transactions
        """
        self.w3.middleware_onion.add(SignAndSendRawMiddlewareBuilder.build(identity.account))
        self.w3.eth.default_account = identity.address

    @property
    def address(self) -> str:
        if not self.identity:
            raise ValueError("ContractUtility is in read-only mode")
        return self.identity.address

    @property
    def submission_lock(self) -> asyncio.Lock:
        """Lock serializing sign-and-send for this identity on this chain."""
        return get_submission_lock(self.rpc_url, self.address)

    def get_contract_abi(self, contract_name: str) -> list[dict[str, Any]]:
        """Fetches ABI of the given contract from the contracts folder.

        Args:
            contract_name: Name of the contract (without .json extension)

        Returns:
            List of ABI dictionaries for the contract

        Raises:
            FileNotFoundError: If the contract file doesn't exist
            json.JSONDecodeError: If the contract file is invalid JSON
        """
        contract_path: Path = (
            Path(__file__).parent.parent
            / "contracts"
            / f"{contract_name}.json"
        ).resolve()

        with contract_path.open() as file:
            contract_data: dict[str, Any] = json.load(file)

        return contract_data["abi"]

    def get_contract(self, contract_name: str, address: str) -> Contract:
        """Bind the named ABI to a deployed address."""
        return self.w3.eth.contract(
            address=Web3.to_checksum_address(address),
            abi=self.get_contract_abi(contract_name)
        )

    async def send_transaction(self, tx: TxParams) -> HexBytes:
        """
        Sign and send a transaction while holding the identity's submission lock.

        The nonce is assigned by the signing middleware inside the lock, so
        concurrent callers are strictly ordered.

        Args:
            tx: Transaction parameters (to, data, gas, gasPrice)

        Returns:
            Hash of the sent transaction
        """
        tx = {**tx, 'from': self.address}
        async with self.submission_lock:
            tx_hash: HexBytes = await asyncio.to_thread(self.w3.eth.send_transaction, tx)
        logger.info(f"Transaction sent: {Web3.to_hex(tx_hash)}")
        return tx_hash

    async def wait_for_receipt(self, tx_hash: HexBytes | str, wait_interval: float = 120) -> TxReceipt:
        """
        Block (off the event loop) until the transaction is mined.

        There is no overall deadline. Each wait_interval that passes without a
        receipt is logged and the wait continues.

        Args:
            tx_hash: Hash of the sent transaction
            wait_interval: Seconds per receipt wait round

        Returns:
            The transaction receipt
        """
        waited = 0.0
        while True:
            try:
                return await asyncio.to_thread(
                    self.w3.eth.wait_for_transaction_receipt, tx_hash, timeout=wait_interval
                )
            except TimeExhausted:
                waited += wait_interval
                logger.warning(
                    f"Transaction {Web3.to_hex(HexBytes(tx_hash))} still pending after {waited:.0f}s, waiting"
                )

    @staticmethod
    def outcome_from_receipt(tx_hash: str, receipt: TxReceipt) -> TxOutcome:
        """
        Classify a mined transaction by its status flag.

        Args:
            tx_hash: Hex hash of the transaction
            receipt: Its receipt

        Returns:
            CONFIRMED outcome for status 1, FAILED ("Transaction reverted") otherwise.
            Both carry the hash since gas was spent either way.
        """
        block_number = receipt.get('blockNumber')
        gas_used = receipt.get('gasUsed')

        if (status := receipt.get('status', 0)) != 1:
            logger.error(f"✗ Transaction {tx_hash} reverted with status={status}")
            return TxOutcome(
                hash=tx_hash,
                status=TxStatus.FAILED,
                block_number=block_number,
                gas_used=gas_used,
                error="Transaction reverted",
            )

        logger.info(f"✓ Transaction {tx_hash} confirmed in block {block_number} (gas used: {gas_used})")
        return TxOutcome(
            hash=tx_hash,
            status=TxStatus.CONFIRMED,
            block_number=block_number,
            gas_used=gas_used,
        )
