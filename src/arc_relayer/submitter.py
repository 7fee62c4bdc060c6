#!/usr/bin/env python3
"""Private transaction submission for the Arc relayer.

This module submits private transfers and withdrawals to the privacy pool
on behalf of users. Every submission attempt runs the same ordered checks:

    checking_nullifier -> encoding -> checking_gas_price -> sending -> confirming

and ends in exactly one TxOutcome. Nothing raised inside an attempt escapes
the submitter; a caller that wants to retry starts a fresh attempt, which
re-runs the nullifier check.
"""

import asyncio
import logging
from typing import TYPE_CHECKING

from web3 import Web3
from web3.contract import Contract
from web3.exceptions import TransactionNotFound
from web3.types import TxParams, Wei

from .models import RelayRequest, RelayerIdentity, TransferRequest, TxOutcome, TxStatus, WithdrawRequest
from .utils.call_encoder import CallEncoder
from .utils.contract_utility import ContractUtility

if TYPE_CHECKING:
    from .config import PrivacyPoolConfig

logger = logging.getLogger(__name__)


class TxSubmitter:
    """Submits private transfer and withdraw transactions to the privacy pool."""

    def __init__(self, config: "PrivacyPoolConfig", contract_util: ContractUtility) -> None:
        """
        Initialize the TxSubmitter.

        Args:
            config: Privacy pool settings (address, gas ceiling, gas limit)
            contract_util: Signing contract utility connected to the pool's chain
        """
        self.config = config
        self.contract_util: ContractUtility = contract_util
        self.contract_address: str = Web3.to_checksum_address(config.contract_address)
        self.contract: Contract = self.contract_util.get_contract("PrivacyPool", self.contract_address)

        logger.info(f"TxSubmitter initialized for pool {self.contract_address}")
        logger.info(f"  Max Gas Price: {config.max_gas_price} wei")
        logger.info(f"  Gas Limit: {config.gas_limit}")

    @classmethod
    def from_config(cls, config: "PrivacyPoolConfig", identity: RelayerIdentity) -> "TxSubmitter":
        """Create a submitter with its own connection to the pool's chain."""
        return cls(config, ContractUtility(rpc_url=config.rpc_url, identity=identity))

    def get_address(self) -> str:
        """Relayer address paying for submissions."""
        return self.contract_util.address

    async def get_balance(self) -> Wei:
        """Relayer balance in wei."""
        return await asyncio.to_thread(self.contract_util.w3.eth.get_balance, self.get_address())

    async def is_nullifier_used(self, nullifier: bytes | str) -> bool:
        """Check whether the pool has already consumed a nullifier."""
        nullifier = CallEncoder.to_bytes32(nullifier)
        return await asyncio.to_thread(self.contract.functions.usedNullifiers(nullifier).call)

    async def get_merkle_root(self) -> str:
        root = await asyncio.to_thread(self.contract.functions.getMerkleRoot().call)
        return Web3.to_hex(root)

    async def get_gas_price(self) -> Wei:
        return await asyncio.to_thread(lambda: self.contract_util.w3.eth.gas_price)

    async def submit(self, req: RelayRequest) -> TxOutcome:
        """
        Submit a relay request and wait for its confirmation.

        Args:
            req: Private transfer or withdraw request

        Returns:
            TxOutcome. Pre-send rejections carry an empty hash; mined or
            in-flight failures carry the transaction hash.
        """
        tx_hash = ""

        try:
            nullifier = CallEncoder.to_bytes32(req.nullifier)
            logger.info(f"Submitting {req.kind} transaction, nullifier={Web3.to_hex(nullifier)}")

            if await self.is_nullifier_used(nullifier):
                logger.warning(f"Nullifier {Web3.to_hex(nullifier)} already used, not submitting")
                return TxOutcome.rejected("Nullifier already used")

            function_name, args = CallEncoder.encode_relay_call(req)
            data = self.contract.encode_abi(function_name, args=args)

            gas_price = await self.get_gas_price()
            if gas_price > self.config.max_gas_price:
                logger.warning(f"Gas price {gas_price} above ceiling {self.config.max_gas_price}, not submitting")
                return TxOutcome.rejected(f"Gas price too high: {gas_price}")

            tx_params: TxParams = {
                'to': self.contract_address,
                'data': data,
                'gas': self.config.gas_limit,
                'gasPrice': gas_price,
            }
            sent_hash = await self.contract_util.send_transaction(tx_params)
            tx_hash = Web3.to_hex(sent_hash)
            logger.info(f"{req.kind.capitalize()} TX sent: {tx_hash}")

            receipt = await self.contract_util.wait_for_receipt(
                sent_hash, wait_interval=self.config.receipt_wait_interval
            )
            return self.contract_util.outcome_from_receipt(tx_hash, receipt)

        except Exception as e:
            error_msg = str(e) or type(e).__name__
            logger.error(f"{req.kind.capitalize()} TX failed: {error_msg}", exc_info=True)
            return TxOutcome(hash=tx_hash, status=TxStatus.FAILED, error=error_msg)

    async def submit_transfer(self, req: TransferRequest) -> TxOutcome:
        return await self.submit(req)

    async def submit_withdraw(self, req: WithdrawRequest) -> TxOutcome:
        return await self.submit(req)

    async def check_transaction(self, tx_hash: str) -> TxOutcome | None:
        """
        Re-query a previously sent transaction.

        Lets a caller resolve a submission whose confirmation wait was
        interrupted (transport error, restart) without sending it again.

        Args:
            tx_hash: Hash returned in an earlier TxOutcome

        Returns:
            The classified outcome, or None if the transaction is not mined yet
        """
        try:
            receipt = await asyncio.to_thread(self.contract_util.w3.eth.get_transaction_receipt, tx_hash)
        except TransactionNotFound:
            logger.info(f"Transaction {tx_hash} not mined yet")
            return None
        return self.contract_util.outcome_from_receipt(tx_hash, receipt)
