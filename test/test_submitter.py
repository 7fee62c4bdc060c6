#!/usr/bin/env python3
"""Unit tests for TxSubmitter."""

from types import MethodType
from unittest.mock import AsyncMock, MagicMock

import pytest
from hexbytes import HexBytes
from web3 import Web3
from web3.exceptions import TimeExhausted, TransactionNotFound
from web3.types import Wei

from arc_relayer.config import PrivacyPoolConfig
from arc_relayer.models import (
    AuditData,
    Groth16Proof,
    StealthData,
    TransferRequest,
    TxStatus,
    WithdrawRequest,
)
from arc_relayer.submitter import TxSubmitter
from arc_relayer.utils.contract_utility import ContractUtility

POOL_ADDRESS = "0x5fbdb2315678afecb367f032d93f642f64180aa3"
TX_HASH = HexBytes("0x" + "44" * 32)
NULLIFIER = bytes.fromhex("12" * 32)


def make_proof(signals: int) -> Groth16Proof:
    return Groth16Proof(
        p_a=(1, 2),
        p_b=((3, 4), (5, 6)),
        p_c=(7, 8),
        public_signals=tuple(range(10, 10 + signals)),
    )


@pytest.fixture
def transfer_request():
    return TransferRequest(
        nullifier=NULLIFIER,
        new_sender_commitment=bytes.fromhex("34" * 32),
        recipient_commitment=bytes.fromhex("56" * 32),
        stealth_data=StealthData(1, 2, 3, 4, 5),
        audit_data=AuditData((1, 2, 3, 4), (5, 6, 7, 8), (9, 10, 11, 12)),
        proof=make_proof(4),
    )


@pytest.fixture
def withdraw_request():
    return WithdrawRequest(
        amount=1_000_000,
        nullifier=NULLIFIER,
        new_commitment=bytes(32),
        recipient="0x70997970C51812dc3A010C7d01b50e0d17dc79C8",
        proof=make_proof(5),
    )


@pytest.fixture
def mock_contract():
    """Create a mock pool contract instance."""
    mock = MagicMock()
    mock.functions.usedNullifiers.return_value.call = MagicMock(return_value=False)
    mock.encode_abi = MagicMock(return_value="0xdeadbeef")
    return mock


@pytest.fixture
def mock_contract_util(mock_contract):
    """Create a mock ContractUtility instance."""
    mock = MagicMock()
    mock.w3.eth.gas_price = Wei(1_000_000_000)  # 1 gwei
    mock.get_contract.return_value = mock_contract
    mock.send_transaction = AsyncMock(return_value=TX_HASH)
    mock.wait_for_receipt = AsyncMock(return_value={'status': 1, 'blockNumber': 100, 'gasUsed': 250_000})
    mock.outcome_from_receipt = ContractUtility.outcome_from_receipt
    return mock


@pytest.fixture
def submitter(mock_contract_util):
    config = PrivacyPoolConfig(rpc_url="http://localhost:8545", contract_address=POOL_ADDRESS)
    return TxSubmitter(config, mock_contract_util)


class TestTxSubmitter:
    """Test suite for TxSubmitter class."""

    def test_init(self, submitter, mock_contract_util):
        assert submitter.contract_address == Web3.to_checksum_address(POOL_ADDRESS)
        mock_contract_util.get_contract.assert_called_once_with(
            "PrivacyPool", Web3.to_checksum_address(POOL_ADDRESS)
        )

    @pytest.mark.asyncio
    async def test_submit_transfer_success(self, submitter, mock_contract, mock_contract_util, transfer_request):
        outcome = await submitter.submit_transfer(transfer_request)

        assert outcome.status is TxStatus.CONFIRMED
        assert outcome.hash == Web3.to_hex(TX_HASH)
        assert outcome.block_number == 100
        assert outcome.gas_used == 250_000

        function_name, args = mock_contract.encode_abi.call_args.args[0], mock_contract.encode_abi.call_args.kwargs['args']
        assert function_name == "privateTransfer"
        assert len(args[5]['publicSignals']) == 4

        mock_contract_util.send_transaction.assert_awaited_once_with({
            'to': Web3.to_checksum_address(POOL_ADDRESS),
            'data': "0xdeadbeef",
            'gas': 3_000_000,
            'gasPrice': 1_000_000_000,
        })
        mock_contract_util.wait_for_receipt.assert_awaited_once_with(TX_HASH, wait_interval=120)

    @pytest.mark.asyncio
    async def test_submit_withdraw_success(self, submitter, mock_contract, withdraw_request):
        outcome = await submitter.submit_withdraw(withdraw_request)

        assert outcome.succeeded
        assert mock_contract.encode_abi.call_args.args[0] == "withdraw"
        args = mock_contract.encode_abi.call_args.kwargs['args']
        assert args[0] == 1_000_000
        assert len(args[4]['publicSignals']) == 5

    @pytest.mark.asyncio
    async def test_used_nullifier_is_rejected_without_sending(
        self, submitter, mock_contract, mock_contract_util, transfer_request
    ):
        mock_contract.functions.usedNullifiers.return_value.call.return_value = True

        outcome = await submitter.submit(transfer_request)

        assert outcome.status is TxStatus.FAILED
        assert outcome.hash == ""
        assert outcome.error == "Nullifier already used"
        mock_contract.functions.usedNullifiers.assert_called_once_with(NULLIFIER)
        mock_contract_util.send_transaction.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_gas_price_above_ceiling(self, submitter, mock_contract_util, transfer_request):
        mock_contract_util.w3.eth.gas_price = Web3.to_wei(150, "gwei")

        outcome = await submitter.submit(transfer_request)

        assert outcome.status is TxStatus.FAILED
        assert outcome.hash == ""
        assert "gas price" in outcome.error.lower()
        mock_contract_util.send_transaction.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_second_submission_fails_at_nullifier_check(
        self, submitter, mock_contract, mock_contract_util, transfer_request
    ):
        first = await submitter.submit(transfer_request)
        assert first.succeeded

        # The pool marks the nullifier once the first transaction is mined
        mock_contract.functions.usedNullifiers.return_value.call.return_value = True
        second = await submitter.submit(transfer_request)

        assert second.status is TxStatus.FAILED
        assert second.error == "Nullifier already used"
        assert mock_contract_util.send_transaction.await_count == 1

    @pytest.mark.asyncio
    async def test_reverted_transaction_keeps_hash(self, submitter, mock_contract_util, transfer_request):
        mock_contract_util.wait_for_receipt.return_value = {'status': 0, 'blockNumber': 101, 'gasUsed': 80_000}

        outcome = await submitter.submit(transfer_request)

        assert outcome.status is TxStatus.FAILED
        assert outcome.hash == Web3.to_hex(TX_HASH)
        assert outcome.error == "Transaction reverted"
        assert outcome.block_number == 101

    @pytest.mark.asyncio
    async def test_send_exception_becomes_failed_outcome(self, submitter, mock_contract_util, transfer_request):
        mock_contract_util.send_transaction.side_effect = ValueError("insufficient funds for gas")

        outcome = await submitter.submit(transfer_request)

        assert outcome.status is TxStatus.FAILED
        assert outcome.hash == ""
        assert "insufficient funds" in outcome.error

    @pytest.mark.asyncio
    async def test_slow_confirmation_keeps_waiting(self, submitter, mock_contract_util, transfer_request):
        mock_contract_util.wait_for_receipt = MethodType(ContractUtility.wait_for_receipt, mock_contract_util)
        mock_contract_util.w3.eth.wait_for_transaction_receipt = MagicMock(side_effect=[
            TimeExhausted("not in chain after 120 seconds"),
            TimeExhausted("not in chain after 120 seconds"),
            {'status': 1, 'blockNumber': 102, 'gasUsed': 250_000},
        ])

        outcome = await submitter.submit(transfer_request)

        assert outcome.status is TxStatus.CONFIRMED
        assert outcome.hash == Web3.to_hex(TX_HASH)
        assert outcome.block_number == 102
        assert mock_contract_util.w3.eth.wait_for_transaction_receipt.call_count == 3
        assert mock_contract_util.send_transaction.await_count == 1

    @pytest.mark.asyncio
    async def test_confirmation_transport_error_keeps_hash(self, submitter, mock_contract_util, transfer_request):
        mock_contract_util.wait_for_receipt.side_effect = ConnectionError()

        outcome = await submitter.submit(transfer_request)

        assert outcome.status is TxStatus.FAILED
        assert outcome.hash == Web3.to_hex(TX_HASH)
        assert outcome.error == "ConnectionError"

    @pytest.mark.asyncio
    async def test_hex_string_nullifier(self, submitter, mock_contract, transfer_request):
        req = TransferRequest(
            nullifier="0x" + "12" * 32,
            new_sender_commitment=transfer_request.new_sender_commitment,
            recipient_commitment=transfer_request.recipient_commitment,
            stealth_data=transfer_request.stealth_data,
            audit_data=transfer_request.audit_data,
            proof=transfer_request.proof,
        )

        outcome = await submitter.submit(req)

        assert outcome.status is TxStatus.CONFIRMED
        mock_contract.functions.usedNullifiers.assert_called_once_with(NULLIFIER)

    @pytest.mark.asyncio
    async def test_nullifier_check_error_becomes_failed_outcome(
        self, submitter, mock_contract, mock_contract_util, transfer_request
    ):
        mock_contract.functions.usedNullifiers.return_value.call.side_effect = ConnectionError("rpc down")

        outcome = await submitter.submit(transfer_request)

        assert outcome.status is TxStatus.FAILED
        assert outcome.hash == ""
        mock_contract_util.send_transaction.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_wrong_signal_count_is_not_sent(self, submitter, mock_contract_util, transfer_request):
        bad = TransferRequest(
            nullifier=transfer_request.nullifier,
            new_sender_commitment=transfer_request.new_sender_commitment,
            recipient_commitment=transfer_request.recipient_commitment,
            stealth_data=transfer_request.stealth_data,
            audit_data=transfer_request.audit_data,
            proof=make_proof(5),
        )

        outcome = await submitter.submit(bad)

        assert outcome.status is TxStatus.FAILED
        assert "publicSignals" in outcome.error
        mock_contract_util.send_transaction.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_check_transaction_pending(self, submitter, mock_contract_util):
        mock_contract_util.w3.eth.get_transaction_receipt.side_effect = TransactionNotFound("pending")

        assert await submitter.check_transaction(Web3.to_hex(TX_HASH)) is None

    @pytest.mark.asyncio
    async def test_check_transaction_mined(self, submitter, mock_contract_util):
        mock_contract_util.w3.eth.get_transaction_receipt.return_value = {
            'status': 1, 'blockNumber': 200, 'gasUsed': 21_000
        }

        outcome = await submitter.check_transaction(Web3.to_hex(TX_HASH))

        assert outcome.succeeded
        assert outcome.block_number == 200

    @pytest.mark.asyncio
    async def test_get_merkle_root(self, submitter, mock_contract):
        mock_contract.functions.getMerkleRoot.return_value.call.return_value = bytes.fromhex("ab" * 32)

        assert await submitter.get_merkle_root() == "0x" + "ab" * 32
