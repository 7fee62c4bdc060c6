"""Tests for ContractUtility and the submission lock."""

import asyncio
import threading
import time
from unittest.mock import MagicMock

import pytest
from hexbytes import HexBytes
from web3.exceptions import TimeExhausted

from arc_relayer.models import RelayerIdentity, TxStatus
from arc_relayer.utils.contract_utility import ContractUtility
from arc_relayer.utils.submission_lock import get_submission_lock, reset_submission_locks

# Well-known local development key
PRIVATE_KEY = "0xac0974bec39a17e36ba4a6b4d238ff944bacb478cbed5efcae784d7bf4f2ff80"
DEV_ADDRESS = "0xf39Fd6e51aad88F6F4ce6aB8827279cffFb92266"
TX_HASH = HexBytes("0x" + "77" * 32)


@pytest.fixture(autouse=True)
def clear_locks():
    reset_submission_locks()
    yield
    reset_submission_locks()


@pytest.fixture
def identity():
    return RelayerIdentity.from_private_key(PRIVATE_KEY)


class TestContractUtility:

    def test_requires_rpc_url(self):
        with pytest.raises(ValueError, match="RPC URL is required"):
            ContractUtility(rpc_url="")

    def test_read_only_mode_has_no_address(self):
        util = ContractUtility(rpc_url="http://localhost:8545")
        with pytest.raises(ValueError, match="read-only"):
            _ = util.address

    def test_signing_mode_sets_default_account(self, identity):
        util = ContractUtility(rpc_url="http://localhost:8545", identity=identity)

        assert util.address == DEV_ADDRESS
        assert util.w3.eth.default_account == DEV_ADDRESS

    @pytest.mark.parametrize("name, member", [
        ("PrivacyPool", "usedNullifiers"),
        ("MessageTransmitter", "receiveMessage"),
        ("PrivateCCTPBridge", "CrossChainTransferInitiated"),
    ])
    def test_get_contract_abi(self, name, member):
        util = ContractUtility(rpc_url="http://localhost:8545")
        abi = util.get_contract_abi(name)

        assert isinstance(abi, list)
        assert member in {entry.get("name") for entry in abi}

    def test_missing_abi(self):
        util = ContractUtility(rpc_url="http://localhost:8545")
        with pytest.raises(FileNotFoundError):
            util.get_contract_abi("DoesNotExist")

    def test_outcome_from_successful_receipt(self):
        outcome = ContractUtility.outcome_from_receipt(
            "0xabc", {'status': 1, 'blockNumber': 5, 'gasUsed': 21000}
        )
        assert outcome.status is TxStatus.CONFIRMED
        assert outcome.block_number == 5
        assert outcome.error is None

    def test_outcome_from_reverted_receipt(self):
        outcome = ContractUtility.outcome_from_receipt(
            "0xabc", {'status': 0, 'blockNumber': 6, 'gasUsed': 30000}
        )
        assert outcome.status is TxStatus.FAILED
        assert outcome.hash == "0xabc"
        assert outcome.error == "Transaction reverted"

    @pytest.mark.asyncio
    async def test_wait_for_receipt_outlasts_wait_interval(self):
        util = ContractUtility(rpc_url="http://localhost:8545")
        util.w3 = MagicMock()
        receipt = {'status': 1, 'blockNumber': 9, 'gasUsed': 21000}
        util.w3.eth.wait_for_transaction_receipt = MagicMock(side_effect=[
            TimeExhausted("not in chain after 5 seconds"),
            receipt,
        ])

        assert await util.wait_for_receipt(TX_HASH, wait_interval=5) == receipt

        assert util.w3.eth.wait_for_transaction_receipt.call_count == 2
        util.w3.eth.wait_for_transaction_receipt.assert_called_with(TX_HASH, timeout=5)

    @pytest.mark.asyncio
    async def test_wait_for_receipt_transport_error_propagates(self):
        util = ContractUtility(rpc_url="http://localhost:8545")
        util.w3 = MagicMock()
        util.w3.eth.wait_for_transaction_receipt = MagicMock(side_effect=ConnectionError("rpc down"))

        with pytest.raises(ConnectionError):
            await util.wait_for_receipt(TX_HASH)


class TestSubmissionLock:

    def test_same_identity_and_chain_share_a_lock(self, identity):
        a = ContractUtility(rpc_url="http://localhost:8545/", identity=identity)
        b = ContractUtility(rpc_url="http://localhost:8545", identity=identity)

        assert a.submission_lock is b.submission_lock

    def test_different_chains_do_not_share(self):
        assert get_submission_lock("http://a.test", DEV_ADDRESS) is not get_submission_lock("http://b.test", DEV_ADDRESS)

    def test_address_case_is_ignored(self):
        assert get_submission_lock("http://a.test", DEV_ADDRESS) is get_submission_lock("http://a.test", DEV_ADDRESS.lower())

    @pytest.mark.asyncio
    async def test_concurrent_sends_never_overlap(self, identity):
        active = 0
        max_active = 0
        guard = threading.Lock()

        def slow_send(tx):
            nonlocal active, max_active
            with guard:
                active += 1
                max_active = max(max_active, active)
            time.sleep(0.05)
            with guard:
                active -= 1
            return HexBytes("0x" + "00" * 32)

        utils = [ContractUtility(rpc_url="http://localhost:8545", identity=identity) for _ in range(2)]
        for util in utils:
            util.w3 = MagicMock()
            util.w3.eth.send_transaction = MagicMock(side_effect=slow_send)

        await asyncio.gather(*[
            util.send_transaction({'to': DEV_ADDRESS, 'data': '0x'})
            for util in utils for _ in range(3)
        ])

        assert max_active == 1
        sent = utils[0].w3.eth.send_transaction.call_args.args[0]
        assert sent['from'] == DEV_ADDRESS
