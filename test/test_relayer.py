"""Tests for the ArcRelayer service lifecycle."""

import asyncio
from unittest.mock import AsyncMock, MagicMock

import pytest
from hexbytes import HexBytes

from arc_relayer.config import DestinationChainConfig, MonitoringConfig, RelayerConfig, SourceChainConfig
from arc_relayer.models import TxOutcome, TxStatus
from arc_relayer.relayer import ArcRelayer

ADDRESS = "0x85BfE05492aFC3D04Ff3B2ca6771ACF6f853d90d"
PRIVATE_KEY = "0xac0974bec39a17e36ba4a6b4d238ff944bacb478cbed5efcae784d7bf4f2ff80"
SOURCE_TX = "0x" + "5a" * 32


def make_config(bridge_address: str | None = ADDRESS) -> RelayerConfig:
    return RelayerConfig(
        source_chain=SourceChainConfig(
            rpc_url="http://localhost:8545",
            message_transmitter_address=ADDRESS,
            bridge_address=bridge_address,
        ),
        destination_chain=DestinationChainConfig(
            rpc_url="http://localhost:8546", message_transmitter_address=ADDRESS
        ),
        private_key=PRIVATE_KEY,
        monitoring=MonitoringConfig(polling_interval=1, lookback_blocks=10),
    )


@pytest.fixture
def bridge_contract():
    mock = MagicMock()
    mock.address = ADDRESS
    mock.w3.eth.block_number = 500
    mock.events.CrossChainTransferInitiated.get_logs = MagicMock(return_value=[{
        'transactionHash': HexBytes(SOURCE_TX),
        'blockNumber': 495,
        'args': {'burnNonce': 1, 'destinationDomain': 6, 'amount': 10, 'nullifier': b'\x01' * 32},
    }])
    return mock


@pytest.fixture
def orchestrator(bridge_contract):
    mock = MagicMock()
    mock.source_util.get_contract.return_value = bridge_contract
    mock.relay = AsyncMock(return_value=TxOutcome(hash="0x01", status=TxStatus.CONFIRMED))
    return mock


class TestArcRelayer:

    def test_requires_bridge_address(self, orchestrator):
        with pytest.raises(ValueError, match="SOURCE_BRIDGE_ADDRESS"):
            ArcRelayer(make_config(bridge_address=None), orchestrator=orchestrator)

    def test_init_event_monitoring(self, orchestrator):
        relayer = ArcRelayer(make_config(), orchestrator=orchestrator)

        relayer.init_event_monitoring()

        orchestrator.source_util.get_contract.assert_called_once_with("PrivateCCTPBridge", ADDRESS)
        assert relayer.transfer_listener.event_name == "CrossChainTransferInitiated"
        assert relayer.transfer_listener.lookback_blocks == 10

    @pytest.mark.asyncio
    async def test_run_relays_historical_transfers_and_stops(self, orchestrator):
        relayer = ArcRelayer(make_config(), orchestrator=orchestrator)

        asyncio.get_running_loop().call_later(0.2, relayer.stop)
        await asyncio.wait_for(relayer.run(), timeout=5)

        orchestrator.relay.assert_awaited_once_with(SOURCE_TX)
        assert relayer.running is False
        assert relayer.transfer_listener.is_running is False
        assert relayer.event_processor.get_stats()['relayed'] == 1

    @pytest.mark.asyncio
    async def test_run_stops_when_listener_fails(self, orchestrator, bridge_contract):
        bridge_contract.events.CrossChainTransferInitiated.get_logs.side_effect = ConnectionError("rpc down")
        relayer = ArcRelayer(make_config(), orchestrator=orchestrator)

        await asyncio.wait_for(relayer.run(), timeout=5)

        orchestrator.relay.assert_not_awaited()
        assert relayer.running is False
