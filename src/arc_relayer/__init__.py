"""
Arc Relayer package.

Cross-chain message relay and private transaction submission for the
Arc privacy pool.
"""

from .attestation_client import AttestationClient
from .config import RelayerConfig
from .exceptions import AttestationTimeout, InvalidRelayRequest, RelayerError, SourceTxNotFound
from .models import Message, TransferRequest, TxOutcome, TxStatus, WithdrawRequest
from .orchestrator import RelayOrchestrator
from .relayer import ArcRelayer
from .submitter import TxSubmitter
from .validator import parse_relay_request

__all__ = [
    "ArcRelayer",
    "AttestationClient",
    "AttestationTimeout",
    "InvalidRelayRequest",
    "Message",
    "RelayOrchestrator",
    "RelayerConfig",
    "RelayerError",
    "SourceTxNotFound",
    "TransferRequest",
    "TxOutcome",
    "TxStatus",
    "TxSubmitter",
    "WithdrawRequest",
    "parse_relay_request",
]
__version__ = "0.1.0"
