#!/usr/bin/env python3
"""Configuration management for the Arc relayer.

This module provides type-safe configuration dataclasses with validation
for the relayer. Configuration is loaded from environment variables with
sensible defaults where appropriate and injected into each component at
construction.
"""

import logging
import os
from dataclasses import dataclass, field
from urllib.parse import urlparse

from web3 import Web3

# Get logger for this module
logger = logging.getLogger(__name__)

DEFAULT_ATTESTATION_API_URL = "https://iris-api-sandbox.circle.com/v1/attestations"
DEFAULT_MAX_GAS_PRICE = Web3.to_wei(100, "gwei")


def _validate_rpc_url(rpc_url: str, env_name: str) -> None:
    if not rpc_url:
        raise ValueError(f"RPC URL is required ({env_name})")

    parsed = urlparse(rpc_url)
    if parsed.scheme not in ('http', 'https', 'ws', 'wss'):
        raise ValueError(
            f"Invalid RPC URL scheme: {parsed.scheme}. "
            "Expected http, https, ws, or wss"
        )


def _checksum(instance: object, attr: str, label: str, env_name: str) -> None:
    """Validate an address attribute and store its checksummed form."""
    address = getattr(instance, attr)
    if not address:
        raise ValueError(f"{label} address is required ({env_name})")

    if not Web3.is_address(address):
        raise ValueError(f"Invalid {label} address: {address}")

    checksummed = Web3.to_checksum_address(address)
    if checksummed != address:
        # Use object.__setattr__ since dataclass is frozen
        object.__setattr__(instance, attr, checksummed)


def validate_private_key(private_key: str) -> str:
    """Check that a relayer key is 64 hex characters (optionally 0x-prefixed).

    Returns:
        The key, unchanged

    Raises:
        ValueError: If the key is missing or malformed
    """
    if not private_key:
        raise ValueError("RELAYER_PRIVATE_KEY environment variable is required")

    key = private_key.removeprefix('0x')
    if len(key) != 64:
        raise ValueError(
            f"Invalid private key length. Expected 64 hex characters, got {len(key)}"
        )

    try:
        int(key, 16)
    except ValueError:
        raise ValueError(
            "Invalid private key format. Must be hexadecimal"
        ) from None

    return private_key


def load_private_key() -> str:
    """Read and validate RELAYER_PRIVATE_KEY."""
    return validate_private_key(os.environ.get("RELAYER_PRIVATE_KEY", ""))


@dataclass(frozen=True, slots=True)
class SourceChainConfig:
    """Configuration for the chain where messages are emitted.

    Attributes:
        rpc_url: HTTP(S) RPC endpoint for the source chain
        message_transmitter_address: Contract emitting MessageSent(bytes)
        bridge_address: Privacy bridge emitting CrossChainTransferInitiated (watch mode only)
    """

    rpc_url: str
    message_transmitter_address: str
    bridge_address: str | None = None

    def __post_init__(self) -> None:
        """Validate source chain configuration."""
        _validate_rpc_url(self.rpc_url, "SOURCE_RPC_URL")
        _checksum(self, "message_transmitter_address", "source message transmitter", "SOURCE_MESSAGE_TRANSMITTER")
        if self.bridge_address:
            _checksum(self, "bridge_address", "source bridge", "SOURCE_BRIDGE_ADDRESS")


@dataclass(frozen=True, slots=True)
class DestinationChainConfig:
    """Configuration for the chain where messages are received.

    Attributes:
        rpc_url: HTTP(S) RPC endpoint for the destination chain
        message_transmitter_address: Contract exposing receiveMessage(bytes, bytes)
        relay_gas_limit: Fixed gas limit for receiveMessage calls
        receipt_wait_interval: Seconds per receipt wait round (waits continue until mined)
    """

    rpc_url: str
    message_transmitter_address: str
    relay_gas_limit: int = 500_000
    receipt_wait_interval: float = 120

    def __post_init__(self) -> None:
        """Validate destination chain configuration."""
        _validate_rpc_url(self.rpc_url, "DESTINATION_RPC_URL")
        _checksum(
            self, "message_transmitter_address",
            "destination message transmitter", "DESTINATION_MESSAGE_TRANSMITTER"
        )
        if self.relay_gas_limit <= 0:
            raise ValueError(f"Relay gas limit must be positive, got {self.relay_gas_limit}")
        if self.receipt_wait_interval <= 0:
            raise ValueError(
                f"Receipt wait interval must be positive, got {self.receipt_wait_interval}"
            )


@dataclass(frozen=True, slots=True)
class PrivacyPoolConfig:
    """Configuration for the privacy pool that receives private transfers and withdrawals.

    Attributes:
        rpc_url: RPC endpoint of the chain hosting the pool
        contract_address: Pool contract address
        max_gas_price: Highest gas price (wei) the relayer will pay
        gas_limit: Fixed gas limit for privateTransfer / withdraw
        receipt_wait_interval: Seconds per receipt wait round (waits continue until mined)
    """

    rpc_url: str
    contract_address: str
    max_gas_price: int = DEFAULT_MAX_GAS_PRICE
    gas_limit: int = 3_000_000
    receipt_wait_interval: float = 120

    def __post_init__(self) -> None:
        """Validate privacy pool configuration."""
        _validate_rpc_url(self.rpc_url, "POOL_RPC_URL")
        _checksum(self, "contract_address", "pool contract", "POOL_CONTRACT_ADDRESS")

        if self.max_gas_price <= 0:
            raise ValueError(f"Max gas price must be positive, got {self.max_gas_price}")
        if self.gas_limit <= 0:
            raise ValueError(f"Gas limit must be positive, got {self.gas_limit}")
        if self.receipt_wait_interval <= 0:
            raise ValueError(
                f"Receipt wait interval must be positive, got {self.receipt_wait_interval}"
            )

    @classmethod
    def from_env(cls) -> "PrivacyPoolConfig | None":
        """Load the pool section on its own.

        POOL_RPC_URL falls back to SOURCE_RPC_URL. Nothing else from the
        source or destination sections is read.

        Returns:
            PrivacyPoolConfig, or None if POOL_CONTRACT_ADDRESS is not set
        """
        pool_address = os.environ.get("POOL_CONTRACT_ADDRESS")
        if not pool_address:
            return None

        return cls(
            rpc_url=os.environ.get("POOL_RPC_URL") or os.environ.get("SOURCE_RPC_URL", ""),
            contract_address=pool_address,
            max_gas_price=int(os.environ.get("MAX_GAS_PRICE", str(DEFAULT_MAX_GAS_PRICE))),
            gas_limit=int(os.environ.get("POOL_GAS_LIMIT", "3000000")),
            receipt_wait_interval=float(os.environ.get("RECEIPT_WAIT_INTERVAL", "120")),
        )


@dataclass(frozen=True, slots=True)
class AttestationConfig:
    """Configuration for the attestation oracle client."""
    api_url: str = DEFAULT_ATTESTATION_API_URL
    poll_interval: float = 10  # seconds between polls
    max_attempts: int = 30  # 300 seconds at the default interval
    request_timeout: float = 30  # HTTP request timeout in seconds

    def __post_init__(self) -> None:
        """Validate attestation configuration."""
        parsed = urlparse(self.api_url)
        if parsed.scheme not in ('http', 'https'):
            raise ValueError(f"Invalid attestation API URL: {self.api_url}")
        if self.poll_interval <= 0:
            raise ValueError(f"Poll interval must be positive, got {self.poll_interval}")
        if self.max_attempts <= 0:
            raise ValueError(f"Max attempts must be positive, got {self.max_attempts}")
        if self.request_timeout <= 0:
            raise ValueError(f"Request timeout must be positive, got {self.request_timeout}")


@dataclass(frozen=True, slots=True)
class MonitoringConfig:
    """Configuration for watching the source bridge."""
    polling_interval: int = 10  # seconds between event polls
    lookback_blocks: int = 100  # blocks to look back on startup
    retry_count: int = 3  # relay attempts per transfer after attestation timeouts

    def __post_init__(self) -> None:
        """Validate monitoring configuration."""
        if self.polling_interval <= 0:
            raise ValueError(f"Polling interval must be positive, got {self.polling_interval}")
        if self.polling_interval > 300:
            raise ValueError(f"Polling interval too long (max 300s), got {self.polling_interval}")

        if self.lookback_blocks <= 0:
            raise ValueError(f"Lookback blocks must be positive, got {self.lookback_blocks}")
        if self.lookback_blocks > 1000:
            raise ValueError(f"Lookback blocks too high (max 1000), got {self.lookback_blocks}")

        if self.retry_count < 0:
            raise ValueError(f"Retry count must be non-negative, got {self.retry_count}")
        if self.retry_count > 10:
            raise ValueError(f"Retry count too high (max 10), got {self.retry_count}")


@dataclass(frozen=True, slots=True)
class RelayerConfig:
    """Main configuration for the Arc relayer.

    Attributes:
        source_chain: Chain where messages are emitted
        destination_chain: Chain where messages are delivered
        private_key: Relayer signing key (hex)
        privacy_pool: Pool contract used for private transfers (None if unused)
        attestation: Attestation oracle settings
        monitoring: Watch mode settings
    """

    source_chain: SourceChainConfig
    destination_chain: DestinationChainConfig
    private_key: str
    privacy_pool: PrivacyPoolConfig | None = None
    attestation: AttestationConfig = field(default_factory=AttestationConfig)
    monitoring: MonitoringConfig = field(default_factory=MonitoringConfig)

    def __post_init__(self) -> None:
        """Validate relayer configuration."""
        validate_private_key(self.private_key)

    @classmethod
    def from_env(cls) -> "RelayerConfig":
        """Load configuration from environment variables.

        Returns:
            RelayerConfig instance with loaded values

        Raises:
            ValueError: If required environment variables are missing or invalid
        """
        source_rpc_url = os.environ.get("SOURCE_RPC_URL", "")
        source_config = SourceChainConfig(
            rpc_url=source_rpc_url,
            message_transmitter_address=os.environ.get("SOURCE_MESSAGE_TRANSMITTER", ""),
            bridge_address=os.environ.get("SOURCE_BRIDGE_ADDRESS") or None,
        )

        destination_config = DestinationChainConfig(
            rpc_url=os.environ.get("DESTINATION_RPC_URL", ""),
            message_transmitter_address=os.environ.get("DESTINATION_MESSAGE_TRANSMITTER", ""),
            relay_gas_limit=int(os.environ.get("RELAY_GAS_LIMIT", "500000")),
            receipt_wait_interval=float(os.environ.get("RECEIPT_WAIT_INTERVAL", "120")),
        )

        pool_config = PrivacyPoolConfig.from_env()

        attestation_config = AttestationConfig(
            api_url=os.environ.get("ATTESTATION_API_URL", DEFAULT_ATTESTATION_API_URL),
            poll_interval=float(os.environ.get("ATTESTATION_POLL_INTERVAL", "10")),
            max_attempts=int(os.environ.get("ATTESTATION_MAX_ATTEMPTS", "30")),
            request_timeout=float(os.environ.get("ATTESTATION_REQUEST_TIMEOUT", "30")),
        )

        monitoring_config = MonitoringConfig(
            polling_interval=int(os.environ.get("POLLING_INTERVAL", "10")),
            lookback_blocks=int(os.environ.get("LOOKBACK_BLOCKS", "100")),
            retry_count=int(os.environ.get("RETRY_COUNT", "3")),
        )

        return cls(
            source_chain=source_config,
            destination_chain=destination_config,
            private_key=os.environ.get("RELAYER_PRIVATE_KEY", ""),
            privacy_pool=pool_config,
            attestation=attestation_config,
            monitoring=monitoring_config,
        )

    def log_config(self) -> None:
        """Log the configuration in a readable format (hiding sensitive data)."""
        logger.info("=" * 60)
        logger.info("Arc Relayer Configuration")
        logger.info("=" * 60)

        logger.info("Source Chain:")
        logger.info(f"  RPC URL: {self.source_chain.rpc_url}")
        logger.info(f"  MessageTransmitter: {self.source_chain.message_transmitter_address}")
        logger.info(f"  Bridge: {self.source_chain.bridge_address or '[NOT SET]'}")

        logger.info("Destination Chain:")
        logger.info(f"  RPC URL: {self.destination_chain.rpc_url}")
        logger.info(f"  MessageTransmitter: {self.destination_chain.message_transmitter_address}")
        logger.info(f"  Relay Gas Limit: {self.destination_chain.relay_gas_limit}")
        logger.info(f"  Receipt Wait Interval: {self.destination_chain.receipt_wait_interval} seconds")

        if self.privacy_pool:
            logger.info("Privacy Pool:")
            logger.info(f"  RPC URL: {self.privacy_pool.rpc_url}")
            logger.info(f"  Contract: {self.privacy_pool.contract_address}")
            logger.info(f"  Max Gas Price: {Web3.from_wei(self.privacy_pool.max_gas_price, 'gwei')} gwei")
            logger.info(f"  Gas Limit: {self.privacy_pool.gas_limit}")

        logger.info("Attestation:")
        logger.info(f"  API URL: {self.attestation.api_url}")
        logger.info(f"  Poll Interval: {self.attestation.poll_interval} seconds")
        logger.info(f"  Max Attempts: {self.attestation.max_attempts}")

        logger.info("Monitoring Settings:")
        logger.info(f"  Polling Interval: {self.monitoring.polling_interval} seconds")
        logger.info(f"  Lookback Blocks: {self.monitoring.lookback_blocks}")
        logger.info(f"  Retry Count: {self.monitoring.retry_count}")

        logger.info(f"  Private Key: {'[SET]' if self.private_key else '[NOT SET]'}")
        logger.info("=" * 60)
