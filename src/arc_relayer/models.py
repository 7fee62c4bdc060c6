#!/usr/bin/env python3
"""Data models for the Arc relayer.

This module provides immutable data classes for cross-chain messages,
attestation poll results, private relay requests and transaction outcomes
used throughout the relay pipeline.
"""

from dataclasses import dataclass
from enum import Enum
from typing import Any, Literal

from eth_account import Account
from eth_account.signers.local import LocalAccount
from hexbytes import HexBytes
from web3 import Web3


@dataclass(frozen=True, slots=True)
class Message:
    """A cross-chain message emitted by the source message transmitter.

    Attributes:
        body: Raw message bytes exactly as emitted on the source chain
        source_tx_hash: Transaction that emitted the message (if known)
        log_index: Position of the emitting log inside the transaction
    """

    body: bytes
    source_tx_hash: str | None = None
    log_index: int | None = None

    @property
    def content_hash(self) -> HexBytes:
        """keccak256 of the message bytes, used as the attestation lookup key."""
        return Web3.keccak(self.body)

    def __str__(self) -> str:
        return (
            f"Message(hash={Web3.to_hex(self.content_hash)[:10]}..., "
            f"length={len(self.body)})"
        )


class AttestationStatus(str, Enum):
    """Outcome of a single attestation poll."""

    PENDING_CONFIRMATIONS = "pending_confirmations"
    COMPLETE = "complete"
    OTHER = "other"
    ERROR = "error"


@dataclass(frozen=True, slots=True)
class AttestationResult:
    """Result of one attestation status request.

    Attributes:
        status: Classified status of the poll
        attestation: Attestation bytes, only set when status is COMPLETE
        raw_status: Status string exactly as reported by the oracle
        error: Transport or parse error description for ERROR results
    """

    status: AttestationStatus
    attestation: bytes | None = None
    raw_status: str | None = None
    error: str | None = None

    @property
    def is_complete(self) -> bool:
        return self.status is AttestationStatus.COMPLETE


@dataclass(frozen=True, slots=True)
class Groth16Proof:
    """A Groth16 proof in the shape the pool contract verifies.

    Attributes:
        p_a: First G1 point
        p_b: G2 point as two coordinate pairs
        p_c: Second G1 point
        public_signals: Ordered public inputs of the circuit
    """

    p_a: tuple[int, int]
    p_b: tuple[tuple[int, int], tuple[int, int]]
    p_c: tuple[int, int]
    public_signals: tuple[int, ...]


@dataclass(frozen=True, slots=True)
class StealthData:
    """Stealth address announcement attached to a private transfer."""

    ephemeral_pub_key_x: int
    ephemeral_pub_key_y: int
    stealth_address_x: int
    stealth_address_y: int
    view_tag: int


@dataclass(frozen=True, slots=True)
class AuditData:
    """Auditor-encrypted sender, recipient and amount ciphertexts."""

    encrypted_sender: tuple[int, int, int, int]
    encrypted_recipient: tuple[int, int, int, int]
    encrypted_amount: tuple[int, int, int, int]


@dataclass(frozen=True, slots=True)
class TransferRequest:
    """Private transfer relay request.

    Attributes:
        nullifier: 32-byte nullifier of the spent note
        new_sender_commitment: Commitment to the sender's change note
        recipient_commitment: Commitment to the recipient's note
        stealth_data: Stealth announcement for the recipient
        audit_data: Auditor ciphertexts
        proof: Transfer proof with 4 public signals
    """

    nullifier: bytes
    new_sender_commitment: bytes
    recipient_commitment: bytes
    stealth_data: StealthData
    audit_data: AuditData
    proof: Groth16Proof

    kind: Literal["transfer"] = "transfer"


@dataclass(frozen=True, slots=True)
class WithdrawRequest:
    """Private withdraw relay request.

    Attributes:
        amount: Amount to withdraw in token base units
        nullifier: 32-byte nullifier of the spent note
        new_commitment: Commitment to the remaining balance (zero hash if none)
        recipient: Checksummed address receiving the funds
        proof: Withdraw proof with 5 public signals
    """

    amount: int
    nullifier: bytes
    new_commitment: bytes
    recipient: str
    proof: Groth16Proof

    kind: Literal["withdraw"] = "withdraw"


RelayRequest = TransferRequest | WithdrawRequest


class TxStatus(str, Enum):
    """Terminal status of a submission attempt."""

    CONFIRMED = "confirmed"
    FAILED = "failed"


@dataclass(frozen=True, slots=True)
class TxOutcome:
    """Result of one transaction submission attempt.

    An empty hash means no transaction was sent. Outcomes are never
    updated; a retry produces a new one.

    Attributes:
        hash: Transaction hash (0x-prefixed) or "" when nothing was sent
        status: CONFIRMED or FAILED
        block_number: Block the transaction was mined in
        gas_used: Gas consumed by the transaction
        error: Human readable failure reason
    """

    hash: str
    status: TxStatus
    block_number: int | None = None
    gas_used: int | None = None
    error: str | None = None

    @classmethod
    def rejected(cls, error: str) -> "TxOutcome":
        """Failure before anything was sent."""
        return cls(hash="", status=TxStatus.FAILED, error=error)

    @property
    def succeeded(self) -> bool:
        return self.status is TxStatus.CONFIRMED

    @property
    def was_sent(self) -> bool:
        return bool(self.hash)

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary for serialization."""
        return {
            "hash": self.hash,
            "status": self.status.value,
            "block_number": self.block_number,
            "gas_used": self.gas_used,
            "error": self.error,
        }


@dataclass(frozen=True, slots=True)
class RelayerIdentity:
    """Signing credential of the relayer and its derived address."""

    account: LocalAccount

    @classmethod
    def from_private_key(cls, private_key: str) -> "RelayerIdentity":
        return cls(account=Account.from_key(private_key))

    @property
    def address(self) -> str:
        return self.account.address

    def __repr__(self) -> str:
        return f"RelayerIdentity(address={self.address})"


@dataclass(frozen=True, slots=True)
class TransferInitiatedEvent:
    """A CrossChainTransferInitiated event seen on the source bridge.

    Attributes:
        tx_hash: Transaction hash that emitted the event
        block_number: Block number of the event
        burn_nonce: CCTP burn nonce
        destination_domain: CCTP domain of the destination chain
        amount: Bridged amount
        nullifier: Nullifier spent on the source chain (0x hex)
    """

    tx_hash: str
    block_number: int
    burn_nonce: int
    destination_domain: int
    amount: int
    nullifier: str

    def __str__(self) -> str:
        return (
            f"TransferInitiated(nonce={self.burn_nonce}, "
            f"domain={self.destination_domain}, "
            f"tx={self.tx_hash[:10]}...)"
        )
