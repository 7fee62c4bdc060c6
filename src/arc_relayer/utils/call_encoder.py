"""
Call encoding utilities for the privacy pool.

This module converts typed relay requests into the exact argument shape of
the pool's privateTransfer and withdraw functions. Transfer and withdraw
share one code path and differ only in function name and public signal count.
"""

import logging
from typing import Any, Union

from hexbytes import HexBytes
from web3 import Web3

from ..models import (
    AuditData,
    Groth16Proof,
    RelayRequest,
    StealthData,
    TransferRequest,
    WithdrawRequest,
)

logger = logging.getLogger(__name__)

UINT256_MAX = 2**256 - 1


class CallEncoder:
    """Utilities for encoding relay requests into contract call arguments."""

    # Public signal count of each circuit
    PUBLIC_SIGNAL_COUNTS: dict[str, int] = {
        "transfer": 4,
        "withdraw": 5,
    }

    FUNCTION_NAMES: dict[str, str] = {
        "transfer": "privateTransfer",
        "withdraw": "withdraw",
    }

    @staticmethod
    def to_uint256(value: Union[int, str]) -> int:
        """
        Normalize a big integer given as int, decimal string or 0x hex string.

        Args:
            value: Value to convert

        Returns:
            The integer value

        Raises:
            ValueError: If the value is not an integer or is outside uint256 range
        """
        if isinstance(value, bool):
            raise ValueError(f"Expected an integer, got {value!r}")

        match value:
            case int():
                number = value
            case str() if value.strip():
                number = int(value.strip(), 0) if value.strip().lower().startswith("0x") else int(value.strip())
            case _:
                raise ValueError(f"Expected an integer, got {value!r}")

        if not 0 <= number <= UINT256_MAX:
            raise ValueError(f"Value out of uint256 range: {number}")
        return number

    @staticmethod
    def to_bytes32(value: Union[HexBytes, bytes, str]) -> bytes:
        """
        Normalize a 32-byte value given as bytes or 0x hex string.

        Raises:
            ValueError: If the value is not exactly 32 bytes
        """
        if isinstance(value, (bytes, bytearray)):
            data = bytes(value)
        else:
            data = Web3.to_bytes(hexstr=value)

        if len(data) != 32:
            raise ValueError(f"Expected 32 bytes, got {len(data)}")
        return data

    @classmethod
    def _uint_tuple(cls, values: Any, arity: int, name: str) -> list[int]:
        if len(values) != arity:
            raise ValueError(f"{name} must have {arity} elements, got {len(values)}")
        return [cls.to_uint256(v) for v in values]

    @classmethod
    def encode_proof(cls, proof: Groth16Proof, kind: str) -> dict[str, Any]:
        """
        Encode a Groth16 proof as the contract's proof struct.

        Args:
            proof: The proof to encode
            kind: "transfer" or "withdraw", selects the public signal count

        Returns:
            Dict with pA, pB, pC and publicSignals
        """
        if kind not in cls.PUBLIC_SIGNAL_COUNTS:
            raise ValueError(f"Unknown request kind: {kind}")

        if len(proof.p_b) != 2:
            raise ValueError(f"pB must have 2 rows, got {len(proof.p_b)}")

        return {
            'pA': cls._uint_tuple(proof.p_a, 2, "pA"),
            'pB': [cls._uint_tuple(row, 2, "pB row") for row in proof.p_b],
            'pC': cls._uint_tuple(proof.p_c, 2, "pC"),
            'publicSignals': cls._uint_tuple(
                proof.public_signals, cls.PUBLIC_SIGNAL_COUNTS[kind], f"{kind} publicSignals"
            ),
        }

    @classmethod
    def encode_stealth_data(cls, stealth: StealthData) -> dict[str, int]:
        return {
            'ephemeralPubKeyX': cls.to_uint256(stealth.ephemeral_pub_key_x),
            'ephemeralPubKeyY': cls.to_uint256(stealth.ephemeral_pub_key_y),
            'stealthAddressX': cls.to_uint256(stealth.stealth_address_x),
            'stealthAddressY': cls.to_uint256(stealth.stealth_address_y),
            'viewTag': cls.to_uint256(stealth.view_tag),
        }

    @classmethod
    def encode_audit_data(cls, audit: AuditData) -> dict[str, list[int]]:
        return {
            'encryptedSender': cls._uint_tuple(audit.encrypted_sender, 4, "encryptedSender"),
            'encryptedRecipient': cls._uint_tuple(audit.encrypted_recipient, 4, "encryptedRecipient"),
            'encryptedAmount': cls._uint_tuple(audit.encrypted_amount, 4, "encryptedAmount"),
        }

    @classmethod
    def encode_relay_call(cls, req: RelayRequest) -> tuple[str, list[Any]]:
        """
        Build the pool function name and arguments for a relay request.

        Args:
            req: Transfer or withdraw request

        Returns:
            Tuple of (function name, positional arguments)

        Raises:
            ValueError: If any field has the wrong shape or width
        """
        proof = cls.encode_proof(req.proof, req.kind)

        match req:
            case TransferRequest():
                args = [
                    cls.to_bytes32(req.nullifier),
                    cls.to_bytes32(req.new_sender_commitment),
                    cls.to_bytes32(req.recipient_commitment),
                    cls.encode_stealth_data(req.stealth_data),
                    cls.encode_audit_data(req.audit_data),
                    proof,
                ]
            case WithdrawRequest():
                if not Web3.is_address(req.recipient):
                    raise ValueError(f"Invalid recipient address: {req.recipient}")
                args = [
                    cls.to_uint256(req.amount),
                    cls.to_bytes32(req.nullifier),
                    cls.to_bytes32(req.new_commitment),
                    Web3.to_checksum_address(req.recipient),
                    proof,
                ]
            case _:
                raise ValueError(f"Unsupported relay request: {type(req).__name__}")

        function_name = cls.FUNCTION_NAMES[req.kind]
        logger.debug(f"Encoded {function_name} call with {len(proof['publicSignals'])} public signals")
        return function_name, args
