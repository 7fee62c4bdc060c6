"""
Relay request validation.

Parses untrusted JSON-shaped payloads (as produced by wallets and the SDK)
into typed relay requests. Every shape problem is reported as an
InvalidRelayRequest naming the offending field, before any network call
is made.
"""

import re
from collections.abc import Mapping, Sequence
from typing import Any

from web3 import Web3

from .exceptions import InvalidRelayRequest
from .models import (
    AuditData,
    Groth16Proof,
    RelayRequest,
    StealthData,
    TransferRequest,
    WithdrawRequest,
)
from .utils.call_encoder import CallEncoder

BYTES32_PATTERN = re.compile(r"^0x[0-9a-fA-F]{64}$")
ZERO_HASH = "0x" + "00" * 32
ZERO_ADDRESS = "0x" + "00" * 20


def _big_int(value: Any, error: str) -> int:
    if not isinstance(value, (str, int)) or isinstance(value, bool):
        raise InvalidRelayRequest(error)
    try:
        return CallEncoder.to_uint256(value)
    except ValueError:
        raise InvalidRelayRequest(error) from None


def _bytes32(value: Any, field_name: str) -> bytes:
    if not isinstance(value, str) or not BYTES32_PATTERN.match(value):
        raise InvalidRelayRequest(f"Invalid {field_name} format")
    return Web3.to_bytes(hexstr=value)


def _is_list(value: Any, length: int | None = None) -> bool:
    if isinstance(value, (str, bytes)) or not isinstance(value, Sequence):
        return False
    return length is None or len(value) == length


def parse_proof(proof: Any, expected_signals: int, kind: str) -> Groth16Proof:
    """
    Validate and convert a Groth16 proof payload.

    Args:
        proof: Mapping with pA, pB, pC and publicSignals
        expected_signals: Public signal count of the circuit
        kind: Request kind, used in the error message

    Returns:
        Groth16Proof with integer coordinates
    """
    if not isinstance(proof, Mapping):
        raise InvalidRelayRequest("Missing proof")

    p_a = proof.get('pA')
    if not _is_list(p_a, 2):
        raise InvalidRelayRequest("Invalid pA format")
    p_a = tuple(_big_int(v, "Invalid pA value") for v in p_a)

    p_b = proof.get('pB')
    if not _is_list(p_b, 2):
        raise InvalidRelayRequest("Invalid pB format")
    rows = []
    for row in p_b:
        if not _is_list(row, 2):
            raise InvalidRelayRequest("Invalid pB row format")
        rows.append(tuple(_big_int(v, "Invalid pB value") for v in row))

    p_c = proof.get('pC')
    if not _is_list(p_c, 2):
        raise InvalidRelayRequest("Invalid pC format")
    p_c = tuple(_big_int(v, "Invalid pC value") for v in p_c)

    signals = proof.get('publicSignals')
    if not _is_list(signals) or len(signals) == 0:
        raise InvalidRelayRequest("Invalid publicSignals format")
    signals = tuple(_big_int(v, "Invalid publicSignals value") for v in signals)

    if len(signals) != expected_signals:
        raise InvalidRelayRequest(
            f"{kind.capitalize()} proof must have {expected_signals} public signals"
        )

    return Groth16Proof(p_a=p_a, p_b=tuple(rows), p_c=p_c, public_signals=signals)


def parse_transfer_request(payload: Mapping[str, Any]) -> TransferRequest:
    nullifier = _bytes32(payload.get('nullifier'), "nullifier")
    new_sender_commitment = _bytes32(payload.get('newSenderCommitment'), "newSenderCommitment")
    recipient_commitment = _bytes32(payload.get('recipientCommitment'), "recipientCommitment")

    stealth = payload.get('stealthData')
    if not isinstance(stealth, Mapping):
        raise InvalidRelayRequest("Missing stealthData")
    stealth_data = StealthData(
        ephemeral_pub_key_x=_big_int(stealth.get('ephemeralPubKeyX'), "Invalid ephemeralPubKeyX"),
        ephemeral_pub_key_y=_big_int(stealth.get('ephemeralPubKeyY'), "Invalid ephemeralPubKeyY"),
        stealth_address_x=_big_int(stealth.get('stealthAddressX'), "Invalid stealthAddressX"),
        stealth_address_y=_big_int(stealth.get('stealthAddressY'), "Invalid stealthAddressY"),
        view_tag=_big_int(stealth.get('viewTag'), "Invalid viewTag"),
    )

    audit = payload.get('auditData')
    if not isinstance(audit, Mapping):
        raise InvalidRelayRequest("Missing auditData")
    ciphertexts = {}
    for name in ('encryptedSender', 'encryptedRecipient', 'encryptedAmount'):
        value = audit.get(name)
        if not _is_list(value, 4):
            raise InvalidRelayRequest(f"Invalid {name}")
        ciphertexts[name] = tuple(_big_int(v, f"Invalid {name}") for v in value)

    audit_data = AuditData(
        encrypted_sender=ciphertexts['encryptedSender'],
        encrypted_recipient=ciphertexts['encryptedRecipient'],
        encrypted_amount=ciphertexts['encryptedAmount'],
    )

    proof = parse_proof(payload.get('proof'), CallEncoder.PUBLIC_SIGNAL_COUNTS["transfer"], "transfer")

    return TransferRequest(
        nullifier=nullifier,
        new_sender_commitment=new_sender_commitment,
        recipient_commitment=recipient_commitment,
        stealth_data=stealth_data,
        audit_data=audit_data,
        proof=proof,
    )


def parse_withdraw_request(payload: Mapping[str, Any]) -> WithdrawRequest:
    amount = _big_int(payload.get('amount'), "Invalid amount")
    if amount <= 0:
        raise InvalidRelayRequest("Amount must be positive")

    nullifier = _bytes32(payload.get('nullifier'), "nullifier")

    # The zero hash marks a full withdrawal with no change note
    new_commitment = payload.get('newCommitment')
    if new_commitment == ZERO_HASH:
        new_commitment = bytes(32)
    else:
        new_commitment = _bytes32(new_commitment, "newCommitment")

    recipient = payload.get('recipient')
    if not isinstance(recipient, str) or not Web3.is_address(recipient):
        raise InvalidRelayRequest("Invalid recipient address")
    if recipient.lower() == ZERO_ADDRESS:
        raise InvalidRelayRequest("Recipient cannot be zero address")

    proof = parse_proof(payload.get('proof'), CallEncoder.PUBLIC_SIGNAL_COUNTS["withdraw"], "withdraw")

    return WithdrawRequest(
        amount=amount,
        nullifier=nullifier,
        new_commitment=new_commitment,
        recipient=Web3.to_checksum_address(recipient),
        proof=proof,
    )


def parse_relay_request(payload: Any) -> RelayRequest:
    """
    Parse a relay request payload.

    Args:
        payload: Decoded JSON object with a "type" of "transfer" or "withdraw"

    Returns:
        TransferRequest or WithdrawRequest

    Raises:
        InvalidRelayRequest: With a reason naming the first invalid field
    """
    if not isinstance(payload, Mapping):
        raise InvalidRelayRequest("Invalid request format")

    match payload.get('type'):
        case "transfer":
            return parse_transfer_request(payload)
        case "withdraw":
            return parse_withdraw_request(payload)
        case _:
            raise InvalidRelayRequest("Invalid request type. Must be 'transfer' or 'withdraw'")
