"""
Source event extraction.

Locates the MessageSent log emitted by the source message transmitter in a
transaction receipt and decodes the raw message bytes it carries.
"""

import logging
from collections.abc import Mapping
from typing import Any

from eth_abi import decode as abi_decode
from hexbytes import HexBytes
from web3 import Web3

from .models import Message

logger = logging.getLogger(__name__)

# keccak256("MessageSent(bytes)")
MESSAGE_SENT_TOPIC: HexBytes = Web3.keccak(text="MessageSent(bytes)")


def _as_bytes(value: HexBytes | bytes | str) -> bytes:
    if isinstance(value, (bytes, bytearray)):
        return bytes(value)
    return Web3.to_bytes(hexstr=value)


def extract_message(
    receipt: Mapping[str, Any],
    emitter_address: str,
    event_topic: HexBytes | bytes | str = MESSAGE_SENT_TOPIC,
) -> Message | None:
    """
    Find and decode the cross-chain message in a transaction receipt.

    Logs are scanned in order; the first one emitted by `emitter_address`
    (case-insensitive) whose first topic equals `event_topic` is decoded as a
    single ABI `bytes` value.

    Args:
        receipt: Transaction receipt with an ordered `logs` list
        emitter_address: Message transmitter address on the source chain
        event_topic: Event signature hash to match

    Returns:
        The decoded Message, or None when the transaction carries no
        cross-chain message (e.g. a purely local transfer)
    """
    expected_topic = _as_bytes(event_topic)
    emitter = emitter_address.lower()
    tx_hash = receipt.get('transactionHash')
    tx_hash_hex = Web3.to_hex(tx_hash) if isinstance(tx_hash, (bytes, bytearray)) else tx_hash

    for i, log in enumerate(receipt.get('logs', [])):
        if str(log.get('address', '')).lower() != emitter:
            continue

        topics = log.get('topics', [])
        if not topics or _as_bytes(topics[0]) != expected_topic:
            continue

        (body,) = abi_decode(['bytes'], _as_bytes(log.get('data', b'')))
        message = Message(body=body, source_tx_hash=tx_hash_hex, log_index=i)
        logger.info(f"Found MessageSent at transaction-local index {i}, length: {len(body)} bytes")
        return message

    logger.info("No MessageSent event found. This may be a local transfer, not cross-chain.")
    return None


def content_hash(body: bytes) -> HexBytes:
    """keccak256 of the message bytes; the oracle indexes attestations by it."""
    return Web3.keccak(body)
