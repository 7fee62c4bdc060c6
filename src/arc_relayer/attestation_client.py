"""
Attestation oracle client.

Polls the attestation service (Circle Iris style) for the attestation of a
message identified by its content hash. Transport faults and non-terminal
statuses are absorbed by a bounded, fixed-cadence poll loop; only the
exhausted budget is reported to the caller.
"""

import asyncio
import logging
from typing import Any

import httpx
from hexbytes import HexBytes
from web3 import Web3

from .config import AttestationConfig
from .exceptions import AttestationTimeout
from .models import AttestationResult, AttestationStatus

logger = logging.getLogger(__name__)


class AttestationClient:
    """Client for the attestation oracle's status endpoint."""

    def __init__(self, config: AttestationConfig | None = None) -> None:
        """
        Initialize the AttestationClient.

        Args:
            config: Attestation settings (API URL, poll interval, attempt budget)
        """
        self.config = config or AttestationConfig()
        self.api_url = self.config.api_url.rstrip('/')

    @staticmethod
    def _normalize_hash(content_hash: HexBytes | bytes | str) -> str:
        if isinstance(content_hash, (bytes, bytearray)):
            return Web3.to_hex(content_hash)
        return content_hash if content_hash.startswith('0x') else f"0x{content_hash}"

    async def _get_status(self, content_hash: str) -> dict[str, Any]:
        """GET {api_url}/{content_hash} and return the decoded JSON body."""
        async with httpx.AsyncClient() as client:
            url = f"{self.api_url}/{content_hash}"
            logger.debug(f"Requesting attestation status from {url}")
            response: httpx.Response = await client.get(url, timeout=self.config.request_timeout)
            response.raise_for_status()
            return response.json()

    async def check_attestation(self, content_hash: HexBytes | bytes | str) -> AttestationResult:
        """
        Poll the oracle once.

        Never raises: transport, HTTP status and decoding problems are
        reported as an ERROR result.

        Args:
            content_hash: keccak256 of the message bytes

        Returns:
            AttestationResult describing this single poll
        """
        content_hash = self._normalize_hash(content_hash)

        try:
            data = await self._get_status(content_hash)
        except (httpx.HTTPError, ValueError) as e:
            return AttestationResult(status=AttestationStatus.ERROR, error=str(e))

        if not isinstance(data, dict):
            return AttestationResult(
                status=AttestationStatus.ERROR,
                error=f"Unexpected response body: {data!r}"
            )

        raw_status = data.get('status')

        match raw_status:
            case AttestationStatus.COMPLETE.value:
                attestation = data.get('attestation')
                if not attestation or attestation == 'PENDING':
                    # Reported complete without a payload: keep polling
                    return AttestationResult(status=AttestationStatus.OTHER, raw_status=raw_status)
                if not isinstance(attestation, str):
                    return AttestationResult(
                        status=AttestationStatus.ERROR,
                        raw_status=raw_status,
                        error=f"Invalid attestation type: {type(attestation).__name__}"
                    )
                try:
                    payload = Web3.to_bytes(hexstr=attestation)
                except ValueError as e:
                    return AttestationResult(
                        status=AttestationStatus.ERROR,
                        raw_status=raw_status,
                        error=f"Invalid attestation encoding: {e}"
                    )
                return AttestationResult(
                    status=AttestationStatus.COMPLETE,
                    attestation=payload,
                    raw_status=raw_status
                )
            case AttestationStatus.PENDING_CONFIRMATIONS.value:
                return AttestationResult(
                    status=AttestationStatus.PENDING_CONFIRMATIONS,
                    raw_status=raw_status
                )
            case _:
                return AttestationResult(status=AttestationStatus.OTHER, raw_status=raw_status)

    async def fetch_attestation(self, content_hash: HexBytes | bytes | str) -> bytes:
        """
        Poll until the attestation is complete or the attempt budget is spent.

        Each unsuccessful poll is followed by the fixed poll interval, so
        the default budget (30 x 10s) gives up after about 300 seconds.

        Args:
            content_hash: keccak256 of the message bytes

        Returns:
            The attestation bytes

        Raises:
            AttestationTimeout: If no complete attestation arrived within max_attempts polls
        """
        content_hash = self._normalize_hash(content_hash)
        max_attempts = self.config.max_attempts
        interval = self.config.poll_interval

        logger.info(f"Fetching attestation for: {content_hash}")

        for attempt in range(1, max_attempts + 1):
            result = await self.check_attestation(content_hash)

            match result.status:
                case AttestationStatus.COMPLETE:
                    logger.info(f"Attestation received for {content_hash[:10]}... (attempt {attempt})")
                    return result.attestation
                case AttestationStatus.PENDING_CONFIRMATIONS:
                    logger.info(f"Attestation pending (attempt {attempt}/{max_attempts})")
                case AttestationStatus.ERROR:
                    logger.error(f"Error fetching attestation (attempt {attempt}/{max_attempts}): {result.error}")
                case _:
                    # Unrecognized statuses are retried within the same budget
                    logger.warning(f"Attestation status: {result.raw_status} (attempt {attempt}/{max_attempts})")

            await asyncio.sleep(interval)

        raise AttestationTimeout(content_hash, max_attempts)
