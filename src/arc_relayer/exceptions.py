"""
Exception types raised by the relay pipeline.

Only conditions the caller has to act on are raised. Everything the
submitter can classify is returned as a TxOutcome instead.
"""


class RelayerError(Exception):
    """Base class for relayer errors."""


class AttestationTimeout(RelayerError):
    """The attestation oracle did not report a complete attestation in time.

    The message may still become attestable later, so callers are free to
    run the relay again.
    """

    def __init__(self, content_hash: str, attempts: int) -> None:
        self.content_hash = content_hash
        self.attempts = attempts
        super().__init__(
            f"Attestation timeout for {content_hash} after {attempts} attempts - "
            "message may not have been processed yet"
        )


class SourceTxNotFound(RelayerError):
    """The source transaction receipt could not be found."""

    def __init__(self, tx_hash: str) -> None:
        self.tx_hash = tx_hash
        super().__init__(f"Source transaction not found: {tx_hash}")


class InvalidRelayRequest(RelayerError, ValueError):
    """A relay request payload failed validation."""
