"""
FDC Attestation Errors
======================

Every failure an attestation can end in. Each error carries a `kind` that is
written to the status store next to the message, so callers polling status can
tell a timeout from an upstream rejection without parsing text.

Kinds:
- configuration:     missing public URL, unknown registry name (never retried)
- upstream_rejected: verifier/DA returned a non-success or malformed body
- network:           connection error in a one-shot stage
- submission:        transaction reverted / failed to mine
- receipt_missing:   node returned no receipt or block after success
- timeout:           finalization or proof polling exhausted its budget
- decode:            proof bytes do not match the Web2Json layout
- cancelled:         caller cancelled the attestation
"""

from typing import Optional


class ErrorKind:
    CONFIGURATION = "configuration"
    UPSTREAM_REJECTED = "upstream_rejected"
    NETWORK = "network"
    SUBMISSION = "submission"
    RECEIPT_MISSING = "receipt_missing"
    TIMEOUT = "timeout"
    DECODE = "decode"
    CANCELLED = "cancelled"


class AttestationError(Exception):
    """Base class for attestation failures."""

    kind = ErrorKind.UPSTREAM_REJECTED

    def __init__(self, message: str, attestation_id: Optional[str] = None):
        super().__init__(message)
        self.message = message
        self.attestation_id = attestation_id


class ConfigurationError(AttestationError):
    kind = ErrorKind.CONFIGURATION


class UpstreamRejectedError(AttestationError):
    """
    Upstream service answered with a non-success status.

    `body` holds the raw response text, already truncated.
    """

    kind = ErrorKind.UPSTREAM_REJECTED

    def __init__(self, message: str, status: Optional[int] = None, body: str = "",
                 attestation_id: Optional[str] = None):
        super().__init__(message, attestation_id)
        self.status = status
        self.body = body


class NoEncodedRequestError(UpstreamRejectedError):
    """Verifier reported success but returned no abiEncodedRequest."""


class SubmissionError(AttestationError):
    kind = ErrorKind.SUBMISSION


class ReceiptMissingError(SubmissionError):
    kind = ErrorKind.RECEIPT_MISSING


class FinalizationTimeoutError(AttestationError):
    kind = ErrorKind.TIMEOUT


class ProofUnavailableError(AttestationError):
    """DA layer never produced a proof within the attempt budget."""

    kind = ErrorKind.TIMEOUT


class ProofDecodeError(AttestationError):
    kind = ErrorKind.DECODE


def truncate_body(text: str, limit: int) -> str:
    if len(text) <= limit:
        return text
    return text[:limit] + f"... [{len(text) - limit} more chars]"
