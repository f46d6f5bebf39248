"""Failure taxonomy for the deployment and trade pipelines."""

from __future__ import annotations


class PipelineError(RuntimeError):
    """Base class for every failure a pipeline stage can raise."""

    kind = "pipeline_error"


class InvalidKeyFormat(PipelineError):
    """Raised when the persisted wallet secret cannot be decoded."""

    kind = "invalid_key_format"


class ParseError(PipelineError):
    """Raised when a remote response does not match its expected schema."""

    kind = "parse_error"


class UploadFailure(PipelineError):
    """Raised when metadata could not be pinned to IPFS."""

    kind = "upload_failure"


class RemoteBuildFailure(PipelineError):
    """Raised when the trade API did not return a transaction envelope."""

    kind = "remote_build_failure"


class SigningFailure(PipelineError):
    """Raised when an envelope cannot be deserialized or signed."""

    kind = "signing_failure"


class BroadcastFailure(PipelineError):
    """Raised once the broadcast retry budget is exhausted."""

    kind = "broadcast_failure"


class OnChainExecutionFailure(PipelineError):
    """Raised when a transaction landed but its instructions failed."""

    kind = "onchain_execution_failure"

    def __init__(self, message: str, signature: str) -> None:
        super().__init__(message)
        self.signature = signature


class ConfirmationTimeout(PipelineError):
    """Raised when the node gave up waiting for the target commitment.

    The transaction may still have executed; the signature is kept so the
    caller can look it up later.
    """

    kind = "confirmation_timeout"

    def __init__(self, message: str, signature: str) -> None:
        super().__init__(message)
        self.signature = signature


class UnknownError(PipelineError):
    """Wraps an unexpected exception caught at the orchestrator boundary."""

    kind = "unknown_error"

    @classmethod
    def from_exception(cls, exc: BaseException) -> "UnknownError":
        error = cls(str(exc) or "Unknown error")
        error.__cause__ = exc
        return error


__all__ = [
    "BroadcastFailure",
    "ConfirmationTimeout",
    "InvalidKeyFormat",
    "OnChainExecutionFailure",
    "ParseError",
    "PipelineError",
    "RemoteBuildFailure",
    "SigningFailure",
    "UnknownError",
    "UploadFailure",
]
