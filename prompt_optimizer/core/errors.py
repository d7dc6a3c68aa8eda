"""Error taxonomy shared by the dispatcher, orchestrator and API layer."""
from __future__ import annotations

from enum import Enum
from typing import Optional


class ErrorKind(str, Enum):
    MISSING_CREDENTIAL = "MissingCredential"
    EMPTY_RESPONSE = "EmptyResponse"
    BAD_REQUEST = "BadRequest"
    INVALID_CREDENTIAL = "InvalidCredential"
    RATE_LIMITED = "RateLimited"
    QUOTA_EXCEEDED = "QuotaExceeded"
    PROVIDER_UNAVAILABLE = "ProviderUnavailable"
    MODEL_NOT_FOUND = "ModelNotFound"
    NETWORK_ERROR = "NetworkError"
    CONTENT_BLOCKED = "ContentBlocked"
    INVALID_ARGUMENT = "InvalidArgument"


class OptimizationError(Exception):
    """A classified failure with a message that is safe to show to the user."""

    def __init__(self, kind: ErrorKind, message: str, *, status: Optional[int] = None):
        super().__init__(message)
        self.kind = kind
        self.message = message
        self.status = status

    def to_dict(self) -> dict:
        return {"kind": self.kind.value, "message": self.message}

    def __repr__(self) -> str:
        return f"OptimizationError({self.kind.value}, {self.message!r}, status={self.status})"
