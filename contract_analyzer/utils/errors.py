"""
Exceptions raised by the contract analysis pipeline.

Every error carries the HTTP status the API layer responds with. Errors raised
before a record enters "analyzing" leave it untouched; storage and extraction
failures after that point are persisted as the record's error state.
"""

from typing import Any, Optional


class ContractAnalysisError(Exception):
    """Base exception for all contract analysis errors."""

    status_code = 500

    def __init__(self, message: str, details: Optional[Any] = None) -> None:
        """
        Initialize the exception.

        Args:
            message: Error message returned to the caller
            details: Optional extra context included in the error response
        """
        super().__init__(message)
        self.message = message
        self.details = details

    def __str__(self) -> str:
        return self.message


class Unauthenticated(ContractAnalysisError):
    """Missing, malformed, or unresolvable bearer credential."""

    status_code = 401


class Forbidden(ContractAnalysisError):
    """Caller is not the owner of the contract."""

    status_code = 403


class NotFound(ContractAnalysisError):
    """No contract record exists for the given id."""

    status_code = 404


class InputInvalid(ContractAnalysisError):
    """Request body is missing required fields or is not valid JSON."""

    status_code = 400


class StorageUnavailable(ContractAnalysisError):
    """Stored document is missing or the blob store is unreachable."""


class ExtractionFailed(ContractAnalysisError):
    """Text extraction or the completion service did not produce a usable result."""


class InvalidTransition(ContractAnalysisError):
    """A lifecycle transition the state machine does not allow."""

    def __init__(self, current: str, target: str) -> None:
        super().__init__(
            f"Cannot transition contract from '{current}' to '{target}'",
            {"current": current, "target": target},
        )
        self.current = current
        self.target = target
