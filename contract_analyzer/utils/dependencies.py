"""
FastAPI dependency injection for services.

Service instances are created during app startup and registered here; endpoints
receive them through Depends(). Tests register fakes with the same setters.
"""

from typing import Optional

from fastapi import Depends, Header, HTTPException

from ..services.identity import Identity

# Service instances - set during app startup
_analysis_service = None
_identity_service = None
_contract_store = None


def set_analysis_service(service) -> None:
    """Set the global analysis service instance."""
    global _analysis_service
    _analysis_service = service


def set_identity_service(service) -> None:
    """Set the global identity service instance."""
    global _identity_service
    _identity_service = service


def set_contract_store(store) -> None:
    """Set the global contract store instance."""
    global _contract_store
    _contract_store = store


def reset_services() -> None:
    """Forget every registered service (shutdown and tests)."""
    set_analysis_service(None)
    set_identity_service(None)
    set_contract_store(None)


def _unavailable(message: str) -> HTTPException:
    return HTTPException(
        status_code=503,
        detail={
            "error": "ServiceUnavailable",
            "message": message
        }
    )


def get_analysis_service():
    """
    FastAPI dependency for the analysis service.

    Returns:
        ContractAnalysisService instance

    Raises:
        HTTPException: 503 if the service is not initialized
    """
    if _analysis_service is None:
        raise _unavailable("Analysis service not initialized")
    return _analysis_service


def get_identity_service():
    """
    FastAPI dependency for the identity service.

    Raises:
        HTTPException: 503 if the service is not initialized
    """
    if _identity_service is None:
        raise _unavailable("Identity service not initialized")
    return _identity_service


def get_contract_store():
    """Contract store, or None before startup (used by health checks)."""
    return _contract_store


async def get_current_identity(
    authorization: Optional[str] = Header(None),
    identity_service=Depends(get_identity_service)
) -> Identity:
    """
    Resolve the caller from the Authorization header.

    Raises:
        Unauthenticated: If the header is missing or the token does not resolve
    """
    return await identity_service.resolve(authorization)
