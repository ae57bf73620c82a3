"""
Caller identity resolution and contract ownership checks.

Bearer tokens are resolved against the Supabase Auth REST API. Failures are
never retried; the caller has to re-authenticate.
"""

import logging
from dataclasses import dataclass
from typing import Optional

import httpx

from ..models.schemas import ContractRecord
from ..utils.errors import Forbidden, Unauthenticated

logger = logging.getLogger(__name__)

BEARER_PREFIX = "Bearer "


@dataclass(frozen=True)
class Identity:
    """An authenticated caller."""
    id: str
    email: Optional[str] = None


def parse_bearer_token(authorization: Optional[str]) -> str:
    """
    Extract the token from an Authorization header.

    Args:
        authorization: Raw header value

    Returns:
        The bearer token

    Raises:
        Unauthenticated: If the header is missing, uses another scheme, or is empty
    """
    if not authorization or not authorization.startswith(BEARER_PREFIX):
        raise Unauthenticated("Missing or invalid Authorization header")

    token = authorization[len(BEARER_PREFIX):].strip()
    if not token:
        raise Unauthenticated("Missing or invalid Authorization header")
    return token


def authorize_owner(identity: Identity, record: ContractRecord) -> None:
    """
    Ensure the caller owns the contract.

    Raises:
        Forbidden: If the identity is not the record owner
    """
    if identity.id != record.owner_id:
        logger.warning(
            f"Identity {identity.id} denied access to contract {record.id}"
        )
        raise Forbidden("Forbidden")


class SupabaseIdentityService:
    """Resolves access tokens to users via the Supabase Auth API."""

    def __init__(
        self,
        base_url: str,
        anon_key: str,
        client: Optional[httpx.AsyncClient] = None
    ):
        """
        Initialize the identity service.

        Args:
            base_url: Supabase project URL
            anon_key: Public anon key sent as the apikey header
            client: Optional preconfigured httpx client (used in tests)
        """
        self.base_url = base_url.rstrip("/")
        self._anon_key = anon_key
        self._client = client or httpx.AsyncClient()

    async def get_user(self, token: str) -> Optional[Identity]:
        """
        Look up the user behind an access token.

        Returns:
            Identity, or None if the token is invalid, expired, or cannot be verified
        """
        try:
            response = await self._client.get(
                f"{self.base_url}/auth/v1/user",
                headers={
                    "Authorization": f"{BEARER_PREFIX}{token}",
                    "apikey": self._anon_key,
                },
            )
        except httpx.HTTPError as e:
            logger.warning(f"Identity service unreachable: {e}")
            return None

        if response.status_code != 200:
            logger.info(f"Token rejected by identity service ({response.status_code})")
            return None

        try:
            user = response.json()
        except ValueError:
            return None

        if not isinstance(user, dict) or not user.get("id"):
            return None

        return Identity(id=str(user["id"]), email=user.get("email"))

    async def resolve(self, authorization: Optional[str]) -> Identity:
        """
        Resolve an Authorization header to an identity.

        Raises:
            Unauthenticated: If the header is malformed or the token does not resolve
        """
        token = parse_bearer_token(authorization)
        identity = await self.get_user(token)
        if identity is None:
            raise Unauthenticated("Invalid or expired token")
        return identity

    async def close(self) -> None:
        await self._client.aclose()
