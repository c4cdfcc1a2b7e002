"""
Notivate Backend - Identity Resolution (Supabase)
===================================================

What:  Turns a bearer token into a CallerContext {user_id, email, tier}.
How:   Verifies the token with Supabase Auth (GET {SUPABASE_URL}/auth/v1/user)
       over a shared httpx.AsyncClient, then reads the subscription tier from
       `user_profiles`. Signup, login and token issuance stay with Supabase.
Who:   dependencies.get_caller (every authenticated route).

Tier resolution:
    profile present   → its subscription_tier
    profile missing   → free
    profile store down → free (logged); the quota check that follows still
                         guards the free tier and fails closed on its own
"""

import logging
import uuid
from dataclasses import dataclass
from typing import Optional

import httpx
from sqlalchemy.exc import SQLAlchemyError

from notivate.exceptions import AuthenticationError
from notivate.models.profile import SubscriptionTier
from notivate.repositories.profile_repository import ProfileRepository

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class CallerContext:
    """The authenticated caller, passed explicitly into the pipeline."""

    user_id: uuid.UUID
    email: Optional[str] = None
    subscription_tier: SubscriptionTier = SubscriptionTier.FREE

    @property
    def is_premium(self) -> bool:
        return self.subscription_tier == SubscriptionTier.PREMIUM


def parse_bearer_token(authorization: Optional[str]) -> str:
    """
    Extracts the token from an `Authorization: Bearer <token>` header value.

    Raises:
        AuthenticationError: header missing or not a bearer credential.
    """
    if not authorization:
        raise AuthenticationError()
    scheme, _, token = authorization.partition(" ")
    if scheme.lower() != "bearer" or not token.strip():
        raise AuthenticationError()
    return token.strip()


class SupabaseIdentityProvider:
    def __init__(
        self,
        http_client: httpx.AsyncClient,
        supabase_url: str,
        service_key: str,
        profiles: ProfileRepository,
    ):
        self._http = http_client
        self._user_endpoint = f"{supabase_url.rstrip('/')}/auth/v1/user"
        self._service_key = service_key
        self._profiles = profiles

    async def authenticate(self, token: str) -> CallerContext:
        """
        Raises:
            AuthenticationError: the token is rejected, the identity service
                is unreachable, or its answer carries no usable user id.
        """
        try:
            response = await self._http.get(
                self._user_endpoint,
                headers={
                    "Authorization": f"Bearer {token}",
                    "apikey": self._service_key,
                },
            )
        except httpx.HTTPError as e:
            logger.warning("Identity provider unreachable: %s: %s", type(e).__name__, e)
            raise AuthenticationError(
                message="Authentication failed",
                context={"error_type": type(e).__name__},
            ) from e

        if response.status_code != 200:
            logger.info("Token rejected by identity provider (status=%d)", response.status_code)
            raise AuthenticationError(
                message="Invalid or expired token",
                context={"status": response.status_code},
            )

        try:
            payload = response.json()
            user_id = uuid.UUID(str(payload["id"]))
        except (ValueError, KeyError, TypeError) as e:
            logger.warning("Identity provider returned an unusable user payload: %s", e)
            raise AuthenticationError(message="Invalid or expired token") from e

        tier = await self._resolve_tier(user_id)
        return CallerContext(user_id=user_id, email=payload.get("email"), subscription_tier=tier)

    async def _resolve_tier(self, user_id: uuid.UUID) -> SubscriptionTier:
        try:
            return await self._profiles.get_subscription_tier(user_id)
        except SQLAlchemyError as e:
            logger.error("Profile lookup failed for user %s, treating as free: %s", user_id, e)
            return SubscriptionTier.FREE
