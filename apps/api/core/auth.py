"""Centralized authentication dependencies.

Provides the per-request async Supabase client (user JWT, RLS enforced)
and resolves the caller's family membership. Everything downstream of the
HTTP layer receives a plain FamilyContext and never touches tokens.
"""

from dataclasses import dataclass

from fastapi import Depends, Header
from supabase import AsyncClient, acreate_client

from apps.api.core.config import Settings, get_settings, settings as _settings
from apps.api.core.errors import AuthenticationError, ForbiddenError


@dataclass(frozen=True)
class FamilyContext:
    """The tenant boundary every ledger operation is scoped to."""

    family_id: str
    user_id: str
    role: str = "member"


def get_app_settings() -> Settings:
    return _settings if _settings is not None else get_settings()


async def get_user_token(authorization: str = Header(default="")) -> str:
    """Extract Bearer token from Authorization header.

    Returns the raw JWT string.
    """
    if not authorization.startswith("Bearer "):
        raise AuthenticationError(
            "Missing or invalid Authorization header. Expected: Bearer <token>"
        )

    token = authorization[7:].strip()
    if not token:
        raise AuthenticationError("Missing bearer token")
    return token


async def get_user_client(
    token: str = Depends(get_user_token),
    settings: Settings = Depends(get_app_settings),
) -> AsyncClient:
    """Provide an async Supabase client authenticated with the user's JWT.

    RLS policies will be enforced for all queries.

    Note: We pass an empty string as the refresh token because the API
    is stateless: each request carries a fresh token from the client.
    The backend never refreshes tokens.
    """
    client = await acreate_client(settings.SUPABASE_URL, settings.SUPABASE_ANON_KEY)
    await client.auth.set_session(token, "")
    return client


async def get_family_context(client: AsyncClient = Depends(get_user_client)) -> FamilyContext:
    """Resolve the caller's user id and family membership.

    Raises AuthenticationError for an invalid token and ForbiddenError for
    a user that belongs to no family.
    """
    user_response = await client.auth.get_user()
    if not user_response or not user_response.user:
        raise AuthenticationError("Invalid bearer token")

    user_id = user_response.user.id
    result = await (
        client.table("family_member")
        .select("family_id, role")
        .eq("user_id", user_id)
        .limit(1)
        .execute()
    )
    if not result.data:
        raise ForbiddenError("You are authenticated but not assigned to a family")

    membership = result.data[0]
    return FamilyContext(
        family_id=str(membership["family_id"]),
        user_id=str(user_id),
        role=str(membership.get("role") or "member"),
    )
