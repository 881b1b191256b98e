"""User accounts: sign-in upsert, profile edits and account deletion."""
from __future__ import annotations

import logging
from typing import Optional

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from homegame.errors import NotFoundError, ValidationError
from homegame.models import User, utcnow
from homegame.models.user import PROVIDERS

logger = logging.getLogger("homegame.users")

# Apple only sends the name on the very first sign-in
PLACEHOLDER_NAMES = ("", "Apple User")


def _split_name(full_name: str) -> tuple[Optional[str], Optional[str]]:
    parts = full_name.split(None, 1)
    if not parts:
        return None, None
    return parts[0], parts[1] if len(parts) > 1 else None


async def get_user(session: AsyncSession, user_id: int) -> User:
    user = await session.get(User, user_id)
    if user is None:
        raise NotFoundError("User not found")
    return user


async def upsert_user(
    session: AsyncSession,
    email: str,
    full_name: Optional[str] = None,
    provider: str = "google",
    provider_id: Optional[str] = None,
    profile_image_url: Optional[str] = None,
    first_name: Optional[str] = None,
    last_name: Optional[str] = None,
) -> tuple[User, bool]:
    """Create or refresh the user behind a sign-in. Returns (user, created)."""
    email = (email or "").strip().lower()
    if not email:
        raise ValidationError("Email is required")
    if provider not in PROVIDERS:
        raise ValidationError(f"Unsupported provider: {provider}")
    full_name = (full_name or "").strip()

    user = None
    if provider_id:
        result = await session.execute(select(User).where(User.provider_id == provider_id))
        user = result.scalar_one_or_none()
    if user is None:
        result = await session.execute(select(User).where(User.email == email))
        user = result.scalar_one_or_none()

    now = utcnow()
    if user is None:
        if not first_name and not last_name:
            first_name, last_name = _split_name(full_name)
        user = User(
            email=email,
            full_name=full_name or email.split("@")[0],
            first_name=first_name,
            last_name=last_name,
            profile_image_url=profile_image_url,
            provider=provider,
            provider_id=provider_id,
            last_login_at=now,
        )
        session.add(user)
        await session.commit()
        logger.info("User %s created (%s)", user.id, provider)
        return user, True

    if full_name and (user.full_name or "").strip() in PLACEHOLDER_NAMES:
        user.full_name = full_name
        user.first_name, user.last_name = first_name or None, last_name or None
        if not user.first_name and not user.last_name:
            user.first_name, user.last_name = _split_name(full_name)
    if profile_image_url:
        user.profile_image_url = profile_image_url
    if provider_id and not user.provider_id:
        user.provider_id = provider_id
        user.provider = provider
    user.last_login_at = now
    await session.commit()
    return user, False


async def update_user(
    session: AsyncSession,
    user_id: int,
    full_name: Optional[str] = None,
    profile_image_url: Optional[str] = None,
) -> User:
    if full_name is None and profile_image_url is None:
        raise ValidationError("No fields to update provided")
    user = await get_user(session, user_id)
    if full_name is not None:
        full_name = full_name.strip()
        if not full_name:
            raise ValidationError("Full name cannot be empty")
        user.full_name = full_name
        user.first_name, user.last_name = _split_name(full_name)
    if profile_image_url is not None:
        user.profile_image_url = profile_image_url or None
    await session.commit()
    return user


async def delete_user(session: AsyncSession, user_id: int) -> None:
    """Remove the account; the database cascades to memberships, seats, cash-ins and created games."""
    user = await get_user(session, user_id)
    await session.delete(user)
    await session.commit()
    logger.info("User %s deleted", user_id)
