"""User API routes: sign-in upsert, current user, profile edits."""
from __future__ import annotations

import logging
from typing import Optional

from fastapi import APIRouter, Depends
from pydantic import Field
from sqlalchemy.ext.asyncio import AsyncSession

from homegame.models import User
from homegame.services import users as user_service
from web.api.utils import CamelModel, get_session, user_payload
from web.auth import require_user

logger = logging.getLogger("homegame.api")

router = APIRouter(prefix="/api", tags=["users"])


class UpsertUserRequest(CamelModel):
    email: str = Field(min_length=3)
    full_name: Optional[str] = None
    first_name: Optional[str] = None
    last_name: Optional[str] = None
    provider: str = "google"
    provider_id: Optional[str] = None
    profile_image_url: Optional[str] = None


class UpdateUserRequest(CamelModel):
    full_name: Optional[str] = None
    profile_image_url: Optional[str] = None


@router.post("/users/upsert")
async def upsert_user(body: UpsertUserRequest, session: AsyncSession = Depends(get_session)):
    """Create or refresh a user after sign-in (called by the sign-in flow, no token yet)."""
    user, created = await user_service.upsert_user(
        session,
        email=body.email,
        full_name=body.full_name,
        provider=body.provider,
        provider_id=body.provider_id,
        profile_image_url=body.profile_image_url,
        first_name=body.first_name,
        last_name=body.last_name,
    )
    return {
        "user": user_payload(user),
        "message": "User created successfully" if created else "User updated successfully",
    }


@router.get("/auth/me")
async def get_me(user: User = Depends(require_user)):
    """Get current authenticated user."""
    return {"user": user_payload(user)}


@router.patch("/user/update")
async def update_me(
    body: UpdateUserRequest,
    user: User = Depends(require_user),
    session: AsyncSession = Depends(get_session),
):
    updated = await user_service.update_user(
        session, user.id, full_name=body.full_name, profile_image_url=body.profile_image_url
    )
    return {"success": True, "user": user_payload(updated)}


@router.delete("/user/delete")
async def delete_me(user: User = Depends(require_user), session: AsyncSession = Depends(get_session)):
    await user_service.delete_user(session, user.id)
    return {"success": True}
