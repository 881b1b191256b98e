"""Shared API utilities: per-request sessions and JSON shaping."""
from __future__ import annotations

from datetime import date, datetime
from decimal import Decimal
from typing import Any, AsyncIterator

from fastapi import Request
from pydantic import BaseModel, ConfigDict
from pydantic.alias_generators import to_camel
from sqlalchemy.ext.asyncio import AsyncSession

from homegame.models import User


class CamelModel(BaseModel):
    """Request body read from camelCase JSON (snake_case names also accepted)."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


async def get_session(request: Request) -> AsyncIterator[AsyncSession]:
    """One session per request from the Database opened in the app lifespan."""
    async with request.app.state.db.session() as session:
        yield session


def camelize(value: Any) -> Any:
    """Recursively turn snake_case keys into camelCase and money into JSON numbers."""
    if isinstance(value, dict):
        return {to_camel(k) if isinstance(k, str) else k: camelize(v) for k, v in value.items()}
    if isinstance(value, (list, tuple)):
        return [camelize(v) for v in value]
    if isinstance(value, Decimal):
        return float(value)
    if isinstance(value, (datetime, date)):
        return value.isoformat()
    return value


def user_payload(user: User) -> dict[str, Any]:
    return camelize(
        {
            "id": user.id,
            "email": user.email,
            "full_name": user.full_name,
            "first_name": user.first_name,
            "last_name": user.last_name,
            "profile_image_url": user.profile_image_url,
            "provider": user.provider,
            "created_at": user.created_at,
            "last_login_at": user.last_login_at,
        }
    )
