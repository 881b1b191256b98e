"""League membership: invite codes, joining, listing and access checks."""
from __future__ import annotations

import logging
import secrets
from typing import Any, Optional

from sqlalchemy import and_, func, select
from sqlalchemy.ext.asyncio import AsyncSession

import config
from homegame.errors import ConflictError, InviteCodeExhausted, NotFoundError, PermissionDenied, ValidationError
from homegame.models import League, LeagueMember, User, utcnow

logger = logging.getLogger("homegame.membership")

# 32 symbols: no 0/O or 1/I (lowercase l never appears since codes are upper-cased)
INVITE_CODE_ALPHABET = "ABCDEFGHJKLMNPQRSTUVWXYZ23456789"
INVITE_CODE_LENGTH = 5

LEAGUE_NAME_MIN = 3
LEAGUE_NAME_MAX = 50


def generate_invite_code() -> str:
    """Random 5-character code from the unambiguous alphabet. Not unique by itself."""
    return "".join(secrets.choice(INVITE_CODE_ALPHABET) for _ in range(INVITE_CODE_LENGTH))


def validate_invite_code(code: Optional[str]) -> str:
    """Check the shape of an invite code and return it upper-cased.

    Only the structure is checked (length and alphabet, case-insensitive);
    whether a league uses the code is a separate lookup.
    """
    if not code or not isinstance(code, str):
        raise ValidationError("Invite code is required")
    normalized = code.strip().upper()
    if len(normalized) != INVITE_CODE_LENGTH:
        raise ValidationError(f"Invite code must be exactly {INVITE_CODE_LENGTH} characters")
    if any(ch not in INVITE_CODE_ALPHABET for ch in normalized):
        raise ValidationError("Invite code contains invalid characters")
    return normalized


def is_valid_invite_code(code: Optional[str]) -> bool:
    try:
        validate_invite_code(code)
    except ValidationError:
        return False
    return True


async def is_invite_code_available(session: AsyncSession, code: str) -> bool:
    result = await session.execute(select(League.id).where(League.invite_code == code).limit(1))
    return result.scalar_one_or_none() is None


async def generate_unique_invite_code(session: AsyncSession, max_attempts: Optional[int] = None) -> str:
    """Generate codes until one is unused, giving up after max_attempts."""
    attempts = max_attempts or config.INVITE_CODE_MAX_ATTEMPTS
    for _ in range(attempts):
        code = generate_invite_code()
        if await is_invite_code_available(session, code):
            return code
    logger.warning("Invite code generation exhausted after %d attempts", attempts)
    raise InviteCodeExhausted(attempts)


def league_image_url(image_url: Optional[str]) -> Optional[str]:
    """Absolute URL for a stored league image (relative paths get IMAGE_BASE_URL)."""
    if not image_url or image_url.startswith("http") or not config.IMAGE_BASE_URL:
        return image_url
    return f"{config.IMAGE_BASE_URL.rstrip('/')}/{image_url.lstrip('/')}"


def _validate_league_name(name: Optional[str]) -> str:
    name = (name or "").strip()
    if not LEAGUE_NAME_MIN <= len(name) <= LEAGUE_NAME_MAX:
        raise ValidationError(f"Name must be between {LEAGUE_NAME_MIN} and {LEAGUE_NAME_MAX} characters")
    return name


async def create_league(
    session: AsyncSession,
    name: str,
    admin_user_id: int,
    image_url: Optional[str] = None,
) -> League:
    """Create a league; the creator becomes its admin and first member."""
    name = _validate_league_name(name)
    if await session.get(User, admin_user_id) is None:
        raise NotFoundError("User not found")
    league = League(
        name=name,
        image_url=image_url or config.DEFAULT_LEAGUE_IMAGE,
        invite_code=await generate_unique_invite_code(session),
        admin_user_id=admin_user_id,
        is_active=True,
    )
    session.add(league)
    await session.flush()
    session.add(LeagueMember(league_id=league.id, user_id=admin_user_id, role="admin", is_active=True))
    await session.commit()
    logger.info("League %s created by user %s (code %s)", league.id, admin_user_id, league.invite_code)
    return league


async def find_league_by_invite_code(session: AsyncSession, code: str) -> Optional[League]:
    result = await session.execute(select(League).where(League.invite_code == code.strip().upper()))
    return result.scalar_one_or_none()


async def join_league_by_invite_code(session: AsyncSession, code: str, user_id: int) -> LeagueMember:
    """Add the user to the league behind the code.

    Fails for an unknown code, an inactive league and a user who is already
    an active member. A membership that was deactivated earlier is revived.
    """
    league = await find_league_by_invite_code(session, code)
    if league is None:
        raise NotFoundError("Invalid invite code")
    if not league.is_active:
        raise ValidationError("League is not active")
    result = await session.execute(
        select(LeagueMember)
        .where(LeagueMember.league_id == league.id, LeagueMember.user_id == user_id)
        .order_by(LeagueMember.is_active.desc(), LeagueMember.id)
    )
    existing = result.scalars().first()
    if existing is not None and existing.is_active:
        raise ConflictError("User is already a member of this league")
    if existing is not None:
        existing.is_active = True
        existing.role = "member"
        existing.joined_at = utcnow()
        member = existing
    else:
        member = LeagueMember(league_id=league.id, user_id=user_id, role="member", is_active=True)
        session.add(member)
    await session.commit()
    await session.refresh(member)
    logger.info("User %s joined league %s", user_id, league.id)
    return member


async def get_user_leagues(session: AsyncSession, user_id: int) -> list[dict[str, Any]]:
    """Active leagues of the user with their active member counts."""
    member_counts = (
        select(LeagueMember.league_id, func.count(LeagueMember.id).label("member_count"))
        .where(LeagueMember.is_active.is_(True))
        .group_by(LeagueMember.league_id)
        .subquery()
    )
    result = await session.execute(
        select(League, LeagueMember.role, LeagueMember.joined_at, member_counts.c.member_count)
        .join(LeagueMember, LeagueMember.league_id == League.id)
        .outerjoin(member_counts, member_counts.c.league_id == League.id)
        .where(
            LeagueMember.user_id == user_id,
            LeagueMember.is_active.is_(True),
            League.is_active.is_(True),
        )
        .order_by(LeagueMember.joined_at, League.id)
    )
    leagues = []
    for league, role, joined_at, member_count in result.all():
        leagues.append(
            {
                "id": league.id,
                "name": league.name,
                "code": league.invite_code,
                "image": league_image_url(league.image_url),
                "member_count": member_count or 0,
                "status": "active" if league.is_active else "inactive",
                "role": role,
                "joined_at": joined_at,
            }
        )
    return leagues


async def get_league(session: AsyncSession, league_id: int) -> League:
    league = await session.get(League, league_id)
    if league is None:
        raise NotFoundError("League not found")
    return league


async def check_league_access(
    session: AsyncSession,
    user_id: int,
    league_id: int,
    required_role: str = "member",
) -> LeagueMember:
    """Return the caller's active membership or raise.

    required_role="admin" additionally demands the admin role.
    """
    await get_league(session, league_id)
    result = await session.execute(
        select(LeagueMember)
        .where(LeagueMember.league_id == league_id, LeagueMember.user_id == user_id)
        .order_by(LeagueMember.is_active.desc(), LeagueMember.id)
    )
    membership = result.scalars().first()
    if membership is None:
        raise PermissionDenied("User is not a member of this league")
    if not membership.is_active:
        raise PermissionDenied("User membership is inactive")
    if required_role == "admin" and membership.role != "admin":
        raise PermissionDenied("Admin access required for this operation")
    return membership


async def list_league_members(session: AsyncSession, league_id: int) -> list[dict[str, Any]]:
    """Active members, used to pick players for a new game."""
    result = await session.execute(
        select(User, LeagueMember.role, LeagueMember.joined_at)
        .join(LeagueMember, LeagueMember.user_id == User.id)
        .where(LeagueMember.league_id == league_id, LeagueMember.is_active.is_(True))
        .order_by(User.full_name, User.id)
    )
    return [
        {
            "id": user.id,
            "full_name": user.full_name,
            "profile_image_url": user.profile_image_url,
            "role": role,
            "joined_at": joined_at,
        }
        for user, role, joined_at in result.all()
    ]


async def get_league_details(session: AsyncSession, league_id: int) -> dict[str, Any]:
    league = await get_league(session, league_id)
    return {
        "id": league.id,
        "name": league.name,
        "image_url": league_image_url(league.image_url),
        "invite_code": league.invite_code,
        "admin_user_id": league.admin_user_id,
        "is_active": league.is_active,
        "created_at": league.created_at,
        "members": await list_league_members(session, league_id),
    }


async def update_league(
    session: AsyncSession,
    league_id: int,
    name: Optional[str] = None,
    image_url: Optional[str] = None,
) -> League:
    if name is None and image_url is None:
        raise ValidationError("No fields to update provided")
    league = await get_league(session, league_id)
    if name is not None:
        league.name = _validate_league_name(name)
    if image_url is not None:
        league.image_url = image_url
    await session.commit()
    return league


async def deactivate_league(session: AsyncSession, league_id: int) -> League:
    """Soft delete: the league and its history stay, it just stops being listed or joinable."""
    league = await get_league(session, league_id)
    league.is_active = False
    await session.commit()
    logger.info("League %s deactivated", league_id)
    return league


async def are_active_members(session: AsyncSession, league_id: int, user_ids: list[int]) -> set[int]:
    """Subset of user_ids with an active membership in the league."""
    if not user_ids:
        return set()
    result = await session.execute(
        select(LeagueMember.user_id).where(
            and_(
                LeagueMember.league_id == league_id,
                LeagueMember.is_active.is_(True),
                LeagueMember.user_id.in_(user_ids),
            )
        )
    )
    return {row[0] for row in result.all()}
