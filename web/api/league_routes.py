"""League API routes: create, join, list, details, admin edits, game history."""
from __future__ import annotations

import logging
from typing import Optional

from fastapi import APIRouter, Depends, Query
from fastapi.responses import JSONResponse
from pydantic import Field
from sqlalchemy.ext.asyncio import AsyncSession

import config
from homegame.models import League, User
from homegame.services import ledger, membership
from web.api.utils import CamelModel, camelize, get_session
from web.auth import require_user

logger = logging.getLogger("homegame.api")

router = APIRouter(prefix="/api/leagues", tags=["leagues"])


class CreateLeagueRequest(CamelModel):
    name: str
    image_url: Optional[str] = None


class JoinLeagueRequest(CamelModel):
    invite_code: str = Field(min_length=1)


class UpdateLeagueRequest(CamelModel):
    name: Optional[str] = None
    image_url: Optional[str] = None


def _league(league: League) -> dict:
    return camelize(
        {
            "id": league.id,
            "name": league.name,
            "image_url": membership.league_image_url(league.image_url),
            "invite_code": league.invite_code,
            "admin_user_id": league.admin_user_id,
            "is_active": league.is_active,
            "created_at": league.created_at,
        }
    )


@router.post("/create")
async def create_league(
    body: CreateLeagueRequest,
    user: User = Depends(require_user),
    session: AsyncSession = Depends(get_session),
):
    league = await membership.create_league(session, body.name, user.id, image_url=body.image_url)
    return JSONResponse(status_code=201, content={"success": True, "league": _league(league)})


@router.post("/join")
async def join_league(
    body: JoinLeagueRequest,
    user: User = Depends(require_user),
    session: AsyncSession = Depends(get_session),
):
    code = membership.validate_invite_code(body.invite_code)
    member = await membership.join_league_by_invite_code(session, code, user.id)
    league = await membership.get_league(session, member.league_id)
    return JSONResponse(
        status_code=201,
        content={
            "success": True,
            "league": _league(league),
            "member": camelize(
                {
                    "id": member.id,
                    "league_id": member.league_id,
                    "user_id": member.user_id,
                    "role": member.role,
                    "joined_at": member.joined_at,
                }
            ),
            "message": f"Successfully joined {league.name}",
        },
    )


@router.get("/user")
async def user_leagues(user: User = Depends(require_user), session: AsyncSession = Depends(get_session)):
    """Leagues the current user belongs to, with member counts."""
    leagues = await membership.get_user_leagues(session, user.id)
    return {"leagues": camelize(leagues), "count": len(leagues)}


@router.get("/{league_id}")
async def league_details(
    league_id: int,
    user: User = Depends(require_user),
    session: AsyncSession = Depends(get_session),
):
    await membership.check_league_access(session, user.id, league_id)
    return {"success": True, "league": camelize(await membership.get_league_details(session, league_id))}


@router.patch("/{league_id}")
async def update_league(
    league_id: int,
    body: UpdateLeagueRequest,
    user: User = Depends(require_user),
    session: AsyncSession = Depends(get_session),
):
    await membership.check_league_access(session, user.id, league_id, required_role="admin")
    league = await membership.update_league(session, league_id, name=body.name, image_url=body.image_url)
    return {"success": True, "league": _league(league)}


@router.delete("/{league_id}")
async def delete_league(
    league_id: int,
    user: User = Depends(require_user),
    session: AsyncSession = Depends(get_session),
):
    await membership.check_league_access(session, user.id, league_id, required_role="admin")
    await membership.deactivate_league(session, league_id)
    return {"success": True}


@router.get("/{league_id}/available-players")
async def available_players(
    league_id: int,
    user: User = Depends(require_user),
    session: AsyncSession = Depends(get_session),
):
    """Active members that can be seated in a new game."""
    await membership.check_league_access(session, user.id, league_id)
    return {"success": True, "members": camelize(await membership.list_league_members(session, league_id))}


@router.get("/{league_id}/games")
async def league_games(
    league_id: int,
    page: int = Query(1, ge=1),
    limit: Optional[int] = Query(None, ge=1, le=50),
    user: User = Depends(require_user),
    session: AsyncSession = Depends(get_session),
):
    """Completed games, newest first, paginated."""
    await membership.check_league_access(session, user.id, league_id)
    games, has_more, total = await ledger.list_league_games(
        session, league_id, page=page, limit=limit or config.GAMES_PAGE_SIZE
    )
    return {"success": True, "games": camelize(games), "hasMore": has_more, "total": total}
