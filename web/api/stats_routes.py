"""Statistics API routes: league overview, leaderboards, player records."""
from __future__ import annotations

from dataclasses import asdict
from datetime import date
from typing import Optional

from fastapi import APIRouter, Depends, Query
from sqlalchemy.ext.asyncio import AsyncSession

from homegame.errors import ValidationError
from homegame.models import User
from homegame.services import membership, stats
from homegame.services.stats import PlayerStat
from web.api.utils import camelize, get_session
from web.auth import require_user

router = APIRouter(prefix="/api/leagues", tags=["stats"])

MIN_YEAR = 2000


def _check_year(year: Optional[int]) -> Optional[int]:
    if year is None:
        return None
    if not MIN_YEAR <= year <= date.today().year + 1:
        raise ValidationError("Invalid year parameter")
    return year


def _player_stat(row: PlayerStat, stat_type: str) -> dict:
    return camelize(
        {
            "rank": row.rank,
            "user_id": row.user_id,
            "full_name": row.full_name,
            "profile_image_url": row.profile_image_url,
            "value": row.value,
            "label": stats.STAT_LABELS[stat_type],
            "games_played": row.games_played,
            **row.extra,
        }
    )


@router.get("/{league_id}/stats")
async def league_stats(
    league_id: int,
    year: Optional[int] = Query(None),
    user: User = Depends(require_user),
    session: AsyncSession = Depends(get_session),
):
    await membership.check_league_access(session, user.id, league_id)
    result = await stats.general_league_stats(session, league_id, year=_check_year(year))
    payload = asdict(result)
    payload["total_profit"] = result.total_profit
    return {"success": True, "stats": camelize(payload), "year": year}


@router.get("/{league_id}/stats/rankings")
async def league_rankings(
    league_id: int,
    type: str = Query(...),
    year: Optional[int] = Query(None),
    limit: Optional[int] = Query(None, ge=1, le=100),
    user: User = Depends(require_user),
    session: AsyncSession = Depends(get_session),
):
    """Leaderboard for one stat type; topPlayer is the leader or null."""
    await membership.check_league_access(session, user.id, league_id)
    year = _check_year(year)
    rows = await stats.get_rankings(session, league_id, type, year=year, limit=limit)
    data = [_player_stat(row, type) for row in rows]
    return {
        "success": True,
        "type": type,
        "year": year,
        "data": data,
        "topPlayer": data[0] if data else None,
    }


@router.get("/{league_id}/players/{user_id}/stats")
async def player_stats(
    league_id: int,
    user_id: int,
    year: Optional[int] = Query(None),
    user: User = Depends(require_user),
    session: AsyncSession = Depends(get_session),
):
    await membership.check_league_access(session, user.id, league_id)
    record = await stats.player_record(session, league_id, user_id, year=_check_year(year))
    payload = asdict(record)
    payload["win_rate"] = record.win_rate
    return {"success": True, "record": camelize(payload)}
