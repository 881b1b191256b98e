"""Game API routes: creating games, buy-ins, cash-outs and ending games."""
from __future__ import annotations

import logging
from decimal import Decimal
from typing import Optional

from fastapi import APIRouter, Depends
from fastapi.responses import JSONResponse
from pydantic import Field
from sqlalchemy.ext.asyncio import AsyncSession

from homegame.errors import PermissionDenied
from homegame.models import CashIn, Game, GamePlayer, User
from homegame.services import ledger, membership
from web.api.utils import CamelModel, camelize, get_session
from web.auth import require_user

logger = logging.getLogger("homegame.api")

router = APIRouter(prefix="/api/games", tags=["games"])


class CreateGameRequest(CamelModel):
    league_id: int
    selected_player_ids: list[int] = Field(default_factory=list)
    buy_in: Decimal


class BuyInRequest(CamelModel):
    game_player_id: int
    amount: Decimal
    type: str = "buy_in"
    chip_count: Optional[int] = None
    notes: Optional[str] = None


class SeatRequest(CamelModel):
    game_player_id: int


class BuyOutRequest(CamelModel):
    game_player_id: int
    amount: Decimal
    chip_count: Optional[int] = None


class AddPlayerRequest(CamelModel):
    user_id: int
    buy_in_amount: Optional[Decimal] = None


class AddAnonymousPlayerRequest(CamelModel):
    name: str = Field(min_length=1, max_length=100)
    buy_in_amount: Optional[Decimal] = None


class EditPlayerRequest(CamelModel):
    game_player_id: int
    total_buy_ins: Decimal
    total_buy_outs: Decimal


def _game_summary(game: Game) -> dict:
    return camelize(
        {
            "id": game.id,
            "league_id": game.league_id,
            "created_by": game.created_by,
            "buy_in": game.buy_in,
            "status": game.status,
            "started_at": game.started_at,
            "ended_at": game.ended_at,
        }
    )


def _seat(gp: GamePlayer) -> dict:
    return camelize(
        {
            "id": gp.id,
            "game_id": gp.game_id,
            "user_id": gp.user_id,
            "anonymous_player_id": gp.anonymous_player_id,
            "final_amount": gp.final_amount,
            "profit": gp.profit,
            "is_active": gp.is_active,
            "joined_at": gp.joined_at,
            "left_at": gp.left_at,
        }
    )


def _cash_in(cash_in: CashIn) -> dict:
    return camelize(
        {
            "id": cash_in.id,
            "game_id": cash_in.game_id,
            "game_player_id": cash_in.game_player_id,
            "user_id": cash_in.user_id,
            "amount": cash_in.amount,
            "type": cash_in.type,
            "chip_count": cash_in.chip_count,
            "notes": cash_in.notes,
            "created_at": cash_in.created_at,
        }
    )


async def _game_for_member(session: AsyncSession, game_id: int, user: User) -> Game:
    game = await ledger.get_game(session, game_id)
    await membership.check_league_access(session, user.id, game.league_id)
    return game


async def _game_for_manager(session: AsyncSession, game_id: int, user: User) -> Game:
    """Game the user may manage: its creator or an admin of its league."""
    game = await ledger.get_game(session, game_id)
    member = await membership.check_league_access(session, user.id, game.league_id)
    if game.created_by != user.id and member.role != "admin":
        logger.warning("User %s may not manage game %s", user.id, game_id)
        raise PermissionDenied("Only the game creator or a league admin can do this")
    return game


@router.post("/create")
async def create_game(
    body: CreateGameRequest,
    user: User = Depends(require_user),
    session: AsyncSession = Depends(get_session),
):
    await membership.check_league_access(session, user.id, body.league_id)
    game = await ledger.create_game(session, body.league_id, user.id, body.buy_in, body.selected_player_ids)
    return JSONResponse(
        status_code=201,
        content={"success": True, "gameId": game.id, "game": _game_summary(game)},
    )


@router.get("/active/{league_id}")
async def active_games(
    league_id: int,
    user: User = Depends(require_user),
    session: AsyncSession = Depends(get_session),
):
    await membership.check_league_access(session, user.id, league_id)
    games = await ledger.list_active_games(session, league_id)
    return {"success": True, "games": camelize(games)}


@router.get("/{game_id}")
async def get_game(
    game_id: int,
    user: User = Depends(require_user),
    session: AsyncSession = Depends(get_session),
):
    await _game_for_member(session, game_id, user)
    return {"success": True, "game": camelize(await ledger.get_game_detail(session, game_id))}


@router.post("/{game_id}/buy-in")
async def buy_in(
    game_id: int,
    body: BuyInRequest,
    user: User = Depends(require_user),
    session: AsyncSession = Depends(get_session),
):
    await _game_for_member(session, game_id, user)
    cash_in = await ledger.record_buy_in(
        session,
        body.game_player_id,
        body.amount,
        kind=body.type,
        game_id=game_id,
        chip_count=body.chip_count,
        notes=body.notes,
    )
    return {"success": True, "cashIn": _cash_in(cash_in)}


@router.post("/{game_id}/undo-buy-in")
async def undo_buy_in(
    game_id: int,
    body: SeatRequest,
    user: User = Depends(require_user),
    session: AsyncSession = Depends(get_session),
):
    await _game_for_member(session, game_id, user)
    removed = await ledger.undo_buy_in(session, body.game_player_id, game_id=game_id)
    return {"success": True, "cashIn": _cash_in(removed)}


@router.post("/{game_id}/buy-out")
async def buy_out(
    game_id: int,
    body: BuyOutRequest,
    user: User = Depends(require_user),
    session: AsyncSession = Depends(get_session),
):
    await _game_for_member(session, game_id, user)
    gp = await ledger.record_cash_out(
        session, body.game_player_id, body.amount, game_id=game_id, chip_count=body.chip_count
    )
    return {"success": True, "player": _seat(gp), "profit": float(gp.profit)}


@router.post("/{game_id}/add-player")
async def add_player(
    game_id: int,
    body: AddPlayerRequest,
    user: User = Depends(require_user),
    session: AsyncSession = Depends(get_session),
):
    await _game_for_member(session, game_id, user)
    gp = await ledger.add_player(session, game_id, user_id=body.user_id, buy_in=body.buy_in_amount)
    return {"success": True, "gamePlayer": _seat(gp)}


@router.post("/{game_id}/add-anonymous-player")
async def add_anonymous_player(
    game_id: int,
    body: AddAnonymousPlayerRequest,
    user: User = Depends(require_user),
    session: AsyncSession = Depends(get_session),
):
    await _game_for_member(session, game_id, user)
    gp = await ledger.add_player(session, game_id, anonymous_name=body.name, buy_in=body.buy_in_amount)
    return {"success": True, "gamePlayer": _seat(gp)}


@router.post("/{game_id}/remove-player")
async def remove_player(
    game_id: int,
    body: SeatRequest,
    user: User = Depends(require_user),
    session: AsyncSession = Depends(get_session),
):
    await _game_for_member(session, game_id, user)
    await ledger.remove_player(session, body.game_player_id, game_id=game_id)
    return {"success": True}


@router.post("/{game_id}/edit-player")
async def edit_player(
    game_id: int,
    body: EditPlayerRequest,
    user: User = Depends(require_user),
    session: AsyncSession = Depends(get_session),
):
    await _game_for_manager(session, game_id, user)
    gp = await ledger.edit_player(
        session, body.game_player_id, body.total_buy_ins, body.total_buy_outs, game_id=game_id
    )
    return {"success": True, "profit": float(gp.profit)}


@router.post("/{game_id}/end-game")
async def end_game(
    game_id: int,
    user: User = Depends(require_user),
    session: AsyncSession = Depends(get_session),
):
    await _game_for_manager(session, game_id, user)
    game = await ledger.end_game(session, game_id)
    reconciliation = await ledger.reconcile_game(session, game_id)
    if not reconciliation.is_balanced:
        logger.warning("Game %s ended unbalanced: discrepancy %s", game_id, reconciliation.discrepancy)
    return {
        "success": True,
        "game": _game_summary(game),
        "reconciliation": camelize(reconciliation.as_dict()),
    }
