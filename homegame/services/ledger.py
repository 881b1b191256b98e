"""Game ledger: creating games, buy-ins, cash-outs and closing games.

Every mutating function commits exactly once, at the end. Anything that
raises before that leaves the session's transaction uncommitted, so a game is
never persisted without its seats and initial buy-ins, and a cash-out never
updates the seat without recording the payout.
"""
from __future__ import annotations

import logging
from dataclasses import dataclass
from decimal import ROUND_HALF_UP, Decimal, InvalidOperation
from typing import Any, Optional, Union

from sqlalchemy import delete, func, select, update
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload

from homegame.errors import ConflictError, NotFoundError, ValidationError
from homegame.models import (
    MONEY_IN_TYPES,
    AnonymousPlayer,
    CashIn,
    Game,
    GamePlayer,
    League,
    utcnow,
)
from homegame.services.membership import are_active_members

logger = logging.getLogger("homegame.ledger")

CENT = Decimal("0.01")
ZERO = Decimal("0.00")

Amount = Union[Decimal, int, float, str]


def to_money(value: Optional[Amount]) -> Decimal:
    """Decimal rounded to cents. Floats go through str() so 0.1 stays 0.10."""
    if value is None:
        return ZERO
    if isinstance(value, float):
        value = str(value)
    try:
        return Decimal(value).quantize(CENT, rounding=ROUND_HALF_UP)
    except (InvalidOperation, ValueError, TypeError):
        raise ValidationError(f"Invalid amount: {value!r}")


@dataclass
class Reconciliation:
    """Money in versus money out for one game."""

    game_id: int
    total_buy_ins: Decimal
    total_buy_outs: Decimal
    total_profit: Decimal  # sum of seat profits (cashed-out seats only)
    uncashed_players: int

    @property
    def discrepancy(self) -> Decimal:
        """Payouts minus buy-ins; negative means money left on the table (rake, shortfall)."""
        return self.total_buy_outs - self.total_buy_ins

    @property
    def is_balanced(self) -> bool:
        return self.discrepancy == ZERO and self.total_profit == self.discrepancy

    def as_dict(self) -> dict[str, Any]:
        return {
            "game_id": self.game_id,
            "total_buy_ins": self.total_buy_ins,
            "total_buy_outs": self.total_buy_outs,
            "total_profit": self.total_profit,
            "discrepancy": self.discrepancy,
            "is_balanced": self.is_balanced,
            "uncashed_players": self.uncashed_players,
        }


# --- Lookups ---


async def get_game(session: AsyncSession, game_id: int) -> Game:
    game = await session.get(Game, game_id)
    if game is None:
        raise NotFoundError("Game not found")
    return game


async def get_active_game(session: AsyncSession, game_id: int) -> Game:
    game = await get_game(session, game_id)
    if game.status != "active":
        raise ValidationError("Game is not active")
    return game


async def get_game_player(session: AsyncSession, game_player_id: int, game_id: Optional[int] = None) -> GamePlayer:
    gp = await session.get(GamePlayer, game_player_id)
    if gp is None or (game_id is not None and gp.game_id != game_id):
        raise NotFoundError("Player not found in game")
    return gp


async def total_money_in(session: AsyncSession, game_player_id: int) -> Decimal:
    """Sum of buy-in, rebuy and add-on amounts for one seat."""
    result = await session.execute(
        select(func.coalesce(func.sum(CashIn.amount), 0)).where(
            CashIn.game_player_id == game_player_id,
            CashIn.type.in_(MONEY_IN_TYPES),
        )
    )
    return to_money(result.scalar_one())


# --- Mutations ---


async def create_game(
    session: AsyncSession,
    league_id: int,
    creator_id: int,
    buy_in: Amount,
    player_ids: list[int],
) -> Game:
    """Start a game with its seats and one initial buy-in per seat."""
    unique_ids = list(dict.fromkeys(player_ids or []))
    if len(unique_ids) < 2:
        raise ValidationError("League ID and at least 2 players are required")
    amount = to_money(buy_in)
    if amount <= ZERO:
        raise ValidationError("Valid buy-in amount is required")

    league = await session.get(League, league_id)
    if league is None or not league.is_active:
        raise NotFoundError("League not found")
    members = await are_active_members(session, league_id, unique_ids)
    missing = [pid for pid in unique_ids if pid not in members]
    if missing:
        raise ValidationError(f"Players are not members of this league: {', '.join(map(str, missing))}")

    game = Game(league_id=league_id, created_by=creator_id, buy_in=amount, status="active", started_at=utcnow())
    session.add(game)
    await session.flush()
    seats = [GamePlayer(game_id=game.id, user_id=pid, is_active=True) for pid in unique_ids]
    session.add_all(seats)
    await session.flush()
    session.add_all(
        [
            CashIn(game_id=game.id, user_id=seat.user_id, game_player_id=seat.id, amount=amount, type="buy_in")
            for seat in seats
        ]
    )
    await session.commit()
    logger.info(
        "Game %s created in league %s by user %s: %d players, buy-in %s",
        game.id, league_id, creator_id, len(seats), amount,
    )
    return game


async def record_buy_in(
    session: AsyncSession,
    game_player_id: int,
    amount: Amount,
    kind: str = "buy_in",
    game_id: Optional[int] = None,
    chip_count: Optional[int] = None,
    notes: Optional[str] = None,
) -> CashIn:
    """Add another buy-in (or rebuy/add-on) for a seated player. Profit is untouched."""
    if kind not in MONEY_IN_TYPES:
        raise ValidationError(f"Invalid buy-in type: {kind}")
    value = to_money(amount)
    if value <= ZERO:
        raise ValidationError("Invalid buy-in amount")
    gp = await get_game_player(session, game_player_id, game_id)
    await get_active_game(session, gp.game_id)
    if not gp.is_active:
        raise ValidationError("Player is not active in this game")
    cash_in = CashIn(
        game_id=gp.game_id,
        user_id=gp.user_id,
        game_player_id=gp.id,
        amount=value,
        type=kind,
        chip_count=chip_count,
        notes=notes,
    )
    session.add(cash_in)
    await session.commit()
    logger.info("Game %s: seat %s %s %s", gp.game_id, gp.id, kind, value)
    return cash_in


async def undo_buy_in(session: AsyncSession, game_player_id: int, game_id: Optional[int] = None) -> CashIn:
    """Delete the latest money-in transaction of an active seat, keeping at least one."""
    gp = await get_game_player(session, game_player_id, game_id)
    await get_active_game(session, gp.game_id)
    if not gp.is_active:
        raise ValidationError("Player is not active in this game")
    result = await session.execute(
        select(CashIn)
        .where(CashIn.game_player_id == gp.id, CashIn.type.in_(MONEY_IN_TYPES))
        .order_by(CashIn.created_at.desc(), CashIn.id.desc())
    )
    buy_ins = list(result.scalars().all())
    if not buy_ins:
        raise NotFoundError("No buy-in found to undo")
    if len(buy_ins) == 1:
        raise ValidationError("Cannot undo the initial buy-in")
    latest = buy_ins[0]
    await session.delete(latest)
    await session.commit()
    logger.info("Game %s: seat %s undid %s %s", gp.game_id, gp.id, latest.type, latest.amount)
    return latest


async def record_cash_out(
    session: AsyncSession,
    game_player_id: int,
    final_amount: Amount,
    game_id: Optional[int] = None,
    chip_count: Optional[int] = None,
) -> GamePlayer:
    """Close a seat: profit = final_amount - money in, then record any non-zero payout.

    The seat is flipped inactive with a single conditional UPDATE, so two
    concurrent cash-outs of the same seat cannot both succeed.
    """
    value = to_money(final_amount)
    if value < ZERO:
        raise ValidationError("Invalid buy-out amount")
    gp = await get_game_player(session, game_player_id, game_id)
    await get_active_game(session, gp.game_id)

    money_in = await total_money_in(session, gp.id)
    profit = value - money_in
    left_at = utcnow()
    result = await session.execute(
        update(GamePlayer)
        .where(GamePlayer.id == gp.id, GamePlayer.is_active.is_(True))
        .values(final_amount=value, profit=profit, is_active=False, left_at=left_at)
        .execution_options(synchronize_session=False)
    )
    if result.rowcount == 0:
        await session.rollback()
        await session.refresh(gp)
        if gp.profit is None:
            raise ValidationError("Player is not active in this game")
        raise ConflictError("Player has already cashed out")
    if value > ZERO:
        session.add(
            CashIn(
                game_id=gp.game_id,
                user_id=gp.user_id,
                game_player_id=gp.id,
                amount=value,
                type="buy_out",
                chip_count=chip_count,
            )
        )
    await session.commit()
    await session.refresh(gp)
    logger.info("Game %s: seat %s cashed out %s (in %s, profit %s)", gp.game_id, gp.id, value, money_in, profit)
    return gp


async def add_player(
    session: AsyncSession,
    game_id: int,
    user_id: Optional[int] = None,
    anonymous_name: Optional[str] = None,
    buy_in: Optional[Amount] = None,
) -> GamePlayer:
    """Seat a league member, or a new anonymous guest, in a running game."""
    if (user_id is None) == (not anonymous_name):
        raise ValidationError("Provide either a user ID or an anonymous player name")
    game = await get_active_game(session, game_id)
    amount = to_money(buy_in) if buy_in is not None else to_money(game.buy_in)
    if amount <= ZERO:
        raise ValidationError("Invalid buy-in amount")

    if user_id is not None:
        if user_id not in await are_active_members(session, game.league_id, [user_id]):
            raise ValidationError("Player is not a member of this league")
        existing = await session.execute(
            select(GamePlayer.id).where(
                GamePlayer.game_id == game_id,
                GamePlayer.user_id == user_id,
                GamePlayer.is_active.is_(True),
            )
        )
        if existing.first() is not None:
            raise ConflictError("Player is already in this game")
        seat = GamePlayer(game_id=game_id, user_id=user_id, is_active=True)
    else:
        name = anonymous_name.strip()
        if not name:
            raise ValidationError("Player name is required")
        guest = AnonymousPlayer(league_id=game.league_id, name=name[:100])
        session.add(guest)
        await session.flush()
        seat = GamePlayer(game_id=game_id, anonymous_player_id=guest.id, is_active=True)
    session.add(seat)
    await session.flush()
    session.add(CashIn(game_id=game_id, user_id=user_id, game_player_id=seat.id, amount=amount, type="buy_in"))
    await session.commit()
    logger.info("Game %s: seat %s added (user %s, guest %r) with buy-in %s", game_id, seat.id, user_id, anonymous_name, amount)
    return seat


async def remove_player(session: AsyncSession, game_player_id: int, game_id: Optional[int] = None) -> GamePlayer:
    """Take a seat out of play without a cash-out (for players added by mistake)."""
    gp = await get_game_player(session, game_player_id, game_id)
    await get_active_game(session, gp.game_id)
    if not gp.is_active:
        raise ValidationError("Player is already inactive")
    gp.is_active = False
    gp.left_at = utcnow()
    await session.commit()
    logger.info("Game %s: seat %s removed", gp.game_id, gp.id)
    return gp


async def edit_player(
    session: AsyncSession,
    game_player_id: int,
    total_buy_ins: Amount,
    total_buy_outs: Amount,
    game_id: Optional[int] = None,
) -> GamePlayer:
    """Correct a closed seat's totals: its transactions are replaced by one buy-in and one payout.

    A seat still in play has to be cashed out first, so the payout is only
    ever written once.
    """
    money_in = to_money(total_buy_ins)
    money_out = to_money(total_buy_outs)
    if money_in < ZERO or money_out < ZERO:
        raise ValidationError("Invalid amounts")
    gp = await get_game_player(session, game_player_id, game_id)
    if gp.is_active:
        raise ValidationError("Player is still active. Cash the player out first")

    await session.execute(delete(CashIn).where(CashIn.game_player_id == gp.id))
    if money_in > ZERO:
        session.add(CashIn(game_id=gp.game_id, user_id=gp.user_id, game_player_id=gp.id, amount=money_in, type="buy_in"))
    if money_out > ZERO:
        session.add(CashIn(game_id=gp.game_id, user_id=gp.user_id, game_player_id=gp.id, amount=money_out, type="buy_out"))
    gp.final_amount = money_out if money_out > ZERO else None
    gp.profit = money_out - money_in
    await session.commit()
    logger.info("Game %s: seat %s edited (in %s, out %s)", gp.game_id, gp.id, money_in, money_out)
    return gp


async def end_game(session: AsyncSession, game_id: int) -> Game:
    """Mark an active game completed. Every seat must already be closed."""
    game = await get_active_game(session, game_id)
    result = await session.execute(
        select(func.count(GamePlayer.id)).where(GamePlayer.game_id == game_id, GamePlayer.is_active.is_(True))
    )
    still_active = result.scalar_one()
    if still_active:
        raise ValidationError(
            f"Cannot end game while players are still active. All players must be cashed out first. "
            f"({still_active} active)"
        )
    game.status = "completed"
    game.ended_at = max(utcnow(), game.started_at)
    await session.commit()
    logger.info("Game %s completed", game_id)
    return game


# --- Reads ---


async def reconcile_game(session: AsyncSession, game_id: int) -> Reconciliation:
    """Check that payouts match buy-ins and seat profits for a game."""
    await get_game(session, game_id)
    money_in = func.sum(CashIn.amount).filter(CashIn.type.in_(MONEY_IN_TYPES))
    money_out = func.sum(CashIn.amount).filter(CashIn.type == "buy_out")
    totals = (await session.execute(select(money_in, money_out).where(CashIn.game_id == game_id))).one()
    seats = (
        await session.execute(
            select(
                func.sum(GamePlayer.profit),
                func.count(GamePlayer.id).filter(GamePlayer.profit.is_(None)),
            ).where(GamePlayer.game_id == game_id)
        )
    ).one()
    return Reconciliation(
        game_id=game_id,
        total_buy_ins=to_money(totals[0]),
        total_buy_outs=to_money(totals[1]),
        total_profit=to_money(seats[0]),
        uncashed_players=seats[1] or 0,
    )


def _summarize_cash(cash_ins: list[CashIn]) -> tuple[Decimal, Decimal]:
    money_in = sum((c.amount for c in cash_ins if c.type in MONEY_IN_TYPES), ZERO)
    money_out = sum((c.amount for c in cash_ins if c.type == "buy_out"), ZERO)
    return to_money(money_in), to_money(money_out)


async def get_game_detail(session: AsyncSession, game_id: int) -> dict[str, Any]:
    """Game with every seat, its transactions and running totals."""
    result = await session.execute(
        select(Game)
        .where(Game.id == game_id)
        .options(
            selectinload(Game.players).selectinload(GamePlayer.user),
            selectinload(Game.players).selectinload(GamePlayer.anonymous_player),
            selectinload(Game.players).selectinload(GamePlayer.cash_ins),
        )
        .execution_options(populate_existing=True)
    )
    game = result.scalar_one_or_none()
    if game is None:
        raise NotFoundError("Game not found")
    players = []
    for gp in sorted(game.players, key=lambda p: p.id):
        cash_ins = sorted(gp.cash_ins, key=lambda c: (c.created_at, c.id))
        money_in, money_out = _summarize_cash(cash_ins)
        players.append(
            {
                "id": gp.id,
                "user_id": gp.user_id,
                "anonymous_player_id": gp.anonymous_player_id,
                "full_name": gp.display_name,
                "profile_image_url": gp.user.profile_image_url if gp.user else None,
                "is_active": gp.is_active,
                "joined_at": gp.joined_at,
                "left_at": gp.left_at,
                "final_amount": gp.final_amount,
                "profit": gp.profit,
                "cash_ins": [
                    {
                        "id": c.id,
                        "amount": c.amount,
                        "type": c.type,
                        "chip_count": c.chip_count,
                        "notes": c.notes,
                        "created_at": c.created_at,
                    }
                    for c in cash_ins
                ],
                "total_buy_ins": money_in,
                "total_buy_outs": money_out,
                "current_profit": money_out - money_in,
            }
        )
    return {
        "id": game.id,
        "league_id": game.league_id,
        "created_by": game.created_by,
        "buy_in": game.buy_in,
        "status": game.status,
        "started_at": game.started_at,
        "ended_at": game.ended_at,
        "players": players,
        "totals": {
            "total_buy_ins": sum((p["total_buy_ins"] for p in players), ZERO),
            "total_buy_outs": sum((p["total_buy_outs"] for p in players), ZERO),
            "active_players": sum(1 for p in players if p["is_active"]),
            "total_players": len(players),
        },
    }


async def list_league_games(
    session: AsyncSession,
    league_id: int,
    page: int = 1,
    limit: int = 3,
) -> tuple[list[dict[str, Any]], bool, int]:
    """Completed games, newest first, one page at a time. Returns (games, has_more, total)."""
    page = max(page, 1)
    limit = max(limit, 1)
    offset = (page - 1) * limit
    completed = (Game.league_id == league_id, Game.status == "completed")

    total = (await session.execute(select(func.count(Game.id)).where(*completed))).scalar_one()
    result = await session.execute(
        select(Game)
        .where(*completed)
        .options(
            selectinload(Game.creator),
            selectinload(Game.players).selectinload(GamePlayer.user),
            selectinload(Game.players).selectinload(GamePlayer.anonymous_player),
            selectinload(Game.players).selectinload(GamePlayer.cash_ins),
        )
        .order_by(Game.ended_at.desc(), Game.id.desc())
        .limit(limit)
        .offset(offset)
        .execution_options(populate_existing=True)
    )
    games = []
    for game in result.scalars().all():
        players = []
        for gp in game.players:
            money_in, _ = _summarize_cash(gp.cash_ins)
            players.append(
                {
                    "id": gp.id,
                    "user_id": gp.user_id,
                    "full_name": gp.display_name,
                    "profile_image_url": gp.user.profile_image_url if gp.user else None,
                    "profit": gp.profit if gp.profit is not None else ZERO,
                    "total_buy_ins": money_in,
                }
            )
        players.sort(key=lambda p: p["profit"], reverse=True)
        games.append(
            {
                "id": game.id,
                "league_id": game.league_id,
                "buy_in": game.buy_in,
                "started_at": game.started_at,
                "ended_at": game.ended_at,
                "created_by": game.created_by,
                "creator_name": game.creator.full_name if game.creator else None,
                "creator_image": game.creator.profile_image_url if game.creator else None,
                "players": players,
            }
        )
    has_more = offset + len(games) < total
    return games, has_more, total


async def list_active_games(session: AsyncSession, league_id: int) -> list[dict[str, Any]]:
    seats = (
        select(GamePlayer.game_id, func.count(GamePlayer.id).label("player_count"))
        .group_by(GamePlayer.game_id)
        .subquery()
    )
    result = await session.execute(
        select(Game, seats.c.player_count)
        .outerjoin(seats, seats.c.game_id == Game.id)
        .where(Game.league_id == league_id, Game.status == "active")
        .order_by(Game.started_at.desc(), Game.id.desc())
    )
    return [
        {
            "id": game.id,
            "league_id": game.league_id,
            "buy_in": game.buy_in,
            "created_by": game.created_by,
            "started_at": game.started_at,
            "player_count": player_count or 0,
        }
        for game, player_count in result.all()
    ]
