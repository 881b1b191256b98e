"""League statistics: overview numbers, leaderboards and per-player records.

Leaderboards cover completed games and registered players. They are ordered
lists with the leader ("hero") at index 0; equal values fall back to user id
order so repeated reads are stable.
"""
from __future__ import annotations

import logging
import statistics
from dataclasses import dataclass, field
from datetime import date, datetime
from decimal import ROUND_HALF_UP, Decimal
from typing import Any, Awaitable, Callable, Optional

from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from homegame.errors import NotFoundError, ValidationError
from homegame.models import MONEY_IN_TYPES, CashIn, Game, GamePlayer, League, LeagueMember, User
from homegame.services.ledger import ZERO, to_money

logger = logging.getLogger("homegame.stats")

MIN_GAMES_FOR_CONSISTENCY = 3


@dataclass
class PlayerStat:
    """One leaderboard row."""

    user_id: int
    full_name: str
    profile_image_url: Optional[str]
    value: Decimal
    games_played: int = 0
    rank: int = 0
    extra: dict[str, Any] = field(default_factory=dict)


@dataclass
class LeagueStats:
    total_games: int = 0
    active_games: int = 0
    completed_games: int = 0
    total_players: int = 0
    total_buy_ins: Decimal = ZERO
    total_buy_outs: Decimal = ZERO
    average_game_duration: int = 0  # minutes
    most_profitable_player: dict[str, Any] = field(default_factory=lambda: {"name": "N/A", "profit": ZERO})
    most_active_player: dict[str, Any] = field(default_factory=lambda: {"name": "N/A", "games_played": 0})

    @property
    def total_profit(self) -> Decimal:
        return self.total_buy_outs - self.total_buy_ins


@dataclass
class PlayerRecord:
    user_id: int
    full_name: str
    games_played: int = 0
    wins: int = 0
    losses: int = 0
    ties: int = 0
    total_profit: Decimal = ZERO
    total_buy_ins: Decimal = ZERO
    average_profit: Decimal = ZERO
    best_game: Optional[Decimal] = None
    worst_game: Optional[Decimal] = None
    longest_win_streak: int = 0
    current_streak: int = 0  # positive: wins in a row, negative: losses in a row

    @property
    def win_rate(self) -> float:
        return round(self.wins / self.games_played * 100, 1) if self.games_played else 0.0


# --- Helpers ---


def _round_half_up(value: float) -> int:
    return int(Decimal(str(value)).quantize(Decimal("1"), rounding=ROUND_HALF_UP))


def game_duration_minutes(started_at: Optional[datetime], ended_at: Optional[datetime]) -> Optional[int]:
    """Whole minutes between start and end, never negative; None when either is missing."""
    if started_at is None or ended_at is None:
        return None
    return max(0, _round_half_up((ended_at - started_at).total_seconds() / 60))


def year_bounds(year: int) -> tuple[datetime, datetime]:
    return datetime(year, 1, 1), datetime(year + 1, 1, 1)


def month_bounds(day: date) -> tuple[datetime, datetime]:
    start = datetime(day.year, day.month, 1)
    if day.month == 12:
        return start, datetime(day.year + 1, 1, 1)
    return start, datetime(day.year, day.month + 1, 1)


def longest_positive_run(profits: list[Decimal]) -> int:
    best = run = 0
    for profit in profits:
        run = run + 1 if profit > 0 else 0
        best = max(best, run)
    return best


def trailing_streak(profits: list[Decimal]) -> int:
    """Signed length of the streak the list ends with (+wins, -losses, 0 after a tie)."""
    if not profits or profits[-1] == 0:
        return 0
    winning = profits[-1] > 0
    count = 0
    for profit in reversed(profits):
        if (profit > 0) != winning or profit == 0:
            break
        count += 1
    return count if winning else -count


def _rank(rows: list[PlayerStat]) -> list[PlayerStat]:
    for i, row in enumerate(rows, start=1):
        row.rank = i
    return rows


async def _require_league(session: AsyncSession, league_id: int) -> League:
    league = await session.get(League, league_id)
    if league is None:
        raise NotFoundError("League not found")
    return league


def _completed_games(league_id: int, start: Optional[datetime] = None, end: Optional[datetime] = None) -> list:
    conditions = [Game.league_id == league_id, Game.status == "completed"]
    if start is not None:
        conditions.append(Game.ended_at >= start)
    if end is not None:
        conditions.append(Game.ended_at < end)
    return conditions


async def _member_profit_sequences(
    session: AsyncSession,
    league_id: int,
    start: Optional[datetime] = None,
    end: Optional[datetime] = None,
) -> dict[int, tuple[User, list[Decimal]]]:
    """Per active member: their cashed-out profits in game order (oldest first)."""
    result = await session.execute(
        select(User, GamePlayer.profit)
        .join(GamePlayer, GamePlayer.user_id == User.id)
        .join(Game, Game.id == GamePlayer.game_id)
        .join(
            LeagueMember,
            (LeagueMember.user_id == User.id) & (LeagueMember.league_id == league_id),
        )
        .where(
            *_completed_games(league_id, start, end),
            LeagueMember.is_active.is_(True),
            GamePlayer.profit.is_not(None),
        )
        .order_by(User.id, Game.ended_at, Game.id, GamePlayer.id)
    )
    sequences: dict[int, tuple[User, list[Decimal]]] = {}
    for user, profit in result.all():
        sequences.setdefault(user.id, (user, []))[1].append(to_money(profit))
    return sequences


# --- Overview ---


async def general_league_stats(session: AsyncSession, league_id: int, year: Optional[int] = None) -> LeagueStats:
    """Headline numbers for a league, optionally limited to games started in one year."""
    await _require_league(session, league_id)
    stats = LeagueStats()
    scope = [Game.league_id == league_id]
    if year is not None:
        start, end = year_bounds(year)
        scope += [Game.started_at >= start, Game.started_at < end]

    counts = (
        await session.execute(
            select(
                func.count(Game.id),
                func.count(Game.id).filter(Game.status == "active"),
                func.count(Game.id).filter(Game.status == "completed"),
            ).where(*scope)
        )
    ).one()
    stats.total_games, stats.active_games, stats.completed_games = (c or 0 for c in counts)

    stats.total_players = (
        await session.execute(
            select(func.count(LeagueMember.id)).where(
                LeagueMember.league_id == league_id, LeagueMember.is_active.is_(True)
            )
        )
    ).scalar_one()

    money = (
        await session.execute(
            select(
                func.sum(CashIn.amount).filter(CashIn.type.in_(MONEY_IN_TYPES)),
                func.sum(CashIn.amount).filter(CashIn.type == "buy_out"),
            )
            .join(Game, Game.id == CashIn.game_id)
            .where(*scope)
        )
    ).one()
    stats.total_buy_ins = to_money(money[0])
    stats.total_buy_outs = to_money(money[1])

    durations = (
        await session.execute(select(Game.started_at, Game.ended_at).where(*scope, Game.status == "completed"))
    ).all()
    minutes = [m for m in (game_duration_minutes(s, e) for s, e in durations) if m is not None]
    if minutes:
        stats.average_game_duration = max(0, _round_half_up(sum(minutes) / len(minutes)))

    profit_sum = func.sum(GamePlayer.profit)
    top = (
        await session.execute(
            select(User.full_name, profit_sum)
            .join(GamePlayer, GamePlayer.user_id == User.id)
            .join(Game, Game.id == GamePlayer.game_id)
            .where(*scope)
            .group_by(User.id, User.full_name)
            .having(profit_sum.is_not(None))
            .order_by(profit_sum.desc(), User.id)
            .limit(1)
        )
    ).first()
    if top is not None:
        stats.most_profitable_player = {"name": top[0], "profit": to_money(top[1])}

    # Same scope as the most-active-player board
    busiest = await most_active_players(session, league_id, year=year, limit=1)
    if busiest:
        stats.most_active_player = {"name": busiest[0].full_name, "games_played": busiest[0].games_played}
    return stats


# --- Leaderboards ---


async def _aggregate_board(
    session: AsyncSession,
    league_id: int,
    value_expr,
    descending: bool,
    start: Optional[datetime],
    end: Optional[datetime],
    limit: Optional[int],
) -> list[PlayerStat]:
    games_played = func.count(func.distinct(GamePlayer.game_id))
    order = value_expr.desc() if descending else value_expr.asc()
    query = (
        select(User, value_expr, games_played, func.sum(GamePlayer.profit))
        .join(GamePlayer, GamePlayer.user_id == User.id)
        .join(Game, Game.id == GamePlayer.game_id)
        .join(
            LeagueMember,
            (LeagueMember.user_id == User.id) & (LeagueMember.league_id == league_id),
        )
        .where(*_completed_games(league_id, start, end), LeagueMember.is_active.is_(True))
        .group_by(User.id)
        .having(value_expr.is_not(None))
        .order_by(order, User.id)
    )
    if limit:
        query = query.limit(limit)
    rows = []
    for user, value, played, total_profit in (await session.execute(query)).all():
        rows.append(
            PlayerStat(
                user_id=user.id,
                full_name=user.full_name,
                profile_image_url=user.profile_image_url,
                value=to_money(value) if not isinstance(value, int) else Decimal(value),
                games_played=played,
                extra={"total_profit": to_money(total_profit)},
            )
        )
    return _rank(rows)


async def top_profit_players(session, league_id, year=None, limit=None) -> list[PlayerStat]:
    start, end = year_bounds(year) if year else (None, None)
    return await _aggregate_board(session, league_id, func.sum(GamePlayer.profit), True, start, end, limit)


async def most_active_players(session, league_id, year=None, limit=None) -> list[PlayerStat]:
    start, end = year_bounds(year) if year else (None, None)
    return await _aggregate_board(
        session, league_id, func.count(func.distinct(GamePlayer.game_id)), True, start, end, limit
    )


async def highest_single_game_profits(session, league_id, year=None, limit=None) -> list[PlayerStat]:
    start, end = year_bounds(year) if year else (None, None)
    return await _aggregate_board(session, league_id, func.max(GamePlayer.profit), True, start, end, limit)


async def biggest_losers(session, league_id, year=None, limit=None) -> list[PlayerStat]:
    """Most negative total profit first; value is the size of the loss."""
    start, end = year_bounds(year) if year else (None, None)
    rows = await _aggregate_board(session, league_id, func.sum(GamePlayer.profit), False, start, end, limit)
    for row in rows:
        row.extra["actual_loss"] = row.value
        row.value = abs(row.value)
    return rows


async def most_consistent_players(session, league_id, year=None, limit=None) -> list[PlayerStat]:
    """Lowest sample standard deviation of per-game profit, minimum three games."""
    start, end = year_bounds(year) if year else (None, None)
    rows = []
    for user, profits in (await _member_profit_sequences(session, league_id, start, end)).values():
        if len(profits) < MIN_GAMES_FOR_CONSISTENCY:
            continue
        rows.append(
            PlayerStat(
                user_id=user.id,
                full_name=user.full_name,
                profile_image_url=user.profile_image_url,
                value=to_money(statistics.stdev(profits)),
                games_played=len(profits),
                extra={"avg_profit": to_money(statistics.fmean(profits))},
            )
        )
    rows.sort(key=lambda r: (r.value, r.user_id))
    return _rank(rows[:limit] if limit else rows)


async def best_winning_streaks(session, league_id, year=None, limit=None) -> list[PlayerStat]:
    """Longest run of consecutive winning games, in the order games ended."""
    start, end = year_bounds(year) if year else (None, None)
    rows = []
    for user, profits in (await _member_profit_sequences(session, league_id, start, end)).values():
        streak = longest_positive_run(profits)
        if not streak:
            continue
        rows.append(
            PlayerStat(
                user_id=user.id,
                full_name=user.full_name,
                profile_image_url=user.profile_image_url,
                value=Decimal(streak),
                games_played=len(profits),
                extra={"current_streak": trailing_streak(profits)},
            )
        )
    rows.sort(key=lambda r: (-r.value, r.user_id))
    return _rank(rows[:limit] if limit else rows)


async def monthly_profit_leaders(session, league_id, today: Optional[date] = None, limit=None) -> list[PlayerStat]:
    """Top profit over games that ended in the current calendar month."""
    start, end = month_bounds(today or date.today())
    return await _aggregate_board(session, league_id, func.sum(GamePlayer.profit), True, start, end, limit)


StatFn = Callable[..., Awaitable[list[PlayerStat]]]

RANKINGS: dict[str, StatFn] = {
    "top-profit-player": top_profit_players,
    "most-active-player": most_active_players,
    "highest-single-game-profit": highest_single_game_profits,
    "biggest-loser": biggest_losers,
    "most-consistent-player": most_consistent_players,
    "best-winning-streak": best_winning_streaks,
}

STAT_LABELS = {
    "top-profit-player": "Total Profit",
    "most-active-player": "Games Played",
    "highest-single-game-profit": "Best Single Game",
    "biggest-loser": "Total Loss",
    "most-consistent-player": "Consistency Score",
    "best-winning-streak": "Winning Streak",
    "monthly-profit-leader": "Monthly Profit",
}


async def get_rankings(
    session: AsyncSession,
    league_id: int,
    stat_type: str,
    year: Optional[int] = None,
    limit: Optional[int] = None,
) -> list[PlayerStat]:
    """Leaderboard for a stat slug (see STAT_LABELS)."""
    if stat_type not in STAT_LABELS:
        raise ValidationError("Invalid stat type. Type must be one of: " + ", ".join(STAT_LABELS))
    await _require_league(session, league_id)
    if stat_type == "monthly-profit-leader":
        return await monthly_profit_leaders(session, league_id, limit=limit)
    return await RANKINGS[stat_type](session, league_id, year=year, limit=limit)


# --- Per player ---


async def player_record(
    session: AsyncSession,
    league_id: int,
    user_id: int,
    year: Optional[int] = None,
) -> PlayerRecord:
    """Win/loss/tie record and profit figures of one player in one league."""
    await _require_league(session, league_id)
    user = await session.get(User, user_id)
    if user is None:
        raise NotFoundError("User not found")
    start, end = year_bounds(year) if year else (None, None)
    seats = (
        await session.execute(
            select(GamePlayer.id, GamePlayer.profit)
            .join(Game, Game.id == GamePlayer.game_id)
            .where(
                *_completed_games(league_id, start, end),
                GamePlayer.user_id == user_id,
                GamePlayer.profit.is_not(None),
            )
            .order_by(Game.ended_at, Game.id)
        )
    ).all()
    record = PlayerRecord(user_id=user.id, full_name=user.full_name)
    if not seats:
        return record
    profits = [to_money(p) for _, p in seats]
    money_in = (
        await session.execute(
            select(func.sum(CashIn.amount)).where(
                CashIn.game_player_id.in_([seat_id for seat_id, _ in seats]),
                CashIn.type.in_(MONEY_IN_TYPES),
            )
        )
    ).scalar_one()
    record.games_played = len(profits)
    record.wins = sum(1 for p in profits if p > 0)
    record.losses = sum(1 for p in profits if p < 0)
    record.ties = sum(1 for p in profits if p == 0)
    record.total_profit = to_money(sum(profits, ZERO))
    record.total_buy_ins = to_money(money_in)
    record.average_profit = to_money(record.total_profit / record.games_played)
    record.best_game = max(profits)
    record.worst_game = min(profits)
    record.longest_win_streak = longest_positive_run(profits)
    record.current_streak = trailing_streak(profits)
    return record
