"""Tests for league statistics and leaderboards.

The `season` fixture plays three games (buy-in 50 each) with these profits:

    game   ended        alice   bob   carol
    1      2024-03-01    +30    -10    -20
    2      2024-04-05    +20    +10    -30
    3      2024-05-10    -20    +40    -20
    total                +30    +40    -70
"""
from datetime import date, datetime, timedelta
from decimal import Decimal

import pytest

from homegame.errors import NotFoundError, ValidationError
from homegame.services import ledger, stats


@pytest.fixture
async def season(session, make_user, make_league, play_game):
    alice = await make_user("Alice")
    bob = await make_user("Bob")
    carol = await make_user("Carol")
    league = await make_league(alice, bob, carol)
    schedule = [
        ({alice: 80, bob: 40, carol: 30}, datetime(2024, 3, 1, 20, 0), 60),
        ({alice: 70, bob: 60, carol: 20}, datetime(2024, 4, 5, 20, 0), 90),
        ({alice: 30, bob: 90, carol: 30}, datetime(2024, 5, 10, 20, 0), 121),
    ]
    for results, started_at, minutes in schedule:
        game = await play_game(league, alice, results)
        game.started_at = started_at
        game.ended_at = started_at + timedelta(minutes=minutes)
        await session.commit()
    return league, alice, bob, carol


def _board(rows):
    return [(row.full_name, row.value) for row in rows]


def test_duration_and_streak_helpers():
    start = datetime(2024, 1, 1, 20, 0)
    assert stats.game_duration_minutes(start, start + timedelta(seconds=90 * 60 + 30)) == 91
    assert stats.game_duration_minutes(start, start - timedelta(minutes=5)) == 0
    assert stats.game_duration_minutes(start, None) is None

    profits = [Decimal(p) for p in (5, 10, -3, 4, 6, 8, 0)]
    assert stats.longest_positive_run(profits) == 3
    assert stats.trailing_streak(profits) == 0
    assert stats.trailing_streak(profits[:-1]) == 3
    assert stats.trailing_streak([Decimal(1), Decimal(-1), Decimal(-2)]) == -2


@pytest.mark.asyncio
async def test_general_stats_without_completed_games(session, make_user, make_league):
    alice = await make_user("Alice")
    bob = await make_user("Bob")
    league = await make_league(alice, bob)
    await ledger.create_game(session, league.id, alice.id, 25, [alice.id, bob.id])

    result = await stats.general_league_stats(session, league.id)
    assert result.total_games == 1
    assert result.active_games == 1
    assert result.completed_games == 0
    assert result.total_players == 2
    assert result.average_game_duration == 0
    assert result.total_buy_ins == Decimal("50.00")
    assert result.most_profitable_player == {"name": "N/A", "profit": Decimal("0.00")}
    assert result.most_active_player == {"name": "N/A", "games_played": 0}


@pytest.mark.asyncio
async def test_general_stats_for_a_season(session, season):
    league, alice, bob, _ = season
    await ledger.create_game(session, league.id, alice.id, 50, [alice.id, bob.id])

    result = await stats.general_league_stats(session, league.id)
    assert (result.total_games, result.active_games, result.completed_games) == (4, 1, 3)
    assert result.total_players == 3
    assert result.total_buy_ins == Decimal("550.00")
    assert result.total_buy_outs == Decimal("450.00")
    assert result.total_profit == Decimal("-100.00")
    # (60 + 90 + 121) / 3 = 90.33
    assert result.average_game_duration == 90
    assert result.most_profitable_player == {"name": "Bob", "profit": Decimal("40.00")}
    # completed games only: all three played 3, lower user id wins the tie
    assert result.most_active_player == {"name": "Alice", "games_played": 3}
    board = await stats.most_active_players(session, league.id)
    assert result.most_active_player["name"] == board[0].full_name


@pytest.mark.asyncio
async def test_general_stats_unknown_league(session):
    with pytest.raises(NotFoundError):
        await stats.general_league_stats(session, 404)


@pytest.mark.asyncio
async def test_profit_boards(session, season):
    league, *_ = season

    top = await stats.top_profit_players(session, league.id)
    assert _board(top) == [("Bob", Decimal("40.00")), ("Alice", Decimal("30.00")), ("Carol", Decimal("-70.00"))]
    assert [row.rank for row in top] == [1, 2, 3]
    assert top[0].games_played == 3

    losers = await stats.biggest_losers(session, league.id)
    assert losers[0].full_name == "Carol"
    assert losers[0].value == Decimal("70.00")
    assert losers[0].extra["actual_loss"] == Decimal("-70.00")

    single = await stats.highest_single_game_profits(session, league.id)
    assert _board(single)[0] == ("Bob", Decimal("40.00"))


@pytest.mark.asyncio
async def test_most_active_ties_break_by_user_id(session, season):
    league, alice, bob, carol = season
    rows = await stats.most_active_players(session, league.id)
    assert [row.user_id for row in rows] == [alice.id, bob.id, carol.id]
    assert all(row.value == 3 for row in rows)


@pytest.mark.asyncio
async def test_most_consistent_players(session, season):
    league, *_ = season
    rows = await stats.most_consistent_players(session, league.id)
    # sample standard deviations: carol 5.77, bob 25.17, alice 26.46
    assert _board(rows) == [
        ("Carol", Decimal("5.77")),
        ("Bob", Decimal("25.17")),
        ("Alice", Decimal("26.46")),
    ]


@pytest.mark.asyncio
async def test_consistency_needs_three_games(session, make_user, make_league, play_game):
    alice = await make_user("Alice")
    bob = await make_user("Bob")
    league = await make_league(alice, bob)
    await play_game(league, alice, {alice: 60, bob: 40})
    await play_game(league, alice, {alice: 40, bob: 60})
    assert await stats.most_consistent_players(session, league.id) == []


@pytest.mark.asyncio
async def test_winning_streaks(session, season):
    league, alice, bob, _ = season
    rows = await stats.best_winning_streaks(session, league.id)
    assert [(row.user_id, row.value) for row in rows] == [(alice.id, 2), (bob.id, 2)]
    assert rows[0].extra["current_streak"] == -1
    assert rows[1].extra["current_streak"] == 2


@pytest.mark.asyncio
async def test_rankings_by_slug_year_and_limit(session, season):
    league, *_ = season

    hero = await stats.get_rankings(session, league.id, "top-profit-player", limit=1)
    assert _board(hero) == [("Bob", Decimal("40.00"))]

    assert await stats.get_rankings(session, league.id, "top-profit-player", year=2023) == []
    assert len(await stats.get_rankings(session, league.id, "biggest-loser", year=2024)) == 3

    with pytest.raises(ValidationError):
        await stats.get_rankings(session, league.id, "luckiest-player")


@pytest.mark.asyncio
async def test_monthly_profit_leaders(session, season):
    league, alice, bob, carol = season
    rows = await stats.monthly_profit_leaders(session, league.id, today=date(2024, 5, 20))
    assert [(row.user_id, row.value) for row in rows] == [
        (bob.id, Decimal("40.00")),
        (alice.id, Decimal("-20.00")),
        (carol.id, Decimal("-20.00")),
    ]
    assert await stats.monthly_profit_leaders(session, league.id, today=date(2024, 6, 1)) == []


@pytest.mark.asyncio
async def test_player_record(session, season):
    league, alice, *_ = season
    record = await stats.player_record(session, league.id, alice.id)
    assert (record.games_played, record.wins, record.losses, record.ties) == (3, 2, 1, 0)
    assert record.total_profit == Decimal("30.00")
    assert record.total_buy_ins == Decimal("150.00")
    assert record.average_profit == Decimal("10.00")
    assert (record.best_game, record.worst_game) == (Decimal("30.00"), Decimal("-20.00"))
    assert record.longest_win_streak == 2
    assert record.current_streak == -1
    assert record.win_rate == 66.7

    empty = await stats.player_record(session, league.id, alice.id, year=2020)
    assert empty.games_played == 0
    assert empty.win_rate == 0.0
