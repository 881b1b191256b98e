"""Pytest configuration and fixtures for service and API tests."""
import itertools
import os

# Set test env BEFORE any imports that use config
os.environ["DATABASE_URL"] = "sqlite+aiosqlite:///:memory:"
os.environ["JWT_SECRET"] = "test-secret-not-for-production"
os.environ["IMAGE_BASE_URL"] = ""

import pytest
from httpx import ASGITransport, AsyncClient

from homegame.models import Database, init_db
from homegame.services import ledger, membership, users
from web.api.main import app
from web.auth import create_access_token


@pytest.fixture
def anyio_backend():
    return "asyncio"


@pytest.fixture
async def db(tmp_path):
    """Fresh SQLite file database per test."""
    database = await init_db(Database(f"sqlite+aiosqlite:///{tmp_path / 'homegame-test.db'}"))
    yield database
    await database.close()


@pytest.fixture
async def session(db):
    async with db.session() as s:
        yield s


@pytest.fixture
async def client(db):
    """Async HTTP client for testing the API (ASGI lifespan doesn't run with httpx, so attach the db here)."""
    app.state.db = db
    async with AsyncClient(
        transport=ASGITransport(app=app),
        base_url="http://test",
    ) as ac:
        yield ac


@pytest.fixture
def make_user(session):
    counter = itertools.count(1)

    async def _make(full_name=None, email=None):
        n = next(counter)
        user, _ = await users.upsert_user(
            session,
            email=email or f"player{n}@example.com",
            full_name=full_name or f"Player {n}",
        )
        return user

    return _make


@pytest.fixture
def make_league(session):
    """League administered by `admin`, joined by every user in `members`."""

    async def _make(admin, *members, name="Friday Night Poker"):
        league = await membership.create_league(session, name, admin.id)
        for member in members:
            await membership.join_league_by_invite_code(session, league.invite_code, member.id)
        return league

    return _make


@pytest.fixture
def play_game(session):
    """Run a whole game: seat everyone at `buy_in`, cash each out at results[user], end it."""

    async def _play(league, creator, results, buy_in=50):
        game = await ledger.create_game(session, league.id, creator.id, buy_in, [u.id for u in results])
        detail = await ledger.get_game_detail(session, game.id)
        seats = {p["user_id"]: p["id"] for p in detail["players"]}
        for user, final_amount in results.items():
            await ledger.record_cash_out(session, seats[user.id], final_amount)
        return await ledger.end_game(session, game.id)

    return _play


def auth_headers_for(user):
    return {"Authorization": f"Bearer {create_access_token(user.id)}"}


@pytest.fixture
def auth():
    return auth_headers_for
