"""Tests for sign-in upsert, profile updates and account deletion."""
import pytest
from sqlalchemy import func, select

from homegame.errors import NotFoundError, ValidationError
from homegame.models import CashIn, GamePlayer, LeagueMember, User
from homegame.services import ledger, users


@pytest.mark.asyncio
async def test_upsert_creates_then_updates(session):
    user, created = await users.upsert_user(
        session, "Alice@Example.com", "Alice Smith", provider="google", provider_id="g-1"
    )
    assert created
    assert user.email == "alice@example.com"
    assert (user.first_name, user.last_name) == ("Alice", "Smith")

    again, created = await users.upsert_user(
        session, "alice@example.com", "Someone Else", provider_id="g-1", profile_image_url="https://img/a.png"
    )
    assert not created
    assert again.id == user.id
    # a real stored name is kept
    assert again.full_name == "Alice Smith"
    assert again.profile_image_url == "https://img/a.png"


@pytest.mark.asyncio
async def test_upsert_replaces_placeholder_name(session):
    user, _ = await users.upsert_user(session, "bob@privaterelay.example", "Apple User", provider="apple", provider_id="a-1")
    updated, created = await users.upsert_user(session, "bob@privaterelay.example", "Bob Jones", provider="apple", provider_id="a-1")
    assert not created
    assert updated.full_name == "Bob Jones"


@pytest.mark.asyncio
async def test_upsert_validates_input(session):
    with pytest.raises(ValidationError):
        await users.upsert_user(session, "", "Nobody")
    with pytest.raises(ValidationError):
        await users.upsert_user(session, "x@example.com", "X", provider="myspace")


@pytest.mark.asyncio
async def test_update_user(session, make_user):
    user = await make_user("Carol")
    with pytest.raises(ValidationError):
        await users.update_user(session, user.id)
    with pytest.raises(ValidationError):
        await users.update_user(session, user.id, full_name="   ")
    updated = await users.update_user(session, user.id, full_name="Carol King")
    assert updated.last_name == "King"


@pytest.mark.asyncio
async def test_delete_user_cascades(session, make_user, make_league):
    alice = await make_user("Alice")
    bob = await make_user("Bob")
    carol = await make_user("Carol")
    league = await make_league(alice, bob, carol)
    await ledger.create_game(session, league.id, alice.id, 50, [alice.id, bob.id, carol.id])

    await users.delete_user(session, bob.id)

    assert await session.get(User, bob.id) is None
    count = lambda model, col: select(func.count(model.id)).where(col == bob.id)  # noqa: E731
    assert (await session.execute(count(LeagueMember, LeagueMember.user_id))).scalar_one() == 0
    assert (await session.execute(count(GamePlayer, GamePlayer.user_id))).scalar_one() == 0
    assert (await session.execute(count(CashIn, CashIn.user_id))).scalar_one() == 0

    with pytest.raises(NotFoundError):
        await users.delete_user(session, bob.id)
