"""Tests for leagues, invite codes and membership checks."""
import pytest
from sqlalchemy import select

from homegame.errors import ConflictError, InviteCodeExhausted, NotFoundError, PermissionDenied, ValidationError
from homegame.models import LeagueMember
from homegame.services import membership


def test_generated_codes_use_the_unambiguous_alphabet():
    for _ in range(200):
        code = membership.generate_invite_code()
        assert len(code) == 5
        assert set(code) <= set(membership.INVITE_CODE_ALPHABET)
    assert len(membership.INVITE_CODE_ALPHABET) == 32
    for ambiguous in "0O1I":
        assert ambiguous not in membership.INVITE_CODE_ALPHABET


def test_validate_invite_code():
    assert membership.validate_invite_code(" abc23 ") == "ABC23"
    with pytest.raises(ValidationError, match="required"):
        membership.validate_invite_code("")
    with pytest.raises(ValidationError, match="exactly 5"):
        membership.validate_invite_code("ABC2")
    with pytest.raises(ValidationError, match="invalid characters"):
        membership.validate_invite_code("ABC0O")
    assert membership.is_valid_invite_code("HJKMN")
    assert not membership.is_valid_invite_code(None)


@pytest.mark.asyncio
async def test_create_league_makes_creator_admin(session, make_user):
    alice = await make_user("Alice")
    league = await membership.create_league(session, "Tuesday Game", alice.id)

    assert league.is_active
    assert membership.is_valid_invite_code(league.invite_code)
    member = await membership.check_league_access(session, alice.id, league.id, required_role="admin")
    assert member.role == "admin"


@pytest.mark.asyncio
async def test_create_league_validates_name(session, make_user):
    alice = await make_user("Alice")
    with pytest.raises(ValidationError):
        await membership.create_league(session, "ab", alice.id)
    with pytest.raises(ValidationError):
        await membership.create_league(session, "x" * 51, alice.id)


@pytest.mark.asyncio
async def test_unique_code_generation_gives_up(session, make_user, monkeypatch):
    alice = await make_user("Alice")
    league = await membership.create_league(session, "Taken", alice.id)
    monkeypatch.setattr(membership, "generate_invite_code", lambda: league.invite_code)

    with pytest.raises(InviteCodeExhausted) as excinfo:
        await membership.generate_unique_invite_code(session, max_attempts=3)
    assert excinfo.value.attempts == 3
    assert excinfo.value.status_code == 409


@pytest.mark.asyncio
async def test_join_by_invite_code(session, make_user):
    alice = await make_user("Alice")
    bob = await make_user("Bob")
    league = await membership.create_league(session, "Home Game", alice.id)

    member = await membership.join_league_by_invite_code(session, league.invite_code.lower(), bob.id)
    assert member.role == "member"
    assert member.league_id == league.id

    with pytest.raises(ConflictError):
        await membership.join_league_by_invite_code(session, league.invite_code, bob.id)


@pytest.mark.asyncio
async def test_join_rejects_unknown_code_and_inactive_league(session, make_user):
    alice = await make_user("Alice")
    bob = await make_user("Bob")
    league = await membership.create_league(session, "Home Game", alice.id)

    unknown = "ZZZZZ" if league.invite_code != "ZZZZZ" else "YYYYY"
    with pytest.raises(NotFoundError):
        await membership.join_league_by_invite_code(session, unknown, bob.id)

    await membership.deactivate_league(session, league.id)
    with pytest.raises(ValidationError):
        await membership.join_league_by_invite_code(session, league.invite_code, bob.id)


@pytest.mark.asyncio
async def test_rejoin_reactivates_membership(session, make_user, make_league):
    alice = await make_user("Alice")
    bob = await make_user("Bob")
    league = await make_league(alice, bob)
    member = (
        await session.execute(
            select(LeagueMember).where(LeagueMember.league_id == league.id, LeagueMember.user_id == bob.id)
        )
    ).scalar_one()
    member.is_active = False
    await session.commit()

    with pytest.raises(PermissionDenied):
        await membership.check_league_access(session, bob.id, league.id)

    rejoined = await membership.join_league_by_invite_code(session, league.invite_code, bob.id)
    assert rejoined.id == member.id
    assert rejoined.is_active


@pytest.mark.asyncio
async def test_check_league_access(session, make_user, make_league):
    alice = await make_user("Alice")
    bob = await make_user("Bob")
    outsider = await make_user("Mallory")
    league = await make_league(alice, bob)

    assert (await membership.check_league_access(session, bob.id, league.id)).role == "member"
    with pytest.raises(PermissionDenied):
        await membership.check_league_access(session, bob.id, league.id, required_role="admin")
    with pytest.raises(PermissionDenied):
        await membership.check_league_access(session, outsider.id, league.id)
    with pytest.raises(NotFoundError):
        await membership.check_league_access(session, bob.id, 9999)


@pytest.mark.asyncio
async def test_user_leagues_lists_active_leagues_with_member_counts(session, make_user, make_league):
    alice = await make_user("Alice")
    bob = await make_user("Bob")
    carol = await make_user("Carol")
    first = await make_league(alice, bob, carol, name="First League")
    second = await make_league(bob, alice, name="Second League")
    closed = await make_league(alice, name="Closed League")
    await membership.deactivate_league(session, closed.id)

    leagues = await membership.get_user_leagues(session, alice.id)
    assert len(leagues) == 2
    by_id = {entry["id"]: entry for entry in leagues}
    assert by_id[first.id]["member_count"] == 3
    assert by_id[first.id]["role"] == "admin"
    assert by_id[second.id]["member_count"] == 2
    assert by_id[second.id]["role"] == "member"
    assert by_id[second.id]["code"] == second.invite_code


@pytest.mark.asyncio
async def test_update_league(session, make_user):
    alice = await make_user("Alice")
    league = await membership.create_league(session, "Old Name", alice.id)
    with pytest.raises(ValidationError):
        await membership.update_league(session, league.id)
    updated = await membership.update_league(session, league.id, name="New Name")
    assert updated.name == "New Name"

    details = await membership.get_league_details(session, league.id)
    assert details["name"] == "New Name"
    assert [m["id"] for m in details["members"]] == [alice.id]
