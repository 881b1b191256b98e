"""League, membership and anonymous player models."""
from __future__ import annotations

from datetime import datetime
from typing import Optional

from sqlalchemy import Boolean, DateTime, ForeignKey, Integer, String, Text
from sqlalchemy.orm import Mapped, mapped_column, relationship

from homegame.models.base import Base, utcnow


class League(Base):
    """Named group that owns games. Deactivated instead of deleted."""

    __tablename__ = "leagues"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    name: Mapped[str] = mapped_column(String(100), nullable=False)
    image_url: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    invite_code: Mapped[str] = mapped_column(String(5), unique=True, nullable=False, index=True)
    admin_user_id: Mapped[int] = mapped_column(ForeignKey("users.id", ondelete="CASCADE"), nullable=False)
    is_active: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)
    created_at: Mapped[datetime] = mapped_column(DateTime, default=utcnow, nullable=False)
    updated_at: Mapped[datetime] = mapped_column(DateTime, default=utcnow, onupdate=utcnow, nullable=False)

    admin = relationship("User")
    members = relationship(
        "LeagueMember", back_populates="league", cascade="all, delete-orphan", passive_deletes=True
    )
    games = relationship(
        "Game", back_populates="league", cascade="all, delete-orphan", passive_deletes=True
    )
    anonymous_players = relationship(
        "AnonymousPlayer", back_populates="league", cascade="all, delete-orphan", passive_deletes=True
    )


class LeagueMember(Base):
    """User membership in a league. At most one active row per (league, user)."""

    __tablename__ = "league_members"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    league_id: Mapped[int] = mapped_column(ForeignKey("leagues.id", ondelete="CASCADE"), nullable=False, index=True)
    user_id: Mapped[int] = mapped_column(ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True)
    role: Mapped[str] = mapped_column(String(16), nullable=False, default="member")  # admin, member, moderator
    joined_at: Mapped[datetime] = mapped_column(DateTime, default=utcnow, nullable=False)
    is_active: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)

    league: Mapped["League"] = relationship("League", back_populates="members")
    user: Mapped["User"] = relationship("User", back_populates="memberships")


class AnonymousPlayer(Base):
    """Guest without an account, added to a game by name."""

    __tablename__ = "anonymous_players"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    league_id: Mapped[int] = mapped_column(ForeignKey("leagues.id", ondelete="CASCADE"), nullable=False, index=True)
    name: Mapped[str] = mapped_column(String(100), nullable=False)
    created_at: Mapped[datetime] = mapped_column(DateTime, default=utcnow, nullable=False)

    league: Mapped["League"] = relationship("League", back_populates="anonymous_players")
    game_seats = relationship(
        "GamePlayer", back_populates="anonymous_player", cascade="all, delete", passive_deletes=True
    )
