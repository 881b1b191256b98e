"""Game, seat and cash transaction models."""
from __future__ import annotations

from datetime import datetime
from decimal import Decimal
from typing import Optional

from sqlalchemy import Boolean, DateTime, ForeignKey, Integer, Numeric, String, Text
from sqlalchemy.orm import Mapped, mapped_column, relationship

from homegame.models.base import Base, utcnow

# Transactions that put money into the pot; buy_out is the final payout
MONEY_IN_TYPES = ("buy_in", "rebuy", "add_on")
CASH_IN_TYPES = MONEY_IN_TYPES + ("buy_out",)

Money = Numeric(10, 2)


class Game(Base):
    """One poker session within a league."""

    __tablename__ = "games"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    league_id: Mapped[int] = mapped_column(ForeignKey("leagues.id", ondelete="CASCADE"), nullable=False, index=True)
    created_by: Mapped[int] = mapped_column(ForeignKey("users.id", ondelete="CASCADE"), nullable=False)
    buy_in: Mapped[Decimal] = mapped_column(Money, nullable=False)
    status: Mapped[str] = mapped_column(String(16), nullable=False, default="active")  # active, completed
    started_at: Mapped[datetime] = mapped_column(DateTime, default=utcnow, nullable=False)
    ended_at: Mapped[Optional[datetime]] = mapped_column(DateTime, nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTime, default=utcnow, nullable=False)
    updated_at: Mapped[datetime] = mapped_column(DateTime, default=utcnow, onupdate=utcnow, nullable=False)

    league: Mapped["League"] = relationship("League", back_populates="games")
    creator = relationship("User")
    players = relationship(
        "GamePlayer", back_populates="game", cascade="all, delete-orphan", passive_deletes=True
    )
    cash_ins = relationship(
        "CashIn", back_populates="game", cascade="all, delete-orphan", passive_deletes=True
    )


class GamePlayer(Base):
    """Seat of a user (or anonymous guest) in one game. Profit is set at cash-out."""

    __tablename__ = "game_players"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    game_id: Mapped[int] = mapped_column(ForeignKey("games.id", ondelete="CASCADE"), nullable=False, index=True)
    user_id: Mapped[Optional[int]] = mapped_column(
        ForeignKey("users.id", ondelete="CASCADE"), nullable=True, index=True
    )
    anonymous_player_id: Mapped[Optional[int]] = mapped_column(
        ForeignKey("anonymous_players.id", ondelete="CASCADE"), nullable=True
    )
    final_amount: Mapped[Optional[Decimal]] = mapped_column(Money, nullable=True)
    profit: Mapped[Optional[Decimal]] = mapped_column(Money, nullable=True)  # final_amount - money in
    is_active: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)
    joined_at: Mapped[datetime] = mapped_column(DateTime, default=utcnow, nullable=False)
    left_at: Mapped[Optional[datetime]] = mapped_column(DateTime, nullable=True)

    game: Mapped["Game"] = relationship("Game", back_populates="players")
    user: Mapped[Optional["User"]] = relationship("User", back_populates="game_seats")
    anonymous_player: Mapped[Optional["AnonymousPlayer"]] = relationship(
        "AnonymousPlayer", back_populates="game_seats"
    )
    cash_ins = relationship(
        "CashIn", back_populates="game_player", cascade="all, delete-orphan", passive_deletes=True
    )

    @property
    def display_name(self) -> str:
        if self.user is not None:
            return self.user.full_name
        if self.anonymous_player is not None:
            return self.anonymous_player.name
        return "Unknown Player"


class CashIn(Base):
    """Money movement for a seat. Amounts are positive; type gives the direction."""

    __tablename__ = "cash_ins"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    game_id: Mapped[int] = mapped_column(ForeignKey("games.id", ondelete="CASCADE"), nullable=False, index=True)
    user_id: Mapped[Optional[int]] = mapped_column(ForeignKey("users.id", ondelete="CASCADE"), nullable=True)
    game_player_id: Mapped[int] = mapped_column(
        ForeignKey("game_players.id", ondelete="CASCADE"), nullable=False, index=True
    )
    amount: Mapped[Decimal] = mapped_column(Money, nullable=False)
    type: Mapped[str] = mapped_column(String(16), nullable=False, default="buy_in")  # buy_in, rebuy, add_on, buy_out
    chip_count: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)
    notes: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTime, default=utcnow, nullable=False)

    game: Mapped["Game"] = relationship("Game", back_populates="cash_ins")
    game_player: Mapped["GamePlayer"] = relationship("GamePlayer", back_populates="cash_ins")
