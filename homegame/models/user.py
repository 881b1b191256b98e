"""User model."""
from __future__ import annotations

from datetime import datetime
from typing import Optional

from sqlalchemy import DateTime, Integer, String, Text
from sqlalchemy.orm import Mapped, mapped_column, relationship

from homegame.models.base import Base, utcnow

PROVIDERS = ("google", "apple")


class User(Base):
    """Signed-in person. Created on first sign-in, refreshed on later ones."""

    __tablename__ = "users"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    email: Mapped[str] = mapped_column(String(255), unique=True, nullable=False, index=True)
    full_name: Mapped[str] = mapped_column(Text, nullable=False)
    first_name: Mapped[Optional[str]] = mapped_column(String(100), nullable=True)
    last_name: Mapped[Optional[str]] = mapped_column(String(100), nullable=True)
    profile_image_url: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    provider_id: Mapped[Optional[str]] = mapped_column(String(255), unique=True, nullable=True)  # Apple/Google subject
    provider: Mapped[str] = mapped_column(String(20), nullable=False, default="google")  # google, apple
    created_at: Mapped[datetime] = mapped_column(DateTime, default=utcnow, nullable=False)
    updated_at: Mapped[datetime] = mapped_column(DateTime, default=utcnow, onupdate=utcnow, nullable=False)
    last_login_at: Mapped[Optional[datetime]] = mapped_column(DateTime, nullable=True)

    memberships = relationship(
        "LeagueMember", back_populates="user", cascade="all, delete", passive_deletes=True
    )
    game_seats = relationship(
        "GamePlayer", back_populates="user", cascade="all, delete", passive_deletes=True
    )
