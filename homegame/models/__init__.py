"""Database models."""
from homegame.models.base import Base, Database, init_db, utcnow
from homegame.models.user import User
from homegame.models.league import AnonymousPlayer, League, LeagueMember
from homegame.models.game import CASH_IN_TYPES, MONEY_IN_TYPES, CashIn, Game, GamePlayer

__all__ = [
    "Base",
    "Database",
    "User",
    "League",
    "LeagueMember",
    "AnonymousPlayer",
    "Game",
    "GamePlayer",
    "CashIn",
    "CASH_IN_TYPES",
    "MONEY_IN_TYPES",
    "init_db",
    "utcnow",
]
