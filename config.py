"""Configuration for the home game league API."""
from __future__ import annotations

import os
from pathlib import Path

from dotenv import load_dotenv

load_dotenv()

# Database
DATABASE_URL = os.getenv(
    "DATABASE_URL",
    f"sqlite+aiosqlite:///{Path(__file__).parent / 'homegame.db'}",
)
SQL_ECHO = os.getenv("SQL_ECHO", "false").lower() == "true"

# Web auth (JWT secret shared with the sign-in service that issues tokens)
JWT_SECRET = os.getenv("JWT_SECRET", "change-me-in-production-use-long-random-string")
JWT_ALGORITHM = "HS256"
JWT_EXPIRE_DAYS = 7

LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO").upper()


def _parse_int(value: str | None, default: int) -> int:
    if not value:
        return default
    try:
        return int(value.strip())
    except ValueError:
        return default


def _parse_origins(value: str) -> list[str]:
    if not value:
        return ["*"]
    return [x.strip() for x in value.split(",") if x.strip()] or ["*"]


# Leagues
INVITE_CODE_MAX_ATTEMPTS = _parse_int(os.getenv("INVITE_CODE_MAX_ATTEMPTS"), 10)
DEFAULT_LEAGUE_IMAGE = os.getenv("DEFAULT_LEAGUE_IMAGE", "default-league.png")
IMAGE_BASE_URL = os.getenv("IMAGE_BASE_URL", "")  # Prefix for relative league image paths

# Games list page size when the client does not send ?limit
GAMES_PAGE_SIZE = _parse_int(os.getenv("GAMES_PAGE_SIZE"), 3)

# HTTP server
CORS_ORIGINS = _parse_origins(os.getenv("CORS_ORIGINS", ""))
API_HOST = os.getenv("API_HOST", "0.0.0.0")
API_PORT = _parse_int(os.getenv("API_PORT"), 8000)
API_RELOAD = os.getenv("API_RELOAD", "false").lower() == "true"
