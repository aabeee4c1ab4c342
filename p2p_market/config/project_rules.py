# p2p_market/config/project_rules.py
# Central runtime rules for the marketplace service.
# - Values come from the process environment with safe defaults.
# - Behavioural switches are read at call time (R.<NAME>), so tests and the
#   YAML overlay (config/loader.py) can flip them without re-importing.

from __future__ import annotations

import os
from typing import List


def _env_bool(name: str, default: bool) -> bool:
    raw = os.getenv(name)
    if raw is None:
        return default
    return raw.strip().lower() in {"1", "true", "yes", "on"}


def _env_int(name: str, default: int) -> int:
    raw = os.getenv(name)
    if raw is None or not raw.strip():
        return default
    return int(raw)


def _env_list(name: str, default: str) -> List[str]:
    return [x.strip() for x in os.getenv(name, default).split(",") if x.strip()]


# -------------------------------------------------------
# 🔹 Infrastructure
# -------------------------------------------------------
DATABASE_URL: str = os.getenv("DATABASE_URL", "sqlite:///./p2p_market.db")
LOG_LEVEL: str = os.getenv("LOG_LEVEL", "INFO").upper()
CORS_ORIGINS: List[str] = _env_list("CORS_ORIGINS", "*")

# -------------------------------------------------------
# 🔹 Identity (JWT / password hashing)
# -------------------------------------------------------
JWT_SECRET: str = os.getenv("JWT_SECRET", "secretKey")
JWT_ALGORITHM: str = os.getenv("JWT_ALGORITHM", "HS256")
ACCESS_TOKEN_EXPIRE_MINUTES: int = _env_int("ACCESS_TOKEN_EXPIRE_MINUTES", 60)
BCRYPT_ROUNDS: int = _env_int("BCRYPT_ROUNDS", 12)

# -------------------------------------------------------
# 🔹 Offer rules
# -------------------------------------------------------
# Only PENDING offers can be declined. When off, a DECLINED offer may be
# declined again (buyer is re-notified); ACCEPTED/WITHDRAWN stay immutable.
DECLINE_REQUIRES_PENDING: bool = _env_bool("DECLINE_REQUIRES_PENDING", True)

# Buyers whose PENDING offers are cascade-declined by another acceptance
# get an OFFER_DECLINED push only when this is on.
NOTIFY_CASCADE_DECLINED: bool = _env_bool("NOTIFY_CASCADE_DECLINED", False)

# -------------------------------------------------------
# 🔹 Listing browse
# -------------------------------------------------------
DEFAULT_PAGE_SIZE: int = _env_int("DEFAULT_PAGE_SIZE", 10)
MAX_PAGE_SIZE: int = _env_int("MAX_PAGE_SIZE", 100)

# names the YAML overlay is allowed to touch
OVERRIDABLE_RULES = (
    "DECLINE_REQUIRES_PENDING",
    "NOTIFY_CASCADE_DECLINED",
    "DEFAULT_PAGE_SIZE",
    "MAX_PAGE_SIZE",
    "ACCESS_TOKEN_EXPIRE_MINUTES",
)
