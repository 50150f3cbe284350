# backend/docledger/config.py
from __future__ import annotations
import os


def _env_int(name: str, default: int) -> int:
    raw = os.environ.get(name)
    if raw is None or not raw.strip():
        return default
    return int(raw)


def _env_bool(name: str, default: bool) -> bool:
    raw = os.environ.get(name)
    if raw is None:
        return default
    return raw.strip().lower() in {"1", "true", "yes", "on"}


class Config:
    # Optional "SECRET_KEY", with default dev key
    SECRET_KEY = os.environ.get("SECRET_KEY", "dev-secret-key-change-me")

    # SQLite DB stored in backend/instance/docledger.sqlite3
    SQLALCHEMY_DATABASE_URI = os.environ.get(
        "DATABASE_URL", #optional alternative location
        "sqlite:///docledger.sqlite3", #default local location
    )
    SQLALCHEMY_TRACK_MODIFICATIONS = False

    LOG_LEVEL = os.environ.get("LOG_LEVEL", "INFO")

    # Quantity scale used when a product does not declare its own
    DEFAULT_QUANTITY_DECIMALS = _env_int("DEFAULT_QUANTITY_DECIMALS", 4)

    # Lower bound for installment due dates, in days before the document date
    INSTALLMENT_MAX_BACKDATE_DAYS = _env_int("INSTALLMENT_MAX_BACKDATE_DAYS", 365)

    # Whole-transaction retries for finalize on lock/race failures
    FINALIZE_RETRY_ATTEMPTS = _env_int("FINALIZE_RETRY_ATTEMPTS", 5)
    FINALIZE_RETRY_BACKOFF = float(os.environ.get("FINALIZE_RETRY_BACKOFF", "0.05"))

    # Tenant/user/role are supplied by the upstream gateway as request headers
    TRUST_CONTEXT_HEADERS = _env_bool("TRUST_CONTEXT_HEADERS", True)
