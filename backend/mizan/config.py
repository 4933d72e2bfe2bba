# backend/mizan/config.py
from __future__ import annotations
import os


def _env_flag(name: str, default: bool = False) -> bool:
    raw = os.environ.get(name)
    if raw is None:
        return default
    return raw.strip().lower() in {"1", "true", "yes", "on"}


class Config:
    # Optional "SECRET_KEY", with default dev key
    SECRET_KEY = os.environ.get("SECRET_KEY", "dev-secret-key-change-me")

    # SQLite DB stored in backend/instance/mizan.sqlite3
    SQLALCHEMY_DATABASE_URI = os.environ.get(
        "DATABASE_URL",  # optional alternative location (postgresql://... in production)
        "sqlite:///mizan.sqlite3",
    )
    SQLALCHEMY_TRACK_MODIFICATIONS = False

    # System accounts used by the posting policy (المخزون / المبيعات / تكلفة البضاعة المباعة)
    INVENTORY_ACCOUNT_ID = int(os.environ.get("INVENTORY_ACCOUNT_ID", "3"))
    SALES_REVENUE_ACCOUNT_ID = int(os.environ.get("SALES_REVENUE_ACCOUNT_ID", "5"))
    COGS_ACCOUNT_ID = int(os.environ.get("COGS_ACCOUNT_ID", "6"))

    # Sales may only drive a stock cell negative when explicitly overridden
    ALLOW_NEGATIVE_STOCK = _env_flag("ALLOW_NEGATIVE_STOCK", False)

    LOG_LEVEL = os.environ.get("LOG_LEVEL", "INFO")

    CORS_ALLOWED_ORIGINS = {
        origin.strip()
        for origin in os.environ.get(
            "CORS_ALLOWED_ORIGINS",
            "http://localhost:5173,http://127.0.0.1:5173,http://localhost:5000",
        ).split(",")
        if origin.strip()
    }
