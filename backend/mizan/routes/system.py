# backend/mizan/routes/system.py
"""Health endpoint: confirms the database answers and the ledger is bound."""

import time

from flask import Blueprint, current_app
from sqlalchemy import text
from sqlalchemy.exc import SQLAlchemyError

from ..extensions import db
from ..ledger import EXTENSION_KEY
from ..time_utils import to_utc_z, utcnow

system_bp = Blueprint("system", __name__)


def check_database_health() -> dict:
    start_time = time.time()
    try:
        db.session.execute(text("SELECT 1"))
        elapsed_ms = (time.time() - start_time) * 1000
        return {"status": "healthy", "response_time_ms": round(elapsed_ms, 2)}
    except SQLAlchemyError as e:
        db.session.rollback()
        current_app.logger.warning("health check: database unavailable: %s", e)
        return {"status": "unhealthy", "error": str(e)}


@system_bp.get("/api/health")
def health():
    database = check_database_health()
    ledger_bound = EXTENSION_KEY in current_app.extensions
    healthy = database["status"] == "healthy" and ledger_bound
    return {
        "status": "ok" if healthy else "degraded",
        "timestamp": to_utc_z(utcnow()),
        "checks": {
            "database": database,
            "ledger": {"status": "healthy" if ledger_bound else "unbound"},
        },
    }, 200 if healthy else 503
