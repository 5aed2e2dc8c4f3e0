# backend/splitledger/routes/system.py
"""
System health endpoint.

Reports database reachability and a few table counts for deployment
debugging. Unauthenticated.
"""

import time
from flask import Blueprint, current_app
from ..extensions import db
from ..models import Bill, BillSplit, Group, SessionToken, User
from splitledger.time_utils import utcnow

system_bp = Blueprint("system", __name__, url_prefix="/api")


def check_database_health() -> dict:
    """
    Check database connectivity with a handful of cheap counts.

    Returns dict with status and details.
    """
    start_time = time.time()
    try:
        user_count = db.session.query(User).count()
        group_count = db.session.query(Group).count()
        open_bills = db.session.query(Bill).filter(Bill.status.in_(["pending", "approved"])).count()
        awaiting_review = db.session.query(BillSplit).filter_by(payment_status="submitted").count()

        elapsed_ms = (time.time() - start_time) * 1000

        return {
            "status": "healthy",
            "latency_ms": round(elapsed_ms, 2),
            "details": {
                "users": user_count,
                "groups": group_count,
                "open_bills": open_bills,
                "splits_awaiting_review": awaiting_review,
            }
        }
    except Exception:
        elapsed_ms = (time.time() - start_time) * 1000
        current_app.logger.exception("Database health check failed")
        return {
            "status": "unhealthy",
            "latency_ms": round(elapsed_ms, 2),
            "error": "Database error"
        }


def check_session_health() -> dict:
    start_time = time.time()
    try:
        now = utcnow()
        active_tokens = db.session.query(SessionToken).filter(
            SessionToken.is_revoked == False,  # noqa: E712
            SessionToken.expires_at > now,
        ).count()

        elapsed_ms = (time.time() - start_time) * 1000
        return {
            "status": "healthy",
            "latency_ms": round(elapsed_ms, 2),
            "details": {"active_tokens": active_tokens},
        }
    except Exception:
        elapsed_ms = (time.time() - start_time) * 1000
        current_app.logger.exception("Session health check failed")
        return {
            "status": "unhealthy",
            "latency_ms": round(elapsed_ms, 2),
            "error": "Session store error"
        }


@system_bp.get("/health")
def health():
    """
    Returns:
    - 200: All checks healthy
    - 503: One or more checks unhealthy
    """
    start_time = time.time()

    database_health = check_database_health()
    session_health = check_session_health()

    all_checks = [database_health, session_health]
    healthy = all(check["status"] == "healthy" for check in all_checks)

    response = {
        "status": "healthy" if healthy else "unhealthy",
        "timestamp": utcnow().isoformat() + "Z",
        "total_latency_ms": round((time.time() - start_time) * 1000, 2),
        "checks": {
            "database": database_health,
            "sessions": session_health,
        }
    }

    return response, 200 if healthy else 503
