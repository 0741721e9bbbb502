# backend/abaya_pos/routes/system.py
"""
System health endpoint.

Checks the database and that bootstrap (roles, permissions) has run.
"""

import time

from flask import Blueprint, current_app
from sqlalchemy.exc import SQLAlchemyError

from ..extensions import db
from ..models import Branch, Permission, Role, SessionToken
from ..time_utils import utcnow, to_utc_z

system_bp = Blueprint("system", __name__)

ESSENTIAL_ROLES = ("admin", "manager", "cashier")


def check_database_health() -> dict:
    start_time = time.time()
    try:
        branch_count = db.session.query(Branch).count()
        active_sessions = db.session.query(SessionToken).filter_by(is_revoked=False).count()
        return {
            "status": "healthy",
            "latency_ms": round((time.time() - start_time) * 1000, 2),
            "details": {
                "branches": branch_count,
                "active_sessions": active_sessions,
            },
        }
    except SQLAlchemyError:
        current_app.logger.exception("Database health check failed")
        return {
            "status": "unhealthy",
            "latency_ms": round((time.time() - start_time) * 1000, 2),
            "error": "Database error",
        }


def check_auth_health() -> dict:
    """Degraded until `flask system init` has created roles and permissions."""
    try:
        existing = {name for (name,) in db.session.query(Role.name).all()}
        missing_roles = [name for name in ESSENTIAL_ROLES if name not in existing]
        permission_count = db.session.query(Permission).count()
    except SQLAlchemyError:
        current_app.logger.exception("Auth health check failed")
        return {"status": "unhealthy", "error": "Auth service error"}

    if missing_roles or not permission_count:
        return {
            "status": "degraded",
            "warning": f"Missing roles: {', '.join(missing_roles)}" if missing_roles else "No permissions initialized",
            "details": {"permission_count": permission_count},
        }
    return {"status": "healthy", "details": {"permission_count": permission_count}}


@system_bp.get("/health")
def health():
    """
    Returns:
    - 200: healthy or degraded
    - 503: database unreachable
    """
    start_time = time.time()
    database_health = check_database_health()
    auth_health = check_auth_health()

    checks = [database_health, auth_health]
    if any(check["status"] == "unhealthy" for check in checks):
        overall_status, http_status = "unhealthy", 503
    elif any(check["status"] == "degraded" for check in checks):
        overall_status, http_status = "degraded", 200
    else:
        overall_status, http_status = "healthy", 200

    return {
        "status": overall_status,
        "store_name": current_app.config.get("STORE_NAME"),
        "timestamp": to_utc_z(utcnow()),
        "total_latency_ms": round((time.time() - start_time) * 1000, 2),
        "checks": {
            "database": database_health,
            "auth_service": auth_health,
        },
    }, http_status
