"""
Authentication and authorization tests.

Verifies:
- Unauthenticated requests return 401
- Cashier role is denied approval, completion and management (403)
- Sessions: login, me, logout, revocation, idle timeout
"""

from datetime import timedelta

import pytest

from abaya_pos.models import SecurityEvent, SessionToken
from abaya_pos.services import session_service

from conftest import auth_headers, get_auth_token


# =============================================================================
# UNAUTHENTICATED ACCESS - 401
# =============================================================================


class TestUnauthenticatedAccess:
    """All protected endpoints return 401 without a token."""

    @pytest.mark.parametrize(
        "method,path",
        [
            ("GET", "/api/auth/me"),
            ("GET", "/api/products"),
            ("POST", "/api/sales"),
            ("GET", "/api/sales"),
            ("GET", "/api/discounts"),
            ("GET", "/api/customers/1/loyalty"),
            ("POST", "/api/refunds"),
            ("GET", "/api/refunds"),
            ("POST", "/api/refunds/1/approve"),
            ("POST", "/api/refunds/1/complete"),
            ("GET", "/api/refunds/statistics"),
            ("PUT", "/api/refunds/policy/1"),
            ("GET", "/api/reports/sales"),
        ],
    )
    def test_requires_auth(self, client, db_session, method, path):
        resp = getattr(client, method.lower())(path)
        assert resp.status_code == 401, f"{method} {path} returned {resp.status_code}"

    def test_garbage_token(self, client, db_session):
        resp = client.get("/api/auth/me", headers=auth_headers("not-a-token"))
        assert resp.status_code == 401


# =============================================================================
# CASHIER DENIED MANAGER OPERATIONS - 403
# =============================================================================


class TestCashierDenied:
    """Cashier role cannot perform manager operations."""

    def test_cannot_approve_refund(self, client, cashier_headers):
        resp = client.post("/api/refunds/1/approve", headers=cashier_headers)
        assert resp.status_code == 403
        assert resp.json["required_permission"] == "APPROVE_REFUND"

    def test_cannot_complete_refund(self, client, cashier_headers):
        resp = client.post("/api/refunds/1/complete", json={}, headers=cashier_headers)
        assert resp.status_code == 403

    def test_cannot_edit_policy(self, client, cashier_headers, branch):
        resp = client.put(f"/api/refunds/policy/{branch.id}", json={"refund_window_days": 90}, headers=cashier_headers)
        assert resp.status_code == 403

    def test_cannot_view_reports(self, client, cashier_headers):
        resp = client.get("/api/reports/sales", headers=cashier_headers)
        assert resp.status_code == 403

    def test_cannot_adjust_points(self, client, cashier_headers, customer):
        resp = client.post(
            f"/api/customers/{customer.id}/points/adjust",
            json={"points": 1000, "reason": "Friend"},
            headers=cashier_headers,
        )
        assert resp.status_code == 403

    def test_cannot_create_discount(self, client, cashier_headers):
        resp = client.post(
            "/api/discounts",
            json={"name": "Staff", "discount_type": "percentage", "value": 5000},
            headers=cashier_headers,
        )
        assert resp.status_code == 403

    def test_denial_is_logged(self, client, db_session, cashier, cashier_headers):
        client.get("/api/reports/sales", headers=cashier_headers)

        event = db_session.query(SecurityEvent).filter_by(event_type="PERMISSION_DENIED").first()
        assert event is not None
        assert event.user_id == cashier.id
        assert event.success is False

    def test_cashier_can_request_refunds(self, client, cashier_headers):
        resp = client.get("/api/refunds", headers=cashier_headers)
        assert resp.status_code == 200


# =============================================================================
# SESSIONS
# =============================================================================


class TestSessions:

    def test_login_returns_permissions(self, client, manager):
        resp = client.post("/api/auth/login", json={"username": "manager", "password": "Password123!"})

        assert resp.status_code == 200
        assert resp.json["roles"] == ["manager"]
        assert "APPROVE_REFUND" in resp.json["permissions"]
        assert resp.json["branch_id"] == manager.branch_id

    def test_login_by_email(self, client, cashier):
        assert get_auth_token(client, "cashier@abaya.local") is not None

    def test_bad_password(self, client, db_session, cashier):
        resp = client.post("/api/auth/login", json={"username": "cashier", "password": "wrong"})

        assert resp.status_code == 401
        assert db_session.query(SecurityEvent).filter_by(event_type="LOGIN_FAILED").count() == 1

    def test_missing_fields(self, client, db_session):
        resp = client.post("/api/auth/login", json={"username": "cashier"})
        assert resp.status_code == 400

    def test_me(self, client, cashier, cashier_headers):
        resp = client.get("/api/auth/me", headers=cashier_headers)

        assert resp.status_code == 200
        assert resp.json["user"]["username"] == "cashier"
        assert "PROCESS_REFUND" in resp.json["permissions"]
        assert "APPROVE_REFUND" not in resp.json["permissions"]

    def test_logout_revokes_token(self, client, cashier):
        headers = auth_headers(get_auth_token(client, "cashier"))

        assert client.post("/api/auth/logout", headers=headers).status_code == 200
        assert client.get("/api/auth/me", headers=headers).status_code == 401

    def test_inactive_user_rejected(self, client, db_session, cashier, cashier_headers):
        cashier.is_active = False
        db_session.commit()

        assert client.get("/api/auth/me", headers=cashier_headers).status_code == 401

    def test_idle_timeout(self, client, db_session, cashier):
        token = get_auth_token(client, "cashier")
        session = db_session.query(SessionToken).filter_by(token_hash=session_service.hash_token(token)).one()
        session.last_used_at = session.last_used_at - timedelta(hours=3)
        db_session.commit()

        assert client.get("/api/auth/me", headers=auth_headers(token)).status_code == 401
        db_session.refresh(session)
        assert session.is_revoked is True
        assert session.revoked_reason == "Idle timeout"

    def test_cleanup_expired_sessions(self, client, db_session, cashier):
        token = get_auth_token(client, "cashier")
        session_service.revoke_session(token)
        session = db_session.query(SessionToken).one()
        session.created_at = session.created_at - timedelta(days=40)
        session.expires_at = session.expires_at - timedelta(days=40)
        db_session.commit()

        assert session_service.cleanup_expired_sessions(older_than_days=30) == 1
        assert db_session.query(SessionToken).count() == 0


class TestHealth:

    def test_degraded_without_roles(self, client, db_session):
        resp = client.get("/health")

        assert resp.status_code == 200
        assert resp.json["status"] == "degraded"
        assert resp.json["checks"]["database"]["status"] == "healthy"

    def test_healthy(self, client, setup_roles):
        resp = client.get("/health")

        assert resp.json["status"] == "healthy"
