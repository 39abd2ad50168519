"""HTTP surface tests: identity header, status codes and error bodies."""

import logging

import pytest
from fastapi.testclient import TestClient

from admin_panel.api.app import create_app
from admin_panel.operations import AdminOperations
from services.logging_config import IdentityContextFilter, principal_id_var

API = "/api/v1"


def _as(principal_id):
    return {"X-Principal-Id": principal_id}


@pytest.fixture
def client(session_factory, settings):
    app = create_app(AdminOperations(session_factory, settings), settings, init_logging=False)
    with TestClient(app) as test_client:
        yield test_client


@pytest.fixture
def operator_headers(client):
    """The first profile on an empty platform is the operator."""
    response = client.post(f"{API}/profile", json={"email": "ops@example.com"}, headers=_as("ext-ops"))
    assert response.status_code == 200
    assert response.json()["role"] == "operator"
    return _as("ext-ops")


@pytest.fixture
def plan_id(client, operator_headers):
    response = client.post(
        f"{API}/plans",
        json={"name": "Starter", "type": "individual", "price": "19.00", "features": {"max_users": 5}},
        headers=operator_headers,
    )
    assert response.status_code == 201
    return response.json()["plan_id"]


def _create_account(client, headers, plan_id, name, email, **extra):
    return client.post(
        f"{API}/accounts",
        json={
            "name": name,
            "account_type": "individual",
            "plan_id": plan_id,
            "admin_email": email,
            "admin_first_name": "Ada",
            "admin_last_name": "Admin",
            **extra,
        },
        headers=headers,
    )


class TestBasics:

    def test_health(self, client):
        assert client.get("/health").json() == {"status": "ok"}

    def test_request_id_echoed(self, client):
        response = client.get("/health", headers={"X-Request-ID": "req-123"})
        assert response.headers["X-Request-ID"] == "req-123"

    def test_missing_principal_is_401(self, client):
        response = client.get(f"{API}/plans")

        assert response.status_code == 401
        body = response.json()
        assert body["code"] == "AUTH_REQUIRED"
        assert body["path"] == f"{API}/plans"
        assert body["request_id"]

    def test_second_profile_is_plain_member(self, client, operator_headers):
        response = client.post(f"{API}/profile", json={"email": "late@example.com"}, headers=_as("ext-late"))
        assert response.json()["role"] == "tenant_member"
        assert response.json()["account_id"] is None


class TestAccounts:

    def test_create_and_read_account(self, client, operator_headers, plan_id):
        response = _create_account(client, operator_headers, plan_id, "Acme Co", "owner@acme.example.com")

        assert response.status_code == 201
        account = response.json()["account"]
        assert account["slug"] == "acme-co"
        assert account["plan_status"] == "trial"

        fetched = client.get(f"{API}/accounts/{account['account_id']}", headers=operator_headers)
        assert fetched.status_code == 200
        assert fetched.json()["name"] == "Acme Co"

    def test_slug_conflict_is_409(self, client, operator_headers, plan_id):
        _create_account(client, operator_headers, plan_id, "Acme", "one@acme.example.com", slug="acme")
        response = _create_account(client, operator_headers, plan_id, "Acme 2", "two@acme.example.com", slug="acme")

        assert response.status_code == 409
        assert response.json()["code"] == "RESOURCE_ALREADY_EXISTS"

    def test_cross_tenant_access_is_403(self, client, operator_headers, plan_id):
        first = _create_account(client, operator_headers, plan_id, "Alpha", "alpha@example.com").json()
        second = _create_account(client, operator_headers, plan_id, "Beta", "beta@example.com").json()

        # The invited admin of Alpha signs in and claims their profile
        claimed = client.post(f"{API}/profile", json={"email": "alpha@example.com"}, headers=_as("ext-alpha"))
        assert claimed.json()["user_id"] == first["admin_user"]["user_id"]

        own = client.get(f"{API}/accounts/{first['account']['account_id']}", headers=_as("ext-alpha"))
        other = client.get(f"{API}/accounts/{second['account']['account_id']}", headers=_as("ext-alpha"))

        assert own.status_code == 200
        assert other.status_code == 403
        assert other.json()["code"] == "AUTH_INSUFFICIENT_PERMISSIONS"

    def test_live_billing_blocks_delete_with_422(self, client, operator_headers, plan_id):
        account_id = _create_account(
            client, operator_headers, plan_id, "Payer", "payer@example.com"
        ).json()["account"]["account_id"]
        client.put(
            f"{API}/accounts/{account_id}/billing-status",
            json={"plan_status": "active"},
            headers=operator_headers,
        )

        response = client.delete(f"{API}/accounts/{account_id}", headers=operator_headers)
        assert response.status_code == 422
        assert response.json()["code"] == "BUSINESS_RULE_VIOLATION"

        client.put(
            f"{API}/accounts/{account_id}/billing-status",
            json={"plan_status": "cancelled"},
            headers=operator_headers,
        )
        assert client.delete(f"{API}/accounts/{account_id}", headers=operator_headers).status_code == 204
        assert client.get(f"{API}/accounts/{account_id}", headers=operator_headers).status_code == 404

    def test_request_validation_rejects_unknown_account_type(self, client, operator_headers, plan_id):
        response = _create_account(
            client, operator_headers, plan_id, "Odd", "odd@example.com", account_type="cooperative"
        )
        assert response.status_code == 422


class TestImpersonationOverHttp:

    def test_session_lifecycle_via_token_argument(self, client, operator_headers, plan_id):
        created = _create_account(client, operator_headers, plan_id, "Acme", "owner@acme.example.com").json()
        account_id = created["account"]["account_id"]

        started = client.post(
            f"{API}/impersonation/sessions",
            json={"target_account_id": account_id, "target_user_id": created["admin_user"]["user_id"]},
            headers=operator_headers,
        )
        assert started.status_code == 201
        token = started.json()["token"]
        assert token.startswith("imp_")
        as_admin = {"session_token": token}

        current = client.get(f"{API}/impersonation/sessions/current", headers=operator_headers, params=as_admin)
        assert current.json()["active"] is True

        # Acting as the tenant admin: own account readable, operator routes closed
        assert client.get(f"{API}/accounts/{account_id}", headers=operator_headers, params=as_admin).status_code == 200
        assert client.get(f"{API}/accounts", headers=operator_headers, params=as_admin).status_code == 403

        ended = client.request(
            "DELETE", f"{API}/impersonation/sessions/current", headers=operator_headers, json=as_admin
        )
        assert ended.json()["ended"] is True

        after = client.get(f"{API}/impersonation/sessions/current", headers=operator_headers, params=as_admin)
        assert after.json() == {"active": False, "session": None}
        assert client.get(f"{API}/accounts", headers=operator_headers, params=as_admin).status_code == 200

    def test_current_session_requires_token(self, client, operator_headers):
        response = client.get(f"{API}/impersonation/sessions/current", headers=operator_headers)
        assert response.status_code == 422

    def test_end_session_reads_token_from_body(self, client, operator_headers, plan_id):
        created = _create_account(client, operator_headers, plan_id, "Acme", "owner@acme.example.com").json()
        token = client.post(
            f"{API}/impersonation/sessions",
            json={"target_account_id": created["account"]["account_id"],
                  "target_user_id": created["admin_user"]["user_id"]},
            headers=operator_headers,
        ).json()["token"]

        # a token in the query string does not end the session
        missing = client.delete(
            f"{API}/impersonation/sessions/current", headers=operator_headers, params={"session_token": token}
        )
        assert missing.status_code == 422

        still_active = client.get(
            f"{API}/impersonation/sessions/current", headers=operator_headers, params={"session_token": token}
        )
        assert still_active.json()["active"] is True

        ended = client.request(
            "DELETE", f"{API}/impersonation/sessions/current", headers=operator_headers,
            json={"session_token": token},
        )
        assert ended.status_code == 200
        assert ended.json()["ended"] is True


class _IdentityCapture(logging.Handler):
    def __init__(self):
        super().__init__(logging.DEBUG)
        self.records = []
        self.addFilter(IdentityContextFilter())

    def emit(self, record):
        self.records.append(record)


@pytest.fixture
def request_logs():
    """Operation and error-handler records, stamped with the identity bound when they were emitted."""
    handler = _IdentityCapture()
    loggers = [logging.getLogger("admin_panel.operations"), logging.getLogger("security.api_errors")]
    levels = [lg.level for lg in loggers]
    for lg in loggers:
        lg.addHandler(handler)
        lg.setLevel(logging.DEBUG)
    yield handler.records
    for lg, level in zip(loggers, levels):
        lg.removeHandler(handler)
        lg.setLevel(level)


class TestLogIdentity:

    def test_request_logs_carry_request_and_principal(self, client, operator_headers, request_logs):
        response = client.get(f"{API}/plans", headers={**operator_headers, "X-Request-ID": "req-plans"})
        assert response.status_code == 200

        stamped = [r for r in request_logs if r.request_id == "req-plans"]
        assert stamped
        assert all(r.principal_id == "ext-ops" for r in stamped)
        assert all(r.impersonator_id is None for r in stamped)

    def test_principal_not_carried_into_next_request(self, client, operator_headers, request_logs):
        client.get(f"{API}/plans", headers={**operator_headers, "X-Request-ID": "req-first"})
        client.get(f"{API}/plans", headers={"X-Request-ID": "req-anonymous"})

        anonymous = [r for r in request_logs if r.request_id == "req-anonymous"]
        assert anonymous
        assert all(r.principal_id is None for r in anonymous)
        assert principal_id_var.get() is None
