"""
Auth, health and account API tests.

Guards against:
1. Dashboard routes answering without a session
2. Logged-out sessions staying valid
3. The same Google Ads customer being connected twice (dashed and undashed ids)
"""


# ---------------------------------------------------------------------------
# Sessions
# ---------------------------------------------------------------------------

def test_public_routes_need_no_session(anon_client):
    response = anon_client.get("/health")
    assert response.status_code == 200
    assert response.json()["status"] == "healthy"


def test_protected_routes_reject_anonymous(anon_client):
    for path in ("/api/accounts", "/auth/me", "/api/guardrails", "/"):
        response = anon_client.get(path)
        assert response.status_code == 401, path
        assert response.json() == {"detail": "Not authenticated"}


def test_login_sets_session_cookie(anon_client, user):
    response = anon_client.post("/auth/login", json={"email": "Owner@Example.com", "password": "correct-horse"})
    assert response.status_code == 200
    assert response.json()["user"]["email"] == "owner@example.com"
    assert "session_token=" in response.headers["set-cookie"]


def test_login_rejects_wrong_password(anon_client, user):
    response = anon_client.post("/auth/login", json={"email": "owner@example.com", "password": "nope"})
    assert response.status_code == 401
    assert response.json()["detail"] == "Invalid email or password"


def test_me_and_logout(client):
    me = client.get("/auth/me")
    assert me.status_code == 200
    assert me.json()["display_name"] == "Owner"

    assert client.post("/auth/logout").json() == {"success": True}
    assert client.get("/auth/me").status_code == 401


# ---------------------------------------------------------------------------
# Accounts
# ---------------------------------------------------------------------------

def test_connect_account_normalizes_customer_id(client):
    response = client.post("/api/accounts", json={"google_account_id": "987-654-3210", "account_name": "Shop"})
    assert response.status_code == 200
    account = response.json()["account"]
    assert account["google_account_id"] == "9876543210"
    assert account["status"] == "active"
    assert account["has_token"] is False

    duplicate = client.post("/api/accounts", json={"google_account_id": "9876543210"})
    assert duplicate.status_code == 400
    assert duplicate.json()["detail"] == "Account already connected"


def test_connect_account_requires_customer_id(client):
    response = client.post("/api/accounts", json={"account_name": "Shop"})
    assert response.status_code == 400


def test_list_and_delete_accounts(client, account):
    listed = client.get("/api/accounts").json()["accounts"]
    assert [a["google_account_id"] for a in listed] == ["1234567890"]
    assert listed[0]["has_token"] is True

    assert client.delete(f"/api/accounts/{account.id}").json() == {"success": True}
    assert client.get("/api/accounts").json()["accounts"] == []
    assert client.delete(f"/api/accounts/{account.id}").status_code == 404
