"""Tests for the sign-up, sign-in and sign-out endpoints."""

from acquisitions.app.core.security import get_token_service

BOB = {"name": "Bob Smith", "email": "bob@example.com", "password": "secret1"}


class TestSignUp:
    """Tests for POST /api/auth/sign-up."""

    def test_creates_user_and_sets_cookie(self, client):
        response = client.post("/api/auth/sign-up", json=BOB)

        assert response.status_code == 201
        body = response.json()
        assert body["message"] == "User created successfully"
        assert body["user"]["name"] == "Bob Smith"
        assert body["user"]["email"] == "bob@example.com"
        assert body["user"]["role"] == "user"
        assert "password" not in body["user"]

        claims = get_token_service().verify(response.cookies["token"])
        assert claims["id"] == body["user"]["id"]
        assert claims["role"] == "user"

    def test_cookie_attributes(self, client):
        response = client.post("/api/auth/sign-up", json=BOB)
        cookie = response.headers["set-cookie"].lower()
        assert "httponly" in cookie
        assert "samesite=strict" in cookie
        assert "max-age=900" in cookie

    def test_email_is_normalized(self, client):
        response = client.post("/api/auth/sign-up", json={**BOB, "email": "  Bob@Example.COM "})
        assert response.json()["user"]["email"] == "bob@example.com"

    def test_admin_role(self, client):
        response = client.post("/api/auth/sign-up", json={**BOB, "role": "admin"})
        assert response.status_code == 201
        assert response.json()["user"]["role"] == "admin"

    def test_duplicate_email(self, client):
        client.post("/api/auth/sign-up", json=BOB)
        client.cookies.clear()

        response = client.post("/api/auth/sign-up", json={**BOB, "name": "Other Bob"})

        assert response.status_code == 409
        assert response.json() == {"error": "User with this email already exists"}

    def test_validation_errors(self, client):
        response = client.post(
            "/api/auth/sign-up",
            json={"name": "B", "email": "not-an-email", "password": "123", "role": "owner"},
        )

        assert response.status_code == 400
        body = response.json()
        assert body["error"] == "Validation Failed"
        assert "name" in body["details"]
        assert "email" in body["details"]
        assert "password" in body["details"]
        assert "role" in body["details"]

    def test_missing_body(self, client):
        response = client.post("/api/auth/sign-up")
        assert response.status_code == 400
        assert response.json()["error"] == "Validation Failed"


class TestSignIn:
    """Tests for POST /api/auth/sign-in."""

    def test_sign_in(self, client):
        user_id = client.post("/api/auth/sign-up", json=BOB).json()["user"]["id"]
        client.cookies.clear()

        response = client.post(
            "/api/auth/sign-in",
            json={"email": "BOB@example.com", "password": "secret1"},
        )

        assert response.status_code == 200
        assert response.json()["message"] == "User signed in successfully"
        assert response.json()["user"]["id"] == user_id
        assert get_token_service().verify(response.cookies["token"])["id"] == user_id

    def test_wrong_password(self, client):
        client.post("/api/auth/sign-up", json=BOB)
        client.cookies.clear()

        response = client.post("/api/auth/sign-in", json={"email": BOB["email"], "password": "wrong-pass"})

        assert response.status_code == 401
        assert response.json() == {"error": "Invalid email or password"}
        assert "token" not in response.cookies

    def test_unknown_email(self, client):
        response = client.post(
            "/api/auth/sign-in",
            json={"email": "nobody@example.com", "password": "secret1"},
        )
        assert response.status_code == 401
        assert response.json() == {"error": "Invalid email or password"}


class TestSignOut:
    """Tests for POST /api/auth/sign-out."""

    def test_clears_cookie(self, client):
        client.post("/api/auth/sign-up", json=BOB)
        assert client.cookies.get("token")

        response = client.post("/api/auth/sign-out")

        assert response.status_code == 200
        assert response.json() == {"message": "User signed out successfully"}
        assert not client.cookies.get("token")

    def test_without_session(self, client):
        response = client.post("/api/auth/sign-out")
        assert response.status_code == 200


class TestSessionTier:
    """Tests for the session cookie feeding the rate tier."""

    def test_signed_in_user_gets_user_tier(self, client):
        client.post("/api/auth/sign-up", json=BOB)
        response = client.get("/api")
        assert response.headers["X-RateLimit-Limit"] == "10"

    def test_guest_budget_applies_to_auth_routes(self, client):
        for _ in range(5):
            client.post("/api/auth/sign-in", json={"email": "x@example.com", "password": "nope"})

        response = client.post("/api/auth/sign-in", json={"email": "x@example.com", "password": "nope"})

        assert response.status_code == 403
        assert response.json() == {"error": "Forbidden", "message": "Too many requests"}
