from datetime import timedelta

from config import get_settings
from security import TokenData, create_access_token, decode_access_token, verify_password
from tests.conftest import auth_header


REGISTER = {"name": "Jane Doe", "email": "jane@example.com", "phone": "5550001", "password": "s3cret-pass"}


class TestRegister:
    def test_register_customer(self, client, db):
        resp = client.post("/api/auth/register", json={**REGISTER, "address": "12 Hill Rd"})

        assert resp.status_code == 201
        body = resp.json()
        assert body["message"] == "User registered successfully"
        assert "password_hash" not in body["user"]
        stored = db["principal"].find_one({"email": "jane@example.com"})
        assert stored["role"] == "customer"
        assert stored["address"] == "12 Hill Rd"
        assert stored["password_hash"] != REGISTER["password"]
        assert verify_password(REGISTER["password"], stored["password_hash"])

    def test_duplicate_email_rejected(self, client):
        assert client.post("/api/auth/register", json=REGISTER).status_code == 201
        resp = client.post("/api/auth/register", json={**REGISTER, "phone": "5550002"})

        assert resp.status_code == 409
        assert resp.json()["message"] == "User already exists"

    def test_duplicate_phone_rejected(self, client):
        client.post("/api/auth/register", json=REGISTER)
        resp = client.post("/api/auth/register", json={**REGISTER, "email": "other@example.com"})
        assert resp.status_code == 409

    def test_same_email_allowed_for_other_kind(self, client):
        client.post("/api/auth/register", json=REGISTER)
        resp = client.post("/api/admins/register", json=REGISTER)
        assert resp.status_code == 201

    def test_missing_field(self, client):
        resp = client.post("/api/auth/register", json={"email": "x@example.com", "password": "p"})
        assert resp.status_code == 422


class TestLogin:
    def test_login_returns_token(self, client):
        client.post("/api/auth/register", json=REGISTER)
        resp = client.post("/api/auth/login", json={"email": REGISTER["email"], "password": REGISTER["password"]})

        assert resp.status_code == 200
        body = resp.json()
        assert body["user"]["email"] == REGISTER["email"]
        assert "password_hash" not in body["user"]
        claims = decode_access_token(body["token"], get_settings())
        assert claims.id == body["user"]["_id"]
        assert claims.role == "customer"
        assert claims.store_id is None

    def test_unknown_email(self, client):
        resp = client.post("/api/auth/login", json={"email": "ghost@example.com", "password": "x"})
        assert resp.status_code == 404

    def test_wrong_password(self, client):
        client.post("/api/auth/register", json=REGISTER)
        resp = client.post("/api/auth/login", json={"email": REGISTER["email"], "password": "wrong"})

        assert resp.status_code == 400
        assert resp.json()["message"] == "Invalid credentials"

    def test_customer_cannot_use_admin_login(self, client):
        client.post("/api/auth/register", json=REGISTER)
        resp = client.post("/api/admins/login", json={"email": REGISTER["email"], "password": REGISTER["password"]})
        assert resp.status_code == 404


class TestTokens:
    def test_missing_token(self, client):
        resp = client.post("/api/stores/add", json={"name": "S", "city": "C", "address": "A", "longitude": 1, "latitude": 2})
        assert resp.status_code == 401

    def test_malformed_token(self, client):
        resp = client.delete("/api/auth/profile", headers=auth_header("not-a-jwt"))
        assert resp.status_code == 401

    def test_expired_token(self, client):
        token = create_access_token(TokenData(id="abc", role="customer"), get_settings(), expires_delta=timedelta(minutes=-1))
        resp = client.delete("/api/auth/profile", headers=auth_header(token))
        assert resp.status_code == 401

    def test_token_lifetime_comes_from_settings(self):
        settings = get_settings().model_copy(update={"access_token_expire_minutes": 60})
        token = create_access_token(TokenData(id="abc", role="admin"), settings)
        assert decode_access_token(token, settings).role == "admin"


class TestProfile:
    def test_get_profile(self, client, customer):
        user, _ = customer
        resp = client.get(f"/api/auth/profile/{user['_id']}")

        assert resp.status_code == 200
        assert resp.json()["name"] == "Jane Doe"
        assert "password_hash" not in resp.json()

    def test_get_unknown_profile(self, client):
        assert client.get("/api/auth/profile/64b7f0000000000000000000").status_code == 404
        assert client.get("/api/auth/profile/garbage").status_code == 404

    def test_partial_update(self, client, customer, db):
        user, headers = customer
        resp = client.put(
            f"/api/auth/profile/{user['_id']}",
            json={"saved_addresses": ["Home", "Office"], "location": {"lat": 18.5, "lng": 73.8}},
            headers=headers,
        )

        assert resp.status_code == 200
        updated = resp.json()["user"]
        assert updated["saved_addresses"] == ["Home", "Office"]
        assert updated["location"] == {"lat": 18.5, "lng": 73.8}
        assert updated["name"] == "Jane Doe"
        assert updated["phone"] == "5550001"

    def test_password_change_is_hashed(self, client, customer, db):
        user, headers = customer
        client.put(f"/api/auth/profile/{user['_id']}", json={"password": "new-pass"}, headers=headers)

        stored = db["principal"].find_one({"email": "jane@example.com"})
        assert stored["password_hash"] != "new-pass"
        resp = client.post("/api/auth/login", json={"email": "jane@example.com", "password": "new-pass"})
        assert resp.status_code == 200

    def test_update_requires_token(self, client, customer):
        user, _ = customer
        resp = client.put(f"/api/auth/profile/{user['_id']}", json={"name": "X"})
        assert resp.status_code == 401

    def test_cannot_update_someone_else(self, client, customer, register_and_login):
        user, _ = customer
        _, other_headers = register_and_login("auth", email="bob@example.com", phone="5550009")

        resp = client.put(f"/api/auth/profile/{user['_id']}", json={"name": "Hijacked"}, headers=other_headers)
        assert resp.status_code == 403

    def test_update_to_taken_email(self, client, customer, register_and_login):
        register_and_login("auth", email="bob@example.com", phone="5550009")
        user, headers = customer

        resp = client.put(f"/api/auth/profile/{user['_id']}", json={"email": "bob@example.com"}, headers=headers)
        assert resp.status_code == 409

    def test_delete_own_profile(self, client, customer, db):
        user, headers = customer
        resp = client.delete("/api/auth/profile", headers=headers)

        assert resp.status_code == 200
        assert db["principal"].count_documents({"role": "customer"}) == 0

    def test_list_customers_is_admin_only(self, client, customer, register_and_login):
        _, headers = customer
        assert client.get("/api/auth/profile/all", headers=headers).status_code == 403

        _, admin_headers = register_and_login("admins", email="root@example.com", phone="1")
        resp = client.get("/api/auth/profile/all", headers=admin_headers)
        assert resp.status_code == 200
        assert [u["email"] for u in resp.json()] == ["jane@example.com"]
