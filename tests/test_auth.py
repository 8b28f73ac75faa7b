from conftest import PASSWORD


def test_signup_buyer_returns_token_without_password_hash(client):
    res = client.post("/auth/signup", json={"name": "Rafi", "email": "rafi@example.com", "password": "secret123"})
    assert res.status_code == 200
    body = res.json()
    assert body["token"]
    assert body["user"]["role"] == "buyer"
    assert body["user"]["plan_type"] == "free"
    assert "password_hash" not in body["user"]

    me = client.get("/auth/me", headers={"Authorization": f"Bearer {body['token']}"})
    assert me.status_code == 200
    assert me.json()["email"] == "rafi@example.com"


def test_seller_signup_requires_shop_details(client):
    res = client.post("/auth/signup", json={
        "name": "Nila", "email": "nila@example.com", "password": "secret123", "role": "seller",
    })
    assert res.status_code == 400

    res = client.post("/auth/signup", json={
        "name": "Nila", "email": "nila@example.com", "password": "secret123", "role": "seller",
        "shop_name": "Nila's Kitchen", "shop_address": "Jahaj Company More, Rangpur",
    })
    assert res.status_code == 200
    assert res.json()["user"]["shop_name"] == "Nila's Kitchen"


def test_signup_cannot_create_staff_accounts(client):
    res = client.post("/auth/signup", json={
        "name": "Eve", "email": "eve@example.com", "password": "secret123", "role": "admin",
    })
    assert res.status_code == 422


def test_duplicate_email_is_rejected(client, make_user):
    user, _ = make_user("buyer")
    res = client.post("/auth/signup", json={"name": "Again", "email": user["email"], "password": "secret123"})
    assert res.status_code == 400
    assert res.json()["detail"] == "Email already registered"


def test_login(client, make_user):
    user, _ = make_user("seller")
    res = client.post("/auth/login", json={"email": user["email"], "password": PASSWORD})
    assert res.status_code == 200
    assert res.json()["user"]["_id"] == user["_id"]

    res = client.post("/auth/login", json={"email": user["email"], "password": "wrong-password"})
    assert res.status_code == 401

    res = client.post("/auth/login", json={"email": "nobody@example.com", "password": PASSWORD})
    assert res.status_code == 401


def test_missing_or_bad_token(client):
    assert client.get("/auth/me").status_code == 401
    assert client.get("/auth/me", headers={"Authorization": "Bearer not-a-jwt"}).status_code == 401


def test_profile_update_ignores_shop_fields_for_buyers(client, make_user):
    _, headers = make_user("buyer")
    res = client.put("/users/me", json={"name": "New Name", "shop_name": "Sneaky Shop", "phone": ""}, headers=headers)
    assert res.status_code == 200
    body = res.json()
    assert body["name"] == "New Name"
    assert body.get("shop_name") is None


def test_role_guards(client, make_user):
    _, buyer_headers = make_user("buyer")
    _, seller_headers = make_user("seller")
    assert client.get("/dashboard/summary", headers=buyer_headers).status_code == 403
    assert client.get("/orders", headers=seller_headers).status_code == 403
    assert client.get("/admin/stats", headers=seller_headers).status_code == 403
