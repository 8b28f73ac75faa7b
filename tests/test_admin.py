import pytest
from pymongo.errors import PyMongoError

import admin
from database import get_document_by_id, get_documents


@pytest.fixture
def staff(make_user):
    admin, admin_headers = make_user("admin")
    _, moderator_headers = make_user("moderator")
    return {"admin": admin, "admin_headers": admin_headers, "moderator_headers": moderator_headers}


def _place_and_deliver(client, seller_headers, buyer_headers, dish_id, quantity=1):
    order_id = client.post("/orders", json={
        "items": [{"dish_id": dish_id, "quantity": quantity}],
        "address": "Lalbagh, Rangpur", "contact": "01800000000", "delivery_zone": "inside-rangpur-city",
    }, headers=buyer_headers).json()["_id"]
    url = f"/dashboard/orders/{order_id}/status"
    client.put(url, json={"status": "Preparing"}, headers=seller_headers)
    client.put(url, json={"status": "Delivered"}, headers=seller_headers)
    return order_id


def test_stats(client, staff, make_user, make_dish):
    seller, seller_headers = make_user("seller")
    quiet_seller, _ = make_user("seller")
    _, buyer_headers = make_user("buyer")
    dish = make_dish(seller, price=100, commission_percentage=10, category="Kebab")
    make_dish(quiet_seller, category="Kebab", approval_status="pending")
    _place_and_deliver(client, seller_headers, buyer_headers, dish["_id"], quantity=3)

    res = client.get("/admin/stats", headers=staff["moderator_headers"])
    assert res.status_code == 200
    stats = res.json()
    # 300 of food plus 60 shipping
    assert stats["total_revenue"] == 360.0
    assert stats["total_orders"] == 1
    assert stats["total_dishes"] == 2
    assert stats["total_users"] == 5
    assert stats["pending_dishes"] == 1
    assert stats["top_sellers"][0]["_id"] == seller["_id"]
    assert stats["top_sellers"][0]["total_revenue"] == 270.0
    assert stats["category_distribution"] == [{"name": "Kebab", "value": 2}]
    assert stats["sales_by_month"][0]["sales"] == 360.0


def test_non_staff_cannot_open_the_panel(client, make_user):
    _, buyer_headers = make_user("buyer")
    assert client.get("/admin/users", headers=buyer_headers).status_code == 403


def test_user_search(client, staff, make_user):
    make_user("seller", shop_name="Spice Route")
    make_user("buyer", name="Karim")
    res = client.get("/admin/users", params={"search": "spice"}, headers=staff["moderator_headers"])
    assert [u["shop_name"] for u in res.json()] == ["Spice Route"]
    assert all("password_hash" not in u for u in res.json())


def test_delete_seller_removes_their_dishes_and_logs(client, staff, make_user, make_dish):
    seller, _ = make_user("seller")
    make_dish(seller)
    make_dish(seller)

    assert client.delete(f"/admin/users/{seller['_id']}", headers=staff["moderator_headers"]).status_code == 403
    assert client.delete(f"/admin/users/{seller['_id']}", headers=staff["admin_headers"]).status_code == 200
    assert get_document_by_id("user", seller["_id"]) is None
    assert get_documents("dish") == []

    logs = client.get("/admin/logs", headers=staff["moderator_headers"]).json()
    assert logs[0]["action"] == f"Deleted user {seller['name']} ({seller['email']})"
    assert logs[0]["admin_id"] == staff["admin"]["_id"]
    assert logs[0]["target_type"] == "user"


def test_admins_cannot_be_deleted(client, staff, make_user):
    other_admin, _ = make_user("admin")
    res = client.delete(f"/admin/users/{other_admin['_id']}", headers=staff["admin_headers"])
    assert res.status_code == 400
    assert client.delete("/admin/users/64b7f0c2a1b2c3d4e5f60718", headers=staff["admin_headers"]).status_code == 404


def test_delete_dish(client, staff, make_user, make_dish):
    seller, _ = make_user("seller")
    dish = make_dish(seller, name="Old Soup", category="Soup")
    assert client.delete(f"/admin/dishes/{dish['_id']}", headers=staff["admin_headers"]).status_code == 200
    assert get_document_by_id("dish", dish["_id"]) is None
    assert get_documents("adminlog")[0]["action"] == 'Deleted dish "Old Soup"'


def test_activate_seller_resets_counter(client, staff, make_user):
    seller, _ = make_user("seller", is_suspended=True, delivered_order_count=10)
    buyer, _ = make_user("buyer")

    assert client.post(f"/admin/sellers/{seller['_id']}/activate", headers=staff["moderator_headers"]).status_code == 403
    assert client.post(f"/admin/sellers/{buyer['_id']}/activate", headers=staff["admin_headers"]).status_code == 404
    assert client.post(f"/admin/sellers/{seller['_id']}/activate", headers=staff["admin_headers"]).status_code == 200

    stored = get_document_by_id("user", seller["_id"])
    assert stored["is_suspended"] is False
    assert stored["delivered_order_count"] == 0
    notes = get_documents("notification", {"user_id": seller["_id"]})
    assert [n["type"] for n in notes] == ["account-activated"]


def test_toggle_watchlist(client, staff, make_user):
    user, _ = make_user("buyer")
    url = f"/admin/users/{user['_id']}/watchlist"
    assert client.post(url, headers=staff["moderator_headers"]).json()["on_watchlist"] is True
    assert client.post(url, headers=staff["moderator_headers"]).json()["on_watchlist"] is False
    actions = sorted(log["action"] for log in get_documents("adminlog"))
    assert actions == [f"{user['name']} was added to the watchlist", f"{user['name']} was removed from the watchlist"]


def test_approving_a_dish_announces_it(client, staff, make_user, make_dish):
    seller, _ = make_user("seller")
    buyer, _ = make_user("buyer")
    dish = make_dish(seller, approval_status="pending")

    assert client.get("/admin/dishes", params={"approval_status": "pending"}, headers=staff["moderator_headers"]).json()[0]["_id"] == dish["_id"]
    res = client.put(f"/admin/dishes/{dish['_id']}/approval", json={"approval_status": "approved"}, headers=staff["moderator_headers"])
    assert res.status_code == 200
    assert get_document_by_id("dish", dish["_id"])["approval_status"] == "approved"
    notes = get_documents("notification", {"type": "new-product"})
    assert [n["user_id"] for n in notes] == [buyer["_id"]]


def test_rejecting_a_dish_keeps_a_reason(client, staff, make_user, make_dish):
    seller, _ = make_user("seller")
    dish = make_dish(seller)
    client.put(f"/admin/dishes/{dish['_id']}/approval", json={"approval_status": "rejected", "reason": "Blurry photo"},
               headers=staff["admin_headers"])
    stored = get_document_by_id("dish", dish["_id"])
    assert stored["approval_status"] == "rejected"
    assert stored["approval_reason"] == "Blurry photo"
    assert client.get("/dishes").json() == []


def test_admin_can_move_any_order(client, staff, make_user, make_dish):
    seller, _ = make_user("seller")
    _, buyer_headers = make_user("buyer")
    dish = make_dish(seller)
    order_id = client.post("/orders", json={
        "items": [{"dish_id": dish["_id"], "quantity": 1}],
        "address": "Modern More, Rangpur", "contact": "01900000000", "delivery_zone": "outside-rangpur",
    }, headers=buyer_headers).json()["_id"]

    url = f"/admin/orders/{order_id}/status"
    assert client.put(url, json={"status": "Cancelled"}, headers=staff["moderator_headers"]).status_code == 403
    assert client.put(url, json={"status": "Cancelled"}, headers=staff["admin_headers"]).status_code == 200
    assert get_document_by_id("order", order_id)["status"] == "Cancelled"
    assert get_documents("adminlog")[0]["target_type"] == "order"


def test_seller_orders_view(client, staff, make_user, make_dish):
    seller, seller_headers = make_user("seller")
    _, buyer_headers = make_user("buyer")
    dish = make_dish(seller)
    _place_and_deliver(client, seller_headers, buyer_headers, dish["_id"])
    orders = client.get(f"/admin/sellers/{seller['_id']}/orders", headers=staff["moderator_headers"]).json()
    assert len(orders) == 1
    assert orders[0]["status"] == "Delivered"


def test_csv_exports(client, staff, make_user, make_dish):
    seller, _ = make_user("seller")
    make_dish(seller, name="Falooda", category="Dessert", price=120)

    res = client.get("/admin/export/dishes", headers=staff["moderator_headers"])
    assert res.status_code == 200
    assert res.headers["content-type"].startswith("text/csv")
    assert "attachment" in res.headers["content-disposition"]
    lines = res.text.strip().splitlines()
    assert lines[0] == "Name,Category,Price (BDT),Seller ID"
    assert lines[1] == f"Falooda,Dessert,120.00,{seller['_id']}"

    users = client.get("/admin/export/users", headers=staff["moderator_headers"]).text
    assert users.splitlines()[0] == "Name,Email,Role,Status,Joined"
    assert client.get("/admin/export/orders", headers=staff["moderator_headers"]).status_code == 200
    assert client.get("/admin/export/payments", headers=staff["moderator_headers"]).status_code == 404


def test_audit_log_failure_does_not_undo_the_action(client, staff, make_user, monkeypatch):
    user, _ = make_user("buyer")

    def broken(*args, **kwargs):
        raise PyMongoError("write concern timeout")

    monkeypatch.setattr(admin, "create_document", broken)
    res = client.post(f"/admin/users/{user['_id']}/watchlist", headers=staff["moderator_headers"])
    assert res.status_code == 200
    assert res.json()["on_watchlist"] is True
    assert get_document_by_id("user", user["_id"])["on_watchlist"] is True
    assert get_documents("adminlog") == []


def test_approval_status_and_log_limit_are_validated(client, staff, make_user, make_dish):
    seller, _ = make_user("seller")
    dish = make_dish(seller, approval_status="pending")
    res = client.put(f"/admin/dishes/{dish['_id']}/approval", json={"approval_status": "maybe"},
                     headers=staff["admin_headers"])
    assert res.status_code == 422
    assert get_document_by_id("dish", dish["_id"])["approval_status"] == "pending"

    assert client.get("/admin/logs", params={"limit": -1}, headers=staff["admin_headers"]).status_code == 422
    assert client.get("/admin/logs", params={"limit": 1}, headers=staff["admin_headers"]).status_code == 200
