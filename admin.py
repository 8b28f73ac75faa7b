"""
Admin panel operations.

Moderators may look at everything; destructive actions are reserved for admins
and enforced at the route level. Every action leaves an `adminlog` entry.
"""

import csv
import io
import logging
from collections import Counter
from typing import List, Optional

from fastapi import HTTPException
from pymongo.errors import PyMongoError

from database import (
    count_documents, create_document, delete_document, delete_documents, get_document_by_id,
    get_documents, run_transaction, update_document,
)
from dishes import announce_dish
from notifications import notify
from orders import sales_by_month, seller_revenue, update_order_status
from schemas import Adminlog
from security import public_user

logger = logging.getLogger(__name__)

NEWEST_FIRST = [("created_at", -1)]


def create_log(admin: dict, action: str, target_type: Optional[str] = None, target_id: Optional[str] = None) -> None:
    try:
        create_document("adminlog", Adminlog(
            admin_id=admin["_id"],
            admin_name=admin["name"],
            action=action,
            target_type=target_type,
            target_id=target_id,
        ))
    except PyMongoError:
        logger.exception("Failed to write admin log %r by %s", action, admin["_id"])


# Dashboard

def admin_stats() -> dict:
    delivered = get_documents("order", {"status": "Delivered"})
    dishes = get_documents("dish")
    sellers = get_documents("user", {"role": "seller"})

    top_sellers = sorted(
        ({**public_user(s), "total_revenue": seller_revenue(delivered, s["_id"])} for s in sellers),
        key=lambda s: s["total_revenue"],
        reverse=True,
    )[:5]
    categories = Counter(d["category"] for d in dishes)

    return {
        "total_revenue": round(sum(o["total"] for o in delivered), 2),
        "total_orders": count_documents("order"),
        "total_dishes": len(dishes),
        "total_users": count_documents("user"),
        "pending_dishes": sum(1 for d in dishes if d.get("approval_status") == "pending"),
        "sales_by_month": sales_by_month(delivered, lambda o: o["total"]),
        "top_sellers": top_sellers,
        "category_distribution": [{"name": name, "value": value} for name, value in categories.items()],
    }


def list_users(search: Optional[str] = None) -> List[dict]:
    users = [public_user(u) for u in get_documents("user", sort=NEWEST_FIRST)]
    if search:
        term = search.lower()
        users = [
            u for u in users
            if term in u["name"].lower()
            or term in u["email"].lower()
            or term in (u.get("shop_name") or "").lower()
        ]
    return users


def list_orders() -> List[dict]:
    return get_documents("order", sort=NEWEST_FIRST)


def list_dishes(approval_status: Optional[str] = None) -> List[dict]:
    filt = {"approval_status": approval_status} if approval_status else {}
    return get_documents("dish", filt, sort=NEWEST_FIRST)


def list_logs(limit: Optional[int] = None) -> List[dict]:
    return get_documents("adminlog", sort=[("timestamp", -1)], limit=limit)


# Actions

def delete_user(admin: dict, user_id: str) -> None:
    def remove(session):
        user = get_document_by_id("user", user_id, session=session)
        if not user:
            raise HTTPException(404, "User not found")
        if user.get("role") == "admin":
            raise HTTPException(400, "Cannot delete an admin account.")
        delete_document("user", user_id, session=session)
        removed = 0
        if user.get("role") == "seller":
            removed = delete_documents("dish", {"seller_id": user_id}, session=session)
        return user, removed

    user, removed = run_transaction(remove)
    logger.info("Admin %s deleted user %s and %d dishes", admin["_id"], user_id, removed)
    create_log(admin, f"Deleted user {user['name']} ({user['email']})", "user", user_id)


def delete_dish(admin: dict, dish_id: str) -> None:
    dish = get_document_by_id("dish", dish_id)
    if not dish:
        raise HTTPException(404, "Dish not found")
    delete_document("dish", dish_id)
    create_log(admin, f'Deleted dish "{dish["name"]}"', "dish", dish_id)


def activate_seller(admin: dict, seller_id: str) -> None:
    def activate(session):
        seller = get_document_by_id("user", seller_id, session=session)
        if not seller or seller.get("role") != "seller":
            raise HTTPException(404, "Seller not found")
        update_document("user", seller_id, {"is_suspended": False, "delivered_order_count": 0}, session=session)
        notify(
            seller_id,
            "Your account has been re-activated by an admin. You can now resume selling.",
            "account-activated",
            session=session,
        )
        return seller

    seller = run_transaction(activate)
    create_log(admin, f"Activated seller account for {seller['name']}", "user", seller_id)


def toggle_watchlist(admin: dict, user_id: str) -> bool:
    user = get_document_by_id("user", user_id)
    if not user:
        raise HTTPException(404, "User not found")
    on_watchlist = not user.get("on_watchlist", False)
    update_document("user", user_id, {"on_watchlist": on_watchlist})
    action = "added to" if on_watchlist else "removed from"
    create_log(admin, f"{user['name']} was {action} the watchlist", "user", user_id)
    return on_watchlist


def review_dish(admin: dict, dish_id: str, approval_status: str, reason: Optional[str] = None) -> None:
    dish = get_document_by_id("dish", dish_id)
    if not dish:
        raise HTTPException(404, "Dish not found")
    update_document("dish", dish_id, {"approval_status": approval_status, "approval_reason": reason})
    create_log(admin, f'Marked dish "{dish["name"]}" as {approval_status}', "dish", dish_id)
    if approval_status == "approved" and dish.get("approval_status") != "approved":
        seller = get_document_by_id("user", dish["seller_id"])
        if seller:
            announce_dish(dish_id, dish["name"], seller)


def set_order_status(admin: dict, order_id: str, status: str) -> dict:
    order = update_order_status(admin, order_id, status)
    create_log(admin, f"Changed order #{order_id[:6]} to {status}", "order", order_id)
    return order


# CSV exports

def _to_csv(header: List[str], rows) -> str:
    buf = io.StringIO()
    writer = csv.writer(buf)
    writer.writerow(header)
    writer.writerows(rows)
    return buf.getvalue()


def _date(value) -> str:
    return value.strftime("%Y-%m-%d") if value else "N/A"


def export_users() -> str:
    return _to_csv(
        ["Name", "Email", "Role", "Status", "Joined"],
        (
            [u["name"], u["email"], u.get("role"), "Suspended" if u.get("is_suspended") else "Active", _date(u.get("created_at"))]
            for u in list_users()
        ),
    )


def export_dishes() -> str:
    return _to_csv(
        ["Name", "Category", "Price (BDT)", "Seller ID"],
        ([d["name"], d["category"], f"{d['price']:.2f}", d["seller_id"]] for d in list_dishes()),
    )


def export_orders() -> str:
    return _to_csv(
        ["Order ID", "Date", "Total (BDT)", "Status", "Buyer ID"],
        ([o["_id"], _date(o.get("created_at")), f"{o['total']:.2f}", o["status"], o["buyer_id"]] for o in list_orders()),
    )
