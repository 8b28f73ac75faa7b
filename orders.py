"""
Checkout, the order lifecycle and seller revenue accounting.

Every line item carries the commission rate of its dish at checkout time, so
an order holding dishes from several sellers can be split per seller:

    line total     = price * quantity
    platform fee   = line total * commission / 100
    seller revenue = line total - platform fee

Moving an order to Delivered bumps `delivered_order_count` on each of its
sellers. A seller reaching `SELLER_SUSPENSION_THRESHOLD` is suspended until an
admin reactivates the account (which resets the counter).
"""

import logging
from datetime import datetime
from typing import Any, Dict, Iterable, List, Optional, Tuple

from fastapi import HTTPException

import config
from database import (
    count_documents, create_document, get_document_by_id, get_documents, increment_field,
    run_transaction, update_document,
)
from notifications import notify, notify_many
from schemas import STAFF_ROLES, Order, OrderItem

logger = logging.getLogger(__name__)

STATUS_TRANSITIONS = {
    "Pending": ("Preparing", "Cancelled"),
    "Preparing": ("Delivered", "Cancelled"),
    "Delivered": (),
    "Cancelled": (),
}


# Revenue accounting

def line_total(item: dict) -> float:
    return item["price"] * item["quantity"]


def line_commission(item: dict) -> float:
    commission = item.get("commission_percentage") or config.DEFAULT_COMMISSION
    return line_total(item) * commission / 100


def seller_line_revenue(item: dict) -> float:
    return line_total(item) - line_commission(item)


def split_order(order: dict) -> Dict[str, dict]:
    """Per-seller subtotal, platform fee and payout for one order."""
    split: Dict[str, dict] = {}
    for item in order["items"]:
        share = split.setdefault(item["seller_id"], {"subtotal": 0.0, "platform_fee": 0.0, "seller_receives": 0.0})
        share["subtotal"] += line_total(item)
        share["platform_fee"] += line_commission(item)
        share["seller_receives"] += seller_line_revenue(item)
    return {sid: {k: round(v, 2) for k, v in share.items()} for sid, share in split.items()}


def seller_revenue(orders: Iterable[dict], seller_id: str) -> float:
    """Net revenue of one seller over the delivered orders given."""
    total = 0.0
    for order in orders:
        if order["status"] != "Delivered":
            continue
        total += sum(seller_line_revenue(i) for i in order["items"] if i["seller_id"] == seller_id)
    return round(total, 2)


def _as_datetime(value: Any) -> Optional[datetime]:
    if isinstance(value, datetime):
        return value
    if isinstance(value, str):
        return datetime.fromisoformat(value)
    return None


def sales_by_month(orders: Iterable[dict], amount) -> List[dict]:
    """Sum `amount(order)` per calendar month, oldest month first."""
    buckets: Dict[Tuple[int, int], float] = {}
    for order in orders:
        created = _as_datetime(order.get("created_at"))
        if created is None:
            continue
        key = (created.year, created.month)
        buckets[key] = buckets.get(key, 0.0) + amount(order)
    return [
        {"month": datetime(year, month, 1).strftime("%b %Y"), "sales": round(sales, 2)}
        for (year, month), sales in sorted(buckets.items())
    ]


# Checkout

def place_order(buyer: dict, cart: List[dict], address: str, contact: str, delivery_zone: str) -> dict:
    if not cart:
        raise HTTPException(400, "Cart is empty")

    # merge repeated dishes into one line
    quantities: Dict[str, int] = {}
    for line in cart:
        quantities[line["dish_id"]] = quantities.get(line["dish_id"], 0) + line["quantity"]

    def create(session):
        items = []
        sellers: Dict[str, dict] = {}
        for dish_id, quantity in quantities.items():
            dish = get_document_by_id("dish", dish_id, session=session)
            if not dish:
                raise HTTPException(404, f"Dish {dish_id} not found")
            if not dish.get("is_available") or dish.get("approval_status") != "approved":
                raise HTTPException(400, f"{dish['name']} is not available right now")
            seller_id = dish["seller_id"]
            if seller_id not in sellers:
                seller = get_document_by_id("user", seller_id, session=session)
                if not seller or seller.get("is_suspended"):
                    raise HTTPException(400, f"{dish['name']} cannot be ordered, its seller is not accepting orders")
                sellers[seller_id] = seller
            items.append(OrderItem(
                dish_id=dish_id,
                name=dish["name"],
                image=(dish.get("images") or [None])[0],
                price=dish["price"],
                quantity=quantity,
                seller_id=seller_id,
                commission_percentage=dish.get("commission_percentage") or config.DEFAULT_COMMISSION,
            ))

        lines = [i.model_dump() for i in items]
        subtotal = sum(line_total(i) for i in lines)
        platform_fee = sum(line_commission(i) for i in lines)
        shipping_cost = config.SHIPPING_COSTS[delivery_zone]
        order = Order(
            buyer_id=buyer["_id"],
            seller_ids=list(sellers),
            items=items,
            subtotal=round(subtotal, 2),
            shipping_cost=shipping_cost,
            platform_fee=round(platform_fee, 2),
            seller_receives=round(subtotal - platform_fee, 2),
            total=round(subtotal + shipping_cost, 2),
            address=address,
            contact=contact,
            delivery_zone=delivery_zone,
        )
        order_id = create_document("order", order, session=session)
        notify_many(
            list(sellers),
            f"New order #{order_id[:6]} from {buyer['name']}.",
            "new-order",
            order_id=order_id,
            session=session,
        )
        return order_id, order

    order_id, order = run_transaction(create)
    logger.info("Order %s placed by %s for sellers %s, total %.2f", order_id, buyer["_id"], order.seller_ids, order.total)
    return {"_id": order_id, **order.model_dump()}


# Queries

def list_buyer_orders(buyer_id: str) -> List[dict]:
    return get_documents("order", {"buyer_id": buyer_id}, sort=[("created_at", -1)])


def get_order_for(user: dict, order_id: str) -> dict:
    order = get_document_by_id("order", order_id)
    if not order:
        raise HTTPException(404, "Order not found")
    allowed = (
        order["buyer_id"] == user["_id"]
        or user["_id"] in order["seller_ids"]
        or user.get("role") in STAFF_ROLES
    )
    if not allowed:
        raise HTTPException(404, "Order not found")
    return order


def seller_orders(seller_id: str) -> List[dict]:
    """Orders involving a seller, narrowed to that seller's lines and payout."""
    orders = get_documents("order", {"seller_ids": seller_id}, sort=[("created_at", -1)])
    relevant = []
    for order in orders:
        items = [i for i in order["items"] if i["seller_id"] == seller_id]
        if items:
            relevant.append({**order, "items": items, "payout": split_order(order)[seller_id]})
    return relevant


# Lifecycle

def _record_delivery(seller_id: str, session) -> bool:
    """Count a delivered order for a seller. Returns True if this suspended them."""
    seller = increment_field("user", seller_id, "delivered_order_count", session=session)
    if seller is None:
        # seller account was deleted after the order was placed
        return False
    count = seller["delivered_order_count"]
    if seller.get("is_suspended") or count < config.SELLER_SUSPENSION_THRESHOLD:
        return False
    update_document("user", seller_id, {"is_suspended": True}, session=session)
    notify(
        seller_id,
        f"Your account has been suspended after {count} delivered orders. "
        "Please settle the platform commission with an admin to resume selling.",
        "account-suspended",
        session=session,
    )
    return True


def update_order_status(actor: dict, order_id: str, status: str) -> dict:
    """
    Move an order to `status` and apply its side effects in one transaction.

    The order, the sellers' delivered counters, any suspension and all
    notifications are written together or not at all.
    """
    def apply(session):
        order = get_document_by_id("order", order_id, session=session)
        if not order:
            raise HTTPException(404, "Order not found")
        role = actor.get("role")
        if role == "seller" and actor["_id"] not in order["seller_ids"]:
            raise HTTPException(403, "This order does not include your dishes")
        if role == "buyer" and (order["buyer_id"] != actor["_id"] or status != "Cancelled"):
            raise HTTPException(403, "Buyers can only cancel their own orders")
        if role == "moderator":
            raise HTTPException(403, "Only admins can change order status")

        current = order["status"]
        if status not in STATUS_TRANSITIONS[current]:
            raise HTTPException(400, f"Cannot change order from {current} to {status}")
        update_document("order", order_id, {"status": status}, session=session)

        suspended = []
        if status == "Delivered":
            suspended = [sid for sid in order["seller_ids"] if _record_delivery(sid, session)]

        notify(
            order["buyer_id"],
            f"Your order #{order_id[:6]} is now {status}.",
            "order-status",
            order_id=order_id,
            session=session,
        )
        return {**order, "status": status}, suspended

    order, suspended = run_transaction(apply)
    logger.info("Order %s moved to %s by %s", order_id, status, actor["_id"])
    for seller_id in suspended:
        logger.warning("Seller %s suspended after reaching %d delivered orders", seller_id, config.SELLER_SUSPENSION_THRESHOLD)
    return {**order, "suspended_sellers": suspended}


def cancel_order(buyer: dict, order_id: str) -> dict:
    order = get_order_for(buyer, order_id)
    if order["buyer_id"] != buyer["_id"]:
        raise HTTPException(403, "Buyers can only cancel their own orders")
    if order["status"] != "Pending":
        raise HTTPException(400, "Only pending orders can be cancelled")
    return update_order_status(buyer, order_id, "Cancelled")


# Seller dashboard

def dashboard_summary(seller: dict) -> dict:
    orders = seller_orders(seller["_id"])
    delivered = [o for o in orders if o["status"] == "Delivered"]
    total_revenue = seller_revenue(delivered, seller["_id"])
    total_orders = len(orders)
    return {
        "total_revenue": total_revenue,
        "total_orders": total_orders,
        "average_order_value": round(total_revenue / total_orders, 2) if total_orders else 0.0,
        "sales_by_month": sales_by_month(delivered, lambda o: sum(line_total(i) for i in o["items"])),
        "status_counts": {s: sum(1 for o in orders if o["status"] == s) for s in STATUS_TRANSITIONS},
        "dish_count": count_documents("dish", {"seller_id": seller["_id"]}),
        "plan_type": seller.get("plan_type", "free"),
        "product_upload_count": seller.get("product_upload_count", 0),
        "delivered_order_count": seller.get("delivered_order_count", 0),
        "is_suspended": seller.get("is_suspended", False),
    }


def upgrade_plan(seller: dict) -> None:
    if seller.get("plan_type") == "pro":
        raise HTTPException(400, "You are already on the Pro plan")
    update_document("user", seller["_id"], {"plan_type": "pro"})
    logger.info("Seller %s upgraded to pro", seller["_id"])
