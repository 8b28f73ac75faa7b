"""
Catalog: dishes, reviews, categories and the sellers directory.
"""

import logging
from typing import Any, Dict, List, Optional

from fastapi import HTTPException
from pymongo.errors import PyMongoError

import config
from database import (
    count_documents, create_document, delete_document, get_document_by_id, get_documents,
    increment_field, run_transaction, update_document,
)
from notifications import notify_many
from schemas import CATEGORIES, Dish, Review
from security import public_user

logger = logging.getLogger(__name__)

LISTED = {"is_available": True, "approval_status": "approved"}
SORTABLE_FIELDS = {"price", "rating", "rating_count", "view_count", "commission_percentage", "created_at"}


def list_dishes(category: Optional[str] = None, seller_id: Optional[str] = None, rating: Optional[float] = None,
                search: Optional[str] = None, sort_by: Optional[str] = None, limit: Optional[int] = None) -> List[dict]:
    filt: Dict[str, Any] = dict(LISTED)
    if category and category != "All":
        filt["category"] = category
    if seller_id:
        filt["seller_id"] = seller_id
    dishes = get_documents("dish", filt)

    if rating:
        dishes = [d for d in dishes if d.get("rating", 0) >= rating]
    if search:
        term = search.lower()
        dishes = [d for d in dishes if term in d["name"].lower()]

    if sort_by:
        field, _, direction = sort_by.partition("-")
        if field not in SORTABLE_FIELDS or direction not in ("", "asc", "desc"):
            raise HTTPException(400, f"Cannot sort by {sort_by!r}")
        dishes.sort(key=lambda d: d.get(field) if d.get(field) is not None else 0, reverse=direction == "desc")

    if limit:
        dishes = dishes[:limit]
    return dishes


def get_dish(dish_id: str) -> dict:
    dish = get_document_by_id("dish", dish_id)
    if not dish:
        raise HTTPException(404, "Dish not found")
    return dish


def record_view(dish_id: str) -> None:
    """Bump the view counter. A failure here must never block the page."""
    try:
        increment_field("dish", dish_id, "view_count")
    except PyMongoError:
        logger.exception("Failed to increment view count for dish %s", dish_id)


def related_dishes(dish: dict, limit: int = 4) -> List[dict]:
    # one extra so the dish itself can be dropped
    same_category = list_dishes(category=dish["category"], limit=limit + 1)
    return [d for d in same_category if d["_id"] != dish["_id"]][:limit]


def _get_owned_dish(seller: dict, dish_id: str) -> dict:
    dish = get_dish(dish_id)
    if dish["seller_id"] != seller["_id"]:
        raise HTTPException(403, "You can only manage your own dishes")
    return dish


def add_dish(seller_id: str, data: Dict[str, Any]) -> str:
    """
    List a new dish for a seller.

    The seller's upload counter is checked and bumped in the same transaction
    as the insert so two concurrent uploads cannot both slip under the
    free-plan limit. Buyers are told about the new dish afterwards.
    """
    def create(session):
        seller = get_document_by_id("user", seller_id, session=session)
        if not seller or seller.get("role") != "seller":
            raise HTTPException(404, "Seller not found")
        if seller.get("is_suspended"):
            raise HTTPException(403, "Your seller account is suspended. Contact an admin to reactivate it.")
        uploads = seller.get("product_upload_count", 0)
        if seller.get("plan_type", "free") != "pro" and uploads >= config.FREE_PLAN_UPLOAD_LIMIT:
            raise HTTPException(
                403, f"Free plan sellers can list up to {config.FREE_PLAN_UPLOAD_LIMIT} dishes. Upgrade to Pro for unlimited uploads."
            )
        dish = Dish(
            **data,
            seller_id=seller_id,
            approval_status="approved" if config.AUTO_APPROVE_DISHES else "pending",
        )
        dish_id = create_document("dish", dish, session=session)
        increment_field("user", seller_id, "product_upload_count", session=session)
        return dish_id, seller, dish

    dish_id, seller, dish = run_transaction(create)
    logger.info("Seller %s added dish %s (%s)", seller_id, dish_id, dish.approval_status)
    if dish.approval_status == "approved":
        announce_dish(dish_id, dish.name, seller)
    return dish_id


def announce_dish(dish_id: str, dish_name: str, seller: dict) -> None:
    buyers = get_documents("user", {"role": "buyer"})
    shop = seller.get("shop_name") or seller["name"]
    notify_many(
        [b["_id"] for b in buyers],
        f"New dish added: {dish_name} by {shop}",
        "new-product",
        dish_id=dish_id,
    )


def update_dish(seller: dict, dish_id: str, updates: Dict[str, Any]) -> None:
    _get_owned_dish(seller, dish_id)
    if not updates:
        raise HTTPException(400, "No updates provided")
    update_document("dish", dish_id, updates)


def delete_dish(seller: dict, dish_id: str) -> None:
    _get_owned_dish(seller, dish_id)
    delete_document("dish", dish_id)
    logger.info("Seller %s deleted dish %s", seller["_id"], dish_id)


def categories() -> List[dict]:
    return [
        {"name": name, "dish_count": count_documents("dish", {**LISTED, "category": name})}
        for name in CATEGORIES
    ]


# Reviews

def add_review(user: dict, dish_id: str, rating: int, comment: str) -> str:
    def create(session):
        dish = get_document_by_id("dish", dish_id, session=session)
        if not dish:
            raise HTTPException(404, "Dish not found")
        if get_documents("review", {"dish_id": dish_id, "user_id": user["_id"]}, limit=1, session=session):
            raise HTTPException(400, "You have already reviewed this dish")
        review = Review(
            dish_id=dish_id,
            user_id=user["_id"],
            user_name=user["name"],
            user_avatar=user.get("avatar_url"),
            rating=rating,
            comment=comment,
        )
        review_id = create_document("review", review, session=session)
        count = dish.get("rating_count", 0)
        average = (dish.get("rating", 0) * count + rating) / (count + 1)
        update_document("dish", dish_id, {"rating": round(average, 2), "rating_count": count + 1}, session=session)
        return review_id

    return run_transaction(create)


def list_reviews(dish_id: str) -> List[dict]:
    return get_documents("review", {"dish_id": dish_id}, sort=[("created_at", -1)])


# Sellers directory

def list_sellers() -> List[dict]:
    sellers = [public_user(s) for s in get_documents("user", {"role": "seller"})]
    # Pro sellers first, then the busiest shops
    sellers.sort(key=lambda s: (s.get("plan_type") != "pro", -s.get("product_upload_count", 0)))
    return sellers


def seller_profile(seller_id: str) -> dict:
    seller = get_document_by_id("user", seller_id)
    if not seller or seller.get("role") != "seller":
        raise HTTPException(404, "Seller not found")
    return {"seller": public_user(seller), "dishes": list_dishes(seller_id=seller_id)}
