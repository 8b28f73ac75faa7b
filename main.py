import logging
import os
from datetime import date
from typing import List, Literal, Optional

from fastapi import FastAPI, HTTPException, Depends, File, Query, UploadFile
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import Response
from pydantic import BaseModel, EmailStr, Field

import admin
import config
import database
import dishes
import notifications
import orders
import storage
from database import create_document, get_document_by_id, get_documents, update_document
from schemas import ApprovalStatus, Category, CommissionRate, DeliveryZone, OrderStatus, User
from security import (
    create_token, get_current_user, hash_password, public_user, require_active_seller, require_admin,
    require_buyer, require_seller, require_staff, verify_password,
)

logging.basicConfig(
    level=config.LOG_LEVEL,
    format="%(asctime)s %(levelname)s %(name)s: %(message)s",
)
logger = logging.getLogger(__name__)

app = FastAPI(title="Chefs BD Food Marketplace API", version="1.0.0")

app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


# ============ Auth models ==========
class SignupRequest(BaseModel):
    name: str = Field(..., min_length=1)
    email: EmailStr
    password: str = Field(..., min_length=6)
    phone: Optional[str] = None
    role: Literal["buyer", "seller"] = "buyer"
    shop_name: Optional[str] = None
    shop_address: Optional[str] = None
    zone: Optional[DeliveryZone] = None


class LoginRequest(BaseModel):
    email: EmailStr
    password: str


class AuthResponse(BaseModel):
    token: str
    user: dict


class ProfileUpdateRequest(BaseModel):
    name: Optional[str] = None
    phone: Optional[str] = None
    shop_name: Optional[str] = None
    shop_address: Optional[str] = None
    avatar_url: Optional[str] = None
    zone: Optional[DeliveryZone] = None


# ===================== Public Endpoints =====================
@app.get("/")
def root():
    return {"message": "Chefs BD Food Marketplace API running"}


@app.get("/test")
def test_database():
    response = {
        "backend": "✅ Running",
        "database": "❌ Not Available",
        "database_url": None,
        "database_name": None,
        "connection_status": "Not Connected",
        "collections": []
    }
    try:
        if database.db is not None:
            response["database"] = "✅ Available"
            response["connection_status"] = "Connected"
            response["collections"] = database.db.list_collection_names()
        else:
            response["database"] = "⚠️  Available but not initialized"
    except Exception as e:
        response["database"] = f"❌ Error: {str(e)[:80]}"
    response["database_url"] = "✅ Set" if os.getenv("DATABASE_URL") else "❌ Not Set"
    response["database_name"] = "✅ Set" if os.getenv("DATABASE_NAME") else "❌ Not Set"
    return response


# ===================== Auth =====================
@app.post("/auth/signup", response_model=AuthResponse)
def signup(payload: SignupRequest):
    if payload.role == "seller" and not (payload.shop_name and payload.shop_address):
        raise HTTPException(status_code=400, detail="Sellers must provide a shop name and shop address")
    existing = get_documents("user", {"email": payload.email}, limit=1)
    if existing:
        raise HTTPException(status_code=400, detail="Email already registered")
    user = User(
        name=payload.name,
        email=payload.email,
        password_hash=hash_password(payload.password),
        phone=payload.phone,
        role=payload.role,
        shop_name=payload.shop_name if payload.role == "seller" else None,
        shop_address=payload.shop_address if payload.role == "seller" else None,
        zone=payload.zone,
    )
    user_id = create_document("user", user)
    created = get_document_by_id("user", user_id)
    logger.info("New %s account %s", user.role, user_id)
    return AuthResponse(token=create_token(created), user=public_user(created))


@app.post("/auth/login", response_model=AuthResponse)
def login(payload: LoginRequest):
    users = get_documents("user", {"email": payload.email}, limit=1)
    if not users or not verify_password(payload.password, users[0].get("password_hash")):
        raise HTTPException(status_code=401, detail="Invalid credentials")
    user = users[0]
    return AuthResponse(token=create_token(user), user=public_user(user))


@app.get("/auth/me")
def me(user: dict = Depends(get_current_user)):
    return public_user(user)


@app.put("/users/me")
def update_profile(payload: ProfileUpdateRequest, user: dict = Depends(get_current_user)):
    updates = {k: v for k, v in payload.model_dump().items() if v}
    if user.get("role") != "seller":
        updates.pop("shop_name", None)
        updates.pop("shop_address", None)
    if updates:
        update_document("user", user["_id"], updates)
    return public_user(get_document_by_id("user", user["_id"]))


@app.post("/uploads/image")
async def upload_image(image: UploadFile = File(...), user: dict = Depends(get_current_user)):
    content = await image.read()
    url = storage.upload_image(content, image.filename or "")
    return {"success": True, "url": url}


# ===================== Catalog =====================
class DishCreate(BaseModel):
    name: str = Field(..., min_length=1)
    description: str = Field(..., min_length=10)
    price: float = Field(..., gt=0)
    original_price: Optional[float] = Field(None, gt=0)
    category: Category
    delivery_time: str = Field(..., min_length=1)
    images: List[str] = Field(..., min_length=1)
    commission_percentage: CommissionRate = 5
    tags: List[str] = []


class DishUpdate(BaseModel):
    name: Optional[str] = None
    description: Optional[str] = None
    price: Optional[float] = Field(None, gt=0)
    original_price: Optional[float] = Field(None, gt=0)
    category: Optional[Category] = None
    delivery_time: Optional[str] = None
    images: Optional[List[str]] = None
    commission_percentage: Optional[CommissionRate] = None
    tags: Optional[List[str]] = None
    is_available: Optional[bool] = None


class ReviewRequest(BaseModel):
    rating: int = Field(..., ge=1, le=5)
    comment: str = ""


@app.get("/categories")
def list_categories():
    return dishes.categories()


@app.get("/dishes")
def list_dishes(category: Optional[str] = None, seller_id: Optional[str] = None, rating: Optional[float] = None,
                search: Optional[str] = None, sort_by: Optional[str] = None, limit: Optional[int] = Query(None, ge=1)):
    return dishes.list_dishes(category=category, seller_id=seller_id, rating=rating,
                              search=search, sort_by=sort_by, limit=limit)


@app.get("/dishes/{dish_id}")
def get_dish(dish_id: str):
    dish = dishes.get_dish(dish_id)
    dishes.record_view(dish_id)
    return dish


@app.get("/dishes/{dish_id}/related")
def related_dishes(dish_id: str):
    return dishes.related_dishes(dishes.get_dish(dish_id))


@app.get("/dishes/{dish_id}/reviews")
def list_reviews(dish_id: str):
    dishes.get_dish(dish_id)
    return dishes.list_reviews(dish_id)


@app.post("/dishes/{dish_id}/reviews")
def add_review(dish_id: str, payload: ReviewRequest, user: dict = Depends(require_buyer)):
    review_id = dishes.add_review(user, dish_id, payload.rating, payload.comment)
    return {"_id": review_id}


@app.get("/sellers")
def list_sellers():
    return dishes.list_sellers()


@app.get("/sellers/{seller_id}")
def get_seller(seller_id: str):
    return dishes.seller_profile(seller_id)


# ===================== Seller Dashboard =====================
class StatusUpdateRequest(BaseModel):
    status: OrderStatus


@app.get("/dashboard/summary")
def dashboard_summary(seller: dict = Depends(require_seller)):
    return orders.dashboard_summary(seller)


@app.get("/dashboard/dishes")
def my_dishes(seller: dict = Depends(require_seller)):
    return get_documents("dish", {"seller_id": seller["_id"]}, sort=[("created_at", -1)])


@app.post("/dashboard/dishes")
def create_dish(payload: DishCreate, seller: dict = Depends(require_active_seller)):
    dish_id = dishes.add_dish(seller["_id"], payload.model_dump())
    return {"success": True, "_id": dish_id}


@app.put("/dashboard/dishes/{dish_id}")
def edit_dish(dish_id: str, payload: DishUpdate, seller: dict = Depends(require_active_seller)):
    # null leaves a field unchanged, except original_price where it clears the discount
    updates = payload.model_dump(exclude_none=True)
    if "original_price" in payload.model_fields_set and payload.original_price is None:
        updates["original_price"] = None
    dishes.update_dish(seller, dish_id, updates)
    return {"updated": True}


@app.delete("/dashboard/dishes/{dish_id}")
def remove_dish(dish_id: str, seller: dict = Depends(require_seller)):
    dishes.delete_dish(seller, dish_id)
    return {"deleted": True}


@app.get("/dashboard/orders")
def my_seller_orders(seller: dict = Depends(require_seller)):
    return orders.seller_orders(seller["_id"])


@app.put("/dashboard/orders/{order_id}/status")
def change_order_status(order_id: str, payload: StatusUpdateRequest, seller: dict = Depends(require_seller)):
    return orders.update_order_status(seller, order_id, payload.status)


@app.post("/dashboard/upgrade")
def upgrade(seller: dict = Depends(require_seller)):
    orders.upgrade_plan(seller)
    return {"success": True, "plan_type": "pro"}


# ===================== Orders =====================
class CartLine(BaseModel):
    dish_id: str
    quantity: int = Field(1, ge=1)


class CheckoutRequest(BaseModel):
    items: List[CartLine]
    address: str = Field(..., min_length=1)
    contact: str = Field(..., min_length=1)
    delivery_zone: DeliveryZone


@app.post("/orders")
def checkout(payload: CheckoutRequest, buyer: dict = Depends(require_buyer)):
    cart = [line.model_dump() for line in payload.items]
    return orders.place_order(buyer, cart, payload.address, payload.contact, payload.delivery_zone)


@app.get("/orders")
def my_orders(buyer: dict = Depends(require_buyer)):
    return orders.list_buyer_orders(buyer["_id"])


@app.get("/orders/{order_id}")
def get_order(order_id: str, user: dict = Depends(get_current_user)):
    return orders.get_order_for(user, order_id)


@app.post("/orders/{order_id}/cancel")
def cancel_order(order_id: str, buyer: dict = Depends(require_buyer)):
    return orders.cancel_order(buyer, order_id)


# ===================== Notifications =====================
@app.get("/notifications")
def my_notifications(unread: bool = False, user: dict = Depends(get_current_user)):
    return notifications.list_notifications(user["_id"], unread_only=unread)


@app.put("/notifications/read-all")
def read_all_notifications(user: dict = Depends(get_current_user)):
    return {"updated": notifications.mark_all_read(user["_id"])}


@app.put("/notifications/{notification_id}/read")
def read_notification(notification_id: str, user: dict = Depends(get_current_user)):
    notifications.mark_read(user["_id"], notification_id)
    return {"updated": True}


# ===================== Admin =====================
class DishApprovalRequest(BaseModel):
    approval_status: ApprovalStatus
    reason: Optional[str] = None


@app.get("/admin/stats")
def admin_stats(staff: dict = Depends(require_staff)):
    return admin.admin_stats()


@app.get("/admin/users")
def admin_users(search: Optional[str] = None, staff: dict = Depends(require_staff)):
    return admin.list_users(search)


@app.get("/admin/orders")
def admin_orders(staff: dict = Depends(require_staff)):
    return admin.list_orders()


@app.get("/admin/dishes")
def admin_dishes(approval_status: Optional[str] = None, staff: dict = Depends(require_staff)):
    return admin.list_dishes(approval_status)


@app.get("/admin/logs")
def admin_logs(limit: Optional[int] = Query(None, ge=1), staff: dict = Depends(require_staff)):
    return admin.list_logs(limit)


@app.get("/admin/sellers/{seller_id}/orders")
def admin_seller_orders(seller_id: str, staff: dict = Depends(require_staff)):
    return orders.seller_orders(seller_id)


@app.delete("/admin/users/{user_id}")
def admin_delete_user(user_id: str, user: dict = Depends(require_admin)):
    admin.delete_user(user, user_id)
    return {"deleted": True}


@app.delete("/admin/dishes/{dish_id}")
def admin_delete_dish(dish_id: str, user: dict = Depends(require_admin)):
    admin.delete_dish(user, dish_id)
    return {"deleted": True}


@app.post("/admin/sellers/{seller_id}/activate")
def admin_activate_seller(seller_id: str, user: dict = Depends(require_admin)):
    admin.activate_seller(user, seller_id)
    return {"success": True}


@app.post("/admin/users/{user_id}/watchlist")
def admin_toggle_watchlist(user_id: str, staff: dict = Depends(require_staff)):
    return {"success": True, "on_watchlist": admin.toggle_watchlist(staff, user_id)}


@app.put("/admin/dishes/{dish_id}/approval")
def admin_review_dish(dish_id: str, payload: DishApprovalRequest, staff: dict = Depends(require_staff)):
    admin.review_dish(staff, dish_id, payload.approval_status, payload.reason)
    return {"updated": True}


@app.put("/admin/orders/{order_id}/status")
def admin_update_order_status(order_id: str, payload: StatusUpdateRequest, user: dict = Depends(require_admin)):
    return admin.set_order_status(user, order_id, payload.status)


EXPORTS = {
    "users": admin.export_users,
    "dishes": admin.export_dishes,
    "orders": admin.export_orders,
}


@app.get("/admin/export/{kind}")
def admin_export(kind: str, staff: dict = Depends(require_staff)):
    if kind not in EXPORTS:
        raise HTTPException(404, "Unknown export")
    filename = f"chefs_bd_{kind}_{date.today().isoformat()}.csv"
    return Response(
        content=EXPORTS[kind](),
        media_type="text/csv",
        headers={"Content-Disposition": f'attachment; filename="{filename}"'},
    )


if __name__ == "__main__":
    import uvicorn
    uvicorn.run(app, host="0.0.0.0", port=config.PORT)
