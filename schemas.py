"""
Database Schemas for the Home-Chef Food Marketplace

Each Pydantic model below corresponds to a MongoDB collection.
The collection name is the lowercase class name (e.g., User -> "user").
"""
from datetime import datetime, timezone
from typing import List, Optional, Literal, get_args
from pydantic import BaseModel, Field, EmailStr

Role = Literal["buyer", "seller", "admin", "moderator"]
PlanType = Literal["free", "pro"]
DeliveryZone = Literal["inside-rangpur-city", "rangpur-division", "outside-rangpur"]
OrderStatus = Literal["Pending", "Preparing", "Delivered", "Cancelled"]
ApprovalStatus = Literal["pending", "approved", "rejected"]
Category = Literal[
    "Burger", "Pizza", "Drinks", "Dessert", "Biryani",
    "Kebab", "Set Menu", "Pasta", "Soup", "Salad",
]
CommissionRate = Literal[5, 7, 10]
NotificationType = Literal[
    "new-order", "order-status", "new-product", "account-suspended", "account-activated",
]
LogTarget = Literal["user", "dish", "order", "system"]

CATEGORIES: List[str] = list(get_args(Category))
STAFF_ROLES = ("admin", "moderator")


class User(BaseModel):
    name: str = Field(..., description="Full name")
    email: EmailStr = Field(..., description="Unique email address")
    password_hash: str = Field(..., description="BCrypt password hash")
    phone: Optional[str] = None
    role: Role = "buyer"
    avatar_url: Optional[str] = None
    shop_name: Optional[str] = Field(None, description="Sellers only")
    shop_address: Optional[str] = Field(None, description="Sellers only")
    zone: Optional[DeliveryZone] = None
    plan_type: PlanType = "free"
    product_upload_count: int = Field(0, ge=0)
    delivered_order_count: int = Field(0, ge=0, description="Delivered orders since the last activation")
    is_suspended: bool = False
    on_watchlist: bool = False


class Dish(BaseModel):
    name: str = Field(..., description="Dish name")
    description: str = ""
    images: List[str] = Field(default_factory=list, description="Cloudinary image URLs")
    price: float = Field(..., gt=0)
    original_price: Optional[float] = Field(None, gt=0)
    category: Category
    seller_id: str = Field(..., description="Reference to user _id")
    delivery_time: str = Field(..., description="Free text, e.g. '30-40 min'")
    commission_percentage: CommissionRate = 5
    tags: List[str] = Field(default_factory=list)
    rating: float = Field(0.0, ge=0, le=5)
    rating_count: int = 0
    is_available: bool = True
    approval_status: ApprovalStatus = "approved"
    approval_reason: Optional[str] = None
    view_count: int = 0


class OrderItem(BaseModel):
    """Snapshot of a dish at checkout time."""
    dish_id: str
    name: str
    image: Optional[str] = None
    price: float
    quantity: int = Field(1, ge=1)
    seller_id: str
    commission_percentage: CommissionRate = 5


class Order(BaseModel):
    buyer_id: str
    seller_ids: List[str]
    items: List[OrderItem]
    status: OrderStatus = "Pending"
    subtotal: float = 0.0
    shipping_cost: float = 0.0
    platform_fee: float = 0.0
    seller_receives: float = 0.0
    total: float = 0.0
    address: str
    contact: str
    delivery_zone: DeliveryZone


class Notification(BaseModel):
    user_id: str = Field(..., description="Buyer or seller the message is for")
    message: str
    type: NotificationType
    is_read: bool = False
    order_id: Optional[str] = None
    dish_id: Optional[str] = None


class Adminlog(BaseModel):
    """Append-only audit record. Collection name: "adminlog"."""
    admin_id: str
    admin_name: str
    action: str
    target_type: Optional[LogTarget] = None
    target_id: Optional[str] = None
    timestamp: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))


class Review(BaseModel):
    dish_id: str
    user_id: str
    user_name: str
    user_avatar: Optional[str] = None
    rating: int = Field(..., ge=1, le=5)
    comment: str = ""


"""
Notes:
- Define new collections by creating new Pydantic classes in this file.
- Request payloads live next to the routes in main.py.
"""
