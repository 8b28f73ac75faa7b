"""
Settings

Everything is read from the environment (a local .env file is loaded first).
"""

import os
from dotenv import load_dotenv

# Load environment variables from .env file
load_dotenv()


def _flag(name: str, default: bool) -> bool:
    value = os.getenv(name)
    if value is None:
        return default
    return value.strip().lower() in ("1", "true", "yes", "on")


def _commission(name: str, default: int) -> int:
    # must match schemas.CommissionRate or every checkout would fail validation
    value = int(os.getenv(name, default))
    if value not in (5, 7, 10):
        raise ValueError(f"{name} must be 5, 7 or 10, got {value}")
    return value


DATABASE_URL = os.getenv("DATABASE_URL")
DATABASE_NAME = os.getenv("DATABASE_NAME")
# MongoDB only supports transactions on replica sets (Atlas always is one)
DATABASE_TRANSACTIONS = _flag("DATABASE_TRANSACTIONS", True)

JWT_SECRET = os.getenv("JWT_SECRET", "dev-secret-change-me")
JWT_ALG = "HS256"
JWT_EXPIRE_DAYS = int(os.getenv("JWT_EXPIRE_DAYS", 7))

CLOUDINARY_CLOUD_NAME = os.getenv("CLOUDINARY_CLOUD_NAME")
CLOUDINARY_API_KEY = os.getenv("CLOUDINARY_API_KEY")
CLOUDINARY_API_SECRET = os.getenv("CLOUDINARY_API_SECRET")
CLOUDINARY_FOLDER = os.getenv("CLOUDINARY_FOLDER", "chefs-bd")

# Delivered orders a seller may fulfil before the account is suspended
# pending commission settlement with an admin.
SELLER_SUSPENSION_THRESHOLD = int(os.getenv("SELLER_SUSPENSION_THRESHOLD", 10))
FREE_PLAN_UPLOAD_LIMIT = int(os.getenv("FREE_PLAN_UPLOAD_LIMIT", 5))
DEFAULT_COMMISSION = _commission("DEFAULT_COMMISSION", 5)
AUTO_APPROVE_DISHES = _flag("AUTO_APPROVE_DISHES", True)

# Shipping cost in BDT per delivery zone
SHIPPING_COSTS = {
    "inside-rangpur-city": 60.0,
    "rangpur-division": 100.0,
    "outside-rangpur": 150.0,
}

LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO")
PORT = int(os.getenv("PORT", 8000))
