import logging
from datetime import datetime, timedelta, timezone
from typing import Optional

from fastapi import Depends, Header, HTTPException
from jose import jwt, JWTError
from passlib.context import CryptContext

import config
from database import get_document_by_id

logger = logging.getLogger(__name__)

pwd_context = CryptContext(schemes=["bcrypt"], deprecated="auto")


def hash_password(password: str) -> str:
    return pwd_context.hash(password)


def verify_password(password: str, password_hash: Optional[str]) -> bool:
    if not password_hash:
        return False
    return pwd_context.verify(password, password_hash)


def create_token(user: dict) -> str:
    payload = {
        "sub": str(user["_id"]),
        "role": user.get("role", "buyer"),
        "exp": datetime.now(timezone.utc) + timedelta(days=config.JWT_EXPIRE_DAYS),
    }
    return jwt.encode(payload, config.JWT_SECRET, algorithm=config.JWT_ALG)


def public_user(user: dict) -> dict:
    """User document without credentials, safe to return to clients."""
    return {k: v for k, v in user.items() if k != "password_hash"}


def get_current_user(authorization: Optional[str] = Header(None)) -> dict:
    if not authorization:
        raise HTTPException(status_code=401, detail="Missing Authorization header")
    token = authorization.replace("Bearer ", "").strip()
    try:
        payload = jwt.decode(token, config.JWT_SECRET, algorithms=[config.JWT_ALG])
    except JWTError:
        raise HTTPException(status_code=401, detail="Invalid token")
    user = get_document_by_id("user", payload.get("sub"))
    if not user:
        raise HTTPException(status_code=401, detail="Invalid token user")
    return user


def require_roles(*roles: str):
    def dependency(user: dict = Depends(get_current_user)) -> dict:
        if user.get("role") not in roles:
            logger.info("User %s with role %s denied, needs one of %s", user["_id"], user.get("role"), roles)
            raise HTTPException(status_code=403, detail="Not allowed for your account type")
        return user
    return dependency


require_buyer = require_roles("buyer")
require_staff = require_roles("admin", "moderator")
require_admin = require_roles("admin")
require_seller = require_roles("seller")


def require_active_seller(user: dict = Depends(require_seller)) -> dict:
    if user.get("is_suspended"):
        raise HTTPException(status_code=403, detail="Your seller account is suspended. Contact an admin to reactivate it.")
    return user
