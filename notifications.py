from typing import List, Optional

from fastapi import HTTPException

from database import create_document, create_documents, get_documents, get_document_by_id, update_document, update_documents
from schemas import Notification


def notify(user_id: str, message: str, type: str, order_id: Optional[str] = None,
           dish_id: Optional[str] = None, session=None) -> str:
    note = Notification(user_id=user_id, message=message, type=type, order_id=order_id, dish_id=dish_id)
    return create_document("notification", note, session=session)


def notify_many(user_ids: List[str], message: str, type: str, order_id: Optional[str] = None,
                dish_id: Optional[str] = None, session=None) -> List[str]:
    """Fan the same message out to many users in one bulk insert."""
    notes = [
        Notification(user_id=user_id, message=message, type=type, order_id=order_id, dish_id=dish_id)
        for user_id in user_ids
    ]
    return create_documents("notification", notes, session=session)


def list_notifications(user_id: str, unread_only: bool = False, limit: Optional[int] = None) -> List[dict]:
    filt = {"user_id": user_id}
    if unread_only:
        filt["is_read"] = False
    return get_documents("notification", filt, limit=limit, sort=[("created_at", -1)])


def mark_read(user_id: str, notification_id: str) -> None:
    note = get_document_by_id("notification", notification_id)
    if not note or note["user_id"] != user_id:
        raise HTTPException(404, "Notification not found")
    update_document("notification", notification_id, {"is_read": True})


def mark_all_read(user_id: str) -> int:
    return update_documents("notification", {"user_id": user_id, "is_read": False}, {"is_read": True})
