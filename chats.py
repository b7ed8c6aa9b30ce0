import logging
from typing import Optional, Tuple

from fastapi import APIRouter, Depends
from pydantic import BaseModel
from pymongo import ASCENDING, DESCENDING
from pymongo.database import Database

from database import get_db, create_document, serialize, now_utc, oid
from errors import Forbidden, InvalidInput, NotFound
from schemas import Message
from security import get_current_user

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/stores")


def chat_id_for(uid_a: str, uid_b: str) -> str:
    return "_".join(sorted([uid_a, uid_b]))


def display_name(db: Database, uid: str) -> Optional[str]:
    try:
        user = db["user"].find_one({"_id": oid(uid)})
    except NotFound:
        return None
    return user.get("name") if user else None


def send_message(db: Database, sender_id: str, receiver_id: str, text: str,
                 item_id: Optional[str] = None, store_id: Optional[str] = None) -> Tuple[str, dict]:
    """Store a message and refresh the chat's denormalised last-message fields."""
    chat_id = chat_id_for(sender_id, receiver_id)
    timestamp = now_utc()
    message = Message(chatId=chat_id, senderId=sender_id, receiverId=receiver_id, message=text, timestamp=timestamp)
    message_id = create_document(db, "message", message)

    chat_fields = {
        "participants": sorted([sender_id, receiver_id]),
        "lastMessage": text,
        "lastTimestamp": timestamp,
        "updated_at": timestamp,
    }
    if item_id:
        chat_fields["itemId"] = item_id
    if store_id:
        chat_fields["storeId"] = store_id
    db["chat"].update_one(
        {"_id": chat_id},
        {"$set": chat_fields, "$setOnInsert": {"created_at": timestamp}},
        upsert=True,
    )
    return chat_id, {"messageId": message_id, **serialize(message.model_dump())}


class MessagePayload(BaseModel):
    receiverId: Optional[str] = None
    message: Optional[str] = None
    itemId: Optional[str] = None
    storeId: Optional[str] = None


def _validated(payload: MessagePayload, user: dict) -> str:
    text = (payload.message or "").strip()
    if not payload.receiverId or not text:
        raise InvalidInput("Missing receiverId or message")
    if payload.receiverId == user["uid"]:
        raise InvalidInput("Cannot message yourself")
    return text


@router.get("/chats")
def list_chats(user: dict = Depends(get_current_user), db: Database = Depends(get_db)):
    uid = user["uid"]
    chats = []
    for chat in db["chat"].find({"participants": uid}).sort("lastTimestamp", DESCENDING):
        other_id = next((p for p in chat.get("participants", []) if p != uid), uid)
        out = serialize(chat, "chatId")
        out["otherId"] = other_id
        out["otherName"] = display_name(db, other_id) or "Unknown"
        chats.append(out)
    return chats


@router.post("/chats", status_code=201)
def create_chat(payload: MessagePayload, user: dict = Depends(get_current_user), db: Database = Depends(get_db)):
    text = _validated(payload, user)
    chat_id, message = send_message(db, user["uid"], payload.receiverId, text, payload.itemId, payload.storeId)
    return {"chatId": chat_id, "messageId": message["messageId"]}


@router.get("/chats/{chat_id}/messages")
def list_messages(chat_id: str, user: dict = Depends(get_current_user), db: Database = Depends(get_db)):
    chat = db["chat"].find_one({"_id": chat_id})
    if not chat:
        raise NotFound("Chat not found")
    if user["uid"] not in chat.get("participants", []):
        raise Forbidden("Unauthorized to view this chat")
    return [serialize(m, "messageId") for m in db["message"].find({"chatId": chat_id}).sort("timestamp", ASCENDING)]


@router.post("/messages", status_code=201)
def post_message(payload: MessagePayload, user: dict = Depends(get_current_user), db: Database = Depends(get_db)):
    text = _validated(payload, user)
    _, message = send_message(db, user["uid"], payload.receiverId, text, payload.itemId, payload.storeId)
    return message


@router.put("/chats/{chat_id}/read")
def mark_as_read(chat_id: str, user: dict = Depends(get_current_user), db: Database = Depends(get_db)):
    res = db["message"].update_many(
        {"chatId": chat_id, "receiverId": user["uid"], "read": False},
        {"$set": {"read": True, "updated_at": now_utc()}},
    )
    return {"message": "Messages marked as read", "updated": res.modified_count}
