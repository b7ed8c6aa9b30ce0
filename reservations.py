"""
Reservation and review workflow

A reservation moves Pending -> (Confirmed) -> Sold -> Completed, or ends in
Cancelled while the store still holds it. Each status change is a single
conditional update on the reservation (or, for a new reservation, on the
item), so two requests racing on the same document cannot both apply. Writes
that touch a second collection (item status, chat, store rating) follow as
independent writes; a failure between them is not rolled back.
"""
import logging
from decimal import Decimal, ROUND_HALF_UP
from typing import Optional

from fastapi import APIRouter, Depends
from pydantic import BaseModel
from pymongo import DESCENDING, ReturnDocument
from pymongo.database import Database

from chats import send_message, display_name
from database import get_db, create_document, oid, serialize, now_utc
from errors import Forbidden, InvalidInput, InvalidState, InvalidStore, NotFound
from items import get_item_or_404, primary_image_url
from schemas import Reservation, Review
from security import get_current_user
from stores import find_owner_store, get_store_or_404

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/stores")

# target status -> statuses a store owner may move it from
OWNER_TRANSITIONS = {
    "Confirmed": ("Pending",),
    "Sold": ("Pending", "Confirmed"),
    "Cancelled": ("Pending", "Confirmed"),
}
# item status that follows a reservation status
ITEM_STATUS_AFTER = {
    "Sold": "Sold",
    "Cancelled": "Available",
}


def reservation_out(doc: dict) -> dict:
    return serialize(doc, "reservationId")


def get_reservation_or_404(db: Database, reservation_id: str) -> dict:
    reservation = db["reservation"].find_one({"_id": oid(reservation_id, "Reservation not found")})
    if not reservation:
        raise NotFound("Reservation not found")
    return reservation


def reserve_item(db: Database, user: dict, item_id: str, store_id: str) -> dict:
    item = get_item_or_404(db, item_id)
    if item.get("status") != "Available":
        raise InvalidState("Item not available")
    if item.get("storeId") != store_id:
        raise InvalidStore("Invalid store")
    store = db["store"].find_one({"_id": oid(store_id, "Store not found")})
    owner_id = store.get("ownerId") if store else None
    if owner_id == user["uid"]:
        raise Forbidden("Cannot reserve an item from your own store")

    claimed = db["item"].find_one_and_update(
        {"_id": item["_id"], "status": "Available", "storeId": store_id},
        {"$set": {"status": "Reserved", "updated_at": now_utc()}},
    )
    if claimed is None:
        # another reservation won the race
        raise InvalidState("Item not available")

    reservation = Reservation(itemId=item_id, userId=user["uid"], storeId=store_id, itemName=item.get("name"))
    reservation_id = create_document(db, "reservation", reservation)
    logger.info(f"Reservation {reservation_id}: user {user['uid']} reserved item {item_id}")

    result = {"message": "Item reserved successfully", "reservationId": reservation_id,
              "chatId": None, "messageId": None}
    if owner_id:
        text = f"Hi! I've reserved your item \"{item.get('name')}\". When can I collect it?"
        chat_id, message = send_message(db, user["uid"], owner_id, text, item_id, store_id)
        result.update(chatId=chat_id, messageId=message["messageId"])
    return result


def update_reservation_status(db: Database, user: dict, reservation_id: str, status: Optional[str]) -> dict:
    if status not in OWNER_TRANSITIONS:
        raise InvalidInput("Invalid status")
    store = find_owner_store(db, user["uid"])
    if not store:
        raise Forbidden("User is not a store owner")
    reservation = get_reservation_or_404(db, reservation_id)
    if reservation.get("storeId") != str(store["_id"]):
        raise Forbidden("Unauthorized to update this reservation")
    allowed_from = OWNER_TRANSITIONS[status]
    current = reservation.get("status")
    if current not in allowed_from:
        raise InvalidState(f"Cannot change reservation from {current} to {status}")

    item = None
    if status in ITEM_STATUS_AFTER:
        try:
            item = db["item"].find_one({"_id": oid(reservation.get("itemId"), "Item not found")})
        except NotFound:
            item = None
        # a deleted item can still have its hold released, but never be sold
        if not item and status == "Sold":
            raise NotFound("Item not found")

    updated = db["reservation"].find_one_and_update(
        {"_id": reservation["_id"], "status": {"$in": list(allowed_from)}},
        {"$set": {"status": status, "updated_at": now_utc()}},
        return_document=ReturnDocument.AFTER,
    )
    if updated is None:
        raise InvalidState(f"Cannot change reservation from {current} to {status}")
    if item is not None:
        db["item"].update_one(
            {"_id": item["_id"]},
            {"$set": {"status": ITEM_STATUS_AFTER[status], "updated_at": now_utc()}},
        )
    logger.info(f"Reservation {reservation_id}: {current} -> {status}")
    return reservation_out(updated)


def round_rating(value: float) -> float:
    return float(Decimal(str(value)).quantize(Decimal("0.1"), rounding=ROUND_HALF_UP))


def update_store_rating(db: Database, store_id: str) -> dict:
    """Recompute a store's average rating and review count from all of its reviews."""
    ratings = [r["rating"] for r in db["review"].find({"storeId": store_id}, {"rating": 1})]
    average = round_rating(sum(ratings) / len(ratings)) if ratings else 0
    summary = {"averageRating": average, "reviewCount": len(ratings)}
    db["store"].update_one({"_id": oid(store_id, "Store not found")}, {"$set": {**summary, "updated_at": now_utc()}})
    return summary


def confirm_reservation(db: Database, user: dict, reservation_id: str) -> dict:
    reservation = get_reservation_or_404(db, reservation_id)
    if reservation.get("userId") != user["uid"]:
        raise Forbidden("Unauthorized to confirm this reservation")
    if reservation.get("status") != "Sold":
        raise InvalidState("Can only confirm sold items")
    updated = db["reservation"].find_one_and_update(
        {"_id": reservation["_id"], "status": "Sold"},
        {"$set": {"status": "Completed", "updated_at": now_utc()}},
    )
    if updated is None:
        raise InvalidState("Can only confirm sold items")
    summary = update_store_rating(db, reservation["storeId"])
    logger.info(f"Reservation {reservation_id} completed; store {reservation['storeId']} rating {summary}")
    return summary


class ReviewPayload(BaseModel):
    reservationId: Optional[str] = None
    storeId: Optional[str] = None
    itemId: Optional[str] = None
    rating: Optional[int] = None
    review: Optional[str] = None


def create_review(db: Database, user: dict, payload: ReviewPayload) -> dict:
    if not payload.storeId or payload.rating is None:
        raise InvalidInput("Missing required fields: storeId, rating")
    if not 1 <= payload.rating <= 5:
        raise InvalidInput("Rating must be between 1 and 5")
    if not payload.reservationId:
        raise InvalidInput("Missing required fields: reservationId")
    get_store_or_404(db, payload.storeId)
    reservation = get_reservation_or_404(db, payload.reservationId)
    if reservation.get("userId") != user["uid"]:
        raise Forbidden("Unauthorized to review this reservation")
    if reservation.get("storeId") != payload.storeId:
        raise InvalidInput("Reservation does not belong to this store")
    if reservation.get("status") != "Sold":
        raise InvalidState("Can only review sold items")
    if db["review"].find_one({"reservationId": payload.reservationId}):
        raise InvalidState("Reservation already reviewed")

    review = Review(
        reservationId=payload.reservationId,
        itemId=payload.itemId or reservation.get("itemId"),
        storeId=payload.storeId,
        userId=user["uid"],
        rating=payload.rating,
        review=payload.review or "",
    )
    review_id = create_document(db, "review", review)
    logger.info(f"Review {review_id} ({review.rating}/5) for store {review.storeId}")
    return serialize(db["review"].find_one({"_id": oid(review_id)}), "reviewId")


# Routes
class ReservePayload(BaseModel):
    storeId: Optional[str] = None


class ReservationPayload(BaseModel):
    itemId: Optional[str] = None
    storeId: Optional[str] = None


class StatusPayload(BaseModel):
    status: Optional[str] = None


@router.put("/reserve/{item_id}")
def customer_reserve(item_id: str, payload: ReservePayload, user: dict = Depends(get_current_user),
                     db: Database = Depends(get_db)):
    if not payload.storeId:
        raise InvalidInput("Missing required fields: storeId")
    return reserve_item(db, user, item_id, payload.storeId)


@router.post("/reservations", status_code=201)
def create_reservation(payload: ReservationPayload, user: dict = Depends(get_current_user),
                       db: Database = Depends(get_db)):
    if not payload.itemId or not payload.storeId:
        raise InvalidInput("Missing required fields")
    return reserve_item(db, user, payload.itemId, payload.storeId)


@router.get("/reservations")
def list_reservations(user: dict = Depends(get_current_user), db: Database = Depends(get_db)):
    if user.get("role") == "storeOwner":
        store = find_owner_store(db, user["uid"])
        if not store:
            return []
        filter_q = {"storeId": str(store["_id"])}
    else:
        filter_q = {"userId": user["uid"]}
    out = []
    for r in db["reservation"].find(filter_q).sort("created_at", DESCENDING):
        entry = reservation_out(r)
        try:
            item = db["item"].find_one({"_id": oid(r.get("itemId"))})
        except NotFound:
            item = None
        if item:
            entry["itemName"] = item.get("name")
            entry["price"] = item.get("price")
            entry["primaryImageURL"] = primary_image_url(item)
        out.append(entry)
    return out


@router.put("/reservations/{reservation_id}")
def set_reservation_status(reservation_id: str, payload: StatusPayload, user: dict = Depends(get_current_user),
                           db: Database = Depends(get_db)):
    return update_reservation_status(db, user, reservation_id, payload.status)


@router.put("/reservations/{reservation_id}/confirm")
def confirm(reservation_id: str, user: dict = Depends(get_current_user), db: Database = Depends(get_db)):
    confirm_reservation(db, user, reservation_id)
    return {"message": "Reservation confirmed successfully"}


@router.post("/reviews", status_code=201)
def post_review(payload: ReviewPayload, user: dict = Depends(get_current_user), db: Database = Depends(get_db)):
    review = create_review(db, user, payload)
    return {"message": "Review created successfully", "review": review}


@router.get("/{store_id}/reviews")
def store_reviews(store_id: str, db: Database = Depends(get_db)):
    reviews = []
    for r in db["review"].find({"storeId": store_id}).sort("created_at", DESCENDING):
        entry = serialize(r, "reviewId")
        entry["userName"] = display_name(db, r.get("userId", "")) or "Anonymous"
        item = None
        if r.get("itemId"):
            try:
                item = db["item"].find_one({"_id": oid(r["itemId"])})
            except NotFound:
                item = None
        entry["itemName"] = item.get("name") if item else None
        reviews.append(entry)
    return reviews
