import json
import logging
from typing import Optional, Dict

from fastapi import APIRouter, Depends, File, Form, UploadFile
from pydantic import BaseModel, ValidationError
from pymongo.database import Database

from database import get_db, create_document, oid, serialize, now_utc
from errors import InvalidInput, NotFound
from schemas import Store, Location, DayHours, ContactInfo
from security import get_current_user, require_store_owner
from storage import ImageStore, get_image_store

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api")

WEEKDAYS = ["monday", "tuesday", "wednesday", "thursday", "friday", "saturday", "sunday"]


def default_hours() -> Dict[str, dict]:
    hours = {day: DayHours().model_dump() for day in WEEKDAYS}
    hours["sunday"]["closed"] = True
    return hours


def store_out(doc: dict) -> dict:
    store = serialize(doc, "storeId")
    store.setdefault("theme", "theme-default")
    if not store.get("hours"):
        store["hours"] = default_hours()
    return store


def find_owner_store(db: Database, owner_id: str) -> Optional[dict]:
    return db["store"].find_one({"ownerId": owner_id})


def get_store_or_404(db: Database, store_id: str) -> dict:
    store = db["store"].find_one({"_id": oid(store_id, "Store not found")})
    if not store:
        raise NotFound("Store not found")
    return store


def _parse_json_field(raw: Optional[str], name: str):
    if raw is None:
        return None
    try:
        return json.loads(raw)
    except ValueError:
        raise InvalidInput(f"Invalid {name}")


# Stores
@router.get("/stores")
def list_stores(db: Database = Depends(get_db)):
    return [store_out(s) for s in db["store"].find()]


@router.get("/my-store")
def my_store(user: dict = Depends(get_current_user), db: Database = Depends(get_db)):
    store = find_owner_store(db, user["uid"])
    if not store:
        raise NotFound("Store not found. Please create a store.")
    return store_out(store)


@router.post("/stores")
def create_or_update_store(
    storeName: Optional[str] = Form(None),
    address: Optional[str] = Form(None),
    location: Optional[str] = Form(None),
    description: Optional[str] = Form(None),
    theme: Optional[str] = Form(None),
    hours: Optional[str] = Form(None),
    profileImage: Optional[UploadFile] = File(None),
    user: dict = Depends(require_store_owner),
    db: Database = Depends(get_db),
    images: ImageStore = Depends(get_image_store),
):
    if not storeName or not address or not location:
        raise InvalidInput("Missing required fields: storeName, address, location")
    try:
        loc = Location(**_parse_json_field(location, "location"))
        parsed_hours = _parse_json_field(hours, "hours")
        if parsed_hours is not None:
            parsed_hours = {day: DayHours(**h).model_dump() for day, h in parsed_hours.items()}
    except (TypeError, AttributeError, ValidationError):
        raise InvalidInput("Invalid location or hours")

    fields = {
        "storeName": storeName,
        "address": address,
        "location": loc.model_dump(),
    }
    if description is not None:
        fields["description"] = description
    if theme:
        fields["theme"] = theme
    if parsed_hours is not None:
        fields["hours"] = parsed_hours
    if profileImage is not None and profileImage.filename:
        fields["profileImageURL"] = images.upload(profileImage.file, "stores")["imageURL"]

    existing = find_owner_store(db, user["uid"])
    if existing:
        db["store"].update_one({"_id": existing["_id"]}, {"$set": {**fields, "updated_at": now_utc()}})
        logger.info(f"Updated store {existing['_id']} for owner {user['uid']}")
        return store_out(db["store"].find_one({"_id": existing["_id"]}))

    store = Store(ownerId=user["uid"], **fields)
    store_id = create_document(db, "store", store)
    logger.info(f"Created store {store_id} for owner {user['uid']}")
    return store_out(db["store"].find_one({"_id": oid(store_id)}))


@router.post("/stores/upload-image")
def upload_store_image(
    profileImage: Optional[UploadFile] = File(None),
    user: dict = Depends(get_current_user),
    images: ImageStore = Depends(get_image_store),
):
    if profileImage is None or not profileImage.filename:
        raise InvalidInput("No image provided")
    return {"imageURL": images.upload(profileImage.file, "stores")["imageURL"]}


# Contact infos
class ContactInfoPayload(BaseModel):
    type: Optional[str] = None
    value: Optional[str] = None


def _owner_store_or_404(db: Database, user: dict) -> dict:
    store = find_owner_store(db, user["uid"])
    if not store:
        raise NotFound("Store not found")
    return store


@router.get("/stores/contact-infos")
def list_contact_infos(user: dict = Depends(get_current_user), db: Database = Depends(get_db)):
    store = _owner_store_or_404(db, user)
    return [serialize(c) for c in db["contactinfo"].find({"storeId": str(store["_id"])})]


@router.post("/stores/contact-infos", status_code=201)
def add_contact_info(payload: ContactInfoPayload, user: dict = Depends(get_current_user),
                     db: Database = Depends(get_db)):
    if not payload.type or not payload.value:
        raise InvalidInput("Missing required fields: type, value")
    store = _owner_store_or_404(db, user)
    try:
        info = ContactInfo(storeId=str(store["_id"]), type=payload.type, value=payload.value)
    except ValidationError:
        raise InvalidInput("Invalid contact type")
    info_id = create_document(db, "contactinfo", info)
    return {"id": info_id, **info.model_dump()}


@router.delete("/stores/contact-infos/{contact_id}")
def delete_contact_info(contact_id: str, user: dict = Depends(get_current_user), db: Database = Depends(get_db)):
    store = _owner_store_or_404(db, user)
    res = db["contactinfo"].delete_one({"_id": oid(contact_id, "Contact info not found"), "storeId": str(store["_id"])})
    if res.deleted_count == 0:
        raise NotFound("Contact info not found")
    return {"message": "Contact info deleted successfully"}


# Registered after the static /stores/... routes of the other routers
@router.get("/stores/{store_id}")
def get_store(store_id: str, db: Database = Depends(get_db)):
    return store_out(get_store_or_404(db, store_id))
