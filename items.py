import logging
import re
from typing import List, Optional

from bson import ObjectId
from fastapi import APIRouter, Depends, File, Form, Query, UploadFile
from pydantic import BaseModel, Field, ValidationError
from pymongo.database import Database

import config
from database import get_db, create_document, oid, serialize, now_utc
from errors import Forbidden, InvalidInput, NotFound, UpstreamFailure
from schemas import Item, ItemImage, ItemImageRecord
from security import get_current_user
from storage import ImageStore, get_image_store
from stores import find_owner_store, get_store_or_404

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api")


def primary_image_url(doc: dict) -> str:
    images = doc.get("images") or []
    if not images:
        return config.PLACEHOLDER_IMAGE_URL
    primary = next((img for img in images if img.get("isPrimary")), images[0])
    return primary.get("imageURL") or config.PLACEHOLDER_IMAGE_URL


def item_out(doc: dict) -> dict:
    item = serialize(doc, "itemId")
    item["primaryImageURL"] = primary_image_url(doc)
    return item


def get_item_or_404(db: Database, item_id: str) -> dict:
    item = db["item"].find_one({"_id": oid(item_id, "Item not found")})
    if not item:
        raise NotFound("Item not found")
    return item


def parse_price_quantity(price, quantity):
    try:
        price = float(price)
        quantity_f = float(quantity)
    except (TypeError, ValueError):
        raise InvalidInput("Price and quantity must be valid numbers")
    if price <= 0 or quantity_f < 0 or not quantity_f.is_integer():
        raise InvalidInput("Price and quantity must be valid numbers")
    return price, int(quantity_f)


def _present(files: Optional[List[UploadFile]]) -> List[UploadFile]:
    return [f for f in (files or []) if f is not None and f.filename]


def upload_item_images(db: Database, images: ImageStore, item_id: str, files: List[UploadFile],
                       existing: List[dict]) -> List[dict]:
    """Upload files for an item; the first image ever stored becomes the primary one."""
    if len(existing) + len(files) > config.MAX_ITEM_IMAGES:
        raise InvalidInput(f"Maximum {config.MAX_ITEM_IMAGES} images allowed")
    has_primary = any(img.get("isPrimary") for img in existing)
    added = []
    for f in files:
        stored = images.upload(f.file, "items")
        image = ItemImage(imageId=stored["imageId"], imageURL=stored["imageURL"], isPrimary=not has_primary)
        has_primary = True
        create_document(db, "itemimage", ItemImageRecord(itemId=item_id, **image.model_dump()))
        added.append(image.model_dump())
    return added


def _owned_item(db: Database, user: dict, item_id: str) -> dict:
    item = get_item_or_404(db, item_id)
    store = find_owner_store(db, user["uid"])
    if not store:
        raise Forbidden("Unauthorized: Store not found")
    if item.get("storeId") != str(store["_id"]):
        raise Forbidden("Unauthorized: You do not own this item")
    return item


def _creator_store(db: Database, user: dict) -> dict:
    store = find_owner_store(db, user["uid"]) if user.get("role") == "storeOwner" else None
    if not store:
        raise InvalidInput("Store not found")
    return store


def _insert_item(db: Database, store: dict, fields: dict, item_id: ObjectId, images: List[dict]) -> dict:
    try:
        item = Item(storeId=str(store["_id"]), images=images, **fields)
    except ValidationError as e:
        raise InvalidInput("Invalid item", details=str(e))
    create_document(db, "item", {"_id": item_id, **item.model_dump()})
    logger.info(f"Created item {item_id} in store {store['_id']}")
    return item_out(db["item"].find_one({"_id": item_id}))


# Reads
@router.get("/items")
def list_items(db: Database = Depends(get_db)):
    return [item_out(i) for i in db["item"].find()]


@router.get("/items/search")
def search_items(
    searchTerm: Optional[str] = None,
    category: Optional[str] = None,
    style: Optional[str] = None,
    department: Optional[str] = None,
    status: Optional[str] = "Available",
    minPrice: Optional[float] = Query(None, ge=0),
    maxPrice: Optional[float] = Query(None, ge=0),
    db: Database = Depends(get_db),
):
    filter_q = {}
    if category:
        filter_q["category"] = category
    if style:
        filter_q["style"] = style
    if department:
        filter_q["department"] = department
    if status and status.lower() != "all":
        filter_q["status"] = status
    if searchTerm:
        pattern = re.escape(searchTerm)
        filter_q["$or"] = [
            {"name": {"$regex": pattern, "$options": "i"}},
            {"description": {"$regex": pattern, "$options": "i"}},
        ]
    if minPrice is not None or maxPrice is not None:
        price_filter = {}
        if minPrice is not None:
            price_filter["$gte"] = float(minPrice)
        if maxPrice is not None:
            price_filter["$lte"] = float(maxPrice)
        filter_q["price"] = price_filter
    return [item_out(i) for i in db["item"].find(filter_q)]


@router.get("/items/{item_id}")
def get_item(item_id: str, db: Database = Depends(get_db)):
    return item_out(get_item_or_404(db, item_id))


@router.get("/stores/{store_id}/items")
def list_store_items(store_id: str, db: Database = Depends(get_db)):
    store = get_store_or_404(db, store_id)
    return [item_out(i) for i in db["item"].find({"storeId": str(store["_id"])})]


# Writes
class ItemPayload(BaseModel):
    name: Optional[str] = None
    price: Optional[float] = None
    quantity: Optional[float] = None
    description: Optional[str] = None
    category: Optional[str] = None
    style: Optional[str] = None
    department: Optional[str] = None
    size: Optional[str] = None
    images: List[str] = Field(default_factory=list)


@router.post("/items", status_code=201)
def create_item(payload: ItemPayload, user: dict = Depends(get_current_user), db: Database = Depends(get_db)):
    """Create a listing from images that are already hosted (URLs)."""
    if not payload.name or payload.price is None or payload.quantity is None:
        raise InvalidInput("Missing required fields: name, price, quantity")
    price, quantity = parse_price_quantity(payload.price, payload.quantity)
    store = _creator_store(db, user)
    if len(payload.images) > config.MAX_ITEM_IMAGES:
        raise InvalidInput(f"Maximum {config.MAX_ITEM_IMAGES} images allowed")

    item_id = ObjectId()
    images = []
    for i, url in enumerate(payload.images):
        image = ItemImage(imageId=str(ObjectId()), imageURL=url, isPrimary=(i == 0))
        create_document(db, "itemimage", ItemImageRecord(itemId=str(item_id), **image.model_dump()))
        images.append(image.model_dump())
    fields = payload.model_dump(exclude={"images", "price", "quantity"})
    fields.update(price=price, quantity=quantity)
    return _insert_item(db, store, fields, item_id, images)


@router.post("/stores/items", status_code=201)
def create_store_item(
    name: Optional[str] = Form(None),
    price: Optional[str] = Form(None),
    quantity: Optional[str] = Form(None),
    description: Optional[str] = Form(None),
    category: Optional[str] = Form(None),
    style: Optional[str] = Form(None),
    department: Optional[str] = Form(None),
    size: Optional[str] = Form(None),
    images: Optional[List[UploadFile]] = File(None),
    user: dict = Depends(get_current_user),
    db: Database = Depends(get_db),
    image_store: ImageStore = Depends(get_image_store),
):
    if not name or price is None or quantity is None:
        raise InvalidInput("Missing required fields: name, price, quantity")
    price_v, quantity_v = parse_price_quantity(price, quantity)
    store = _creator_store(db, user)
    files = _present(images)
    if len(files) > config.MAX_ITEM_IMAGES:
        raise InvalidInput(f"Maximum {config.MAX_ITEM_IMAGES} images allowed")

    item_id = ObjectId()
    stored = upload_item_images(db, image_store, str(item_id), files, [])
    fields = {
        "name": name,
        "price": price_v,
        "quantity": quantity_v,
        "description": description,
        "category": category,
        "style": style,
        "department": department,
        "size": size,
    }
    return _insert_item(db, store, fields, item_id, stored)


@router.put("/stores/items/{item_id}")
def update_item(
    item_id: str,
    name: Optional[str] = Form(None),
    price: Optional[str] = Form(None),
    quantity: Optional[str] = Form(None),
    description: Optional[str] = Form(None),
    category: Optional[str] = Form(None),
    style: Optional[str] = Form(None),
    department: Optional[str] = Form(None),
    size: Optional[str] = Form(None),
    images: Optional[List[UploadFile]] = File(None),
    user: dict = Depends(get_current_user),
    db: Database = Depends(get_db),
    image_store: ImageStore = Depends(get_image_store),
):
    item = _owned_item(db, user, item_id)
    updates = {k: v for k, v in {
        "name": name,
        "description": description,
        "category": category,
        "style": style,
        "department": department,
        "size": size,
    }.items() if v is not None}
    if name is not None and not name.strip():
        raise InvalidInput("Name cannot be empty")
    if price is not None or quantity is not None:
        new_price, new_quantity = parse_price_quantity(
            price if price is not None else item.get("price"),
            quantity if quantity is not None else item.get("quantity"),
        )
        updates["price"] = new_price
        updates["quantity"] = new_quantity
        # stock level drives Available <-> Out of Stock, never a reserved or sold item
        if new_quantity == 0 and item.get("status") == "Available":
            updates["status"] = "Out of Stock"
        elif new_quantity > 0 and item.get("status") == "Out of Stock":
            updates["status"] = "Available"

    files = _present(images)
    if files:
        existing = item.get("images") or []
        updates["images"] = existing + upload_item_images(db, image_store, item_id, files, existing)

    updates["updated_at"] = now_utc()
    db["item"].update_one({"_id": item["_id"]}, {"$set": updates})
    logger.info(f"Updated item {item_id}: {sorted(k for k in updates if k != 'updated_at')}")
    return item_out(db["item"].find_one({"_id": item["_id"]}))


@router.put("/stores/items/{item_id}/images")
def update_item_images(
    item_id: str,
    primaryImageId: Optional[str] = Form(None),
    images: Optional[List[UploadFile]] = File(None),
    user: dict = Depends(get_current_user),
    db: Database = Depends(get_db),
    image_store: ImageStore = Depends(get_image_store),
):
    item = _owned_item(db, user, item_id)
    current = list(item.get("images") or [])
    files = _present(images)
    if files:
        current = current + upload_item_images(db, image_store, item_id, files, current)
    if primaryImageId:
        if not any(img["imageId"] == primaryImageId for img in current):
            raise NotFound("Image not found")
        for img in current:
            img["isPrimary"] = img["imageId"] == primaryImageId
        db["itemimage"].update_many({"itemId": item_id}, {"$set": {"isPrimary": False}})
        db["itemimage"].update_one({"itemId": item_id, "imageId": primaryImageId}, {"$set": {"isPrimary": True}})
    db["item"].update_one({"_id": item["_id"]}, {"$set": {"images": current, "updated_at": now_utc()}})
    return item_out(db["item"].find_one({"_id": item["_id"]}))


@router.delete("/stores/items/{item_id}")
def delete_item(
    item_id: str,
    user: dict = Depends(get_current_user),
    db: Database = Depends(get_db),
    image_store: ImageStore = Depends(get_image_store),
):
    item = _owned_item(db, user, item_id)
    image_ids = {row["imageId"] for row in db["itemimage"].find({"itemId": item_id})}
    image_ids.update(img["imageId"] for img in item.get("images") or [])
    for image_id in image_ids:
        try:
            image_store.delete(image_id)
        except UpstreamFailure as e:
            logger.warning(f"Could not delete image {image_id} of item {item_id}: {e.details}")
    db["itemimage"].delete_many({"itemId": item_id})
    db["item"].delete_one({"_id": item["_id"]})
    logger.info(f"Deleted item {item_id} with {len(image_ids)} images")
    return {"message": "Item deleted successfully"}
