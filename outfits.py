import logging
from typing import Any, Optional

from fastapi import APIRouter, Depends
from pydantic import BaseModel
from pymongo import DESCENDING
from pymongo.database import Database

import config
from database import get_db, create_document, serialize
from errors import InvalidInput
from schemas import Outfit
from security import get_current_user

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/outfits")


class OutfitPayload(BaseModel):
    slots: Optional[Any] = None


def valid_slots(slots) -> bool:
    if not isinstance(slots, list) or len(slots) != config.OUTFIT_SLOTS:
        return False
    return all(s is None or (isinstance(s, str) and s) for s in slots)


@router.post("", status_code=201)
def save_outfit(payload: OutfitPayload, user: dict = Depends(get_current_user), db: Database = Depends(get_db)):
    if not valid_slots(payload.slots):
        raise InvalidInput("Invalid slots array")
    outfit_id = create_document(db, "outfit", Outfit(userId=user["uid"], slots=payload.slots))
    logger.info(f"Saved outfit {outfit_id} for user {user['uid']}")
    return {"message": "Outfit saved", "outfitId": outfit_id}


@router.get("")
def list_outfits(user: dict = Depends(get_current_user), db: Database = Depends(get_db)):
    return [serialize(o, "outfitId") for o in db["outfit"].find({"userId": user["uid"]}).sort("created_at", DESCENDING)]
