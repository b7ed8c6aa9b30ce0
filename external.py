import logging
from typing import Optional

from fastapi import APIRouter, Depends, File, Header, UploadFile
from pymongo.database import Database

import config
from database import get_db, create_document, serialize
from errors import InvalidInput, Unauthorized
from schemas import ExternalImage
from storage import ImageStore, get_image_store
from stores import store_out

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/external")


def require_api_key(x_api_key: Optional[str] = Header(None)):
    if not x_api_key or not config.EXTERNAL_API_KEY or x_api_key != config.EXTERNAL_API_KEY:
        raise Unauthorized("Invalid or missing API key")


@router.get("/stores")
def thrift_stores(db: Database = Depends(get_db)):
    return [store_out(s) for s in db["store"].find()]


@router.post("/upload", dependencies=[Depends(require_api_key)], status_code=201)
def upload_photo(
    image: Optional[UploadFile] = File(None),
    db: Database = Depends(get_db),
    images: ImageStore = Depends(get_image_store),
):
    if image is None or not image.filename:
        raise InvalidInput("No image provided")
    stored = images.upload(image.file, "external")
    create_document(db, "externalimage", ExternalImage(**stored))
    logger.info(f"External upload stored as {stored['imageId']}")
    return stored


@router.get("/photos", dependencies=[Depends(require_api_key)])
def photos(db: Database = Depends(get_db)):
    return [serialize(p) for p in db["externalimage"].find()]
