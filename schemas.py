"""
Database Schemas for the Thrift Marketplace

Each Pydantic model represents a MongoDB collection. Collection name is the lowercase of the class name.
"""
from typing import Optional, List, Literal, Dict
from pydantic import BaseModel, Field, EmailStr
from datetime import datetime

Role = Literal["customer", "storeOwner", "admin"]
ItemStatus = Literal["Available", "Reserved", "Sold", "Out of Stock"]
ReservationStatus = Literal["Pending", "Confirmed", "Sold", "Completed", "Cancelled"]


# Users collection
class User(BaseModel):
    name: str = Field(default="", max_length=100)
    email: EmailStr
    password_hash: Optional[str] = None
    role: Role = "customer"
    provider: Literal["password", "google"] = "password"
    firebase_uid: Optional[str] = None
    is_active: bool = True


# Stores collection
class Location(BaseModel):
    lat: float
    lng: float


class DayHours(BaseModel):
    open: str = "09:00"
    close: str = "17:00"
    closed: bool = False


class Store(BaseModel):
    ownerId: str
    storeName: str
    description: Optional[str] = None
    address: str
    location: Location
    profileImageURL: Optional[str] = None
    theme: str = "theme-default"
    hours: Optional[Dict[str, DayHours]] = None
    averageRating: float = 0
    reviewCount: int = 0


class ContactInfo(BaseModel):
    storeId: str
    type: Literal["email", "phone", "instagram", "facebook"]
    value: str = Field(..., min_length=1)


# Items collection
class ItemImage(BaseModel):
    imageId: str
    imageURL: str
    isPrimary: bool = False


class Item(BaseModel):
    storeId: str
    name: str = Field(..., min_length=1)
    description: Optional[str] = None
    category: Optional[str] = None
    style: Optional[str] = None
    department: Optional[str] = None
    size: Optional[str] = None
    price: float = Field(..., gt=0)
    quantity: int = Field(..., ge=0)
    status: ItemStatus = "Available"
    images: List[ItemImage] = Field(default_factory=list)


# One row per stored image so cleanup can run by item
class ItemImageRecord(ItemImage):
    itemId: str


class Reservation(BaseModel):
    itemId: str
    userId: str
    storeId: str
    itemName: Optional[str] = None
    status: ReservationStatus = "Pending"


class Review(BaseModel):
    reservationId: Optional[str] = None
    itemId: Optional[str] = None
    storeId: str
    userId: str
    rating: int = Field(..., ge=1, le=5)
    review: str = ""


# Chats use the sorted participant pair as their id
class Chat(BaseModel):
    participants: List[str]
    lastMessage: str
    lastTimestamp: datetime
    itemId: Optional[str] = None
    storeId: Optional[str] = None


class Message(BaseModel):
    chatId: str
    senderId: str
    receiverId: str
    message: str
    timestamp: datetime
    read: bool = False


class Outfit(BaseModel):
    userId: str
    slots: List[Optional[str]]


class ExternalImage(BaseModel):
    imageId: str
    imageURL: str
