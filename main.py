import logging
from typing import Optional

from fastapi import FastAPI, Depends, Request
from fastapi.middleware.cors import CORSMiddleware
from pydantic import BaseModel, EmailStr
from pymongo.database import Database

import config
from database import get_db, create_document, get_documents, oid
from errors import register_error_handlers, InvalidInput, Forbidden, NotFound, Unauthorized
from schemas import User, Store, Item, Location
from security import (
    check_rate_limit, create_access_token, verify_password, hash_password, public_user,
    get_current_user, require_admin, get_google_verifier, FirebaseTokenVerifier,
)
import chats
import external
import items
import outfits
import reservations
import stores

config.configure_logging()
logger = logging.getLogger(__name__)

app = FastAPI(title="Thrift Marketplace API")

app.add_middleware(
    CORSMiddleware,
    allow_origins=config.CORS_ORIGINS,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)
register_error_handlers(app)

# stores.router last: its /stores/{store_id} would shadow the static /stores/... paths
app.include_router(items.router)
app.include_router(reservations.router)
app.include_router(chats.router)
app.include_router(outfits.router)
app.include_router(external.router)
app.include_router(stores.router)

SIGNUP_ROLES = ("customer", "storeOwner")


# Health checks
@app.get("/")
def root():
    return {"message": "Thrift Marketplace API running"}


@app.get("/test")
def test_database(db: Database = Depends(get_db)):
    response = {
        "backend": "✅ Running",
        "database": "❌ Not Available",
        "database_url": "✅ Set" if config.DATABASE_URL else "❌ Not Set",
        "database_name": None,
        "connection_status": "Not Connected",
        "collections": []
    }
    try:
        response["database"] = "✅ Available"
        response["database_name"] = db.name
        response["connection_status"] = "Connected"
        response["collections"] = db.list_collection_names()
    except Exception as e:
        response["database"] = f"❌ Error: {str(e)[:100]}"
    return response


# Auth models
class SignupPayload(BaseModel):
    name: str = ""
    email: EmailStr
    password: str
    role: Optional[str] = None


class GoogleSignupPayload(BaseModel):
    idToken: Optional[str] = None
    role: Optional[str] = None


class LoginPayload(BaseModel):
    email: EmailStr
    password: str


def _auth_response(user_id: str, user: User, message: str) -> dict:
    token = create_access_token({"sub": user_id, "role": user.role})
    return {
        "success": True,
        "uid": user_id,
        "email": user.email,
        "role": user.role,
        "token": token,
        "message": message,
    }


@app.post("/api/auth/signup", status_code=201)
def signup(payload: SignupPayload, db: Database = Depends(get_db)):
    if payload.role not in SIGNUP_ROLES:
        raise InvalidInput("Invalid role")
    if len(payload.password) < 6:
        raise InvalidInput("Password must be at least 6 characters")
    if db["user"].find_one({"email": payload.email}):
        raise InvalidInput("Email already registered")
    user = User(
        name=payload.name,
        email=payload.email,
        password_hash=hash_password(payload.password),
        role=payload.role,
    )
    user_id = create_document(db, "user", user)
    logger.info(f"User {user_id} signed up as {user.role}")
    return _auth_response(user_id, user, "User created successfully")


@app.post("/api/auth/signup/google")
def google_signup(
    payload: GoogleSignupPayload,
    db: Database = Depends(get_db),
    verifier: FirebaseTokenVerifier = Depends(get_google_verifier),
):
    if payload.role not in SIGNUP_ROLES:
        raise InvalidInput("Invalid role")
    if not payload.idToken:
        raise Unauthorized("Unauthorized: No token provided")
    identity = verifier.verify(payload.idToken)
    doc = db["user"].find_one({"firebase_uid": identity["uid"]})
    if doc is None and identity.get("email"):
        doc = db["user"].find_one({"email": identity["email"]})
    if doc is not None:
        if not doc.get("firebase_uid"):
            db["user"].update_one({"_id": doc["_id"]}, {"$set": {"firebase_uid": identity["uid"]}})
        user = User(**{k: v for k, v in doc.items() if k in User.model_fields})
        return _auth_response(str(doc["_id"]), user, "Google signup successful")
    if not identity.get("email"):
        raise InvalidInput("Google account has no email address")
    user = User(
        name=identity.get("name") or "",
        email=identity["email"],
        role=payload.role,
        provider="google",
        firebase_uid=identity["uid"],
    )
    user_id = create_document(db, "user", user)
    logger.info(f"User {user_id} signed up with Google as {user.role}")
    return _auth_response(user_id, user, "Google signup successful")


@app.post("/api/auth/login")
def login(payload: LoginPayload, request: Request, db: Database = Depends(get_db)):
    # Rate limit per IP
    ip = request.client.host if request.client else "unknown"
    check_rate_limit(ip)

    doc = db["user"].find_one({"email": payload.email})
    if not doc or not doc.get("password_hash") or not verify_password(payload.password, doc["password_hash"]):
        logger.warning(f"Failed login for {payload.email} from {ip}")
        raise Unauthorized("Invalid credentials")
    token = create_access_token({"sub": str(doc["_id"]), "role": doc.get("role", "customer")})
    return {"token": token, "user": public_user(doc)}


@app.post("/api/auth/getRole")
def get_role(user: dict = Depends(get_current_user)):
    return {"role": user.get("role")}


@app.get("/api/auth/user")
def current_user(user: dict = Depends(get_current_user)):
    return {"uid": user["uid"], "name": user.get("name"), "email": user.get("email"), "role": user.get("role")}


# Users
@app.get("/api/users", dependencies=[Depends(require_admin)])
def list_users(db: Database = Depends(get_db)):
    return [public_user(u) for u in get_documents(db, "user")]


@app.get("/api/users/{user_id}")
def get_user(user_id: str, user: dict = Depends(get_current_user), db: Database = Depends(get_db)):
    doc = db["user"].find_one({"_id": oid(user_id, "User not found")})
    if not doc:
        raise NotFound("User not found")
    return {"uid": str(doc["_id"]), "email": doc.get("email"), "displayName": doc.get("name"), "role": doc.get("role")}


# Seed demo data
@app.post("/api/seed")
def seed(db: Database = Depends(get_db)):
    if not config.SEED_ENABLED or config.ENVIRONMENT == "production":
        raise Forbidden("Seeding is disabled")
    from faker import Faker
    fake = Faker()
    created = {"users": 0, "stores": 0, "items": 0}
    # Admin only when a password is configured
    if config.SEED_ADMIN_PASSWORD and not db["user"].find_one({"role": "admin"}):
        admin = User(name="Admin", email=config.SEED_ADMIN_EMAIL,
                     password_hash=hash_password(config.SEED_ADMIN_PASSWORD), role="admin")
        create_document(db, "user", admin)
        created["users"] += 1
    existing_owners = db["user"].count_documents({"role": "storeOwner"})
    for _ in range(max(0, 3 - existing_owners)):
        owner = User(name=fake.name(), email=fake.unique.email(),
                     password_hash=hash_password(fake.password(length=16)), role="storeOwner")
        owner_id = create_document(db, "user", owner)
        created["users"] += 1
        store = Store(
            ownerId=owner_id,
            storeName=f"{fake.last_name()} Thrift",
            description=fake.sentence(),
            address=fake.address().replace("\n", ", "),
            location=Location(lat=float(fake.latitude()), lng=float(fake.longitude())),
        )
        store_id = create_document(db, "store", store)
        created["stores"] += 1
        for _ in range(5):
            item = Item(
                storeId=store_id,
                name=fake.color_name() + " " + fake.random_element(["Jacket", "Jeans", "Dress", "Shirt", "Boots"]),
                description=fake.sentence(),
                category=fake.random_element(["Tops", "Bottoms", "Outerwear", "Footwear"]),
                style=fake.random_element(["streetwear", "vintage", "casual", "formal"]),
                department=fake.random_element(["mens", "womens"]),
                size=fake.random_element(["S", "M", "L", "XL"]),
                price=round(fake.pyfloat(min_value=5, max_value=120), 2),
                quantity=fake.random_int(min=1, max=3),
            )
            create_document(db, "item", item)
            created["items"] += 1
    return {"created": created}


if __name__ == "__main__":
    import uvicorn
    uvicorn.run(app, host="0.0.0.0", port=config.PORT)
