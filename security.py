import logging
from datetime import datetime, timedelta, timezone
from typing import List, Optional, Dict

import firebase_admin
from fastapi import Depends
from fastapi.security import HTTPBearer, HTTPAuthorizationCredentials
from firebase_admin import auth as firebase_auth, credentials as firebase_credentials
from jose import jwt, JWTError
from passlib.context import CryptContext
from pymongo.database import Database

import config
from database import get_db, oid
from errors import Forbidden, NotFound, Unauthorized, ApiError

logger = logging.getLogger(__name__)

pwd_context = CryptContext(schemes=["bcrypt"], deprecated="auto")
auth_scheme = HTTPBearer(auto_error=False)

# Simple in-memory rate limiting for login (per-IP)
rate_store: Dict[str, List[float]] = {}


def check_rate_limit(ip: str):
    now = datetime.now().timestamp()
    bucket = rate_store.get(ip, [])
    # drop old timestamps
    bucket = [t for t in bucket if now - t <= config.RATE_LIMIT_WINDOW_SEC]
    if len(bucket) >= config.RATE_LIMIT_MAX_ATTEMPTS:
        raise ApiError("Too many login attempts. Please try again later.", status_code=429)
    bucket.append(now)
    rate_store[ip] = bucket


def create_access_token(data: dict, expires_minutes: int = config.TOKEN_EXPIRE_MIN):
    to_encode = data.copy()
    expire = datetime.now(timezone.utc) + timedelta(minutes=expires_minutes)
    to_encode.update({"exp": expire})
    return jwt.encode(to_encode, config.JWT_SECRET, algorithm=config.JWT_ALG)


def verify_password(plain: str, hashed: str) -> bool:
    return pwd_context.verify(plain, hashed)


def hash_password(password: str) -> str:
    return pwd_context.hash(password)


def public_user(doc: dict) -> dict:
    return {
        "uid": str(doc["_id"]),
        "name": doc.get("name"),
        "email": doc.get("email"),
        "role": doc.get("role"),
    }


class FirebaseTokenVerifier:
    """Verifies Google sign-in ID tokens issued through Firebase Authentication."""

    def __init__(self, credentials_path: Optional[str] = None):
        self.credentials_path = credentials_path

    def _app(self):
        if not firebase_admin._apps:
            if self.credentials_path:
                firebase_admin.initialize_app(firebase_credentials.Certificate(self.credentials_path))
            else:
                firebase_admin.initialize_app()
        return firebase_admin.get_app()

    def verify(self, id_token: str) -> dict:
        try:
            decoded = firebase_auth.verify_id_token(id_token, app=self._app())
        except (ValueError, firebase_auth.InvalidIdTokenError, firebase_auth.ExpiredIdTokenError,
                firebase_auth.RevokedIdTokenError, firebase_auth.CertificateFetchError) as e:
            logger.warning(f"Google token verification failed: {e}")
            raise Unauthorized("Unauthorized: Invalid token")
        return {
            "uid": decoded.get("uid"),
            "email": decoded.get("email"),
            "name": decoded.get("name", ""),
        }


def get_google_verifier() -> FirebaseTokenVerifier:
    return FirebaseTokenVerifier(config.FIREBASE_CREDENTIALS)


FIREBASE_TOKEN_ALG = "RS256"


def _token_alg(token: str) -> Optional[str]:
    try:
        return jwt.get_unverified_header(token).get("alg")
    except JWTError:
        return None


async def get_current_user(
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(auth_scheme),
    db: Database = Depends(get_db),
    verifier: FirebaseTokenVerifier = Depends(get_google_verifier),
) -> dict:
    """Resolve the caller from either an app-issued JWT or a Firebase ID token."""
    if credentials is None:
        raise Unauthorized("Unauthorized: No token provided")
    token = credentials.credentials

    if _token_alg(token) == FIREBASE_TOKEN_ALG:
        identity = verifier.verify(token)
        user = db["user"].find_one({"firebase_uid": identity["uid"]})
    else:
        try:
            payload = jwt.decode(token, config.JWT_SECRET, algorithms=[config.JWT_ALG])
            user_id: str = payload.get("sub")
            if user_id is None:
                raise Unauthorized("Unauthorized: Invalid token")
        except JWTError as e:
            logger.warning(f"Token verification failed: {e}")
            raise Unauthorized("Unauthorized: Invalid token")
        try:
            user = db["user"].find_one({"_id": oid(user_id)})
        except NotFound:
            user = None

    if not user or not user.get("is_active", True):
        raise Unauthorized("Unauthorized: Invalid token")
    user["uid"] = str(user.pop("_id"))
    user.pop("password_hash", None)
    return user


async def require_admin(user: dict = Depends(get_current_user)):
    if user.get("role") != "admin":
        raise Forbidden("Admin only")
    return user


async def require_store_owner(user: dict = Depends(get_current_user)):
    if user.get("role") != "storeOwner":
        raise Forbidden("User is not a store owner")
    return user


