import os
import logging

# Environment
ENVIRONMENT = os.getenv("ENVIRONMENT", "development")
PORT = int(os.getenv("PORT", 8000))
LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO").upper()

DATABASE_URL = os.getenv("DATABASE_URL", "mongodb://localhost:27017")
DATABASE_NAME = os.getenv("DATABASE_NAME", "thrift_marketplace")

JWT_SECRET = os.getenv("JWT_SECRET", "dev-secret")
JWT_ALG = "HS256"
TOKEN_EXPIRE_MIN = int(os.getenv("TOKEN_EXPIRE_MIN", "60"))

CLOUDINARY_CLOUD_NAME = os.getenv("CLOUDINARY_CLOUD_NAME")
CLOUDINARY_API_KEY = os.getenv("CLOUDINARY_API_KEY")
CLOUDINARY_API_SECRET = os.getenv("CLOUDINARY_API_SECRET")
CLOUDINARY_FOLDER = os.getenv("CLOUDINARY_FOLDER", "thrift-marketplace")

EXTERNAL_API_KEY = os.getenv("EXTERNAL_API_KEY")
FIREBASE_CREDENTIALS = os.getenv("FIREBASE_CREDENTIALS")

CORS_ORIGINS = [o.strip() for o in os.getenv("CORS_ORIGINS", "*").split(",") if o.strip()]

# Demo data seeding is off unless explicitly enabled; no admin is seeded without a password
SEED_ENABLED = os.getenv("SEED_ENABLED", "false").lower() in ("1", "true", "yes")
SEED_ADMIN_EMAIL = os.getenv("SEED_ADMIN_EMAIL", "admin@thrift.example.com")
SEED_ADMIN_PASSWORD = os.getenv("SEED_ADMIN_PASSWORD")

# Login rate limiting (per-IP)
RATE_LIMIT_WINDOW_SEC = 60 * 15  # 15 minutes
RATE_LIMIT_MAX_ATTEMPTS = 20

MAX_ITEM_IMAGES = 5
OUTFIT_SLOTS = 9
PLACEHOLDER_IMAGE_URL = "https://via.placeholder.com/150?text=No+Image"


def configure_logging():
    logging.basicConfig(
        level=getattr(logging, LOG_LEVEL, logging.INFO),
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
    )
