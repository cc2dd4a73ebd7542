import os

from dotenv import load_dotenv

load_dotenv()

DATABASE_URL = os.getenv("DATABASE_URL")
DATABASE_NAME = os.getenv("DATABASE_NAME")

# -------------------- Auth -------------------- #
SECRET_KEY = os.getenv("JWT_SECRET", "dev-secret-key-change-me")
ALGORITHM = os.getenv("JWT_ALGORITHM", "HS256")
ACCESS_TOKEN_EXPIRE_MINUTES = int(os.getenv("ACCESS_TOKEN_EXPIRE_MINUTES", 60 * 24))
# How long a role resolved at login may be trusted before it is looked up again
ROLE_CACHE_TTL_SECONDS = int(os.getenv("ROLE_CACHE_TTL_SECONDS", 300))

# Multi-document transactions need a replica set
MONGO_TRANSACTIONS = os.getenv("MONGO_TRANSACTIONS", "false").lower() in ("1", "true", "yes")

MAX_IMAGE_BYTES = int(os.getenv("MAX_IMAGE_BYTES", 2 * 1024 * 1024))

INSTITUTION_CODE = os.getenv("INSTITUTION_CODE", "GVPCEW")
INSTITUTION_NAME = os.getenv(
    "INSTITUTION_NAME", "Gayatri Vidya Parishad College of Engineering for Women"
)

CORS_ORIGINS = [o.strip() for o in os.getenv("CORS_ORIGINS", "*").split(",") if o.strip()]
LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO").upper()
