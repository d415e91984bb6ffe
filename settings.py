import logging
import os
import sys

DATABASE_URL = os.getenv("DATABASE_URL", "mongodb://localhost:27017")
DATABASE_NAME = os.getenv("DATABASE_NAME", "storefront")

SECRET_KEY = os.getenv("SECRET_KEY", "supersecretkey-change")
ALGORITHM = "HS256"
ACCESS_TOKEN_EXPIRE_MINUTES = int(os.getenv("ACCESS_TOKEN_EXPIRE_MINUTES", 60 * 24 * 14))
SESSION_COOKIE = "session"

# Hosted blob store; the local media directory is used when no token is set
BLOB_READ_WRITE_TOKEN = os.getenv("BLOB_READ_WRITE_TOKEN")
BLOB_API_URL = os.getenv("BLOB_API_URL", "https://blob.vercel-storage.com")
MEDIA_ROOT = os.getenv("MEDIA_ROOT", "media")
MEDIA_URL = os.getenv("MEDIA_URL", "/media")

STORE_NAME = os.getenv("STORE_NAME", "Mitra Buana Jaya Part")
STORE_TAGLINE = os.getenv("STORE_TAGLINE", "Solusi oli & sparepart premium")

LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO")


def setup_logging(level: str = LOG_LEVEL):
    """Configure the root logger once for the whole process."""
    root = logging.getLogger()
    root.setLevel(level.upper())
    if not root.handlers:
        handler = logging.StreamHandler(sys.stdout)
        handler.setFormatter(logging.Formatter("%(asctime)s %(levelname)s %(name)s %(message)s"))
        root.addHandler(handler)
