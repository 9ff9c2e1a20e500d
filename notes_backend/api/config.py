"""Runtime settings read from the environment (and a local .env file)."""
import logging
import os
from typing import List, Optional

from dotenv import load_dotenv

load_dotenv()

# JWT settings
SECRET_KEY = os.getenv("SECRET_KEY", "temporary_dev_secret")
ALGORITHM = os.getenv("JWT_ALGORITHM", "HS256")
ACCESS_TOKEN_EXPIRE_MINUTES = int(os.getenv("JWT_ACCESS_TOKEN_EXPIRE_MINUTES", 60 * 24))

# File storage roots, resolved and created when the storage is built at startup
AVATAR_UPLOAD_DIR = os.getenv("AVATAR_UPLOAD_DIR", "uploads/avatars")
ATTACHMENT_UPLOAD_DIR = os.getenv("ATTACHMENT_UPLOAD_DIR", "uploads/attachments")
MAX_UPLOAD_BYTES = int(os.getenv("MAX_UPLOAD_BYTES", 10 * 1024 * 1024))

# Public URL prefix that maps onto the avatar storage root
AVATAR_URL_PREFIX = "/uploads/avatars/"

LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO")


def _split_origins(raw: str) -> List[str]:
    return [origin.strip() for origin in raw.split(",") if origin.strip()]


CORS_ALLOWED_ORIGINS = _split_origins(
    os.getenv(
        "CORS_ALLOWED_ORIGINS",
        "http://localhost:3000,http://localhost:8081,http://localhost:8080",
    )
)


# PUBLIC_INTERFACE
def configure_logging(level: Optional[str] = None) -> None:
    """Install the process-wide log format at LOG_LEVEL (or ``level``)."""
    logging.basicConfig(
        level=(level or LOG_LEVEL).upper(),
        format="%(asctime)s %(levelname)s [%(name)s] %(message)s",
    )
