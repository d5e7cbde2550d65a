"""JWT signing keys: rotation and the process-wide cache of the current key."""
import secrets
import threading
from typing import List, Optional

import structlog
from sqlalchemy import func, select
from sqlalchemy.orm import Session

from . import models
from .errors import AuthError

logger = structlog.get_logger(__name__)

# Tokens signed with the previous key stay valid until the next rotation
VERIFY_DEPTH = 2


def generate_secret() -> str:
    return secrets.token_hex(32)  # 256-bit


def latest_key(db: Session) -> Optional[models.JwtSecret]:
    stmt = select(models.JwtSecret).order_by(models.JwtSecret.version.desc()).limit(1)
    return db.scalars(stmt).first()


def verification_keys(db: Session) -> List[models.JwtSecret]:
    stmt = select(models.JwtSecret).order_by(models.JwtSecret.version.desc()).limit(VERIFY_DEPTH)
    return list(db.scalars(stmt))


class KeyCache:
    """Current signing key, loaded from the database on first use.

    Stays cached until ``invalidate()``; ``rotate_key`` calls it.
    """

    def __init__(self):
        self._lock = threading.Lock()
        self._key: Optional[str] = None
        self._version: Optional[int] = None

    def get(self, db: Session) -> tuple[str, int]:
        with self._lock:
            if self._key is None:
                latest = latest_key(db)
                if latest is None:
                    raise AuthError("JWT secret not found.")
                self._key, self._version = latest.key, latest.version
            return self._key, self._version

    def invalidate(self):
        with self._lock:
            self._key = None
            self._version = None

    @property
    def loaded(self) -> bool:
        return self._key is not None


key_cache = KeyCache()


def rotate_key(db: Session) -> models.JwtSecret:
    current = db.scalar(select(func.max(models.JwtSecret.version)))
    secret = models.JwtSecret(key=generate_secret(), version=(current or 0) + 1)
    db.add(secret)
    db.commit()
    key_cache.invalidate()
    logger.info("jwt key rotated", version=secret.version)
    return secret


def ensure_key(db: Session) -> models.JwtSecret:
    """Create the first signing key when the table is empty."""
    latest = latest_key(db)
    if latest is None:
        latest = rotate_key(db)
    return latest
