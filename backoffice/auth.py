import time
from typing import Optional

import jwt
from passlib.context import CryptContext
from sqlalchemy.orm import Session

from . import config
from .errors import AuthError
from .keys import key_cache, verification_keys

# Use pbkdf2_sha256 as default to avoid bcrypt 72-byte limitation in some envs
pwd_context = CryptContext(schemes=["pbkdf2_sha256", "bcrypt"], deprecated="auto")

ALGORITHM = "HS256"


def create_access_token(db: Session, user_id: str, role: str, expires_delta: Optional[int] = None) -> str:
    key, version = key_cache.get(db)
    now = int(time.time())
    exp = now + (expires_delta or config.get_settings().token_ttl_seconds)
    payload = {"sub": str(user_id), "role": role, "iat": now, "exp": exp}
    return jwt.encode(payload, key, algorithm=ALGORITHM, headers={"kid": str(version)})


def decode_access_token(db: Session, token: str) -> dict:
    # current key first, then the one it replaced
    for secret in verification_keys(db):
        try:
            return jwt.decode(token, secret.key, algorithms=[ALGORITHM])
        except jwt.ExpiredSignatureError as e:
            raise AuthError("Invalid or expired token.") from e
        except jwt.PyJWTError:
            continue
    raise AuthError("Invalid or expired token.")


def hash_password(password: str) -> str:
    return pwd_context.hash(password)


def verify_password(plain: str, hashed: str) -> bool:
    return pwd_context.verify(plain, hashed)
