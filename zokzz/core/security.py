import os
import logging
import secrets
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone

import jwt
from passlib.hash import pbkdf2_sha256

from zokzz.core.errors import CoreError, ErrorKind
from zokzz.utils.env_helper import env_int


logger = logging.getLogger(__name__)

JWT_ALGORITHM = "HS256"
SALT_BYTES = 16


@dataclass(frozen=True)
class PasswordHash:
    salt: str
    hash: str


def hash_password(password: str) -> PasswordHash:
    if not password:
        raise ValueError("Password is required for hashing.")

    salt = secrets.token_bytes(SALT_BYTES)
    return PasswordHash(
        salt=salt.hex(),
        hash=pbkdf2_sha256.using(salt=salt).hash(password),
    )


def verify_password(password: str, salt: str, password_hash: str) -> bool:
    """Constant-time check of ``password`` against a stored salt and hash."""
    if not password or not salt or not password_hash:
        return False

    try:
        return pbkdf2_sha256.verify(password, password_hash)
    except ValueError:
        # malformed stored hash
        logger.warning("password_hash_malformed")
        return False


def _jwt_secret() -> str:
    secret = os.getenv("JWT_SECRET")
    if not secret:
        logger.error("JWT_SECRET is not configured")
        raise CoreError(ErrorKind.INTERNAL, "Authentication service not configured.")
    return secret


def issue_token(user_id: str, email: str, username: str) -> str:
    now = datetime.now(timezone.utc)
    payload = {
        "sub": user_id,
        "email": email,
        "username": username,
        "iat": now,
        "exp": now + timedelta(seconds=env_int("JWT_EXPIRES_SECONDS", 3600)),
    }
    return jwt.encode(payload, _jwt_secret(), algorithm=JWT_ALGORITHM)


def verify_token_string(token: str) -> dict:
    secret = _jwt_secret()

    try:
        return jwt.decode(token, secret, algorithms=[JWT_ALGORITHM], leeway=60)

    except jwt.ExpiredSignatureError:
        raise CoreError(ErrorKind.INVALID_TOKEN, "Token expired")

    except jwt.InvalidTokenError as e:
        logger.info(f"jwt_verification_failed error={e}")
        raise CoreError(ErrorKind.INVALID_TOKEN, "Invalid token")
