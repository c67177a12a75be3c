from datetime import datetime, timedelta, timezone
from typing import Any

import bcrypt
from jose import jwt, JWTError

# Verified against when the handle is unknown, so both login failures cost one bcrypt check.
_DUMMY_HASH = bcrypt.hashpw(b"not-a-real-password", bcrypt.gensalt()).decode()


def hash_password(password: str) -> str:
    return bcrypt.hashpw(password.encode(), bcrypt.gensalt()).decode()


def verify_password(password: str, hashed: str | None) -> bool:
    candidate = (hashed or _DUMMY_HASH).encode()
    try:
        ok = bcrypt.checkpw(password.encode(), candidate)
    except ValueError:
        # password over 72 bytes or a stored value that is not a bcrypt hash
        return False
    return ok and hashed is not None


def create_token(user_id: int, secret: str, algorithm: str, expires_minutes: int) -> str:
    now = datetime.now(timezone.utc)
    payload = {
        "sub": str(user_id),
        "iat": now,
        "exp": now + timedelta(minutes=expires_minutes),
    }
    return jwt.encode(payload, secret, algorithm=algorithm)


def decode_token(token: str, secret: str, algorithm: str) -> dict[str, Any]:
    """Return the claims of a valid token. Raises ``JWTError`` otherwise (expiry included)."""
    return jwt.decode(token, secret, algorithms=[algorithm])


__all__ = ["hash_password", "verify_password", "create_token", "decode_token", "JWTError"]
