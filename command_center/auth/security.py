"""Password hashing and bearer tokens."""

from datetime import datetime, timedelta, timezone
from typing import Any, Dict, Optional

import bcrypt
from jose import JWTError, jwt

ALGORITHM = "HS256"


def hash_password(password: str) -> str:
    """Hash a password with a fresh bcrypt salt."""
    return bcrypt.hashpw(password.encode("utf-8"), bcrypt.gensalt()).decode("utf-8")


def verify_password(password: str, password_hash: str) -> bool:
    try:
        return bcrypt.checkpw(password.encode("utf-8"), password_hash.encode("utf-8"))
    except ValueError:
        return False


def create_access_token(
    data: Dict[str, Any],
    secret_key: str,
    expires_delta: Optional[timedelta] = None,
) -> str:
    """Sign ``data`` into an HS256 access token.

    Args:
        data: Claims to embed; ``sub`` should hold the user id
        secret_key: Signing key
        expires_delta: Lifetime, 24 hours when omitted

    Returns:
        Encoded JWT string
    """
    now = datetime.now(timezone.utc)
    claims = dict(data)
    claims.update(
        {
            "iat": now,
            "exp": now + (expires_delta or timedelta(hours=24)),
            "type": "access",
        }
    )
    return jwt.encode(claims, secret_key, algorithm=ALGORITHM)


def verify_access_token(token: str, secret_key: str) -> Optional[Dict[str, Any]]:
    """Decode an access token. None if it is malformed, forged or expired."""
    try:
        payload = jwt.decode(token, secret_key, algorithms=[ALGORITHM])
    except JWTError:
        return None
    if payload.get("type") != "access" or not payload.get("sub"):
        return None
    return payload
