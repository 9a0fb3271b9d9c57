"""
Session tokens and password hashing.

A session is an HS256 JWT carrying the user id, valid for
SESSION_TTL_HOURS after issuance.
"""
from datetime import datetime, timedelta, timezone
import bcrypt
import jwt
from fastapi import HTTPException, status

from app.core import config


SESSION_ALGORITHM = "HS256"


def hash_password(password: str) -> str:
    """Hash a password using bcrypt."""
    salt = bcrypt.gensalt(rounds=10)
    return bcrypt.hashpw(password.encode("utf-8"), salt).decode("utf-8")


def verify_password(plain_password: str, password_hash: str) -> bool:
    """Verify a password against its hash."""
    try:
        return bcrypt.checkpw(plain_password.encode("utf-8"), password_hash.encode("utf-8"))
    except ValueError:
        # Malformed hash in the store
        return False


def create_session_token(user_id: str, now: datetime | None = None) -> tuple[str, datetime]:
    """
    Issue a signed session token for a user.
    
    Returns:
        The encoded token and its expiry time
    """
    issued_at = now or datetime.now(timezone.utc)
    expires = issued_at + timedelta(hours=config.SESSION_TTL_HOURS)
    payload = {
        "userId": user_id,
        "iat": issued_at,
        "exp": expires,
    }
    token = jwt.encode(payload, config.SESSION_SECRET, algorithm=SESSION_ALGORITHM)
    return token, expires


def verify_session_token(token: str) -> dict:
    """
    Verify a session token and return its payload.
    
    Raises:
        HTTPException: If token is invalid or expired
    """
    try:
        return jwt.decode(token, config.SESSION_SECRET, algorithms=[SESSION_ALGORITHM])
    except jwt.ExpiredSignatureError:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Session has expired",
            headers={"WWW-Authenticate": "Bearer"},
        )
    except jwt.InvalidTokenError as e:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail=f"Invalid session: {str(e)}",
            headers={"WWW-Authenticate": "Bearer"},
        )
