"""Admin token utilities.

Operator endpoints (slot generation, sweeps, cancellations) accept a JWT
signed with the app secret and carrying type "admin". There are no user
accounts; tokens are minted by scripts/seed.py or an operator.
"""

from datetime import UTC, datetime, timedelta

from jose import JWTError, jwt

from slotbook.core.config import settings

ADMIN_TOKEN_TYPE = "admin"


def create_admin_token(subject: str = "operator") -> str:
    expire = datetime.now(UTC) + timedelta(minutes=settings.admin_token_expire_minutes)
    payload = {"sub": subject, "exp": expire, "type": ADMIN_TOKEN_TYPE}
    return jwt.encode(payload, settings.secret_key, algorithm=settings.jwt_algorithm)


def decode_token(token: str) -> dict:
    """Decode and validate a JWT. Raises JWTError on failure."""
    return jwt.decode(token, settings.secret_key, algorithms=[settings.jwt_algorithm])


def verify_admin_token(token: str) -> str:
    """Return the token subject. Raises JWTError if the token is invalid or not an admin token."""
    payload = decode_token(token)
    if payload.get("type") != ADMIN_TOKEN_TYPE:
        raise JWTError("Invalid token type")
    return payload["sub"]
