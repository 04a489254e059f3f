"""JWT Authentication utilities."""
from datetime import datetime, timedelta, timezone

import jwt
from django.conf import settings

from apps.businesses.models import User


def create_access_token(user: User, expires_delta: timedelta | None = None) -> str:
    """Create a JWT access token for a user."""
    if expires_delta is None:
        expires_delta = timedelta(minutes=settings.JWT_ACCESS_TOKEN_LIFETIME_MINUTES)

    now = datetime.now(timezone.utc)
    payload = {
        "sub": str(user.id),
        "email": user.email,
        "business_id": user.business_id,
        "exp": now + expires_delta,
        "iat": now,
        "type": "access",
    }
    return jwt.encode(payload, settings.SECRET_KEY, algorithm="HS256")


def decode_token(token: str) -> dict | None:
    """Decode and validate a JWT token."""
    try:
        return jwt.decode(token, settings.SECRET_KEY, algorithms=["HS256"])
    except jwt.ExpiredSignatureError:
        return None
    except jwt.InvalidTokenError:
        return None


def get_user_from_token(token: str) -> User | None:
    """Get user from a valid access token."""
    payload = decode_token(token)
    if payload is None or payload.get("type") != "access":
        return None

    try:
        user_id = payload.get("sub")
        if user_id is None:
            return None
        return User.objects.select_related("business").get(id=int(user_id), is_active=True)
    except (User.DoesNotExist, ValueError):
        return None
