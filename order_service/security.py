"""
security.py — Caller identity from bearer tokens

Tokens are HS256 JWTs carrying `id`, `email` and `userType` claims
(`customer`, `sales_agent` or `admin`). The API resolves the caller once per
request and passes the resulting `Caller` explicitly to the order core.
"""

from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import Optional

import jwt
from fastapi import Request

from .config import JWT_ALGORITHM, JWT_SECRET
from .errors import AuthenticationError

ADMIN = "admin"
USER_TYPES = ("customer", "sales_agent", ADMIN)


@dataclass(frozen=True)
class Caller:
    id: int
    user_type: str = "customer"
    email: Optional[str] = None

    @property
    def is_admin(self) -> bool:
        return self.user_type == ADMIN

    def can_access(self, owner_id: int) -> bool:
        return self.is_admin or self.id == owner_id


def issue_token(user_id: int, email: str = "", user_type: str = "customer",
                secret: str = JWT_SECRET, expires_in: timedelta = timedelta(days=1)) -> str:
    payload = {
        "id": user_id,
        "email": email,
        "userType": user_type,
        "exp": datetime.now(timezone.utc) + expires_in,
    }
    return jwt.encode(payload, secret, algorithm=JWT_ALGORITHM)


def decode_token(token: str, secret: str = JWT_SECRET) -> Caller:
    """
    Verifies a token and returns the caller it identifies.

    Raises:
        AuthenticationError: 403 if the token is invalid, expired or lacks an id.
    """
    try:
        payload = jwt.decode(token, secret, algorithms=[JWT_ALGORITHM])
    except jwt.InvalidTokenError as e:
        raise AuthenticationError("Invalid or expired token", status_code=403) from e

    user_id = payload.get("id")
    user_type = payload.get("userType", "customer")
    if not isinstance(user_id, int) or user_type not in USER_TYPES:
        raise AuthenticationError("Invalid or expired token", status_code=403)
    return Caller(id=user_id, user_type=user_type, email=payload.get("email"))


def get_caller(request: Request) -> Caller:
    """FastAPI dependency resolving the `Authorization: Bearer` header."""
    auth_header = request.headers.get("Authorization", "")
    if not auth_header.startswith("Bearer "):
        raise AuthenticationError("Authentication token required", status_code=401)
    return decode_token(auth_header.split(" ", 1)[1])
