# ecosnap/auth.py — who is talking: verified bearer token, else network address, else "anonymous"
from __future__ import annotations
import logging
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import Any, Dict, Optional

import jwt
from fastapi import Request
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer

logger = logging.getLogger(__name__)

JWT_ALGORITHM = "HS256"
JWT_EXPIRY = timedelta(days=7)

# auto_error off: anonymous callers are allowed everywhere except admin routes
bearer = HTTPBearer(auto_error=False)


@dataclass
class Identity:
    key: str
    user_id: Optional[str] = None
    email: Optional[str] = None

    @property
    def authenticated(self) -> bool:
        return self.user_id is not None


def create_token(user_id: str, email: str, secret: str, expires_in: timedelta = JWT_EXPIRY) -> str:
    now = datetime.now(timezone.utc)
    payload = {"userId": user_id, "sub": user_id, "email": email, "iat": now, "exp": now + expires_in}
    return jwt.encode(payload, secret, algorithm=JWT_ALGORITHM)


def verify_token(token: str, secret: str) -> Optional[Dict[str, Any]]:
    try:
        return jwt.decode(token, secret, algorithms=[JWT_ALGORITHM])
    except jwt.ExpiredSignatureError:
        logger.info("[auth] expired token")
    except jwt.InvalidTokenError as e:
        logger.warning("[auth] invalid token: %s", e)
    return None


def client_address(request: Request) -> Optional[str]:
    fwd = request.headers.get("x-forwarded-for")
    if fwd:
        first = fwd.split(",")[0].strip()
        if first:
            return first
    return request.client.host if request.client else None


def resolve_identity(request: Request, credentials: Optional[HTTPAuthorizationCredentials], secret: str) -> Identity:
    if credentials is not None:
        payload = verify_token(credentials.credentials, secret)
        uid = payload and (payload.get("userId") or payload.get("sub"))
        if uid:
            return Identity(key=str(uid), user_id=str(uid), email=payload.get("email"))
    return Identity(key=client_address(request) or "anonymous")
