"""
Access control.

Protected routes chain three independent checks, always in this order:

1. get_identity  - bearer token must be present and verify; yields the email claim
2. require_role  - the caller's stored user record must hold one of the roles
3. require_self  - the {email} path parameter must be the caller's own email
"""

import logging
from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone
from typing import Optional

from fastapi import Depends
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from jose import JWTError, jwt
from pymongo.database import Database as MongoDatabase

import config
from database import USERS, get_db
from errors import Forbidden, Unauthenticated

logger = logging.getLogger(__name__)

bearer_scheme = HTTPBearer(auto_error=False)


@dataclass
class Identity:
    email: str
    claims: dict = field(default_factory=dict)


def create_access_token(data: dict, expires_delta: Optional[timedelta] = None) -> str:
    to_encode = data.copy()
    expire = datetime.now(timezone.utc) + (expires_delta or timedelta(minutes=config.JWT_EXPIRES_MIN))
    to_encode.update({"exp": expire})
    encoded_jwt = jwt.encode(to_encode, config.JWT_SECRET, algorithm=config.JWT_ALG)
    return encoded_jwt


def decode_access_token(token: str) -> dict:
    try:
        return jwt.decode(token, config.JWT_SECRET, algorithms=[config.JWT_ALG])
    except JWTError as e:
        logger.debug("Token rejected: %s", e)
        raise Unauthenticated("Unauthorized or expired token")


def get_identity(credentials: Optional[HTTPAuthorizationCredentials] = Depends(bearer_scheme)) -> Identity:
    if credentials is None or not credentials.credentials:
        raise Unauthenticated("Unauthorized access")
    claims = decode_access_token(credentials.credentials)
    email = claims.get("email")
    if not email:
        raise Unauthenticated("Token carries no email claim")
    return Identity(email=email, claims=claims)


def require_role(*roles: str):
    """Dependency factory: caller's user record must hold one of `roles`."""
    allowed = set(roles)

    def dependency(identity: Identity = Depends(get_identity), db: MongoDatabase = Depends(get_db)) -> dict:
        user = db[USERS].find_one({"email": identity.email})
        if not user or user.get("role") not in allowed:
            raise Forbidden("Forbidden access")
        return user

    return dependency


require_admin = require_role("admin")


def ensure_same_email(identity: Identity, email: Optional[str]):
    if email != identity.email:
        raise Forbidden("Forbidden access")


def require_self(email: str, identity: Identity = Depends(get_identity)) -> Identity:
    ensure_same_email(identity, email)
    return identity


def is_admin(db: MongoDatabase, email: str) -> bool:
    user = db[USERS].find_one({"email": email})
    return bool(user) and user.get("role") == "admin"
