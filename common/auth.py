"""Bearer tokens carrying the identity asserted by the external user directory.

The services never see passwords: a token's ``sub`` is the user id and its
``role`` claim one of ``RoleEnum``. ``create_access_token`` exists for tests
and local tooling.
"""
from datetime import datetime, timedelta, timezone
from typing import Any, Dict, Optional

from fastapi import HTTPException, status
from jose import JWTError, jwt
from pydantic import ValidationError

from .config import get_settings
from .schemas import Actor

settings = get_settings()

_CHALLENGE = {"WWW-Authenticate": "Bearer"}


def _unauthorized(detail: str) -> HTTPException:
    return HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail=detail, headers=_CHALLENGE)


def create_access_token(claims: Dict[str, Any], expires_delta: Optional[timedelta] = None) -> str:
    issued = datetime.now(timezone.utc)
    lifetime = expires_delta or timedelta(minutes=settings.access_token_expire_minutes)
    payload = {**claims, "iat": issued, "exp": issued + lifetime}
    return jwt.encode(payload, settings.jwt_secret, algorithm=settings.jwt_algorithm)


def create_actor_token(actor: Actor, expires_delta: Optional[timedelta] = None) -> str:
    return create_access_token({"sub": actor.actor_id, "role": actor.role.value}, expires_delta)


def decode_token(token: str) -> Dict[str, Any]:
    try:
        return jwt.decode(token, settings.jwt_secret, algorithms=[settings.jwt_algorithm])
    except JWTError as exc:  # expired tokens included
        raise _unauthorized("Invalid token") from exc


def actor_from_token(token: str) -> Actor:
    claims = decode_token(token)
    subject = claims.get("sub")
    if not subject:
        raise _unauthorized("Missing subject in token")
    try:
        return Actor(actor_id=subject, role=claims.get("role") or "regular")
    except ValidationError as exc:
        raise _unauthorized("Malformed identity in token") from exc
