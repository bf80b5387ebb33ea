"""Reusable FastAPI dependencies for auth and database access."""
from typing import Callable

from fastapi import Depends, HTTPException, status
from fastapi.security import OAuth2PasswordBearer

from .auth import actor_from_token
from .models import RoleEnum
from .schemas import Actor

oauth_scheme = OAuth2PasswordBearer(tokenUrl="/users/login")

ELEVATED_ROLES = frozenset({RoleEnum.ADMIN, RoleEnum.FACILITY_MANAGER})


def get_current_actor(token: str = Depends(oauth_scheme)) -> Actor:
    return actor_from_token(token)


def allow_roles(*roles: RoleEnum) -> Callable[[Actor], Actor]:
    def dependency(actor: Actor = Depends(get_current_actor)) -> Actor:
        if actor.role not in roles:
            raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Insufficient permissions")
        return actor

    return dependency
