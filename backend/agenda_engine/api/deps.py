"""Common API dependencies."""

from __future__ import annotations

from typing import Annotated

from fastapi import Depends, HTTPException, status
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from jose import JWTError

from agenda_engine.core.config import get_settings
from agenda_engine.core.security import decode_access_token
from agenda_engine.db.session import get_sessionmaker
from agenda_engine.services.scheduling_service import SchedulingService
from agenda_engine.services.slot_locks import SlotLockRegistry

bearer_scheme = HTTPBearer(auto_error=False)

# Shared by every request of this process so slot units serialize together.
_slot_locks = SlotLockRegistry()


def get_scheduler() -> SchedulingService:
    """Return the scheduling facade bound to the configured database."""
    return SchedulingService(
        get_sessionmaker(), settings=get_settings(), locks=_slot_locks
    )


async def get_current_actor(
    credentials: Annotated[HTTPAuthorizationCredentials | None, Depends(bearer_scheme)],
) -> str:
    """Resolve the acting identity from the bearer token's ``sub`` claim."""
    credentials_exception = HTTPException(
        status_code=status.HTTP_401_UNAUTHORIZED,
        detail="Could not validate credentials",
        headers={"WWW-Authenticate": "Bearer"},
    )
    if credentials is None or credentials.scheme.lower() != "bearer":
        raise credentials_exception

    try:
        payload = decode_access_token(credentials.credentials)
    except JWTError as exc:
        raise credentials_exception from exc

    subject = payload.get("sub")
    if not isinstance(subject, str) or not subject:
        raise credentials_exception
    return subject

