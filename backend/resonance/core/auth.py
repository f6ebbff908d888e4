"""
Caller identity and authorization.

Routes never compare usernames themselves; they ask an AccessPolicy whether
the resolved caller may perform a named action. The policy is a FastAPI
dependency, so deployments and tests can swap it out.
"""
import hashlib
import uuid
from dataclasses import dataclass
from typing import Optional, Protocol

import structlog
from fastapi import Depends, Header, HTTPException
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from resonance.config import settings
from resonance.db import get_db
from resonance.models.user import User

log = structlog.get_logger()

# Actions
LIST_TRACKS      = "tracks:list"
READ_TRACK       = "tracks:read"
UPLOAD_TRACK     = "tracks:upload"
UPDATE_TRACK     = "tracks:update"
DELETE_TRACK     = "tracks:delete"
STREAM_TRACK     = "tracks:stream"
SIMILAR_TRACKS   = "tracks:similar"
CHECK_DUPLICATES = "tracks:check_duplicates"
REANALYZE        = "tracks:reanalyze"

ADMIN_ACTIONS = {LIST_TRACKS, UPLOAD_TRACK, UPDATE_TRACK, DELETE_TRACK, CHECK_DUPLICATES, REANALYZE}


@dataclass
class Caller:
    user_id: uuid.UUID
    username: str
    email: Optional[str] = None


class AccessPolicy(Protocol):
    def allows(self, caller: Caller, action: str) -> bool: ...


class AdminPolicy:
    """Admin-only library management; everything else for any signed-in caller."""

    def __init__(self, admin_username: Optional[str], admin_email: Optional[str] = None):
        self.admin_username = admin_username
        self.admin_email = admin_email

    def is_admin(self, caller: Caller) -> bool:
        # no configured admin → nobody is admin
        if not self.admin_username or caller.username != self.admin_username:
            return False
        if self.admin_email and caller.email != self.admin_email:
            return False
        return True

    def allows(self, caller: Caller, action: str) -> bool:
        if action in ADMIN_ACTIONS:
            return self.is_admin(caller)
        return True


def hash_api_key(api_key: str) -> str:
    return hashlib.sha256(api_key.encode("utf-8")).hexdigest()


# ── FastAPI dependencies ───────────────────────────────────────────────────

def get_policy() -> AccessPolicy:
    return AdminPolicy(settings.ADMIN_USERNAME, settings.ADMIN_EMAIL)


async def get_caller(
    x_api_key: Optional[str] = Header(default=None),
    db: AsyncSession = Depends(get_db),
) -> Caller:
    if not x_api_key:
        raise HTTPException(401, detail="Unauthorized")
    user = await db.scalar(select(User).where(User.api_key_hash == hash_api_key(x_api_key)))
    if user is None or not user.is_active:
        raise HTTPException(401, detail="Unauthorized")
    return Caller(user_id=user.id, username=user.username, email=user.email)


def require(action: str):
    """Dependency factory: resolves the caller and enforces `action`."""

    async def dependency(
        caller: Caller = Depends(get_caller),
        policy: AccessPolicy = Depends(get_policy),
    ) -> Caller:
        if not policy.allows(caller, action):
            log.warning("access_denied", user=caller.username, action=action)
            raise HTTPException(403, detail="Admin access required")
        return caller

    return dependency
