"""Login hand-off routes

The login page (outside this service) hands over the issued bearer token
and user record; they are kept in local storage where the cart and the
checkout read them.
"""

import json
import logging
from typing import Optional

from fastapi import APIRouter, Depends
from pydantic import BaseModel

from ..core.identity import TOKEN_KEY, USER_KEY, IdentityResolver
from ..core.storage import StoragePort
from .deps import get_identity, get_storage

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/auth", tags=["Auth"])


class SessionHandoff(BaseModel):
    """Token and user record issued by the login flow"""
    token: str
    user: Optional[dict] = None


@router.put("/session")
async def store_session(
    request: SessionHandoff,
    local_storage: StoragePort = Depends(get_storage),
    identity: IdentityResolver = Depends(get_identity),
):
    """Store the logged-in user's token and record"""
    local_storage.set(TOKEN_KEY, request.token)
    if request.user is not None:
        local_storage.set(USER_KEY, json.dumps(request.user))
    else:
        local_storage.remove(USER_KEY)

    user_id = identity.resolve()
    logger.info(f"Session stored for identity {user_id}")
    return {"authenticated": True, "identity": user_id}


@router.delete("/session")
async def clear_session(local_storage: StoragePort = Depends(get_storage)):
    """Forget the token and user record (logout)"""
    local_storage.remove(TOKEN_KEY)
    local_storage.remove(USER_KEY)
    return {"authenticated": False, "identity": None}


@router.get("/status")
async def get_auth_status(identity: IdentityResolver = Depends(get_identity)):
    """Check who the cart and checkout currently belong to"""
    return {
        "authenticated": identity.get_token() is not None,
        "identity": identity.resolve(),
    }
