"""
Identity resolution

Finds the purchaser a cart partition belongs to. The token and the
cached user record are written by the login flow; this module only reads
them.
"""

import json
import logging
from dataclasses import dataclass
from typing import Optional

import jwt

from .storage import StoragePort

logger = logging.getLogger(__name__)

TOKEN_KEY = "token"
USER_KEY = "user"

# Claims that may carry the user id, in lookup order
_ID_CLAIMS = ("userId", "id", "sub")


@dataclass
class TokenClaims:
    """Claims read from the bearer token payload"""
    user_id: Optional[str] = None
    email: Optional[str] = None
    role: Optional[str] = None


def decode_token(token: Optional[str]) -> TokenClaims:
    """
    Read the payload of a bearer token.

    The signature is not checked here: the backend verifies the token on
    every request, the client only needs the claims.
    """
    if not token:
        return TokenClaims()

    try:
        payload = jwt.decode(token, options={"verify_signature": False})
    except jwt.PyJWTError as e:
        logger.error(f"Error decoding token: {e}")
        return TokenClaims()

    user_id = next((payload[c] for c in _ID_CLAIMS if payload.get(c)), None)
    return TokenClaims(
        user_id=str(user_id) if user_id is not None else None,
        email=payload.get("email"),
        role=payload.get("role"),
    )


class IdentityResolver:
    """Resolves the current identity from stored session data"""

    def __init__(self, storage: StoragePort):
        self.storage = storage

    def get_token(self) -> Optional[str]:
        """Get the bearer token, if logged in"""
        return self.storage.get(TOKEN_KEY) or None

    def get_user_record(self) -> dict:
        """Get the cached user record (empty dict when missing or corrupt)"""
        raw = self.storage.get(USER_KEY)
        if not raw:
            return {}

        try:
            record = json.loads(raw)
        except ValueError as e:
            logger.error(f"Error parsing user info: {e}")
            return {}

        return record if isinstance(record, dict) else {}

    def get_claims(self) -> TokenClaims:
        return decode_token(self.get_token())

    def resolve(self) -> Optional[str]:
        """Current identity: the user record's id, else the token's user id"""
        record = self.get_user_record()
        user_id = record.get("id") or record.get("_id")
        if user_id:
            return str(user_id)

        return self.get_claims().user_id
