"""Session lifecycle: issue, validate, revoke and sweep."""

import logging
from datetime import datetime, timedelta
from typing import Callable, Optional

from .crypto import generate_token, hash_token
from .db import AccountStore
from .models import User, utcnow

logger = logging.getLogger(__name__)

SESSION_TTL = timedelta(days=7)


class SessionManager:
    """Opaque bearer-token sessions backed by the sessions table.

    Only the SHA-256 hash of a token is stored or compared; the raw token
    leaves this class once, as the return value of ``issue``.
    """

    def __init__(self, store: AccountStore, ttl: timedelta = SESSION_TTL,
                 clock: Callable[[], datetime] = utcnow):
        self.store = store
        self.ttl = ttl
        self.clock = clock

    async def issue(self, user_id: int) -> str:
        """Create a session for ``user_id`` and return its raw token.

        Existing sessions of the user are left alone, so several devices
        can be logged in at once.
        """
        token = generate_token(32)
        token_hash = hash_token(token)
        now = self.clock()
        expires_at = now + self.ttl
        await self.store.run(lambda db: db.create_session(user_id, token_hash, expires_at, now))
        logger.info(f"Issued session for user {user_id}")
        return token

    async def validate(self, token: Optional[str]) -> Optional[User]:
        """Return the session's user, or None for a missing, unknown or expired token.

        Lookup is by SQL equality on the hash; raw tokens are never compared.
        """
        if not token:
            return None

        token_hash = hash_token(token)
        now = self.clock()
        found = await self.store.run(lambda db: db.find_session_by_token_hash(token_hash, now))
        if not found:
            return None

        _, user = found
        return user

    async def revoke(self, token: Optional[str]) -> None:
        """Delete the session for ``token``. Unknown or expired tokens are a no-op."""
        if not token:
            return
        token_hash = hash_token(token)
        deleted = await self.store.run(lambda db: db.delete_session_by_token_hash(token_hash))
        if deleted:
            logger.info("Session revoked")

    async def revoke_all(self, user_id: int) -> int:
        """Log a user out everywhere."""
        count = await self.store.run(lambda db: db.delete_all_user_sessions(user_id))
        logger.info(f"Revoked {count} sessions for user {user_id}")
        return count

    async def sweep_expired(self) -> int:
        now = self.clock()
        count = await self.store.run(lambda db: db.delete_expired_sessions(now))
        logger.info(f"Removed {count} expired sessions")
        return count

    def sweep_expired_sync(self) -> int:
        """Blocking variant for callers outside an event loop (Celery, CLI)."""
        now = self.clock()
        count = self.store.run_sync(lambda db: db.delete_expired_sessions(now))
        logger.info(f"Removed {count} expired sessions")
        return count
