"""Map an incoming provider profile onto exactly one local user.

Account-merge policy: when a provider identity is seen for the first time and
a user with the same email already exists, the identity is linked to that
user instead of creating a new one. Both providers only hand us emails they
report as verified, and a verified email is treated as enough proof that the
same person is signing in. This is a deliberate trust decision, reviewed in
DESIGN.md; changing it changes who can reach an existing account.
"""

import logging
from datetime import datetime
from typing import Callable, Optional

from .db import AccountStore, Database
from .models import Provider, ProviderProfile, User, utcnow

logger = logging.getLogger(__name__)


def _blank_to_none(value: Optional[str]) -> Optional[str]:
    return value if value else None


def reconcile_in_transaction(db: Database, provider: Provider, profile: ProviderProfile,
                             now: datetime) -> User:
    """Find-or-create for one login. Must run inside a single transaction."""
    name = _blank_to_none(profile.name)
    avatar_url = _blank_to_none(profile.avatar_url)

    account = db.find_oauth_account(provider, profile.provider_id)
    if account:
        user = db.find_user_by_id(account.user_id)
        if name or avatar_url:
            user = db.update_user_profile(user.id, name, avatar_url, now)
        return user

    user = db.find_user_by_email(profile.email)
    if user:
        logger.info(f"Linking {provider.value} identity to existing user {user.id} by email")
    else:
        user = db.create_user(profile.email, name, avatar_url, now)
        logger.info(f"Created user {user.id} from {provider.value} login")

    db.create_oauth_account(user.id, provider, profile.provider_id, now)
    return user


async def reconcile(store: AccountStore, provider: Provider, profile: ProviderProfile,
                    clock: Callable[[], datetime] = utcnow) -> User:
    """Resolve a provider login to a user atomically.

    Raises ConflictError if a concurrent login created the same link or
    email first; the transaction is rolled back before it propagates.
    """
    now = clock()
    return await store.run(lambda db: reconcile_in_transaction(db, provider, profile, now))
