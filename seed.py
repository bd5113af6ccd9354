"""One-time admin seed.

Creates the configured admin user on startup if it does not exist yet.
Idempotent: an existing admin is left untouched and only logged.  Any
failure is logged and swallowed so that a broken seed never stops the
service from starting.
"""
from __future__ import annotations

import logging

from auth import DEFAULT_BCRYPT_ROUNDS, hash_password
from errors import ServiceError, UserExistsError
from store import UserStore

logger = logging.getLogger(__name__)


def seed_admin(
    user_store: UserStore,
    credentials: tuple[str, str] | None,
    *,
    bcrypt_rounds: int = DEFAULT_BCRYPT_ROUNDS,
) -> bool:
    """Create the admin user if configured and absent.

    Returns True only when a new user was written.  The admin password
    is stored as given; it is not run through the password policy.
    """
    if credentials is None:
        logger.debug("No admin credentials configured; skipping seed")
        return False

    name, password = credentials
    try:
        if user_store.exists(name):
            logger.info("Admin user %r already exists", name)
            return False

        user_store.insert(name, hash_password(password, rounds=bcrypt_rounds))
    except UserExistsError:
        logger.info("Admin user %r already exists", name)
        return False
    except (ServiceError, ValueError):
        logger.exception("Admin seed failed for %r", name)
        return False

    logger.info("Created admin user %r", name)
    return True
