"""Credential hashing and session tokens.

Passwords are hashed with bcrypt (salted, configurable cost).  bcrypt
only reads the first 72 bytes of its input, so the password is first
reduced to a fixed-size SHA-256 digest and every character counts.
Session tokens are HS256 JWTs carrying the user id and name with a
fixed lifetime.  Every decision branch is annotated with its branch id
(see contract.py ``BRANCHES``) so white-box tests can trace coverage.
"""
from __future__ import annotations

import base64
import hashlib
from datetime import datetime, timedelta, timezone

import bcrypt
import jwt
from pydantic import ValidationError

from models import TokenClaims

DEFAULT_BCRYPT_ROUNDS = 10
DEFAULT_TOKEN_TTL = 3600  # 1 hour
DEFAULT_ALGORITHM = "HS256"


# ---------------------------------------------------------------------------
# Password hashing (bcrypt over SHA-256)
# ---------------------------------------------------------------------------

def _bcrypt_secret(password: str) -> bytes:
    """Base64 SHA-256 digest of ``password``: 44 bytes, no NULs."""
    digest = hashlib.sha256(password.encode("utf-8")).digest()
    return base64.b64encode(digest)


def hash_password(password: str, rounds: int = DEFAULT_BCRYPT_ROUNDS) -> str:
    """Hash a plaintext password with bcrypt.

    Returns the modular-crypt string ``$2b$<cost>$<salt+digest>``.

    Branches: HASH-EMPTY, HASH-OK
    """
    if not password:                                              # HASH-EMPTY
        raise ValueError("Password must not be empty")

    # HASH-OK
    salt = bcrypt.gensalt(rounds=rounds)
    return bcrypt.hashpw(_bcrypt_secret(password), salt).decode("ascii")


def verify_password(password: str, stored_hash: str) -> bool:
    """Check a plaintext password against a stored bcrypt hash.

    The comparison is bcrypt's own constant-time check.

    Branches: VERIFY-MATCH, VERIFY-MISMATCH, VERIFY-BAD-FMT
    """
    if not stored_hash or not stored_hash.startswith("$2"):       # VERIFY-BAD-FMT
        raise ValueError("Invalid hash format: not a bcrypt hash")

    if not password:                                              # VERIFY-MISMATCH
        return False

    try:
        matched = bcrypt.checkpw(
            _bcrypt_secret(password), stored_hash.encode("ascii")
        )
    except ValueError as e:                                       # VERIFY-BAD-FMT
        raise ValueError(f"Invalid hash format: {e}") from e

    if matched:                                                   # VERIFY-MATCH
        return True
    return False                                                  # VERIFY-MISMATCH


def hash_rounds(stored_hash: str) -> int:
    """Return the cost factor encoded in a bcrypt hash."""
    try:
        return int(stored_hash.split("$")[2])
    except (IndexError, ValueError) as e:
        raise ValueError("Invalid hash format: no cost field") from e


# ---------------------------------------------------------------------------
# Token creation / validation (JWT)
# ---------------------------------------------------------------------------

def create_token(
    user_id: int | str,
    name: str,
    secret: str,
    ttl: int = DEFAULT_TOKEN_TTL,
    algorithm: str = DEFAULT_ALGORITHM,
) -> str:
    """Create a signed session token for a user.

    Claims: ``sub`` (user id as string), ``name``, ``iat``, ``exp``.

    Branches: TOKEN-CREATE-OK, TOKEN-CREATE-NO-SUB, TOKEN-CREATE-NO-SECRET
    """
    if user_id is None or user_id == "" or not name:              # TOKEN-CREATE-NO-SUB
        raise ValueError("Token subject must not be empty")

    if not secret:                                                # TOKEN-CREATE-NO-SECRET
        raise ValueError("Token secret must not be empty")

    # TOKEN-CREATE-OK
    now = datetime.now(timezone.utc)
    payload = {
        "sub": str(user_id),
        "name": name,
        "iat": int(now.timestamp()),
        "exp": int((now + timedelta(seconds=ttl)).timestamp()),
    }
    return jwt.encode(payload, secret, algorithm=algorithm)


def decode_token(
    token: str,
    secret: str,
    algorithm: str = DEFAULT_ALGORITHM,
) -> TokenClaims:
    """Verify a token's signature and expiry and return its claims.

    Raises ``ValueError`` describing the failure; callers that face the
    outside world must not pass that description on.

    Branches: TOKEN-VALID, TOKEN-EXPIRED, TOKEN-BAD-SIG, TOKEN-MALFORMED
    """
    if not token:                                                 # TOKEN-MALFORMED
        raise ValueError("Malformed token: empty")

    try:
        payload = jwt.decode(
            token,
            secret,
            algorithms=[algorithm],
            options={"require": ["sub", "iat", "exp"]},
        )
    except jwt.ExpiredSignatureError as e:                        # TOKEN-EXPIRED
        raise ValueError("Token has expired") from e
    except jwt.InvalidSignatureError as e:                        # TOKEN-BAD-SIG
        raise ValueError("Invalid token: signature mismatch") from e
    except jwt.InvalidTokenError as e:                            # TOKEN-MALFORMED
        raise ValueError(f"Malformed token: {e}") from e

    try:
        claims = TokenClaims.model_validate(payload)
    except ValidationError as e:                                  # TOKEN-MALFORMED
        raise ValueError("Malformed token: missing claims") from e

    # TOKEN-VALID
    return claims
