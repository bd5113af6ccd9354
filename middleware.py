"""Bearer-token gate for protected operations.

``authenticate`` is the framework-free gate: it takes the raw
Authorization value and either returns the resolved ``Identity`` or
raises a tagged error.  ``get_current_identity`` is the FastAPI
dependency that applies it to a request, reading the signing
configuration from ``app.state``.

Branches: GATE-NO-HEADER, GATE-NO-TOKEN-PART, GATE-BAD-SCHEME,
GATE-INVALID, GATE-OK
"""
from __future__ import annotations

import logging

from fastapi import Header, HTTPException, Request

from auth import DEFAULT_ALGORITHM, decode_token
from errors import ServiceError, TokenInvalidError, TokenRequiredError
from models import Identity

logger = logging.getLogger(__name__)


def authenticate(
    authorization: str | None,
    secret: str,
    *,
    algorithm: str = DEFAULT_ALGORITHM,
    strict: bool = False,
) -> Identity:
    """Resolve the identity carried by a ``Bearer <token>`` header value.

    By default the scheme word is not checked: the value is split on
    whitespace and the second part is taken as the token.  With
    ``strict`` the scheme must be ``Bearer`` (any case).  Every
    verification failure raises the same ``TokenInvalidError``.
    """
    if not authorization:                                         # GATE-NO-HEADER
        raise TokenRequiredError()

    parts = authorization.split()
    if len(parts) < 2:                                            # GATE-NO-TOKEN-PART
        raise TokenInvalidError()

    scheme, token = parts[0], parts[1]
    if strict and scheme.lower() != "bearer":                     # GATE-BAD-SCHEME
        raise TokenInvalidError()

    try:
        claims = decode_token(token, secret, algorithm=algorithm)
    except ValueError as e:                                       # GATE-INVALID
        logger.debug("Rejected token: %s", e)
        raise TokenInvalidError() from e

    # GATE-OK
    return Identity(name=claims.name)


async def get_current_identity(
    request: Request,
    authorization: str | None = Header(default=None),
) -> Identity:
    """Dependency: the identity of the caller, or a 401."""
    settings = request.app.state.settings
    try:
        return authenticate(
            authorization,
            settings.jwt_secret,
            algorithm=settings.JWT_ALGORITHM,
            strict=settings.STRICT_BEARER,
        )
    except ServiceError as e:
        raise HTTPException(
            status_code=e.status_code,
            detail=e.code.value,
            headers={"WWW-Authenticate": "Bearer"},
        ) from e
