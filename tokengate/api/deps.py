"""
tokengate.api.deps — FastAPI dependency injection
===================================================

Process-wide collaborators (engine, config, JSON-RPC gateway, profile
directory) are built once and cached.  Tests swap them through
``app.dependency_overrides``.
"""

from __future__ import annotations

import os
from functools import lru_cache
from typing import Annotated

import jwt
from fastapi import Depends, Header, HTTPException, status
from jwt.exceptions import InvalidTokenError
from sqlalchemy import Engine
from sqlalchemy.orm import Session

from tokengate.config import TokengateConfig, load_config
from tokengate.database.engine import create_db_engine
from tokengate.services.profile_directory import ProfileDirectory
from tokengate.services.token_contract import TokenGateway

JWT_ALGORITHM = "HS256"

_MIN_SECRET_LENGTH = 32
_WEAK_SECRETS = frozenset({"tokengate-dev-secret-change-me", "change-me", "secret", "dev"})


def _load_jwt_secret() -> str:
    """Return JWT_SECRET, refusing missing, weak or short values.

    Runs at import so a misconfigured API never starts serving.
    """
    secret = os.getenv("JWT_SECRET", "").strip()
    if not secret:
        problem = (
            "JWT_SECRET environment variable is not set. Generate one with: "
            "python -c \"import secrets; print(secrets.token_urlsafe(64))\""
        )
    elif secret in _WEAK_SECRETS:
        problem = f"JWT_SECRET is a known weak default ({secret!r}); set a unique value."
    elif len(secret) < _MIN_SECRET_LENGTH:
        problem = (
            f"JWT_SECRET is too short: {len(secret)} of "
            f"{_MIN_SECRET_LENGTH} required characters."
        )
    else:
        return secret
    raise RuntimeError(problem)


JWT_SECRET: str = _load_jwt_secret()


@lru_cache(maxsize=1)
def get_engine() -> Engine:
    return create_db_engine()


@lru_cache(maxsize=1)
def get_config() -> TokengateConfig:
    return load_config(os.getenv("TOKENGATE_CONFIG", "config.yaml"))


@lru_cache(maxsize=1)
def get_token_gateway() -> TokenGateway | None:
    """Shared JSON-RPC gateway, or None when no chain is configured."""
    config = get_config()
    if not config.chain_enabled:
        return None
    return TokenGateway(
        config.chain_rpc_url,
        sender=config.treasury_address,
        timeout=config.rpc_timeout_seconds,
    )


@lru_cache(maxsize=1)
def get_profile_directory() -> ProfileDirectory | None:
    config = get_config()
    if not config.profile_directory_url:
        return None
    return ProfileDirectory(
        config.profile_directory_url, timeout=config.profile_timeout_seconds,
    )


def get_session(engine: Annotated[Engine, Depends(get_engine)]):
    with Session(engine) as session:
        yield session


def get_current_admin(
    authorization: Annotated[str | None, Header()] = None,
) -> dict:
    """Decode the bearer token; 401 if absent or invalid, 403 if not admin."""
    scheme, _, token = (authorization or "").partition(" ")
    if scheme.lower() != "bearer" or not token:
        raise HTTPException(status.HTTP_401_UNAUTHORIZED, "Missing token")
    try:
        claims = jwt.decode(token, JWT_SECRET, algorithms=[JWT_ALGORITHM])
    except InvalidTokenError:
        raise HTTPException(status.HTTP_401_UNAUTHORIZED, "Invalid token")
    if not claims.get("is_admin"):
        raise HTTPException(status.HTTP_403_FORBIDDEN, "Not admin")
    return claims
