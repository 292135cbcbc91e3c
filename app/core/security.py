from __future__ import annotations

from datetime import datetime, timedelta, timezone
from functools import lru_cache
from typing import Any

from jose import JWTError, jwt
from passlib.context import CryptContext
from starlette.concurrency import run_in_threadpool

from app.core.settings import settings


@lru_cache(maxsize=1)
def _secret_context() -> CryptContext:
    return CryptContext(
        schemes=["bcrypt"],
        deprecated="auto",
        bcrypt__rounds=settings.pin_hash_rounds,
    )


def hash_secret(secret: str) -> str:
    """Salted one-way hash of a PIN or access code."""
    if not secret:
        raise ValueError("Secret must not be empty")
    return _secret_context().hash(secret)


def verify_secret(secret: str, hashed: str | None) -> bool:
    """Constant-time comparison of *secret* against a stored hash.

    Malformed or missing hashes compare as ``False`` rather than raising, so a
    corrupt row can never turn into an access grant or abort the tier loop.
    """
    if not secret or not hashed:
        return False
    try:
        return _secret_context().verify(secret, hashed)
    except (ValueError, TypeError):
        return False


async def averify_secret(secret: str, hashed: str | None) -> bool:
    """Run ``verify_secret`` on the worker threadpool, off the event loop."""
    return await run_in_threadpool(verify_secret, secret, hashed)


class JWTKeyError(RuntimeError):
    pass


@lru_cache(maxsize=1)
def _load_private_key() -> str:
    if settings.jwt_private_key:
        return settings.jwt_private_key
    if settings.jwt_private_key_path:
        return _read_key(settings.jwt_private_key_path)
    raise JWTKeyError("JWT private key not configured")


@lru_cache(maxsize=1)
def _load_public_key() -> str:
    if settings.jwt_public_key:
        return settings.jwt_public_key
    if settings.jwt_public_key_path:
        return _read_key(settings.jwt_public_key_path)
    raise JWTKeyError("JWT public key not configured")


def _read_key(path: str) -> str:
    with open(path, "r", encoding="utf-8") as key_file:
        return key_file.read()


def create_access_token(subject: str, expires_delta: timedelta | None = None) -> str:
    """Issue an access token; used by tooling and tests, login lives elsewhere."""
    now = datetime.now(timezone.utc)
    expire = now + (expires_delta or timedelta(minutes=settings.access_token_expire_minutes))
    to_encode: dict[str, Any] = {"sub": subject, "exp": expire, "iat": now, "type": "access"}
    return jwt.encode(to_encode, _load_private_key(), algorithm=settings.jwt_algorithm)


def decode_token(token: str, expected_type: str | None = None) -> dict[str, Any]:
    public_key = _load_public_key()
    try:
        payload = jwt.decode(token, public_key, algorithms=[settings.jwt_algorithm])
    except JWTError as exc:
        raise ValueError("Invalid token") from exc
    if expected_type and payload.get("type") != expected_type:
        raise ValueError(f"Unexpected token type: {payload.get('type')}")
    return payload
