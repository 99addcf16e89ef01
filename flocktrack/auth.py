"""
Bearer-token authentication.

Tokens are issued by an external provider; this module only asks it who a
token belongs to. ``HostedAuthProvider`` talks to the hosted provider's
``/auth/v1/user`` endpoint, ``StaticTokenAuthProvider`` maps fixed tokens
to user ids for local development and tests.
"""
from __future__ import annotations

import logging
from dataclasses import dataclass
from functools import lru_cache
from typing import Optional

import httpx
from fastapi import Depends, Header, HTTPException

from .config import get_settings

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class AuthUser:
    id: str
    email: Optional[str] = None


class AuthProvider:
    def get_user(self, token: str) -> Optional[AuthUser]:
        raise NotImplementedError


class StaticTokenAuthProvider(AuthProvider):
    def __init__(self, tokens: dict[str, str]):
        self.tokens = dict(tokens)

    def get_user(self, token: str) -> Optional[AuthUser]:
        user_id = self.tokens.get(token)
        return AuthUser(id=user_id) if user_id else None


class HostedAuthProvider(AuthProvider):
    def __init__(self, base_url: str, service_key: str, timeout: float = 10.0, client: Optional[httpx.Client] = None):
        self.base_url = base_url.rstrip("/")
        self.service_key = service_key
        self.client = client or httpx.Client(timeout=timeout)

    def get_user(self, token: str) -> Optional[AuthUser]:
        try:
            r = self.client.get(
                f"{self.base_url}/auth/v1/user",
                headers={"apikey": self.service_key, "Authorization": f"Bearer {token}"},
            )
        except httpx.RequestError as exc:
            logger.error("Auth provider unreachable: %s", exc)
            return None
        if r.status_code != 200:
            return None
        try:
            body = r.json()
        except ValueError:
            logger.warning("Auth provider returned a non-JSON body")
            return None
        if not isinstance(body, dict) or not body.get("id"):
            return None
        return AuthUser(id=str(body["id"]), email=body.get("email"))


@lru_cache
def get_auth_provider() -> AuthProvider:
    settings = get_settings()
    if settings.auth_url and settings.auth_service_key:
        return HostedAuthProvider(settings.auth_url, settings.auth_service_key)
    return StaticTokenAuthProvider(settings.api_tokens)


def get_current_user(
    authorization: str | None = Header(default=None),
    provider: AuthProvider = Depends(get_auth_provider),
) -> AuthUser:
    if not authorization or not authorization.startswith("Bearer "):
        raise HTTPException(401, "Missing or invalid authorization header")

    token = authorization[len("Bearer "):].strip()
    user = provider.get_user(token) if token else None
    if user is None:
        raise HTTPException(401, "Invalid or expired token")
    return user
