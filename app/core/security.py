"""Access-token verification.

Tokens are issued by the catalog's auth service; this side only verifies
them and extracts the principal.
"""

from __future__ import annotations

from dataclasses import dataclass

import jwt

from app.core.config import settings
from app.core.exceptions import UnauthorizedError


@dataclass(frozen=True)
class Principal:
    user_id: str
    role: str


class TokenVerifier:
    """Turn a bearer credential into a Principal, or raise UnauthorizedError.

    Two claim layouts are accepted:
      - ``{"user": {"id": ..., "role": ...}}`` (catalog auth service)
      - ``{"sub": ..., "role": ...}``
    """

    def __init__(self, secret_key: str | None = None, algorithm: str | None = None):
        self.secret_key = secret_key or settings.jwt_secret_key
        self.algorithm = algorithm or settings.jwt_algorithm

    def verify(self, token: str | None) -> Principal:
        if not token:
            raise UnauthorizedError("No token, authorization denied")

        try:
            payload = jwt.decode(token, self.secret_key, algorithms=[self.algorithm])
        except jwt.PyJWTError:
            raise UnauthorizedError("Token is not valid")

        claims = payload.get("user")
        if not isinstance(claims, dict):
            claims = {"id": payload.get("sub"), "role": payload.get("role")}

        user_id = claims.get("id")
        if not user_id:
            raise UnauthorizedError("Token is not valid")

        return Principal(user_id=str(user_id), role=str(claims.get("role") or ""))


def extract_token(authorization: str | None, x_auth_token: str | None) -> str | None:
    """Pick the credential from ``Authorization: Bearer`` or ``x-auth-token``.

    A non-Bearer Authorization header (e.g. Basic auth added by a proxy) is
    ignored, and ``x-auth-token`` is used instead.
    """
    if authorization and authorization.startswith("Bearer "):
        token = authorization[7:].strip()
        if token:
            return token
    return x_auth_token or None
