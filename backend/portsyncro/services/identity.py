# backend/portsyncro/services/identity.py
"""
Caller identity.

Two concerns live here:
- JWTIdentityProvider verifies Bearer tokens and returns the subject
- resolve_caller_identity picks the key the price rate limiter counts under

Identity precedence (first match wins):
    user:<sub>            verified token subject
    declared:<userId>     self-declared id from the request body
    anon:<ip>|<agent>     network address and user agent

Self-declared ids are trusted only for rate limiting; they never grant
access to stored holdings.
"""

from datetime import datetime, timedelta, timezone
from typing import Any

from jose import JWTError, jwt

from portsyncro.services.exceptions import InvalidTokenError, TokenExpiredError

DEFAULT_TOKEN_LIFETIME = timedelta(hours=1)


class JWTIdentityProvider:
    """
    Verifies (and, for tooling and tests, issues) HS256 access tokens.

    Tokens carry:
    - sub: User id (string)
    - exp: Expiration timestamp
    - iat: Issued at timestamp
    """

    def __init__(self, secret_key: str, algorithm: str = "HS256") -> None:
        self._secret_key = secret_key
        self._algorithm = algorithm

    def create_token(self, user_id: str, expires_delta: timedelta | None = None) -> str:
        now = datetime.now(timezone.utc)
        payload = {
            "sub": str(user_id),
            "iat": now,
            "exp": now + (expires_delta or DEFAULT_TOKEN_LIFETIME),
        }
        return jwt.encode(payload, self._secret_key, algorithm=self._algorithm)

    def decode(self, token: str) -> dict[str, Any]:
        """
        Validate a token and return its payload.

        Raises:
            TokenExpiredError: If the token has expired
            InvalidTokenError: If the token is malformed or wrongly signed
        """
        try:
            return jwt.decode(token, self._secret_key, algorithms=[self._algorithm])
        except jwt.ExpiredSignatureError:
            raise TokenExpiredError("Access token has expired")
        except JWTError as e:
            raise InvalidTokenError(f"Invalid token: {str(e)}")

    def verify(self, token: str) -> str:
        """Return the verified user id carried by ``token``."""
        subject = self.decode(token).get("sub")
        if not isinstance(subject, str) or not subject.strip():
            raise InvalidTokenError("Token has no subject")
        return subject


def resolve_caller_identity(
        verified_user_id: str | None,
        declared_user_id: Any,
        client_ip: str | None,
        user_agent: str | None,
) -> str:
    """Rate limit key for one request."""
    if verified_user_id:
        return f"user:{verified_user_id}"
    if isinstance(declared_user_id, str) and declared_user_id.strip():
        return f"declared:{declared_user_id.strip()}"
    return f"anon:{client_ip or 'unknown'}|{user_agent or 'unknown'}"
