"""Password hashing and access tokens.

`CredentialStore` wraps bcrypt; `TokenService` issues and checks HS256 JWTs
carrying the user id (`sub`) and roles.
"""

from datetime import datetime, timedelta, timezone
from typing import Iterable, List, Optional

import bcrypt
import jwt
from pydantic import BaseModel

ALGORITHM = "HS256"
# bcrypt only looks at the first 72 bytes of a password
MAX_PASSWORD_BYTES = 72


class Identity(BaseModel):
    """Authenticated caller decoded from a valid token."""
    user_id: str
    roles: List[str] = []


class TokenError(Exception):
    """Raised when a token is malformed, wrongly signed or expired."""


class CredentialStore:
    def __init__(self, rounds: int = 10) -> None:
        self.rounds = rounds

    def hash(self, plaintext: str) -> str:
        """Hash a password with a fresh salt; raises ValueError past 72 bytes."""
        raw = plaintext.encode("utf-8")
        if len(raw) > MAX_PASSWORD_BYTES:
            raise ValueError("Password must be at most 72 bytes")
        return bcrypt.hashpw(raw, bcrypt.gensalt(rounds=self.rounds)).decode("utf-8")

    def verify(self, plaintext: str, hashed: str) -> bool:
        """Check a password against a stored hash. Never raises on mismatch."""
        if not plaintext or not hashed:
            return False
        try:
            return bcrypt.checkpw(plaintext.encode("utf-8"), hashed.encode("utf-8"))
        except ValueError:
            # malformed stored hash or over-long password
            return False


class TokenService:
    def __init__(self, secret: str, ttl: timedelta = timedelta(hours=10)) -> None:
        self._secret = secret
        self.ttl = ttl

    def issue(self, user_id: str, roles: Iterable[str] = (), now: Optional[datetime] = None) -> str:
        """Sign a token for `user_id` valid for `ttl` from `now` (default: current time)."""
        issued = now or datetime.now(timezone.utc)
        payload = {
            "sub": str(user_id),
            "roles": list(roles),
            "iat": issued,
            "exp": issued + self.ttl,
        }
        return jwt.encode(payload, self._secret, algorithm=ALGORITHM)

    def verify(self, token: str) -> Identity:
        """Decode a token and return its identity.

        Raises:
            TokenError: bad signature, malformed token, missing subject or expired.
        """
        try:
            payload = jwt.decode(
                token,
                self._secret,
                algorithms=[ALGORITHM],
                options={"require": ["exp", "sub"]},
            )
        except jwt.PyJWTError as e:
            raise TokenError(str(e)) from e
        return Identity(user_id=payload["sub"], roles=payload.get("roles") or [])
