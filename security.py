"""Password hashing and bearer token issuance/verification."""
import logging
from datetime import datetime, timedelta, timezone
from typing import Optional

from jose import ExpiredSignatureError, JWTError, jwt
from passlib.context import CryptContext

from config import ConfigError, Settings
from errors import INVALID_TOKEN, UnauthorizedError
from schemas import TokenClaims

logger = logging.getLogger(__name__)


class PasswordHasher:
    """Salted bcrypt digests through passlib."""

    def __init__(self, rounds: int = 10):
        self._context = CryptContext(schemes=["bcrypt"], deprecated="auto", bcrypt__rounds=rounds)

    def hash(self, plaintext: str) -> str:
        return self._context.hash(plaintext)

    def verify(self, plaintext: str, digest: Optional[str]) -> bool:
        """Return True only for a matching password. Any error counts as a mismatch."""
        if not plaintext or not digest:
            return False
        try:
            return self._context.verify(plaintext, digest)
        except (ValueError, TypeError):
            logger.warning("Stored password digest could not be verified")
            return False


class TokenError(UnauthorizedError):
    """A bearer token could not be accepted."""

    reason = "invalid"


class TokenMissing(TokenError):
    reason = "missing"


class TokenExpired(TokenError):
    reason = "expired"


class TokenMalformed(TokenError):
    reason = "malformed"


class TokenService:
    """Issues and verifies signed, expiring JWTs carrying the user's id and email."""

    def __init__(self, secret_key: str, algorithm: str = "HS256", expire_minutes: int = 60 * 24 * 7):
        if not secret_key:
            raise ConfigError("Token secret is not configured")
        self._secret_key = secret_key
        self._algorithm = algorithm
        self._expires = timedelta(minutes=expire_minutes)

    @classmethod
    def from_settings(cls, settings: Settings) -> "TokenService":
        return cls(settings.secret_key, settings.jwt_algorithm, settings.access_token_expire_minutes)

    def issue(self, user_id: str, email: str, expires_delta: Optional[timedelta] = None) -> str:
        now = datetime.now(timezone.utc)
        to_encode = {
            "sub": user_id,
            "email": email,
            "iat": now,
            "exp": now + (expires_delta if expires_delta is not None else self._expires),
        }
        return jwt.encode(to_encode, self._secret_key, algorithm=self._algorithm)

    def verify(self, token: Optional[str]) -> TokenClaims:
        if not token:
            raise TokenMissing(INVALID_TOKEN)
        try:
            payload = jwt.decode(token, self._secret_key, algorithms=[self._algorithm])
        except ExpiredSignatureError:
            raise TokenExpired(INVALID_TOKEN)
        except JWTError:
            raise TokenMalformed(INVALID_TOKEN)

        user_id = payload.get("sub")
        email = payload.get("email")
        if not isinstance(user_id, str) or not isinstance(email, str):
            raise TokenMalformed(INVALID_TOKEN)
        return TokenClaims(user_id=user_id, email=email)
