import hashlib
import secrets
from datetime import datetime, timedelta, timezone
from functools import lru_cache
from typing import Any

from jose import JWTError, jwt

from acquisitions.app.core.config import settings
from acquisitions.app.core.logging import get_logger
from acquisitions.app.exceptions import AuthenticationError

logger = get_logger(__name__)

PBKDF2_ALGORITHM = "pbkdf2_sha256"
PBKDF2_ITERATIONS = 100000


# ============================================
# Password hashing
# ============================================


def hash_password(plain: str, salt: str | None = None, iterations: int = PBKDF2_ITERATIONS) -> str:
    """Hash a password using PBKDF2 with SHA256.

    Args:
        plain: The raw password
        salt: Optional salt. A random salt is generated when omitted.
        iterations: PBKDF2 iteration count

    Returns:
        Encoded hash in the form ``pbkdf2_sha256$<iterations>$<salt>$<hex>``
    """
    if salt is None:
        salt = secrets.token_hex(16)

    digest = hashlib.pbkdf2_hmac(
        "sha256", plain.encode("utf-8"), salt.encode("utf-8"), iterations
    ).hex()
    return f"{PBKDF2_ALGORITHM}${iterations}${salt}${digest}"


def verify_password(plain: str, stored: str) -> bool:
    """Verify a raw password against an encoded hash.

    Returns False for hashes that are not in the expected format.
    """
    try:
        algorithm, iterations, salt, _ = stored.split("$", 3)
        rounds = int(iterations)
    except ValueError:
        return False
    if algorithm != PBKDF2_ALGORITHM:
        return False
    return secrets.compare_digest(hash_password(plain, salt, rounds), stored)


# ============================================
# JWT
# ============================================


class TokenService:
    """Issues and verifies the signed session tokens.

    Claims carried by the token are ``id``, ``email`` and ``role``; ``exp``
    and ``iat`` are added on signing.
    """

    def __init__(
        self,
        secret: str,
        algorithm: str = "HS256",
        expires_minutes: int = 24 * 60,
    ):
        self._secret = secret
        self._algorithm = algorithm
        self._expires_minutes = expires_minutes

    def sign(self, claims: dict[str, Any]) -> str:
        now = datetime.now(timezone.utc)
        payload = {
            **claims,
            "iat": now,
            "exp": now + timedelta(minutes=self._expires_minutes),
        }
        try:
            return jwt.encode(payload, self._secret, algorithm=self._algorithm)
        except JWTError:
            logger.error("Error signing JWT token")
            raise

    def verify(self, token: str) -> dict[str, Any]:
        """Decode and validate a token.

        Raises:
            AuthenticationError: signature, expiry or format is invalid
        """
        try:
            return jwt.decode(token, self._secret, algorithms=[self._algorithm])
        except JWTError as e:
            logger.error("Error verifying JWT token", extra={"reason": str(e)})
            raise AuthenticationError("Invalid or expired token") from e


@lru_cache(maxsize=1)
def get_token_service() -> TokenService:
    """Get the process-wide token service built from settings."""
    return TokenService(
        secret=settings.jwt_secret,
        algorithm=settings.jwt_algorithm,
        expires_minutes=settings.jwt_expire_minutes,
    )
