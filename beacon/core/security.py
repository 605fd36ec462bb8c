"""Password hashing and JWT utilities for local user authentication.

Users who sign in with an e-mail and password receive a pair of HS256 tokens:
a short-lived access token and a longer-lived refresh token. Both carry the
user id in ``sub`` and their purpose in ``type``.
"""

from datetime import datetime, timedelta, timezone
from typing import Any

from jose import JWTError, jwt
from passlib.context import CryptContext

from beacon.config import Settings
from beacon.exceptions import AuthenticationError

# Password hashing context using argon2
pwd_context = CryptContext(schemes=["argon2"], deprecated="auto")


class SecurityUtils:
    """Security utilities for password hashing and JWT operations."""

    def __init__(self, settings: Settings):
        """Initialize security utilities with settings.

        Args:
            settings: Application settings containing JWT configuration
        """
        self.settings = settings
        self.algorithm = settings.jwt_algorithm
        self.secret_key = settings.jwt_secret_key
        self.access_token_expire_minutes = settings.jwt_access_token_expire_minutes
        self.refresh_token_expire_days = settings.jwt_refresh_token_expire_days

    @staticmethod
    def hash_password(password: str) -> str:
        """Hash a password using argon2."""
        return pwd_context.hash(password)

    @staticmethod
    def verify_password(plain_password: str, hashed_password: str | None) -> bool:
        """Verify a password against its hash.

        Users provisioned by the identity provider have no local password and
        never match.
        """
        if not hashed_password:
            return False
        return pwd_context.verify(plain_password, hashed_password)

    def _encode(self, subject: str, token_type: str, expires_delta: timedelta) -> str:
        now = datetime.now(timezone.utc)
        to_encode: dict[str, Any] = {
            "sub": subject,
            "exp": now + expires_delta,
            "iat": now,
            "type": token_type,
        }
        return jwt.encode(to_encode, self.secret_key, algorithm=self.algorithm)

    def create_access_token(
        self,
        subject: str,
        expires_delta: timedelta | None = None,
    ) -> str:
        """Create a JWT access token.

        Args:
            subject: Subject (the user id as string)
            expires_delta: Optional custom expiration time

        Returns:
            Encoded JWT token
        """
        return self._encode(
            subject,
            "access",
            expires_delta or timedelta(minutes=self.access_token_expire_minutes),
        )

    def create_refresh_token(
        self,
        subject: str,
        expires_delta: timedelta | None = None,
    ) -> str:
        """Create a JWT refresh token.

        Args:
            subject: Subject (the user id as string)
            expires_delta: Optional custom expiration time

        Returns:
            Encoded JWT token
        """
        return self._encode(
            subject,
            "refresh",
            expires_delta or timedelta(days=self.refresh_token_expire_days),
        )

    def create_token_pair(self, subject: str) -> dict[str, str]:
        """Create both access and refresh tokens."""
        return {
            "access_token": self.create_access_token(subject),
            "refresh_token": self.create_refresh_token(subject),
        }

    def verify_token(self, token: str, expected_type: str = "access") -> dict[str, Any]:
        """Verify and decode a JWT token.

        Args:
            token: JWT token to verify
            expected_type: Expected token type ("access" or "refresh")

        Returns:
            Decoded token payload

        Raises:
            AuthenticationError: If token is invalid, expired, or wrong type
        """
        try:
            payload = jwt.decode(
                token,
                self.secret_key,
                algorithms=[self.algorithm],
            )
        except JWTError as e:
            raise AuthenticationError(f"Invalid token: {str(e)}") from e

        token_type = payload.get("type")
        if token_type != expected_type:
            raise AuthenticationError(
                f"Invalid token type. Expected '{expected_type}', got '{token_type}'"
            )

        if not payload.get("sub"):
            raise AuthenticationError("Token missing subject (sub) claim")

        return payload
