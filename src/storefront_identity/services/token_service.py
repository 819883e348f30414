"""
JWT token management service.

This module mints and validates the signed access and refresh tokens
handed out at login, and owns the optional revocation list consulted on
every validation.
"""

import logging
import os
import secrets
import uuid
from datetime import UTC, datetime
from typing import Any
from uuid import UUID

import jwt
from cryptography.hazmat.primitives import serialization
from cryptography.hazmat.primitives.asymmetric import rsa

from ..clock import Clock, utc_now
from ..config import TokenConfig
from ..exceptions import ConfigurationError, InvalidTokenError
from ..interfaces import RevocationChecker
from ..models import User
from ..rate_limiting.storage import RateLimitStorage
from .types import TokenClaims, TokenPair

logger = logging.getLogger(__name__)

ACCESS_CLAIMS = ["user_id", "email", "role", "iat", "exp", "jti"]
REFRESH_TOKEN_TYPE = "refresh"


def _to_epoch(value: datetime) -> int:
    return int(value.replace(tzinfo=UTC).timestamp())


def _from_epoch(value: int) -> datetime:
    return datetime.fromtimestamp(value, UTC).replace(tzinfo=None)


class NullRevocationChecker:
    """Default revocation policy: issued tokens stay valid until they expire."""

    def is_revoked(self, jti: str) -> bool:
        return False

    def revoke(self, jti: str, ttl_seconds: int) -> None:
        return None


class StorageRevocationList:
    """
    Revocation list kept in the rate limit storage backend.

    Entries expire together with the token they revoke, so the list never
    grows beyond the set of live tokens.
    """

    def __init__(self, storage: RateLimitStorage, key_prefix: str = "jwt:blacklist:") -> None:
        self.storage = storage
        self.key_prefix = key_prefix

    def is_revoked(self, jti: str) -> bool:
        return self.storage.exists(f"{self.key_prefix}{jti}")

    def revoke(self, jti: str, ttl_seconds: int) -> None:
        self.storage.set(f"{self.key_prefix}{jti}", "1", ttl=max(ttl_seconds, 1))
        logger.info(f"Revoked token {jti}")


class TokenIssuer:
    """
    JWT token service for creating and validating tokens.

    Supports:
    - Access tokens (24 hours default) with claims user_id, email, role, iat, exp, jti
    - Refresh tokens (7 days default) carrying the same claims plus type=refresh
    - HS256 with a shared secret or RS256 with PEM key files
    - Optional revocation list
    """

    def __init__(
        self,
        config: TokenConfig,
        environment: str | None = None,
        revocation: RevocationChecker | None = None,
        clock: Clock = utc_now,
    ) -> None:
        """
        Initialize token issuer.

        Args:
            config: Signing algorithm, keys and token lifetimes
            environment: Deployment environment; ephemeral keys are refused in production
            revocation: Revocation list consulted on validation
            clock: Source of the current UTC time
        """
        self.algorithm = config.algorithm
        self.access_token_ttl = config.access_token_ttl
        self.refresh_token_ttl = config.refresh_token_ttl
        self.revocation = revocation or NullRevocationChecker()
        self.clock = clock
        self.environment = environment or os.getenv("ENVIRONMENT", "development")

        if self.algorithm == "HS256":
            self._signing_key, self._verification_key = self._load_secret(config)
        elif self.algorithm == "RS256":
            self._signing_key, self._verification_key = self._load_rsa_keys(config)
        else:
            raise ConfigurationError(
                f"Unsupported JWT algorithm: {self.algorithm}", config_field="algorithm"
            )

    def _load_secret(self, config: TokenConfig) -> tuple[Any, Any]:
        if config.secret_key:
            return config.secret_key, config.secret_key

        if self.environment == "production":
            raise ConfigurationError(
                "JWT secret is required for production. Set JWT_SECRET.",
                config_field="secret_key",
            )

        logger.warning(
            "No JWT secret configured - generating an ephemeral secret for DEVELOPMENT ONLY. "
            "All tokens will be invalidated on restart!"
        )
        secret = secrets.token_urlsafe(64)
        return secret, secret

    def _load_rsa_keys(self, config: TokenConfig) -> tuple[Any, Any]:
        if config.private_key_path and os.path.exists(config.private_key_path):
            with open(config.private_key_path, "rb") as key_file:
                private_key = serialization.load_pem_private_key(key_file.read(), password=None)

            if config.public_key_path and os.path.exists(config.public_key_path):
                with open(config.public_key_path, "rb") as key_file:
                    public_key = serialization.load_pem_public_key(key_file.read())
            else:
                public_key = private_key.public_key()
            return private_key, public_key

        if self.environment == "production":
            raise ConfigurationError(
                "JWT private key is required for production. "
                "Use: openssl genrsa -out private_key.pem 2048",
                config_field="private_key_path",
            )

        logger.warning(
            "No private key found - generating ephemeral keys for DEVELOPMENT ONLY. "
            "These keys will be lost on restart and all tokens will be invalidated!"
        )
        private_key = rsa.generate_private_key(public_exponent=65537, key_size=2048)
        return private_key, private_key.public_key()

    def mint_pair(self, user: User) -> TokenPair:
        """
        Create an access token and a refresh token for a user.

        Args:
            user: Authenticated user

        Returns:
            Token pair with expiry times and jtis
        """
        now = self.clock()
        access_expires = now + self.access_token_ttl
        refresh_expires = now + self.refresh_token_ttl
        access_jti = str(uuid.uuid4())
        refresh_jti = str(uuid.uuid4())

        base_claims = {
            "user_id": str(user.id),
            "email": user.email,
            "role": user.role,
            "iat": _to_epoch(now),
        }

        access_token = self._encode(
            {**base_claims, "exp": _to_epoch(access_expires), "jti": access_jti}
        )
        refresh_token = self._encode(
            {
                **base_claims,
                "exp": _to_epoch(refresh_expires),
                "jti": refresh_jti,
                "type": REFRESH_TOKEN_TYPE,
            }
        )

        logger.debug(f"Minted token pair for user {user.id} with access jti {access_jti}")

        return TokenPair(
            access_token=access_token,
            refresh_token=refresh_token,
            access_jti=access_jti,
            refresh_jti=refresh_jti,
            expires_at=access_expires,
            refresh_expires_at=refresh_expires,
        )

    def _encode(self, payload: dict[str, Any]) -> str:
        return jwt.encode(payload, self._signing_key, algorithm=self.algorithm)

    def _decode(self, token: str) -> TokenClaims:
        if not token:
            raise InvalidTokenError("Token is required")

        try:
            payload = jwt.decode(
                token,
                self._verification_key,
                algorithms=[self.algorithm],
                options={
                    "verify_signature": True,
                    # Expiry is checked against the service clock below
                    "verify_exp": False,
                    "verify_iat": False,
                    "require": ACCESS_CLAIMS,
                },
            )
        except jwt.InvalidTokenError as e:
            raise InvalidTokenError(f"Invalid token: {e!s}")

        try:
            claims = TokenClaims(
                user_id=UUID(str(payload["user_id"])),
                email=str(payload["email"]),
                role=str(payload["role"]),
                jti=str(payload["jti"]),
                issued_at=_from_epoch(int(payload["iat"])),
                expires_at=_from_epoch(int(payload["exp"])),
                token_type=str(payload.get("type", "access")),
            )
        except (TypeError, ValueError, OverflowError) as e:
            raise InvalidTokenError(f"Invalid token claims: {e!s}")

        if self.clock() >= claims.expires_at:
            raise InvalidTokenError("Token has expired")

        if self.revocation.is_revoked(claims.jti):
            logger.warning(f"Rejected revoked token {claims.jti}")
            raise InvalidTokenError("Token has been revoked")

        return claims

    def validate_access(self, token: str) -> TokenClaims:
        """
        Verify an access token.

        Raises:
            InvalidTokenError: If the token is malformed, expired, revoked or a refresh token
        """
        claims = self._decode(token)
        if claims.token_type == REFRESH_TOKEN_TYPE:
            raise InvalidTokenError("Refresh token cannot be used for authentication")
        return claims

    def validate_refresh(self, token: str) -> TokenClaims:
        """
        Verify a refresh token.

        Raises:
            InvalidTokenError: If the token is malformed, expired, revoked or not a refresh token
        """
        claims = self._decode(token)
        if claims.token_type != REFRESH_TOKEN_TYPE:
            raise InvalidTokenError("Not a refresh token")
        return claims

    def revoke(self, jti: str, expires_at: datetime | None = None) -> None:
        """Add a token to the revocation list until it would have expired."""
        if expires_at is None:
            ttl = int(self.refresh_token_ttl.total_seconds())
        else:
            ttl = int((expires_at - self.clock()).total_seconds())
        self.revocation.revoke(jti, ttl)
