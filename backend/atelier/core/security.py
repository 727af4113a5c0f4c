"""
Security utilities for password hashing and bearer token handling.

Passwords of accounts provisioned during guest checkout are hashed with
bcrypt. Tokens are issued by the identity service; this module only needs to
verify them, plus mint them for local tooling and tests.
"""

import hashlib
import hmac
from datetime import datetime, timedelta, timezone
from typing import Any, Dict, Optional

from jose import ExpiredSignatureError, JWTError, jwt
from passlib.context import CryptContext

from atelier.core.config import get_settings
from atelier.core.logging import get_logger

logger = get_logger(__name__)

pwd_context = CryptContext(
    schemes=["bcrypt"],
    deprecated="auto",
    bcrypt__rounds=12,
    bcrypt__ident="2b",
)


class SecurityError(Exception):
    """Base exception for security-related errors."""

    def __init__(self, message: str, code: str, **context: Any):
        super().__init__(message)
        self.code = code
        self.context = context


class TokenError(SecurityError):
    """Exception raised for token-related errors."""

    pass


class PasswordError(SecurityError):
    """Exception raised for password-related errors."""

    pass


def hash_password(password: str) -> str:
    """
    Hash a password using bcrypt.

    Args:
        password: Plain text password to hash

    Returns:
        Hashed password string

    Raises:
        PasswordError: If password is empty or hashing fails
    """
    if not password:
        logger.error("Attempted to hash empty password")
        raise PasswordError("Password cannot be empty", code="EMPTY_PASSWORD")

    try:
        return pwd_context.hash(password)
    except ValueError as e:
        logger.error(
            "Password hashing failed",
            error=str(e),
            error_type=type(e).__name__,
        )
        raise PasswordError(
            "Failed to hash password",
            code="HASH_FAILED",
            original_error=str(e),
        ) from e


def verify_password(plain_password: str, hashed_password: str) -> bool:
    """Verify a plain password against a bcrypt hash."""
    if not plain_password or not hashed_password:
        return False
    return pwd_context.verify(plain_password, hashed_password)


def create_access_token(
    subject: str,
    role: str,
    expires_delta: Optional[timedelta] = None,
) -> str:
    """
    Create a signed access token.

    Args:
        subject: Account id placed in the ``sub`` claim
        role: Account role placed in the ``role`` claim
        expires_delta: Optional custom lifetime

    Returns:
        Encoded JWT
    """
    settings = get_settings()
    now = datetime.now(timezone.utc)
    expire = now + (
        expires_delta
        or timedelta(minutes=settings.jwt_access_token_expire_minutes)
    )

    claims = {
        "sub": subject,
        "role": role,
        "exp": expire,
        "iat": now,
        "type": "access",
    }

    return jwt.encode(claims, settings.secret_key, algorithm=settings.jwt_algorithm)


def decode_token(token: str) -> Dict[str, Any]:
    """
    Decode and validate an access token.

    Args:
        token: Encoded JWT

    Returns:
        Token claims

    Raises:
        TokenError: If the token is expired, malformed or not an access token
    """
    settings = get_settings()

    try:
        payload = jwt.decode(
            token,
            settings.secret_key,
            algorithms=[settings.jwt_algorithm],
        )
    except ExpiredSignatureError as e:
        logger.info("Token expired")
        raise TokenError("Token has expired", code="TOKEN_EXPIRED") from e
    except JWTError as e:
        logger.warning(
            "Token validation failed",
            error=str(e),
            error_type=type(e).__name__,
        )
        raise TokenError("Invalid token", code="TOKEN_INVALID") from e

    if payload.get("type") != "access":
        raise TokenError(
            "Invalid token type",
            code="TOKEN_TYPE_INVALID",
            token_type=payload.get("type"),
        )

    return payload


def compute_webhook_signature(payload: bytes, secret: str) -> str:
    """Hex HMAC-SHA512 of a raw webhook body."""
    return hmac.new(secret.encode("utf-8"), payload, hashlib.sha512).hexdigest()


def verify_webhook_signature(payload: bytes, signature: Optional[str], secret: str) -> bool:
    """Constant-time check of a gateway webhook signature."""
    if not signature:
        return False
    expected = compute_webhook_signature(payload, secret)
    return hmac.compare_digest(expected, signature.strip().lower())
