"""
Token, hashing and pseudonym helpers.

Everything here is pure (no I/O) so it can be shared by the auth service,
the messaging service and the WebSocket handshake.
"""

import hashlib
import secrets
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from uuid import UUID

import bcrypt
from jose import ExpiredSignatureError, JWTError, jwt

from common_grounds.exceptions import InvalidTokenError, SessionExpiredError


def generate_token(num_bytes: int = 32) -> str:
    """Random hex token; 32 bytes gives 256 bits of entropy."""
    return secrets.token_hex(num_bytes)


def sha256_hex(data: str) -> str:
    return hashlib.sha256(data.encode("utf-8")).hexdigest()


def derive_anonymous_identifier(user_id: UUID | str, class_id: UUID | str) -> str:
    """
    Stable per-class pseudonym for a user.

    Different classes give unrelated identifiers for the same user. The
    6-hex-digit truncation can collide (24 bits) and is kept short for
    display.
    """
    return "Anon_" + sha256_hex(f"{user_id}:{class_id}")[:6]


def hash_phone_number(phone_number: str) -> str:
    return bcrypt.hashpw(phone_number.encode("utf-8"), bcrypt.gensalt(rounds=10)).decode("utf-8")


# =============================================================================
# JWT UTILITIES
# =============================================================================


@dataclass(frozen=True)
class SessionClaims:
    """Identity embedded in a session credential."""

    user_id: UUID
    email: str


def create_session_token(
    user_id: UUID,
    email: str,
    *,
    secret_key: str,
    algorithm: str,
    expires_in: timedelta,
) -> str:
    """
    Create a signed session credential.

    Token payload contains:
    - sub: user_id as string (standard JWT subject claim)
    - email: the verified university email
    - iat / exp: issue and expiry timestamps
    - jti: random id so two logins in the same second hash differently
    """
    now = datetime.now(timezone.utc)
    payload = {
        "sub": str(user_id),
        "email": email,
        "iat": now,
        "exp": now + expires_in,
        "jti": secrets.token_hex(8),
    }
    return jwt.encode(payload, secret_key, algorithm=algorithm)


def decode_session_token(token: str, *, secret_key: str, algorithm: str) -> SessionClaims:
    """
    Verify signature and expiry of a session credential.

    Raises SessionExpiredError for an expired signature and InvalidTokenError
    for anything malformed or signed with another key.
    """
    try:
        payload = jwt.decode(token, secret_key, algorithms=[algorithm])
    except ExpiredSignatureError as e:
        raise SessionExpiredError() from e
    except JWTError as e:
        raise InvalidTokenError("Invalid authentication token") from e

    try:
        return SessionClaims(user_id=UUID(payload["sub"]), email=payload["email"])
    except (KeyError, TypeError, ValueError) as e:
        raise InvalidTokenError("Invalid authentication token") from e
