"""JWT principal tokens and evaluation access-key hashing."""

from datetime import datetime, timedelta, timezone

from jose import JWTError, jwt
import bcrypt

from quizportal.config import settings

# ── Access keys ───────────────────────────────────────────────────────────────


def hash_access_key(plain: str) -> str:
    """Return bcrypt hash of an evaluation access key.

    Raises:
        ValueError: If the key is longer than 72 bytes
    """
    if len(plain.encode('utf-8')) > 72:
        raise ValueError(
            f"Access key is {len(plain.encode('utf-8'))} bytes, but bcrypt has a "
            f"72-byte limit. Please use a shorter key."
        )
    salt = bcrypt.gensalt()
    hashed = bcrypt.hashpw(plain.encode('utf-8'), salt)
    return hashed.decode('utf-8')


def verify_access_key(plain: str | None, hashed: str) -> bool:
    """Check *plain* against the stored *hashed* key. A missing key never matches."""
    if not plain:
        return False
    try:
        return bcrypt.checkpw(plain.encode('utf-8'), hashed.encode('utf-8'))
    except ValueError:
        return False


# ── JWT tokens ────────────────────────────────────────────────────────────────


def create_access_token(
    data: dict,
    expires_delta: timedelta | None = None,
) -> str:
    """Create a signed JWT access token."""
    to_encode = data.copy()
    expire = datetime.now(timezone.utc) + (
        expires_delta or timedelta(minutes=settings.ACCESS_TOKEN_EXPIRE_MINUTES)
    )
    to_encode.update({"exp": expire})
    return jwt.encode(to_encode, settings.SECRET_KEY, algorithm=settings.ALGORITHM)


def decode_access_token(token: str) -> dict | None:
    """Decode and validate a JWT. Returns payload dict or None on failure."""
    try:
        return jwt.decode(token, settings.SECRET_KEY, algorithms=[settings.ALGORITHM])
    except JWTError:
        return None
