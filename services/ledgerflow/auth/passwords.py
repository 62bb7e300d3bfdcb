"""Password hashing utilities.

bcrypt with a configurable cost factor (10 rounds by default). Verification
goes through bcrypt's own checkpw, which compares in constant time.
"""

import bcrypt

from ledgerflow.errors import ValidationError

# bcrypt only considers the first 72 bytes of input.
MAX_PASSWORD_BYTES = 72
DEFAULT_ROUNDS = 10


def validate_password_length(password: str) -> str:
    """Reject passwords bcrypt would silently truncate.

    Returns the password if valid, raises ValidationError otherwise.
    """
    if len(password.encode()) > MAX_PASSWORD_BYTES:
        raise ValidationError(f"Password must be {MAX_PASSWORD_BYTES} bytes or fewer")
    return password


def hash_password(password: str, rounds: int = DEFAULT_ROUNDS) -> str:
    """Hash a password with bcrypt and a fresh random salt."""
    return bcrypt.hashpw(password.encode(), bcrypt.gensalt(rounds=rounds)).decode()


def verify_password(password: str, password_hash: str) -> bool:
    """
    Verify a password against its hash.

    Returns True if the password matches, False otherwise (including for
    malformed hashes).
    """
    if not password_hash:
        return False
    try:
        return bcrypt.checkpw(password.encode(), password_hash.encode())
    except ValueError:
        return False
