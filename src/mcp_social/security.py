"""Password hashing and session token helpers."""
import re
import uuid
import bcrypt


# Canonical 36-character hyphenated hex form (8-4-4-4-12)
TOKEN_PATTERN = re.compile(
    r"^[0-9a-fA-F]{8}-[0-9a-fA-F]{4}-[0-9a-fA-F]{4}-[0-9a-fA-F]{4}-[0-9a-fA-F]{12}$"
)


def hash_password(password: str, rounds: int = 10) -> str:
    return bcrypt.hashpw(password.encode("utf-8"), bcrypt.gensalt(rounds=rounds)).decode("ascii")


def verify_password(password: str, password_hash: str) -> bool:
    """One-way verify; a malformed stored hash counts as a mismatch."""
    try:
        return bcrypt.checkpw(password.encode("utf-8"), password_hash.encode("ascii"))
    except ValueError:
        return False


def is_valid_token(token: str) -> bool:
    return bool(token) and TOKEN_PATTERN.match(token) is not None


def new_token() -> str:
    return str(uuid.uuid4())
