from functools import lru_cache

import bcrypt

DEFAULT_ROUNDS = 12


def hash_password(plain_password: str, rounds: int = DEFAULT_ROUNDS) -> str:
    if not isinstance(plain_password, str) or len(plain_password) == 0:
        raise ValueError("Password must be a non-empty string")

    # bcrypt expects bytes
    salt = bcrypt.gensalt(rounds=rounds)
    hashed = bcrypt.hashpw(plain_password.encode("utf-8"), salt)
    return hashed.decode("utf-8")


def verify_password(plain_password: str, password_hash: str) -> bool:
    """Constant-time check of a plaintext password against a bcrypt hash."""
    if not plain_password or not password_hash:
        return False
    try:
        return bcrypt.checkpw(
            plain_password.encode("utf-8"),
            password_hash.encode("utf-8")
        )
    except ValueError:
        # malformed hash in storage
        return False


@lru_cache(maxsize=1)
def dummy_hash() -> str:
    """Hash compared against when the username is unknown, to even out timing."""
    return hash_password("civicdesk-unknown-account")
