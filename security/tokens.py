from datetime import datetime, timedelta, timezone
from typing import Optional

import jwt
from flask import current_app, request


def create_access_token(user_id: int) -> str:
    now = datetime.now(timezone.utc)
    lifetime = current_app.config.get("JWT_EXPIRES_SECONDS", 7 * 24 * 60 * 60)
    payload = {
        "sub": str(user_id),
        "iat": now,
        "exp": now + timedelta(seconds=lifetime),
    }
    return jwt.encode(
        payload,
        current_app.config["JWT_SECRET"],
        algorithm=current_app.config.get("JWT_ALGORITHM", "HS256"),
    )


def decode_access_token(token: str) -> Optional[int]:
    """
    Returns the user id carried by a valid token, None for anything else
    (bad signature, expired, malformed subject).
    """
    try:
        payload = jwt.decode(
            token,
            current_app.config["JWT_SECRET"],
            algorithms=[current_app.config.get("JWT_ALGORITHM", "HS256")],
        )
    except jwt.InvalidTokenError:
        return None
    try:
        return int(payload["sub"])
    except (KeyError, TypeError, ValueError):
        return None


def bearer_token_from_request() -> Optional[str]:
    header = request.headers.get("Authorization", "")
    if not header.startswith("Bearer "):
        return None
    token = header[len("Bearer "):].strip()
    return token or None
