import re
from typing import List, Tuple

from flask import current_app, has_app_context

_UPPER = re.compile(r"[A-Z]")
_LOWER = re.compile(r"[a-z]")
_DIGIT = re.compile(r"\d")
_SYMBOL = re.compile(r"[^A-Za-z0-9]")

_DEFAULTS = {
    "PASSWORD_MIN_LEN": 8,
    "PASSWORD_MAX_LEN": 72,  # bcrypt ignores anything past 72 bytes
    "PASSWORD_REQUIRE_UPPER": True,
    "PASSWORD_REQUIRE_LOWER": True,
    "PASSWORD_REQUIRE_DIGIT": True,
    "PASSWORD_REQUIRE_SYMBOL": False,
}

_RULES = (
    ("PASSWORD_REQUIRE_UPPER", _UPPER, "uppercase letter"),
    ("PASSWORD_REQUIRE_LOWER", _LOWER, "lowercase letter"),
    ("PASSWORD_REQUIRE_DIGIT", _DIGIT, "number"),
    ("PASSWORD_REQUIRE_SYMBOL", _SYMBOL, "symbol"),
)


def _cfg(name: str):
    if not has_app_context():
        return _DEFAULTS[name]
    return current_app.config.get(name, _DEFAULTS[name])


def _required_patterns():
    return [(pat, label) for key, pat, label in _RULES if bool(_cfg(key))]


def validate_password(pw: str) -> Tuple[bool, List[str]]:
    if not isinstance(pw, str):
        return False, ["Password must be a string"]

    errors: List[str] = []
    min_len = int(_cfg("PASSWORD_MIN_LEN"))
    max_len = int(_cfg("PASSWORD_MAX_LEN"))

    if len(pw) < min_len:
        errors.append(f"Password must be at least {min_len} characters")
    if len(pw.encode("utf-8")) > max_len:
        errors.append(f"Password must be at most {max_len} bytes")

    for pat, label in _required_patterns():
        if not pat.search(pw):
            errors.append(f"Password must include at least 1 {label}")

    return (len(errors) == 0), errors


def password_strength(pw: str) -> dict:
    if not isinstance(pw, str):
        return {"score": 0, "valid": False, "feedback": ["Password must be a string"]}

    valid, errors = validate_password(pw)
    min_len = int(_cfg("PASSWORD_MIN_LEN"))

    # variety is scored over all four classes, required or not
    variety = sum(1 for _, pat, _ in _RULES if pat.search(pw))

    score = 0
    if len(pw) >= min_len:
        score += 1
    if len(pw) >= min_len + 4:
        score += 1
    if variety >= 3:
        score += 1
    if variety == len(_RULES) and len(pw) >= min_len:
        score += 1

    if not valid:
        feedback = errors
    else:
        feedback = []
        if len(pw) < min_len + 4:
            feedback.append("Use a longer passphrase for extra strength")
        if variety < len(_RULES):
            feedback.append("Add more character variety to strengthen the password")

    return {"score": score, "valid": valid, "feedback": feedback}
