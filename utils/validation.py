import re
from typing import Optional, Tuple

from flask import current_app, request

EMAIL_RE = re.compile(r"^[\w.+-]+@[\w-]+(\.[\w-]+)*\.[A-Za-z]{2,}$")


class ValidationError(ValueError):
    def __init__(self, field: str, message: str):
        super().__init__(message)
        self.field = field
        self.message = message


def clean_str(data: dict, field: str, max_len: int, required: bool = False,
              min_len: int = 0) -> Optional[str]:
    """
    Pull a trimmed string out of a JSON body. Missing/blank optional fields
    come back as None.
    """
    value = data.get(field)
    if value is None or (isinstance(value, str) and not value.strip()):
        if required:
            raise ValidationError(field, f"{field} is required")
        return None
    if not isinstance(value, str):
        raise ValidationError(field, f"{field} must be a string")
    value = value.strip()
    if len(value) < min_len:
        raise ValidationError(field, f"{field} must be at least {min_len} characters")
    if len(value) > max_len:
        raise ValidationError(field, f"{field} must be at most {max_len} characters")
    return value


def clean_choice(data: dict, field: str, choices, default=None) -> Optional[str]:
    value = data.get(field)
    if value is None or value == "":
        return default
    if value not in choices:
        raise ValidationError(field, f"{field} must be one of: {', '.join(choices)}")
    return value


def clean_flag(data: dict, field: str, default: bool) -> bool:
    """JSON booleans, or the strings "true"/"false" sent by form-encoding clients."""
    value = data.get(field)
    if value is None:
        return default
    if isinstance(value, bool):
        return value
    if isinstance(value, str) and value.strip().lower() in ("true", "false"):
        return value.strip().lower() == "true"
    raise ValidationError(field, f"{field} must be true or false")


def normalize_email(value) -> str:
    if not isinstance(value, str):
        return ""
    return value.strip().lower()


def is_valid_email(email: str) -> bool:
    return isinstance(email, str) and len(email) <= 255 and bool(EMAIL_RE.match(email))


def page_args() -> Tuple[int, int]:
    default = current_app.config.get("PAGE_SIZE_DEFAULT", 10)
    max_size = current_app.config.get("PAGE_SIZE_MAX", 100)
    page = request.args.get("page", type=int) or 1
    limit = request.args.get("limit", type=int) or default
    return max(page, 1), max(1, min(limit, max_size))


def paginate(query, page: int, limit: int):
    """Returns (rows, total, total_pages)."""
    total = query.order_by(None).count()
    rows = query.limit(limit).offset((page - 1) * limit).all()
    total_pages = (total + limit - 1) // limit
    return rows, total, total_pages
