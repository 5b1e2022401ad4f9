from flask import Blueprint, jsonify, g, request
from sqlalchemy import or_
from sqlalchemy.exc import IntegrityError

from models import db
from models.user import User, ROLES
from security.rbac import is_verified_officer, require_officer
from utils.audit import AuditAction, log_event
from utils.auth_context import login_required
from utils.validation import (
    ValidationError, clean_str, is_valid_email, normalize_email, page_args, paginate,
)

users_bp = Blueprint("users", __name__, url_prefix="/api/users")


def _can_access(user_id: int) -> bool:
    # users see their own record, officers see everyone
    return g.user.id == user_id or is_verified_officer(g.user)


@users_bp.get("")
@require_officer
def list_users():
    role = (request.args.get("role") or "").strip().lower()
    search = (request.args.get("search") or "").strip()

    q = User.query.filter_by(is_active=True)
    if role:
        if role not in ROLES:
            return jsonify(error="Unknown role"), 400
        q = q.filter(User.role == role)
    if search:
        pattern = f"%{search}%"
        q = q.filter(or_(User.name.ilike(pattern), User.username.ilike(pattern), User.email.ilike(pattern)))

    page, limit = page_args()
    rows, total, total_pages = paginate(q.order_by(User.created_at.desc(), User.id.desc()), page, limit)
    return jsonify(
        users=[u.to_dict() for u in rows],
        total=total,
        total_pages=total_pages,
        current_page=page,
    ), 200


@users_bp.get("/<int:user_id>")
@login_required
def get_user(user_id: int):
    if not _can_access(user_id):
        return jsonify(error="Access denied"), 403
    user = db.session.get(User, user_id)
    if not user:
        return jsonify(error="User not found"), 404
    return jsonify(user=user.to_dict()), 200


@users_bp.put("/<int:user_id>")
@login_required
def update_user(user_id: int):
    if not _can_access(user_id):
        return jsonify(error="Access denied"), 403
    user = db.session.get(User, user_id)
    if not user:
        return jsonify(error="User not found"), 404

    data = request.get_json(silent=True) or {}
    try:
        name = clean_str(data, "name", 100)
        phone = clean_str(data, "phone", 20)
    except ValidationError as exc:
        return jsonify(error=exc.message, field=exc.field), 400

    if data.get("email") is not None:
        email = normalize_email(data.get("email"))
        if not is_valid_email(email):
            return jsonify(error="Please enter a valid email", field="email"), 400
        user.email = email

    if name:
        user.name = name
    if "phone" in data:
        user.phone = phone

    try:
        db.session.commit()
    except IntegrityError:
        db.session.rollback()
        return jsonify(error="Email already registered"), 409

    log_event(AuditAction.PROFILE_UPDATE, actor_id=g.user.id, target=user)
    return jsonify(message="Profile updated successfully", user=user.to_dict()), 200


@users_bp.delete("/<int:user_id>")
@require_officer
def deactivate_user(user_id: int):
    user = db.session.get(User, user_id)
    if not user:
        return jsonify(error="User not found"), 404
    if user.id == g.user.id:
        return jsonify(error="Cannot deactivate your own account"), 403

    user.is_active = False
    db.session.commit()

    log_event(AuditAction.USER_DEACTIVATE, actor_id=g.user.id, target=user)
    return jsonify(message="User deactivated successfully"), 200
