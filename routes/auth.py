from datetime import timedelta

from flask import Blueprint, request, jsonify, current_app, g
from sqlalchemy import or_
from sqlalchemy.exc import IntegrityError

from models import db
from models.user import User, ROLES, ROLE_CITIZEN, ROLE_OFFICER
from security.password import hash_password
from security.account_store import SqlAccountRepository
from security.lockout import AuthOutcome, LockoutGuard
from security.password_policy import validate_password, password_strength
from security.rbac import require_officer
from security.tokens import create_access_token
from utils.audit import AuditAction, log_event
from utils.auth_context import login_required
from utils.clock import utcnow
from utils.validation import ValidationError, clean_choice, clean_str, is_valid_email, normalize_email


auth_bp = Blueprint("auth", __name__, url_prefix="/api/auth")

LOCKED_MESSAGE = "Account is temporarily locked due to too many failed login attempts. Please try again later."


def _lockout_guard() -> LockoutGuard:
    cfg = current_app.config
    return LockoutGuard(
        SqlAccountRepository(),
        clock=current_app.extensions.get("login_clock", utcnow),
        max_attempts=cfg.get("MAX_LOGIN_ATTEMPTS", 5),
        lock_duration=timedelta(seconds=cfg.get("LOCKOUT_SECONDS", 7200)),
        save_retries=cfg.get("LOCKOUT_SAVE_RETRIES", 3),
    )


def _auth_response(user: User, message: str, status: int):
    token = create_access_token(user.id)
    return jsonify(message=message, token=token, user=user.to_dict()), status


@auth_bp.post("/register")
def register():
    data = request.get_json(silent=True) or {}
    try:
        username = clean_str(data, "username", 50, required=True, min_len=3)
        name = clean_str(data, "name", 100, required=True)
        phone = clean_str(data, "phone", 20)
        role = clean_choice(data, "role", ROLES, default=ROLE_CITIZEN)
        officer_id = clean_str(data, "officer_id", 50)
        department = clean_str(data, "department", 100)
        designation = clean_str(data, "designation", 100)
    except ValidationError as exc:
        return jsonify(error=exc.message, field=exc.field), 400

    email = normalize_email(data.get("email"))
    if not is_valid_email(email):
        return jsonify(error="Please enter a valid email", field="email"), 400

    password = data.get("password") or ""
    valid, errors = validate_password(password)
    if not valid:
        return jsonify(error="Password does not meet policy", details=errors), 400

    existing = User.query.filter(or_(User.username == username, User.email == email)).first()
    if existing:
        log_event(AuditAction.REGISTER_FAIL_EXISTS, metadata={"username": username, "email": email})
        return jsonify(error="User with this username or email already exists"), 409

    user = User(
        username=username,
        password_hash=hash_password(password, rounds=current_app.config.get("BCRYPT_ROUNDS", 12)),
        name=name,
        email=email,
        phone=phone,
        role=role,
        # citizens are verified on sign-up, officers wait for an existing officer
        is_verified=(role == ROLE_CITIZEN),
    )
    if role == ROLE_OFFICER:
        user.officer_id = officer_id
        user.department = department
        user.designation = designation

    db.session.add(user)
    try:
        db.session.commit()
    except IntegrityError:
        db.session.rollback()
        return jsonify(error="User with this username, email or officer id already exists"), 409

    log_event(AuditAction.REGISTER_SUCCESS, actor_id=user.id, target=user, metadata={"role": role})
    return _auth_response(user, "User registered successfully", 201)


@auth_bp.post("/login")
def login():
    data = request.get_json(silent=True) or {}
    username = data.get("username") or ""
    password = data.get("password") or ""
    if not isinstance(username, str) or not isinstance(password, str):
        return jsonify(error="Username and password must be strings"), 400
    username = username.strip()
    if not username or not password:
        return jsonify(error="Username and password are required"), 400

    result = _lockout_guard().authenticate(username, password)
    generic = current_app.config.get("AUTH_GENERIC_FAILURES", False)

    if result.outcome is AuthOutcome.ACCOUNT_LOCKED:
        log_event(
            AuditAction.LOGIN_LOCKED,
            actor_id=result.account.id,
            metadata={"username": username, "retry_after": result.retry_after_seconds},
        )
        if generic:
            return jsonify(error="Invalid credentials"), 401
        return jsonify(error=LOCKED_MESSAGE, retry_after_seconds=result.retry_after_seconds), 423

    if result.outcome is AuthOutcome.INVALID_CREDENTIAL:
        account = result.account
        log_event(
            AuditAction.LOGIN_FAIL,
            actor_id=account.id if account else None,
            metadata={
                "username": username,
                "fail_count": account.failed_attempts if account else None,
                "locked_now": result.locked_now,
            },
        )
        if result.locked_now and not generic:
            return jsonify(
                error="Too many failed attempts. Account locked.",
                retry_after_seconds=result.retry_after_seconds,
            ), 423
        return jsonify(error="Invalid credentials"), 401

    # the row may have been deactivated after the guard read it
    user = db.session.get(User, result.account.id, populate_existing=True)
    if user is None or not user.is_active:
        return jsonify(error="Invalid credentials"), 401
    if not user.is_officer_verified():
        log_event(AuditAction.LOGIN_OFFICER_UNVERIFIED, actor_id=user.id, target=user)
        return jsonify(error="Officer account is not verified. Please contact administrator."), 403

    log_event(AuditAction.LOGIN_SUCCESS, actor_id=user.id, target=user)
    return _auth_response(user, "Login successful", 200)


@auth_bp.post("/password_strength")
def check_password_strength():
    data = request.get_json(silent=True) or {}
    password = data.get("password") or ""
    return jsonify(password_strength(password)), 200


@auth_bp.get("/me")
@login_required
def me():
    return jsonify(user=g.user.to_dict()), 200


@auth_bp.post("/logout")
@login_required
def logout():
    # tokens are stateless; the client drops its copy
    log_event(AuditAction.LOGOUT, actor_id=g.user.id)
    return jsonify(message="Logout successful"), 200


@auth_bp.post("/verify-officer/<int:user_id>")
@require_officer
def verify_officer(user_id: int):
    officer = db.session.get(User, user_id)
    if not officer:
        return jsonify(error="Officer not found"), 404
    if not officer.is_officer:
        return jsonify(error="User is not an officer"), 400
    if officer.is_verified:
        return jsonify(error="Officer is already verified"), 400

    officer.is_verified = True
    officer.verified_by = g.user.id
    officer.verified_at = utcnow()
    db.session.commit()

    log_event(AuditAction.OFFICER_VERIFIED, actor_id=g.user.id, target=officer)
    return jsonify(message="Officer verified successfully", officer=officer.to_dict()), 200


@auth_bp.get("/unverified-officers")
@require_officer
def unverified_officers():
    officers = (
        User.query
        .filter_by(role=ROLE_OFFICER, is_verified=False, is_active=True)
        .order_by(User.created_at.desc())
        .all()
    )
    return jsonify(officers=[o.to_dict() for o in officers]), 200
