from flask import Blueprint, request, jsonify, g
from sqlalchemy import func, or_

from models import db
from models.issue import Issue, CATEGORIES, PRIORITIES, STATUSES
from models.user import User
from security.rbac import is_verified_officer, require_officer
from utils.audit import AuditAction, entity_ref, log_event
from utils.validation import ValidationError, clean_choice, clean_flag, clean_str, page_args, paginate

issues_bp = Blueprint("issues", __name__, url_prefix="/api/issues")

MAX_IMAGES = 10


def _clean_coordinates(data: dict):
    coords = data.get("location_coordinates")
    if coords is None:
        return None, None
    if not isinstance(coords, dict):
        raise ValidationError("location_coordinates", "location_coordinates must be an object with lat and lng")
    try:
        lat = float(coords.get("lat"))
        lng = float(coords.get("lng"))
    except (TypeError, ValueError):
        raise ValidationError("location_coordinates", "lat and lng must be numbers")
    if not (-90.0 <= lat <= 90.0) or not (-180.0 <= lng <= 180.0):
        raise ValidationError("location_coordinates", "Coordinates out of range")
    return lat, lng


def _clean_images(data: dict):
    images = data.get("images") or []
    if not isinstance(images, list) or not all(isinstance(i, str) and i.strip() for i in images):
        raise ValidationError("images", "images must be a list of URLs")
    if len(images) > MAX_IMAGES:
        raise ValidationError("images", f"At most {MAX_IMAGES} images per issue")
    return [i.strip() for i in images]


def _get_officer(officer_id):
    """Resolve an assignable officer, raising ValidationError when invalid."""
    try:
        officer = db.session.get(User, int(officer_id))
    except (TypeError, ValueError):
        officer = None
    if not officer or not officer.is_officer or not officer.is_active:
        raise ValidationError("officer_id", "Invalid officer ID")
    return officer


def _visible(issue: Issue) -> bool:
    if issue.is_public or is_verified_officer():
        return True
    user = getattr(g, "user", None)
    return user is not None and issue.citizen_id == user.id


@issues_bp.post("")
def create_issue():
    data = request.get_json(silent=True) or {}
    try:
        issue = Issue(
            title=clean_str(data, "title", 200, required=True),
            description=clean_str(data, "description", 2000, required=True),
            category=clean_choice(data, "category", CATEGORIES),
            priority=clean_choice(data, "priority", PRIORITIES, default="medium"),
            location=clean_str(data, "location", 300, required=True),
            images=_clean_images(data),
            audio_url=clean_str(data, "audio_url", 500),
            citizen_name=clean_str(data, "citizen_name", 100, required=True),
            citizen_contact=clean_str(data, "citizen_contact", 100, required=True),
            is_public=clean_flag(data, "is_public", default=True),
        )
        issue.latitude, issue.longitude = _clean_coordinates(data)
    except ValidationError as exc:
        return jsonify(error=exc.message, field=exc.field), 400
    if issue.category is None:
        return jsonify(error="category is required", field="category"), 400

    # a valid token links the report to its author; otherwise it stays anonymous
    user = getattr(g, "user", None)
    if user is not None:
        issue.citizen_id = user.id

    db.session.add(issue)
    db.session.commit()

    log_event(AuditAction.ISSUE_CREATE, actor_id=issue.citizen_id, target=issue,
              metadata={"category": issue.category})
    return jsonify(message="Issue created successfully", issue=issue.to_dict()), 201


@issues_bp.get("")
def list_issues():
    q = Issue.query
    if not is_verified_officer():
        q = q.filter(Issue.is_public.is_(True))

    for field, choices in (("status", STATUSES), ("category", CATEGORIES), ("priority", PRIORITIES)):
        value = request.args.get(field)
        if value:
            if value not in choices:
                return jsonify(error=f"Unknown {field}"), 400
            q = q.filter(getattr(Issue, field) == value)

    assigned = request.args.get("assigned_officer", type=int)
    if assigned is not None:
        q = q.filter(Issue.assigned_officer_id == assigned)
    citizen_id = request.args.get("citizen_id", type=int)
    if citizen_id is not None:
        q = q.filter(Issue.citizen_id == citizen_id)

    search = (request.args.get("search") or "").strip()
    if search:
        pattern = f"%{search}%"
        q = q.filter(or_(
            Issue.title.ilike(pattern),
            Issue.description.ilike(pattern),
            Issue.location.ilike(pattern),
            Issue.citizen_name.ilike(pattern),
        ))

    page, limit = page_args()
    rows, total, total_pages = paginate(q.order_by(Issue.created_at.desc(), Issue.id.desc()), page, limit)
    return jsonify(
        issues=[i.to_dict() for i in rows],
        total=total,
        total_pages=total_pages,
        current_page=page,
    ), 200


@issues_bp.get("/stats/overview")
@require_officer
def stats_overview():
    def grouped(column):
        rows = db.session.query(column, func.count(Issue.id)).group_by(column).all()
        return {key: count for key, count in rows}

    return jsonify(
        total=Issue.query.count(),
        status=grouped(Issue.status),
        category=grouped(Issue.category),
        priority=grouped(Issue.priority),
    ), 200


@issues_bp.get("/<int:issue_id>")
def get_issue(issue_id: int):
    issue = db.session.get(Issue, issue_id)
    if not issue or not _visible(issue):
        return jsonify(error="Issue not found"), 404
    return jsonify(issue=issue.to_dict()), 200


@issues_bp.put("/<int:issue_id>")
@require_officer
def update_issue(issue_id: int):
    issue = db.session.get(Issue, issue_id)
    if not issue:
        return jsonify(error="Issue not found"), 404

    data = request.get_json(silent=True) or {}
    try:
        status = clean_choice(data, "status", STATUSES)
        priority = clean_choice(data, "priority", PRIORITIES)
        notes = clean_str(data, "notes", 1000)
        officer = _get_officer(data["assigned_officer"]) if data.get("assigned_officer") else None
    except ValidationError as exc:
        return jsonify(error=exc.message, field=exc.field), 400

    changes = {}
    if status:
        issue.status = changes["status"] = status
    if priority:
        issue.priority = changes["priority"] = priority
    if "notes" in data:
        issue.notes = changes["notes"] = notes
    if officer:
        issue.assigned_officer_id = changes["assigned_officer"] = officer.id

    db.session.commit()
    log_event(AuditAction.ISSUE_UPDATE, actor_id=g.user.id, target=issue, metadata=changes)
    return jsonify(message="Issue updated successfully", issue=issue.to_dict()), 200


@issues_bp.patch("/<int:issue_id>/assign")
@require_officer
def assign_issue(issue_id: int):
    issue = db.session.get(Issue, issue_id)
    if not issue:
        return jsonify(error="Issue not found"), 404

    data = request.get_json(silent=True) or {}
    officer_id = data.get("officer_id")
    if officer_id is None:
        # explicit null unassigns
        issue.assigned_officer_id = None
    else:
        try:
            issue.assigned_officer_id = _get_officer(officer_id).id
        except ValidationError as exc:
            return jsonify(error=exc.message, field=exc.field), 400
        if issue.status == "pending":
            issue.status = "in-progress"

    db.session.commit()
    log_event(AuditAction.ISSUE_ASSIGN, actor_id=g.user.id, target=issue,
              metadata={"officer_id": issue.assigned_officer_id})
    return jsonify(message="Issue assigned successfully", issue=issue.to_dict()), 200


@issues_bp.delete("/<int:issue_id>")
@require_officer
def delete_issue(issue_id: int):
    issue = db.session.get(Issue, issue_id)
    if not issue:
        return jsonify(error="Issue not found"), 404

    ref = entity_ref(issue)
    db.session.delete(issue)
    db.session.commit()
    log_event(AuditAction.ISSUE_DELETE, actor_id=g.user.id, target=ref)
    return jsonify(message="Issue deleted successfully"), 200
