from models.db import db
from utils.clock import utcnow

ROLE_CITIZEN = "citizen"
ROLE_OFFICER = "officer"
ROLES = (ROLE_CITIZEN, ROLE_OFFICER)


class User(db.Model):
    __tablename__ = "users"

    id = db.Column(db.Integer, primary_key=True)

    username = db.Column(db.String(50), unique=True, nullable=False, index=True)
    password_hash = db.Column(db.String(255), nullable=False)
    role = db.Column(db.String(20), nullable=False, default=ROLE_CITIZEN)
    name = db.Column(db.String(100), nullable=False)
    email = db.Column(db.String(255), unique=True, nullable=False, index=True)
    phone = db.Column(db.String(20), nullable=True)
    is_active = db.Column(db.Boolean, default=True, nullable=False)

    # officer-only fields
    officer_id = db.Column(db.String(50), unique=True, nullable=True)
    department = db.Column(db.String(100), nullable=True)
    designation = db.Column(db.String(100), nullable=True)
    is_verified = db.Column(db.Boolean, default=False, nullable=False)
    verified_by = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=True)
    verified_at = db.Column(db.DateTime, nullable=True)

    # lockout bookkeeping, owned by security.lockout
    failed_login_attempts = db.Column(db.Integer, default=0, nullable=False)
    locked_until = db.Column(db.DateTime, nullable=True)
    last_login_at = db.Column(db.DateTime, nullable=True)
    # bumped on every lockout write; conditional updates key on it
    auth_version = db.Column(db.Integer, default=0, nullable=False)

    created_at = db.Column(db.DateTime, default=utcnow, nullable=False)
    updated_at = db.Column(db.DateTime, default=utcnow, onupdate=utcnow, nullable=False)

    @property
    def is_officer(self) -> bool:
        return self.role == ROLE_OFFICER

    def is_officer_verified(self) -> bool:
        return self.is_verified if self.is_officer else True

    def to_dict(self) -> dict:
        # never expose the hash or lockout counters
        return {
            "id": self.id,
            "username": self.username,
            "role": self.role,
            "name": self.name,
            "email": self.email,
            "phone": self.phone,
            "is_active": self.is_active,
            "officer_id": self.officer_id,
            "department": self.department,
            "designation": self.designation,
            "is_verified": self.is_verified,
            "verified_at": self.verified_at.isoformat() if self.verified_at else None,
            "last_login_at": self.last_login_at.isoformat() if self.last_login_at else None,
            "created_at": self.created_at.isoformat() if self.created_at else None,
        }

    def to_summary(self) -> dict:
        return {"id": self.id, "name": self.name, "username": self.username}
