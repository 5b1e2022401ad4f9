from models.db import db
from utils.clock import utcnow

CATEGORIES = ("road", "water", "electricity", "garbage", "park", "other")
PRIORITIES = ("low", "medium", "high")
STATUSES = ("pending", "in-progress", "resolved", "rejected")


class Issue(db.Model):
    __tablename__ = "issues"

    id = db.Column(db.Integer, primary_key=True)
    title = db.Column(db.String(200), nullable=False)
    description = db.Column(db.Text, nullable=False)
    category = db.Column(db.String(20), nullable=False, index=True)
    priority = db.Column(db.String(10), nullable=False, default="medium")
    status = db.Column(db.String(20), nullable=False, default="pending", index=True)

    location = db.Column(db.String(300), nullable=False)
    latitude = db.Column(db.Float, nullable=True)
    longitude = db.Column(db.Float, nullable=True)

    images = db.Column(db.JSON, nullable=False, default=list)
    audio_url = db.Column(db.String(500), nullable=True)

    # nullable: anonymous submissions are allowed
    citizen_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=True, index=True)
    citizen_name = db.Column(db.String(100), nullable=False)
    citizen_contact = db.Column(db.String(100), nullable=False)

    assigned_officer_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=True, index=True)
    notes = db.Column(db.String(1000), nullable=True)
    is_public = db.Column(db.Boolean, default=True, nullable=False)

    created_at = db.Column(db.DateTime, default=utcnow, nullable=False, index=True)
    updated_at = db.Column(db.DateTime, default=utcnow, onupdate=utcnow, nullable=False)

    citizen = db.relationship("User", foreign_keys=[citizen_id])
    assigned_officer = db.relationship("User", foreign_keys=[assigned_officer_id])

    def to_dict(self) -> dict:
        coordinates = None
        if self.latitude is not None and self.longitude is not None:
            coordinates = {"lat": self.latitude, "lng": self.longitude}
        return {
            "id": self.id,
            "title": self.title,
            "description": self.description,
            "category": self.category,
            "priority": self.priority,
            "status": self.status,
            "location": self.location,
            "location_coordinates": coordinates,
            "images": list(self.images or []),
            "audio_url": self.audio_url,
            "citizen": (
                {"id": self.citizen.id, "name": self.citizen.name, "email": self.citizen.email}
                if self.citizen else None
            ),
            "citizen_name": self.citizen_name,
            "citizen_contact": self.citizen_contact,
            "assigned_officer": self.assigned_officer.to_summary() if self.assigned_officer else None,
            "notes": self.notes,
            "is_public": self.is_public,
            "created_at": self.created_at.isoformat(),
            "updated_at": self.updated_at.isoformat(),
        }
