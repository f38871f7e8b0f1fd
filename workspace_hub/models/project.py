"""Project model: the marketplace project a workspace hangs off.

Projects are owned by the surrounding platform. The workspace core only
looks them up by id; it never creates or edits them outside tests and
demo scripts.
"""

from datetime import datetime, timezone

from workspace_hub.models import db
from workspace_hub.models.base import TABLE_OPTIONS


class Project(db.Model):
    """A client project on the marketplace."""

    __tablename__ = "projects"
    __table_args__ = TABLE_OPTIONS

    id = db.Column(db.Integer, primary_key=True)
    owner_id = db.Column(db.Integer, nullable=True, index=True)
    title = db.Column(db.String(180), nullable=False)
    description = db.Column(db.Text, nullable=True)
    status = db.Column(
        db.String(30), nullable=False, default="planning",
        comment="planning | in_progress | at_risk | completed | on_hold",
    )
    budget_currency = db.Column(db.String(6), nullable=False, default="USD")
    start_date = db.Column(db.Date, nullable=True)
    due_date = db.Column(db.Date, nullable=True)

    created_at = db.Column(
        db.DateTime(timezone=True),
        nullable=False,
        default=lambda: datetime.now(timezone.utc),
    )
    updated_at = db.Column(
        db.DateTime(timezone=True),
        nullable=False,
        default=lambda: datetime.now(timezone.utc),
        onupdate=lambda: datetime.now(timezone.utc),
    )

    workspace = db.relationship(
        "Workspace", back_populates="project", uselist=False, passive_deletes=True,
    )

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "owner_id": self.owner_id,
            "title": self.title,
            "description": self.description,
            "status": self.status,
            "budget_currency": self.budget_currency,
            "start_date": self.start_date.isoformat() if self.start_date else None,
            "due_date": self.due_date.isoformat() if self.due_date else None,
            "created_at": self.created_at.isoformat() if self.created_at else None,
            "updated_at": self.updated_at.isoformat() if self.updated_at else None,
        }

    def __repr__(self) -> str:
        return f"<Project {self.id}: {self.title}>"
