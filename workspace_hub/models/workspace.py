"""
Project Workspace Service
Workspace aggregate root and its collaboration collections.

Models:
    - Workspace: one per Project, created lazily on first access
    - WorkspaceBrief: narrative brief (exactly one per workspace)
    - WorkspaceWhiteboard: shared boards
    - WorkspaceFile: file vault entries
    - WorkspaceConversation / WorkspaceMessage: threaded chat
    - WorkspaceApproval: sign-off requests

Ownership chain: Project → Workspace → (brief, whiteboards, files,
conversations → messages, approvals)
"""

from datetime import datetime, timezone

from workspace_hub.models import db
from workspace_hub.models._serialize import as_list, as_map, iso
from workspace_hub.models.base import TABLE_OPTIONS, WorkspaceScopedModel


# ── Constants ────────────────────────────────────────────────────────────────

WORKSPACE_STATUSES = {"briefing", "planning", "in_progress", "at_risk", "on_hold", "completed"}
RISK_LEVELS = {"low", "medium", "high"}
BILLING_STATUSES = {"on_track", "pending", "invoiced", "overdue", "paid"}

WHITEBOARD_STATUSES = {"active", "archived"}
APPROVAL_STATUSES = {"pending", "in_review", "approved", "rejected"}
OPEN_APPROVAL_STATUSES = frozenset({"pending", "in_review"})

MESSAGE_PREVIEW_LENGTH = 300


# ═══════════════════════════════════════════════════════════════════════════
#  WORKSPACE
# ═══════════════════════════════════════════════════════════════════════════

class Workspace(db.Model):
    """Per-project aggregate root owning every operational record.

    ``project_id`` is unique: at most one workspace exists per project.
    ``last_activity_at`` / ``updated_by_id`` are stamped by every mutation
    of a child row.
    """

    __tablename__ = "workspaces"
    __table_args__ = TABLE_OPTIONS

    id = db.Column(db.Integer, primary_key=True)
    project_id = db.Column(
        db.Integer,
        db.ForeignKey("projects.id", ondelete="CASCADE"),
        nullable=False,
        unique=True,
        index=True,
    )
    status = db.Column(db.String(30), nullable=False, default="briefing")
    progress_percent = db.Column(db.Float, nullable=False, default=0)
    health_score = db.Column(db.Float, nullable=True, comment="0-100")
    velocity_score = db.Column(db.Float, nullable=True, comment="0-100")
    risk_level = db.Column(db.String(20), nullable=False, default="low")
    client_satisfaction = db.Column(db.Float, nullable=True, comment="0-5 rating")
    automation_coverage = db.Column(db.Float, nullable=True, comment="percent")
    billing_status = db.Column(db.String(30), nullable=True)
    next_milestone = db.Column(db.String(180), nullable=True)
    next_milestone_due_at = db.Column(db.DateTime(timezone=True), nullable=True)
    metrics_snapshot = db.Column(db.JSON, nullable=True)
    notes = db.Column(db.Text, nullable=True)
    last_activity_at = db.Column(db.DateTime(timezone=True), nullable=True)
    updated_by_id = db.Column(db.Integer, nullable=True)

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

    project = db.relationship("Project", back_populates="workspace")

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "project_id": self.project_id,
            "status": self.status,
            "progress_percent": self.progress_percent,
            "health_score": self.health_score,
            "velocity_score": self.velocity_score,
            "risk_level": self.risk_level,
            "client_satisfaction": self.client_satisfaction,
            "automation_coverage": self.automation_coverage,
            "billing_status": self.billing_status,
            "next_milestone": self.next_milestone,
            "next_milestone_due_at": iso(self.next_milestone_due_at),
            "metrics_snapshot": as_map(self.metrics_snapshot),
            "notes": self.notes,
            "last_activity_at": iso(self.last_activity_at),
            "updated_by_id": self.updated_by_id,
            "created_at": iso(self.created_at),
            "updated_at": iso(self.updated_at),
        }

    def __repr__(self) -> str:
        return f"<Workspace {self.id} project={self.project_id}>"


# ═══════════════════════════════════════════════════════════════════════════
#  BRIEF
# ═══════════════════════════════════════════════════════════════════════════

class WorkspaceBrief(WorkspaceScopedModel):
    """Narrative brief. Unique per workspace."""

    __tablename__ = "workspace_briefs"
    __table_args__ = (
        db.UniqueConstraint("workspace_id", name="uq_workspace_briefs_workspace"),
        TABLE_OPTIONS,
    )

    title = db.Column(db.String(180), nullable=False)
    summary = db.Column(db.Text, nullable=True)
    objectives = db.Column(db.JSON, nullable=True)
    deliverables = db.Column(db.JSON, nullable=True)
    success_metrics = db.Column(db.JSON, nullable=True)
    client_stakeholders = db.Column(db.JSON, nullable=True)
    last_updated_by_id = db.Column(db.Integer, nullable=True)

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "workspace_id": self.workspace_id,
            "title": self.title,
            "summary": self.summary,
            "objectives": as_list(self.objectives),
            "deliverables": as_list(self.deliverables),
            "success_metrics": as_list(self.success_metrics),
            "client_stakeholders": as_list(self.client_stakeholders),
            "last_updated_by_id": self.last_updated_by_id,
            "updated_at": iso(self.updated_at),
        }


# ═══════════════════════════════════════════════════════════════════════════
#  WHITEBOARDS & FILES
# ═══════════════════════════════════════════════════════════════════════════

class WorkspaceWhiteboard(WorkspaceScopedModel):
    __tablename__ = "workspace_whiteboards"

    title = db.Column(db.String(180), nullable=False)
    status = db.Column(db.String(20), nullable=False, default="active")
    owner_name = db.Column(db.String(120), nullable=True)
    thumbnail_url = db.Column(db.String(500), nullable=True)
    active_collaborators = db.Column(db.JSON, nullable=True)
    tags = db.Column(db.JSON, nullable=True)
    last_edited_at = db.Column(db.DateTime(timezone=True), nullable=True)

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "workspace_id": self.workspace_id,
            "title": self.title,
            "status": self.status,
            "owner_name": self.owner_name,
            "thumbnail_url": self.thumbnail_url,
            "active_collaborators": as_list(self.active_collaborators),
            "tags": as_list(self.tags),
            "last_edited_at": iso(self.last_edited_at),
        }


class WorkspaceFile(WorkspaceScopedModel):
    """File vault entry. Storage itself is external; we keep the pointer."""

    __tablename__ = "workspace_files"

    name = db.Column(db.String(255), nullable=False)
    category = db.Column(db.String(120), nullable=True)
    file_type = db.Column(db.String(60), nullable=True)
    storage_provider = db.Column(db.String(60), nullable=False, default="internal")
    storage_path = db.Column(db.String(500), nullable=True)
    version = db.Column(db.String(30), nullable=True)
    size_bytes = db.Column(db.BigInteger, nullable=False, default=0)
    tags = db.Column(db.JSON, nullable=True)
    permissions = db.Column(db.JSON, nullable=True)
    watermark_settings = db.Column(db.JSON, nullable=True)
    uploaded_by_name = db.Column(db.String(120), nullable=True)
    uploaded_at = db.Column(db.DateTime(timezone=True), nullable=True)

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "workspace_id": self.workspace_id,
            "name": self.name,
            "category": self.category,
            "file_type": self.file_type,
            "storage_provider": self.storage_provider,
            "storage_path": self.storage_path,
            "version": self.version,
            "size_bytes": self.size_bytes or 0,
            "tags": as_list(self.tags),
            "permissions": as_map(self.permissions),
            "watermark_settings": as_map(self.watermark_settings),
            "uploaded_by_name": self.uploaded_by_name,
            "uploaded_at": iso(self.uploaded_at),
        }


# ═══════════════════════════════════════════════════════════════════════════
#  CONVERSATIONS
# ═══════════════════════════════════════════════════════════════════════════

class WorkspaceConversation(WorkspaceScopedModel):
    """Chat thread. Preview/unread fields are maintained on message append."""

    __tablename__ = "workspace_conversations"

    topic = db.Column(db.String(180), nullable=False)
    priority = db.Column(db.String(20), nullable=False, default="normal")
    unread_count = db.Column(db.Integer, nullable=False, default=0)
    last_message_preview = db.Column(db.String(MESSAGE_PREVIEW_LENGTH), nullable=True)
    last_message_at = db.Column(db.DateTime(timezone=True), nullable=True)
    last_read_at = db.Column(db.DateTime(timezone=True), nullable=True)
    participants = db.Column(db.JSON, nullable=True)

    messages = db.relationship(
        "WorkspaceMessage",
        backref="conversation",
        cascade="all, delete-orphan",
        passive_deletes=True,
        order_by="WorkspaceMessage.posted_at",
    )

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "workspace_id": self.workspace_id,
            "topic": self.topic,
            "priority": self.priority,
            "unread_count": self.unread_count or 0,
            "last_message_preview": self.last_message_preview,
            "last_message_at": iso(self.last_message_at),
            "last_read_at": iso(self.last_read_at),
            "participants": as_list(self.participants),
        }


class WorkspaceMessage(WorkspaceScopedModel):
    __tablename__ = "workspace_messages"

    conversation_id = db.Column(
        db.Integer,
        db.ForeignKey("workspace_conversations.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    author_name = db.Column(db.String(120), nullable=True)
    author_id = db.Column(db.Integer, nullable=True)
    body = db.Column(db.Text, nullable=False)
    attachments = db.Column(db.JSON, nullable=True)
    posted_at = db.Column(
        db.DateTime(timezone=True),
        nullable=False,
        default=lambda: datetime.now(timezone.utc),
    )

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "workspace_id": self.workspace_id,
            "conversation_id": self.conversation_id,
            "author_name": self.author_name,
            "author_id": self.author_id,
            "body": self.body,
            "attachments": as_list(self.attachments),
            "posted_at": iso(self.posted_at),
        }


# ═══════════════════════════════════════════════════════════════════════════
#  APPROVALS
# ═══════════════════════════════════════════════════════════════════════════

class WorkspaceApproval(WorkspaceScopedModel):
    __tablename__ = "workspace_approvals"

    title = db.Column(db.String(180), nullable=False)
    stage = db.Column(db.String(80), nullable=True)
    status = db.Column(db.String(20), nullable=False, default="pending")
    owner_name = db.Column(db.String(120), nullable=True)
    approver_email = db.Column(db.String(255), nullable=True)
    due_at = db.Column(db.DateTime(timezone=True), nullable=True)
    submitted_at = db.Column(db.DateTime(timezone=True), nullable=True)
    decided_at = db.Column(db.DateTime(timezone=True), nullable=True)
    decision_notes = db.Column(db.Text, nullable=True)
    metadata_json = db.Column("metadata", db.JSON, nullable=True)

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "workspace_id": self.workspace_id,
            "title": self.title,
            "stage": self.stage,
            "status": self.status,
            "owner_name": self.owner_name,
            "approver_email": self.approver_email,
            "due_at": iso(self.due_at),
            "submitted_at": iso(self.submitted_at),
            "decided_at": iso(self.decided_at),
            "decision_notes": self.decision_notes,
            "metadata": as_map(self.metadata_json),
        }
