"""
Project Workspace Service
Operations domain models: the delivery-management side of a workspace.

Models:
    - WorkspaceTimeline: delivery timeline (at most one per workspace)
    - WorkspaceTask / WorkspaceTaskAssignment: Gantt/kanban tasks + staffing
    - WorkspaceBudgetLine: planned vs actual spend, in cents
    - WorkspaceObject: artifacts and deliverables
    - WorkspaceTimelineEvent, WorkspaceMeeting, WorkspaceCalendarEntry
    - WorkspaceRole, WorkspaceInvite, WorkspaceHrRecord: people
    - WorkspaceSubmission: deliverables sent for review
    - WorkspaceTimeLog: tracked time, optionally against a task
    - WorkspaceTarget, WorkspaceObjective: goals

Assignments are the only rows deleted together with their parent (Task).
"""

from workspace_hub.models import db
from workspace_hub.models._serialize import as_list, as_map, iso
from workspace_hub.models.base import TABLE_OPTIONS, WorkspaceScopedModel


# ── Constants ────────────────────────────────────────────────────────────────

TASK_STATUSES = {"planned", "in_progress", "blocked", "at_risk", "completed"}
TASK_PRIORITIES = {"low", "medium", "high", "urgent"}
BUDGET_STATUSES = {"planned", "tracking", "in_review", "approved", "overspent", "closed"}
SUBMISSION_STATUSES = {"draft", "submitted", "in_review", "approved", "changes_requested", "rejected"}
INVITE_STATUSES = {"pending", "accepted", "declined", "revoked", "expired"}
HR_STATUSES = {"active", "onboarding", "on_leave", "offboarded"}
GOAL_STATUSES = {"planned", "in_progress", "at_risk", "completed"}

COMPLETED = "completed"


# ═══════════════════════════════════════════════════════════════════════════
#  TIMELINE & TASKS
# ═══════════════════════════════════════════════════════════════════════════

class WorkspaceTimeline(WorkspaceScopedModel):
    """Delivery timeline. Unique per workspace (get-or-create)."""

    __tablename__ = "workspace_timelines"
    __table_args__ = (
        db.UniqueConstraint("workspace_id", name="uq_workspace_timelines_workspace"),
        TABLE_OPTIONS,
    )

    name = db.Column(db.String(180), nullable=False)
    timezone = db.Column(db.String(60), nullable=False, default="UTC")
    start_date = db.Column(db.Date, nullable=True)
    end_date = db.Column(db.Date, nullable=True)
    baseline_start_date = db.Column(db.Date, nullable=True)
    baseline_end_date = db.Column(db.Date, nullable=True)
    owner_name = db.Column(db.String(120), nullable=True)

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "workspace_id": self.workspace_id,
            "name": self.name,
            "timezone": self.timezone,
            "start_date": iso(self.start_date),
            "end_date": iso(self.end_date),
            "baseline_start_date": iso(self.baseline_start_date),
            "baseline_end_date": iso(self.baseline_end_date),
            "owner_name": self.owner_name,
        }


class WorkspaceTask(WorkspaceScopedModel):
    __tablename__ = "workspace_tasks"

    title = db.Column(db.String(180), nullable=False)
    description = db.Column(db.Text, nullable=True)
    owner_name = db.Column(db.String(120), nullable=True)
    owner_type = db.Column(db.String(40), nullable=True, comment="agency_member | freelancer | company_member")
    start_date = db.Column(db.Date, nullable=True)
    end_date = db.Column(db.Date, nullable=True)
    status = db.Column(db.String(30), nullable=False, default="planned", index=True)
    lane = db.Column(db.String(80), nullable=True)
    progress_percent = db.Column(db.Float, nullable=False, default=0)
    workload_hours = db.Column(db.Float, nullable=True)
    color = db.Column(db.String(20), nullable=True)
    priority = db.Column(db.String(20), nullable=False, default="medium")
    dependencies = db.Column(db.JSON, nullable=True, comment="list of task ids")
    metadata_json = db.Column("metadata", db.JSON, nullable=True)

    assignments = db.relationship(
        "WorkspaceTaskAssignment",
        backref="task",
        cascade="all, delete-orphan",
        passive_deletes=True,
        order_by="WorkspaceTaskAssignment.id",
    )

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "workspace_id": self.workspace_id,
            "title": self.title,
            "description": self.description,
            "owner_name": self.owner_name,
            "owner_type": self.owner_type,
            "start_date": iso(self.start_date),
            "end_date": iso(self.end_date),
            "status": self.status,
            "lane": self.lane,
            "progress_percent": self.progress_percent,
            "workload_hours": self.workload_hours,
            "color": self.color,
            "priority": self.priority,
            "dependencies": as_list(self.dependencies),
            "metadata": as_map(self.metadata_json),
            "created_at": iso(self.created_at),
            "updated_at": iso(self.updated_at),
        }


class WorkspaceTaskAssignment(WorkspaceScopedModel):
    __tablename__ = "workspace_task_assignments"

    task_id = db.Column(
        db.Integer,
        db.ForeignKey("workspace_tasks.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    assignee_name = db.Column(db.String(120), nullable=False)
    assignee_role = db.Column(db.String(120), nullable=True)
    allocation_percent = db.Column(db.Float, nullable=True)
    hours_committed = db.Column(db.Float, nullable=True)
    status = db.Column(db.String(30), nullable=False, default="active")
    notes = db.Column(db.Text, nullable=True)

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "task_id": self.task_id,
            "assignee_name": self.assignee_name,
            "assignee_role": self.assignee_role,
            "allocation_percent": self.allocation_percent,
            "hours_committed": self.hours_committed,
            "status": self.status,
            "notes": self.notes,
        }


# ═══════════════════════════════════════════════════════════════════════════
#  BUDGET & OBJECTS
# ═══════════════════════════════════════════════════════════════════════════

class WorkspaceBudgetLine(WorkspaceScopedModel):
    __tablename__ = "workspace_budget_lines"

    category = db.Column(db.String(120), nullable=False)
    description = db.Column(db.Text, nullable=True)
    planned_amount_cents = db.Column(db.BigInteger, nullable=False, default=0)
    actual_amount_cents = db.Column(db.BigInteger, nullable=False, default=0)
    currency = db.Column(db.String(3), nullable=False, default="USD")
    status = db.Column(db.String(30), nullable=False, default="planned")
    owner_name = db.Column(db.String(120), nullable=True)
    approvals_required = db.Column(db.Integer, nullable=False, default=0)
    notes = db.Column(db.Text, nullable=True)

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "workspace_id": self.workspace_id,
            "category": self.category,
            "description": self.description,
            "planned_amount_cents": self.planned_amount_cents or 0,
            "actual_amount_cents": self.actual_amount_cents or 0,
            "currency": self.currency,
            "status": self.status,
            "owner_name": self.owner_name,
            "approvals_required": self.approvals_required,
            "notes": self.notes,
        }


class WorkspaceObject(WorkspaceScopedModel):
    """Artifact / deliverable record (blueprints, playbooks, portals...)."""

    __tablename__ = "workspace_objects"

    name = db.Column(db.String(180), nullable=False)
    object_type = db.Column(db.String(60), nullable=True)
    status = db.Column(db.String(30), nullable=False, default="planned")
    owner_name = db.Column(db.String(120), nullable=True)
    description = db.Column(db.Text, nullable=True)
    due_at = db.Column(db.DateTime(timezone=True), nullable=True)
    tags = db.Column(db.JSON, nullable=True)
    metadata_json = db.Column("metadata", db.JSON, nullable=True)

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "workspace_id": self.workspace_id,
            "name": self.name,
            "object_type": self.object_type,
            "status": self.status,
            "owner_name": self.owner_name,
            "description": self.description,
            "due_at": iso(self.due_at),
            "tags": as_list(self.tags),
            "metadata": as_map(self.metadata_json),
        }


# ═══════════════════════════════════════════════════════════════════════════
#  SCHEDULE: EVENTS, MEETINGS, CALENDAR
# ═══════════════════════════════════════════════════════════════════════════

class WorkspaceTimelineEvent(WorkspaceScopedModel):
    __tablename__ = "workspace_timeline_events"

    title = db.Column(db.String(180), nullable=False)
    description = db.Column(db.Text, nullable=True)
    event_date = db.Column(db.DateTime(timezone=True), nullable=False)
    event_type = db.Column(db.String(60), nullable=True)
    owner_name = db.Column(db.String(120), nullable=True)
    milestone = db.Column(db.Boolean, nullable=False, default=False)
    color = db.Column(db.String(20), nullable=True)
    metadata_json = db.Column("metadata", db.JSON, nullable=True)

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "workspace_id": self.workspace_id,
            "title": self.title,
            "description": self.description,
            "event_date": iso(self.event_date),
            "event_type": self.event_type,
            "owner_name": self.owner_name,
            "milestone": bool(self.milestone),
            "color": self.color,
            "metadata": as_map(self.metadata_json),
        }


class WorkspaceMeeting(WorkspaceScopedModel):
    __tablename__ = "workspace_meetings"

    title = db.Column(db.String(180), nullable=False)
    agenda = db.Column(db.Text, nullable=True)
    meeting_type = db.Column(db.String(60), nullable=True)
    location = db.Column(db.String(180), nullable=True)
    start_at = db.Column(db.DateTime(timezone=True), nullable=False)
    end_at = db.Column(db.DateTime(timezone=True), nullable=True)
    host_name = db.Column(db.String(120), nullable=True)
    attendees = db.Column(db.JSON, nullable=True)
    action_items = db.Column(db.JSON, nullable=True)
    resources = db.Column(db.JSON, nullable=True)

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "workspace_id": self.workspace_id,
            "title": self.title,
            "agenda": self.agenda,
            "meeting_type": self.meeting_type,
            "location": self.location,
            "start_at": iso(self.start_at),
            "end_at": iso(self.end_at),
            "host_name": self.host_name,
            "attendees": as_list(self.attendees),
            "action_items": as_list(self.action_items),
            "resources": as_list(self.resources),
        }


class WorkspaceCalendarEntry(WorkspaceScopedModel):
    __tablename__ = "workspace_calendar_entries"

    title = db.Column(db.String(180), nullable=False)
    start_at = db.Column(db.DateTime(timezone=True), nullable=False)
    end_at = db.Column(db.DateTime(timezone=True), nullable=True)
    event_type = db.Column(db.String(60), nullable=True)
    owner_name = db.Column(db.String(120), nullable=True)
    visibility = db.Column(db.String(30), nullable=False, default="workspace")
    metadata_json = db.Column("metadata", db.JSON, nullable=True)

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "workspace_id": self.workspace_id,
            "title": self.title,
            "start_at": iso(self.start_at),
            "end_at": iso(self.end_at),
            "event_type": self.event_type,
            "owner_name": self.owner_name,
            "visibility": self.visibility,
            "metadata": as_map(self.metadata_json),
        }


# ═══════════════════════════════════════════════════════════════════════════
#  PEOPLE: ROLES, INVITES, HR
# ═══════════════════════════════════════════════════════════════════════════

class WorkspaceRole(WorkspaceScopedModel):
    __tablename__ = "workspace_roles"

    role_name = db.Column(db.String(120), nullable=False)
    member_name = db.Column(db.String(120), nullable=False)
    responsibilities = db.Column(db.Text, nullable=True)
    permissions = db.Column(db.JSON, nullable=True)
    contact_email = db.Column(db.String(255), nullable=True)
    contact_phone = db.Column(db.String(50), nullable=True)
    avatar_url = db.Column(db.String(500), nullable=True)

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "workspace_id": self.workspace_id,
            "role_name": self.role_name,
            "member_name": self.member_name,
            "responsibilities": self.responsibilities,
            "permissions": as_list(self.permissions),
            "contact_email": self.contact_email,
            "contact_phone": self.contact_phone,
            "avatar_url": self.avatar_url,
        }


class WorkspaceSubmission(WorkspaceScopedModel):
    __tablename__ = "workspace_submissions"

    title = db.Column(db.String(180), nullable=False)
    description = db.Column(db.Text, nullable=True)
    status = db.Column(db.String(30), nullable=False, default="submitted")
    submitted_at = db.Column(db.DateTime(timezone=True), nullable=True)
    reviewer_name = db.Column(db.String(120), nullable=True)
    decision_at = db.Column(db.DateTime(timezone=True), nullable=True)
    decision_notes = db.Column(db.Text, nullable=True)
    attachments = db.Column(db.JSON, nullable=True)
    owner_name = db.Column(db.String(120), nullable=True)

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "workspace_id": self.workspace_id,
            "title": self.title,
            "description": self.description,
            "status": self.status,
            "submitted_at": iso(self.submitted_at),
            "reviewer_name": self.reviewer_name,
            "decision_at": iso(self.decision_at),
            "decision_notes": self.decision_notes,
            "attachments": as_list(self.attachments),
            "owner_name": self.owner_name,
        }


class WorkspaceInvite(WorkspaceScopedModel):
    """Invitation to join the workspace. ``token`` never leaves the service."""

    __tablename__ = "workspace_invites"

    email = db.Column(db.String(255), nullable=False)
    role_name = db.Column(db.String(120), nullable=False)
    status = db.Column(db.String(20), nullable=False, default="pending")
    invited_by = db.Column(db.String(120), nullable=True)
    invited_at = db.Column(db.DateTime(timezone=True), nullable=False)
    expires_at = db.Column(db.DateTime(timezone=True), nullable=True)
    accepted_at = db.Column(db.DateTime(timezone=True), nullable=True)
    token = db.Column(db.String(120), nullable=True, unique=True)
    metadata_json = db.Column("metadata", db.JSON, nullable=True)

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "workspace_id": self.workspace_id,
            "email": self.email,
            "role_name": self.role_name,
            "status": self.status,
            "invited_by": self.invited_by,
            "invited_at": iso(self.invited_at),
            "expires_at": iso(self.expires_at),
            "accepted_at": iso(self.accepted_at),
            "has_token": bool(self.token),
            "metadata": as_map(self.metadata_json),
        }


class WorkspaceHrRecord(WorkspaceScopedModel):
    __tablename__ = "workspace_hr_records"

    member_name = db.Column(db.String(120), nullable=False)
    role_name = db.Column(db.String(120), nullable=False)
    employment_type = db.Column(db.String(40), nullable=True, comment="contractor | employee | agency")
    hourly_rate_cents = db.Column(db.Integer, nullable=True)
    capacity_hours = db.Column(db.Float, nullable=True)
    utilization_percent = db.Column(db.Float, nullable=True)
    status = db.Column(db.String(30), nullable=False, default="active")
    manager_name = db.Column(db.String(120), nullable=True)
    notes = db.Column(db.Text, nullable=True)
    metadata_json = db.Column("metadata", db.JSON, nullable=True)

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "workspace_id": self.workspace_id,
            "member_name": self.member_name,
            "role_name": self.role_name,
            "employment_type": self.employment_type,
            "hourly_rate_cents": self.hourly_rate_cents,
            "capacity_hours": self.capacity_hours,
            "utilization_percent": self.utilization_percent,
            "status": self.status,
            "manager_name": self.manager_name,
            "notes": self.notes,
            "metadata": as_map(self.metadata_json),
        }


# ═══════════════════════════════════════════════════════════════════════════
#  TIME, TARGETS, OBJECTIVES
# ═══════════════════════════════════════════════════════════════════════════

class WorkspaceTimeLog(WorkspaceScopedModel):
    __tablename__ = "workspace_time_logs"

    task_id = db.Column(
        db.Integer,
        db.ForeignKey("workspace_tasks.id", ondelete="SET NULL"),
        nullable=True,
        index=True,
    )
    member_name = db.Column(db.String(120), nullable=False)
    started_at = db.Column(db.DateTime(timezone=True), nullable=False)
    ended_at = db.Column(db.DateTime(timezone=True), nullable=True)
    duration_minutes = db.Column(db.Integer, nullable=True)
    billable = db.Column(db.Boolean, nullable=False, default=True)
    rate_cents = db.Column(db.Integer, nullable=True)
    notes = db.Column(db.Text, nullable=True)

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "workspace_id": self.workspace_id,
            "task_id": self.task_id,
            "member_name": self.member_name,
            "started_at": iso(self.started_at),
            "ended_at": iso(self.ended_at),
            "duration_minutes": self.duration_minutes,
            "billable": bool(self.billable),
            "rate_cents": self.rate_cents,
            "notes": self.notes,
        }


class WorkspaceTarget(WorkspaceScopedModel):
    __tablename__ = "workspace_targets"

    name = db.Column(db.String(180), nullable=False)
    description = db.Column(db.Text, nullable=True)
    target_value = db.Column(db.Float, nullable=True)
    current_value = db.Column(db.Float, nullable=True)
    unit = db.Column(db.String(30), nullable=True)
    due_at = db.Column(db.DateTime(timezone=True), nullable=True)
    status = db.Column(db.String(30), nullable=False, default="planned")
    owner_name = db.Column(db.String(120), nullable=True)
    trend = db.Column(db.String(20), nullable=True, comment="up | flat | down")

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "workspace_id": self.workspace_id,
            "name": self.name,
            "description": self.description,
            "target_value": self.target_value,
            "current_value": self.current_value,
            "unit": self.unit,
            "due_at": iso(self.due_at),
            "status": self.status,
            "owner_name": self.owner_name,
            "trend": self.trend,
        }


class WorkspaceObjective(WorkspaceScopedModel):
    __tablename__ = "workspace_objectives"

    title = db.Column(db.String(180), nullable=False)
    description = db.Column(db.Text, nullable=True)
    status = db.Column(db.String(30), nullable=False, default="planned")
    owner_name = db.Column(db.String(120), nullable=True)
    due_at = db.Column(db.DateTime(timezone=True), nullable=True)
    progress_percent = db.Column(db.Float, nullable=True)
    key_results = db.Column(db.JSON, nullable=True)

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "workspace_id": self.workspace_id,
            "title": self.title,
            "description": self.description,
            "status": self.status,
            "owner_name": self.owner_name,
            "due_at": iso(self.due_at),
            "progress_percent": self.progress_percent,
            "key_results": as_list(self.key_results),
        }
