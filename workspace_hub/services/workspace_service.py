"""Workspace service: lazy initialization, dashboard and collaboration writes.

Transaction policy: ``ensure_workspace`` and the starter helpers only flush.
Public operations (dashboard, brief, approvals, acknowledge) wrap their
work in ``atomic()`` and therefore commit exactly once.

Operations:
- ensure_workspace: get-or-create the workspace for a project + starter set
- touch_workspace: stamp last_activity_at / updated_by_id
- get_workspace_dashboard / compute_workspace_metrics
- update_workspace_brief / update_workspace_approval
- acknowledge_workspace_conversation
"""
import logging
from collections import defaultdict
from datetime import datetime, timedelta, timezone

from sqlalchemy import select

from workspace_hub.core.exceptions import NotFoundError, ValidationError
from workspace_hub.models import db
from workspace_hub.models.project import Project
from workspace_hub.models.workspace import (
    APPROVAL_STATUSES,
    OPEN_APPROVAL_STATUSES,
    Workspace,
    WorkspaceApproval,
    WorkspaceBrief,
    WorkspaceConversation,
    WorkspaceFile,
    WorkspaceMessage,
    WorkspaceWhiteboard,
)
from workspace_hub.services.helpers.payloads import require_payload
from workspace_hub.services.helpers.transactions import atomic, get_or_create, get_scoped
from workspace_hub.utils.normalization import (
    as_utc,
    ensure_choice,
    normalize_email,
    normalize_json_object,
    normalize_string_list,
    normalize_text,
    parse_date_value,
    require_text,
)

logger = logging.getLogger(__name__)

DECIDED_APPROVAL_STATUSES = frozenset({"approved", "rejected"})


def _utcnow():
    return datetime.now(timezone.utc)


def _coerce_project_id(project_id) -> int:
    if project_id is None or (isinstance(project_id, str) and not project_id.strip()):
        raise ValidationError("project_id is required.", field="project_id")
    try:
        return int(project_id)
    except (TypeError, ValueError):
        raise ValidationError("project_id must be a number.", field="project_id") from None


def _workspace_defaults(now):
    return {
        "status": "briefing",
        "progress_percent": 12,
        "health_score": 78,
        "velocity_score": 64,
        "risk_level": "low",
        "client_satisfaction": 4.6,
        "automation_coverage": 35,
        "billing_status": "on_track",
        "next_milestone": "Kickoff workshop",
        "next_milestone_due_at": now + timedelta(days=5),
        "metrics_snapshot": {"open_risks": 2, "blocked_tasks": 0, "budget_burn_percent": 18},
        "last_activity_at": now,
    }


# ── Initialization ───────────────────────────────────────────────────────


def ensure_workspace(project_id, lock=True):
    """Return ``(project, workspace)``, creating the workspace on first access.

    The workspace row is selected FOR UPDATE so that concurrent first
    accesses serialize; the unique ``project_id`` key settles any creator
    that still races. Starter artifacts are ensured on every call, each
    behind its own emptiness check.

    Raises:
        ValidationError: project_id missing or not numeric.
        NotFoundError: project does not exist.
    """
    project_id = _coerce_project_id(project_id)
    project = db.session.get(Project, project_id)
    if project is None:
        raise NotFoundError(resource="Project", resource_id=project_id)

    stmt = select(Workspace).where(Workspace.project_id == project_id)
    if lock:
        stmt = stmt.with_for_update()
    workspace = db.session.execute(stmt).scalar_one_or_none()

    if workspace is None:
        now = _utcnow()
        workspace, created = get_or_create(
            Workspace, {"project_id": project_id}, defaults=_workspace_defaults(now),
        )
        if created:
            logger.info(
                "Workspace created",
                extra={"project_id": project_id, "workspace_id": workspace.id},
            )

    _ensure_starter_artifacts(workspace, project)
    return project, workspace


def touch_workspace(workspace, actor_id=None):
    """Record activity on the workspace.

    ``last_activity_at`` strictly increases across calls, even when the
    clock has not moved since the previous touch.
    """
    now = _utcnow()
    previous = as_utc(workspace.last_activity_at)
    if previous is not None and now <= previous:
        now = previous + timedelta(microseconds=1)
    workspace.last_activity_at = now
    workspace.updated_by_id = actor_id
    db.session.flush()
    return workspace


# ── Starter artifacts ────────────────────────────────────────────────────


def _ensure_starter_artifacts(workspace, project):
    now = _utcnow()
    _ensure_brief(workspace, project)
    _ensure_whiteboards(workspace, now)
    ensure_starter_files(workspace, now)
    ensure_starter_conversations(workspace, now)
    _ensure_approvals(workspace, now)
    db.session.flush()


def _ensure_brief(workspace, project):
    _, created = get_or_create(
        WorkspaceBrief,
        {"workspace_id": workspace.id},
        defaults={
            "title": f"{project.title} brief",
            "summary": "Shared narrative covering scope, success metrics, and stakeholders.",
            "objectives": [
                "Align stakeholders on scope and milestones",
                "Automate approval workflows end to end",
            ],
            "deliverables": ["Discovery readout", "Experience prototype", "Automation playbook"],
            "success_metrics": ["Client satisfaction above 4.5", "70% automation coverage"],
            "client_stakeholders": ["Lena Torres", "Helena Park"],
        },
    )
    if created:
        logger.info("Seeded workspace brief", extra={"workspace_id": workspace.id})


def _ensure_whiteboards(workspace, now):
    if WorkspaceWhiteboard.count_for_workspace(workspace.id):
        return
    db.session.add_all([
        WorkspaceWhiteboard(
            workspace_id=workspace.id,
            title="Customer journey map",
            status="active",
            owner_name="Kai Chen",
            active_collaborators=["Kai Chen", "Noor El-Sayed"],
            tags=["research", "experience"],
            last_edited_at=now - timedelta(hours=4),
        ),
        WorkspaceWhiteboard(
            workspace_id=workspace.id,
            title="Automation architecture",
            status="active",
            owner_name="Ari Banerjee",
            active_collaborators=["Ari Banerjee", "Sofia Moretti"],
            tags=["engineering", "automation"],
            last_edited_at=now - timedelta(days=1),
        ),
    ])
    logger.info("Seeded workspace whiteboards", extra={"workspace_id": workspace.id})


def ensure_starter_files(workspace, now):
    """Seed the file vault with three starter documents when it is empty."""
    if WorkspaceFile.count_for_workspace(workspace.id):
        return
    base = f"/workspaces/{workspace.id}/files"
    db.session.add_all([
        WorkspaceFile(
            workspace_id=workspace.id,
            name="Executive alignment deck.pdf",
            category="Executive updates",
            file_type="pdf",
            storage_provider="internal",
            storage_path=f"{base}/executive-alignment-deck.pdf",
            version="4",
            size_bytes=9_400_000,
            tags=["executive", "briefing"],
            uploaded_at=now - timedelta(days=2),
        ),
        WorkspaceFile(
            workspace_id=workspace.id,
            name="Automation architecture.drawio",
            category="Design systems",
            file_type="diagram",
            storage_provider="internal",
            storage_path=f"{base}/automation-architecture.drawio",
            version="2",
            size_bytes=3_200_000,
            tags=["automation", "engineering"],
            uploaded_at=now - timedelta(days=1),
        ),
        WorkspaceFile(
            workspace_id=workspace.id,
            name="Change management plan.docx",
            category="Compliance & legal",
            file_type="document",
            storage_provider="internal",
            storage_path=f"{base}/change-management-plan.docx",
            version="3",
            size_bytes=5_800_000,
            tags=["compliance", "enablement"],
            uploaded_at=now - timedelta(days=3),
        ),
    ])
    logger.info("Seeded workspace files", extra={"workspace_id": workspace.id})


def ensure_starter_conversations(workspace, now):
    """Seed three conversations (and their opening messages) when none exist."""
    if WorkspaceConversation.count_for_workspace(workspace.id):
        return
    standup = WorkspaceConversation(
        workspace_id=workspace.id,
        topic="Delivery standup",
        priority="high",
        unread_count=2,
        last_message_preview="Reminder: standup starts in 10 minutes.",
        last_message_at=now - timedelta(minutes=30),
        participants=["Priya Desai", "Delivery Team"],
    )
    design = WorkspaceConversation(
        workspace_id=workspace.id,
        topic="Design feedback",
        priority="normal",
        unread_count=0,
        last_message_preview="Client sponsor shared annotated deck for review.",
        last_message_at=now - timedelta(minutes=75),
        participants=["Kai Chen", "Client sponsor"],
    )
    finance = WorkspaceConversation(
        workspace_id=workspace.id,
        topic="Finance coordination",
        priority="medium",
        unread_count=1,
        last_message_preview="Purchase order submitted to finance.",
        last_message_at=now - timedelta(minutes=110),
        participants=["Lena Torres", "Finance"],
    )
    db.session.add_all([standup, design, finance])
    db.session.flush()

    db.session.add_all([
        WorkspaceMessage(
            workspace_id=workspace.id,
            conversation_id=standup.id,
            author_name="Priya Desai",
            body="Standup notes posted in the workspace. Please review the new risks before tomorrow.",
            posted_at=now - timedelta(hours=3),
        ),
        WorkspaceMessage(
            workspace_id=workspace.id,
            conversation_id=standup.id,
            author_name="Kai Chen",
            body="Design sprint assets uploaded to the file manager. Feedback welcome by EOD.",
            posted_at=now - timedelta(hours=2),
        ),
        WorkspaceMessage(
            workspace_id=workspace.id,
            conversation_id=design.id,
            author_name="Automation PM Bot",
            body="Automation health check completed, no alerts triggered.",
            posted_at=now - timedelta(hours=1),
        ),
    ])
    logger.info("Seeded workspace conversations", extra={"workspace_id": workspace.id})


def _ensure_approvals(workspace, now):
    if WorkspaceApproval.count_for_workspace(workspace.id):
        return
    db.session.add_all([
        WorkspaceApproval(
            workspace_id=workspace.id,
            title="Discovery readout sign-off",
            stage="discovery",
            status="approved",
            owner_name="Priya Desai",
            approver_email="lena.torres@example.com",
            due_at=now - timedelta(days=4),
            submitted_at=now - timedelta(days=6),
            decided_at=now - timedelta(days=3),
            decision_notes="Approved with follow-up on data retention.",
        ),
        WorkspaceApproval(
            workspace_id=workspace.id,
            title="Design sprint acceptance",
            stage="design",
            status="in_review",
            owner_name="Kai Chen",
            approver_email="lena.torres@example.com",
            due_at=now + timedelta(days=2),
            submitted_at=now - timedelta(days=1),
        ),
        WorkspaceApproval(
            workspace_id=workspace.id,
            title="Engineering budget release",
            stage="finance",
            status="pending",
            owner_name="Ari Banerjee",
            approver_email="finance@example.com",
            due_at=now + timedelta(days=7),
        ),
    ])
    logger.info("Seeded workspace approvals", extra={"workspace_id": workspace.id})


# ── Reads ────────────────────────────────────────────────────────────────


def group_messages_by_conversation(messages) -> dict:
    """Map conversation_id → list of public message dicts (input order kept)."""
    grouped = defaultdict(list)
    for message in messages:
        grouped[message.conversation_id].append(message.to_dict())
    return grouped


def map_conversations(conversations, messages) -> list[dict]:
    grouped = group_messages_by_conversation(messages)
    result = []
    for conversation in conversations:
        payload = conversation.to_dict()
        payload["messages"] = grouped.get(conversation.id, [])
        result.append(payload)
    return result


def compute_workspace_metrics(workspace, *, approvals, conversations, files, whiteboards, now=None) -> dict:
    """Collaboration metrics for the dashboard header."""
    now = now or _utcnow()
    open_approvals = [a for a in approvals if a.status in OPEN_APPROVAL_STATUSES]
    overdue = [
        a for a in open_approvals
        if a.due_at is not None and as_utc(a.due_at) < now
    ]
    return {
        "pending_approvals": len(open_approvals),
        "overdue_approvals": len(overdue),
        "unread_messages": sum(c.unread_count or 0 for c in conversations),
        "total_asset_bytes": sum(f.size_bytes or 0 for f in files),
        "active_whiteboards": sum(1 for w in whiteboards if w.status == "active"),
        "progress_percent": workspace.progress_percent,
        "health_score": workspace.health_score,
        "velocity_score": workspace.velocity_score,
        "risk_level": workspace.risk_level,
        "client_satisfaction": workspace.client_satisfaction,
        "automation_coverage": workspace.automation_coverage,
        "billing_status": workspace.billing_status,
        "next_milestone": workspace.next_milestone,
        "next_milestone_due_at": workspace.to_dict()["next_milestone_due_at"],
        "metrics_snapshot": dict(workspace.metrics_snapshot or {}),
    }


def get_workspace_dashboard(project_id) -> dict:
    """Collaboration view: brief, boards, files, conversations and approvals."""
    with atomic("get_workspace_dashboard"):
        project, workspace = ensure_workspace(project_id)
    db.session.refresh(workspace)
    workspace_id = workspace.id

    brief = db.session.execute(
        WorkspaceBrief.scoped_select(workspace_id)
    ).scalar_one_or_none()
    whiteboards = db.session.execute(
        WorkspaceWhiteboard.scoped_select(workspace_id)
        .order_by(WorkspaceWhiteboard.last_edited_at.desc().nulls_last(), WorkspaceWhiteboard.id)
    ).scalars().all()
    files = db.session.execute(
        WorkspaceFile.scoped_select(workspace_id)
        .order_by(WorkspaceFile.uploaded_at.desc().nulls_last(), WorkspaceFile.id.desc())
    ).scalars().all()
    conversations = db.session.execute(
        WorkspaceConversation.scoped_select(workspace_id)
        .order_by(WorkspaceConversation.last_message_at.desc().nulls_last(), WorkspaceConversation.id)
    ).scalars().all()
    messages = db.session.execute(
        WorkspaceMessage.scoped_select(workspace_id)
        .order_by(WorkspaceMessage.posted_at, WorkspaceMessage.id)
    ).scalars().all()
    approvals = db.session.execute(
        WorkspaceApproval.scoped_select(workspace_id)
        .order_by(WorkspaceApproval.due_at.nulls_last(), WorkspaceApproval.id)
    ).scalars().all()

    return {
        "project": project.to_dict(),
        "workspace": workspace.to_dict(),
        "brief": brief.to_dict() if brief else None,
        "whiteboards": [w.to_dict() for w in whiteboards],
        "files": [f.to_dict() for f in files],
        "conversations": map_conversations(conversations, messages),
        "approvals": [a.to_dict() for a in approvals],
        "metrics": compute_workspace_metrics(
            workspace,
            approvals=approvals,
            conversations=conversations,
            files=files,
            whiteboards=whiteboards,
        ),
    }


# ── Writes ───────────────────────────────────────────────────────────────


_BRIEF_LIST_FIELDS = ("objectives", "deliverables", "success_metrics", "client_stakeholders")

BRIEF_TITLE_LENGTH = WorkspaceBrief.__table__.c.title.type.length
APPROVAL_TEXT_LENGTHS = {
    name: WorkspaceApproval.__table__.c[name].type.length for name in ("title", "stage", "owner_name")
}


def update_workspace_brief(project_id, payload, actor_id=None) -> dict:
    """Sparse update of the workspace brief."""
    payload = require_payload(payload)
    with atomic("update_workspace_brief"):
        project, workspace = ensure_workspace(project_id)
        brief = db.session.execute(
            WorkspaceBrief.scoped_select(workspace.id).with_for_update()
        ).scalar_one()

        if "title" in payload:
            brief.title = require_text(payload["title"], "title", max_length=BRIEF_TITLE_LENGTH)
        if "summary" in payload:
            brief.summary = normalize_text(payload["summary"])
        for field in _BRIEF_LIST_FIELDS:
            if field in payload:
                setattr(brief, field, normalize_string_list(payload[field]))

        brief.last_updated_by_id = actor_id
        touch_workspace(workspace, actor_id)
        db.session.flush()
        result = brief.to_dict()

    logger.info(
        "Workspace brief updated",
        extra={"project_id": project.id, "workspace_id": workspace.id, "actor_id": actor_id},
    )
    return result


def update_workspace_approval(project_id, approval_id, payload, actor_id=None) -> dict:
    """Update an approval; moving to approved/rejected stamps ``decided_at``."""
    payload = require_payload(payload)
    with atomic("update_workspace_approval"):
        project, workspace = ensure_workspace(project_id)
        approval = get_scoped(
            WorkspaceApproval, approval_id, workspace_id=workspace.id, lock=True, label="Approval",
        )

        if "title" in payload:
            approval.title = require_text(
                payload["title"], "title", max_length=APPROVAL_TEXT_LENGTHS["title"],
            )
        if "stage" in payload:
            approval.stage = normalize_text(
                payload["stage"], "stage", max_length=APPROVAL_TEXT_LENGTHS["stage"],
            )
        if "owner_name" in payload:
            approval.owner_name = normalize_text(
                payload["owner_name"], "owner_name", max_length=APPROVAL_TEXT_LENGTHS["owner_name"],
            )
        if "approver_email" in payload:
            approval.approver_email = normalize_email(payload["approver_email"], "approver_email")
        if "due_at" in payload:
            approval.due_at = parse_date_value(payload["due_at"], "due_at")
        if "decision_notes" in payload:
            approval.decision_notes = normalize_text(payload["decision_notes"])
        if "metadata" in payload:
            approval.metadata_json = normalize_json_object(payload["metadata"], "metadata")

        if "status" in payload:
            status = ensure_choice(payload["status"], APPROVAL_STATUSES, "status")
            if status != approval.status:
                now = _utcnow()
                if status in DECIDED_APPROVAL_STATUSES:
                    approval.decided_at = now
                else:
                    approval.decided_at = None
                if status == "in_review" and approval.submitted_at is None:
                    approval.submitted_at = now
            approval.status = status

        touch_workspace(workspace, actor_id)
        db.session.flush()
        result = approval.to_dict()

    logger.info(
        "Workspace approval updated",
        extra={
            "project_id": project.id, "workspace_id": workspace.id,
            "entity": "approval", "entity_id": result["id"], "actor_id": actor_id,
        },
    )
    return result


def acknowledge_workspace_conversation(project_id, conversation_id, actor_id=None) -> dict:
    """Mark a conversation as read: ``unread_count = 0``, ``last_read_at = now``."""
    with atomic("acknowledge_workspace_conversation"):
        project, workspace = ensure_workspace(project_id)
        conversation = get_scoped(
            WorkspaceConversation, conversation_id,
            workspace_id=workspace.id, lock=True, label="Conversation",
        )
        conversation.unread_count = 0
        conversation.last_read_at = _utcnow()
        touch_workspace(workspace, actor_id)
        db.session.flush()
        result = conversation.to_dict()

    logger.info(
        "Workspace conversation acknowledged",
        extra={
            "project_id": project.id, "workspace_id": workspace.id,
            "entity": "conversation", "entity_id": result["id"], "actor_id": actor_id,
        },
    )
    return result
