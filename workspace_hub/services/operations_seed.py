"""Starter data for the operations view of a workspace.

``seed_operations_artifacts`` runs before every operations read. Each entity
type is guarded by its own ``count == 0`` check, so types are seeded
independently and a rerun is a no-op. The function only flushes; the
caller's ``atomic()`` block commits.
"""
import logging
from datetime import datetime, timedelta, timezone

from workspace_hub.models import db
from workspace_hub.models.operations import (
    WorkspaceBudgetLine,
    WorkspaceCalendarEntry,
    WorkspaceHrRecord,
    WorkspaceInvite,
    WorkspaceMeeting,
    WorkspaceObject,
    WorkspaceObjective,
    WorkspaceRole,
    WorkspaceSubmission,
    WorkspaceTarget,
    WorkspaceTask,
    WorkspaceTaskAssignment,
    WorkspaceTimeLog,
    WorkspaceTimeline,
    WorkspaceTimelineEvent,
)
from workspace_hub.services.helpers.transactions import get_or_create
from workspace_hub.services.workspace_service import (
    ensure_starter_conversations,
    ensure_starter_files,
)

logger = logging.getLogger(__name__)

# (task fields, [assignment fields, ...]) in lifecycle order.
_TASK_BLUEPRINTS = (
    (
        {
            "title": "Discovery & kickoff",
            "description": "Research, stakeholder interviews, and alignment workshops.",
            "owner_name": "Priya Desai",
            "owner_type": "agency_member",
            "start_offset": 0,
            "end_offset": 7,
            "status": "completed",
            "lane": "Strategy",
            "progress_percent": 100,
            "workload_hours": 120,
            "color": "#0ea5e9",
            "priority": "medium",
        },
        [
            ("Priya Desai", "Delivery lead", 100, 80),
            ("Lena Torres", "Client sponsor", 40, 40),
        ],
    ),
    (
        {
            "title": "Experience design sprints",
            "description": "Rapid prototyping with client feedback loops.",
            "owner_name": "Kai Chen",
            "owner_type": "freelancer",
            "start_offset": 7,
            "end_offset": 21,
            "status": "in_progress",
            "lane": "Design",
            "progress_percent": 65,
            "workload_hours": 200,
            "color": "#8b5cf6",
            "priority": "high",
        },
        [
            ("Kai Chen", "Design lead", 70, 140),
            ("Noor El-Sayed", "UX researcher", 30, 60),
        ],
    ),
    (
        {
            "title": "Engineering implementation",
            "description": "API integrations, automation, and platform hardening.",
            "owner_name": "Ari Banerjee",
            "owner_type": "agency_member",
            "start_offset": 21,
            "end_offset": 45,
            "status": "in_progress",
            "lane": "Engineering",
            "progress_percent": 38,
            "workload_hours": 320,
            "color": "#22c55e",
            "priority": "medium",
        },
        [
            ("Ari Banerjee", "Engineering manager", 60, 180),
            ("Sofia Moretti", "Automation engineer", 40, 120),
        ],
    ),
    (
        {
            "title": "Enablement and go-live",
            "description": "Training, documentation, and success metrics validation.",
            "owner_name": "Lena Torres",
            "owner_type": "company_member",
            "start_offset": 52,
            "end_offset": 52,
            "status": "planned",
            "lane": "Enablement",
            "progress_percent": 12,
            "workload_hours": 80,
            "color": "#f97316",
            "priority": "medium",
        },
        [
            ("Helena Park", "Client operations", 50, 40),
            ("Jordan Malik", "Success engineer", 50, 40),
        ],
    ),
)


def _log_seeded(workspace, entity, count):
    logger.info(
        "Seeded %s %s", count, entity,
        extra={"workspace_id": workspace.id, "entity": entity},
    )


def seed_operations_artifacts(workspace, project=None):
    """Ensure every operations collection holds its starter rows."""
    if workspace is None:
        return

    now = datetime.now(timezone.utc)
    today = now.replace(hour=0, minute=0, second=0, microsecond=0)
    start = today - timedelta(days=7)
    end = today + timedelta(days=45)
    wid = workspace.id

    _, created = get_or_create(
        WorkspaceTimeline,
        {"workspace_id": wid},
        defaults={
            "name": f"{project.title if project else 'Project'} delivery timeline",
            "timezone": "UTC",
            "start_date": start.date(),
            "end_date": end.date(),
            "baseline_start_date": start.date(),
            "baseline_end_date": end.date(),
            "owner_name": "Program Management Office",
        },
    )
    if created:
        _log_seeded(workspace, "timeline", 1)

    seeded_tasks = []
    if not WorkspaceTask.count_for_workspace(wid):
        for fields, assignments in _TASK_BLUEPRINTS:
            fields = dict(fields)
            start_offset = fields.pop("start_offset")
            end_offset = fields.pop("end_offset")
            task = WorkspaceTask(
                workspace_id=wid,
                start_date=(start + timedelta(days=start_offset)).date(),
                end_date=(start + timedelta(days=end_offset)).date(),
                **fields,
            )
            task.assignments = [
                WorkspaceTaskAssignment(
                    workspace_id=wid,
                    assignee_name=name,
                    assignee_role=role,
                    allocation_percent=allocation,
                    hours_committed=hours,
                )
                for name, role, allocation, hours in assignments
            ]
            db.session.add(task)
            seeded_tasks.append(task)
        db.session.flush()
        _log_seeded(workspace, "tasks", len(seeded_tasks))

    if not WorkspaceBudgetLine.count_for_workspace(wid):
        db.session.add_all([
            WorkspaceBudgetLine(
                workspace_id=wid,
                category="Discovery & strategy",
                description="Stakeholder interviews, research, and roadmapping.",
                planned_amount_cents=1_500_000,
                actual_amount_cents=1_400_000,
                currency="USD",
                status="approved",
                owner_name="Priya Desai",
                approvals_required=1,
            ),
            WorkspaceBudgetLine(
                workspace_id=wid,
                category="Design sprints",
                description="UX/UI production, testing incentives, and tooling.",
                planned_amount_cents=2_750_000,
                actual_amount_cents=1_800_000,
                currency="USD",
                status="in_review",
                owner_name="Kai Chen",
                approvals_required=2,
            ),
            WorkspaceBudgetLine(
                workspace_id=wid,
                category="Engineering delivery",
                description="Automation, integrations, and QA environments.",
                planned_amount_cents=4_200_000,
                actual_amount_cents=1_250_000,
                currency="USD",
                status="tracking",
                owner_name="Ari Banerjee",
                approvals_required=2,
            ),
        ])
        _log_seeded(workspace, "budget_lines", 3)

    if not WorkspaceObject.count_for_workspace(wid):
        db.session.add_all([
            WorkspaceObject(
                workspace_id=wid,
                name="Workspace blueprint",
                object_type="blueprint",
                status="active",
                owner_name="Program Office",
                description="Cross-functional operating model and RACI.",
                due_at=end - timedelta(days=14),
                tags=["governance", "brief"],
            ),
            WorkspaceObject(
                workspace_id=wid,
                name="Automation playbook",
                object_type="playbook",
                status="in_review",
                owner_name="Automation PM",
                description="Approval workflow coverage and exception handling.",
                due_at=end - timedelta(days=7),
                tags=["automation", "compliance"],
            ),
            WorkspaceObject(
                workspace_id=wid,
                name="Client portal",
                object_type="portal",
                status="planned",
                owner_name="Client success",
                description="Shared visibility for milestones and decisions.",
                due_at=end,
                tags=["client", "visibility"],
            ),
        ])
        _log_seeded(workspace, "objects", 3)

    if not WorkspaceTimelineEvent.count_for_workspace(wid):
        db.session.add_all([
            WorkspaceTimelineEvent(
                workspace_id=wid,
                title="Kickoff workshop",
                description="Align on objectives, success metrics, and stakeholders.",
                event_date=start,
                event_type="milestone",
                owner_name="Priya Desai",
                milestone=True,
                color="#0ea5e9",
            ),
            WorkspaceTimelineEvent(
                workspace_id=wid,
                title="Sprint review",
                description="Client demo and acceptance of sprint two deliverables.",
                event_date=start + timedelta(days=15),
                event_type="review",
                owner_name="Kai Chen",
                milestone=False,
                color="#8b5cf6",
            ),
            WorkspaceTimelineEvent(
                workspace_id=wid,
                title="Go-live readiness",
                description="Final checklist sign-off with automation stakeholders.",
                event_date=end - timedelta(days=3),
                event_type="readiness",
                owner_name="Ari Banerjee",
                milestone=True,
                color="#f97316",
            ),
        ])
        _log_seeded(workspace, "timeline_events", 3)

    if not WorkspaceMeeting.count_for_workspace(wid):
        standup_at = now + timedelta(days=1)
        sync_at = now + timedelta(days=3)
        db.session.add_all([
            WorkspaceMeeting(
                workspace_id=wid,
                title="Delivery stand-up",
                agenda="Status checks, blockers, and action items.",
                meeting_type="standup",
                start_at=standup_at,
                end_at=standup_at + timedelta(minutes=45),
                host_name="Priya Desai",
                attendees=["Ari Banerjee", "Kai Chen", "Noor El-Sayed", "Helena Park"],
                action_items=["Capture blockers", "Update risk log"],
            ),
            WorkspaceMeeting(
                workspace_id=wid,
                title="Client executive sync",
                agenda="Milestone review, financial status, and decisions.",
                meeting_type="executive_sync",
                location="Client HQ",
                start_at=sync_at,
                end_at=sync_at + timedelta(hours=1),
                host_name="Lena Torres",
                attendees=["Lena Torres", "Client sponsor", "Priya Desai"],
                action_items=["Review budget variance", "Confirm risk mitigation"],
            ),
        ])
        _log_seeded(workspace, "meetings", 2)

    if not WorkspaceCalendarEntry.count_for_workspace(wid):
        finance_at = now + timedelta(days=18)
        db.session.add_all([
            WorkspaceCalendarEntry(
                workspace_id=wid,
                title="QA automation window",
                start_at=now + timedelta(days=10),
                end_at=now + timedelta(days=12),
                event_type="qa",
                owner_name="Sofia Moretti",
                visibility="workspace",
            ),
            WorkspaceCalendarEntry(
                workspace_id=wid,
                title="Finance checkpoint",
                start_at=finance_at,
                end_at=finance_at + timedelta(minutes=30),
                event_type="finance",
                owner_name="Lena Torres",
                visibility="workspace",
            ),
        ])
        _log_seeded(workspace, "calendar_entries", 2)

    if not WorkspaceRole.count_for_workspace(wid):
        db.session.add_all([
            WorkspaceRole(
                workspace_id=wid,
                role_name="Delivery lead",
                member_name="Priya Desai",
                responsibilities="Overall delivery cadence, stakeholder alignment, and risk management.",
                permissions=["workspace_admin", "budget_approver"],
                contact_email="priya.desai@example.com",
            ),
            WorkspaceRole(
                workspace_id=wid,
                role_name="Automation PM",
                member_name="Jordan Malik",
                responsibilities="Own automation backlog, client approvals, and change control.",
                permissions=["automation_editor", "risk_viewer"],
                contact_email="jordan.malik@example.com",
            ),
            WorkspaceRole(
                workspace_id=wid,
                role_name="Client sponsor",
                member_name="Lena Torres",
                responsibilities="Executive sponsorship, approvals, and budget oversight.",
                permissions=["approval_owner"],
                contact_email="lena.torres@example.com",
            ),
        ])
        _log_seeded(workspace, "roles", 3)

    if not WorkspaceSubmission.count_for_workspace(wid):
        db.session.add_all([
            WorkspaceSubmission(
                workspace_id=wid,
                title="Sprint 2 deliverables",
                description="Prototype, research insights, and automation requirements.",
                status="in_review",
                submitted_at=now - timedelta(days=2),
                reviewer_name="Client sponsor",
                owner_name="Kai Chen",
            ),
            WorkspaceSubmission(
                workspace_id=wid,
                title="Automation workflow approval",
                description="Runbooks, guardrails, and monitoring dashboards.",
                status="approved",
                submitted_at=now - timedelta(days=5),
                decision_at=now - timedelta(days=4),
                decision_notes="Approved with minor adjustments to risk matrix.",
                reviewer_name="Automation PM",
                owner_name="Jordan Malik",
            ),
        ])
        _log_seeded(workspace, "submissions", 2)

    if not WorkspaceInvite.count_for_workspace(wid):
        db.session.add_all([
            WorkspaceInvite(
                workspace_id=wid,
                email="ops.lead@example.com",
                role_name="Operations lead",
                status="pending",
                invited_by="Priya Desai",
                invited_at=now - timedelta(days=1),
            ),
            WorkspaceInvite(
                workspace_id=wid,
                email="finance@example.com",
                role_name="Finance approver",
                status="accepted",
                invited_by="Lena Torres",
                invited_at=now - timedelta(days=2),
            ),
        ])
        _log_seeded(workspace, "invites", 2)

    if not WorkspaceHrRecord.count_for_workspace(wid):
        db.session.add_all([
            WorkspaceHrRecord(
                workspace_id=wid,
                member_name="Helena Park",
                role_name="Client operations",
                employment_type="contractor",
                status="active",
                utilization_percent=60,
                capacity_hours=30,
                metadata_json={"start_date": start.date().isoformat()},
            ),
            WorkspaceHrRecord(
                workspace_id=wid,
                member_name="Noor El-Sayed",
                role_name="UX researcher",
                employment_type="contractor",
                status="active",
                utilization_percent=40,
                capacity_hours=20,
                metadata_json={"start_date": start.date().isoformat()},
            ),
        ])
        _log_seeded(workspace, "hr_records", 2)

    if not WorkspaceTimeLog.count_for_workspace(wid):
        first_task_id = seeded_tasks[0].id if len(seeded_tasks) > 0 else None
        second_task_id = seeded_tasks[1].id if len(seeded_tasks) > 1 else None
        db.session.add_all([
            WorkspaceTimeLog(
                workspace_id=wid,
                task_id=first_task_id,
                member_name="Priya Desai",
                started_at=now - timedelta(days=2),
                ended_at=now - timedelta(days=2) + timedelta(hours=3),
                duration_minutes=180,
                billable=True,
                notes="Discovery synthesis and summary preparation.",
            ),
            WorkspaceTimeLog(
                workspace_id=wid,
                task_id=second_task_id,
                member_name="Kai Chen",
                started_at=now - timedelta(days=1),
                ended_at=now - timedelta(days=1) + timedelta(hours=4),
                duration_minutes=240,
                billable=True,
                notes="Prototype iteration with client feedback.",
            ),
        ])
        _log_seeded(workspace, "time_logs", 2)

    if not WorkspaceTarget.count_for_workspace(wid):
        db.session.add_all([
            WorkspaceTarget(
                workspace_id=wid,
                name="Automation coverage",
                description="Reach 70% of finance workflow automation coverage by launch.",
                target_value=70,
                current_value=35,
                unit="percent",
                status="in_progress",
                due_at=end - timedelta(days=10),
                owner_name="Ari Banerjee",
            ),
            WorkspaceTarget(
                workspace_id=wid,
                name="Stakeholder satisfaction",
                description="Maintain NPS above 4.5 across executive stakeholders.",
                target_value=4.5,
                current_value=4.6,
                unit="score",
                status="in_progress",
                due_at=end,
                owner_name="Lena Torres",
            ),
        ])
        _log_seeded(workspace, "targets", 2)

    if not WorkspaceObjective.count_for_workspace(wid):
        db.session.add_all([
            WorkspaceObjective(
                workspace_id=wid,
                title="Launch automation pilot",
                description="Deliver pilot for finance approvals with monitoring and reporting.",
                status="in_progress",
                due_at=end - timedelta(days=14),
                owner_name="Jordan Malik",
                progress_percent=40,
            ),
            WorkspaceObjective(
                workspace_id=wid,
                title="Enablement programme",
                description="Publish enablement guides and training to client teams.",
                status="planned",
                due_at=end,
                owner_name="Helena Park",
                progress_percent=0,
            ),
        ])
        _log_seeded(workspace, "objectives", 2)

    ensure_starter_files(workspace, now)
    ensure_starter_conversations(workspace, now)
    db.session.flush()
