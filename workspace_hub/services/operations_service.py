"""Operations service: aggregate read and per-entity writes for a workspace.

Transaction policy: every public function runs in one ``atomic()`` block.
Each mutator resolves the workspace through ``ensure_workspace`` (row lock),
validates the payload, writes, touches the workspace and returns the
public object of the affected row.

Extracted operations:
- get_project_operations / update_project_operations
- build_activity_feed / build_storage_summary / compute_operations_metrics
- create/update/delete triples for tasks, budgets, objects, timeline events,
  meetings, calendar entries, roles, submissions, invites, HR records,
  time logs, targets, objectives and files
- create/update/delete_conversation_message
"""
import logging
import secrets
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Callable

from flask import current_app, has_app_context
from sqlalchemy import select

from workspace_hub.core.exceptions import NotFoundError, ValidationError
from workspace_hub.models import db
from workspace_hub.models.operations import (
    BUDGET_STATUSES,
    COMPLETED,
    GOAL_STATUSES,
    HR_STATUSES,
    INVITE_STATUSES,
    SUBMISSION_STATUSES,
    TASK_PRIORITIES,
    TASK_STATUSES,
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
from workspace_hub.models.workspace import (
    BILLING_STATUSES,
    MESSAGE_PREVIEW_LENGTH,
    RISK_LEVELS,
    WORKSPACE_STATUSES,
    Workspace,
    WorkspaceBrief,
    WorkspaceConversation,
    WorkspaceFile,
    WorkspaceMessage,
)
from workspace_hub.models._serialize import iso
from workspace_hub.services.helpers.payloads import check_column_lengths, require_payload
from workspace_hub.services.helpers.transactions import atomic, get_scoped
from workspace_hub.services.operations_seed import seed_operations_artifacts
from workspace_hub.services.workspace_service import (
    ensure_workspace,
    map_conversations,
    touch_workspace,
)
from workspace_hub.utils.normalization import (
    as_utc,
    compute_duration_minutes,
    ensure_choice,
    normalize_array,
    normalize_currency,
    normalize_email,
    normalize_json_object,
    normalize_string_list,
    normalize_text,
    parse_boolean_value,
    parse_date_value,
    parse_integer_value,
    parse_number_value,
    parse_percent_value,
    require_text,
    truncate,
)

logger = logging.getLogger(__name__)

AUTHOR_NAME_LENGTH = WorkspaceMessage.__table__.c.author_name.type.length

DEFAULT_STORAGE_CAPACITY_BYTES = 512_000_000
ACTIVITY_MESSAGE_LIMIT = 10
ACTIVITY_TIMELINE_LIMIT = 5
ACTIVITY_FEED_LIMIT = 15

TARGET_TRENDS = {"up", "flat", "down"}
DECIDED_SUBMISSION_STATUSES = frozenset({"approved", "changes_requested", "rejected"})


def _utcnow():
    return datetime.now(timezone.utc)


# ═══════════════════════════════════════════════════════════════════════════
#  AGGREGATE READ
# ═══════════════════════════════════════════════════════════════════════════


def _rows(model, workspace_id, *order_by):
    stmt = model.scoped_select(workspace_id).order_by(*order_by)
    return db.session.execute(stmt).scalars().all()


def _storage_capacity():
    if has_app_context():
        return current_app.config.get(
            "WORKSPACE_STORAGE_CAPACITY_BYTES", DEFAULT_STORAGE_CAPACITY_BYTES,
        )
    return DEFAULT_STORAGE_CAPACITY_BYTES


def compute_operations_metrics(*, tasks, budgets, meetings, timeline_events,
                               time_logs, targets, invites, now=None) -> dict:
    """Derived totals and counts for the operations header."""
    now = now or _utcnow()
    planned = sum(b.planned_amount_cents or 0 for b in budgets)
    actual = sum(b.actual_amount_cents or 0 for b in budgets)
    logged_minutes = sum(log.duration_minutes or 0 for log in time_logs)
    progress = [t.progress_percent or 0 for t in tasks]
    return {
        "planned_budget_cents": planned,
        "actual_budget_cents": actual,
        "budget_variance_cents": planned - actual,
        "total_workload_hours": sum(t.workload_hours or 0 for t in tasks),
        "total_logged_hours": round(logged_minutes / 60, 2),
        "open_tasks": sum(1 for t in tasks if t.status != COMPLETED),
        "completed_tasks": sum(1 for t in tasks if t.status == COMPLETED),
        "average_task_progress": round(sum(progress) / len(progress), 1) if progress else 0,
        "upcoming_meetings": sum(
            1 for m in meetings if m.start_at is not None and as_utc(m.start_at) > now
        ),
        "upcoming_timeline_events": sum(
            1 for e in timeline_events if e.event_date is not None and as_utc(e.event_date) > now
        ),
        "active_targets": sum(1 for t in targets if t.status != COMPLETED),
        "pending_invites": sum(1 for i in invites if i.status == "pending"),
    }


def build_activity_feed(conversations, messages, timeline_events) -> list[dict]:
    """Recent messages and timeline events merged into one newest-first feed."""
    topics = {c.id: c.topic for c in conversations}
    epoch = datetime.min.replace(tzinfo=timezone.utc)

    def _when(value):
        return as_utc(value) or epoch

    activity = []
    latest_messages = sorted(messages, key=lambda m: _when(m.posted_at), reverse=True)
    for message in latest_messages[:ACTIVITY_MESSAGE_LIMIT]:
        activity.append({
            "id": f"message-{message.id}",
            "actor": message.author_name or "Workspace",
            "message": message.body or "",
            "timestamp": as_utc(message.posted_at or message.created_at),
            "related": topics.get(message.conversation_id, "Conversation"),
        })

    latest_events = sorted(timeline_events, key=lambda e: _when(e.event_date), reverse=True)
    for event in latest_events[:ACTIVITY_TIMELINE_LIMIT]:
        label = event.title or ""
        if event.event_type:
            label = f"{label} ({event.event_type.replace('_', ' ')})"
        activity.append({
            "id": f"timeline-{event.id}",
            "actor": event.owner_name or "Timeline",
            "message": label.strip(),
            "timestamp": as_utc(event.event_date or event.created_at),
            "related": "Timeline",
        })

    activity = [item for item in activity if item["message"]]
    activity.sort(key=lambda item: item["timestamp"] or epoch, reverse=True)
    for item in activity:
        item["timestamp"] = iso(item["timestamp"])
    return activity[:ACTIVITY_FEED_LIMIT]


def build_storage_summary(files, capacity=None) -> dict:
    total = sum(int(f.size_bytes or 0) for f in files)
    capacity = DEFAULT_STORAGE_CAPACITY_BYTES if capacity is None else capacity
    used = round(total / capacity * 100, 1) if capacity else 0
    return {
        "file_count": len(files),
        "total_size": total,
        "capacity": capacity,
        "used_percent": used,
    }


def _map_tasks(tasks, assignments) -> list[dict]:
    by_task = {}
    for assignment in assignments:
        by_task.setdefault(assignment.task_id, []).append(assignment.to_dict())
    result = []
    for task in tasks:
        payload = task.to_dict()
        payload["assignments"] = by_task.get(task.id, [])
        result.append(payload)
    return result


def _build_operations_payload(project, workspace) -> dict:
    wid = workspace.id
    timeline = db.session.execute(
        WorkspaceTimeline.scoped_select(wid).order_by(WorkspaceTimeline.id)
    ).scalars().first()
    tasks = _rows(WorkspaceTask, wid, WorkspaceTask.start_date.nulls_last(), WorkspaceTask.id)
    assignments = _rows(WorkspaceTaskAssignment, wid, WorkspaceTaskAssignment.id)
    budgets = _rows(WorkspaceBudgetLine, wid, WorkspaceBudgetLine.id)
    objects = _rows(WorkspaceObject, wid, WorkspaceObject.due_at.nulls_last(), WorkspaceObject.id)
    timeline_events = _rows(
        WorkspaceTimelineEvent, wid, WorkspaceTimelineEvent.event_date, WorkspaceTimelineEvent.id,
    )
    meetings = _rows(WorkspaceMeeting, wid, WorkspaceMeeting.start_at, WorkspaceMeeting.id)
    calendar_entries = _rows(
        WorkspaceCalendarEntry, wid, WorkspaceCalendarEntry.start_at, WorkspaceCalendarEntry.id,
    )
    roles = _rows(WorkspaceRole, wid, WorkspaceRole.id)
    submissions = _rows(
        WorkspaceSubmission, wid,
        WorkspaceSubmission.submitted_at.desc().nulls_last(), WorkspaceSubmission.id.desc(),
    )
    invites = _rows(WorkspaceInvite, wid, WorkspaceInvite.invited_at.desc(), WorkspaceInvite.id.desc())
    hr_records = _rows(WorkspaceHrRecord, wid, WorkspaceHrRecord.member_name, WorkspaceHrRecord.id)
    time_logs = _rows(WorkspaceTimeLog, wid, WorkspaceTimeLog.started_at.desc(), WorkspaceTimeLog.id.desc())
    targets = _rows(WorkspaceTarget, wid, WorkspaceTarget.due_at.nulls_last(), WorkspaceTarget.id)
    objectives = _rows(WorkspaceObjective, wid, WorkspaceObjective.due_at.nulls_last(), WorkspaceObjective.id)
    brief = db.session.execute(WorkspaceBrief.scoped_select(wid)).scalar_one_or_none()
    files = _rows(WorkspaceFile, wid, WorkspaceFile.uploaded_at.desc().nulls_last(), WorkspaceFile.id.desc())
    conversations = _rows(
        WorkspaceConversation, wid,
        WorkspaceConversation.last_message_at.desc().nulls_last(), WorkspaceConversation.id,
    )
    messages = _rows(WorkspaceMessage, wid, WorkspaceMessage.posted_at, WorkspaceMessage.id)

    return {
        "project": project.to_dict(),
        "workspace": workspace.to_dict(),
        "timeline": timeline.to_dict() if timeline else None,
        "tasks": _map_tasks(tasks, assignments),
        "budgets": [b.to_dict() for b in budgets],
        "objects": [o.to_dict() for o in objects],
        "timeline_events": [e.to_dict() for e in timeline_events],
        "meetings": [m.to_dict() for m in meetings],
        "calendar_entries": [c.to_dict() for c in calendar_entries],
        "roles": [r.to_dict() for r in roles],
        "submissions": [s.to_dict() for s in submissions],
        "invites": [i.to_dict() for i in invites],
        "hr_records": [h.to_dict() for h in hr_records],
        "time_logs": [t.to_dict() for t in time_logs],
        "targets": [t.to_dict() for t in targets],
        "objectives": [o.to_dict() for o in objectives],
        "brief": brief.to_dict() if brief else None,
        "files": [f.to_dict() for f in files],
        "conversations": map_conversations(conversations, messages),
        "metrics": compute_operations_metrics(
            tasks=tasks,
            budgets=budgets,
            meetings=meetings,
            timeline_events=timeline_events,
            time_logs=time_logs,
            targets=targets,
            invites=invites,
        ),
        "activity": build_activity_feed(conversations, messages, timeline_events),
        "storage": build_storage_summary(files, _storage_capacity()),
    }


def get_project_operations(project_id) -> dict:
    """Full operations payload for a project, seeding starter data on first read."""
    with atomic("get_project_operations"):
        project, workspace = ensure_workspace(project_id)
        seed_operations_artifacts(workspace, project)
    db.session.refresh(workspace)
    return _build_operations_payload(project, workspace)


# ═══════════════════════════════════════════════════════════════════════════
#  PAYLOAD PREPARATION
# ═══════════════════════════════════════════════════════════════════════════
#
# Every ``_prepare_*`` returns the column values to write. With
# ``partial=True`` (update) only keys present in the payload are handled;
# otherwise every field is resolved, falling back to its default.


def _present(payload, key, partial) -> bool:
    return not partial or key in payload


def _texts(values, payload, partial, *fields):
    for field in fields:
        if _present(payload, field, partial):
            values[field] = normalize_text(payload.get(field))


def _dates(values, payload, partial, *fields, date_only=False):
    for field in fields:
        if _present(payload, field, partial):
            values[field] = parse_date_value(payload.get(field), field, date_only=date_only)


def _metadata(values, payload, partial):
    if _present(payload, "metadata", partial):
        values["metadata_json"] = normalize_json_object(payload.get("metadata"), "metadata")


def _current(values, instance, field):
    if field in values:
        return values[field]
    return getattr(instance, field) if instance is not None else None


def _check_window(values, instance, start_field, end_field):
    if start_field not in values and end_field not in values:
        return
    start = as_utc(_current(values, instance, start_field))
    end = as_utc(_current(values, instance, end_field))
    if start is not None and end is not None and end < start:
        raise ValidationError(
            f"{end_field} must not be before {start_field}.", field=end_field,
        )


def _prepare_assignments(raw) -> list[dict]:
    if raw is None:
        return []
    if not isinstance(raw, list):
        raise ValidationError("assignments must be a list.", field="assignments")
    prepared = []
    for index, item in enumerate(raw):
        field = f"assignments[{index}]"
        if not isinstance(item, dict):
            raise ValidationError(f"{field} must be an object.", field="assignments")
        prepared.append({
            "assignee_name": require_text(item.get("assignee_name"), f"{field}.assignee_name"),
            "assignee_role": normalize_text(item.get("assignee_role")),
            "allocation_percent": parse_percent_value(
                item.get("allocation_percent"), f"{field}.allocation_percent",
            ),
            "hours_committed": parse_number_value(
                item.get("hours_committed"), f"{field}.hours_committed", minimum=0,
            ),
            "status": normalize_text(item.get("status")) or "active",
            "notes": normalize_text(item.get("notes")),
        })
    return prepared


def _prepare_dependencies(raw, workspace, instance) -> list[int]:
    """Task ids this task waits on; each must be another task of the same workspace."""
    dependencies = []
    for item in normalize_array(raw):
        task_id = parse_integer_value(item, "dependencies", allow_null=False)
        if instance is not None and task_id == instance.id:
            raise ValidationError("A task cannot depend on itself.", field="dependencies")
        get_scoped(WorkspaceTask, task_id, workspace_id=workspace.id, label="Task")
        dependencies.append(task_id)
    return dependencies


def _prepare_task(payload, partial=False, instance=None, workspace=None):
    values = {}
    if _present(payload, "title", partial):
        values["title"] = require_text(payload.get("title"), "title")
    _texts(values, payload, partial, "description", "owner_name", "owner_type", "lane", "color")
    _dates(values, payload, partial, "start_date", "end_date", date_only=True)
    if _present(payload, "status", partial):
        values["status"] = ensure_choice(payload.get("status"), TASK_STATUSES, "status", default="planned")
    if _present(payload, "priority", partial):
        values["priority"] = ensure_choice(
            payload.get("priority"), TASK_PRIORITIES, "priority", default="medium",
        )
    if _present(payload, "progress_percent", partial):
        values["progress_percent"] = parse_percent_value(
            payload.get("progress_percent"), "progress_percent",
        ) or 0
    if _present(payload, "workload_hours", partial):
        values["workload_hours"] = parse_number_value(
            payload.get("workload_hours"), "workload_hours", minimum=0,
        )
    if _present(payload, "dependencies", partial):
        values["dependencies"] = _prepare_dependencies(payload.get("dependencies"), workspace, instance)
    _metadata(values, payload, partial)
    return values


def _prepare_budget(payload, partial=False, **_):
    values = {}
    if _present(payload, "category", partial):
        values["category"] = require_text(payload.get("category"), "category")
    _texts(values, payload, partial, "description", "owner_name", "notes")
    if _present(payload, "planned_amount_cents", partial):
        values["planned_amount_cents"] = parse_integer_value(
            payload.get("planned_amount_cents"), "planned_amount_cents",
            allow_null=False, minimum=0,
        )
    if _present(payload, "actual_amount_cents", partial):
        values["actual_amount_cents"] = parse_integer_value(
            payload.get("actual_amount_cents"), "actual_amount_cents", minimum=0,
        ) or 0
    if _present(payload, "currency", partial):
        values["currency"] = normalize_currency(payload.get("currency"))
    if _present(payload, "status", partial):
        values["status"] = ensure_choice(payload.get("status"), BUDGET_STATUSES, "status", default="planned")
    if _present(payload, "approvals_required", partial):
        values["approvals_required"] = parse_integer_value(
            payload.get("approvals_required"), "approvals_required", minimum=0,
        ) or 0
    return values


def _prepare_object(payload, partial=False, **_):
    values = {}
    if _present(payload, "name", partial):
        values["name"] = require_text(payload.get("name"), "name")
    _texts(values, payload, partial, "object_type", "owner_name", "description")
    if _present(payload, "status", partial):
        values["status"] = normalize_text(payload.get("status")) or "planned"
    _dates(values, payload, partial, "due_at")
    if _present(payload, "tags", partial):
        values["tags"] = normalize_string_list(payload.get("tags"))
    _metadata(values, payload, partial)
    return values


def _prepare_timeline_event(payload, partial=False, instance=None, **_):
    values = {}
    if _present(payload, "title", partial):
        values["title"] = require_text(payload.get("title"), "title")
    _texts(values, payload, partial, "description", "event_type", "owner_name", "color")
    if _present(payload, "event_date", partial):
        values["event_date"] = parse_date_value(payload.get("event_date"), "event_date", allow_null=False)
    if _present(payload, "milestone", partial):
        fallback = bool(instance.milestone) if instance is not None else False
        values["milestone"] = parse_boolean_value(payload.get("milestone"), default=fallback)
    _metadata(values, payload, partial)
    return values


def _prepare_meeting(payload, partial=False, instance=None, **_):
    values = {}
    if _present(payload, "title", partial):
        values["title"] = require_text(payload.get("title"), "title")
    _texts(values, payload, partial, "agenda", "meeting_type", "location", "host_name")
    if _present(payload, "start_at", partial):
        values["start_at"] = parse_date_value(payload.get("start_at"), "start_at", allow_null=False)
    _dates(values, payload, partial, "end_at")
    for field in ("attendees", "action_items", "resources"):
        if _present(payload, field, partial):
            values[field] = normalize_string_list(payload.get(field))
    _check_window(values, instance, "start_at", "end_at")
    return values


def _prepare_calendar_entry(payload, partial=False, instance=None, **_):
    values = {}
    if _present(payload, "title", partial):
        values["title"] = require_text(payload.get("title"), "title")
    if _present(payload, "start_at", partial):
        values["start_at"] = parse_date_value(payload.get("start_at"), "start_at", allow_null=False)
    _dates(values, payload, partial, "end_at")
    _texts(values, payload, partial, "event_type", "owner_name")
    if _present(payload, "visibility", partial):
        values["visibility"] = normalize_text(payload.get("visibility")) or "workspace"
    _metadata(values, payload, partial)
    _check_window(values, instance, "start_at", "end_at")
    return values


def _prepare_role(payload, partial=False, **_):
    values = {}
    if _present(payload, "role_name", partial):
        values["role_name"] = require_text(payload.get("role_name"), "role_name")
    if _present(payload, "member_name", partial):
        values["member_name"] = require_text(payload.get("member_name"), "member_name")
    _texts(values, payload, partial, "responsibilities", "contact_phone", "avatar_url")
    if _present(payload, "permissions", partial):
        values["permissions"] = normalize_string_list(payload.get("permissions"))
    if _present(payload, "contact_email", partial):
        values["contact_email"] = normalize_email(payload.get("contact_email"), "contact_email")
    return values


def _prepare_submission(payload, partial=False, instance=None, **_):
    values = {}
    if _present(payload, "title", partial):
        values["title"] = require_text(payload.get("title"), "title")
    _texts(values, payload, partial, "description", "reviewer_name", "decision_notes", "owner_name")
    if _present(payload, "status", partial):
        values["status"] = ensure_choice(
            payload.get("status"), SUBMISSION_STATUSES, "status", default="submitted",
        )
    _dates(values, payload, partial, "submitted_at", "decision_at")
    if _present(payload, "attachments", partial):
        values["attachments"] = normalize_array(payload.get("attachments"))

    now = _utcnow()
    status = _current(values, instance, "status")
    if not partial and values.get("submitted_at") is None and status != "draft":
        values["submitted_at"] = now
    if (
        "status" in values
        and status in DECIDED_SUBMISSION_STATUSES
        and _current(values, instance, "decision_at") is None
    ):
        values["decision_at"] = now
    return values


def _prepare_invite(payload, partial=False, instance=None, **_):
    values = {}
    if _present(payload, "email", partial):
        values["email"] = normalize_email(payload.get("email"), "email", required=True)
    if _present(payload, "role_name", partial):
        values["role_name"] = require_text(payload.get("role_name"), "role_name")
    _texts(values, payload, partial, "invited_by")
    if _present(payload, "status", partial):
        values["status"] = ensure_choice(payload.get("status"), INVITE_STATUSES, "status", default="pending")
    _dates(values, payload, partial, "invited_at", "expires_at", "accepted_at")
    _metadata(values, payload, partial)

    if not partial and values.get("invited_at") is None:
        values["invited_at"] = _utcnow()
    if partial and "invited_at" in values and values["invited_at"] is None:
        raise ValidationError("invited_at is required.", field="invited_at")
    if _present(payload, "token", partial):
        token = normalize_text(payload.get("token"))
        if token or not partial:
            values["token"] = token or secrets.token_urlsafe(24)
    if values.get("status") == "accepted" and _current(values, instance, "accepted_at") is None:
        values["accepted_at"] = _utcnow()
    return values


def _prepare_hr_record(payload, partial=False, **_):
    values = {}
    if _present(payload, "member_name", partial):
        values["member_name"] = require_text(payload.get("member_name"), "member_name")
    if _present(payload, "role_name", partial):
        values["role_name"] = require_text(payload.get("role_name"), "role_name")
    _texts(values, payload, partial, "employment_type", "manager_name", "notes")
    if _present(payload, "hourly_rate_cents", partial):
        values["hourly_rate_cents"] = parse_integer_value(
            payload.get("hourly_rate_cents"), "hourly_rate_cents", minimum=0,
        )
    if _present(payload, "capacity_hours", partial):
        values["capacity_hours"] = parse_number_value(
            payload.get("capacity_hours"), "capacity_hours", minimum=0,
        )
    if _present(payload, "utilization_percent", partial):
        values["utilization_percent"] = parse_percent_value(
            payload.get("utilization_percent"), "utilization_percent",
        )
    if _present(payload, "status", partial):
        values["status"] = ensure_choice(payload.get("status"), HR_STATUSES, "status", default="active")
    _metadata(values, payload, partial)
    return values


def _prepare_time_log(payload, partial=False, instance=None, workspace=None):
    values = {}
    if _present(payload, "task_id", partial):
        task_id = parse_integer_value(payload.get("task_id"), "task_id")
        if task_id is not None:
            get_scoped(WorkspaceTask, task_id, workspace_id=workspace.id, label="Task")
        values["task_id"] = task_id
    if _present(payload, "member_name", partial):
        values["member_name"] = require_text(payload.get("member_name"), "member_name")
    if _present(payload, "started_at", partial):
        values["started_at"] = parse_date_value(payload.get("started_at"), "started_at", allow_null=False)
    _dates(values, payload, partial, "ended_at")
    if _present(payload, "billable", partial):
        fallback = bool(instance.billable) if instance is not None else True
        values["billable"] = parse_boolean_value(payload.get("billable"), default=fallback)
    if _present(payload, "rate_cents", partial):
        values["rate_cents"] = parse_integer_value(payload.get("rate_cents"), "rate_cents", minimum=0)
    _texts(values, payload, partial, "notes")

    duration = parse_integer_value(payload.get("duration_minutes"), "duration_minutes", minimum=0)
    if duration is not None:
        values["duration_minutes"] = duration
    elif not partial or {"started_at", "ended_at", "duration_minutes"} & set(payload):
        values["duration_minutes"] = compute_duration_minutes(
            _current(values, instance, "started_at"),
            _current(values, instance, "ended_at"),
        )
    return values


def _prepare_target(payload, partial=False, **_):
    values = {}
    if _present(payload, "name", partial):
        values["name"] = require_text(payload.get("name"), "name")
    _texts(values, payload, partial, "description", "unit", "owner_name")
    for field in ("target_value", "current_value"):
        if _present(payload, field, partial):
            values[field] = parse_number_value(payload.get(field), field)
    _dates(values, payload, partial, "due_at")
    if _present(payload, "status", partial):
        values["status"] = ensure_choice(payload.get("status"), GOAL_STATUSES, "status", default="planned")
    if _present(payload, "trend", partial):
        trend = normalize_text(payload.get("trend"))
        values["trend"] = ensure_choice(trend, TARGET_TRENDS, "trend") if trend else None
    return values


def _prepare_objective(payload, partial=False, **_):
    values = {}
    if _present(payload, "title", partial):
        values["title"] = require_text(payload.get("title"), "title")
    _texts(values, payload, partial, "description", "owner_name")
    if _present(payload, "status", partial):
        values["status"] = ensure_choice(payload.get("status"), GOAL_STATUSES, "status", default="planned")
    _dates(values, payload, partial, "due_at")
    if _present(payload, "progress_percent", partial):
        values["progress_percent"] = parse_percent_value(payload.get("progress_percent"), "progress_percent")
    if _present(payload, "key_results", partial):
        values["key_results"] = normalize_string_list(payload.get("key_results"))
    return values


def _prepare_file(payload, partial=False, **_):
    values = {}
    if _present(payload, "name", partial):
        values["name"] = require_text(payload.get("name"), "name")
    _texts(values, payload, partial, "category", "file_type", "storage_path", "version", "uploaded_by_name")
    if _present(payload, "storage_provider", partial):
        values["storage_provider"] = normalize_text(payload.get("storage_provider")) or "internal"
    if _present(payload, "size_bytes", partial):
        values["size_bytes"] = parse_integer_value(payload.get("size_bytes"), "size_bytes", minimum=0) or 0
    if _present(payload, "tags", partial):
        values["tags"] = normalize_string_list(payload.get("tags"))
    for field in ("permissions", "watermark_settings"):
        if _present(payload, field, partial):
            values[field] = normalize_json_object(payload.get(field), field)
    _dates(values, payload, partial, "uploaded_at")
    if not partial and values.get("uploaded_at") is None:
        values["uploaded_at"] = _utcnow()
    return values


# ═══════════════════════════════════════════════════════════════════════════
#  GENERIC CREATE / UPDATE / DELETE
# ═══════════════════════════════════════════════════════════════════════════


@dataclass(frozen=True)
class _Entity:
    name: str
    label: str
    model: type
    prepare: Callable
    serialize: Callable = lambda row: row.to_dict()
    after_write: Callable | None = None


def _serialize_task(task) -> dict:
    payload = task.to_dict()
    payload["assignments"] = [a.to_dict() for a in task.assignments]
    return payload


def _replace_assignments(task, payload, workspace):
    """Replace the whole assignment set when ``assignments`` is present."""
    if "assignments" not in payload:
        return
    prepared = _prepare_assignments(payload.get("assignments"))
    task.assignments = [
        WorkspaceTaskAssignment(
            workspace_id=workspace.id,
            **check_column_lengths(WorkspaceTaskAssignment, fields, prefix=f"assignments[{index}]."),
        )
        for index, fields in enumerate(prepared)
    ]


def _require_id(entity_id, label):
    if entity_id is None or (isinstance(entity_id, str) and not entity_id.strip()):
        raise ValidationError(f"{label} id is required.", field="id")


def _log_mutation(entity, action, project, workspace, entity_id, actor_id):
    logger.info(
        "Workspace %s %s", entity.name, action,
        extra={
            "project_id": project.id,
            "workspace_id": workspace.id,
            "entity": entity.name,
            "entity_id": entity_id,
            "actor_id": actor_id,
        },
    )


def _create(entity, project_id, payload, actor_id):
    payload = require_payload(payload)
    with atomic(f"create {entity.name}"):
        project, workspace = ensure_workspace(project_id)
        values = check_column_lengths(
            entity.model, entity.prepare(payload, partial=False, workspace=workspace),
        )
        row = entity.model(workspace_id=workspace.id, **values)
        db.session.add(row)
        if entity.after_write:
            entity.after_write(row, payload, workspace)
        db.session.flush()
        touch_workspace(workspace, actor_id)
        result = entity.serialize(row)
    _log_mutation(entity, "created", project, workspace, result["id"], actor_id)
    return result


def _update(entity, project_id, entity_id, payload, actor_id):
    _require_id(entity_id, entity.label)
    payload = require_payload(payload)
    with atomic(f"update {entity.name}"):
        project, workspace = ensure_workspace(project_id)
        row = get_scoped(entity.model, entity_id, workspace_id=workspace.id, lock=True, label=entity.label)
        values = check_column_lengths(
            entity.model, entity.prepare(payload, partial=True, instance=row, workspace=workspace),
        )
        for field, value in values.items():
            setattr(row, field, value)
        if entity.after_write:
            entity.after_write(row, payload, workspace)
        db.session.flush()
        touch_workspace(workspace, actor_id)
        result = entity.serialize(row)
    _log_mutation(entity, "updated", project, workspace, result["id"], actor_id)
    return result


def _delete(entity, project_id, entity_id, actor_id):
    _require_id(entity_id, entity.label)
    with atomic(f"delete {entity.name}"):
        project, workspace = ensure_workspace(project_id)
        row = get_scoped(entity.model, entity_id, workspace_id=workspace.id, lock=True, label=entity.label)
        deleted_id = row.id
        db.session.delete(row)
        db.session.flush()
        touch_workspace(workspace, actor_id)
    _log_mutation(entity, "deleted", project, workspace, deleted_id, actor_id)
    return {"success": True}


TASK = _Entity("task", "Task", WorkspaceTask, _prepare_task, _serialize_task, _replace_assignments)
BUDGET = _Entity("budget", "Budget line", WorkspaceBudgetLine, _prepare_budget)
OBJECT = _Entity("object", "Workspace object", WorkspaceObject, _prepare_object)
TIMELINE_EVENT = _Entity("timeline_event", "Timeline event", WorkspaceTimelineEvent, _prepare_timeline_event)
MEETING = _Entity("meeting", "Meeting", WorkspaceMeeting, _prepare_meeting)
CALENDAR_ENTRY = _Entity("calendar_entry", "Calendar entry", WorkspaceCalendarEntry, _prepare_calendar_entry)
ROLE = _Entity("role", "Role", WorkspaceRole, _prepare_role)
SUBMISSION = _Entity("submission", "Submission", WorkspaceSubmission, _prepare_submission)
INVITE = _Entity("invite", "Invite", WorkspaceInvite, _prepare_invite)
HR_RECORD = _Entity("hr_record", "HR record", WorkspaceHrRecord, _prepare_hr_record)
TIME_LOG = _Entity("time_log", "Time log", WorkspaceTimeLog, _prepare_time_log)
TARGET = _Entity("target", "Target", WorkspaceTarget, _prepare_target)
OBJECTIVE = _Entity("objective", "Objective", WorkspaceObjective, _prepare_objective)
FILE = _Entity("file", "File", WorkspaceFile, _prepare_file)


# ── Tasks ────────────────────────────────────────────────────────────────


def add_project_task(project_id, payload, actor_id=None):
    """Create a task; ``assignments`` in the payload become its staffing."""
    return _create(TASK, project_id, payload, actor_id)


def update_project_task(project_id, task_id, payload, actor_id=None):
    """Sparse task update. A present ``assignments`` key replaces the whole set."""
    return _update(TASK, project_id, task_id, payload, actor_id)


def remove_project_task(project_id, task_id, actor_id=None):
    """Delete a task together with its assignments."""
    return _delete(TASK, project_id, task_id, actor_id)


# ── Budget lines ─────────────────────────────────────────────────────────


def create_project_budget(project_id, payload, actor_id=None):
    return _create(BUDGET, project_id, payload, actor_id)


def update_project_budget(project_id, budget_id, payload, actor_id=None):
    return _update(BUDGET, project_id, budget_id, payload, actor_id)


def delete_project_budget(project_id, budget_id, actor_id=None):
    return _delete(BUDGET, project_id, budget_id, actor_id)


# ── Objects ──────────────────────────────────────────────────────────────


def create_project_object(project_id, payload, actor_id=None):
    return _create(OBJECT, project_id, payload, actor_id)


def update_project_object(project_id, object_id, payload, actor_id=None):
    return _update(OBJECT, project_id, object_id, payload, actor_id)


def delete_project_object(project_id, object_id, actor_id=None):
    return _delete(OBJECT, project_id, object_id, actor_id)


# ── Timeline events ──────────────────────────────────────────────────────


def create_project_timeline_event(project_id, payload, actor_id=None):
    return _create(TIMELINE_EVENT, project_id, payload, actor_id)


def update_project_timeline_event(project_id, event_id, payload, actor_id=None):
    return _update(TIMELINE_EVENT, project_id, event_id, payload, actor_id)


def delete_project_timeline_event(project_id, event_id, actor_id=None):
    return _delete(TIMELINE_EVENT, project_id, event_id, actor_id)


# ── Meetings ─────────────────────────────────────────────────────────────


def create_project_meeting(project_id, payload, actor_id=None):
    return _create(MEETING, project_id, payload, actor_id)


def update_project_meeting(project_id, meeting_id, payload, actor_id=None):
    return _update(MEETING, project_id, meeting_id, payload, actor_id)


def delete_project_meeting(project_id, meeting_id, actor_id=None):
    return _delete(MEETING, project_id, meeting_id, actor_id)


# ── Calendar entries ─────────────────────────────────────────────────────


def create_project_calendar_entry(project_id, payload, actor_id=None):
    return _create(CALENDAR_ENTRY, project_id, payload, actor_id)


def update_project_calendar_entry(project_id, entry_id, payload, actor_id=None):
    return _update(CALENDAR_ENTRY, project_id, entry_id, payload, actor_id)


def delete_project_calendar_entry(project_id, entry_id, actor_id=None):
    return _delete(CALENDAR_ENTRY, project_id, entry_id, actor_id)


# ── Roles ────────────────────────────────────────────────────────────────


def create_project_role(project_id, payload, actor_id=None):
    return _create(ROLE, project_id, payload, actor_id)


def update_project_role(project_id, role_id, payload, actor_id=None):
    return _update(ROLE, project_id, role_id, payload, actor_id)


def delete_project_role(project_id, role_id, actor_id=None):
    return _delete(ROLE, project_id, role_id, actor_id)


# ── Submissions ──────────────────────────────────────────────────────────


def create_project_submission(project_id, payload, actor_id=None):
    """Create a submission. Non-draft submissions default ``submitted_at`` to now."""
    return _create(SUBMISSION, project_id, payload, actor_id)


def update_project_submission(project_id, submission_id, payload, actor_id=None):
    return _update(SUBMISSION, project_id, submission_id, payload, actor_id)


def delete_project_submission(project_id, submission_id, actor_id=None):
    return _delete(SUBMISSION, project_id, submission_id, actor_id)


# ── Invites ──────────────────────────────────────────────────────────────


def create_project_invite(project_id, payload, actor_id=None):
    """Create an invite with a fresh urlsafe token unless one is supplied."""
    return _create(INVITE, project_id, payload, actor_id)


def update_project_invite(project_id, invite_id, payload, actor_id=None):
    return _update(INVITE, project_id, invite_id, payload, actor_id)


def delete_project_invite(project_id, invite_id, actor_id=None):
    return _delete(INVITE, project_id, invite_id, actor_id)


# ── HR records ───────────────────────────────────────────────────────────


def create_project_hr_record(project_id, payload, actor_id=None):
    return _create(HR_RECORD, project_id, payload, actor_id)


def update_project_hr_record(project_id, record_id, payload, actor_id=None):
    return _update(HR_RECORD, project_id, record_id, payload, actor_id)


def delete_project_hr_record(project_id, record_id, actor_id=None):
    return _delete(HR_RECORD, project_id, record_id, actor_id)


# ── Time logs ────────────────────────────────────────────────────────────


def create_project_time_log(project_id, payload, actor_id=None):
    """Log time. ``duration_minutes`` is derived from the bounds when omitted."""
    return _create(TIME_LOG, project_id, payload, actor_id)


def update_project_time_log(project_id, log_id, payload, actor_id=None):
    """Sparse update; changing a bound without a duration re-derives it."""
    return _update(TIME_LOG, project_id, log_id, payload, actor_id)


def delete_project_time_log(project_id, log_id, actor_id=None):
    return _delete(TIME_LOG, project_id, log_id, actor_id)


# ── Targets & objectives ─────────────────────────────────────────────────


def create_project_target(project_id, payload, actor_id=None):
    return _create(TARGET, project_id, payload, actor_id)


def update_project_target(project_id, target_id, payload, actor_id=None):
    return _update(TARGET, project_id, target_id, payload, actor_id)


def delete_project_target(project_id, target_id, actor_id=None):
    return _delete(TARGET, project_id, target_id, actor_id)


def create_project_objective(project_id, payload, actor_id=None):
    return _create(OBJECTIVE, project_id, payload, actor_id)


def update_project_objective(project_id, objective_id, payload, actor_id=None):
    return _update(OBJECTIVE, project_id, objective_id, payload, actor_id)


def delete_project_objective(project_id, objective_id, actor_id=None):
    return _delete(OBJECTIVE, project_id, objective_id, actor_id)


# ── Files ────────────────────────────────────────────────────────────────


def create_project_file(project_id, payload, actor_id=None):
    return _create(FILE, project_id, payload, actor_id)


def update_project_file(project_id, file_id, payload, actor_id=None):
    return _update(FILE, project_id, file_id, payload, actor_id)


def delete_project_file(project_id, file_id, actor_id=None):
    return _delete(FILE, project_id, file_id, actor_id)


# ═══════════════════════════════════════════════════════════════════════════
#  CONVERSATION MESSAGES
# ═══════════════════════════════════════════════════════════════════════════


def _refresh_conversation_preview(conversation):
    """Point the conversation preview at its latest remaining message."""
    latest = db.session.execute(
        select(WorkspaceMessage)
        .where(WorkspaceMessage.conversation_id == conversation.id)
        .order_by(WorkspaceMessage.posted_at.desc(), WorkspaceMessage.id.desc())
        .limit(1)
    ).scalar_one_or_none()
    if latest is None:
        conversation.last_message_preview = None
        conversation.last_message_at = None
    else:
        conversation.last_message_preview = truncate(latest.body, MESSAGE_PREVIEW_LENGTH)
        conversation.last_message_at = latest.posted_at


def _get_message(conversation, message_id, workspace):
    _require_id(message_id, "Message")
    message = get_scoped(WorkspaceMessage, message_id, workspace_id=workspace.id, lock=True, label="Message")
    if message.conversation_id != conversation.id:
        raise NotFoundError(resource="Message", resource_id=message_id, workspace_id=workspace.id)
    return message


def _get_conversation(conversation_id, workspace):
    _require_id(conversation_id, "Conversation")
    return get_scoped(
        WorkspaceConversation, conversation_id,
        workspace_id=workspace.id, lock=True, label="Conversation",
    )


def create_conversation_message(project_id, conversation_id, payload, actor_id=None):
    """Append a message and reset the conversation's ``unread_count`` to 0.

    The preview (first 300 characters of the body) and ``last_message_at``
    move onto the new message unless a newer message already exists.
    """
    payload = require_payload(payload)
    with atomic("create conversation message"):
        project, workspace = ensure_workspace(project_id)
        conversation = _get_conversation(conversation_id, workspace)
        body = require_text(payload.get("body"), "body")
        posted_at = parse_date_value(payload.get("posted_at"), "posted_at") or _utcnow()
        author_id = parse_integer_value(payload.get("author_id"), "author_id")
        message = WorkspaceMessage(
            workspace_id=workspace.id,
            conversation_id=conversation.id,
            author_name=normalize_text(
                payload.get("author_name"), "author_name", max_length=AUTHOR_NAME_LENGTH,
            ),
            author_id=author_id if author_id is not None else actor_id,
            body=body,
            attachments=normalize_array(payload.get("attachments")),
            posted_at=posted_at,
        )
        db.session.add(message)
        db.session.flush()

        latest_at = as_utc(conversation.last_message_at)
        if latest_at is None or posted_at >= latest_at:
            conversation.last_message_preview = truncate(body, MESSAGE_PREVIEW_LENGTH)
            conversation.last_message_at = posted_at
        conversation.unread_count = 0
        touch_workspace(workspace, actor_id)
        result = message.to_dict()

    logger.info(
        "Workspace message posted",
        extra={
            "project_id": project.id, "workspace_id": workspace.id,
            "entity": "message", "entity_id": result["id"], "actor_id": actor_id,
        },
    )
    return result


def update_conversation_message(project_id, conversation_id, message_id, payload, actor_id=None):
    payload = require_payload(payload)
    with atomic("update conversation message"):
        project, workspace = ensure_workspace(project_id)
        conversation = _get_conversation(conversation_id, workspace)
        message = _get_message(conversation, message_id, workspace)
        if "body" in payload:
            message.body = require_text(payload.get("body"), "body")
        if "author_name" in payload:
            message.author_name = normalize_text(
                payload.get("author_name"), "author_name", max_length=AUTHOR_NAME_LENGTH,
            )
        if "attachments" in payload:
            message.attachments = normalize_array(payload.get("attachments"))
        db.session.flush()
        _refresh_conversation_preview(conversation)
        touch_workspace(workspace, actor_id)
        result = message.to_dict()

    logger.info(
        "Workspace message updated",
        extra={
            "project_id": project.id, "workspace_id": workspace.id,
            "entity": "message", "entity_id": result["id"], "actor_id": actor_id,
        },
    )
    return result


def delete_conversation_message(project_id, conversation_id, message_id, actor_id=None):
    with atomic("delete conversation message"):
        project, workspace = ensure_workspace(project_id)
        conversation = _get_conversation(conversation_id, workspace)
        message = _get_message(conversation, message_id, workspace)
        deleted_id = message.id
        db.session.delete(message)
        db.session.flush()
        _refresh_conversation_preview(conversation)
        touch_workspace(workspace, actor_id)

    logger.info(
        "Workspace message deleted",
        extra={
            "project_id": project.id, "workspace_id": workspace.id,
            "entity": "message", "entity_id": deleted_id, "actor_id": actor_id,
        },
    )
    return {"success": True}


# ═══════════════════════════════════════════════════════════════════════════
#  WORKSPACE-LEVEL UPDATE
# ═══════════════════════════════════════════════════════════════════════════


def _prepare_workspace_fields(payload) -> dict:
    values = {}
    if "status" in payload:
        values["status"] = ensure_choice(payload["status"], WORKSPACE_STATUSES, "status", default="briefing")
    if "progress_percent" in payload:
        values["progress_percent"] = parse_percent_value(payload["progress_percent"], "progress_percent") or 0
    for field in ("health_score", "velocity_score", "automation_coverage"):
        if field in payload:
            values[field] = parse_percent_value(payload[field], field)
    if "risk_level" in payload:
        values["risk_level"] = ensure_choice(payload["risk_level"], RISK_LEVELS, "risk_level", default="low")
    if "client_satisfaction" in payload:
        score = parse_number_value(payload["client_satisfaction"], "client_satisfaction", minimum=0)
        if score is not None and score > 5:
            raise ValidationError("client_satisfaction must be <= 5.", field="client_satisfaction")
        values["client_satisfaction"] = score
    if "billing_status" in payload:
        billing = normalize_text(payload["billing_status"])
        values["billing_status"] = (
            ensure_choice(billing, BILLING_STATUSES, "billing_status") if billing else None
        )
    for field in ("next_milestone", "notes"):
        if field in payload:
            values[field] = normalize_text(payload[field])
    if "next_milestone_due_at" in payload:
        values["next_milestone_due_at"] = parse_date_value(
            payload["next_milestone_due_at"], "next_milestone_due_at",
        )
    if "metrics_snapshot" in payload:
        values["metrics_snapshot"] = normalize_json_object(payload["metrics_snapshot"], "metrics_snapshot")
    return values


def _prepare_timeline_fields(payload) -> dict:
    if not isinstance(payload, dict):
        raise ValidationError("timeline must be an object.", field="timeline")
    values = {}
    if "name" in payload:
        values["name"] = require_text(payload["name"], "timeline.name")
    if "timezone" in payload:
        values["timezone"] = normalize_text(payload["timezone"]) or "UTC"
    if "owner_name" in payload:
        values["owner_name"] = normalize_text(payload["owner_name"])
    for field in ("start_date", "end_date", "baseline_start_date", "baseline_end_date"):
        if field in payload:
            values[field] = parse_date_value(payload[field], f"timeline.{field}", date_only=True)
    return values


def update_project_operations(project_id, payload, actor_id=None) -> dict:
    """Sparse update of workspace scalars and the delivery timeline.

    Returns the refreshed operations payload.
    """
    payload = require_payload(payload)
    with atomic("update_project_operations"):
        project, workspace = ensure_workspace(project_id)
        seed_operations_artifacts(workspace, project)

        workspace_values = check_column_lengths(Workspace, _prepare_workspace_fields(payload))
        for field, value in workspace_values.items():
            setattr(workspace, field, value)

        if "timeline" in payload:
            timeline_values = check_column_lengths(
                WorkspaceTimeline, _prepare_timeline_fields(payload["timeline"]), prefix="timeline.",
            )
            timeline = db.session.execute(
                WorkspaceTimeline.scoped_select(workspace.id).with_for_update()
            ).scalars().first()
            for field, value in timeline_values.items():
                setattr(timeline, field, value)

        touch_workspace(workspace, actor_id)

    logger.info(
        "Workspace operations updated",
        extra={
            "project_id": project.id, "workspace_id": workspace.id,
            "entity": "workspace", "actor_id": actor_id,
        },
    )
    return get_project_operations(project_id)
