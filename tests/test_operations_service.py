"""
Tests: operations service (aggregate read + per-entity writes).

Covers:
    - aggregate payload shape, metrics, activity feed, storage summary
    - task lifecycle incl. assignment replacement
    - budget / time log / invite / submission normalization rules
    - conversation messages and preview maintenance
    - workspace scoping (foreign ids are not found)
    - workspace-level sparse update with timeline
"""

from datetime import datetime, timedelta, timezone
from types import SimpleNamespace

import pytest
from sqlalchemy import func, select

from workspace_hub.core.exceptions import NotFoundError, ValidationError
from workspace_hub.models import db
from workspace_hub.models.operations import WorkspaceInvite, WorkspaceTaskAssignment
from workspace_hub.models.workspace import Workspace
from workspace_hub.services import operations_service as ops
from workspace_hub.utils.normalization import as_utc


def _operations(project):
    return ops.get_project_operations(project.id)


def _conversation(payload, topic):
    return next(c for c in payload["conversations"] if c["topic"] == topic)


# ═════════════════════════════════════════════════════════════════════════════
# AGGREGATE READ
# ═════════════════════════════════════════════════════════════════════════════


class TestGetProjectOperations:
    def test_payload_shape(self, project):
        payload = _operations(project)

        for key in (
            "project", "workspace", "timeline", "tasks", "budgets", "objects",
            "timeline_events", "meetings", "calendar_entries", "roles",
            "submissions", "invites", "hr_records", "time_logs", "targets",
            "objectives", "brief", "files", "conversations", "metrics",
            "activity", "storage",
        ):
            assert key in payload, key
        assert payload["project"]["id"] == project.id
        assert len(payload["tasks"]) == 4
        assert all(len(task["assignments"]) == 2 for task in payload["tasks"])

    def test_metrics_from_seed(self, project):
        metrics = _operations(project)["metrics"]

        assert metrics["planned_budget_cents"] == 8_450_000
        assert metrics["actual_budget_cents"] == 4_450_000
        assert metrics["budget_variance_cents"] == 4_000_000
        assert metrics["total_workload_hours"] == 720
        assert metrics["total_logged_hours"] == 7.0
        assert metrics["completed_tasks"] == 1
        assert metrics["open_tasks"] == 3
        assert metrics["pending_invites"] == 1

    def test_storage_summary_uses_configured_capacity(self, project, app):
        storage = _operations(project)["storage"]

        assert storage["file_count"] == 3
        assert storage["total_size"] == 18_400_000
        assert storage["capacity"] == app.config["WORKSPACE_STORAGE_CAPACITY_BYTES"]

    def test_activity_feed_is_newest_first(self, project):
        activity = _operations(project)["activity"]

        assert 0 < len(activity) <= 15
        stamps = [item["timestamp"] for item in activity]
        assert stamps == sorted(stamps, reverse=True)
        assert {item["id"].split("-")[0] for item in activity} <= {"message", "timeline"}

    def test_invites_never_expose_token(self, project):
        for invite in _operations(project)["invites"]:
            assert "token" not in invite

    def test_missing_project(self):
        with pytest.raises(NotFoundError):
            ops.get_project_operations(987_654)


class TestDerivedHelpers:
    def test_compute_operations_metrics(self):
        now = datetime(2025, 1, 10, tzinfo=timezone.utc)
        tasks = [
            SimpleNamespace(status="completed", progress_percent=100, workload_hours=10),
            SimpleNamespace(status="in_progress", progress_percent=50, workload_hours=None),
        ]
        budgets = [SimpleNamespace(planned_amount_cents=1000, actual_amount_cents=1500)]
        meetings = [
            SimpleNamespace(start_at=now + timedelta(hours=1)),
            SimpleNamespace(start_at=now - timedelta(hours=1)),
        ]
        events = [SimpleNamespace(event_date=now + timedelta(days=3))]
        logs = [SimpleNamespace(duration_minutes=50), SimpleNamespace(duration_minutes=None)]
        targets = [SimpleNamespace(status="completed"), SimpleNamespace(status="at_risk")]
        invites = [SimpleNamespace(status="pending"), SimpleNamespace(status="revoked")]

        metrics = ops.compute_operations_metrics(
            tasks=tasks, budgets=budgets, meetings=meetings, timeline_events=events,
            time_logs=logs, targets=targets, invites=invites, now=now,
        )

        assert metrics["budget_variance_cents"] == -500
        assert metrics["total_workload_hours"] == 10
        assert metrics["total_logged_hours"] == 0.83
        assert metrics["average_task_progress"] == 75.0
        assert metrics["upcoming_meetings"] == 1
        assert metrics["upcoming_timeline_events"] == 1
        assert metrics["active_targets"] == 1
        assert metrics["pending_invites"] == 1

    def test_metrics_with_nothing(self):
        metrics = ops.compute_operations_metrics(
            tasks=[], budgets=[], meetings=[], timeline_events=[],
            time_logs=[], targets=[], invites=[],
        )
        assert metrics["average_task_progress"] == 0
        assert metrics["total_logged_hours"] == 0

    def test_storage_summary_zero_capacity(self):
        files = [SimpleNamespace(size_bytes=100), SimpleNamespace(size_bytes=None)]
        summary = ops.build_storage_summary(files, capacity=0)
        assert summary == {"file_count": 2, "total_size": 100, "capacity": 0, "used_percent": 0}

    def test_activity_feed_caps_and_labels(self):
        base = datetime(2025, 1, 1, tzinfo=timezone.utc)
        conversations = [SimpleNamespace(id=1, topic="Delivery standup")]
        messages = [
            SimpleNamespace(
                id=i, conversation_id=1, author_name=None, body=f"note {i}",
                posted_at=base + timedelta(minutes=i), created_at=base,
            )
            for i in range(12)
        ]
        events = [
            SimpleNamespace(
                id=i, title="Sprint review", event_type="status_update", owner_name="PMO",
                event_date=base + timedelta(days=i), created_at=base,
            )
            for i in range(6)
        ]

        feed = ops.build_activity_feed(conversations, messages, events)

        assert len(feed) == 15
        assert feed[0]["id"] == "timeline-5"
        assert feed[0]["message"] == "Sprint review (status update)"
        message_items = [item for item in feed if item["id"].startswith("message-")]
        assert len(message_items) == 10
        assert message_items[0]["actor"] == "Workspace"
        assert message_items[0]["related"] == "Delivery standup"


# ═════════════════════════════════════════════════════════════════════════════
# TASKS
# ═════════════════════════════════════════════════════════════════════════════


class TestTasks:
    def test_task_lifecycle(self, project):
        created = ops.add_project_task(project.id, {
            "title": "  Data migration  ",
            "start_date": "2025-03-01",
            "end_date": "2025-03-15",
            "status": "in_progress",
            "progress_percent": 30,
            "assignments": [
                {"assignee_name": "Ari Banerjee", "allocation_percent": 50, "hours_committed": 40},
            ],
        }, actor_id=4)

        assert created["title"] == "Data migration"
        assert created["start_date"] == "2025-03-01"
        assert created["priority"] == "medium"
        assert len(created["assignments"]) == 1
        assert created["assignments"][0]["status"] == "active"

        updated = ops.update_project_task(project.id, created["id"], {"status": "completed"})
        assert updated["status"] == "completed"
        assert updated["title"] == "Data migration"
        assert len(updated["assignments"]) == 1

        assert ops.remove_project_task(project.id, created["id"]) == {"success": True}
        remaining = db.session.execute(
            select(func.count(WorkspaceTaskAssignment.id))
            .where(WorkspaceTaskAssignment.task_id == created["id"])
        ).scalar_one()
        assert remaining == 0
        with pytest.raises(NotFoundError):
            ops.update_project_task(project.id, created["id"], {"title": "Gone"})

    def test_assignments_replaced_as_a_whole(self, project):
        created = ops.add_project_task(project.id, {
            "title": "QA sweep",
            "assignments": [{"assignee_name": "Kai"}, {"assignee_name": "Noor"}],
        })

        replaced = ops.update_project_task(project.id, created["id"], {
            "assignments": [{"assignee_name": "Sofia", "assignee_role": "QA"}],
        })
        assert [a["assignee_name"] for a in replaced["assignments"]] == ["Sofia"]

        cleared = ops.update_project_task(project.id, created["id"], {"assignments": []})
        assert cleared["assignments"] == []

        untouched = ops.update_project_task(project.id, created["id"], {"lane": "QA"})
        assert untouched["assignments"] == []

    def test_title_required(self, project):
        with pytest.raises(ValidationError) as exc:
            ops.add_project_task(project.id, {"title": "   "})
        assert "title" in str(exc.value)

    def test_progress_is_clamped(self, project):
        created = ops.add_project_task(project.id, {"title": "Overachiever", "progress_percent": 180})
        assert created["progress_percent"] == 100

    def test_invalid_status_rejected(self, project):
        with pytest.raises(ValidationError):
            ops.add_project_task(project.id, {"title": "X", "status": "someday"})

    def test_assignment_needs_name(self, project):
        with pytest.raises(ValidationError) as exc:
            ops.add_project_task(project.id, {"title": "X", "assignments": [{"assignee_role": "QA"}]})
        assert "assignee_name" in str(exc.value)

    def test_missing_task_id(self, project):
        with pytest.raises(ValidationError):
            ops.update_project_task(project.id, None, {"title": "X"})
        with pytest.raises(ValidationError):
            ops.remove_project_task(project.id, "")

    def test_dependencies_must_be_tasks_of_the_workspace(self, project, other_project):
        first = ops.add_project_task(project.id, {"title": "Discovery"})
        second = ops.add_project_task(project.id, {"title": "Build", "dependencies": [first["id"]]})
        assert second["dependencies"] == [first["id"]]

        foreign = ops.add_project_task(other_project.id, {"title": "Elsewhere"})
        with pytest.raises(NotFoundError):
            ops.add_project_task(project.id, {"title": "Leaky", "dependencies": [foreign["id"]]})
        with pytest.raises(NotFoundError):
            ops.update_project_task(project.id, second["id"], {"dependencies": [99_999]})

    def test_task_cannot_depend_on_itself(self, project):
        task = ops.add_project_task(project.id, {"title": "Loop"})
        with pytest.raises(ValidationError) as exc:
            ops.update_project_task(project.id, task["id"], {"dependencies": [task["id"]]})
        assert exc.value.field == "dependencies"

    def test_overlong_title_rejected(self, project):
        with pytest.raises(ValidationError) as exc:
            ops.add_project_task(project.id, {"title": "x" * 5000})
        assert "title" in str(exc.value)
        assert exc.value.field == "title"

    def test_overlong_assignee_name_rejected(self, project):
        with pytest.raises(ValidationError) as exc:
            ops.add_project_task(project.id, {
                "title": "Staffing", "assignments": [{"assignee_name": "K" * 121}],
            })
        assert exc.value.field == "assignments[0].assignee_name"


# ═════════════════════════════════════════════════════════════════════════════
# BUDGETS / TIME LOGS / INVITES / SUBMISSIONS
# ═════════════════════════════════════════════════════════════════════════════


class TestBudgets:
    def test_blank_category_rejected(self, project):
        with pytest.raises(ValidationError) as exc:
            ops.create_project_budget(project.id, {"category": "", "planned_amount_cents": 100})
        assert "category" in str(exc.value)

    def test_planned_amount_required(self, project):
        with pytest.raises(ValidationError) as exc:
            ops.create_project_budget(project.id, {"category": "Travel"})
        assert "planned_amount_cents" in str(exc.value)

    def test_currency_uppercased_and_defaults(self, project):
        created = ops.create_project_budget(project.id, {
            "category": "Travel", "planned_amount_cents": "250000", "currency": "eur",
        })
        assert created["currency"] == "EUR"
        assert created["planned_amount_cents"] == 250_000
        assert created["actual_amount_cents"] == 0
        assert created["status"] == "planned"

    def test_update_is_sparse(self, project):
        created = ops.create_project_budget(project.id, {"category": "Travel", "planned_amount_cents": 100})
        updated = ops.update_project_budget(project.id, created["id"], {"actual_amount_cents": 80})
        assert updated["category"] == "Travel"
        assert updated["planned_amount_cents"] == 100
        assert updated["actual_amount_cents"] == 80


class TestTimeLogs:
    def test_duration_derived_from_bounds(self, project):
        created = ops.create_project_time_log(project.id, {
            "member_name": "Kai Chen",
            "started_at": "2025-01-01T09:00:00Z",
            "ended_at": "2025-01-01T10:30:00Z",
        })
        assert created["duration_minutes"] == 90
        assert created["billable"] is True

    def test_changing_bound_rederives_duration(self, project):
        created = ops.create_project_time_log(project.id, {
            "member_name": "Kai Chen",
            "started_at": "2025-01-01T09:00:00Z",
            "ended_at": "2025-01-01T10:30:00Z",
        })
        updated = ops.update_project_time_log(project.id, created["id"], {
            "ended_at": "2025-01-01T11:00:00Z",
        })
        assert updated["duration_minutes"] == 120

        notes_only = ops.update_project_time_log(project.id, created["id"], {"notes": "Pairing"})
        assert notes_only["duration_minutes"] == 120

    def test_explicit_duration_wins(self, project):
        created = ops.create_project_time_log(project.id, {
            "member_name": "Kai Chen",
            "started_at": "2025-01-01T09:00:00Z",
            "ended_at": "2025-01-01T10:30:00Z",
            "duration_minutes": 45,
        })
        assert created["duration_minutes"] == 45

    def test_open_ended_log_has_no_duration(self, project):
        created = ops.create_project_time_log(project.id, {
            "member_name": "Kai Chen", "started_at": "2025-01-01T09:00:00Z", "billable": "no",
        })
        assert created["duration_minutes"] is None
        assert created["billable"] is False

    def test_task_must_belong_to_workspace(self, project, other_project):
        foreign = ops.add_project_task(other_project.id, {"title": "Elsewhere"})
        with pytest.raises(NotFoundError):
            ops.create_project_time_log(project.id, {
                "member_name": "Kai Chen",
                "started_at": "2025-01-01T09:00:00Z",
                "task_id": foreign["id"],
            })

    def test_deleting_task_unlinks_logs(self, project):
        task = ops.add_project_task(project.id, {"title": "Short task"})
        log = ops.create_project_time_log(project.id, {
            "member_name": "Kai Chen",
            "started_at": "2025-01-01T09:00:00Z",
            "task_id": task["id"],
        })
        ops.remove_project_task(project.id, task["id"])
        db.session.expire_all()

        logs = ops.get_project_operations(project.id)["time_logs"]
        assert next(item for item in logs if item["id"] == log["id"])["task_id"] is None


class TestInvites:
    def test_token_generated_and_hidden(self, project):
        created = ops.create_project_invite(project.id, {
            "email": "reviewer@example.com", "role_name": "Reviewer",
        })
        assert created["has_token"] is True
        assert "token" not in created
        assert created["status"] == "pending"
        assert created["invited_at"] is not None

        row = db.session.get(WorkspaceInvite, created["id"])
        assert len(row.token) >= 24

    def test_email_validated(self, project):
        with pytest.raises(ValidationError):
            ops.create_project_invite(project.id, {"email": "nope", "role_name": "Reviewer"})

    def test_accepting_stamps_accepted_at(self, project):
        created = ops.create_project_invite(project.id, {
            "email": "reviewer@example.com", "role_name": "Reviewer",
        })
        accepted = ops.update_project_invite(project.id, created["id"], {"status": "accepted"})
        assert accepted["accepted_at"] is not None


class TestSubmissions:
    def test_non_draft_defaults_submitted_at(self, project):
        created = ops.create_project_submission(project.id, {"title": "Sprint 2 demo"})
        assert created["status"] == "submitted"
        assert created["submitted_at"] is not None

        draft = ops.create_project_submission(project.id, {"title": "WIP", "status": "draft"})
        assert draft["submitted_at"] is None

    def test_decision_stamps_decision_at(self, project):
        created = ops.create_project_submission(project.id, {"title": "Sprint 2 demo"})
        decided = ops.update_project_submission(project.id, created["id"], {"status": "approved"})
        assert decided["decision_at"] is not None


class TestWindows:
    def test_meeting_end_before_start_rejected(self, project):
        with pytest.raises(ValidationError) as exc:
            ops.create_project_meeting(project.id, {
                "title": "Retro",
                "start_at": "2025-01-01T10:00:00Z",
                "end_at": "2025-01-01T09:00:00Z",
            })
        assert "end_at" in str(exc.value)

    def test_meeting_start_required(self, project):
        with pytest.raises(ValidationError):
            ops.create_project_meeting(project.id, {"title": "Retro"})

    def test_calendar_entry_defaults_visibility(self, project):
        created = ops.create_project_calendar_entry(project.id, {
            "title": "Holiday", "start_at": "2025-12-24",
        })
        assert created["visibility"] == "workspace"


# ═════════════════════════════════════════════════════════════════════════════
# SCOPING & TOUCH
# ═════════════════════════════════════════════════════════════════════════════


class TestScoping:
    def test_foreign_row_is_not_found(self, project, other_project):
        foreign = ops.create_project_role(other_project.id, {
            "role_name": "Designer", "member_name": "Kai Chen",
        })
        with pytest.raises(NotFoundError):
            ops.update_project_role(project.id, foreign["id"], {"member_name": "Mallory"})
        with pytest.raises(NotFoundError):
            ops.delete_project_role(project.id, foreign["id"])

    def test_mutation_touches_workspace(self, project):
        ops.get_project_operations(project.id)
        workspace = db.session.execute(
            select(Workspace).filter_by(project_id=project.id)
        ).scalar_one()
        before = as_utc(workspace.last_activity_at)

        ops.create_project_target(project.id, {"name": "NPS", "target_value": 60}, actor_id=12)
        db.session.expire_all()
        workspace = db.session.get(Workspace, workspace.id)

        assert as_utc(workspace.last_activity_at) > before
        assert workspace.updated_by_id == 12


class TestIdentifiers:
    def test_deleted_id_is_not_reused_by_reseed(self, project):
        created = ops.create_project_target(project.id, {"name": "Only target"})
        ops.delete_project_target(project.id, created["id"])

        reseeded = [target["id"] for target in _operations(project)["targets"]]
        assert len(reseeded) == 2
        assert all(target_id > created["id"] for target_id in reseeded)
        with pytest.raises(NotFoundError):
            ops.delete_project_target(project.id, created["id"])

    def test_new_rows_get_fresh_ids(self, project):
        first = ops.create_project_objective(project.id, {"title": "Launch"})
        ops.delete_project_objective(project.id, first["id"])

        second = ops.create_project_objective(project.id, {"title": "Relaunch"})
        assert second["id"] > first["id"]


# ═════════════════════════════════════════════════════════════════════════════
# CONVERSATION MESSAGES
# ═════════════════════════════════════════════════════════════════════════════


class TestMessages:
    def test_post_updates_preview(self, project):
        standup = _conversation(_operations(project), "Delivery standup")
        body = "x" * 400

        message = ops.create_conversation_message(project.id, standup["id"], {
            "body": body, "author_name": "Priya Desai",
        }, actor_id=2)
        assert message["body"] == body
        assert message["author_id"] == 2

        standup = _conversation(_operations(project), "Delivery standup")
        assert standup["last_message_preview"] == "x" * 300
        assert standup["unread_count"] == 0

    def test_delete_recomputes_preview(self, project):
        standup = _conversation(_operations(project), "Delivery standup")
        message = ops.create_conversation_message(project.id, standup["id"], {"body": "Latest"})

        ops.delete_conversation_message(project.id, standup["id"], message["id"])

        standup = _conversation(_operations(project), "Delivery standup")
        assert standup["last_message_preview"].startswith("Design sprint assets uploaded")

    def test_update_body(self, project):
        standup = _conversation(_operations(project), "Delivery standup")
        message = ops.create_conversation_message(project.id, standup["id"], {"body": "Draft"})

        updated = ops.update_conversation_message(
            project.id, standup["id"], message["id"], {"body": "Final"},
        )
        assert updated["body"] == "Final"
        standup = _conversation(_operations(project), "Delivery standup")
        assert standup["last_message_preview"] == "Final"

    def test_blank_body_rejected(self, project):
        standup = _conversation(_operations(project), "Delivery standup")
        with pytest.raises(ValidationError):
            ops.create_conversation_message(project.id, standup["id"], {"body": "  "})

    def test_message_from_other_conversation_not_found(self, project):
        payload = _operations(project)
        standup = _conversation(payload, "Delivery standup")
        design = _conversation(payload, "Design feedback")
        message_id = standup["messages"][0]["id"]

        with pytest.raises(NotFoundError):
            ops.delete_conversation_message(project.id, design["id"], message_id)

    def test_back_dated_post_keeps_newer_preview(self, project):
        standup = _conversation(_operations(project), "Delivery standup")
        ops.create_conversation_message(project.id, standup["id"], {"body": "Newest update"})
        ops.create_conversation_message(project.id, standup["id"], {
            "body": "Backfilled note", "posted_at": "2020-01-01T00:00:00Z",
        })

        standup = _conversation(_operations(project), "Delivery standup")
        assert standup["last_message_preview"] == "Newest update"
        assert not standup["last_message_at"].startswith("2020-01-01")
        assert standup["unread_count"] == 0

    def test_payload_must_be_object(self, project):
        standup = _conversation(_operations(project), "Delivery standup")
        with pytest.raises(ValidationError) as exc:
            ops.create_conversation_message(project.id, standup["id"], ["body"])
        assert exc.value.field == "payload"


# ═════════════════════════════════════════════════════════════════════════════
# WORKSPACE-LEVEL UPDATE
# ═════════════════════════════════════════════════════════════════════════════


class TestUpdateOperations:
    def test_workspace_and_timeline_fields(self, project):
        payload = ops.update_project_operations(project.id, {
            "status": "in_progress",
            "progress_percent": 140,
            "risk_level": "HIGH",
            "timeline": {"name": "Revised plan", "start_date": "2025-02-01"},
        }, actor_id=8)

        assert payload["workspace"]["status"] == "in_progress"
        assert payload["workspace"]["progress_percent"] == 100
        assert payload["workspace"]["risk_level"] == "high"
        assert payload["workspace"]["updated_by_id"] == 8
        assert payload["timeline"]["name"] == "Revised plan"
        assert payload["timeline"]["start_date"] == "2025-02-01"

    def test_client_satisfaction_bounds(self, project):
        with pytest.raises(ValidationError):
            ops.update_project_operations(project.id, {"client_satisfaction": 7})

    def test_timeline_must_be_object(self, project):
        with pytest.raises(ValidationError):
            ops.update_project_operations(project.id, {"timeline": "soon"})

    def test_overlong_timeline_name_rejected(self, project):
        with pytest.raises(ValidationError) as exc:
            ops.update_project_operations(project.id, {"timeline": {"name": "x" * 181}})
        assert exc.value.field == "timeline.name"

    def test_overlong_next_milestone_rejected(self, project):
        with pytest.raises(ValidationError) as exc:
            ops.update_project_operations(project.id, {"next_milestone": "m" * 181})
        assert exc.value.field == "next_milestone"
