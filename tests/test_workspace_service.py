"""
Tests: workspace service (initialization, dashboard, collaboration writes).

Covers:
    - ensure_workspace: lazy creation, defaults, idempotent starter set
    - project id validation / missing project
    - dashboard payload + collaboration metrics
    - brief update, approval status stamping, conversation acknowledge
    - non-object payloads and overlong text are rejected
    - touch_workspace monotonicity
"""

from datetime import datetime, timedelta, timezone

import pytest
from sqlalchemy import func, select

from workspace_hub.core.exceptions import NotFoundError, ValidationError
from workspace_hub.models import db
from workspace_hub.models.workspace import (
    Workspace,
    WorkspaceApproval,
    WorkspaceBrief,
    WorkspaceConversation,
    WorkspaceFile,
    WorkspaceMessage,
    WorkspaceWhiteboard,
)
from workspace_hub.services.workspace_service import (
    acknowledge_workspace_conversation,
    ensure_workspace,
    get_workspace_dashboard,
    touch_workspace,
    update_workspace_approval,
    update_workspace_brief,
)
from workspace_hub.utils.normalization import as_utc


def _count(model, **filters):
    stmt = select(func.count(model.id)).filter_by(**filters)
    return db.session.execute(stmt).scalar_one()


def _approval(workspace_id, status):
    return db.session.execute(
        select(WorkspaceApproval).filter_by(workspace_id=workspace_id, status=status)
    ).scalars().first()


# ═════════════════════════════════════════════════════════════════════════════
# INITIALIZATION
# ═════════════════════════════════════════════════════════════════════════════


class TestEnsureWorkspace:
    def test_creates_workspace_with_defaults(self, project):
        _, workspace = ensure_workspace(project.id)
        db.session.commit()

        assert workspace.project_id == project.id
        assert workspace.status == "briefing"
        assert workspace.progress_percent == 12
        assert workspace.health_score == 78
        assert workspace.velocity_score == 64
        assert workspace.risk_level == "low"
        assert workspace.client_satisfaction == pytest.approx(4.6)
        assert workspace.automation_coverage == 35
        assert workspace.billing_status == "on_track"
        assert workspace.next_milestone == "Kickoff workshop"
        assert workspace.metrics_snapshot == {
            "open_risks": 2, "blocked_tasks": 0, "budget_burn_percent": 18,
        }

    def test_repeated_calls_are_idempotent(self, project):
        for _ in range(3):
            ensure_workspace(project.id)
            db.session.commit()

        workspace_id = db.session.execute(
            select(Workspace.id).filter_by(project_id=project.id)
        ).scalar_one()
        assert _count(Workspace, project_id=project.id) == 1
        assert _count(WorkspaceBrief, workspace_id=workspace_id) == 1
        assert _count(WorkspaceWhiteboard, workspace_id=workspace_id) == 2
        assert _count(WorkspaceFile, workspace_id=workspace_id) == 3
        assert _count(WorkspaceConversation, workspace_id=workspace_id) == 3
        assert _count(WorkspaceMessage, workspace_id=workspace_id) == 3
        assert _count(WorkspaceApproval, workspace_id=workspace_id) == 3

    def test_starter_type_is_not_refilled_when_non_empty(self, project):
        _, workspace = ensure_workspace(project.id)
        db.session.commit()
        keep = db.session.execute(
            WorkspaceWhiteboard.scoped_select(workspace.id).order_by(WorkspaceWhiteboard.id)
        ).scalars().first()
        for board in db.session.execute(WorkspaceWhiteboard.scoped_select(workspace.id)).scalars():
            if board.id != keep.id:
                db.session.delete(board)
        db.session.commit()

        ensure_workspace(project.id)
        db.session.commit()
        assert _count(WorkspaceWhiteboard, workspace_id=workspace.id) == 1

    def test_brief_title_uses_project_title(self, project):
        _, workspace = ensure_workspace(project.id)
        brief = db.session.execute(WorkspaceBrief.scoped_select(workspace.id)).scalar_one()
        assert brief.title == "Analytics revamp brief"

    def test_missing_project(self):
        with pytest.raises(NotFoundError):
            ensure_workspace(999_999)

    @pytest.mark.parametrize("raw", [None, "", "   "])
    def test_project_id_required(self, raw):
        with pytest.raises(ValidationError) as exc:
            ensure_workspace(raw)
        assert "project_id" in str(exc.value)

    def test_project_id_must_be_numeric(self):
        with pytest.raises(ValidationError):
            ensure_workspace("abc")

    def test_project_id_as_string(self, project):
        _, workspace = ensure_workspace(str(project.id))
        assert workspace.project_id == project.id


class TestTouchWorkspace:
    def test_strictly_increases_and_records_actor(self, project):
        _, workspace = ensure_workspace(project.id)
        future = datetime.now(timezone.utc) + timedelta(hours=1)
        workspace.last_activity_at = future

        touch_workspace(workspace, actor_id=7)
        first = as_utc(workspace.last_activity_at)
        assert first > future
        assert workspace.updated_by_id == 7

        touch_workspace(workspace)
        assert as_utc(workspace.last_activity_at) > first
        assert workspace.updated_by_id is None


# ═════════════════════════════════════════════════════════════════════════════
# DASHBOARD
# ═════════════════════════════════════════════════════════════════════════════


class TestDashboard:
    def test_dashboard_shape(self, project):
        payload = get_workspace_dashboard(project.id)

        assert payload["project"]["id"] == project.id
        assert payload["workspace"]["project_id"] == project.id
        assert payload["brief"]["title"] == "Analytics revamp brief"
        assert len(payload["whiteboards"]) == 2
        assert len(payload["files"]) == 3
        assert len(payload["conversations"]) == 3
        assert len(payload["approvals"]) == 3

        standup = next(c for c in payload["conversations"] if c["topic"] == "Delivery standup")
        assert len(standup["messages"]) == 2

    def test_dashboard_metrics(self, project):
        metrics = get_workspace_dashboard(project.id)["metrics"]

        assert metrics["pending_approvals"] == 2
        assert metrics["overdue_approvals"] == 0
        assert metrics["unread_messages"] == 3
        assert metrics["total_asset_bytes"] == 9_400_000 + 3_200_000 + 5_800_000
        assert metrics["active_whiteboards"] == 2
        assert metrics["health_score"] == 78

    def test_overdue_open_approval_is_counted(self, project):
        _, workspace = ensure_workspace(project.id)
        pending = _approval(workspace.id, "pending")
        pending.due_at = datetime.now(timezone.utc) - timedelta(days=1)
        db.session.commit()

        metrics = get_workspace_dashboard(project.id)["metrics"]
        assert metrics["overdue_approvals"] == 1

    def test_dashboard_missing_project(self):
        with pytest.raises(NotFoundError):
            get_workspace_dashboard(424242)


# ═════════════════════════════════════════════════════════════════════════════
# COLLABORATION WRITES
# ═════════════════════════════════════════════════════════════════════════════


class TestBrief:
    def test_sparse_update(self, project):
        result = update_workspace_brief(project.id, {
            "summary": "  Updated narrative  ",
            "objectives": "Ship MVP\nTrain finance team",
        }, actor_id=5)

        assert result["summary"] == "Updated narrative"
        assert result["objectives"] == ["Ship MVP", "Train finance team"]
        assert result["title"] == "Analytics revamp brief"
        assert result["last_updated_by_id"] == 5

    def test_blank_title_rejected(self, project):
        with pytest.raises(ValidationError):
            update_workspace_brief(project.id, {"title": "  "})

    @pytest.mark.parametrize("raw", [["title"], "title"])
    def test_payload_must_be_object(self, project, raw):
        with pytest.raises(ValidationError) as exc:
            update_workspace_brief(project.id, raw)
        assert exc.value.field == "payload"

    def test_overlong_title_rejected(self, project):
        with pytest.raises(ValidationError) as exc:
            update_workspace_brief(project.id, {"title": "t" * 181})
        assert exc.value.field == "title"


class TestApprovals:
    def test_approve_stamps_decided_at(self, project):
        _, workspace = ensure_workspace(project.id)
        pending_id = _approval(workspace.id, "pending").id
        db.session.commit()

        result = update_workspace_approval(project.id, pending_id, {"status": "approved"}, actor_id=3)
        assert result["status"] == "approved"
        assert result["decided_at"] is not None

    def test_reopen_clears_decided_at(self, project):
        _, workspace = ensure_workspace(project.id)
        approved_id = _approval(workspace.id, "approved").id
        db.session.commit()

        result = update_workspace_approval(project.id, approved_id, {"status": "in_review"})
        assert result["decided_at"] is None
        assert result["submitted_at"] is not None

    def test_in_review_stamps_submitted_at(self, project):
        _, workspace = ensure_workspace(project.id)
        pending_id = _approval(workspace.id, "pending").id
        db.session.commit()

        result = update_workspace_approval(project.id, pending_id, {"status": "in_review"})
        assert result["submitted_at"] is not None
        assert result["decided_at"] is None

    def test_unknown_status_rejected(self, project):
        _, workspace = ensure_workspace(project.id)
        pending_id = _approval(workspace.id, "pending").id
        db.session.commit()

        with pytest.raises(ValidationError):
            update_workspace_approval(project.id, pending_id, {"status": "maybe"})

    def test_foreign_approval_is_not_found(self, project, other_project):
        _, other = ensure_workspace(other_project.id)
        foreign_id = _approval(other.id, "pending").id
        db.session.commit()

        with pytest.raises(NotFoundError):
            update_workspace_approval(project.id, foreign_id, {"status": "approved"})

    def test_missing_approval_id(self, project):
        with pytest.raises(ValidationError):
            update_workspace_approval(project.id, None, {"status": "approved"})

    @pytest.mark.parametrize("raw", [["status"], "approved"])
    def test_payload_must_be_object(self, project, raw):
        _, workspace = ensure_workspace(project.id)
        pending_id = _approval(workspace.id, "pending").id
        db.session.commit()

        with pytest.raises(ValidationError) as exc:
            update_workspace_approval(project.id, pending_id, raw)
        assert exc.value.field == "payload"

    def test_overlong_stage_rejected(self, project):
        _, workspace = ensure_workspace(project.id)
        pending_id = _approval(workspace.id, "pending").id
        db.session.commit()

        with pytest.raises(ValidationError) as exc:
            update_workspace_approval(project.id, pending_id, {"stage": "s" * 81})
        assert exc.value.field == "stage"


class TestAcknowledge:
    def test_resets_unread_and_stamps_read(self, project):
        _, workspace = ensure_workspace(project.id)
        standup = db.session.execute(
            select(WorkspaceConversation).filter_by(workspace_id=workspace.id, topic="Delivery standup")
        ).scalar_one()
        standup_id = standup.id
        db.session.commit()

        result = acknowledge_workspace_conversation(project.id, standup_id, actor_id=9)
        assert result["unread_count"] == 0
        assert result["last_read_at"] is not None

        refreshed = db.session.get(Workspace, workspace.id)
        assert refreshed.updated_by_id == 9
