"""
Project Workspace Service
Workspace blueprint: thin HTTP glue over the workspace/operations services.

Endpoints summary (prefix /api/v1/projects/<project_id>):
    OPERATIONS  /operations                                   GET, PUT
                /operations/<collection>                      POST
                /operations/<collection>/<id>                 PUT, DELETE

    MESSAGES    /conversations/<cid>/messages                 POST
                /conversations/<cid>/messages/<mid>           PUT, DELETE
                /conversations/<cid>/acknowledge              POST

    WORKSPACE   /workspace                                    GET
                /workspace/brief                              PUT
                /workspace/approvals/<id>                     PUT

<collection> is one of: tasks, budgets, objects, timeline-events, meetings,
calendar-entries, roles, submissions, invites, hr-records, time-logs,
targets, objectives, files.

Mutations answer ``{"result": ..., "operations": <refreshed payload>}``.
The acting user comes from the X-Actor-Id header (or ``actor_id`` in the body).
"""

import logging

from flask import Blueprint, jsonify, request
from sqlalchemy.exc import IntegrityError
from werkzeug.exceptions import HTTPException

from workspace_hub.core.exceptions import NotFoundError, ValidationError
from workspace_hub.services import operations_service as ops
from workspace_hub.services import workspace_service
from workspace_hub.utils.errors import E, api_error

logger = logging.getLogger(__name__)

workspace_bp = Blueprint("workspace", __name__, url_prefix="/api/v1/projects/<int:project_id>")

# collection slug → (create, update, delete)
COLLECTIONS = {
    "tasks": (ops.add_project_task, ops.update_project_task, ops.remove_project_task),
    "budgets": (ops.create_project_budget, ops.update_project_budget, ops.delete_project_budget),
    "objects": (ops.create_project_object, ops.update_project_object, ops.delete_project_object),
    "timeline-events": (
        ops.create_project_timeline_event,
        ops.update_project_timeline_event,
        ops.delete_project_timeline_event,
    ),
    "meetings": (ops.create_project_meeting, ops.update_project_meeting, ops.delete_project_meeting),
    "calendar-entries": (
        ops.create_project_calendar_entry,
        ops.update_project_calendar_entry,
        ops.delete_project_calendar_entry,
    ),
    "roles": (ops.create_project_role, ops.update_project_role, ops.delete_project_role),
    "submissions": (
        ops.create_project_submission,
        ops.update_project_submission,
        ops.delete_project_submission,
    ),
    "invites": (ops.create_project_invite, ops.update_project_invite, ops.delete_project_invite),
    "hr-records": (
        ops.create_project_hr_record,
        ops.update_project_hr_record,
        ops.delete_project_hr_record,
    ),
    "time-logs": (ops.create_project_time_log, ops.update_project_time_log, ops.delete_project_time_log),
    "targets": (ops.create_project_target, ops.update_project_target, ops.delete_project_target),
    "objectives": (
        ops.create_project_objective,
        ops.update_project_objective,
        ops.delete_project_objective,
    ),
    "files": (ops.create_project_file, ops.update_project_file, ops.delete_project_file),
}


# ── Error handlers ───────────────────────────────────────────────────────────


@workspace_bp.errorhandler(NotFoundError)
def _handle_not_found(error: NotFoundError):
    return api_error(E.NOT_FOUND, str(error))


@workspace_bp.errorhandler(ValidationError)
def _handle_validation(error: ValidationError):
    return api_error(E.VALIDATION_INVALID, str(error), details=error.details)


@workspace_bp.errorhandler(IntegrityError)
def _handle_integrity(error: IntegrityError):
    logger.warning("Constraint violation in workspace_bp endpoint=%s", request.endpoint)
    return api_error(E.CONFLICT_DUPLICATE, "Duplicate or constraint violation")


@workspace_bp.errorhandler(Exception)
def _handle_unexpected(error: Exception):
    if isinstance(error, HTTPException):
        return error
    logger.exception("Unexpected error in workspace_bp endpoint=%s", request.endpoint)
    return api_error(E.INTERNAL, "Internal server error")


# ── Helpers ──────────────────────────────────────────────────────────────────


def _payload() -> dict:
    data = request.get_json(silent=True)
    if data is None:
        return {}
    if not isinstance(data, dict):
        raise ValidationError("Request body must be a JSON object.", field="body")
    return data


def _actor_id(data: dict):
    raw = request.headers.get("X-Actor-Id") or data.get("actor_id")
    if raw in (None, ""):
        return None
    try:
        return int(raw)
    except (TypeError, ValueError):
        raise ValidationError("actor_id must be a number.", field="actor_id") from None


def _collection(name: str):
    handlers = COLLECTIONS.get(name)
    if handlers is None:
        raise NotFoundError(resource="Collection", resource_id=name)
    return handlers


def _mutation_response(project_id, result, status=200):
    return jsonify({
        "result": result,
        "operations": ops.get_project_operations(project_id),
    }), status


# ═══════════════════════════════════════════════════════════════════════════
#  OPERATIONS
# ═══════════════════════════════════════════════════════════════════════════


@workspace_bp.route("/operations", methods=["GET"])
def get_operations(project_id):
    return jsonify(ops.get_project_operations(project_id))


@workspace_bp.route("/operations", methods=["PUT"])
def update_operations(project_id):
    data = _payload()
    actor_id = _actor_id(data)
    data.pop("actor_id", None)
    operations = ops.update_project_operations(project_id, data, actor_id=actor_id)
    return jsonify({"result": operations["workspace"], "operations": operations})


@workspace_bp.route("/operations/<collection>", methods=["POST"])
def create_entry(project_id, collection):
    create, _, _ = _collection(collection)
    data = _payload()
    actor_id = _actor_id(data)
    result = create(project_id, data, actor_id=actor_id)
    return _mutation_response(project_id, result, 201)


@workspace_bp.route("/operations/<collection>/<int:entity_id>", methods=["PUT"])
def update_entry(project_id, collection, entity_id):
    _, update, _ = _collection(collection)
    data = _payload()
    actor_id = _actor_id(data)
    result = update(project_id, entity_id, data, actor_id=actor_id)
    return _mutation_response(project_id, result)


@workspace_bp.route("/operations/<collection>/<int:entity_id>", methods=["DELETE"])
def delete_entry(project_id, collection, entity_id):
    _, _, delete = _collection(collection)
    actor_id = _actor_id(_payload())
    result = delete(project_id, entity_id, actor_id=actor_id)
    return _mutation_response(project_id, result)


# ═══════════════════════════════════════════════════════════════════════════
#  CONVERSATIONS
# ═══════════════════════════════════════════════════════════════════════════


@workspace_bp.route("/conversations/<int:conversation_id>/messages", methods=["POST"])
def post_message(project_id, conversation_id):
    data = _payload()
    actor_id = _actor_id(data)
    result = ops.create_conversation_message(project_id, conversation_id, data, actor_id=actor_id)
    return _mutation_response(project_id, result, 201)


@workspace_bp.route(
    "/conversations/<int:conversation_id>/messages/<int:message_id>", methods=["PUT"],
)
def update_message(project_id, conversation_id, message_id):
    data = _payload()
    actor_id = _actor_id(data)
    result = ops.update_conversation_message(
        project_id, conversation_id, message_id, data, actor_id=actor_id,
    )
    return _mutation_response(project_id, result)


@workspace_bp.route(
    "/conversations/<int:conversation_id>/messages/<int:message_id>", methods=["DELETE"],
)
def delete_message(project_id, conversation_id, message_id):
    actor_id = _actor_id(_payload())
    result = ops.delete_conversation_message(
        project_id, conversation_id, message_id, actor_id=actor_id,
    )
    return _mutation_response(project_id, result)


@workspace_bp.route("/conversations/<int:conversation_id>/acknowledge", methods=["POST"])
def acknowledge_conversation(project_id, conversation_id):
    actor_id = _actor_id(_payload())
    result = workspace_service.acknowledge_workspace_conversation(
        project_id, conversation_id, actor_id=actor_id,
    )
    return _mutation_response(project_id, result)


# ═══════════════════════════════════════════════════════════════════════════
#  WORKSPACE DASHBOARD
# ═══════════════════════════════════════════════════════════════════════════


@workspace_bp.route("/workspace", methods=["GET"])
def get_workspace(project_id):
    return jsonify(workspace_service.get_workspace_dashboard(project_id))


@workspace_bp.route("/workspace/brief", methods=["PUT"])
def update_brief(project_id):
    data = _payload()
    actor_id = _actor_id(data)
    result = workspace_service.update_workspace_brief(project_id, data, actor_id=actor_id)
    return _mutation_response(project_id, result)


@workspace_bp.route("/workspace/approvals/<int:approval_id>", methods=["PUT"])
def update_approval(project_id, approval_id):
    data = _payload()
    actor_id = _actor_id(data)
    result = workspace_service.update_workspace_approval(
        project_id, approval_id, data, actor_id=actor_id,
    )
    return _mutation_response(project_id, result)
