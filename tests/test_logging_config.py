"""
Tests: logging formatters.

Covers:
    - JSON lines carry the record time and workspace scope keys
    - readable lines append the scope suffix and request duration
"""

import json
import logging

from workspace_hub.middleware.logging_config import JSONFormatter, ReadableFormatter


def _record(**extra):
    record = logging.LogRecord(
        name="workspace_hub.services", level=logging.INFO, pathname=__file__,
        lineno=10, msg="Workspace %s %s", args=("task", "created"), exc_info=None,
    )
    record.created = 1_735_725_600.0  # 2025-01-01T10:00:00Z
    for key, value in extra.items():
        setattr(record, key, value)
    return record


class TestJSONFormatter:
    def test_scope_keys_are_promoted(self):
        line = json.loads(JSONFormatter().format(_record(project_id=3, workspace_id=7, entity="task")))

        assert line["message"] == "Workspace task created"
        assert line["timestamp"].startswith("2025-01-01T10:00:00")
        assert line["project_id"] == 3
        assert line["workspace_id"] == 7
        assert line["entity"] == "task"
        assert "actor_id" not in line


class TestReadableFormatter:
    def test_scope_and_duration_suffix(self):
        line = ReadableFormatter().format(_record(project_id=3, entity_id=11, duration_ms=42.4))

        assert "Workspace task created (project_id=3 entity_id=11) [42ms]" in line

    def test_no_suffix_without_scope(self):
        line = ReadableFormatter().format(_record())
        assert line.endswith("workspace_hub.services: Workspace task created")
