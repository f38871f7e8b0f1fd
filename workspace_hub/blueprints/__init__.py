"""
Project Workspace Service
Blueprint registry.
"""

from workspace_hub.blueprints.workspace_bp import workspace_bp

ALL_BLUEPRINTS = (workspace_bp,)
