"""
WorkspaceScopedModel: Abstract base class for workspace-owned rows.

Every sub-entity of a workspace inherits from WorkspaceScopedModel
instead of db.Model directly. This adds:
  - workspace_id FK column with index (CASCADE on workspace delete)
  - created_at / updated_at audit timestamps
  - scoped_select(workspace_id) / count_for_workspace(workspace_id) helpers
"""

from datetime import datetime, timezone

from sqlalchemy import func, select

from workspace_hub.models import db

# Ids are never reused after a delete on SQLite.
TABLE_OPTIONS = {"sqlite_autoincrement": True}


class WorkspaceScopedModel(db.Model):
    """Abstract base for tables owned by exactly one workspace."""
    __abstract__ = True
    __table_args__ = TABLE_OPTIONS

    id = db.Column(db.Integer, primary_key=True)
    workspace_id = db.Column(
        db.Integer,
        db.ForeignKey("workspaces.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
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

    @classmethod
    def scoped_select(cls, workspace_id):
        """Return a SELECT filtered by workspace_id."""
        return select(cls).where(cls.workspace_id == workspace_id)

    @classmethod
    def count_for_workspace(cls, workspace_id) -> int:
        """Row count for one workspace (used by the starter-data guards)."""
        stmt = select(func.count(cls.id)).where(cls.workspace_id == workspace_id)
        return db.session.execute(stmt).scalar_one()
