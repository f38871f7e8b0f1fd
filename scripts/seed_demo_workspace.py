#!/usr/bin/env python3
"""
Project Workspace Service: Demo Workspace Seed.

Creates a demo marketplace project, initializes its workspace (starter
brief, boards, files, conversations, approvals) and the operations starter
set, then prints a short summary of the aggregated operations payload.

Usage:
    python scripts/seed_demo_workspace.py                  # reset DB + seed
    python scripts/seed_demo_workspace.py --no-reset       # keep existing data
    python scripts/seed_demo_workspace.py --title "Brand refresh" --json
"""

import argparse
import json
import sys
from datetime import date, timedelta

sys.path.insert(0, ".")

from workspace_hub import create_app
from workspace_hub.models import db
from workspace_hub.models.project import Project
from workspace_hub.services.operations_service import get_project_operations


def seed_demo(title="Finance automation rollout"):
    """Create the demo project and return its operations payload."""
    today = date.today()
    project = Project(
        owner_id=1,
        title=title,
        description="Automate finance approvals across regional teams with a blended agency squad.",
        status="in_progress",
        budget_currency="USD",
        start_date=today - timedelta(days=7),
        due_date=today + timedelta(days=45),
    )
    db.session.add(project)
    db.session.commit()
    return get_project_operations(project.id)


def main():
    parser = argparse.ArgumentParser(description="Demo workspace seed")
    parser.add_argument("--title", default="Finance automation rollout",
                        help="Demo project title")
    parser.add_argument("--no-reset", action="store_true",
                        help="Don't clear existing data")
    parser.add_argument("--json", action="store_true",
                        help="Print the full operations payload as JSON")
    args = parser.parse_args()

    app = create_app()
    print(f"  DB: {app.config['SQLALCHEMY_DATABASE_URI']}\n")

    with app.app_context():
        if not args.no_reset:
            db.drop_all()
            db.create_all()
            print("  Database reset complete\n")

        payload = seed_demo(title=args.title)

        if args.json:
            print(json.dumps(payload, indent=2))
            return

        metrics = payload["metrics"]
        print(f"  Project #{payload['project']['id']}: {payload['project']['title']}")
        print(f"  Workspace #{payload['workspace']['id']} ({payload['workspace']['status']})")
        print(f"  Tasks: {len(payload['tasks'])}  open={metrics['open_tasks']}")
        print(f"  Budget: planned={metrics['planned_budget_cents']} actual={metrics['actual_budget_cents']}")
        print(f"  Logged hours: {metrics['total_logged_hours']}")
        print(f"  Upcoming meetings: {metrics['upcoming_meetings']}")
        print(f"  Storage used: {payload['storage']['used_percent']}%")


if __name__ == "__main__":
    main()
