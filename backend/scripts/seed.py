from __future__ import annotations

import argparse
from pathlib import Path
import sys

ROOT = Path(__file__).resolve().parents[1]
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

from sqlmodel import Session, select

from explainer.config import get_settings
from explainer.database import build_engine, init_db
from explainer.models import Beat, Project, ProjectStatus
from explainer.progress import COMPLETED, record_progress
from explainer.project_service import sync_user

TEST_USER_EXTERNAL_ID = "test_user_123"
TEST_USER_EMAIL = "test@example.com"

SAMPLE_PROJECTS = (
    ("How to make the perfect cup of coffee", ProjectStatus.PLANNED),
    ("Introduction to machine learning for beginners", ProjectStatus.NARRATED),
    ("Setting up a productive home office", ProjectStatus.FRAMES_READY),
)

SAMPLE_BEATS = (
    (0, "Introduction to coffee brewing", "Welcome to Coffee 101", 15.0),
    (1, "Choosing the right beans", "Quality beans make all the difference", 20.0),
    (2, "Grinding and brewing techniques", "Perfect grind for perfect taste", 25.0),
)


def seed(session: Session) -> list[Project]:
    """Create the test user and sample projects; existing topics are left untouched."""
    user = sync_user(session, TEST_USER_EXTERNAL_ID, TEST_USER_EMAIL)
    print(f"User: {user.email}")

    projects: list[Project] = []
    for topic, status in SAMPLE_PROJECTS:
        existing = session.exec(
            select(Project).where(Project.owner_id == user.id, Project.topic == topic)
        ).first()
        if existing:
            print(f"Project exists: {topic}")
            projects.append(existing)
            continue

        project = Project(owner_id=user.id, topic=topic, status=status)
        session.add(project)
        session.commit()
        session.refresh(project)

        if status == ProjectStatus.PLANNED:
            for index, summary, on_screen_text, duration_s in SAMPLE_BEATS:
                session.add(
                    Beat(
                        project_id=project.id,
                        index=index,
                        summary=summary,
                        on_screen_text=on_screen_text,
                        duration_s=duration_s,
                    )
                )
            session.commit()

        record_progress(session, project.id, "PLANNING", COMPLETED, "Initial project planning completed")
        print(f"Created project: {topic} ({status.value})")
        projects.append(project)
    return projects


def main() -> int:
    parser = argparse.ArgumentParser(description="Seed a development database with sample projects")
    parser.add_argument(
        "--database-url",
        default=None,
        help="Database URL (defaults to DATABASE_URL / settings)",
    )
    args = parser.parse_args()

    engine = build_engine(args.database_url or get_settings().database_url)
    init_db(engine)
    try:
        with Session(engine) as session:
            projects = seed(session)
    except Exception as exc:
        print(f"Seed failed: {exc}")
        return 1
    finally:
        engine.dispose()
    print(f"Seed completed: {len(projects)} projects")
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
