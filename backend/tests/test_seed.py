import importlib.util
from pathlib import Path

import pytest

pytest.importorskip("sqlmodel")

import fakes  # noqa: F401  test environment defaults

from sqlmodel import Session, select

from explainer.database import build_engine, init_db
from explainer.models import Beat, ProgressEntry, ProjectStatus

SEED_PATH = Path(__file__).resolve().parents[1] / "scripts" / "seed.py"


def _load_seed_module():
    spec = importlib.util.spec_from_file_location("seed_script", SEED_PATH)
    module = importlib.util.module_from_spec(spec)
    spec.loader.exec_module(module)
    return module


def test_seed_creates_sample_projects_once(tmp_path: Path) -> None:
    seed_module = _load_seed_module()
    engine = build_engine(f"sqlite:///{tmp_path / 'seed.db'}")
    init_db(engine)

    with Session(engine) as session:
        first = seed_module.seed(session)
        assert [project.status for project in first] == [
            ProjectStatus.PLANNED,
            ProjectStatus.NARRATED,
            ProjectStatus.FRAMES_READY,
        ]
        planned = first[0]
        beats = session.exec(select(Beat).where(Beat.project_id == planned.id).order_by(Beat.index)).all()
        assert [beat.index for beat in beats] == [0, 1, 2]

        second = seed_module.seed(session)
        assert [project.id for project in second] == [project.id for project in first]
        assert len(session.exec(select(ProgressEntry)).all()) == 3
    engine.dispose()
