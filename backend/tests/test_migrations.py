"""
Migration Tests — the Alembic revision builds the same tables as the ORM.
"""

import importlib.util
from pathlib import Path

from alembic.migration import MigrationContext
from alembic.operations import Operations
from sqlalchemy import create_engine, inspect

from db.models import Base

VERSIONS = Path(__file__).resolve().parent.parent / "db" / "migrations" / "versions"


def _load_revision(filename: str):
    spec = importlib.util.spec_from_file_location(f"revision_{filename[:3]}", VERSIONS / filename)
    module = importlib.util.module_from_spec(spec)
    spec.loader.exec_module(module)
    return module


def _run(engine, step):
    with engine.begin() as conn:
        with Operations.context(MigrationContext.configure(conn)):
            step()


def test_initial_revision_matches_models():
    revision = _load_revision("001_receiving_schema.py")
    engine = create_engine("sqlite://")

    _run(engine, revision.upgrade)
    inspector = inspect(engine)
    assert set(inspector.get_table_names()) == set(Base.metadata.tables)
    for name, table in Base.metadata.tables.items():
        migrated = {column["name"] for column in inspector.get_columns(name)}
        assert migrated == set(table.columns.keys()), name

    _run(engine, revision.downgrade)
    assert inspect(engine).get_table_names() == []
