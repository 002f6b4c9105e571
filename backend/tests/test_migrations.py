"""Tests for Alembic database migrations."""

from pathlib import Path

from alembic.config import Config
from alembic.script import ScriptDirectory


def _get_alembic_cfg() -> Config:
    """Return an Alembic Config pointing at the backend directory."""
    backend_dir = Path(__file__).resolve().parent.parent
    cfg = Config(str(backend_dir / "alembic.ini"))
    cfg.set_main_option("script_location", str(backend_dir / "migrations"))
    return cfg


def test_alembic_single_head():
    """The migration chain should have exactly one head."""
    script_dir = ScriptDirectory.from_config(_get_alembic_cfg())
    heads = script_dir.get_heads()
    assert len(heads) == 1, f"Expected 1 head, found {len(heads)}: {heads}"


def test_kv_entries_revision_is_base():
    """The kv_entries table is created by the first revision."""
    script_dir = ScriptDirectory.from_config(_get_alembic_cfg())
    rev = script_dir.get_revision("a7c3e91f4b20")
    assert rev is not None, "Revision a7c3e91f4b20 not found"
    assert rev.down_revision is None


def test_migration_chain_is_linear():
    """Verify the migration chain has proper linear dependencies."""
    script_dir = ScriptDirectory.from_config(_get_alembic_cfg())
    revisions = list(script_dir.walk_revisions())
    revision_map = {rev.revision: rev for rev in revisions}

    for rev in revisions:
        if rev.down_revision is not None:
            assert isinstance(
                rev.down_revision, str
            ), f"Revision {rev.revision} has multiple parents (merge migration): {rev.down_revision}"
            assert (
                rev.down_revision in revision_map
            ), f"Revision {rev.revision} references non-existent down_revision: {rev.down_revision}"


def test_model_server_defaults_present():
    """NOT NULL columns with Python defaults should also declare server_default."""
    from app.database import Base
    from app.models import KVEntry  # noqa: F401

    missing = []
    for table in Base.metadata.sorted_tables:
        for column in table.columns:
            if column.primary_key or column.nullable:
                continue
            if column.default is not None and column.server_default is None:
                missing.append(f"{table.name}.{column.name}")

    assert not missing, f"Columns missing server_default: {missing}"
