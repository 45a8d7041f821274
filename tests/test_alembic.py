"""
test_alembic.py — Verify Alembic migration setup and structure.

Tests migration file validity, model-metadata consistency,
and env.py configuration without requiring a live database.

Called by: pytest
Depends on: alembic/, inventory_sync.models
"""

import importlib.util
import inspect
from pathlib import Path

from sqlalchemy import inspect as sa_inspect

ROOT = Path(__file__).parent.parent
MIGRATION_DIR = ROOT / "alembic" / "versions"


def _load_migration():
    """Load the baseline migration module from its file path."""
    files = sorted(MIGRATION_DIR.glob("*.py"))
    assert len(files) >= 1, "No migration files found"
    spec = importlib.util.spec_from_file_location("mig", files[0])
    mod = importlib.util.module_from_spec(spec)
    spec.loader.exec_module(mod)
    return mod


def test_initial_migration_has_required_attributes():
    mod = _load_migration()
    assert mod.revision == "001_initial"
    assert mod.down_revision is None, "Initial migration should have no parent"
    assert callable(mod.upgrade)
    assert callable(mod.downgrade)


def test_initial_migration_uses_metadata_create_all():
    """Baseline migration uses Base.metadata.create_all (covers all models)."""
    up_src = inspect.getsource(_load_migration().upgrade)
    assert "create_all" in up_src, "Baseline upgrade should use metadata.create_all"
    assert "Base" in up_src, "Baseline upgrade should reference Base"


def test_downgrade_uses_metadata_drop_all():
    down_src = inspect.getsource(_load_migration().downgrade)
    assert "drop_all" in down_src, "Baseline downgrade should use metadata.drop_all"


def test_env_py_imports_all_models():
    """env.py must import Base so autogenerate sees all tables."""
    content = (ROOT / "alembic" / "env.py").read_text()
    assert "from inventory_sync.models import Base" in content


def test_no_create_all_in_main():
    """main.py must NOT use create_all — Alembic manages schema."""
    content = (ROOT / "inventory_sync" / "main.py").read_text()
    assert "create_all" not in content, "Remove Base.metadata.create_all — use Alembic"


def test_metadata_has_every_table(db_session):
    """The tables the sync engines touch all exist once metadata is applied."""
    tables = set(sa_inspect(db_session.get_bind()).get_table_names())
    assert {
        "products", "product_variants", "orders", "order_items", "deliveries",
        "delivery_items", "inventory_replenishment", "sales_metrics", "sync_logs",
    } <= tables
