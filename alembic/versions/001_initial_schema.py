"""initial schema - catalog, deliveries, sales metrics, sync logs

Revision ID: 001_initial
Revises: None
Create Date: 2025-07-24

For EXISTING databases: run `alembic stamp 001_initial` (skip DDL, just mark as current).
For NEW databases: run `alembic upgrade head` (creates all tables from models).
"""
from typing import Sequence, Union

revision: str = "001_initial"
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    """Create all tables from the SQLAlchemy models (checkfirst, so re-runnable)."""
    from inventory_sync.database import engine
    from inventory_sync.models import Base

    Base.metadata.create_all(bind=engine, checkfirst=True)


def downgrade() -> None:
    """Drop all tables. Destructive; dev/test only."""
    from inventory_sync.database import engine
    from inventory_sync.models import Base

    Base.metadata.drop_all(bind=engine)
