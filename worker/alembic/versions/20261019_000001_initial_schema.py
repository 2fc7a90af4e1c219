"""Initial video catalog schema."""

from __future__ import annotations

from alembic import op

from bandhub_worker.catalog import Base

# revision identifiers, used by Alembic.
revision = "20261019_000001"
down_revision = None
branch_labels = None
depends_on = None


def upgrade() -> None:
    """Create bands, creators, raw/published videos and sync job tables."""
    bind = op.get_bind()
    Base.metadata.create_all(bind=bind)


def downgrade() -> None:
    bind = op.get_bind()
    Base.metadata.drop_all(bind=bind)
