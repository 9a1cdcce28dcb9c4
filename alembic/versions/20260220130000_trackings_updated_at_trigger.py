"""trackings updated_at trigger

Revision ID: 20260220130000
Revises: 20260220120000
Create Date: 2026-02-20 13:00:00.000000
"""

from alembic import op

# revision identifiers, used by Alembic.
revision = "20260220130000"
down_revision = "20260220120000"
branch_labels = None
depends_on = None


FUNCTION_SQL = """
CREATE OR REPLACE FUNCTION update_trackings_updated_at()
RETURNS TRIGGER AS $$
BEGIN
    NEW.updated_at = CURRENT_TIMESTAMP;
    RETURN NEW;
END;
$$ LANGUAGE plpgsql;
"""

TRIGGER_SQL = """
CREATE TRIGGER trigger_update_trackings_updated_at
    BEFORE UPDATE ON trackings
    FOR EACH ROW
    EXECUTE FUNCTION update_trackings_updated_at();
"""


def upgrade() -> None:
    # trigger só existe no PostgreSQL
    if op.get_bind().dialect.name != "postgresql":
        return
    op.execute(FUNCTION_SQL)
    op.execute("DROP TRIGGER IF EXISTS trigger_update_trackings_updated_at ON trackings;")
    op.execute(TRIGGER_SQL)


def downgrade() -> None:
    if op.get_bind().dialect.name != "postgresql":
        return
    op.execute("DROP TRIGGER IF EXISTS trigger_update_trackings_updated_at ON trackings;")
    op.execute("DROP FUNCTION IF EXISTS update_trackings_updated_at();")
