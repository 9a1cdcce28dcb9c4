"""create trackings table

Revision ID: 20260220120000
Revises: 
Create Date: 2026-02-20 12:00:00.000000
"""

from alembic import op
import sqlalchemy as sa

# revision identifiers, used by Alembic.
revision = "20260220120000"
down_revision = None
branch_labels = None
depends_on = None

OPEN_ONLY = sa.text("end_time IS NULL")


def upgrade() -> None:
    op.create_table(
        "trackings",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("workstation_id", sa.Integer(), nullable=False),
        sa.Column("lote", sa.String(length=64), nullable=False),
        sa.Column("instancia", sa.Integer(), nullable=False),
        sa.Column("version", sa.Integer(), nullable=False),
        sa.Column("start_time", sa.DateTime(timezone=True), nullable=False),
        sa.Column("end_time", sa.DateTime(timezone=True), nullable=True),
        sa.Column("closure_reason", sa.String(length=32), nullable=True),
        sa.Column("user_id", sa.Integer(), nullable=True),
        sa.Column(
            "created_at",
            sa.DateTime(timezone=True),
            server_default=sa.text("CURRENT_TIMESTAMP"),
            nullable=False,
        ),
        sa.Column(
            "updated_at",
            sa.DateTime(timezone=True),
            server_default=sa.text("CURRENT_TIMESTAMP"),
            nullable=False,
        ),
        sa.CheckConstraint(
            "end_time IS NULL OR start_time <= end_time",
            name="ck_trackings_valid_range",
        ),
        sa.CheckConstraint(
            "(end_time IS NULL) = (closure_reason IS NULL)",
            name="ck_trackings_closure_reason",
        ),
    )
    op.create_index("ix_trackings_id", "trackings", ["id"])

    # trackings abertos: um por (puesto, ventana), um por puesto, um por ventana
    op.create_index(
        "uq_trackings_open_window_workstation",
        "trackings",
        ["workstation_id", "lote", "instancia", "version"],
        unique=True,
        postgresql_where=OPEN_ONLY,
        sqlite_where=OPEN_ONLY,
    )
    op.create_index(
        "uq_trackings_open_workstation",
        "trackings",
        ["workstation_id"],
        unique=True,
        postgresql_where=OPEN_ONLY,
        sqlite_where=OPEN_ONLY,
    )
    op.create_index(
        "uq_trackings_open_window",
        "trackings",
        ["lote", "instancia", "version"],
        unique=True,
        postgresql_where=OPEN_ONLY,
        sqlite_where=OPEN_ONLY,
    )

    op.create_index(
        "ix_trackings_window_start",
        "trackings",
        ["lote", "instancia", "version", "start_time"],
    )
    op.create_index(
        "ix_trackings_overlap",
        "trackings",
        ["workstation_id", "start_time", "end_time"],
    )


def downgrade() -> None:
    op.drop_index("ix_trackings_overlap", table_name="trackings")
    op.drop_index("ix_trackings_window_start", table_name="trackings")
    op.drop_index("uq_trackings_open_window", table_name="trackings")
    op.drop_index("uq_trackings_open_workstation", table_name="trackings")
    op.drop_index("uq_trackings_open_window_workstation", table_name="trackings")
    op.drop_index("ix_trackings_id", table_name="trackings")
    op.drop_table("trackings")
