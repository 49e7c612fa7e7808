"""pull request snapshots and installation records"""

from alembic import op
import sqlalchemy as sa

# revision identifiers, used by Alembic.
revision = "5a1d2c7e9b40"
down_revision = None
branch_labels = None
depends_on = None


def upgrade():
    op.create_table(
        "pull_request",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("repo_owner", sa.String(), nullable=False),
        sa.Column("repo_name", sa.String(), nullable=False),
        sa.Column("number", sa.Integer(), nullable=False),
        sa.Column("ref", sa.String(), nullable=False),
        sa.Column("sha", sa.String(), nullable=False),
        sa.Column("labels", sa.JSON(), nullable=False),
        sa.Column("build_status", sa.String(), nullable=True),
        sa.Column("build_conclusion", sa.String(), nullable=True),
        sa.Column("build_link", sa.String(), nullable=True),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=False),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index("uq_pull_request", "pull_request", ["repo_owner", "repo_name", "number"], unique=True)

    op.create_table(
        "installation_record",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("repo_owner", sa.String(), nullable=False),
        sa.Column("repo_name", sa.String(), nullable=False),
        sa.Column("number", sa.Integer(), nullable=False),
        sa.Column("installation_id", sa.String(), nullable=False),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("installation_id"),
    )
    op.create_index(
        "uq_installation_record_pr",
        "installation_record",
        ["repo_owner", "repo_name", "number"],
        unique=True,
    )


def downgrade():
    op.drop_index("uq_installation_record_pr", table_name="installation_record")
    op.drop_table("installation_record")
    op.drop_index("uq_pull_request", table_name="pull_request")
    op.drop_table("pull_request")
