"""create_redirect_tables

Revision ID: 3c9d2e7f1a40
Revises:
Create Date: 2026-10-19 00:00:00.000000

"""

from typing import Sequence, Union
from alembic import op
import sqlalchemy as sa

# revision identifiers, used by Alembic.
revision: str = "3c9d2e7f1a40"
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    op.create_table(
        "surveys",
        sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column("survey_id", sa.String(length=32), nullable=False),
        sa.Column("name", sa.String(), nullable=False),
        sa.Column("ps_code", sa.Integer(), nullable=False),
        sa.Column("status", sa.String(length=16), nullable=False),
        sa.Column("total_completes", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("notes", sa.Text(), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now()),
        sa.Column("updated_at", sa.DateTime(timezone=True), server_default=sa.func.now()),
    )
    op.create_index("ix_surveys_id", "surveys", ["id"])
    op.create_index("ix_surveys_survey_id", "surveys", ["survey_id"], unique=True)
    op.create_index("ix_surveys_ps_code", "surveys", ["ps_code"], unique=True)
    op.create_index("ix_surveys_status", "surveys", ["status"])

    op.create_table(
        "survey_countries",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column(
            "survey_pk",
            sa.Integer(),
            sa.ForeignKey("surveys.id", ondelete="CASCADE"),
            nullable=False,
        ),
        sa.Column("country", sa.String(length=8), nullable=False),
        sa.Column("target_completes", sa.Integer(), nullable=True),
        sa.Column("live_url", sa.String(), nullable=True),
        sa.Column("test_url", sa.String(), nullable=True),
    )
    op.create_index("ix_survey_countries_id", "survey_countries", ["id"])

    op.create_table(
        "survey_vendors",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column(
            "country_pk",
            sa.Integer(),
            sa.ForeignKey("survey_countries.id", ondelete="CASCADE"),
            nullable=False,
        ),
        sa.Column("vendor_id", sa.String(), nullable=False),
        sa.Column("vendor_name", sa.String(), nullable=False),
        sa.Column("allocation", sa.Integer(), nullable=False),
        sa.Column("is_active", sa.Boolean(), nullable=False),
        sa.Column("complete_redirect", sa.String(), nullable=True),
        sa.Column("terminate_redirect", sa.String(), nullable=True),
        sa.Column("quota_full_redirect", sa.String(), nullable=True),
        sa.Column("security_redirect", sa.String(), nullable=True),
        sa.Column("start_url", sa.String(), nullable=True),
    )
    op.create_index("ix_survey_vendors_id", "survey_vendors", ["id"])

    op.create_table(
        "survey_responses",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column(
            "survey_id",
            sa.String(length=32),
            sa.ForeignKey("surveys.survey_id", ondelete="CASCADE"),
            nullable=False,
        ),
        sa.Column("ps_code", sa.Integer(), nullable=False),
        sa.Column("uid", sa.String(), nullable=False),
        sa.Column("vendor_id", sa.String(), nullable=False),
        sa.Column("vendor_name", sa.String(), nullable=False),
        sa.Column("country", sa.String(length=8), nullable=False),
        sa.Column("status", sa.String(length=16), nullable=False),
        sa.Column("ip_address", sa.String(), nullable=True),
        sa.Column("user_agent", sa.String(), nullable=True),
        sa.Column("started_at", sa.DateTime(timezone=True), server_default=sa.func.now()),
        sa.Column("completed_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now()),
        sa.Column("updated_at", sa.DateTime(timezone=True), server_default=sa.func.now()),
        sa.UniqueConstraint("survey_id", "uid", name="uq_survey_responses_survey_uid"),
    )
    op.create_index("ix_survey_responses_id", "survey_responses", ["id"])
    op.create_index("ix_survey_responses_ps_code", "survey_responses", ["ps_code"])
    op.create_index("ix_survey_responses_uid", "survey_responses", ["uid"])
    op.create_index(
        "ix_survey_responses_survey_vendor_country",
        "survey_responses",
        ["survey_id", "vendor_id", "country"],
    )
    op.create_index(
        "ix_survey_responses_survey_status", "survey_responses", ["survey_id", "status"]
    )

    op.create_table(
        "survey_stats",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("survey_id", sa.String(length=32), nullable=False),
        sa.Column("country_key", sa.String(length=8), nullable=False, server_default=""),
        sa.Column("vendor_key", sa.String(), nullable=False, server_default=""),
        sa.Column("initiated", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("completed", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("terminated", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("quota_full", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("security", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now()),
        sa.Column("last_updated", sa.DateTime(timezone=True), server_default=sa.func.now()),
        sa.UniqueConstraint(
            "survey_id", "country_key", "vendor_key", name="uq_survey_stats_scope"
        ),
        sa.CheckConstraint(
            "vendor_key = '' OR country_key <> ''",
            name="ck_survey_stats_vendor_requires_country",
        ),
    )
    op.create_index("ix_survey_stats_id", "survey_stats", ["id"])
    op.create_index("ix_survey_stats_survey_id", "survey_stats", ["survey_id"])


def downgrade() -> None:
    op.drop_table("survey_stats")
    op.drop_table("survey_responses")
    op.drop_table("survey_vendors")
    op.drop_table("survey_countries")
    op.drop_table("surveys")
