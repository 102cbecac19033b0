"""create couponflow tables

Revision ID: 3f9a1c7e2b40
Revises:
Create Date: 2026-10-18 09:00:00.000000

"""

import sqlalchemy as sa
from alembic import op

# revision identifiers, used by Alembic.
revision = "3f9a1c7e2b40"
down_revision = None
branch_labels = None
depends_on = None

TENANT_OWNED_TABLES = (
    "coupons",
    "email_opt_ins",
    "survey_questions",
    "survey_responses",
    "survey_answers",
    "issued_coupons",
    "analytics_events",
)


def _timestamp(name: str) -> sa.Column:
    return sa.Column(
        name,
        sa.DateTime(timezone=True),
        server_default=sa.text("(CURRENT_TIMESTAMP)"),
        nullable=True,
    )


def _tenant_id() -> sa.Column:
    return sa.Column(
        "tenant_id",
        sa.String(length=36),
        sa.ForeignKey("tenants.id", ondelete="RESTRICT"),
        nullable=False,
    )


def upgrade() -> None:
    op.create_table(
        "tenants",
        sa.Column("id", sa.String(length=36), nullable=False),
        sa.Column("slug", sa.String(length=100), nullable=False),
        sa.Column("name", sa.String(length=255), nullable=False),
        sa.Column("logo_url", sa.String(length=2048), nullable=True),
        sa.Column("website_url", sa.String(length=2048), nullable=True),
        sa.Column("theme", sa.JSON(), nullable=False),
        sa.Column("active", sa.Boolean(), nullable=False),
        _timestamp("created_at"),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index(op.f("ix_tenants_slug"), "tenants", ["slug"], unique=True)

    op.create_table(
        "coupons",
        sa.Column("id", sa.String(length=36), nullable=False),
        _tenant_id(),
        sa.Column("title", sa.String(length=255), nullable=False),
        sa.Column("description", sa.Text(), nullable=True),
        sa.Column("discount", sa.String(length=255), nullable=True),
        sa.Column("image_url", sa.String(length=2048), nullable=True),
        sa.Column("expires_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("active", sa.Boolean(), nullable=False),
        _timestamp("created_at"),
        _timestamp("updated_at"),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index(op.f("ix_coupons_tenant_id"), "coupons", ["tenant_id"])

    op.create_table(
        "email_opt_ins",
        sa.Column("id", sa.String(length=36), nullable=False),
        _tenant_id(),
        sa.Column("email", sa.String(length=320), nullable=False),
        sa.Column("consent_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("source", sa.String(length=20), nullable=False),
        _timestamp("created_at"),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("tenant_id", "email", name="uq_email_opt_ins_tenant_id_email"),
    )
    op.create_index(op.f("ix_email_opt_ins_tenant_id"), "email_opt_ins", ["tenant_id"])

    op.create_table(
        "survey_questions",
        sa.Column("id", sa.String(length=36), nullable=False),
        _tenant_id(),
        sa.Column(
            "coupon_id",
            sa.String(length=36),
            sa.ForeignKey("coupons.id", ondelete="CASCADE"),
            nullable=True,
        ),
        sa.Column("question", sa.Text(), nullable=False),
        sa.Column("type", sa.String(length=30), nullable=False),
        sa.Column("options", sa.JSON(), nullable=False),
        sa.Column("order_index", sa.Integer(), nullable=False),
        sa.Column("required", sa.Boolean(), nullable=False),
        sa.Column("min_value", sa.Float(), nullable=True),
        sa.Column("max_value", sa.Float(), nullable=True),
        sa.Column("is_active", sa.Boolean(), nullable=False),
        _timestamp("created_at"),
        _timestamp("updated_at"),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index(op.f("ix_survey_questions_tenant_id"), "survey_questions", ["tenant_id"])
    op.create_index(op.f("ix_survey_questions_coupon_id"), "survey_questions", ["coupon_id"])

    op.create_table(
        "survey_responses",
        sa.Column("id", sa.String(length=36), nullable=False),
        _tenant_id(),
        sa.Column(
            "coupon_id",
            sa.String(length=36),
            sa.ForeignKey("coupons.id", ondelete="SET NULL"),
            nullable=True,
        ),
        sa.Column("email", sa.String(length=320), nullable=True),
        sa.Column("session_id", sa.String(length=255), nullable=True),
        _timestamp("created_at"),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index(op.f("ix_survey_responses_tenant_id"), "survey_responses", ["tenant_id"])
    op.create_index(op.f("ix_survey_responses_coupon_id"), "survey_responses", ["coupon_id"])
    op.create_index(op.f("ix_survey_responses_email"), "survey_responses", ["email"])

    op.create_table(
        "survey_answers",
        sa.Column("id", sa.String(length=36), nullable=False),
        _tenant_id(),
        sa.Column(
            "response_id",
            sa.String(length=36),
            sa.ForeignKey("survey_responses.id", ondelete="CASCADE"),
            nullable=False,
        ),
        sa.Column(
            "question_id",
            sa.String(length=36),
            sa.ForeignKey("survey_questions.id", ondelete="RESTRICT"),
            nullable=False,
        ),
        sa.Column("answer", sa.JSON(), nullable=False),
        _timestamp("created_at"),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index(op.f("ix_survey_answers_tenant_id"), "survey_answers", ["tenant_id"])
    op.create_index(op.f("ix_survey_answers_response_id"), "survey_answers", ["response_id"])
    op.create_index(op.f("ix_survey_answers_question_id"), "survey_answers", ["question_id"])

    op.create_table(
        "issued_coupons",
        sa.Column("id", sa.String(length=36), nullable=False),
        _tenant_id(),
        sa.Column(
            "coupon_id",
            sa.String(length=36),
            sa.ForeignKey("coupons.id", ondelete="RESTRICT"),
            nullable=False,
        ),
        sa.Column("email", sa.String(length=320), nullable=False),
        sa.Column("code", sa.String(length=64), nullable=False),
        sa.Column("status", sa.String(length=20), nullable=False),
        sa.Column("max_redemptions", sa.Integer(), nullable=False),
        sa.Column("redemptions_count", sa.Integer(), nullable=False),
        sa.Column("expires_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("issued_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("redeemed_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("revoked_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("extra", sa.JSON(), nullable=False),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint(
            "tenant_id", "coupon_id", "email", name="uq_issued_coupons_tenant_coupon_email"
        ),
        sa.UniqueConstraint(
            "tenant_id", "coupon_id", "code", name="uq_issued_coupons_tenant_coupon_code"
        ),
    )
    op.create_index(op.f("ix_issued_coupons_tenant_id"), "issued_coupons", ["tenant_id"])
    op.create_index(op.f("ix_issued_coupons_coupon_id"), "issued_coupons", ["coupon_id"])
    op.create_index(op.f("ix_issued_coupons_code"), "issued_coupons", ["code"])

    op.create_table(
        "analytics_events",
        sa.Column("id", sa.String(length=36), nullable=False),
        _tenant_id(),
        sa.Column("event_type", sa.String(length=50), nullable=False),
        sa.Column("session_id", sa.String(length=255), nullable=True),
        sa.Column("email", sa.String(length=320), nullable=True),
        sa.Column("metadata", sa.JSON(), nullable=False),
        _timestamp("created_at"),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index(op.f("ix_analytics_events_tenant_id"), "analytics_events", ["tenant_id"])
    op.create_index(op.f("ix_analytics_events_event_type"), "analytics_events", ["event_type"])
    op.create_index(op.f("ix_analytics_events_created_at"), "analytics_events", ["created_at"])

    # Row-level isolation keyed on the per-transaction app.tenant_id setting.
    # FORCE applies the policies to the table owner too; the application role
    # must not be a superuser or hold BYPASSRLS.
    if op.get_bind().dialect.name == "postgresql":
        for table in TENANT_OWNED_TABLES:
            op.execute(f"ALTER TABLE {table} ENABLE ROW LEVEL SECURITY")
            op.execute(f"ALTER TABLE {table} FORCE ROW LEVEL SECURITY")
            op.execute(
                f"CREATE POLICY {table}_tenant_isolation ON {table} "
                "USING (tenant_id = current_setting('app.tenant_id', true)) "
                "WITH CHECK (tenant_id = current_setting('app.tenant_id', true))"
            )


def downgrade() -> None:
    if op.get_bind().dialect.name == "postgresql":
        for table in TENANT_OWNED_TABLES:
            op.execute(f"DROP POLICY IF EXISTS {table}_tenant_isolation ON {table}")

    op.drop_table("analytics_events")
    op.drop_table("issued_coupons")
    op.drop_table("survey_answers")
    op.drop_table("survey_responses")
    op.drop_table("survey_questions")
    op.drop_table("email_opt_ins")
    op.drop_table("coupons")
    op.drop_index(op.f("ix_tenants_slug"), table_name="tenants")
    op.drop_table("tenants")
