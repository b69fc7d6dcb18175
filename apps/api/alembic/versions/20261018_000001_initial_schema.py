"""create users, transcription jobs, credit transactions and content idea jobs

Revision ID: 20261018_000001
Revises:
Create Date: 2026-10-18 00:00:01.000000
"""

from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision: str = "20261018_000001"
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    op.create_table(
        "users",
        sa.Column("id", sa.String(), nullable=False),
        sa.Column("email", sa.String(), nullable=False),
        sa.Column("name", sa.String(), nullable=True),
        sa.Column("credit_balance", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("subscription_tier", sa.String(), nullable=False, server_default="free"),
        sa.Column("credits_refreshed_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.text("CURRENT_TIMESTAMP"), nullable=True),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=True),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("email"),
        sa.CheckConstraint("credit_balance >= 0", name="ck_users_credit_balance_non_negative"),
    )
    op.create_index(op.f("ix_users_email"), "users", ["email"], unique=True)
    op.create_index(op.f("ix_users_subscription_tier"), "users", ["subscription_tier"], unique=False)

    op.create_table(
        "transcription_jobs",
        sa.Column("id", sa.String(), nullable=False),
        sa.Column("user_id", sa.String(), nullable=False),
        sa.Column("video_url", sa.String(), nullable=False),
        sa.Column("platform", sa.String(), nullable=True),
        sa.Column("requested_quality", sa.String(), nullable=False),
        sa.Column("quality", sa.String(), nullable=False),
        sa.Column("status", sa.String(), nullable=False, server_default="pending"),
        sa.Column("status_message", sa.Text(), nullable=True),
        sa.Column("video_length_minutes_actual", sa.Integer(), nullable=True),
        sa.Column("duration_checked", sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column("youtube_comment_count", sa.Integer(), nullable=True),
        sa.Column("credits_charged", sa.Integer(), nullable=True),
        sa.Column("transcription_text", sa.Text(), nullable=True),
        sa.Column("srt_file_text", sa.Text(), nullable=True),
        sa.Column("vtt_file_text", sa.Text(), nullable=True),
        sa.Column("transcription_file_url", sa.String(), nullable=True),
        sa.Column("srt_file_url", sa.String(), nullable=True),
        sa.Column("vtt_file_url", sa.String(), nullable=True),
        sa.Column("summary_type", sa.String(), nullable=False, server_default="none"),
        sa.Column("basic_summary", sa.Text(), nullable=True),
        sa.Column("extended_summary", sa.Text(), nullable=True),
        sa.Column("fallback_on_rate_limit", sa.Boolean(), nullable=False, server_default=sa.true()),
        sa.Column("callback_url", sa.String(), nullable=True),
        sa.Column("response_format", sa.String(), nullable=False, server_default="verbose"),
        sa.Column("queue_job_id", sa.String(), nullable=True),
        sa.Column("attempts", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.text("CURRENT_TIMESTAMP"), nullable=True),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("completed_at", sa.DateTime(timezone=True), nullable=True),
        sa.ForeignKeyConstraint(["user_id"], ["users.id"]),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index(op.f("ix_transcription_jobs_user_id"), "transcription_jobs", ["user_id"], unique=False)
    op.create_index(op.f("ix_transcription_jobs_quality"), "transcription_jobs", ["quality"], unique=False)
    op.create_index(op.f("ix_transcription_jobs_status"), "transcription_jobs", ["status"], unique=False)
    op.create_index(op.f("ix_transcription_jobs_queue_job_id"), "transcription_jobs", ["queue_job_id"], unique=False)
    op.create_index(op.f("ix_transcription_jobs_created_at"), "transcription_jobs", ["created_at"], unique=False)

    op.create_table(
        "credit_transactions",
        sa.Column("id", sa.String(), nullable=False),
        sa.Column("user_id", sa.String(), nullable=False),
        sa.Column("job_id", sa.String(), nullable=True),
        sa.Column("derived_job_id", sa.String(), nullable=True),
        sa.Column("idempotency_key", sa.String(), nullable=True),
        sa.Column("amount", sa.Integer(), nullable=False),
        sa.Column("type", sa.String(), nullable=False),
        sa.Column("description", sa.String(), nullable=True),
        sa.Column("video_length_minutes_charged", sa.Integer(), nullable=True),
        sa.Column("user_credits_before", sa.Integer(), nullable=False),
        sa.Column("user_credits_after", sa.Integer(), nullable=False),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.text("CURRENT_TIMESTAMP"), nullable=True),
        sa.ForeignKeyConstraint(["user_id"], ["users.id"]),
        sa.ForeignKeyConstraint(["job_id"], ["transcription_jobs.id"]),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("idempotency_key"),
        sa.CheckConstraint("amount >= 0", name="ck_credit_transactions_amount_non_negative"),
    )
    op.create_index(op.f("ix_credit_transactions_user_id"), "credit_transactions", ["user_id"], unique=False)
    op.create_index(op.f("ix_credit_transactions_job_id"), "credit_transactions", ["job_id"], unique=False)
    op.create_index(
        op.f("ix_credit_transactions_derived_job_id"), "credit_transactions", ["derived_job_id"], unique=False
    )
    op.create_index(op.f("ix_credit_transactions_type"), "credit_transactions", ["type"], unique=False)
    op.create_index(op.f("ix_credit_transactions_created_at"), "credit_transactions", ["created_at"], unique=False)

    op.create_table(
        "content_idea_jobs",
        sa.Column("id", sa.String(), nullable=False),
        sa.Column("user_id", sa.String(), nullable=False),
        sa.Column("transcription_job_id", sa.String(), nullable=False),
        sa.Column("job_type", sa.String(), nullable=False, server_default="normal"),
        sa.Column("status", sa.String(), nullable=False, server_default="pending"),
        sa.Column("status_message", sa.Text(), nullable=True),
        sa.Column("credits_charged", sa.Integer(), nullable=True),
        sa.Column("comment_count", sa.Integer(), nullable=True),
        sa.Column("result_text", sa.Text(), nullable=True),
        sa.Column("queue_job_id", sa.String(), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.text("CURRENT_TIMESTAMP"), nullable=True),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("completed_at", sa.DateTime(timezone=True), nullable=True),
        sa.ForeignKeyConstraint(["user_id"], ["users.id"]),
        sa.ForeignKeyConstraint(["transcription_job_id"], ["transcription_jobs.id"]),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index(op.f("ix_content_idea_jobs_user_id"), "content_idea_jobs", ["user_id"], unique=False)
    op.create_index(
        op.f("ix_content_idea_jobs_transcription_job_id"), "content_idea_jobs", ["transcription_job_id"], unique=False
    )
    op.create_index(op.f("ix_content_idea_jobs_status"), "content_idea_jobs", ["status"], unique=False)
    op.create_index(op.f("ix_content_idea_jobs_queue_job_id"), "content_idea_jobs", ["queue_job_id"], unique=False)
    op.create_index(op.f("ix_content_idea_jobs_created_at"), "content_idea_jobs", ["created_at"], unique=False)


def downgrade() -> None:
    op.drop_index(op.f("ix_content_idea_jobs_created_at"), table_name="content_idea_jobs")
    op.drop_index(op.f("ix_content_idea_jobs_queue_job_id"), table_name="content_idea_jobs")
    op.drop_index(op.f("ix_content_idea_jobs_status"), table_name="content_idea_jobs")
    op.drop_index(op.f("ix_content_idea_jobs_transcription_job_id"), table_name="content_idea_jobs")
    op.drop_index(op.f("ix_content_idea_jobs_user_id"), table_name="content_idea_jobs")
    op.drop_table("content_idea_jobs")

    op.drop_index(op.f("ix_credit_transactions_created_at"), table_name="credit_transactions")
    op.drop_index(op.f("ix_credit_transactions_type"), table_name="credit_transactions")
    op.drop_index(op.f("ix_credit_transactions_derived_job_id"), table_name="credit_transactions")
    op.drop_index(op.f("ix_credit_transactions_job_id"), table_name="credit_transactions")
    op.drop_index(op.f("ix_credit_transactions_user_id"), table_name="credit_transactions")
    op.drop_table("credit_transactions")

    op.drop_index(op.f("ix_transcription_jobs_created_at"), table_name="transcription_jobs")
    op.drop_index(op.f("ix_transcription_jobs_queue_job_id"), table_name="transcription_jobs")
    op.drop_index(op.f("ix_transcription_jobs_status"), table_name="transcription_jobs")
    op.drop_index(op.f("ix_transcription_jobs_quality"), table_name="transcription_jobs")
    op.drop_index(op.f("ix_transcription_jobs_user_id"), table_name="transcription_jobs")
    op.drop_table("transcription_jobs")

    op.drop_index(op.f("ix_users_subscription_tier"), table_name="users")
    op.drop_index(op.f("ix_users_email"), table_name="users")
    op.drop_table("users")
