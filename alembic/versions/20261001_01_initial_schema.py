"""Initial database schema."""

from __future__ import annotations

from alembic import op
import sqlalchemy as sa


revision = "20261001_01"
down_revision = None
branch_labels = None
depends_on = None


def upgrade() -> None:
    op.create_table(
        "generation_job",
        sa.Column("id", sa.String(length=64), primary_key=True),
        sa.Column("user_id", sa.String(length=64), nullable=False),
        sa.Column("provider", sa.String(length=32), nullable=False),
        sa.Column("model", sa.String(length=64), nullable=False),
        sa.Column("status", sa.String(length=32), nullable=False),
        sa.Column("progress", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("progress_note", sa.String(length=255)),
        sa.Column("request_params", sa.JSON(), nullable=False),
        sa.Column("provider_task_id", sa.String(length=128)),
        sa.Column("provider_dispatched_at", sa.DateTime()),
        sa.Column("poll_attempts", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("next_poll_at", sa.DateTime()),
        sa.Column("poll_delay_seconds", sa.Float()),
        sa.Column("response_data", sa.JSON()),
        sa.Column("providers_tried", sa.JSON(), nullable=False),
        sa.Column(
            "fallback_attempted",
            sa.Boolean(),
            nullable=False,
            server_default=sa.text("FALSE"),
        ),
        sa.Column("artifact_id", sa.String(length=64)),
        sa.Column("error_message", sa.String(length=512)),
        sa.Column("failure_kind", sa.String(length=32)),
        sa.Column("credits_estimate", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("generated_lyrics", sa.Text()),
        sa.Column("cancelled_at", sa.DateTime()),
        sa.Column("created_at", sa.DateTime(), nullable=False),
        sa.Column("updated_at", sa.DateTime(), nullable=False),
        sa.Column("finished_at", sa.DateTime()),
    )
    op.create_index("ix_generation_job_user_id", "generation_job", ["user_id"])
    op.create_index("ix_generation_job_status", "generation_job", ["status"])
    op.create_index(
        "ix_generation_job_provider_task_id", "generation_job", ["provider_task_id"]
    )
    op.create_index("ix_generation_job_next_poll_at", "generation_job", ["next_poll_at"])
    op.create_index("ix_generation_job_created_at", "generation_job", ["created_at"])

    op.create_table(
        "generated_artifact",
        sa.Column("id", sa.String(length=64), primary_key=True),
        sa.Column("job_id", sa.String(length=64), nullable=False),
        sa.Column("user_id", sa.String(length=64), nullable=False),
        sa.Column("title", sa.String(length=255), nullable=False),
        sa.Column("audio_uri", sa.String(length=1024), nullable=False),
        sa.Column("image_uri", sa.String(length=1024)),
        sa.Column("duration_seconds", sa.Float()),
        sa.Column("lyrics", sa.Text()),
        sa.Column("provider", sa.String(length=32), nullable=False),
        sa.Column("provider_item_id", sa.String(length=128)),
        sa.Column("tags", sa.String(length=1024)),
        sa.Column("created_at", sa.DateTime(), nullable=False),
    )
    op.create_index("ix_generated_artifact_job_id", "generated_artifact", ["job_id"])
    op.create_index("ix_generated_artifact_user_id", "generated_artifact", ["user_id"])

    op.create_table(
        "lyrics_record",
        sa.Column("id", sa.String(length=64), primary_key=True),
        sa.Column("user_id", sa.String(length=64), nullable=False),
        sa.Column("job_id", sa.String(length=64)),
        sa.Column("provider", sa.String(length=32), nullable=False),
        sa.Column("provider_task_id", sa.String(length=128), nullable=False),
        sa.Column("prompt", sa.Text(), nullable=False),
        sa.Column("title", sa.String(length=255)),
        sa.Column("content", sa.Text()),
        sa.Column("status", sa.String(length=32), nullable=False),
        sa.Column("error_message", sa.String(length=512)),
        sa.Column("created_at", sa.DateTime(), nullable=False),
        sa.Column("updated_at", sa.DateTime(), nullable=False),
    )
    op.create_index("ix_lyrics_record_user_id", "lyrics_record", ["user_id"])
    op.create_index(
        "ix_lyrics_record_provider_task_id", "lyrics_record", ["provider_task_id"]
    )


def downgrade() -> None:
    op.drop_index("ix_lyrics_record_provider_task_id", table_name="lyrics_record")
    op.drop_index("ix_lyrics_record_user_id", table_name="lyrics_record")
    op.drop_table("lyrics_record")
    op.drop_index("ix_generated_artifact_user_id", table_name="generated_artifact")
    op.drop_index("ix_generated_artifact_job_id", table_name="generated_artifact")
    op.drop_table("generated_artifact")
    op.drop_index("ix_generation_job_created_at", table_name="generation_job")
    op.drop_index("ix_generation_job_next_poll_at", table_name="generation_job")
    op.drop_index("ix_generation_job_provider_task_id", table_name="generation_job")
    op.drop_index("ix_generation_job_status", table_name="generation_job")
    op.drop_index("ix_generation_job_user_id", table_name="generation_job")
    op.drop_table("generation_job")
