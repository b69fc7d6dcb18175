"""Transcription job model."""

from sqlalchemy import Boolean, Column, DateTime, ForeignKey, Integer, String, Text
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func
import uuid

from database import Base


JOB_STATUS_PENDING = "pending"
JOB_STATUS_PENDING_CREDIT_DEDUCTION = "pending_credit_deduction"
JOB_STATUS_PROCESSING = "processing"
JOB_STATUS_COMPLETED = "completed"
JOB_STATUS_FAILED = "failed"
JOB_STATUS_FAILED_INSUFFICIENT_CREDITS = "failed_insufficient_credits"

TERMINAL_JOB_STATUSES = (
    JOB_STATUS_COMPLETED,
    JOB_STATUS_FAILED,
    JOB_STATUS_FAILED_INSUFFICIENT_CREDITS,
)
IN_PROGRESS_JOB_STATUSES = (
    JOB_STATUS_PENDING,
    JOB_STATUS_PENDING_CREDIT_DEDUCTION,
    JOB_STATUS_PROCESSING,
)

QUALITY_CAPTION_FIRST = "caption_first"
QUALITY_STANDARD = "standard"
QUALITY_PREMIUM = "premium"
QUALITIES = (QUALITY_CAPTION_FIRST, QUALITY_STANDARD, QUALITY_PREMIUM)


class TranscriptionJob(Base):
    """One request to transcribe one video at one quality level."""

    __tablename__ = "transcription_jobs"

    id = Column(String, primary_key=True, default=lambda: str(uuid.uuid4()))
    user_id = Column(String, ForeignKey("users.id"), nullable=False, index=True)
    video_url = Column(String, nullable=False)
    platform = Column(String, nullable=True)
    requested_quality = Column(String, nullable=False)
    quality = Column(String, nullable=False, index=True)
    status = Column(String, nullable=False, default=JOB_STATUS_PENDING, index=True)
    status_message = Column(Text, nullable=True)

    # None until measured; duration_checked marks "probed but unavailable".
    video_length_minutes_actual = Column(Integer, nullable=True)
    duration_checked = Column(Boolean, nullable=False, default=False)
    youtube_comment_count = Column(Integer, nullable=True)
    credits_charged = Column(Integer, nullable=True)

    transcription_text = Column(Text, nullable=True)
    srt_file_text = Column(Text, nullable=True)
    vtt_file_text = Column(Text, nullable=True)
    transcription_file_url = Column(String, nullable=True)
    srt_file_url = Column(String, nullable=True)
    vtt_file_url = Column(String, nullable=True)

    summary_type = Column(String, nullable=False, default="none")
    basic_summary = Column(Text, nullable=True)
    extended_summary = Column(Text, nullable=True)

    fallback_on_rate_limit = Column(Boolean, nullable=False, default=True)
    callback_url = Column(String, nullable=True)
    response_format = Column(String, nullable=False, default="verbose")

    queue_job_id = Column(String, nullable=True, index=True)
    attempts = Column(Integer, nullable=False, default=0)
    created_at = Column(DateTime(timezone=True), server_default=func.now(), index=True)
    updated_at = Column(DateTime(timezone=True), onupdate=func.now())
    completed_at = Column(DateTime(timezone=True), nullable=True)

    user = relationship("User", back_populates="transcription_jobs")
    content_idea_jobs = relationship("ContentIdeaJob", back_populates="transcription_job")
