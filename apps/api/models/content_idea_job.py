"""Content idea job model."""

from sqlalchemy import Column, DateTime, ForeignKey, Integer, String, Text
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func
import uuid

from database import Base


class ContentIdeaJob(Base):
    """LLM content idea generation derived from a completed transcription."""

    __tablename__ = "content_idea_jobs"

    id = Column(String, primary_key=True, default=lambda: str(uuid.uuid4()))
    user_id = Column(String, ForeignKey("users.id"), nullable=False, index=True)
    transcription_job_id = Column(String, ForeignKey("transcription_jobs.id"), nullable=False, index=True)
    job_type = Column(String, nullable=False, default="normal")
    status = Column(String, nullable=False, default="pending", index=True)
    status_message = Column(Text, nullable=True)
    credits_charged = Column(Integer, nullable=True)
    comment_count = Column(Integer, nullable=True)
    result_text = Column(Text, nullable=True)
    queue_job_id = Column(String, nullable=True, index=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now(), index=True)
    updated_at = Column(DateTime(timezone=True), onupdate=func.now())
    completed_at = Column(DateTime(timezone=True), nullable=True)

    user = relationship("User", back_populates="content_idea_jobs")
    transcription_job = relationship("TranscriptionJob", back_populates="content_idea_jobs")
