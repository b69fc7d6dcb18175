"""User model."""

from sqlalchemy import CheckConstraint, Column, String, DateTime, Integer
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func
import uuid

from database import Base


class User(Base):
    """Account holding a credit balance and a subscription tier."""

    __tablename__ = "users"
    __table_args__ = (CheckConstraint("credit_balance >= 0", name="ck_users_credit_balance_non_negative"),)

    id = Column(String, primary_key=True, default=lambda: str(uuid.uuid4()))
    email = Column(String, unique=True, nullable=False, index=True)
    name = Column(String, nullable=True)
    credit_balance = Column(Integer, nullable=False, default=0)
    subscription_tier = Column(String, nullable=False, default="free", index=True)
    credits_refreshed_at = Column(DateTime(timezone=True), nullable=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(DateTime(timezone=True), onupdate=func.now())

    # Relationships
    transcription_jobs = relationship("TranscriptionJob", back_populates="user", cascade="all, delete-orphan")
    credit_transactions = relationship("CreditTransaction", back_populates="user", cascade="all, delete-orphan")
    content_idea_jobs = relationship("ContentIdeaJob", back_populates="user", cascade="all, delete-orphan")
