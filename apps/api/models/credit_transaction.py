"""CreditTransaction model for the append-only credit audit log."""

import uuid

from sqlalchemy import CheckConstraint, Column, DateTime, ForeignKey, Integer, String
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func

from database import Base


ADDITION_TYPES = (
    "initial_allocation",
    "free_tier_refresh",
    "paid_tier_renewal",
    "job_failure_refund",
    "manual_adjustment_add",
)
CHARGE_TYPES = (
    "caption_download",
    "standard_transcription",
    "premium_transcription",
    "content_idea_normal",
    "content_idea_comments",
    "manual_adjustment_deduct",
)
REFUND_TYPE = "job_failure_refund"


class CreditTransaction(Base):
    """Immutable record of one credit movement, including zero-amount grants."""

    __tablename__ = "credit_transactions"
    __table_args__ = (CheckConstraint("amount >= 0", name="ck_credit_transactions_amount_non_negative"),)

    id = Column(String, primary_key=True, default=lambda: str(uuid.uuid4()))
    user_id = Column(String, ForeignKey("users.id"), nullable=False, index=True)
    job_id = Column(String, ForeignKey("transcription_jobs.id"), nullable=True, index=True)
    derived_job_id = Column(String, nullable=True, index=True)
    idempotency_key = Column(String, nullable=True, unique=True)
    amount = Column(Integer, nullable=False)
    type = Column(String, nullable=False, index=True)
    description = Column(String, nullable=True)
    video_length_minutes_charged = Column(Integer, nullable=True)
    user_credits_before = Column(Integer, nullable=False)
    user_credits_after = Column(Integer, nullable=False)
    created_at = Column(DateTime(timezone=True), server_default=func.now(), index=True)

    user = relationship("User", back_populates="credit_transactions")

    @property
    def signed_amount(self) -> int:
        """Amount with the sign it applied to the balance."""
        if self.type == "paid_tier_renewal":
            return int(self.user_credits_after) - int(self.user_credits_before)
        if self.type in CHARGE_TYPES:
            return -int(self.amount)
        return int(self.amount)
