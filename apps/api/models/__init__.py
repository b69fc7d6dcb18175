"""Models package."""

from .user import User
from .transcription_job import TranscriptionJob
from .credit_transaction import CreditTransaction
from .content_idea_job import ContentIdeaJob
