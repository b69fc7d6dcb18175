"""Credit cost calculation for transcription and derived jobs."""

from __future__ import annotations

import math
from typing import Optional

from config import get_credit_config, settings
from models.transcription_job import QUALITY_CAPTION_FIRST, QUALITY_PREMIUM, QUALITY_STANDARD

SUMMARY_TYPES = ("none", "basic", "extended")
CONTENT_IDEA_TYPES = ("normal", "comments")

_TRANSACTION_TYPE_BY_QUALITY = {
    QUALITY_CAPTION_FIRST: "caption_download",
    QUALITY_STANDARD: "standard_transcription",
    QUALITY_PREMIUM: "premium_transcription",
}


class InvalidCostInputError(ValueError):
    """Raised when a cost cannot be computed from the given inputs."""


def calculate_credit_cost(quality: str, minutes: Optional[int]) -> int:
    """
    Credits required for a transcription.

    Caption-first is a flat fee. Audio transcription is billed per started
    ten-minute block with a minimum of one block.
    """
    config = get_credit_config()
    if quality == QUALITY_CAPTION_FIRST:
        return config.CREDITS_CAPTION_FIRST_FIXED
    if quality not in (QUALITY_STANDARD, QUALITY_PREMIUM):
        raise InvalidCostInputError(f"Unknown transcription quality: {quality!r}")
    if minutes is None or minutes < 0:
        raise InvalidCostInputError(
            f"Video length is required to price {quality} transcription (got {minutes!r})"
        )

    rate = config.CREDITS_PER_10_MIN_PREMIUM if quality == QUALITY_PREMIUM else config.CREDITS_PER_10_MIN_STANDARD
    blocks = max(1, math.ceil(minutes / 10))
    return blocks * rate


def calculate_summary_cost(summary_type: Optional[str]) -> int:
    config = get_credit_config()
    if summary_type in (None, "", "none"):
        return 0
    if summary_type == "basic":
        return config.CREDITS_BASIC_SUMMARY_FIXED
    if summary_type == "extended":
        return config.CREDITS_EXTENDED_SUMMARY_FIXED
    raise InvalidCostInputError(f"Unknown summary type: {summary_type!r}")


def calculate_content_idea_cost(job_type: str, comment_count: Optional[int] = None) -> int:
    """Normal ideas are a flat fee; comment analysis is tiered by comment volume."""
    config = get_credit_config()
    if job_type == "normal":
        return config.CONTENT_IDEA_NORMAL_CREDIT_COST
    if job_type != "comments":
        raise InvalidCostInputError(f"Unknown content idea job type: {job_type!r}")

    count = int(comment_count or 0)
    if count < settings.MIN_YOUTUBE_COMMENTS_FOR_ANALYSIS:
        raise InvalidCostInputError(
            f"At least {settings.MIN_YOUTUBE_COMMENTS_FOR_ANALYSIS} comments are required for comment analysis"
        )
    if count <= 100:
        return config.CONTENT_IDEA_COMMENT_SMALL_CREDIT_COST
    if count <= 500:
        return config.CONTENT_IDEA_COMMENT_MEDIUM_CREDIT_COST
    if count <= 1000:
        return config.CONTENT_IDEA_COMMENT_LARGE_CREDIT_COST
    return config.CONTENT_IDEA_COMMENT_XLARGE_CREDIT_COST


def transaction_type_for_quality(quality: str) -> str:
    try:
        return _TRANSACTION_TYPE_BY_QUALITY[quality]
    except KeyError:
        raise InvalidCostInputError(f"Unknown transcription quality: {quality!r}") from None
