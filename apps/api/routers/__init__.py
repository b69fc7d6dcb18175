"""Routers package."""

from . import (
    health,
    transcribe,
    content_ideas,
    billing,
)
