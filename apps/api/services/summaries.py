"""LLM-generated summaries and content ideas."""

from __future__ import annotations

import logging
from pathlib import Path
from typing import List, Optional

from openai import APIError, OpenAI

from config import settings

logger = logging.getLogger(__name__)

TRANSCRIPT_PLACEHOLDER = "{{transcript_text}}"
COMMENTS_PLACEHOLDER = "{{comments_text}}"
MAX_TRANSCRIPT_CHARS = 60000

DEFAULT_TEMPLATES = {
    "basic": (
        "Summarize the following video transcript in one short paragraph. "
        "Focus on the main topic and the key takeaway.\n\nTranscript:\n{{transcript_text}}"
    ),
    "extended": (
        "Write a detailed summary of the following video transcript. Start with a one-paragraph "
        "overview, then list the key points as bullets, then list any actionable advice.\n\n"
        "Transcript:\n{{transcript_text}}"
    ),
    "content_ideas_normal": (
        "You are a content strategist. Based on the video transcript below, propose ten new video "
        "ideas. For each idea give a title, a one-sentence hook and why it would perform well.\n\n"
        "Transcript:\n{{transcript_text}}"
    ),
    "content_ideas_comments": (
        "You are a content strategist. Using the video transcript and the most engaged viewer "
        "comments below, identify recurring questions and requests, then propose ten follow-up "
        "video ideas that answer them.\n\nTranscript:\n{{transcript_text}}\n\nComments:\n{{comments_text}}"
    ),
}


class SummaryGenerationError(RuntimeError):
    pass


def _template_path(name: str) -> str:
    paths = {
        "basic": settings.PROMPT_TEMPLATE_BASIC_SUMMARY_PATH,
        "extended": settings.PROMPT_TEMPLATE_EXTENDED_SUMMARY_PATH,
        "content_ideas_normal": settings.PROMPT_TEMPLATE_CONTENT_IDEAS_PATH,
    }
    return (paths.get(name) or "").strip()


def load_prompt_template(name: str) -> str:
    """Read a configured template file, or fall back to the built-in template."""
    path = _template_path(name)
    if path:
        try:
            template = Path(path).read_text(encoding="utf-8")
        except OSError as exc:
            raise SummaryGenerationError(f"Failed to load prompt template {path}: {exc}") from exc
        if not template.strip():
            raise SummaryGenerationError(f"Prompt template file is empty: {path}")
        return template
    return DEFAULT_TEMPLATES[name]


def get_openai_client() -> OpenAI:
    api_key = (settings.OPENAI_API_KEY or "").strip()
    if not api_key:
        raise SummaryGenerationError("OPENAI_API_KEY is not configured")
    return OpenAI(api_key=api_key)


def _complete(prompt: str) -> str:
    client = get_openai_client()
    try:
        completion = client.chat.completions.create(
            model=settings.OPENAI_MODEL_NAME,
            messages=[{"role": "user", "content": prompt}],
        )
    except APIError as exc:
        raise SummaryGenerationError(f"OpenAI API error: {exc}") from exc

    content = completion.choices[0].message.content if completion.choices else None
    if not content or not content.strip():
        raise SummaryGenerationError("OpenAI did not return any content")
    return content.strip()


def generate_summary(transcript_text: str, summary_type: str) -> str:
    if summary_type not in ("basic", "extended"):
        raise SummaryGenerationError(f"Unknown summary type: {summary_type}")
    if not (transcript_text or "").strip():
        raise SummaryGenerationError("Transcript is empty; nothing to summarize")

    prompt = load_prompt_template(summary_type).replace(
        TRANSCRIPT_PLACEHOLDER, transcript_text[:MAX_TRANSCRIPT_CHARS]
    )
    logger.info("Generating %s summary (%s chars of transcript)", summary_type, len(transcript_text))
    return _complete(prompt)


def generate_content_ideas(
    transcript_text: str,
    job_type: str,
    comments: Optional[List[str]] = None,
) -> str:
    if not (transcript_text or "").strip():
        raise SummaryGenerationError("Transcript is empty; cannot generate ideas")

    template_name = "content_ideas_comments" if job_type == "comments" else "content_ideas_normal"
    prompt = load_prompt_template(template_name).replace(
        TRANSCRIPT_PLACEHOLDER, transcript_text[:MAX_TRANSCRIPT_CHARS]
    )
    if job_type == "comments":
        prompt = prompt.replace(COMMENTS_PLACEHOLDER, "\n".join(f"- {comment}" for comment in (comments or [])))
    return _complete(prompt)
