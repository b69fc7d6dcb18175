from types import SimpleNamespace
from unittest.mock import MagicMock, patch

import pytest

from config import settings
from services.summaries import SummaryGenerationError, generate_content_ideas, generate_summary


def _client_returning(content):
    client = MagicMock()
    client.chat.completions.create.return_value = SimpleNamespace(
        choices=[SimpleNamespace(message=SimpleNamespace(content=content))]
    )
    return client


def test_summary_prompt_contains_transcript():
    client = _client_returning("  Bread takes patience.  ")
    with patch("services.summaries.get_openai_client", return_value=client):
        summary = generate_summary("We bake bread slowly.", "basic")

    assert summary == "Bread takes patience."
    prompt = client.chat.completions.create.call_args.kwargs["messages"][0]["content"]
    assert "We bake bread slowly." in prompt
    assert "{{transcript_text}}" not in prompt


def test_configured_template_file_is_used(tmp_path):
    template = tmp_path / "extended.txt"
    template.write_text("EXTENDED >> {{transcript_text}}", encoding="utf-8")
    client = _client_returning("ok")

    with patch.object(settings, "PROMPT_TEMPLATE_EXTENDED_SUMMARY_PATH", str(template)), patch(
        "services.summaries.get_openai_client", return_value=client
    ):
        generate_summary("transcript body", "extended")

    prompt = client.chat.completions.create.call_args.kwargs["messages"][0]["content"]
    assert prompt == "EXTENDED >> transcript body"


def test_comment_ideas_include_comments():
    client = _client_returning("ideas")
    with patch("services.summaries.get_openai_client", return_value=client):
        generate_content_ideas("transcript", "comments", ["Do a rye loaf", "What flour?"])

    prompt = client.chat.completions.create.call_args.kwargs["messages"][0]["content"]
    assert "- Do a rye loaf\n- What flour?" in prompt


def test_empty_inputs_and_outputs_raise():
    with pytest.raises(SummaryGenerationError):
        generate_summary("   ", "basic")
    with pytest.raises(SummaryGenerationError):
        generate_summary("text", "haiku")
    with patch("services.summaries.get_openai_client", return_value=_client_returning("  ")):
        with pytest.raises(SummaryGenerationError):
            generate_summary("text", "basic")
