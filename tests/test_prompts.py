"""Tests for roast_council/prompts.py."""

from config.config_loader import PromptsConfig
from roast_council.models import AgentIdentity, ConversationMessage, Stance
from roast_council.prompts import (
    NO_POSITION,
    build_conversation_preamble,
    build_opening_prompt,
    build_rebuttal_prompt,
    build_task_prompt,
    sanitize,
    system_prompt_for,
)


def test_sanitize_escapes_shell_metacharacters():
    assert sanitize("run `rm -rf $HOME`") == "run \\`rm -rf \\$HOME\\`"


def test_system_prompt_falls_back_to_default(prompts_config):
    assert system_prompt_for(prompts_config, "code") == "You review code."
    assert system_prompt_for(prompts_config, "astrology") == "Be brutal."


def test_system_prompt_generic_when_unconfigured():
    assert "brutally honest" in system_prompt_for(PromptsConfig(), "code")


def test_task_prompt_unknown_domain_uses_default_template(prompts_config):
    prompt = build_task_prompt(prompts_config, "astrology", "my chart")
    assert prompt == "Analyze my chart for astrology. Context: No additional context provided"


def test_opening_prompt(prompts_config):
    prompt = build_opening_prompt(prompts_config, "Use Kafka?", Stance.OPPONENT, "small team")
    assert prompt == "OPENING on Use Kafka? as OPPONENT (argue against it). Context: small team"


def test_rebuttal_prompt_labels_opponents(prompts_config):
    prompt = build_rebuttal_prompt(
        prompts_config, "Use Kafka?", Stance.ADVOCATE, 2,
        [(AgentIdentity.CODEX, "Too complex."), (AgentIdentity.GEMINI, "Too costly.")],
    )
    assert prompt.startswith("REBUTTAL round 2 on Use Kafka? as ADVOCATE.")
    assert "[Codex]\nToo complex.\n\n[Gemini CLI]\nToo costly." in prompt


def test_rebuttal_prompt_without_opponents(prompts_config):
    prompt = build_rebuttal_prompt(prompts_config, "Use Kafka?", Stance.ADVOCATE, 2, [])
    assert prompt.endswith(NO_POSITION)


def test_conversation_preamble():
    history = [
        ConversationMessage(role="user", content="src/", timestamp=1.0),
        ConversationMessage(role="assistant", content="It is bad.", timestamp=2.0),
    ]
    preamble = build_conversation_preamble(history, "How bad?")
    assert preamble == (
        "## Previous Conversation\n\nUser: src/\n\n---\n\nAssistant: It is bad.\n\n---\n\n"
        "## New User Prompt\n\nHow bad?\n\n"
    )
