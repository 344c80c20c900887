"""Prompt assembly from the templates in settings.yaml."""

from config.config_loader import PromptsConfig
from roast_council.models import AgentIdentity, ConversationMessage, Stance

NO_POSITION = "No position stated."

_GENERIC_SYSTEM = "You are a brutally honest reviewer. Do not modify any files."
_GENERIC_TASK = "Analyze {target} for {kind} issues. Context: {context}"
_NO_CONTEXT = "No additional context provided"


def sanitize(text: str) -> str:
    """Escape backticks and dollar signs in caller text embedded in a prompt."""
    return text.replace("`", "\\`").replace("$", "\\$")


def system_prompt_for(prompts: PromptsConfig, kind: str) -> str:
    return prompts.system.get(kind) or prompts.system.get("default") or _GENERIC_SYSTEM


def build_task_prompt(prompts: PromptsConfig, kind: str, target: str, context: str | None = None) -> str:
    template = prompts.tasks.get(kind) or prompts.tasks.get("default") or _GENERIC_TASK
    return template.format(
        target=sanitize(target),
        context=sanitize(context) if context else _NO_CONTEXT,
        kind=kind,
    )


def _stance_fields(prompts: PromptsConfig, stance: Stance) -> dict[str, str]:
    return {
        "stance_label": stance.value.upper(),
        "stance_description": prompts.stances.get(stance.value, stance.value),
    }


def build_opening_prompt(prompts: PromptsConfig, topic: str, stance: Stance, context: str | None = None) -> str:
    return prompts.debate_opening.format(
        topic=sanitize(topic),
        context=sanitize(context) if context else _NO_CONTEXT,
        **_stance_fields(prompts, stance),
    )


def build_rebuttal_prompt(
    prompts: PromptsConfig,
    topic: str,
    stance: Stance,
    round_number: int,
    opponent_statements: list[tuple[AgentIdentity, str]],
) -> str:
    """Embed only each opponent's latest statement, not the full history."""
    if opponent_statements:
        block = "\n\n".join(f"[{agent.label}]\n{statement}" for agent, statement in opponent_statements)
    else:
        block = NO_POSITION
    return prompts.debate_rebuttal.format(
        topic=sanitize(topic),
        round=round_number,
        opponent_statements=block,
        **_stance_fields(prompts, stance),
    )


def build_conversation_preamble(history: list[ConversationMessage], follow_up: str) -> str:
    """Render prior turns ahead of the new prompt for a resumed conversation."""
    turns = "\n\n---\n\n".join(
        f"{'User' if msg.role == 'user' else 'Assistant'}: {msg.content}" for msg in history
    )
    return (
        f"## Previous Conversation\n\n{turns}\n\n---\n\n"
        f"## New User Prompt\n\n{follow_up}\n\n"
    )
