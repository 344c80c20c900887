"""Gemini CLI: system prompt through the environment, task prompt as a flag."""

from roast_council.agents.base import Invocation, InvocationOptions, InvocationSpec, argv_safe
from roast_council.models import AgentIdentity

SYSTEM_PROMPT_ENV = "GEMINI_SYSTEM_PROMPT"
DEFAULT_MODEL = "gemini-2.5-flash"


class GeminiInvocation(Invocation):
    identity = AgentIdentity.GEMINI

    def __init__(self, binary: str | None = None, default_model: str | None = None) -> None:
        super().__init__(binary, default_model or DEFAULT_MODEL)

    def build(self, task_prompt: str, system_prompt: str, options: InvocationOptions) -> InvocationSpec:
        args = ["--model", self._model(options), "--prompt", argv_safe(task_prompt)]
        env = self._base_env({
            SYSTEM_PROMPT_ENV: system_prompt,
            # Plain output; the CLI otherwise emits ANSI and spinners.
            "TERM": "dumb",
            "NO_COLOR": "1",
            "CI": "true",
        })
        return InvocationSpec(
            command=self.binary,
            args=args,
            env=env,
            cwd=options.working_directory,
        )
