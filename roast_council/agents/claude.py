"""Claude Code: system prompt and task prompt as separate argv elements."""

from roast_council.agents.base import Invocation, InvocationOptions, InvocationSpec, argv_safe
from roast_council.models import AgentIdentity


class ClaudeInvocation(Invocation):
    identity = AgentIdentity.CLAUDE

    def build(self, task_prompt: str, system_prompt: str, options: InvocationOptions) -> InvocationSpec:
        args = ["--print", "--system-prompt", argv_safe(system_prompt)]
        model = self._model(options)
        if model:
            args += ["--model", model]
        args.append(argv_safe(task_prompt))
        return InvocationSpec(
            command=self.binary,
            args=args,
            env=self._base_env(),
            cwd=options.working_directory,
        )
