"""Codex: combined instructions over stdin, read-only sandbox on argv."""

from roast_council.agents.base import Invocation, InvocationOptions, InvocationSpec
from roast_council.models import AgentIdentity


class CodexInvocation(Invocation):
    identity = AgentIdentity.CODEX

    def build(self, task_prompt: str, system_prompt: str, options: InvocationOptions) -> InvocationSpec:
        args = ["exec", "--sandbox", "read-only"]
        if options.working_directory:
            args += ["--cd", options.working_directory]
        model = self._model(options)
        if model:
            args += ["--model", model]
        args.append("-")  # read the prompt from stdin
        payload = f"CONTEXT AND INSTRUCTIONS:\n{system_prompt}\n\nANALYZE:\n{task_prompt}"
        return InvocationSpec(
            command=self.binary,
            args=args,
            env=self._base_env(),
            stdin=payload,
            cwd=options.working_directory,
        )
