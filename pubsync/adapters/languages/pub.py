"""
Pub adapter — Dart/Flutter package manager operations.

Runs ``<tool> pub add|get|upgrade`` in the project root, where ``<tool>``
is the first of the configured candidates (dart, flutter) found on PATH.
Output is captured with stderr folded into stdout: the conflict analyzer
needs the whole transcript, in order.
"""

from __future__ import annotations

import logging
import shutil
import subprocess
import time

from pubsync.adapters.base import Adapter, ExecutionContext
from pubsync.core.models.action import Receipt

logger = logging.getLogger(__name__)

DEFAULT_TOOLS = ("dart", "flutter")
_OPERATIONS = {"add", "add-override", "get", "upgrade"}


class PubAdapter(Adapter):
    """Dart/Flutter ``pub`` toolchain adapter.

    Action params:
        operation (str): One of 'add', 'add-override', 'get', 'upgrade'.
        name (str): Package name (for 'add', 'add-override').
        url (str): Git URL (for 'add').
        ref (str): Git ref (for 'add'; omitted from argv when 'main').
        path (str): Subdirectory inside the repository (for 'add').
        descriptor (str): Inline JSON git descriptor (for 'add-override').
        packages (list[str]): Packages to upgrade (for 'upgrade', default: all).
    """

    def __init__(self, candidates: list[str] | tuple[str, ...] = DEFAULT_TOOLS, default_timeout: float = 300.0):
        self._candidates = tuple(candidates)
        self._default_timeout = default_timeout

    @property
    def name(self) -> str:
        return "pub"

    @property
    def candidates(self) -> tuple[str, ...]:
        return self._candidates

    def resolve_tool(self) -> str | None:
        """First candidate binary found on PATH."""
        for tool in self._candidates:
            if shutil.which(tool):
                return tool
        return None

    def is_available(self) -> bool:
        return self.resolve_tool() is not None

    def validate(self, context: ExecutionContext) -> tuple[bool, str]:
        operation = context.params.get("operation", "")
        if operation not in _OPERATIONS:
            return False, f"Unknown operation '{operation}'. Valid: {', '.join(sorted(_OPERATIONS))}"

        if operation in ("add", "add-override") and not context.params.get("name"):
            return False, f"Missing required param: 'name' for {operation}"
        if operation == "add" and not context.params.get("url"):
            return False, "Missing required param: 'url' for add"
        if operation == "add-override" and not context.params.get("descriptor"):
            return False, "Missing required param: 'descriptor' for add-override"

        return True, ""

    def describe(self, context: ExecutionContext) -> list[str]:
        """The argv this action runs."""
        tool = self.resolve_tool() or self._candidates[0]
        return [tool, "pub", *pub_arguments(context.params)]

    def execute(self, context: ExecutionContext) -> Receipt:
        tool = self.resolve_tool()
        if tool is None:
            return Receipt.failure(
                adapter=self.name,
                action_id=context.action.id,
                error=f"None of {', '.join(self._candidates)} found on PATH",
            )
        cmd = [tool, "pub", *pub_arguments(context.params)]
        return self._exec(context, cmd)

    # ── Helpers ─────────────────────────────────────────────────

    def _exec(self, ctx: ExecutionContext, cmd: list[str]) -> Receipt:
        timeout = ctx.timeout(self._default_timeout)
        command = " ".join(cmd)
        start = time.monotonic()
        logger.info("Running: %s", command)
        try:
            result = subprocess.run(
                cmd,
                cwd=ctx.project_root,
                stdout=subprocess.PIPE,
                stderr=subprocess.STDOUT,
                text=True,
                timeout=timeout,
            )
        except subprocess.TimeoutExpired as e:
            partial = e.output if isinstance(e.output, str) else ""
            return Receipt.failure(
                adapter=self.name,
                action_id=ctx.action.id,
                error=f"Command timed out after {timeout:g}s",
                output=partial.strip(),
                metadata={"command": command, "timed_out": True},
            )
        except OSError as e:
            return Receipt.failure(
                adapter=self.name,
                action_id=ctx.action.id,
                error=f"Pub error: {e}",
                metadata={"command": command},
            )

        elapsed_ms = int((time.monotonic() - start) * 1000)
        output = (result.stdout or "").strip()
        if result.returncode == 0:
            return Receipt.success(
                adapter=self.name,
                action_id=ctx.action.id,
                output=output,
                duration_ms=elapsed_ms,
                metadata={"command": command, "return_code": 0},
            )
        return Receipt.failure(
            adapter=self.name,
            action_id=ctx.action.id,
            error=_last_line(output) or f"Exit code {result.returncode}",
            output=output,
            duration_ms=elapsed_ms,
            metadata={"command": command, "return_code": result.returncode},
        )


def pub_arguments(params: dict) -> list[str]:
    """Arguments following ``<tool> pub`` for one action."""
    operation = params["operation"]

    if operation == "add":
        args = ["add", params["name"], "--git-url", params["url"]]
        ref = params.get("ref")
        if ref and ref != "main":
            args += ["--git-ref", ref]
        if params.get("path"):
            args += ["--git-path", params["path"]]
        return args

    if operation == "add-override":
        name, descriptor = params["name"], params["descriptor"]
        return ["add", f"{name}:{descriptor}", f"override:{name}:{descriptor}"]

    if operation == "upgrade":
        return ["upgrade", *params.get("packages", [])]

    return ["get"]


def _last_line(text: str) -> str:
    lines = [line for line in text.splitlines() if line.strip()]
    return lines[-1].strip() if lines else ""
