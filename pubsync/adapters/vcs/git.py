"""
Git adapter — remote ref queries and checkouts.

Provides the two git operations pubsync needs (ls-remote, clone) through
the adapter protocol. Uses the git CLI — never a hosting API.
"""

from __future__ import annotations

import logging
import os
import shutil
import subprocess
import time
from pathlib import Path

from pubsync.adapters.base import Adapter, ExecutionContext
from pubsync.core.models.action import Receipt

logger = logging.getLogger(__name__)

_OPERATIONS = {"ls-remote", "clone"}


def parse_ls_remote(output: str, ref: str) -> str | None:
    """Pick the revision for ``ref`` out of ``git ls-remote`` output.

    Each line is ``<revision>\\t<ref-path>``. A ref path matches when it
    equals ``ref`` or ends with ``/<ref>``, so ``refs/heads/main``
    answers ``main`` but ``refs/heads/domain`` does not. First match wins.
    """
    for line in output.splitlines():
        revision, sep, ref_path = line.strip().partition("\t")
        if not sep:
            parts = line.split()
            if len(parts) != 2:
                continue
            revision, ref_path = parts
        ref_path = ref_path.strip()
        if ref_path == ref or ref_path.endswith("/" + ref):
            return revision.strip()
    return None


class GitAdapter(Adapter):
    """Git operations against remote repositories.

    Action params:
        operation (str): One of 'ls-remote', 'clone'.
        url (str): Remote repository URL.
        ref (str): Branch, tag or ref to query / check out.
        destination (str): Clone target, relative to the project root.
    """

    def __init__(self, binary: str = "git", default_timeout: float = 30.0):
        self._binary = binary
        self._default_timeout = default_timeout

    @property
    def name(self) -> str:
        return "git"

    def is_available(self) -> bool:
        return shutil.which(self._binary) is not None

    def validate(self, context: ExecutionContext) -> tuple[bool, str]:
        operation = context.params.get("operation", "")
        if operation not in _OPERATIONS:
            return False, f"Unknown operation '{operation}'. Valid: {', '.join(sorted(_OPERATIONS))}"

        if not context.params.get("url"):
            return False, "Missing required param: 'url'"

        if operation == "ls-remote" and not context.params.get("ref"):
            return False, "Missing required param: 'ref' for ls-remote"
        if operation == "clone" and not context.params.get("destination"):
            return False, "Missing required param: 'destination' for clone"

        return True, ""

    def describe(self, context: ExecutionContext) -> list[str]:
        """The argv this action runs."""
        params = context.params
        if params["operation"] == "ls-remote":
            return [self._binary, "ls-remote", params["url"], params["ref"]]

        cmd = [self._binary, "clone"]
        ref = params.get("ref")
        if ref:
            cmd += ["--branch", ref]
        destination = Path(context.project_root) / params["destination"]
        return [*cmd, params["url"], str(destination)]

    def execute(self, context: ExecutionContext) -> Receipt:
        return self._exec(context, self.describe(context))

    # ── Helpers ─────────────────────────────────────────────────

    def _exec(self, ctx: ExecutionContext, cmd: list[str]) -> Receipt:
        timeout = ctx.timeout(self._default_timeout)
        command = " ".join(cmd)
        start = time.monotonic()
        logger.debug("Running: %s", command)
        try:
            result = subprocess.run(
                cmd,
                cwd=ctx.project_root,
                capture_output=True,
                text=True,
                timeout=timeout,
                # never block on a credential prompt
                env=_non_interactive_env(),
            )
        except subprocess.TimeoutExpired:
            return Receipt.failure(
                adapter=self.name,
                action_id=ctx.action.id,
                error=f"git timed out after {timeout:g}s",
                metadata={"command": command, "timed_out": True},
            )
        except OSError as e:
            return Receipt.failure(
                adapter=self.name,
                action_id=ctx.action.id,
                error=f"Git error: {e}",
                metadata={"command": command},
            )

        elapsed_ms = int((time.monotonic() - start) * 1000)
        if result.returncode == 0:
            return Receipt.success(
                adapter=self.name,
                action_id=ctx.action.id,
                output=result.stdout.strip(),
                duration_ms=elapsed_ms,
                metadata={"command": command, "return_code": 0},
            )
        return Receipt.failure(
            adapter=self.name,
            action_id=ctx.action.id,
            error=result.stderr.strip() or f"Exit code {result.returncode}",
            output=result.stdout.strip(),
            duration_ms=elapsed_ms,
            metadata={"command": command, "return_code": result.returncode},
        )


def _non_interactive_env() -> dict[str, str]:
    env = dict(os.environ)
    env["GIT_TERMINAL_PROMPT"] = "0"
    return env
