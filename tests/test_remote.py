"""
Tests for the git adapter and the remote oracle.
"""

import subprocess
from unittest.mock import patch

import pytest

from pubsync.adapters.base import ExecutionContext
from pubsync.adapters.mock import MockAdapter
from pubsync.adapters.vcs.git import GitAdapter, parse_ls_remote
from pubsync.core.errors import RemoteUnavailableError
from pubsync.core.models.action import Action
from pubsync.core.services.remote import RemoteOracle

LS_REMOTE = "def456\trefs/heads/main\n111111\trefs/heads/domain\n222222\trefs/tags/v1.0.0\n"


# ── ls-remote parsing ───────────────────────────────────────────────


class TestParseLsRemote:
    def test_branch(self):
        assert parse_ls_remote(LS_REMOTE, "main") == "def456"

    def test_tag(self):
        assert parse_ls_remote(LS_REMOTE, "v1.0.0") == "222222"

    def test_full_ref_path(self):
        assert parse_ls_remote(LS_REMOTE, "refs/heads/domain") == "111111"

    def test_suffix_respects_segment_boundary(self):
        output = "111111\trefs/heads/domain\n"
        assert parse_ls_remote(output, "main") is None

    def test_first_match_wins(self):
        output = "aaaaaa\trefs/heads/main\nbbbbbb\trefs/remotes/origin/main\n"
        assert parse_ls_remote(output, "main") == "aaaaaa"

    def test_space_separated(self):
        assert parse_ls_remote("abc123 refs/heads/main", "main") == "abc123"

    def test_empty(self):
        assert parse_ls_remote("", "main") is None


# ── Git adapter ─────────────────────────────────────────────────────


def _ctx(**params) -> ExecutionContext:
    return ExecutionContext(
        action=Action(id="git-test", adapter="git", params=params),
        project_root="/proj",
    )


class TestGitAdapter:
    def test_validate_unknown_operation(self):
        valid, msg = GitAdapter().validate(_ctx(operation="push", url="u"))
        assert not valid
        assert "Unknown operation" in msg

    def test_validate_requires_ref_for_ls_remote(self):
        valid, msg = GitAdapter().validate(_ctx(operation="ls-remote", url="u"))
        assert not valid
        assert "ref" in msg

    def test_validate_requires_destination_for_clone(self):
        valid, _ = GitAdapter().validate(_ctx(operation="clone", url="u", ref="main"))
        assert not valid

    def test_describe_ls_remote(self):
        argv = GitAdapter().describe(_ctx(operation="ls-remote", url="https://x/a", ref="main"))
        assert argv == ["git", "ls-remote", "https://x/a", "main"]

    def test_describe_clone(self):
        argv = GitAdapter().describe(
            _ctx(operation="clone", url="https://x/a", ref="dev", destination="vendor/a")
        )
        assert argv[:4] == ["git", "clone", "--branch", "dev"]
        assert argv[4] == "https://x/a"
        assert argv[5].replace("\\", "/").endswith("/proj/vendor/a")

    @patch("shutil.which", return_value=None)
    def test_unavailable(self, _which):
        assert not GitAdapter().is_available()

    @patch("pubsync.adapters.vcs.git.subprocess.run")
    def test_execute_success(self, run):
        run.return_value = subprocess.CompletedProcess([], 0, stdout=LS_REMOTE, stderr="")
        receipt = GitAdapter().execute(_ctx(operation="ls-remote", url="https://x/a", ref="main"))
        assert receipt.ok
        assert "refs/heads/main" in receipt.output
        assert run.call_args.kwargs["env"]["GIT_TERMINAL_PROMPT"] == "0"

    @patch("pubsync.adapters.vcs.git.subprocess.run")
    def test_execute_failure(self, run):
        run.return_value = subprocess.CompletedProcess(
            [], 128, stdout="", stderr="fatal: Could not resolve host: x",
        )
        receipt = GitAdapter().execute(_ctx(operation="ls-remote", url="https://x/a", ref="main"))
        assert receipt.failed
        assert "Could not resolve host" in receipt.error

    @patch("pubsync.adapters.vcs.git.subprocess.run")
    def test_execute_timeout(self, run):
        run.side_effect = subprocess.TimeoutExpired(cmd="git", timeout=5)
        receipt = GitAdapter(default_timeout=5).execute(
            _ctx(operation="ls-remote", url="https://x/a", ref="main")
        )
        assert receipt.failed
        assert "timed out" in receipt.error


# ── Remote oracle ───────────────────────────────────────────────────


class FakeClock:
    def __init__(self):
        self.now = 1000.0

    def __call__(self) -> float:
        return self.now


class TestRemoteOracle:
    def test_resolves_revision(self, registry, git: MockAdapter):
        git.set_output("ls-remote:https://x/a#main", LS_REMOTE)
        oracle = RemoteOracle(registry)
        assert oracle.remote_revision("https://x/a", "main") == "def456"

    def test_action_is_read_only(self, registry, git: MockAdapter):
        git.set_output("ls-remote:https://x/a#main", LS_REMOTE)
        RemoteOracle(registry, timeout=7).remote_revision("https://x/a", "main")
        action = git.call_log[0].action
        assert action.read_only
        assert action.timeout == 7
        assert action.params == {"operation": "ls-remote", "url": "https://x/a", "ref": "main"}

    def test_process_failure_raises(self, registry, git: MockAdapter):
        git.set_failure("ls-remote:https://x/a#main", error="Could not resolve host")
        with pytest.raises(RemoteUnavailableError) as exc:
            RemoteOracle(registry).remote_revision("https://x/a", "main")
        assert exc.value.url == "https://x/a"
        assert "Could not resolve host" in exc.value.reason

    def test_no_matching_ref_raises(self, registry, git: MockAdapter):
        git.set_output("ls-remote:https://x/a#release", LS_REMOTE)
        with pytest.raises(RemoteUnavailableError):
            RemoteOracle(registry).remote_revision("https://x/a", "release")

    def test_cache_hit_within_ttl(self, registry, git: MockAdapter):
        git.set_output("ls-remote:https://x/a#main", LS_REMOTE)
        clock = FakeClock()
        oracle = RemoteOracle(registry, cache_ttl=120, clock=clock)
        oracle.remote_revision("https://x/a", "main")
        clock.now += 60
        oracle.remote_revision("https://x/a", "main")
        assert git.call_count == 1

    def test_cache_expires(self, registry, git: MockAdapter):
        git.set_output("ls-remote:https://x/a#main", LS_REMOTE)
        clock = FakeClock()
        oracle = RemoteOracle(registry, cache_ttl=120, clock=clock)
        oracle.remote_revision("https://x/a", "main")
        clock.now += 121
        oracle.remote_revision("https://x/a", "main")
        assert git.call_count == 2

    def test_cache_disabled(self, registry, git: MockAdapter):
        git.set_output("ls-remote:https://x/a#main", LS_REMOTE)
        oracle = RemoteOracle(registry, cache_ttl=0)
        oracle.remote_revision("https://x/a", "main")
        oracle.remote_revision("https://x/a", "main")
        assert git.call_count == 2

    def test_failures_not_cached(self, registry, git: MockAdapter):
        git.set_failure("ls-remote:https://x/a#main", error="timeout")
        oracle = RemoteOracle(registry)
        with pytest.raises(RemoteUnavailableError):
            oracle.remote_revision("https://x/a", "main")
        git.set_output("ls-remote:https://x/a#main", LS_REMOTE)
        assert oracle.remote_revision("https://x/a", "main") == "def456"
