"""
Tests for the sync engine state machine.
"""

import json

import pytest

from pubsync.adapters.mock import MockAdapter
from pubsync.adapters.registry import AdapterRegistry
from pubsync.core.config.loader import Settings
from pubsync.core.engine.executor import (
    CancelToken,
    ExecutionReport,
    Phase,
    SyncEngine,
    generate_operation_id,
)
from pubsync.core.errors import PubSyncError
from pubsync.core.models.action import ActionResult
from pubsync.core.models.dependency import CloneSource, PackageSpec
from pubsync.core.persistence.journal import Journal

CONFLICT = "Because pkg_b requires http ^0.13.0, version solving failed."

A = PackageSpec(name="pkg_a", url="https://x/a")
B = PackageSpec(name="pkg_b", url="https://x/b", ref="develop")
C = PackageSpec(name="pkg_c", url="https://x/c")


def _engine(project, registry, specs, **kwargs) -> SyncEngine:
    settings = kwargs.pop("settings", Settings())
    return SyncEngine(project, specs, registry, settings, **kwargs)


def _kinds(events) -> list[str]:
    return [e.kind for e in events]


class FakeClock:
    def __init__(self):
        self.now = 0.0

    def __call__(self) -> float:
        return self.now


# ── Happy path ──────────────────────────────────────────────────────


class TestHappyPath:
    def test_full_run(self, project, registry, pub: MockAdapter):
        engine = _engine(project, registry, [A, B])
        events = list(engine)

        assert _kinds(events) == ["backup", "install", "install", "finalize", "done"]
        assert [e.phase for e in events] == [
            Phase.SETUP, Phase.INSTALL, Phase.INSTALL, Phase.FINALIZE, Phase.DONE,
        ]
        assert engine.phase is Phase.DONE
        assert engine.report.status == "ok"
        assert [c.action.id for c in pub.call_log] == ["pub-add:pkg_a", "pub-add:pkg_b", "pub-get"]

    def test_backup_before_first_install(self, project, registry):
        engine = _engine(project, registry, [A])
        first = engine.step()
        assert first.kind == "backup"
        assert engine.report.backup is not None
        assert engine.report.backup.backup_path.exists()
        assert engine.report.results == []

    def test_one_result_per_package(self, project, registry, pub: MockAdapter):
        pub.set_failure("pub-add:pkg_b", error="Could not resolve host")
        engine = _engine(project, registry, [A, B, C])
        engine.run()
        assert len(engine.report.results) == 3

    def test_iterator_stops_after_terminal(self, project, registry):
        engine = _engine(project, registry, [A])
        events = list(engine)
        assert events[-1].terminal
        with pytest.raises(StopIteration):
            next(engine)
        assert engine.step() is events[-1]

    def test_no_specs(self, project, registry, pub: MockAdapter):
        events = list(_engine(project, registry, []))
        assert _kinds(events) == ["backup", "finalize_skipped", "done"]
        assert pub.call_count == 0


# ── Partial failure ─────────────────────────────────────────────────


class TestPartialFailure:
    def test_failure_does_not_abort(self, project, registry, pub: MockAdapter):
        pub.set_failure("pub-add:pkg_a", error="Could not resolve host: x")
        engine = _engine(project, registry, [A, C])
        engine.run()

        report = engine.report
        assert report.failed == ["pkg_a"]
        assert report.succeeded == ["pkg_c"]
        assert report.status == "partial"
        assert report.finalize_result is not None

    def test_finalize_skipped_when_nothing_installed(self, project, registry, pub: MockAdapter):
        pub.set_failure("pub-add:pkg_a", error="boom")
        events = list(_engine(project, registry, [A]))

        assert "finalize_skipped" in _kinds(events)
        assert all(c.action.id != "pub-get" for c in pub.call_log)

    def test_summary_lists_every_package(self, project, registry, pub: MockAdapter):
        pub.set_failure("pub-add:pkg_a", error="boom")
        pub.set_failure("pub-add:pkg_b", error="failed", output=CONFLICT)
        engine = _engine(project, registry, [A, B, C])
        engine.run()

        summary = engine.report.summary()
        assert any(line.startswith("✗ pkg_a") for line in summary)
        assert any(line.startswith("⚠ pkg_b") for line in summary)
        assert "✓ pkg_c" in summary
        assert summary[-1] == "Unresolved conflicts: pkg_b"


# ── Fatal setup failures ────────────────────────────────────────────


class TestSetupFailures:
    def test_tool_missing(self, project, git: MockAdapter):
        registry = AdapterRegistry()
        registry.register(MockAdapter(adapter_name="pub", available=False))
        registry.register(git)
        engine = _engine(project, registry, [A])
        events = list(engine)

        assert len(events) == 1
        assert events[0].kind == "failed"
        assert engine.phase is Phase.FAILED
        assert "dart" in engine.report.error
        assert events[0].data["install_hint"]
        assert list(project.root_path.glob("pubspec.yaml.bak.*")) == []

    def test_git_missing(self, project, pub: MockAdapter):
        registry = AdapterRegistry()
        registry.register(pub)
        registry.register(MockAdapter(adapter_name="git", available=False))
        engine = _engine(project, registry, [A])
        engine.run()

        assert engine.phase is Phase.FAILED
        assert "git" in engine.report.error
        assert pub.call_count == 0

    def test_backup_failure(self, project, registry, pub: MockAdapter):
        project.manifest_path.unlink()
        engine = _engine(project, registry, [A])
        engine.run()

        assert engine.phase is Phase.FAILED
        assert engine.report.status == "failed"
        assert pub.call_count == 0

    def test_duplicate_names_rejected(self, project, registry, pub: MockAdapter):
        twin = PackageSpec(name="pkg_a", url="https://x/other")
        with pytest.raises(PubSyncError, match="more than once: pkg_a"):
            _engine(project, registry, [A, B, twin])
        assert pub.call_count == 0
        assert list(project.root_path.glob("pubspec.yaml.bak.*")) == []


# ── Conflict resolution ─────────────────────────────────────────────


class TestConflicts:
    def test_reported_without_auto(self, project, registry, pub: MockAdapter):
        pub.set_failure("pub-add:pkg_b", error="failed", output=CONFLICT)
        engine = _engine(project, registry, [A, B])
        events = list(engine)

        assert _kinds(events) == [
            "backup", "install", "install", "conflicts_reported", "finalize", "done",
        ]
        assert engine.report.unresolved == ["pkg_b"]
        assert events[-2].data["unresolved"] == ["pkg_b"]
        assert not pub.calls_for("pub-add-override:pkg_b")

    def test_auto_resolve_success(self, project, registry, pub: MockAdapter):
        pub.set_failure("pub-add:pkg_b", error="failed", output=CONFLICT)
        engine = _engine(project, registry, [A, B], auto_resolve=True)
        events = list(engine)

        assert "resolution" in _kinds(events)
        results = engine.report.results
        assert len(results) == 3
        assert results[-1].data["resolution_of"] == "pkg_b"
        assert results[-1].data["attempt"] == 2
        assert engine.report.unresolved == []
        assert engine.report.status == "ok"

    def test_auto_resolve_single_retry(self, project, registry, pub: MockAdapter):
        pub.set_failure("pub-add:pkg_b", error="failed", output=CONFLICT)
        pub.set_failure("pub-add-override:pkg_b", error="failed", output=CONFLICT)
        engine = _engine(project, registry, [B], auto_resolve=True)
        engine.run()

        assert len(pub.calls_for("pub-add-override:pkg_b")) == 1
        assert engine.report.unresolved == ["pkg_b"]

    def test_settings_auto_resolve_default(self, project, registry, pub: MockAdapter):
        pub.set_failure("pub-add:pkg_b", error="failed", output=CONFLICT)
        engine = _engine(project, registry, [B], settings=Settings(auto_resolve=True))
        engine.run()
        assert len(pub.calls_for("pub-add-override:pkg_b")) == 1

    def test_interactive_waits(self, project, registry, pub: MockAdapter):
        pub.set_failure("pub-add:pkg_b", error="failed", output=CONFLICT)
        engine = _engine(project, registry, [A, B], interactive=True)
        for _ in range(3):
            engine.step()

        waiting = engine.step()
        assert waiting.kind == "awaiting_resolution"
        assert waiting.data["conflicts"][0]["package"] == "pkg_b"
        assert engine.step().kind == "awaiting_resolution"
        assert engine.pending_conflicts == ["pkg_b"]

        resolved = engine.resolve("pkg_b", "override")
        assert resolved.result.ok
        assert engine.phase is Phase.FINALIZE
        assert _kinds(list(engine)) == ["finalize", "done"]

    def test_interactive_retry_keeps_conflict_pending(self, project, registry, pub: MockAdapter):
        pub.set_failure("pub-add:pkg_b", error="failed", output=CONFLICT)
        engine = _engine(project, registry, [B], interactive=True)
        while engine.step().kind != "awaiting_resolution":
            pass

        engine.resolve("pkg_b", "retry")
        assert engine.pending_conflicts == ["pkg_b"]
        engine.resolve("pkg_b", "skip")
        assert engine.pending_conflicts == []
        assert engine.report.skipped_conflicts == ["pkg_b"]

        events = list(engine)
        assert events[0].kind == "finalize_skipped"
        assert engine.report.unresolved == ["pkg_b"]

    def test_defer(self, project, registry, pub: MockAdapter):
        pub.set_failure("pub-add:pkg_b", error="failed", output=CONFLICT)
        engine = _engine(project, registry, [A, B], interactive=True)
        while engine.step().kind != "awaiting_resolution":
            pass

        event = engine.defer_conflicts()
        assert event.data["deferred"] == ["pkg_b"]
        assert engine.phase is Phase.FINALIZE

    def test_resolve_unknown(self, project, registry):
        engine = _engine(project, registry, [A], interactive=True)
        with pytest.raises(PubSyncError):
            engine.resolve("pkg_a", "override")

    def test_run_refuses_interactive(self, project, registry):
        with pytest.raises(PubSyncError):
            _engine(project, registry, [A], interactive=True).run()


# ── Clone source ────────────────────────────────────────────────────


class TestCloneSource:
    SOURCE = CloneSource(url="https://x/tools", ref="stable", destination="vendor/tools")

    def test_clone_runs_after_setup(self, project, registry, git: MockAdapter):
        engine = _engine(project, registry, [A], clone_source=self.SOURCE)
        events = list(engine)

        assert _kinds(events)[:3] == ["backup", "clone", "install"]
        ctx = git.calls_for("git-clone:vendor/tools")[0]
        assert ctx.params["ref"] == "stable"
        assert engine.report.clone_result.ok

    def test_clone_failure_non_fatal(self, project, registry, git: MockAdapter):
        git.set_failure("git-clone:vendor/tools", error="Repository not found")
        engine = _engine(project, registry, [A], clone_source=self.SOURCE)
        engine.run()

        assert not engine.report.clone_result.ok
        assert engine.report.succeeded == ["pkg_a"]
        assert engine.phase is Phase.DONE


# ── Cancellation ────────────────────────────────────────────────────


class TestCancellation:
    def test_cancel_between_steps(self, project, registry, pub: MockAdapter):
        token = CancelToken()
        engine = _engine(project, registry, [A, B], cancel_token=token)
        engine.step()  # backup
        engine.step()  # pkg_a
        token.cancel()

        event = engine.step()
        assert event.kind == "cancelled"
        assert event.terminal
        assert engine.phase is Phase.DONE
        assert engine.report.cancelled
        assert engine.report.status == "cancelled"
        assert [c.action.id for c in pub.call_log] == ["pub-add:pkg_a"]

    def test_deadline(self, project, registry):
        clock = FakeClock()
        token = CancelToken(timeout=30, clock=clock)
        engine = _engine(project, registry, [A], cancel_token=token)
        engine.step()
        clock.now = 31
        assert engine.step().kind == "cancelled"

    def test_timeouts_shrink_to_remaining(self, project, registry, pub: MockAdapter):
        clock = FakeClock()
        token = CancelToken(timeout=20, clock=clock)
        engine = _engine(project, registry, [A], cancel_token=token)
        engine.step()
        clock.now = 5
        engine.step()
        assert pub.call_log[0].action.timeout == 15

    def test_token_without_deadline(self):
        token = CancelToken()
        assert token.remaining() is None
        assert token.timeout(300) == 300
        assert not token.cancelled


# ── Dry run ─────────────────────────────────────────────────────────


class TestDryRun:
    def test_nothing_executes(self, project, registry, pub: MockAdapter):
        engine = _engine(project, registry, [A], settings=Settings(dry_run=True))
        engine.run()

        assert pub.call_count == 0
        assert engine.report.backup is None
        assert engine.report.results[0].ok
        assert list(project.root_path.glob("pubspec.yaml.bak.*")) == []
        assert not (project.root_path / ".pubsync").exists()


# ── Journal and report ──────────────────────────────────────────────


class TestJournalAndReport:
    def test_journal_written(self, project, registry):
        engine = _engine(project, registry, [A, B])
        engine.run()

        entries = Journal(project.root_path).read_all()
        ops = [(e.kind, e.operation) for e in entries]
        assert ops == [
            ("step", "backup"),
            ("step", "install"),
            ("step", "install"),
            ("step", "finalize"),
            ("run", "sync"),
        ]
        run = entries[-1]
        assert run.operation_id == engine.report.operation_id
        assert run.status == "ok"
        assert run.packages == {"pkg_a": "ok", "pkg_b": "ok"}
        assert run.backup_path == str(engine.report.backup.backup_path)

    def test_journal_disabled(self, project, registry):
        _engine(project, registry, [A], settings=Settings(journal=False)).run()
        assert not (project.root_path / ".pubsync").exists()

    def test_report_to_dict(self, project, registry):
        engine = _engine(project, registry, [A])
        engine.run()
        data = engine.report.to_dict()
        json.dumps(data)
        assert data["status"] == "ok"
        assert data["packages"] == ["pkg_a"]
        assert len(data["results"]) == 1

    def test_report_status_rules(self):
        report = ExecutionReport(packages=["a", "b"])
        report.results.append(ActionResult.success("", data={"package": "a"}))
        report.results.append(ActionResult.failure("x", data={"package": "b"}))
        assert report.status == "partial"
        report.results.append(ActionResult.success("", data={"package": "b"}))
        assert report.status == "ok"

    def test_operation_id_format(self):
        op_id = generate_operation_id()
        assert op_id.startswith("sync-")
        assert op_id != generate_operation_id()
