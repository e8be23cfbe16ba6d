"""
Shared test fixtures and configuration.
"""

import textwrap
from pathlib import Path

import pytest

from pubsync.adapters.mock import MockAdapter
from pubsync.adapters.registry import AdapterRegistry
from pubsync.core.config.loader import Settings
from pubsync.core.models.project import Project

MANIFEST = textwrap.dedent("""\
    name: demo_app
    environment:
      sdk: ">=3.0.0 <4.0.0"
    dependencies:
      flutter:
        sdk: flutter
""")

LOCK = textwrap.dedent("""\
    # Generated by pub
    # See https://dart.dev/tools/pub/glossary#lockfile
    packages:
      pkg_a:
        dependency: "direct main"
        description:
          path: "."
          ref: main
          resolved-ref: abc123
          url: "https://x/a"
        source: git
        version: "1.0.0"
      collection:
        dependency: transitive
        description:
          name: collection
          sha256: "ee67cb0715911d28db6bf4af1026078bd6f0128b07a5f66fb2ed94ec6783c09a"
          url: "https://pub.dev"
        source: hosted
        version: "1.18.0"
      pkg_b:
        dependency: "direct main"
        description:
          path: "."
          ref: develop
          resolved-ref: "def456abcdef"
          url: "https://x/b"
        source: git
        version: "0.2.0"
    sdks:
      dart: ">=3.0.0 <4.0.0"
""")


@pytest.fixture
def project(tmp_path: Path) -> Project:
    """A pub project with a manifest and a lock holding two git packages."""
    manifest = tmp_path / "pubspec.yaml"
    manifest.write_text(MANIFEST)
    (tmp_path / "pubspec.lock").write_text(LOCK)
    return Project(root_path=tmp_path, manifest_path=manifest)


@pytest.fixture
def lock_text() -> str:
    return LOCK


@pytest.fixture
def pub() -> MockAdapter:
    return MockAdapter(adapter_name="pub")


@pytest.fixture
def git() -> MockAdapter:
    return MockAdapter(adapter_name="git")


@pytest.fixture
def registry(pub: MockAdapter, git: MockAdapter) -> AdapterRegistry:
    """Registry whose pub and git tools are mocks."""
    reg = AdapterRegistry()
    reg.register(pub)
    reg.register(git)
    return reg


@pytest.fixture
def settings() -> Settings:
    return Settings()
