"""
Tests for the manifest parser and pinning recommendations.
"""

import textwrap
from pathlib import Path

import pytest

from pubsync.core.errors import LockParseError, NotFoundError
from pubsync.core.services.manifest_parser import (
    SUPPORTED_SHAPES,
    ManifestParser,
    ManifestState,
    parse_manifest,
    read_manifest,
)
from pubsync.core.services.recommendations import FLOATING_REFS, recommend

MANIFEST = textwrap.dedent("""\
    name: demo_app
    environment:
      sdk: ">=3.0.0 <4.0.0"
    dependencies:
      flutter:
        sdk: flutter
      pkg_a:
        git: https://x/a.git
      pkg_b:
        git:
          url: "https://x/b.git"
          ref: v1.2.0
          path: packages/b
        version: ^1.0.0
      http: ^1.0.0
    dev_dependencies:
      pkg_c:
        git:
          url: git@host:org/c.git  # internal mirror
          ref: develop
    flutter:
      uses-material-design: true
""")


# ── Supported shapes ────────────────────────────────────────────────


class TestShapes:
    def test_shapes_listed(self):
        assert SUPPORTED_SHAPES == ("git url shorthand", "git block")

    def test_full_manifest(self):
        deps = parse_manifest(MANIFEST)
        assert [d.name for d in deps] == ["pkg_a", "pkg_b", "pkg_c"]

    def test_shorthand_takes_default_ref(self):
        dep = parse_manifest(MANIFEST)[0]
        assert dep.url == "https://x/a.git"
        assert dep.ref == "main"
        assert dep.subdirectory is None

    def test_block(self):
        dep = parse_manifest(MANIFEST)[1]
        assert dep.url == "https://x/b.git"
        assert dep.ref == "v1.2.0"
        assert dep.subdirectory == "packages/b"

    def test_trailing_comment_stripped(self):
        dep = parse_manifest(MANIFEST)[2]
        assert dep.url == "git@host:org/c.git"
        assert dep.ref == "develop"

    def test_custom_default_ref(self):
        deps = parse_manifest(MANIFEST, default_ref="stable")
        assert deps[0].ref == "stable"
        assert deps[1].ref == "v1.2.0"

    def test_four_space_indent(self):
        text = "dependencies:\n    pkg_a:\n        git:\n            url: https://x/a\n            ref: v2\n"
        deps = parse_manifest(text)
        assert [(d.name, d.ref) for d in deps] == [("pkg_a", "v2")]


# ── What is ignored ─────────────────────────────────────────────────


class TestIgnored:
    def test_no_dependency_section(self):
        assert parse_manifest("name: demo_app\nflutter:\n  pkg_a:\n    git: https://x/a\n") == []

    def test_hosted_and_sdk(self):
        assert parse_manifest("dependencies:\n  http: ^1.0.0\n  flutter:\n    sdk: flutter\n") == []

    def test_block_without_url_dropped(self):
        assert parse_manifest("dependencies:\n  pkg_a:\n    git:\n      ref: main\n") == []

    def test_inline_mapping_dropped(self):
        assert parse_manifest("dependencies:\n  pkg_a:\n    git: {url: https://x/a}\n") == []

    def test_first_entry_wins(self):
        text = "dependencies:\n  pkg_a:\n    git: https://x/a\ndev_dependencies:\n  pkg_a:\n    git: https://x/other\n"
        deps = parse_manifest(text)
        assert len(deps) == 1
        assert deps[0].url == "https://x/a"

    def test_overrides_not_read(self):
        text = "dependency_overrides:\n  pkg_a:\n    git: https://x/a\n"
        assert parse_manifest(text) == []


class TestParserState:
    def test_walk(self):
        parser = ManifestParser()
        parser.feed("dependencies:")
        assert parser.state is ManifestState.IN_SECTION
        parser.feed("  pkg_a:")
        assert parser.state is ManifestState.IN_PACKAGE
        parser.feed("    git:")
        assert parser.state is ManifestState.IN_GIT
        parser.feed("      url: https://x/a")
        parser.feed("    version: ^1.0.0")
        assert parser.state is ManifestState.IN_PACKAGE
        parser.feed("flutter:")
        assert parser.state is ManifestState.OUTSIDE
        assert [d.name for d in parser.close()] == ["pkg_a"]

    def test_close_flushes_last_entry(self):
        parser = ManifestParser()
        for line in ("dependencies:", "  pkg_a:", "    git: https://x/a"):
            parser.feed(line)
        assert parser.dependencies == []
        assert [d.name for d in parser.close()] == ["pkg_a"]


class TestReadManifest:
    def test_reads_file(self, tmp_path: Path):
        path = tmp_path / "pubspec.yaml"
        path.write_text(MANIFEST)
        assert len(read_manifest(path)) == 3

    def test_missing(self, tmp_path: Path):
        with pytest.raises(NotFoundError):
            read_manifest(tmp_path / "pubspec.yaml")

    def test_undecodable_file(self, tmp_path: Path):
        path = tmp_path / "pubspec.yaml"
        path.write_bytes(b"dependencies:\n  \xff\xfe:\n")
        with pytest.raises(LockParseError, match="Cannot read"):
            read_manifest(path)


# ── Recommendations ─────────────────────────────────────────────────


class TestRecommend:
    def test_floating_refs(self):
        assert FLOATING_REFS == {"main", "master", "develop"}

    def test_warns_on_floating_branches(self):
        recos = recommend(parse_manifest(MANIFEST))
        assert [r.package for r in recos] == ["pkg_a", "pkg_c"]
        assert all(r.severity == "warn" for r in recos)
        assert recos[0].message == "Pin pkg_a to a specific tag or commit"
        assert "floating branch 'develop'" in recos[1].rationale

    def test_pinned_is_quiet(self):
        deps = parse_manifest("dependencies:\n  pkg_a:\n    git:\n      url: https://x/a\n      ref: 3f2c1ab\n")
        assert recommend(deps) == []
