"""pubsync — keep git-sourced pub dependencies in sync with upstream."""

__version__ = "0.1.0"
