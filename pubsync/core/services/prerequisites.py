"""
Prerequisites — are git and a pub tool installed, and if not, how to get them.
"""

from __future__ import annotations

import logging
import sys
from dataclasses import dataclass, field

from pubsync.adapters.registry import AdapterRegistry
from pubsync.core.errors import ToolMissingError

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ToolInfo:
    """Where to get a tool, per platform."""

    name: str
    url: str
    commands: dict[str, str] = field(default_factory=dict)


TOOLS: dict[str, ToolInfo] = {
    "git": ToolInfo(
        name="git",
        url="https://git-scm.com/downloads",
        commands={
            "win32": "winget install Git.Git",
            "darwin": "brew install git",
            "linux": "sudo apt-get install git",
        },
    ),
    "dart": ToolInfo(
        name="dart",
        url="https://dart.dev/get-dart",
        commands={
            "win32": "winget install Dart.DartSDK",
            "darwin": "brew install dart",
            "linux": "sudo apt-get install dart",
        },
    ),
    "flutter": ToolInfo(
        name="flutter",
        url="https://flutter.dev/docs/get-started/install",
        commands={
            "win32": "winget install Google.Flutter",
            "darwin": "brew install --cask flutter",
            "linux": "sudo snap install flutter --classic",
        },
    ),
}


def install_hint(tool: str, platform: str | None = None) -> str:
    """Install command for ``tool`` on this platform, else its download page."""
    info = TOOLS.get(tool)
    if info is None:
        return f"install {tool} and make sure it is on PATH"
    platform = platform or sys.platform
    key = "linux" if platform.startswith("linux") else platform
    command = info.commands.get(key)
    if command:
        return f"{command} (or see {info.url})"
    return f"see {info.url}"


def check_tools(registry: AdapterRegistry) -> dict[str, bool]:
    """Availability of every adapter pubsync needs."""
    return {
        "pub": registry.is_available("pub"),
        "git": registry.is_available("git"),
    }


def ensure_tools(
    registry: AdapterRegistry,
    pub_tools: list[str] | tuple[str, ...] = ("dart", "flutter"),
    require_git: bool = True,
) -> None:
    """Raise for the first required tool that is missing.

    Raises:
        ToolMissingError: With a platform-specific install hint.
    """
    status = check_tools(registry)

    if not status["pub"]:
        wanted = pub_tools[0] if pub_tools else "dart"
        logger.error("No pub tool found (tried: %s)", ", ".join(pub_tools))
        raise ToolMissingError(" or ".join(pub_tools) or wanted, install_hint(wanted))

    if require_git and not status["git"]:
        logger.error("git not found on PATH")
        raise ToolMissingError("git", install_hint("git"))
