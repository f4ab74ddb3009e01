"""
Static icon whitelist for prompts.

Icons are looked up in a fixed table keyed by name. Anything not in the
table (unknown names, paths, markup, import expressions) resolves to the
severity's default icon; names are never used to build a lookup of any
other kind.
"""
from __future__ import annotations

import logging
from enum import Enum
from typing import Final

logger = logging.getLogger(__name__)


class Severity(str, Enum):
    INFO = "info"
    WARNING = "warning"
    ERROR = "error"
    SUCCESS = "success"


ICON_NAMES: Final[frozenset[str]] = frozenset({
    # Status
    "Info", "TriangleAlert", "CircleAlert", "CircleCheckBig", "CircleX",
    # Security
    "Key", "KeyRound", "Lock", "LockOpen", "Shield", "ShieldCheck",
    "ShieldAlert", "FingerprintPattern", "UserCheck", "UserX",
    # Files
    "File", "FileText", "FileQuestionMark", "FilePlus", "FileMinus", "FileX",
    "Folder", "FolderOpen", "Upload", "Download", "Trash2", "Save", "Copy",
    "Clipboard",
    # Network
    "Wifi", "WifiOff", "Globe", "Server", "Database", "Link", "Unlink",
    "RefreshCw", "RotateCcw",
    # Misc
    "Settings", "CircleQuestionMark", "MessageSquare", "Bell", "BellOff",
    "Clock", "Timer", "Terminal", "Code", "Zap", "Power", "LogOut", "LogIn",
    "Eye", "EyeOff", "Search", "SquarePen", "Pencil", "Plus", "Minus", "X",
    "Check", "Ban", "LoaderCircle",
})

SEVERITY_ICONS: Final[dict[Severity, str]] = {
    Severity.INFO: "Info",
    Severity.WARNING: "TriangleAlert",
    Severity.ERROR: "CircleAlert",
    Severity.SUCCESS: "CircleCheckBig",
}

DEFAULT_ICON: Final[str] = "Info"

assert set(SEVERITY_ICONS.values()) <= ICON_NAMES
assert set(SEVERITY_ICONS) == set(Severity)


def is_valid_icon(name: object) -> bool:
    return isinstance(name, str) and name in ICON_NAMES


def resolve_prompt_icon(name: str | None, severity: Severity | str | None = None) -> str:
    """
    Pick the icon to show for a prompt.

    Args:
        name: Requested icon name (untrusted)
        severity: Prompt severity, used for the fallback

    Returns:
        A name from ICON_NAMES
    """
    if name is not None and is_valid_icon(name):
        return name
    if name:
        logger.debug("Rejected icon name %r, using severity default", str(name)[:50])

    try:
        level = Severity(severity) if severity is not None else Severity.INFO
    except ValueError:
        return DEFAULT_ICON
    return SEVERITY_ICONS[level]
