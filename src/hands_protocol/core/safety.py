"""Pattern-based safety gate for commands and file writes.

These checks block known-bad patterns only. They are an advisory blocklist,
not a sandbox, and offer no protection against novel bypasses.
"""

import os
import posixpath
import re
from dataclasses import dataclass
from pathlib import Path

from hands_protocol.core.rules import SafetyRules

_DRIVE_PATH = re.compile(r"^[A-Za-z]:/")


class SafetyBlock(Exception):
    """Raised when a step is refused by the safety policy."""

    kind = "SafetyBlock"


@dataclass(frozen=True)
class SafetyVerdict:
    safe: bool
    reason: str | None = None


def normalize_path(path: str | Path, base: str | Path | None = None) -> str:
    """Absolute, separator-normalized, case-folded form of ``path``.

    Drive-letter paths are kept as-is so Windows entries compare the same way
    on every platform.
    """
    text = os.path.expanduser(str(path)).replace("\\", "/")
    if not (text.startswith("/") or _DRIVE_PATH.match(text)):
        root = os.path.expanduser(str(base)) if base is not None else os.getcwd()
        text = root.replace("\\", "/").rstrip("/") + "/" + text
    normalized = posixpath.normpath(text)
    if normalized.startswith("//"):
        normalized = normalized[1:]
    return normalized.casefold()


def _is_within(target: str, directory: str) -> bool:
    """Whole-segment prefix match: '/usr' covers '/usr/bin' but not '/usrdata'."""
    return target == directory or target.startswith(directory.rstrip("/") + "/")


class SafetyGate:
    def __init__(self, rules: SafetyRules):
        self.rules = rules
        self._protected_dirs = tuple(normalize_path(d) for d in rules.protected_dirs)
        self._protected_files = tuple(f.casefold() for f in rules.protected_files)

    def check_command(self, command: str) -> SafetyVerdict:
        for pattern in self.rules.blocked_commands:
            if pattern.search(command or ""):
                return SafetyVerdict(
                    False, f"Blocked destructive command pattern ({pattern.pattern})."
                )
        return SafetyVerdict(True)

    def is_protected_path(self, path: str | Path, base: str | Path | None = None) -> bool:
        target = normalize_path(path, base)
        return any(_is_within(target, d) for d in self._protected_dirs)

    def is_protected_file(self, path: str | Path, base: str | Path | None = None) -> bool:
        target = normalize_path(path, base)
        name = posixpath.basename(target)
        for fragment in self._protected_files:
            if "/" in fragment:
                if target.endswith("/" + fragment) or f"/{fragment}/" in target:
                    return True
            elif fragment in name:
                return True
        return False

    def check_write(self, path: str | Path, base: str | Path | None = None) -> SafetyVerdict:
        if not str(path).strip():
            return SafetyVerdict(False, "Empty target path.")
        if self.is_protected_path(path, base):
            return SafetyVerdict(False, "Target directory is protected.")
        if self.is_protected_file(path, base):
            return SafetyVerdict(False, "Target filename is protected.")
        return SafetyVerdict(True)
