# git.py
# Small, focused wrapper around the Git CLI.
# The hygiene scanners use it to enumerate tracked files; nothing else in the
# codebase calls subprocess("git ...") directly.

from __future__ import annotations

import subprocess
from pathlib import Path
from typing import List, Optional


def _git(args: list[str], cwd: Optional[str | Path] = None) -> str:
    """
    Execute a git command and return its stdout as a clean string.

    This is the single low-level entry point for all Git operations in this file.

    Args:
        args: List of git arguments (e.g. ["ls-files"])
        cwd: Optional working directory in which to run the git command.

    Returns:
        Stdout from the git command with surrounding whitespace removed.

    Raises:
        subprocess.CalledProcessError: git exited non-zero
        FileNotFoundError: git is not installed
    """
    out = subprocess.check_output(
        ["git", *args],
        cwd=str(cwd) if cwd is not None else None,
        text=True,
        stderr=subprocess.DEVNULL,
    )
    return out.strip()


def is_work_tree(path: str | Path) -> bool:
    """
    True if `path` is inside a Git work tree and git is available.

    A missing git binary is treated the same as "not a repository" so callers
    can fall back to walking the filesystem.
    """
    try:
        return _git(["rev-parse", "--is-inside-work-tree"], cwd=path) == "true"
    except (subprocess.CalledProcessError, FileNotFoundError, NotADirectoryError):
        return False


def tracked_files(root: str | Path) -> List[str]:
    """
    Return tracked files under `root`, relative to `root`, with "/" separators.

    Untracked-but-not-ignored files are included too: a pre-change hook must
    see files that are about to be added.
    """
    # -z keeps odd filenames intact; --others/--exclude-standard adds new files
    out = subprocess.check_output(
        ["git", "ls-files", "-z", "--cached", "--others", "--exclude-standard"],
        cwd=str(root),
        stderr=subprocess.DEVNULL,
    )
    names = {n for n in out.decode("utf-8", "surrogateescape").split("\0") if n}
    # deleted-but-still-indexed files would fail to open later
    return sorted(n for n in names if (Path(root) / n).is_file())
