# hygiene.py
"""
Tree-wide hygiene checks: encoding, line endings, forbidden markers.

Each scanner is a small stateless object satisfying the `Scanner` protocol.
They only read files, so they can run in parallel with each other and with
jobs. Output is sorted by path (then line), so scanning an unchanged tree
twice gives identical results.
"""
from __future__ import annotations

import os
import re
from dataclasses import dataclass
from fnmatch import fnmatch
from pathlib import Path
from typing import Dict, List, Protocol, Sequence, Tuple

from .git_facts.git import is_work_tree, tracked_files
from .model import HygieneViolation

DEFAULT_IGNORE: Tuple[str, ...] = (
    ".git/",
    "target/",
    "coverage/",
    ".venv/",
    "__pycache__/",
    "*.pyc",
)


class Scanner(Protocol):
    name: str

    def scan(self, root: Path, files: Sequence[str]) -> List[HygieneViolation]:
        ...


def matches_any(path: str, patterns: Sequence[str]) -> bool:
    """Prefix match for entries ending in "/", exact or glob match otherwise."""
    for p in patterns:
        if p.endswith("/"):
            if path.startswith(p) or ("/" + p) in ("/" + path):
                return True
        elif path == p or fnmatch(path, p):
            return True
    return False


def collect_files(root: str | Path, ignore: Sequence[str] = DEFAULT_IGNORE) -> List[str]:
    """
    Files to scan, relative to `root`, sorted.

    Uses git's view of the tree when `root` is a work tree, otherwise walks
    the filesystem.
    """
    root_p = Path(root)
    if is_work_tree(root_p):
        files = tracked_files(root_p)
    else:
        files = []
        for dirpath, dirnames, filenames in os.walk(root_p):
            dirnames.sort()
            rel_dir = Path(dirpath).relative_to(root_p).as_posix()
            for fn in filenames:
                files.append(fn if rel_dir == "." else f"{rel_dir}/{fn}")
    return sorted(f for f in files if not matches_any(f, ignore))


def _read(root: Path, rel: str) -> bytes:
    return (root / rel).read_bytes()


@dataclass(frozen=True)
class EncodingScanner:
    encoding: str = "utf-8"
    ignore: Tuple[str, ...] = ()
    name: str = "encoding"

    def scan(self, root: Path, files: Sequence[str]) -> List[HygieneViolation]:
        out: List[HygieneViolation] = []
        for rel in files:
            if matches_any(rel, self.ignore):
                continue
            try:
                _read(root, rel).decode(self.encoding)
            except UnicodeDecodeError as e:
                out.append(HygieneViolation(
                    check=self.name,
                    path=rel,
                    reason=f"not valid {self.encoding} (byte {e.start}: {e.reason})",
                ))
            except OSError as e:
                out.append(HygieneViolation(self.name, rel, f"unreadable: {e.strerror or e}"))
        return out


@dataclass(frozen=True)
class LineEndingScanner:
    """Only "\\n" terminators are allowed outside the allow-list."""
    allow: Tuple[str, ...] = ()
    name: str = "line-endings"

    def scan(self, root: Path, files: Sequence[str]) -> List[HygieneViolation]:
        out: List[HygieneViolation] = []
        for rel in files:
            if matches_any(rel, self.allow):
                continue
            try:
                data = _read(root, rel)
            except OSError as e:
                out.append(HygieneViolation(self.name, rel, f"unreadable: {e.strerror or e}"))
                continue
            if b"\r" not in data:
                continue
            bad = [i for i, line in enumerate(data.split(b"\n"), start=1) if b"\r" in line]
            out.append(HygieneViolation(
                check=self.name,
                path=rel,
                line=bad[0],
                reason=f"carriage return line terminator ({len(bad)} line(s))",
            ))
        return out


@dataclass(frozen=True)
class MarkerScanner:
    pattern: str = r"\bTODO\b"
    allow: Tuple[str, ...] = ()
    name: str = "markers"

    def scan(self, root: Path, files: Sequence[str]) -> List[HygieneViolation]:
        regex = re.compile(self.pattern)
        out: List[HygieneViolation] = []
        for rel in files:
            if matches_any(rel, self.allow):
                continue
            try:
                text = _read(root, rel).decode("utf-8", errors="replace")
            except OSError as e:
                out.append(HygieneViolation(self.name, rel, f"unreadable: {e.strerror or e}"))
                continue
            for idx, line in enumerate(text.splitlines(), start=1):
                m = regex.search(line)
                if m:
                    out.append(HygieneViolation(
                        check=self.name,
                        path=rel,
                        line=idx,
                        reason=f"forbidden marker {m.group(0)!r}: {line.strip()[:120]}",
                    ))
        return out


def run_scanners(
    scanners: Sequence[Scanner],
    root: str | Path,
    files: Sequence[str],
) -> Dict[str, List[HygieneViolation]]:
    """Run every scanner; never stops at the first finding."""
    root_p = Path(root)
    return {s.name: s.scan(root_p, files) for s in scanners}
