"""
Filesystem discovery of git working copies.

Walks each configured root breadth-first up to ``max_depth`` levels,
yielding a LocalRepo for every directory that holds a ``.git`` entry
(directory or gitfile). Found working copies are not descended into, and
well-known dependency and build directories are skipped.
"""

from __future__ import annotations

import logging
import os
from collections import deque
from collections.abc import Iterable, Iterator
from datetime import datetime, timezone
from pathlib import Path

from forksync.core.discover.models import LocalRepo
from forksync.core.discover.urls import key_from_url
from forksync.core.errors import ForkSyncError
from forksync.core.sync.git import GitClient

logger = logging.getLogger(__name__)

SKIP_DIRS = frozenset(
    {"node_modules", "target", "vendor", ".git", "__pycache__", ".venv", "venv"}
)


def _last_modified(path: Path) -> datetime:
    """Newest mtime among the checkout, its HEAD and its index."""
    candidates = [path, path / ".git", path / ".git" / "HEAD", path / ".git" / "index"]
    mtimes = []
    for candidate in candidates:
        try:
            mtimes.append(candidate.stat().st_mtime)
        except OSError:
            continue
    return datetime.fromtimestamp(max(mtimes, default=0.0), tz=timezone.utc)


class LocalScanner:
    """
    Lazy scanner over one or more filesystem roots.

    Args:
        roots: Directories to search
        max_depth: Directory levels below each root to search (0 = root only)
        known_domains: Registered host domains; keys on any other host are
            tagged ``unknown_host``. None treats every host as known.
        git_timeout: Timeout for each git query
    """

    def __init__(
        self,
        roots: Iterable[Path],
        max_depth: int = 4,
        known_domains: Iterable[str] | None = None,
        git_timeout: int = 30,
    ) -> None:
        self.roots = [Path(r).expanduser() for r in roots]
        self.max_depth = max_depth
        self.known_domains = (
            {d.lower() for d in known_domains} if known_domains is not None else None
        )
        self.git_timeout = git_timeout

    def __iter__(self) -> Iterator[LocalRepo]:
        return self.scan()

    def scan(self) -> Iterator[LocalRepo]:
        """Yield working copies in a stable order; each call rescans from disk."""
        seen: set[Path] = set()
        for root in self.roots:
            if not root.is_dir():
                logger.warning("Scan path %s is not a directory, skipping", root)
                continue
            for path in self._walk(root):
                resolved = path.resolve()
                if resolved in seen:
                    continue
                seen.add(resolved)
                yield self.describe(path)

    def _walk(self, root: Path) -> Iterator[Path]:
        queue: deque[tuple[Path, int]] = deque([(root, 0)])
        while queue:
            directory, depth = queue.popleft()
            if (directory / ".git").exists():
                yield directory
                continue
            if depth >= self.max_depth:
                continue
            try:
                entries = sorted(os.scandir(directory), key=lambda e: e.name)
            except OSError as e:
                logger.debug("Cannot list %s: %s", directory, e)
                continue
            for entry in entries:
                if entry.name in SKIP_DIRS:
                    continue
                if entry.is_dir(follow_symlinks=False):
                    queue.append((Path(entry.path), depth + 1))

    def describe(self, path: Path) -> LocalRepo:
        """Read origin and dirty state of one working copy."""
        git = GitClient(path, timeout=self.git_timeout)
        try:
            remote_url = git.remote_url("origin")
            dirty = git.is_dirty()
        except ForkSyncError as e:
            logger.warning("Cannot inspect %s: %s", path, e)
            remote_url, dirty = None, False

        key = key_from_url(remote_url)
        unknown_host = key is not None and (
            self.known_domains is not None and key.host not in self.known_domains
        )
        return LocalRepo(
            path=path.resolve(),
            remote_url=remote_url,
            key=key,
            modified_at=_last_modified(path),
            dirty=dirty,
            unknown_host=unknown_host,
        )
