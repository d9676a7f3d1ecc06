"""
Git command wrapper used by discovery and the fork-sync state machine.

Every invocation runs ``git`` as a subprocess with prompts disabled and a
C locale so stderr can be classified into the error taxonomy. Network
operations (clone, fetch, push) run through the injected RetryPolicy;
transient failures are retried, everything else surfaces immediately.
"""

from __future__ import annotations

import logging
import os
import shutil
import subprocess
from pathlib import Path

from forksync.core.errors import (
    AuthError,
    CloneError,
    ForkSyncError,
    GitCommandError,
    MergeConflictError,
    NetworkTransientError,
    NotFoundError,
    PushRejectedError,
)
from forksync.core.retry import RetryPolicy

logger = logging.getLogger(__name__)

DEFAULT_TIMEOUT = 600

_AUTH_MARKERS = (
    "authentication failed",
    "could not read username",
    "could not read password",
    "invalid username or password",
    "permission denied",
    "http basic: access denied",
    "returned error: 401",
    "returned error: 403",
)
_NOT_FOUND_MARKERS = ("repository not found", "does not appear to be a git repository")
_NETWORK_MARKERS = (
    "could not resolve host",
    "connection timed out",
    "connection refused",
    "connection reset",
    "operation timed out",
    "network is unreachable",
    "early eof",
    "the remote end hung up",
    "failed to connect",
    "couldn't connect",
    "returned error: 5",
    "gnutls",
    "ssl",
)
_PUSH_REJECTED_MARKERS = (
    "[rejected]",
    "[remote rejected]",
    "non-fast-forward",
    "stale info",
    "fetch first",
)


def classify_git_error(
    cmd: list[str], stderr: str, *, network: bool = False
) -> ForkSyncError:
    """
    Map a failed git command to an error kind.

    Only network operations are classified as auth/not-found/transient;
    a failed local command is always a GitCommandError.
    """
    text = stderr.lower()
    message = f"Git command failed: {' '.join(cmd)}"

    if "push" in cmd[1:2] and any(m in text for m in _PUSH_REJECTED_MARKERS):
        return PushRejectedError(f"Push rejected: {stderr.strip()}", command=cmd)
    if network:
        if any(m in text for m in _AUTH_MARKERS):
            return AuthError(f"Git authentication failed: {stderr.strip()}", command=cmd)
        if any(m in text for m in _NOT_FOUND_MARKERS):
            return NotFoundError(f"Remote repository not found: {stderr.strip()}", command=cmd)
        if any(m in text for m in _NETWORK_MARKERS):
            return NetworkTransientError(f"Git network error: {stderr.strip()}", command=cmd)
    return GitCommandError(message, command=cmd, stderr=stderr.strip())


class GitClient:
    """
    Git operations against one working copy.

    Example:
        >>> git = GitClient(Path("~/src/fork").expanduser())
        >>> git.ensure_remote("upstream", "https://github.com/upstream/project.git")
        >>> git.fetch("upstream")
        >>> git.ahead_behind("main", "upstream/main")
        (0, 3)
    """

    def __init__(
        self,
        repo_path: Path,
        *,
        timeout: int = DEFAULT_TIMEOUT,
        retry_policy: RetryPolicy | None = None,
    ) -> None:
        self.repo_path = Path(repo_path)
        self.timeout = timeout
        self._retry = retry_policy or RetryPolicy.no_retry()

    # ==========================================================================
    # Plumbing
    # ==========================================================================

    @staticmethod
    def _env() -> dict[str, str]:
        env = os.environ.copy()
        env["GIT_TERMINAL_PROMPT"] = "0"
        env["LC_ALL"] = "C"
        env.setdefault("GIT_SSH_COMMAND", "ssh -o BatchMode=yes")
        return env

    def _exec(
        self, args: list[str], *, cwd: Path | None = None, network: bool = False
    ) -> subprocess.CompletedProcess[str]:
        cmd = ["git"] + args
        logger.debug("Running git command: %s (in %s)", " ".join(cmd), cwd or self.repo_path)

        try:
            return subprocess.run(
                cmd,
                cwd=cwd or self.repo_path,
                capture_output=True,
                text=True,
                timeout=self.timeout,
                env=self._env(),
                check=False,
            )
        except subprocess.TimeoutExpired as e:
            if network:
                raise NetworkTransientError(f"Git command timed out: {' '.join(cmd)}") from e
            raise GitCommandError(f"Git command timed out: {' '.join(cmd)}", command=cmd) from e
        except FileNotFoundError as e:
            raise GitCommandError("git not found in PATH", command=cmd) from e

    def _run(
        self,
        args: list[str],
        *,
        check: bool = True,
        cwd: Path | None = None,
        network: bool = False,
    ) -> str:
        """
        Run a git command and return its stripped stdout.

        Raises:
            ForkSyncError: A classified error if the command fails and check=True
        """
        result = self._exec(args, cwd=cwd, network=network)
        if check and result.returncode != 0:
            stderr = "\n".join(
                s.strip() for s in (result.stderr, result.stdout) if s and s.strip()
            )
            raise classify_git_error(["git"] + args, stderr, network=network)
        return (result.stdout or "").strip()

    def _run_network(self, args: list[str], description: str, cwd: Path | None = None) -> str:
        return self._retry.call(
            self._run, args, cwd=cwd, network=True, description=description
        )

    # ==========================================================================
    # Inspection
    # ==========================================================================

    def is_working_copy(self) -> bool:
        return (self.repo_path / ".git").exists()

    def remote_url(self, name: str = "origin") -> str | None:
        result = self._exec(["config", "--get", f"remote.{name}.url"])
        if result.returncode != 0:
            return None
        return result.stdout.strip() or None

    def is_dirty(self, *, include_untracked: bool = False) -> bool:
        """True if tracked files (and optionally untracked ones) have changes."""
        args = ["status", "--porcelain"]
        if not include_untracked:
            args.append("--untracked-files=no")
        return bool(self._run(args))

    def rev_parse(self, ref: str) -> str | None:
        """Commit id for ``ref``, or None if it doesn't resolve."""
        result = self._exec(["rev-parse", "--verify", "--quiet", f"{ref}^{{commit}}"])
        if result.returncode != 0:
            return None
        return result.stdout.strip() or None

    def current_branch(self) -> str | None:
        result = self._exec(["symbolic-ref", "--short", "-q", "HEAD"])
        if result.returncode != 0:
            return None
        return result.stdout.strip() or None

    def has_local_branch(self, branch: str) -> bool:
        result = self._exec(["show-ref", "--verify", "--quiet", f"refs/heads/{branch}"])
        return result.returncode == 0

    def ahead_behind(self, local: str, upstream: str) -> tuple[int, int]:
        """
        Count commits unique to each side relative to their merge base.

        Returns:
            (ahead, behind): commits only on ``local``, commits only on ``upstream``
        """
        output = self._run(["rev-list", "--left-right", "--count", f"{local}...{upstream}"])
        left, _, right = output.partition("\t")
        if not right:
            left, _, right = output.partition(" ")
        try:
            return int(left), int(right)
        except ValueError as e:
            raise GitCommandError(f"Unexpected rev-list output: {output!r}") from e

    # ==========================================================================
    # Mutation
    # ==========================================================================

    @classmethod
    def clone(
        cls,
        url: str,
        dest: Path,
        *,
        branch: str | None = None,
        timeout: int = DEFAULT_TIMEOUT,
        retry_policy: RetryPolicy | None = None,
    ) -> GitClient:
        """
        Clone ``url`` into ``dest``.

        A partially created destination is removed before each retry and
        after a final failure.

        Raises:
            CloneError: If cloning fails for a non-transient reason or
                transient retries are exhausted
        """
        dest = Path(dest)
        if dest.exists() and any(dest.iterdir()):
            raise CloneError(f"Clone destination {dest} exists and is not empty", path=str(dest))
        dest.parent.mkdir(parents=True, exist_ok=True)

        client = cls(dest, timeout=timeout, retry_policy=retry_policy)
        args = ["clone", "--origin", "origin"]
        if branch:
            args += ["--branch", branch]
        args += [url, str(dest)]

        def attempt() -> str:
            if dest.exists():
                shutil.rmtree(dest)
            return client._run(args, cwd=dest.parent, network=True)

        try:
            client._retry.call(attempt, description=f"clone {url}")
        except ForkSyncError as e:
            if dest.exists():
                shutil.rmtree(dest, ignore_errors=True)
            raise CloneError(f"Failed to clone {url}: {e}", url=url, cause_kind=e.kind.value) from e
        return client

    def ensure_remote(self, name: str, url: str) -> bool:
        """
        Make remote ``name`` point at ``url``.

        Returns:
            True if the remote was added or repointed, False if already correct
        """
        current = self.remote_url(name)
        if current == url:
            return False
        if current is None:
            self._run(["remote", "add", name, url])
        else:
            self._run(["remote", "set-url", name, url])
        return True

    def fetch(self, remote: str, *, prune: bool = True) -> None:
        args = ["fetch", remote]
        if prune:
            args.insert(1, "--prune")
        self._run_network(args, f"fetch {remote}")

    def fetch_url(self, url: str, branch: str) -> str:
        """
        Fetch one branch from ``url`` into FETCH_HEAD without touching remotes.

        Returns:
            The fetched commit id
        """
        self._run_network(["fetch", "--no-tags", url, branch], f"fetch {url}")
        sha = self.rev_parse("FETCH_HEAD")
        if sha is None:
            raise GitCommandError(f"Fetched {branch} from {url} but FETCH_HEAD is missing")
        return sha

    def checkout(self, branch: str, *, start_point: str | None = None) -> None:
        """Check out ``branch``, creating it from ``start_point`` if it doesn't exist."""
        if self.has_local_branch(branch) or start_point is None:
            self._run(["checkout", "--quiet", branch])
        else:
            self._run(["checkout", "--quiet", "-b", branch, start_point])

    def merge_ff_only(self, ref: str) -> None:
        self._run(["merge", "--ff-only", "--quiet", ref])

    def merge(self, ref: str) -> None:
        """
        Merge ``ref`` into the current branch with a merge commit.

        On conflict the merge is aborted and the branch is left as it was.

        Raises:
            MergeConflictError: If the merge conflicts
        """
        original = self.rev_parse("HEAD")
        result = self._exec(["merge", "--no-edit", ref])
        if result.returncode == 0:
            return

        output = f"{result.stdout}\n{result.stderr}"
        self._exec(["merge", "--abort"])
        self._restore(original)
        if "CONFLICT" in output:
            raise MergeConflictError(f"Merge of {ref} conflicts; aborted", ref=ref)
        raise GitCommandError(
            f"Git command failed: git merge {ref}",
            command=["git", "merge", ref],
            stderr=output.strip(),
        )

    def rebase(self, onto: str) -> None:
        """
        Replay the current branch's own commits onto ``onto``.

        On conflict the rebase is aborted and the branch ref is restored to
        its exact original commit.

        Raises:
            MergeConflictError: If replaying a commit conflicts
        """
        original = self.rev_parse("HEAD")
        result = self._exec(["rebase", onto])
        if result.returncode == 0:
            return

        output = f"{result.stdout}\n{result.stderr}"
        self._exec(["rebase", "--abort"])
        self._restore(original)
        if "CONFLICT" in output or "could not apply" in output.lower():
            raise MergeConflictError(f"Rebase onto {onto} conflicts; aborted", ref=onto)
        raise GitCommandError(
            f"Git command failed: git rebase {onto}",
            command=["git", "rebase", onto],
            stderr=output.strip(),
        )

    def _restore(self, original: str | None) -> None:
        if original is not None and self.rev_parse("HEAD") != original:
            logger.warning("Restoring %s to %s", self.repo_path, original)
            self._run(["reset", "--hard", "--quiet", original])

    def push(self, remote: str, branch: str, *, expected_sha: str | None = None) -> None:
        """
        Push ``branch`` to ``remote``.

        With ``expected_sha`` the push uses --force-with-lease against that
        commit; otherwise only fast-forward pushes are accepted.

        Raises:
            PushRejectedError: If the remote refuses the update
        """
        args = ["push", remote, f"refs/heads/{branch}:refs/heads/{branch}"]
        if expected_sha is not None:
            args.insert(1, f"--force-with-lease=refs/heads/{branch}:{expected_sha}")
        self._run_network(args, f"push {remote} {branch}")
