"""
Remote URL normalization.

Turns the many spellings of a clone URL into one comparable form,
``host/owner/name``:

    https://GitHub.com/Owner/Repo.git   -> github.com/owner/repo
    git@github.com:owner/repo.git       -> github.com/owner/repo
    ssh://git@host:2222/group/sub/repo  -> host/group/sub/repo
"""

from __future__ import annotations

import re

from forksync.core.models import RepoKey

_SCHEME_RE = re.compile(r"^[a-z][a-z0-9+.-]*://")
_SCP_RE = re.compile(r"^(?:[^@/]+@)?([^:/]+):(?!//)(.+)$")
_PORT_RE = re.compile(r":\d*$")


def normalize_remote_url(url: str) -> str | None:
    """
    Normalize a remote URL to ``host/path`` form.

    Lower-cases everything, strips the protocol, credentials, port,
    trailing slashes and a trailing ``.git``. SCP-style SSH remotes
    (``user@host:path``) become ``host/path``.

    Returns:
        The normalized form, or None for local paths and file:// remotes
    """
    s = url.strip().lower()
    if not s or s.startswith(("file://", "/", ".", "~")):
        return None

    if m := _SCHEME_RE.match(s):
        rest = s[m.end() :]
        authority, _, path = rest.partition("/")
        authority = authority.rpartition("@")[2]
        authority = _PORT_RE.sub("", authority)
        s = f"{authority}/{path}"
    elif m := _SCP_RE.match(s):
        s = f"{m.group(1)}/{m.group(2).lstrip('/')}"

    s = s.rstrip("/")
    if s.endswith(".git"):
        s = s[: -len(".git")]
    s = s.rstrip("/")

    return s or None


def key_from_url(url: str | None) -> RepoKey | None:
    """
    Parse a remote URL into a RepoKey.

    Everything between the host and the last path segment is the owner,
    which keeps GitLab subgroups intact.

    Example:
        >>> key_from_url("git@gitlab.com:group/sub/project.git")
        RepoKey(host='gitlab.com', owner='group/sub', name='project')
    """
    if not url:
        return None
    normalized = normalize_remote_url(url)
    if normalized is None:
        return None
    parts = [p for p in normalized.split("/") if p]
    if len(parts) < 3:
        return None
    return RepoKey(parts[0], "/".join(parts[1:-1]), parts[-1])
