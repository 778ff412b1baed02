"""Ref name handling and repository position helpers.

Ref names reach the normalizer in many shapes: CI systems report
``refs/pull/3/merge``, ``ref/heads/develop`` (sic), ``heads/develop`` or a
bare ``develop``. All of them go through strip_known_prefixes before any
pattern test so the rest of the package only ever sees short names.
"""

from __future__ import annotations

import re
from dataclasses import dataclass
from pathlib import Path
from typing import Dict, Iterable, List, Optional

from git import Repo
from git.refs.remote import RemoteReference

from .errors import InvalidHeadError

# Leading namespaces tried in order; "ref/" is a typo some CI systems emit
_REF_PREFIXES = ("refs/", "ref/")
_HEADS_PREFIX = "heads/"
_REMOTES_PREFIX = "remotes/"

PULL_REQUEST_PATTERN = re.compile(r"pull/(\d+)/merge")
DEFAULT_REMOTE = "origin"


@dataclass(frozen=True)
class HeadPosition:
    """Where HEAD points: a branch name when attached, always the commit sha."""

    branch: Optional[str]
    sha: str

    @property
    def is_detached(self) -> bool:
        return self.branch is None

    def describe(self) -> str:
        if self.branch is None:
            return f"detached at {self.sha[:12]}"
        return f"branch '{self.branch}' at {self.sha[:12]}"


def strip_known_prefixes(ref: Optional[str], remotes: Iterable[str] = ()) -> str:
    """Reduce a ref name to its short branch name.

    Strips a leading ``refs/`` or ``ref/``, then ``heads/`` or
    ``remotes/<remote>/``. When ``remotes`` is given, a bare
    ``<remote>/<name>`` is stripped as well.

    Examples:
        refs/heads/develop -> develop
        ref/heads/develop -> develop
        refs/remotes/origin/feature/foo -> feature/foo
        refs/pull/3/merge -> pull/3/merge
    """
    if not ref:
        return ""
    name = ref.strip()
    for prefix in _REF_PREFIXES:
        if name.startswith(prefix):
            name = name[len(prefix):]
            break

    if name.startswith(_HEADS_PREFIX):
        return name[len(_HEADS_PREFIX):]
    if name.startswith(_REMOTES_PREFIX):
        rest = name[len(_REMOTES_PREFIX):]
        _, _, short = rest.partition("/")
        return short or rest
    for remote in remotes:
        if name.startswith(remote + "/"):
            return name[len(remote) + 1:]
    return name


def parse_pull_request_number(ref: Optional[str]) -> Optional[int]:
    """Return the PR number if ``ref`` names a pull request merge ref."""
    match = PULL_REQUEST_PATTERN.fullmatch(strip_known_prefixes(ref))
    if match is None:
        return None
    return int(match.group(1))


def is_pull_request_ref(ref: Optional[str]) -> bool:
    return parse_pull_request_number(ref) is not None


def pull_request_branch_name(number: int) -> str:
    return f"pull/{number}/merge"


def capture_head(repo: Repo) -> HeadPosition:
    """Record the current HEAD position before any mutation.

    Raises:
        InvalidHeadError: If HEAD does not point at a commit
    """
    try:
        sha = repo.head.commit.hexsha
    except ValueError as e:
        raise InvalidHeadError(f"HEAD does not point at a commit in {repo.working_dir}: {e}") from e

    if repo.head.is_detached:
        return HeadPosition(branch=None, sha=sha)
    return HeadPosition(branch=repo.active_branch.name, sha=sha)


def local_branch_tips(repo: Repo) -> Dict[str, str]:
    """Map local branch name to tip sha."""
    return {head.name: head.commit.hexsha for head in repo.heads}


def remote_names(repo: Repo) -> List[str]:
    return sorted(remote.name for remote in repo.remotes)


def primary_remote_name(repo: Repo, configured: Optional[str] = None) -> Optional[str]:
    """Pick the remote whose branches win when short names collide.

    Order: configured name (if it exists), "origin", then the first remote
    in sorted order. Returns None for a repository without remotes.
    """
    names = remote_names(repo)
    if configured and configured in names:
        return configured
    if DEFAULT_REMOTE in names:
        return DEFAULT_REMOTE
    return names[0] if names else None


def remote_tracking_refs(repo: Repo, remote: str) -> Dict[str, str]:
    """Map short branch name to tip sha for every ref under refs/remotes/<remote>/.

    The symbolic ``<remote>/HEAD`` is skipped.
    """
    tips: Dict[str, str] = {}
    for ref in RemoteReference.iter_items(repo, remote=remote):
        short = ref.remote_head
        if short == "HEAD":
            continue
        try:
            tips[short] = ref.commit.hexsha
        except ValueError:
            # Dangling ref left behind by an interrupted fetch
            continue
    return tips


def is_shallow(repo: Repo) -> bool:
    return (Path(repo.git_dir) / "shallow").exists()
