"""Pull request ref materializer.

CI systems building a pull request check out the server-synthesized merge
commit (refs/pull/<n>/merge), usually as a detached HEAD. This step turns
that into an ordinary local branch named exactly ``pull/<n>/merge``.
"""

from __future__ import annotations

from typing import Iterable, List, Optional, Tuple

from git import Repo

from .branches import AlignmentAction, BranchAlignment, alignment_for
from .errors import AmbiguousPullRequestRefError
from .observability import log_debug, log_info, log_warning
from .refs import (
    HeadPosition,
    local_branch_tips,
    parse_pull_request_number,
    pull_request_branch_name,
    remote_tracking_refs,
)


def _ordered_remotes(remotes: Iterable[str], primary_remote: Optional[str]) -> List[str]:
    ordered = list(remotes)
    if primary_remote in ordered:
        ordered.remove(primary_remote)
        ordered.insert(0, primary_remote)
    return ordered


def _pull_request_tips(repo: Repo, remotes: Iterable[str]) -> List[Tuple[int, str, str]]:
    """(number, remote, sha) for every remote-tracking PR merge ref."""
    tips = []
    for remote in remotes:
        for short, sha in remote_tracking_refs(repo, remote).items():
            number = parse_pull_request_number(short)
            if number is not None:
                tips.append((number, remote, sha))
    return tips


def detect_pull_request_number(
    repo: Repo,
    current_branch: Optional[str],
    head: HeadPosition,
    remotes: Iterable[str] = (),
) -> Optional[int]:
    """Work out which PR (if any) the checkout represents.

    Order: the caller's hint, HEAD's branch name, then (detached HEAD only)
    a remote PR merge ref whose tip is HEAD's commit.
    """
    hint = current_branch or head.branch
    if hint:
        number = parse_pull_request_number(hint)
        if number is not None:
            log_debug("Pull request detected from ref name", ref=hint, number=number)
            return number
        if current_branch:
            # The caller named a regular branch; don't second-guess it
            return None

    if not head.is_detached:
        return None

    matches = sorted({number for number, _, sha in _pull_request_tips(repo, remotes) if sha == head.sha})
    if not matches:
        return None
    if len(matches) > 1:
        log_warning(
            f"HEAD matches several pull request merge refs; using pull/{matches[0]}/merge",
            candidates=[pull_request_branch_name(n) for n in matches],
        )
    log_debug("Pull request detected from HEAD commit", sha=head.sha, number=matches[0])
    return matches[0]


def resolve_pull_request_target(
    repo: Repo,
    number: int,
    head: HeadPosition,
    *,
    fetched: bool,
    remotes: Iterable[str] = (),
    primary_remote: Optional[str] = None,
) -> Tuple[str, str]:
    """Pick the commit the PR branch should point at.

    After a fetch the remote-tracking merge ref is authoritative. Without a
    fetch the CI system has already checked out the merge commit, so HEAD
    wins.

    ``head`` without a commit only comes from direct callers; in the
    normalization pipeline capture_head raises InvalidHeadError first. Such
    a head falls back to the remote ref, or raises.

    Returns:
        (sha, description of where it came from)

    Raises:
        AmbiguousPullRequestRefError: If no commit backs the PR ref
    """
    branch = pull_request_branch_name(number)
    remote_match: Optional[Tuple[str, str]] = None
    for remote in _ordered_remotes(remotes, primary_remote):
        sha = remote_tracking_refs(repo, remote).get(branch)
        if sha:
            remote_match = (sha, f"{remote}/{branch}")
            break

    if not head.sha:
        if remote_match:
            return remote_match
        raise AmbiguousPullRequestRefError(
            f"Pull request ref '{branch}' has no remote-tracking ref and HEAD has no commit"
        )

    if fetched and remote_match:
        return remote_match
    return head.sha, "HEAD"


def materialize_pull_request_ref(
    repo: Repo,
    current_branch: Optional[str],
    head: HeadPosition,
    *,
    fetched: bool,
    remotes: Iterable[str] = (),
    primary_remote: Optional[str] = None,
) -> Optional[BranchAlignment]:
    """Plan the local ``pull/<n>/merge`` branch for a PR checkout.

    Returns:
        The alignment record for the PR branch, or None when the checkout is
        not a pull request. Apply it with branches.apply_branch_alignment.

    Raises:
        AmbiguousPullRequestRefError: If the PR has no backing commit
    """
    remotes = list(remotes)
    number = detect_pull_request_number(repo, current_branch, head, remotes)
    if number is None:
        return None

    branch = pull_request_branch_name(number)
    sha, source = resolve_pull_request_target(
        repo,
        number,
        head,
        fetched=fetched,
        remotes=remotes,
        primary_remote=primary_remote,
    )
    alignment = alignment_for(branch, sha, head, local_branch_tips(repo), source=source)
    if alignment.action is AlignmentAction.UP_TO_DATE:
        log_debug(f"Pull request branch '{branch}' already at {sha[:12]}")
    else:
        log_info(f"Materializing pull request branch '{branch}' from {source}", sha=sha)
    return alignment
