"""Checkout restorer.

Leaves HEAD where normalization found it. The one exception is the branch
HEAD is attached to: when the aligner defers its update, HEAD is detached
onto the original commit, the branch is moved, and HEAD is re-attached so
the working tree shows the new tip.
"""

from __future__ import annotations

from typing import Iterable, List, Optional

from git import GitCommandError, Repo

from .branches import Deferred, reset_branch
from .errors import BranchUpdateError, HeadMovedError, UnsafeBranchUpdateError, describe_git_error
from .observability import log_debug, log_info, log_warning
from .refs import HeadPosition, capture_head, remote_names, strip_known_prefixes

# Preferred when several branches point at a detached HEAD
MAINLINE_BRANCHES = ("main", "master")


def _checkout(repo: Repo, *args: str) -> None:
    try:
        repo.git.checkout(*args)
    except GitCommandError as e:
        target = args[-1] if args else ""
        raise BranchUpdateError(
            f"Could not check out '{target}': {describe_git_error(e)}",
            branch=target,
        ) from e


def apply_deferred_update(repo: Repo, original: HeadPosition, deferred: Deferred) -> None:
    """Detach, move the checked-out branch, re-attach.

    Raises:
        UnsafeBranchUpdateError: If ``deferred`` is not for the branch HEAD was on
        BranchUpdateError: If git rejects any of the three steps. When the
            final checkout fails (e.g. local edits conflict with the new tip)
            the branch is moved back and HEAD re-attached before raising.
    """
    if original.branch != deferred.branch:
        raise UnsafeBranchUpdateError(
            f"Deferred update for '{deferred.branch}' but HEAD was {original.describe()}"
        )

    current = capture_head(repo)
    if current.branch != deferred.branch:
        raise UnsafeBranchUpdateError(
            f"Deferred update for '{deferred.branch}' but HEAD is now {current.describe()}"
        )

    log_info(
        f"Updating checked-out branch '{deferred.branch}'",
        old=original.sha,
        new=deferred.target_sha,
    )
    _checkout(repo, "--detach", original.sha)
    reset_branch(repo, deferred.branch, deferred.target_sha)
    try:
        _checkout(repo, deferred.branch)
    except BranchUpdateError:
        # HEAD is still detached at original.sha; put the branch back and re-attach
        log_warning(
            f"Could not check out updated branch '{deferred.branch}'; restoring it",
            sha=original.sha,
        )
        reset_branch(repo, deferred.branch, original.sha)
        _checkout(repo, deferred.branch)
        raise


def restore_checkout(
    repo: Repo,
    original: HeadPosition,
    deferred: Optional[Deferred] = None,
) -> HeadPosition:
    """Return HEAD to the caller's logical checkout.

    Without a deferred update nothing is touched: HEAD keeps its branch or
    detached commit. With one, the two-phase update is applied.

    Returns:
        The HEAD position after restoring
    """
    if deferred is None:
        log_debug(f"Leaving HEAD {original.describe()}")
        return capture_head(repo)

    apply_deferred_update(repo, original, deferred)
    return capture_head(repo)


def _branches_at(repo: Repo, sha: str) -> List[str]:
    return sorted(head.name for head in repo.heads if head.commit.hexsha == sha)


def choose_branch_for_detached_head(
    candidates: List[str],
    current_branch: Optional[str] = None,
    remotes: Iterable[str] = (),
) -> Optional[str]:
    """Pick which of the branches at HEAD's commit to attach to.

    Order: the branch the caller named, the only candidate, a mainline
    branch, then the single candidate without '/' or '-' in its name.
    """
    if not candidates:
        return None

    wanted = strip_known_prefixes(current_branch, remotes)
    if wanted and wanted in candidates:
        return wanted
    if len(candidates) == 1:
        return candidates[0]

    log_warning(
        "Found more than one local branch pointing at HEAD; "
        "move one of the branches along a commit to remove this warning",
        candidates=candidates,
    )
    for mainline in MAINLINE_BRANCHES:
        if mainline in candidates:
            return mainline

    plain = [name for name in candidates if "/" not in name and "-" not in name]
    if len(plain) == 1:
        return plain[0]
    return None


def attach_detached_head(repo: Repo, current_branch: Optional[str] = None) -> HeadPosition:
    """Attach a detached HEAD to a local branch at the same commit.

    HEAD's commit never changes; if no branch is a clear choice HEAD stays
    detached.
    """
    head = capture_head(repo)
    if not head.is_detached:
        return head

    choice = choose_branch_for_detached_head(
        _branches_at(repo, head.sha), current_branch, remote_names(repo)
    )
    if choice is None:
        log_warning(f"No single local branch to attach; HEAD stays {head.describe()}")
        return head

    log_info(f"Attaching HEAD to local branch '{choice}'", sha=head.sha)
    _checkout(repo, choice)
    return capture_head(repo)


def verify_head(repo: Repo, expected_sha: str, *, ignore: bool = False) -> HeadPosition:
    """Guard against normalization moving HEAD to another commit.

    Raises:
        HeadMovedError: If HEAD's commit is not ``expected_sha`` and ``ignore`` is false
    """
    head = capture_head(repo)
    if head.sha == expected_sha:
        return head
    if ignore:
        log_warning("HEAD moved during normalization; ignoring", expected=expected_sha, actual=head.sha)
        return head
    raise HeadMovedError(
        f"HEAD moved from {expected_sha} to {head.sha} during normalization; "
        "set GITNORMALIZE_IGNORE_HEAD_MOVE=1 to ignore",
        expected=expected_sha,
        actual=head.sha,
    )
