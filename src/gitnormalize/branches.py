"""Branch aligner: make every local branch match its remote-tracking tip.

Alignment is split in two. plan_branch_alignment reads refs and computes one
BranchAlignment record per branch without touching the repository.
apply_branch_alignment performs the writes. The branch HEAD is attached to
can't be force-updated in place, so its record comes back as a Deferred for
the checkout restorer to apply after detaching HEAD.

The remote is authoritative: a diverged local branch is reset, not merged.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Collection, Dict, Iterable, List, Optional, Tuple

from git import GitCommandError, Repo

from .errors import BranchUpdateError, describe_git_error
from .observability import log_debug, log_info, log_warning
from .refs import HeadPosition, local_branch_tips, parse_pull_request_number, remote_tracking_refs


class AlignmentAction(str, Enum):
    """What alignment does to one local branch."""

    UP_TO_DATE = "up_to_date"  # Local tip already equals remote tip
    CREATE = "create"  # No local branch yet
    RESET = "reset"  # Local tip differs, branch not checked out
    DEFERRED = "deferred"  # Local tip differs, branch is checked out


@dataclass(frozen=True)
class Deferred:
    """Update of the checked-out branch, applied after HEAD is detached."""

    branch: str
    target_sha: str


@dataclass(frozen=True)
class BranchAlignment:
    """Local and remote state of one branch name."""

    name: str
    remote_sha: str
    local_sha: Optional[str] = None
    is_head: bool = False
    source: str = ""  # e.g. "origin/develop"

    @property
    def action(self) -> AlignmentAction:
        if self.local_sha == self.remote_sha:
            return AlignmentAction.UP_TO_DATE
        if self.is_head:
            # Covers an unborn checked-out branch too
            return AlignmentAction.DEFERRED
        if self.local_sha is None:
            return AlignmentAction.CREATE
        return AlignmentAction.RESET

    def deferred(self) -> Deferred:
        return Deferred(branch=self.name, target_sha=self.remote_sha)


@dataclass
class AlignmentOutcome:
    """Writes made by apply_branch_alignment."""

    created: List[str] = field(default_factory=list)
    reset: List[str] = field(default_factory=list)
    deferred: Optional[Deferred] = None

    @property
    def changed(self) -> bool:
        return bool(self.created or self.reset or self.deferred)


def alignment_for(
    name: str,
    target_sha: str,
    head: HeadPosition,
    local_tips: Dict[str, str],
    *,
    source: str = "",
) -> BranchAlignment:
    """Build the alignment record for one branch name."""
    return BranchAlignment(
        name=name,
        remote_sha=target_sha,
        local_sha=local_tips.get(name),
        is_head=head.branch == name,
        source=source,
    )


def plan_branch_alignment(
    repo: Repo,
    head: HeadPosition,
    remotes: Iterable[str],
    *,
    primary_remote: Optional[str] = None,
    exclude: Collection[str] = (),
) -> List[BranchAlignment]:
    """Compute the alignment of every remote-tracking branch.

    When two remotes publish the same short name, the primary remote wins.
    Pull request merge refs are never aligned; only the PR being built gets
    a local branch, from materialize_pull_request_ref. Names in ``exclude``
    are skipped as well.

    Returns:
        Records sorted by branch name
    """
    ordered = list(remotes)
    # Primary remote last so its tips overwrite everyone else's
    if primary_remote in ordered:
        ordered.remove(primary_remote)
        ordered.append(primary_remote)

    targets: Dict[str, Tuple[str, str]] = {}
    for remote in ordered:
        for short, sha in remote_tracking_refs(repo, remote).items():
            if short in exclude or parse_pull_request_number(short) is not None:
                continue
            previous = targets.get(short)
            if previous is not None and previous[1] != sha:
                log_warning(
                    f"Branch '{short}' differs between remotes; using '{remote}'",
                    overridden=f"{previous[0]}/{short}",
                )
            targets[short] = (remote, sha)

    local_tips = local_branch_tips(repo)
    return [
        alignment_for(name, sha, head, local_tips, source=f"{remote}/{name}")
        for name, (remote, sha) in sorted(targets.items())
    ]


def create_branch(repo: Repo, name: str, sha: str) -> None:
    try:
        repo.git.branch(name, sha)
    except GitCommandError as e:
        raise BranchUpdateError(
            f"Could not create branch '{name}' at {sha}: {describe_git_error(e)}",
            branch=name,
        ) from e


def reset_branch(repo: Repo, name: str, sha: str) -> None:
    """Move an existing branch that is not checked out. Git refuses the checked-out one."""
    try:
        repo.git.branch("-f", name, sha)
    except GitCommandError as e:
        raise BranchUpdateError(
            f"Could not move branch '{name}' to {sha}: {describe_git_error(e)}",
            branch=name,
        ) from e


def apply_branch_alignment(repo: Repo, alignments: Iterable[BranchAlignment]) -> AlignmentOutcome:
    """Create and reset branches per plan; return the deferred update, if any.

    Each branch is an independent ref write. A failure leaves already
    aligned branches in place.

    Raises:
        BranchUpdateError: If git rejects a branch write
    """
    outcome = AlignmentOutcome()
    for alignment in alignments:
        action = alignment.action
        if action is AlignmentAction.UP_TO_DATE:
            continue
        if action is AlignmentAction.CREATE:
            log_info(f"Creating local branch '{alignment.name}' from {alignment.source or alignment.remote_sha}")
            create_branch(repo, alignment.name, alignment.remote_sha)
            outcome.created.append(alignment.name)
        elif action is AlignmentAction.RESET:
            log_info(
                f"Updating local branch '{alignment.name}' to {alignment.source or alignment.remote_sha}",
                old=alignment.local_sha,
                new=alignment.remote_sha,
            )
            reset_branch(repo, alignment.name, alignment.remote_sha)
            outcome.reset.append(alignment.name)
        else:
            log_debug(
                f"Deferring update of checked-out branch '{alignment.name}'",
                old=alignment.local_sha,
                new=alignment.remote_sha,
            )
            outcome.deferred = alignment.deferred()
    return outcome
