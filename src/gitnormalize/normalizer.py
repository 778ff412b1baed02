"""Normalize a CI checkout into a repository with well-formed local branches.

Pipeline (strictly sequential, no retries):

    FETCH (optional) -> MATERIALIZE_PR_REF -> ALIGN_BRANCHES -> RESTORE_CHECKOUT

Any GitNormalizeError aborts the remaining steps. Work already done is kept;
every branch write is a single atomic ref update, so a partial run leaves
the repository inspectable, not corrupted.

Concurrent calls against the same working directory are not safe; callers
run one normalization per checkout.
"""

from __future__ import annotations

from dataclasses import asdict, dataclass, field
from pathlib import Path
from typing import Any, Dict, List, Mapping, Optional, Union

from git import GitCommandError, InvalidGitRepositoryError, NoSuchPathError, Repo

from .branches import AlignmentOutcome, Deferred, apply_branch_alignment, plan_branch_alignment
from .checkout import attach_detached_head, restore_checkout, verify_head
from .config_schema import NormalizeConfig
from .credentials import AuthenticationInfo, coerce_authentication
from .errors import GitNormalizeError, RepositoryNotFoundError, describe_git_error
from .fetch import fetch
from .observability import log_debug, log_error, log_graph, log_info, timeit
from .pull_requests import materialize_pull_request_ref
from .refs import HeadPosition, capture_head, primary_remote_name, remote_names


@dataclass
class NormalizationResult:
    """What a normalization run did."""

    repository: str
    original_head: HeadPosition
    final_head: HeadPosition
    fetched_remotes: List[str] = field(default_factory=list)
    pull_request_branch: Optional[str] = None
    created: List[str] = field(default_factory=list)
    reset: List[str] = field(default_factory=list)
    deferred: Optional[Deferred] = None

    @property
    def fetched(self) -> bool:
        return bool(self.fetched_remotes)

    @property
    def changed(self) -> bool:
        """True if any local branch was written."""
        return bool(self.created or self.reset or self.deferred)

    def to_dict(self) -> Dict[str, Any]:
        data = asdict(self)
        data["changed"] = self.changed
        return data


def open_repository(repository_path: Union[str, Path]) -> Repo:
    """Open an existing, non-bare repository.

    Raises:
        RepositoryNotFoundError: If the path is missing, not a repository, or bare
    """
    try:
        repo = Repo(str(repository_path))
    except (InvalidGitRepositoryError, NoSuchPathError) as e:
        raise RepositoryNotFoundError(f"Not a git repository: {repository_path}") from e
    if repo.bare:
        repo.close()
        raise RepositoryNotFoundError(
            f"{repository_path} is a bare repository; a working directory is required"
        )
    return repo


def _merge_outcomes(first: AlignmentOutcome, second: AlignmentOutcome) -> AlignmentOutcome:
    return AlignmentOutcome(
        created=first.created + second.created,
        reset=first.reset + second.reset,
        deferred=first.deferred or second.deferred,
    )


def _normalize(
    repo: Repo,
    authentication: AuthenticationInfo,
    no_fetch: bool,
    current_branch: Optional[str],
    config: NormalizeConfig,
) -> NormalizationResult:
    original = capture_head(repo)
    log_info(f"Normalizing {repo.working_dir}; HEAD is {original.describe()}")

    if no_fetch:
        log_info(
            "Skipping fetch; local refs are assumed to be current. "
            "Allow fetching if downstream history looks incomplete."
        )
        fetched_remotes: List[str] = []
    else:
        fetched_remotes = fetch(repo, authentication, config.fetch)

    remotes = remote_names(repo)
    primary = primary_remote_name(repo, config.remote or None)

    pull_request = materialize_pull_request_ref(
        repo,
        current_branch,
        original,
        fetched=bool(fetched_remotes),
        remotes=remotes,
        primary_remote=primary,
    )
    pr_outcome = apply_branch_alignment(repo, [pull_request] if pull_request else [])

    alignments = plan_branch_alignment(
        repo,
        original,
        remotes,
        primary_remote=primary,
        exclude={pull_request.name} if pull_request else (),
    )
    outcome = _merge_outcomes(pr_outcome, apply_branch_alignment(repo, alignments))

    restore_checkout(repo, original, outcome.deferred)
    expected_sha = outcome.deferred.target_sha if outcome.deferred else original.sha

    if config.checkout.attach_detached_head:
        attach_detached_head(repo, current_branch)

    final = verify_head(repo, expected_sha, ignore=config.checkout.ignore_head_move)
    log_graph(repo)

    return NormalizationResult(
        repository=str(repo.working_dir),
        original_head=original,
        final_head=final,
        fetched_remotes=fetched_remotes,
        pull_request_branch=pull_request.name if pull_request else None,
        created=outcome.created,
        reset=outcome.reset,
        deferred=outcome.deferred,
    )


def normalize_git_directory(
    repository_path: Union[str, Path],
    authentication: Union[AuthenticationInfo, Mapping[str, Any], None] = None,
    no_fetch: bool = False,
    current_branch: Optional[str] = None,
    *,
    config: Optional[NormalizeConfig] = None,
) -> NormalizationResult:
    """Normalize the git working directory at ``repository_path``.

    Args:
        repository_path: Path to an existing git working directory
        authentication: Credentials for fetch; ignored when no_fetch is true
        no_fetch: Skip fetching and rely on refs already present
        current_branch: Ref the CI system reports as checked out (may be
            empty, a bare branch name, or a refs/ or ref/ path); used to
            detect pull request builds
        config: Settings; defaults when omitted

    Returns:
        NormalizationResult describing the run

    Raises:
        GitNormalizeError: On any failure; see gitnormalize.errors
    """
    config = config or NormalizeConfig()
    no_fetch = no_fetch or not config.fetch.enabled
    auth = coerce_authentication(None if no_fetch else authentication)

    with timeit("normalize", path=str(repository_path), no_fetch=no_fetch) as info:
        try:
            repo = open_repository(repository_path)
            try:
                result = _normalize(repo, auth, no_fetch, current_branch, config)
            finally:
                repo.close()
        except GitNormalizeError as e:
            log_error(f"Normalization failed: {e}", error=type(e).__name__)
            raise
        except GitCommandError as e:
            log_error(f"Normalization failed: {describe_git_error(e)}", command=e.command)
            raise GitNormalizeError(f"git command failed: {describe_git_error(e)}") from e

        info.update(
            created=len(result.created),
            reset=len(result.reset),
            deferred=result.deferred.branch if result.deferred else None,
            pull_request=result.pull_request_branch,
        )
        log_debug("Normalization result", **result.to_dict())
    return result
