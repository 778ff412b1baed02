"""Fetch coordinator: bring every remote's branches and PR merge refs local.

Remote-tracking refs and tags are written here; local branches are left to
the aligner. A failed fetch is fatal and never retried.
"""

from __future__ import annotations

from typing import List, Optional

from git import GitCommandError, Repo

from .config_schema import FetchConfig
from .credentials import AuthenticationInfo, git_environment
from .errors import FetchError, describe_git_error
from .observability import log_debug, log_error, log_info, log_warning
from .refs import is_shallow, remote_names


def fetch_refspecs(remote: str, *, pull_requests: bool = True, tags: bool = False) -> List[str]:
    """Refspecs mirroring remote branches and PR merge refs under refs/remotes/<remote>/.

    Tags are force-updated: a tag re-pointed upstream (e.g. "latest") is
    followed instead of rejected as "would clobber existing tag".
    """
    refspecs = [f"+refs/heads/*:refs/remotes/{remote}/*"]
    if pull_requests:
        refspecs.append(f"+refs/pull/*/merge:refs/remotes/{remote}/pull/*/merge")
    if tags:
        refspecs.append("+refs/tags/*:refs/tags/*")
    return refspecs


def _fetch_remote(
    repo: Repo,
    remote: str,
    env: dict,
    config: FetchConfig,
    unshallow: bool,
) -> None:
    args: List[str] = []
    if unshallow:
        args.append("--unshallow")
    args.append(remote)
    args.extend(fetch_refspecs(remote, pull_requests=config.pull_requests, tags=config.tags))

    kwargs = {}
    if config.timeout is not None:
        kwargs["kill_after_timeout"] = config.timeout

    log_debug("GIT_OP_START: fetch", remote=remote, args=args)
    with repo.git.custom_environment(**env):
        repo.git.fetch(*args, **kwargs)
    log_debug("GIT_OP_END: fetch", remote=remote)


def fetch(
    repo: Repo,
    authentication: Optional[AuthenticationInfo] = None,
    config: Optional[FetchConfig] = None,
) -> List[str]:
    """Fetch all branches (and PR merge refs) from every configured remote.

    Returns:
        Names of the remotes fetched, in order

    Raises:
        FetchError: If any remote fails to fetch
    """
    config = config or FetchConfig()
    remotes = remote_names(repo)
    if not remotes:
        log_warning("Repository has no remotes; nothing to fetch", path=repo.working_dir)
        return []

    # --unshallow is only valid once; the first fetch deepens the whole repo
    unshallow = config.unshallow and is_shallow(repo)
    if unshallow:
        log_info("Repository is a shallow clone; fetching full history")

    fetched: List[str] = []
    with git_environment(authentication) as env:
        for remote in remotes:
            log_info(f"Fetching from remote '{remote}'")
            try:
                _fetch_remote(repo, remote, env, config, unshallow)
            except GitCommandError as e:
                stderr = describe_git_error(e)
                log_error("Fetch failed", remote=remote, status=e.status, stderr=stderr)
                raise FetchError(
                    f"Failed to fetch from remote '{remote}': {stderr}",
                    remote=remote,
                    stderr=stderr,
                ) from e
            unshallow = False
            fetched.append(remote)
    return fetched
