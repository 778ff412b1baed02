"""Exception hierarchy for git directory normalization.

Every failure raised by the normalization pipeline derives from
GitNormalizeError so callers can catch a single type. No step rolls back
work done by an earlier step: branches already written stay written.
"""

from __future__ import annotations

from typing import Optional


class GitNormalizeError(Exception):
    """Base exception for normalization failures."""
    pass


class RepositoryNotFoundError(GitNormalizeError):
    """Path does not exist or is not a git repository."""
    pass


class FetchError(GitNormalizeError):
    """Fetching from a remote failed (network or authentication)."""

    def __init__(self, message: str, *, remote: Optional[str] = None, stderr: str = ""):
        super().__init__(message)
        self.remote = remote
        self.stderr = stderr


class AmbiguousPullRequestRefError(GitNormalizeError):
    """A pull request merge ref was requested but no commit backs it."""
    pass


class UnsafeBranchUpdateError(GitNormalizeError):
    """Deferred update targets a branch that HEAD is not attached to.

    Internal assertion: the aligner only defers updates for the branch
    HEAD was attached to when normalization started.
    """
    pass


class InvalidHeadError(GitNormalizeError):
    """HEAD does not resolve to a commit (unborn branch)."""
    pass


class BranchUpdateError(GitNormalizeError):
    """Creating, resetting or checking out a branch failed."""

    def __init__(self, message: str, *, branch: Optional[str] = None):
        super().__init__(message)
        self.branch = branch


class HeadMovedError(GitNormalizeError):
    """HEAD ended on a different commit than normalization allows."""

    def __init__(self, message: str, *, expected: str, actual: str):
        super().__init__(message)
        self.expected = expected
        self.actual = actual


def describe_git_error(error: Exception) -> str:
    """Best-effort one-line reason from a GitCommandError (or any exception)."""
    stderr = (getattr(error, "stderr", "") or "").strip()
    if stderr.startswith("stderr:"):
        stderr = stderr[len("stderr:"):].strip().strip("'").strip()
    return stderr or str(error)
