"""Testing utilities.

Builds real git repositories through GitPython so normalization can be
exercised against the same ref layouts CI systems produce: an upstream
repository, clones of it, and server-side pull request merge refs.

Usage:
    from gitnormalize.testing import RepositoryFixture, mock_env_vars

    upstream = RepositoryFixture.create(tmp_path / "upstream")
    upstream.make_a_commit()
    upstream.checkout(upstream.create_branch("feature/foo"))
    merge = upstream.create_pull_request_ref("feature/foo", "master", number=3)
    local = upstream.clone(tmp_path / "local")
"""

from __future__ import annotations

import os
import uuid
from contextlib import contextmanager
from pathlib import Path
from typing import Dict, Optional

from git import Actor, Repo
from git.objects import Commit

TEST_ACTOR = Actor("gitnormalize tests", "tests@gitnormalize.invalid")
DEFAULT_BRANCH = "master"


@contextmanager
def mock_env_vars(**env_vars):
    """Temporarily set environment variables for testing.

    Saves current env vars, sets new values, then restores
    originals on exit. Setting value to None deletes the var.
    """
    old_env: Dict[str, Optional[str]] = {}

    try:
        for key, value in env_vars.items():
            old_env[key] = os.environ.get(key)
            if value is None:
                os.environ.pop(key, None)
            else:
                os.environ[key] = str(value)

        yield

    finally:
        for key, old_value in old_env.items():
            if old_value is None:
                os.environ.pop(key, None)
            else:
                os.environ[key] = old_value


def _configure_identity(repo: Repo) -> None:
    with repo.config_writer() as config:
        config.set_value("user", "name", TEST_ACTOR.name)
        config.set_value("user", "email", TEST_ACTOR.email)
        config.set_value("commit", "gpgsign", "false")
        config.set_value("advice", "detachedHead", "false")


class RepositoryFixture:
    """A working-directory repository with helpers for building history."""

    def __init__(self, repo: Repo):
        self.repo = repo

    @classmethod
    def create(cls, path: Path, *, initial_branch: str = DEFAULT_BRANCH) -> "RepositoryFixture":
        """Initialize an empty repository whose unborn HEAD is ``initial_branch``."""
        repo = Repo.init(path, mkdir=True)
        repo.git.symbolic_ref("HEAD", f"refs/heads/{initial_branch}")
        _configure_identity(repo)
        return cls(repo)

    @property
    def path(self) -> Path:
        return Path(self.repo.working_dir)

    @property
    def head_sha(self) -> str:
        return self.repo.head.commit.hexsha

    @property
    def is_detached(self) -> bool:
        return self.repo.head.is_detached

    @property
    def active_branch(self) -> Optional[str]:
        if self.repo.head.is_detached:
            return None
        return self.repo.active_branch.name

    def branch_tip(self, name: str) -> Optional[str]:
        """Tip sha of local branch ``name``, or None if it does not exist."""
        for head in self.repo.heads:
            if head.name == name:
                return head.commit.hexsha
        return None

    def local_branches(self) -> Dict[str, str]:
        return {head.name: head.commit.hexsha for head in self.repo.heads}

    def make_a_commit(self, message: Optional[str] = None) -> Commit:
        """Commit a new uniquely named file on whatever HEAD points at."""
        name = f"{uuid.uuid4().hex}.txt"
        return self.commit_file(name, f"{name}\n", message or f"Add {name}")

    def commit_file(self, name: str, content: str, message: Optional[str] = None) -> Commit:
        """Write ``content`` to ``name`` and commit it."""
        (self.path / name).write_text(content, encoding="utf-8")
        self.repo.index.add([name])
        return self.repo.index.commit(
            message or f"Update {name}",
            author=TEST_ACTOR,
            committer=TEST_ACTOR,
        )

    def make_a_tagged_commit(self, tag: str) -> Commit:
        commit = self.make_a_commit(f"Release {tag}")
        self.repo.create_tag(tag, ref=commit)
        return commit

    def create_branch(self, name: str, start: Optional[str] = None) -> str:
        if start:
            self.repo.git.branch(name, start)
        else:
            self.repo.git.branch(name)
        return name

    def checkout(self, ref: str) -> None:
        self.repo.git.checkout(ref)

    def detach(self, ref: str = "HEAD") -> None:
        self.repo.git.checkout("--detach", ref)

    def create_pull_request_ref(
        self,
        from_branch: str,
        to_branch: str,
        number: int = 2,
        *,
        allow_fast_forward: bool = False,
    ) -> Commit:
        """Publish ``refs/pull/<number>/merge`` the way a hosting service does.

        The merge of ``from_branch`` into ``to_branch`` is made on a detached
        HEAD so neither branch moves; HEAD returns to ``to_branch`` afterwards.
        """
        self.detach(to_branch)
        if allow_fast_forward:
            self.repo.git.merge(from_branch, "--ff")
        else:
            self.repo.git.merge(from_branch, "--no-ff", "-m", f"Merge pull request #{number}")
        commit = self.repo.head.commit
        self.repo.git.update_ref(f"refs/pull/{number}/merge", commit.hexsha)
        self.checkout(to_branch)
        return commit

    def clone(self, path: Path) -> "RepositoryFixture":
        """Clone this repository (remote name "origin")."""
        repo = Repo.clone_from(str(self.path), str(path))
        _configure_identity(repo)
        return RepositoryFixture(repo)

    def fetch(self, *refspecs: str, remote: str = "origin") -> None:
        self.repo.git.fetch(remote, *refspecs)

    def close(self) -> None:
        self.repo.close()
