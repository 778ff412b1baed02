"""Detect the ref a CI build is for from the build agent's environment.

Each provider exports the branch (or pull request) differently. The first
provider with a non-empty value wins; values are returned as the agent
reported them and left to refs.strip_known_prefixes to interpret.
"""

from __future__ import annotations

import os
from dataclasses import dataclass
from typing import Callable, Mapping, Optional, Tuple


@dataclass(frozen=True)
class DetectedBranch:
    """Branch reported by a CI provider."""

    provider: str
    variable: str
    ref: str


def _plain(value: str) -> Optional[str]:
    return value.strip() or None


def _pull_request_number(value: str) -> Optional[str]:
    """Map a bare PR number to its merge ref; "false" and non-numbers mean no PR."""
    value = value.strip()
    if value.isdigit():
        return f"refs/pull/{value}/merge"
    return None


# (provider, variable, converter) in priority order
_SOURCES: Tuple[Tuple[str, str, Callable[[str], Optional[str]]], ...] = (
    ("GitHub Actions", "GITHUB_REF", _plain),
    ("Azure Pipelines", "BUILD_SOURCEBRANCH", _plain),
    ("GitLab CI", "CI_COMMIT_REF_NAME", _plain),
    ("Travis CI", "TRAVIS_PULL_REQUEST", _pull_request_number),
    ("Travis CI", "TRAVIS_BRANCH", _plain),
    ("AppVeyor", "APPVEYOR_PULL_REQUEST_NUMBER", _pull_request_number),
    ("AppVeyor", "APPVEYOR_REPO_BRANCH", _plain),
    ("Bitbucket Pipelines", "BITBUCKET_BRANCH", _plain),
    ("Jenkins", "GIT_BRANCH", _plain),
    ("TeamCity", "TEAMCITY_BUILD_BRANCH", _plain),
)


def detect_current_branch(environ: Optional[Mapping[str, str]] = None) -> Optional[DetectedBranch]:
    """Return the branch the CI build is for, or None outside CI."""
    env = os.environ if environ is None else environ
    for provider, variable, convert in _SOURCES:
        raw = env.get(variable)
        if not raw:
            continue
        ref = convert(raw)
        if ref:
            return DetectedBranch(provider=provider, variable=variable, ref=ref)
    return None
