from __future__ import annotations

import logging
import os
import sys
from pathlib import Path

import pytest


def pytest_sessionstart(session):  # type: ignore[override]
    root = Path(__file__).resolve().parents[1]
    src = root / "src"
    if str(src) not in sys.path:
        sys.path.insert(0, str(src))
    # Ensure console scripts load in editable style as well
    os.environ.setdefault("PYTHONPATH", str(src))


# Variables that would leak a developer's or CI runner's setup into tests
_ISOLATED_ENV = (
    "GITNORMALIZE_REMOTE",
    "GITNORMALIZE_NO_FETCH",
    "GITNORMALIZE_FETCH_TAGS",
    "GITNORMALIZE_FETCH_PULL_REQUESTS",
    "GITNORMALIZE_FETCH_UNSHALLOW",
    "GITNORMALIZE_FETCH_TIMEOUT",
    "GITNORMALIZE_ATTACH_HEAD",
    "GITNORMALIZE_IGNORE_HEAD_MOVE",
    "GITNORMALIZE_LOG_LEVEL",
    "GITNORMALIZE_LOG_DIR",
    "GITNORMALIZE_USERNAME",
    "GITNORMALIZE_PASSWORD",
    "GITNORMALIZE_TOKEN",
    "GITHUB_TOKEN",
    "GH_TOKEN",
    "GITHUB_REF",
    "BUILD_SOURCEBRANCH",
    "CI_COMMIT_REF_NAME",
    "TRAVIS_PULL_REQUEST",
    "TRAVIS_BRANCH",
    "APPVEYOR_PULL_REQUEST_NUMBER",
    "APPVEYOR_REPO_BRANCH",
    "BITBUCKET_BRANCH",
    "GIT_BRANCH",
    "TEAMCITY_BUILD_BRANCH",
)


@pytest.fixture(autouse=True)
def isolated_environment(tmp_path_factory, monkeypatch):
    """Fresh HOME, no file logging, no inherited gitnormalize/CI variables."""
    home = tmp_path_factory.mktemp("home")
    monkeypatch.setenv("HOME", str(home))
    monkeypatch.setenv("GITNORMALIZE_LOG_DISABLE_FILE", "1")
    for name in _ISOLATED_ENV:
        monkeypatch.delenv(name, raising=False)

    from gitnormalize import observability

    observability._logger_initialized = False
    yield home
    logging.getLogger(observability.LOGGER_NAME).handlers.clear()
    observability._logger_initialized = False


@pytest.fixture
def upstream(tmp_path):
    """Empty upstream repository on an unborn master branch."""
    from gitnormalize.testing import RepositoryFixture

    fixture = RepositoryFixture.create(tmp_path / "upstream")
    yield fixture
    fixture.close()
