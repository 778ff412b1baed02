"""CLI tests - run ``python -m gitnormalize`` against real repositories."""
from __future__ import annotations

import json
import os
import subprocess
import sys
from pathlib import Path

SRC_DIR = Path(__file__).resolve().parents[1] / "src"


def _run(*args: str, **extra_env: str) -> subprocess.CompletedProcess[str]:
    """Run the gitnormalize CLI and capture output."""
    env = os.environ.copy()
    env["PYTHONPATH"] = os.pathsep.join(filter(None, [str(SRC_DIR), env.get("PYTHONPATH")]))
    env.update(extra_env)
    return subprocess.run(
        [sys.executable, "-m", "gitnormalize", *args],
        capture_output=True,
        text=True,
        env=env,
    )


def test_help_exits_zero():
    proc = _run("--help")
    assert proc.returncode == 0
    assert "--no-fetch" in proc.stdout
    assert "--current-branch" in proc.stdout


def test_summary_output(upstream, tmp_path):
    upstream.make_a_commit()
    upstream.create_branch("develop")
    local = upstream.clone(tmp_path / "local")

    proc = _run(str(local.path))

    assert proc.returncode == 0, proc.stderr
    assert "Fetched: origin" in proc.stdout
    assert "created  develop" in proc.stdout
    assert local.branch_tip("develop") == upstream.branch_tip("develop")
    local.close()


def test_json_output(upstream, tmp_path):
    upstream.make_a_commit()
    upstream.create_branch("develop")
    local = upstream.clone(tmp_path / "local")

    proc = _run(str(local.path), "--no-fetch", "--json")

    assert proc.returncode == 0, proc.stderr
    data = json.loads(proc.stdout)
    assert data["created"] == ["develop"]
    assert data["fetched_remotes"] == []
    assert data["changed"] is True
    assert data["final_head"]["branch"] == "master"
    local.close()


def test_pull_request_from_ci_environment(upstream, tmp_path):
    upstream.make_a_commit()
    upstream.checkout(upstream.create_branch("feature/foo"))
    upstream.make_a_commit()
    merge = upstream.create_pull_request_ref("feature/foo", "master", number=8)
    local = upstream.clone(tmp_path / "local")
    local.fetch("refs/pull/8/merge")
    local.detach("FETCH_HEAD")

    proc = _run(str(local.path), "--json", GITHUB_REF="refs/pull/8/merge")

    assert proc.returncode == 0, proc.stderr
    assert json.loads(proc.stdout)["pull_request_branch"] == "pull/8/merge"
    assert local.branch_tip("pull/8/merge") == merge.hexsha
    local.close()


def test_not_a_repository_exits_one(tmp_path):
    proc = _run(str(tmp_path))
    assert proc.returncode == 1
    assert "Normalization failed" in proc.stderr


def test_fetch_failure_exits_one(upstream, tmp_path):
    upstream.make_a_commit()
    local = upstream.clone(tmp_path / "local")
    local.repo.remote("origin").set_url(str(tmp_path / "missing.git"))

    proc = _run(str(local.path))

    assert proc.returncode == 1
    assert "Failed to fetch from remote 'origin'" in proc.stderr
    local.close()


def test_invalid_project_config_exits_two(upstream, tmp_path):
    upstream.make_a_commit()
    local = upstream.clone(tmp_path / "local")
    config_dir = local.path / ".gitnormalize"
    config_dir.mkdir()
    (config_dir / "config.toml").write_text("[fetch]\ntimeout = -1\n", encoding="utf-8")

    proc = _run(str(local.path))

    assert proc.returncode == 2
    assert "Configuration error" in proc.stderr
    local.close()


def test_attach_head_flag(upstream, tmp_path):
    upstream.make_a_commit()
    upstream.create_branch("develop")
    local = upstream.clone(tmp_path / "local")
    local.detach("origin/develop")
    local.create_branch("develop", "origin/develop")

    proc = _run(str(local.path), "--no-fetch", "--attach-head", "--current-branch", "develop", "--json")

    assert proc.returncode == 0, proc.stderr
    assert json.loads(proc.stdout)["final_head"]["branch"] == "develop"
    assert local.active_branch == "develop"
    local.close()
