#!/usr/bin/env python3
"""gitnormalize CLI - normalize a CI checkout before history-walking tools run."""
from __future__ import annotations

import argparse
import json
import sys
from pathlib import Path

# Fail fast on unsupported interpreter version
if sys.version_info < (3, 10):
    print(f"gitnormalize requires Python 3.10+; found {sys.version.split()[0]}", file=sys.stderr)
    sys.exit(1)

EXIT_OK = 0
EXIT_FAILED = 1
EXIT_CONFIG = 2


def _build_parser() -> argparse.ArgumentParser:
    ap = argparse.ArgumentParser(
        prog="gitnormalize",
        description="Normalize a CI git checkout so local branches track their remotes",
    )
    ap.add_argument("path", nargs="?", default=".", help="Repository working directory (default: .)")
    ap.add_argument("--no-fetch", action="store_true", help="Skip fetching; use refs already present")
    ap.add_argument(
        "--current-branch",
        help="Ref the CI build is for (default: detected from CI environment variables)",
    )
    ap.add_argument("--remote", help="Remote whose branches win on name collisions (default: origin)")

    auth = ap.add_argument_group("authentication")
    auth.add_argument("--username", help="Username for HTTP(S) remotes (or $GITNORMALIZE_USERNAME)")
    auth.add_argument("--password", help="Password for HTTP(S) remotes (or $GITNORMALIZE_PASSWORD)")
    auth.add_argument("--token", help="Access token (or $GITNORMALIZE_TOKEN / $GITHUB_TOKEN)")

    checkout = ap.add_argument_group("checkout")
    checkout.add_argument(
        "--attach-head",
        action="store_true",
        help="Attach a detached HEAD to a local branch at the same commit",
    )
    checkout.add_argument(
        "--ignore-head-move",
        action="store_true",
        help="Do not fail if HEAD ends on an unexpected commit",
    )

    output = ap.add_argument_group("output")
    output.add_argument("--log-level", choices=["DEBUG", "INFO", "WARNING", "ERROR"], help="Log level override")
    output.add_argument("-v", "--verbose", action="store_true", help="Show progress on stderr")
    output.add_argument("--json", action="store_true", help="Print the result as JSON")
    return ap


def _print_summary(result) -> None:
    print(f"Repository: {result.repository}")
    print(f"HEAD: {result.original_head.describe()} -> {result.final_head.describe()}")
    if result.fetched_remotes:
        print(f"Fetched: {', '.join(result.fetched_remotes)}")
    else:
        print("Fetched: (skipped)")
    if result.pull_request_branch:
        print(f"Pull request branch: {result.pull_request_branch}")
    for name in result.created:
        print(f"  created  {name}")
    for name in result.reset:
        print(f"  updated  {name}")
    if result.deferred:
        print(f"  updated  {result.deferred.branch} (checked out)")
    if not result.changed:
        print("All local branches already match their remotes.")


def main(argv: list[str] | None = None) -> None:
    args = _build_parser().parse_args(argv)

    from .ci_env import detect_current_branch
    from .config_loader import ConfigError, load_config
    from .credentials import load_authentication
    from .errors import GitNormalizeError
    from .normalizer import normalize_git_directory
    from .observability import configure_logging, log_info

    repo_path = Path(args.path).expanduser()

    try:
        config = load_config(repo_path)
    except ConfigError as exc:
        print(f"Configuration error: {exc}", file=sys.stderr)
        sys.exit(EXIT_CONFIG)

    updates = {}
    if args.remote:
        updates["remote"] = args.remote
    if args.attach_head or args.ignore_head_move:
        updates["checkout"] = config.checkout.model_copy(
            update={
                "attach_detached_head": args.attach_head or config.checkout.attach_detached_head,
                "ignore_head_move": args.ignore_head_move or config.checkout.ignore_head_move,
            }
        )
    if updates:
        config = config.model_copy(update=updates)

    configure_logging(
        args.log_level or config.logging.level,
        log_dir=config.logging.dir or None,
        max_bytes=config.logging.max_bytes,
        backup_count=config.logging.backup_count,
        disable_file=config.logging.disable_file,
        verbose=args.verbose,
    )

    current_branch = args.current_branch
    if current_branch is None:
        detected = detect_current_branch()
        if detected is not None:
            log_info(f"Detected {detected.provider} build for '{detected.ref}' ({detected.variable})")
            current_branch = detected.ref

    no_fetch = args.no_fetch or not config.fetch.enabled
    authentication = None if no_fetch else load_authentication(args.username, args.password, args.token)

    try:
        result = normalize_git_directory(
            repo_path,
            authentication,
            no_fetch=no_fetch,
            current_branch=current_branch,
            config=config,
        )
    except GitNormalizeError as exc:
        print(f"❌ Normalization failed: {exc}", file=sys.stderr)
        sys.exit(EXIT_FAILED)

    if args.json:
        print(json.dumps(result.to_dict(), indent=2, sort_keys=True))
    else:
        _print_summary(result)
    sys.exit(EXIT_OK)


if __name__ == "__main__":
    main()
