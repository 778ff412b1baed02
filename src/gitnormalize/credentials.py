"""Credentials for fetching from authenticated remotes.

AuthenticationInfo is an opaque bundle handed to the fetch step. Git itself
does the transport; credentials reach it through GIT_ASKPASS, so they never
show up in a git command line or in the repository config.
"""

from __future__ import annotations

import os
import stat
import sys
import tempfile
import warnings
from contextlib import contextmanager
from pathlib import Path
from typing import Any, Dict, Iterator, Mapping, Optional, Union

from pydantic import BaseModel, ConfigDict, Field

# TOML reading
if sys.version_info >= (3, 11):
    import tomllib
else:
    import tomli as tomllib


CREDENTIALS_FILENAME = "credentials.toml"
USER_CONFIG_DIR = ".gitnormalize"

# Username git hosts accept alongside a bare token
TOKEN_USERNAME = "x-access-token"

# Variables read by the askpass helper; never passed on the command line
ASKPASS_USERNAME_ENV = "GITNORMALIZE_ASKPASS_USERNAME"
ASKPASS_PASSWORD_ENV = "GITNORMALIZE_ASKPASS_PASSWORD"


class AuthenticationInfo(BaseModel):
    """Credential bundle forwarded to git fetch. Immutable."""

    model_config = ConfigDict(frozen=True)

    username: Optional[str] = Field(default=None, description="Username for HTTP(S) remotes")
    password: Optional[str] = Field(default=None, description="Password for HTTP(S) remotes")
    token: Optional[str] = Field(default=None, description="Access token (used as password)")

    @property
    def is_empty(self) -> bool:
        return not (self.username or self.password or self.token)

    def resolved_username(self) -> Optional[str]:
        if self.username:
            return self.username
        if self.token:
            return TOKEN_USERNAME
        return None

    def resolved_password(self) -> Optional[str]:
        # An explicit password wins over a token
        return self.password or self.token or None

    def __repr__(self) -> str:
        # Secrets stay out of logs and tracebacks
        return (
            f"AuthenticationInfo(username={self.username!r}, "
            f"password={'***' if self.password else None}, "
            f"token={'***' if self.token else None})"
        )

    __str__ = __repr__


def coerce_authentication(
    value: Union[AuthenticationInfo, Mapping[str, Any], None],
) -> AuthenticationInfo:
    """Accept an AuthenticationInfo, a plain mapping, or None."""
    if value is None:
        return AuthenticationInfo()
    if isinstance(value, AuthenticationInfo):
        return value
    return AuthenticationInfo.model_validate(dict(value))


def _get_user_credentials_path() -> Path:
    """Get path to user credentials file."""
    return Path.home() / USER_CONFIG_DIR / CREDENTIALS_FILENAME


def _load_credentials_file(path: Path) -> Dict[str, Any]:
    """Load the [auth] table of a credentials file; missing or broken files give {}."""
    if not path.exists():
        return {}
    try:
        with open(path, "rb") as f:
            data = tomllib.load(f)
    except (OSError, tomllib.TOMLDecodeError) as e:
        warnings.warn(f"Error loading credentials from {path}: {e}", UserWarning)
        return {}
    auth = data.get("auth", {})
    if not isinstance(auth, dict):
        warnings.warn(f"Ignoring non-table [auth] section in {path}", UserWarning)
        return {}
    return auth


def load_authentication(
    username: Optional[str] = None,
    password: Optional[str] = None,
    token: Optional[str] = None,
    *,
    credentials_path: Optional[Path] = None,
) -> AuthenticationInfo:
    """Resolve credentials from arguments, environment, then credentials file.

    Priority per field: explicit argument > GITNORMALIZE_USERNAME /
    GITNORMALIZE_PASSWORD / GITNORMALIZE_TOKEN > GITHUB_TOKEN / GH_TOKEN
    (token only) > [auth] table in ~/.gitnormalize/credentials.toml
    """
    stored = _load_credentials_file(credentials_path or _get_user_credentials_path())

    resolved_username = username or os.getenv("GITNORMALIZE_USERNAME") or stored.get("username")
    resolved_password = password or os.getenv("GITNORMALIZE_PASSWORD") or stored.get("password")
    resolved_token = (
        token
        or os.getenv("GITNORMALIZE_TOKEN")
        or os.getenv("GITHUB_TOKEN")
        or os.getenv("GH_TOKEN")
        or stored.get("token")
    )

    return AuthenticationInfo(
        username=resolved_username or None,
        password=resolved_password or None,
        token=resolved_token or None,
    )


_ASKPASS_SCRIPT = """#!{python}
import os
import sys

prompt = sys.argv[1] if len(sys.argv) > 1 else ""
name = "{username_env}" if prompt.lower().startswith("username") else "{password_env}"
sys.stdout.write(os.environ.get(name, "") + "\\n")
"""


def _write_askpass_script() -> Path:
    """Write an executable askpass helper and return its path.

    Git runs GIT_ASKPASS as a program (no shell) with the prompt as its only
    argument, e.g. "Username for 'https://github.com': ". The helper answers
    from environment variables, so the file itself holds no secret.
    """
    fd, name = tempfile.mkstemp(prefix="gitnormalize-askpass-")
    with os.fdopen(fd, "w", encoding="utf-8") as f:
        f.write(
            _ASKPASS_SCRIPT.format(
                python=sys.executable,
                username_env=ASKPASS_USERNAME_ENV,
                password_env=ASKPASS_PASSWORD_ENV,
            )
        )
    os.chmod(name, stat.S_IRWXU)
    return Path(name)


@contextmanager
def git_environment(
    authentication: Optional[AuthenticationInfo] = None,
    base: Optional[Mapping[str, str]] = None,
) -> Iterator[Dict[str, str]]:
    """Build the environment git runs with during fetch.

    Interactive prompts are disabled so a missing credential fails fast
    instead of hanging the CI job. With credentials, an askpass helper is
    written for the duration of the block and removed on exit.

    Yields:
        Environment mapping for repo.git.custom_environment
    """
    env = dict(os.environ if base is None else base)
    env.setdefault("GIT_TERMINAL_PROMPT", "0")
    env.setdefault("GCM_INTERACTIVE", "never")
    env.setdefault("GIT_SSH_COMMAND", "ssh -o BatchMode=yes")

    auth = authentication or AuthenticationInfo()
    if auth.is_empty:
        env.setdefault("GIT_ASKPASS", "echo")
        yield env
        return

    script = _write_askpass_script()
    try:
        env[ASKPASS_USERNAME_ENV] = auth.resolved_username() or ""
        env[ASKPASS_PASSWORD_ENV] = auth.resolved_password() or ""
        env["GIT_ASKPASS"] = str(script)
        yield env
    finally:
        script.unlink(missing_ok=True)
