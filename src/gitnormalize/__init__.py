"""gitnormalize: make CI checkouts safe for history-walking tools."""

from importlib.metadata import version, PackageNotFoundError

try:
    __version__ = version("gitnormalize")
except PackageNotFoundError:
    __version__ = "0.0.0-dev"  # Fallback for editable installs without metadata

from .credentials import AuthenticationInfo  # noqa: F401
from .errors import (  # noqa: F401
    AmbiguousPullRequestRefError,
    BranchUpdateError,
    FetchError,
    GitNormalizeError,
    HeadMovedError,
    InvalidHeadError,
    RepositoryNotFoundError,
    UnsafeBranchUpdateError,
)
from .normalizer import NormalizationResult, normalize_git_directory  # noqa: F401

__all__ = [
    "AuthenticationInfo",
    "NormalizationResult",
    "normalize_git_directory",
    "GitNormalizeError",
    "RepositoryNotFoundError",
    "FetchError",
    "AmbiguousPullRequestRefError",
    "UnsafeBranchUpdateError",
    "InvalidHeadError",
    "BranchUpdateError",
    "HeadMovedError",
    "__version__",
]
