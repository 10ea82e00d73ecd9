from checker.src.services.repo_checker import (
    RepoChecker,
    RepoCheckError,
    RevisionNotFoundError,
    parse_ls_remote,
    repo_name_from_url,
)

__all__ = [
    "RepoChecker",
    "RepoCheckError",
    "RevisionNotFoundError",
    "parse_ls_remote",
    "repo_name_from_url",
]
