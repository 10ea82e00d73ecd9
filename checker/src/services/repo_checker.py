"""
Track the latest commit of one branch of a git repository.
"""

import asyncio
import logging
import os
import subprocess
import threading
from typing import List, Optional

logger = logging.getLogger(__name__)

class RepoCheckError(Exception):
    """Raised when a git command against the repository fails."""
    pass

class RevisionNotFoundError(Exception):
    """Raised when ls-remote output has no line for the tracked branch."""
    pass

def repo_name_from_url(repo_url: str) -> str:
    last = repo_url.rstrip("/").split("/")[-1]
    if last.endswith(".git"):
        last = last[: -len(".git")]
    return last

def parse_ls_remote(output: str, branch: str) -> Optional[str]:
    """Return the hash of refs/heads/<branch> in `git ls-remote` output."""
    wanted = f"refs/heads/{branch}"
    for line in output.splitlines():
        fields = line.split()
        if len(fields) != 2:
            continue
        if fields[1].strip() == wanted:
            return fields[0].strip()
    return None

class RepoChecker:
    """
    Clones a repository once and then polls the remote for the tip of a branch.

    The refresh loop writes the hash and the HTTP handler reads it; both go
    through the same lock.
    """

    def __init__(
        self,
        repo_url: str,
        branch: str,
        work_dir: str,
        interval: float,
        git_timeout: float = 120,
    ):
        self.repo_url = repo_url
        self.branch = branch
        self.repo_name = repo_name_from_url(repo_url)
        self.work_dir = work_dir
        self.interval = interval
        self.git_timeout = git_timeout
        self._lock = threading.Lock()
        self._latest_revision = ""

    @property
    def repo_dir(self) -> str:
        return os.path.join(self.work_dir, self.repo_name)

    def _git(self, args: List[str], cwd: str) -> str:
        try:
            result = subprocess.run(
                ["git", *args],
                cwd=cwd,
                check=True,
                capture_output=True,
                timeout=self.git_timeout,
            )
        except subprocess.TimeoutExpired as e:
            raise RepoCheckError(f"git {args[0]} timed out after {self.git_timeout}s") from e
        except subprocess.CalledProcessError as e:
            raise RepoCheckError(f"git {args[0]} failed: {e.stderr.decode().strip()}") from e
        return result.stdout.decode()

    def clone(self):
        """Clone the tracked branch into work_dir. Any failure is fatal."""
        os.makedirs(self.work_dir, exist_ok=True)
        logger.info(f"Cloning {self.repo_url} (branch {self.branch}) into {self.work_dir}")
        self._git(["clone", "-b", self.branch, self.repo_url], cwd=self.work_dir)

    def fetch_remote_revision(self) -> str:
        """
        Ask the remote for the current tip of the branch and store it.

        When the branch is missing from the output the stored hash is left
        as it was.
        """
        output = self._git(["ls-remote", "origin"], cwd=self.repo_dir)
        revision = parse_ls_remote(output, self.branch)
        if not revision:
            raise RevisionNotFoundError(f"refs/heads/{self.branch} not found in {self.repo_url}")

        with self._lock:
            previous = self._latest_revision
            self._latest_revision = revision

        if previous != revision:
            logger.info(f"Latest revision of {self.repo_name}/{self.branch}: {revision}")
        return revision

    def latest_revision(self) -> str:
        """Last fetched hash, or "" before the first successful fetch."""
        with self._lock:
            return self._latest_revision

    async def refresh(self):
        try:
            await asyncio.to_thread(self.fetch_remote_revision)
        except RevisionNotFoundError as e:
            logger.warning(f"{e}; keeping revision {self.latest_revision() or '<none>'}")

    async def update_latest_revision(self):
        """
        Refresh now and then every interval seconds.

        A missing branch is retried on the next tick; a failing git command
        ends the loop with RepoCheckError.
        """
        await self.refresh()
        while True:
            await asyncio.sleep(self.interval)
            await self.refresh()
