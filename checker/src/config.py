from typing import List, Optional, Tuple

from pydantic_settings import BaseSettings, SettingsConfigDict

class Settings(BaseSettings):
    """repo-checker settings, read from flags and REPO_CHECKER_* env vars."""

    model_config = SettingsConfigDict(
        env_prefix="REPO_CHECKER_",
        env_file=".env",
        extra="ignore",
        cli_prog_name="repo-checker",
        cli_kebab_case=True,
    )

    repo_url: str
    repo_branch: str = "main"
    listen_addr: str = ":9090"
    work_dir: str = "/tmp/repos"
    interval: float = 600  # seconds between ls-remote calls
    git_timeout: float = 120
    log_level: str = "INFO"

    def listen_host_port(self) -> Tuple[str, int]:
        return parse_listen_addr(self.listen_addr)

def parse_listen_addr(addr: str) -> Tuple[str, int]:
    """Split "host:port" (host optional, as in ":9090") for uvicorn."""
    host, sep, port = addr.rpartition(":")
    if not sep or not port.isdigit():
        raise ValueError(f"Invalid listen address: {addr!r}")
    return host or "0.0.0.0", int(port)

def load_settings(argv: Optional[List[str]] = None) -> Settings:
    """Parse command line flags on top of the environment."""
    return Settings(_cli_parse_args=argv if argv is not None else True)
