from pydantic_settings import BaseSettings, SettingsConfigDict
from functools import lru_cache

class Settings(BaseSettings):
    model_config = SettingsConfigDict(env_prefix="SITEX_", env_file=".env", extra="ignore")

    # Kubernetes settings
    operator_namespace: str = "sitex-system"
    k8s_in_cluster: bool = False  # Set True when running inside K8s
    cluster_domain: str = "cluster.local"
    watch_timeout_seconds: int = 300

    # Child workload images
    nginx_container_image: str = "ghcr.io/sitex-dev/nginx:1.25"
    repo_checker_container_image: str = "ghcr.io/sitex-dev/repo-checker:0.1.0"

    # Reconcile settings
    max_concurrent_reconciles: int = 4
    post_build_requeue_delay: float = 10.0
    revision_not_ready_delay: float = 1.0
    requeue_base_delay: float = 0.5
    requeue_max_delay: float = 300.0
    job_backoff_limit: int = 6

    # Revision watching
    revision_watch_interval: float = 60.0
    revision_request_timeout: float = 10.0
    trigger_channel_size: int = 100

    # Health endpoints
    health_host: str = "0.0.0.0"
    health_port: int = 8081

    log_level: str = "INFO"

@lru_cache()
def get_settings() -> Settings:
    return Settings()
