"""
Controller settings using Pydantic.

Provides environment-based configuration loading with POLICYSPLITTER_ prefix.
"""

from functools import lru_cache

from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    """Controller settings."""

    # Kubernetes connection
    kubeconfig: str | None = None
    context: str | None = None
    namespace: str | None = None  # None = all namespaces
    request_timeout: int = 30

    # Managed policy resource
    policy_group: str = "policy.open-cluster-management.io"
    policy_version: str = "v1"
    policy_plural: str = "policies"

    # Cluster registry
    cluster_group: str = "cluster.example.dev"
    cluster_version: str = "v1alpha1"
    cluster_plural: str = "clusters"

    # Store retries (transient API errors)
    max_retries: int = 3
    retry_backoff_factor: float = 0.5

    # Controller
    workers: int = 2
    requeue_base_delay: float = 0.5
    requeue_max_delay: float = 60.0

    # Logging
    log_level: str = "INFO"
    log_json: bool = True

    class Config:
        env_file = ".env"
        env_file_encoding = "utf-8"
        env_prefix = "POLICYSPLITTER_"

    @property
    def policy_api_version(self) -> str:
        return f"{self.policy_group}/{self.policy_version}"


@lru_cache
def get_settings() -> Settings:
    """Get cached settings instance."""
    return Settings()
