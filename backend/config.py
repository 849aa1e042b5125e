from pathlib import Path
from typing import Optional

from pydantic import model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


def _load_version() -> str:
    version_path = Path(__file__).resolve().parent / "VERSION"
    try:
        return version_path.read_text().strip()
    except FileNotFoundError:
        return "0.1.0"


class Settings(BaseSettings):
    """Application configuration using Pydantic settings."""

    # Application
    APP_NAME: str = "kflow"
    APP_VERSION: str = _load_version()
    KFLOW_DEBUG: bool = False

    # ── Node daemon ────────────────────────────────────────────────────
    # Concrete table path, or "auto" to probe the standard locations
    CONNTRACK_PATH: str = "auto"
    HOST_ROOT: str = "/host"  # where the host's /proc is mounted in the pod
    PROC_ROOT: str = "/"
    KUBE_NODE_NAME: Optional[str] = None
    LISTEN_HOST: str = "0.0.0.0"
    LISTEN_PORT: int = 8080

    # ── Polling (both sides) ───────────────────────────────────────────
    POLL_INTERVAL: float = 2.0
    FETCH_TIMEOUT: float = 1.5

    # ── Viewer / cluster ───────────────────────────────────────────────
    KFLOW_ENDPOINTS: Optional[str] = None  # static list disables discovery
    START_PORT: int = 18080
    KUBE_NAMESPACE: Optional[str] = None
    DAEMON_SELECTOR: str = "app=kflow-daemon"
    KUBECTL: str = "kubectl"

    model_config = SettingsConfigDict(env_file=".env", case_sensitive=True)

    @model_validator(mode="after")
    def check_timings(self):
        if self.POLL_INTERVAL <= 0:
            raise ValueError("POLL_INTERVAL must be positive")
        if self.FETCH_TIMEOUT <= 0:
            raise ValueError("FETCH_TIMEOUT must be positive")
        if self.FETCH_TIMEOUT > self.POLL_INTERVAL:
            raise ValueError("FETCH_TIMEOUT must not exceed POLL_INTERVAL")
        return self

    @property
    def log_level(self) -> str:
        return "DEBUG" if self.KFLOW_DEBUG else "INFO"


settings = Settings()
