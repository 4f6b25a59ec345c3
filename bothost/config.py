"""Global configuration — loaded from environment variables."""

from pathlib import Path

from pydantic_settings import BaseSettings


class BothostSettings(BaseSettings):
    data_dir: Path = Path(".bothost")
    db_path: Path = Path(".bothost/bothost.db")
    bots_dir: Path = Path(".bothost/bots")
    log_level: str = "INFO"
    host: str = "127.0.0.1"
    port: int = 3011

    # Workloads
    default_runtime: str = "node"  # node|python
    stop_timeout_seconds: float = 5.0
    dependency_cache_dirs: list[str] = ["node_modules", "__pycache__", ".venv"]

    # Login handshake
    auth_code_ttl_seconds: int = 300  # 5 minutes
    login_url: str = "http://localhost:3011/login"
    session_cookie: str = "bothost_session"
    session_ttl_seconds: int = 7 * 24 * 60 * 60

    model_config = {"env_prefix": "BOTHOST_"}


settings = BothostSettings()
