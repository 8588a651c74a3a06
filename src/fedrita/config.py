from pathlib import Path
from typing import Optional

import yaml
from pydantic_settings import BaseSettings, SettingsConfigDict

from fedrita.exceptions import ConfigError


class AppSettings(BaseSettings):
    name: str = "Fedrita"
    version: str = "1.0.0"
    assistant_url: str = "https://app.fedrita.com"  # external WhatsApp assistant console


class PathSettings(BaseSettings):
    data_dir: Path = Path("./data")
    db_path: Path = Path("./data/fedrita.db")
    storage_dir: Path = Path("./data/storage")
    state_dir: Path = Path("./data/state")
    content_path: Optional[Path] = None  # overrides the packaged home page content


class BackendSettings(BaseSettings):
    """
    Backend-as-a-service selection:
    - local (SQLite + local bucket directory, dev default)
    - supabase (hosted auth/tables/storage over REST)
    """
    kind: str = "local"  # local|supabase
    supabase_url: Optional[str] = None
    supabase_anon_key: Optional[str] = None
    supabase_service_role_key: Optional[str] = None  # only needed to look up users by email
    timeout_seconds: Optional[float] = 30.0
    local_autoconfirm: bool = True  # False mimics sign-ups waiting for email confirmation
    local_session_ttl_seconds: int = 3600
    logo_bucket: str = "logos"


class SecuritySettings(BaseSettings):
    session_cookie: str = "fedrita_session"
    session_header: str = "X-Fedrita-Session"
    cookie_secure: bool = False
    context_ttl_seconds: int = 86400  # idle auth contexts are dropped after this
    max_upload_mb: int = 5


class StateSettings(BaseSettings):
    """
    Where each browser session keeps its persisted key-value entries
    (session snapshot, temporary identity, cached company).
    """
    backend: str = "file"  # file|memory


class LoggingSettings(BaseSettings):
    log_requests: bool = True
    format: str = "console"  # console | json
    level: str = "INFO"


class Settings(BaseSettings):
    model_config = SettingsConfigDict(env_nested_delimiter="__", env_file=".env", extra="ignore")
    app: AppSettings = AppSettings()
    paths: PathSettings = PathSettings()
    backend: BackendSettings = BackendSettings()
    security: SecuritySettings = SecuritySettings()
    state: StateSettings = StateSettings()
    logging: LoggingSettings = LoggingSettings()

    @classmethod
    def load(cls, config_path: Optional[Path] = None) -> "Settings":
        # Load from default path if exists
        default_path = Path("config/settings.yaml")
        path = config_path or (default_path if default_path.exists() else None)

        if not path:
            return cls()

        try:
            with open(path, "r", encoding="utf-8") as f:
                config_data = yaml.safe_load(f) or {}
        except (OSError, yaml.YAMLError) as exc:
            raise ConfigError(f"Could not read settings file {path}: {exc}") from exc

        if not isinstance(config_data, dict):
            raise ConfigError(f"Settings file {path} must contain a mapping")
        return cls(**config_data)

    def use_data_dir(self, data_dir: Path) -> None:
        """
        Re-roots every runtime path under data_dir (tests and the CLI use this).
        """
        data_dir = Path(data_dir)
        self.paths.data_dir = data_dir
        self.paths.db_path = data_dir / "fedrita.db"
        self.paths.storage_dir = data_dir / "storage"
        self.paths.state_dir = data_dir / "state"


settings = Settings.load()
