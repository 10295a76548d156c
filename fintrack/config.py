"""FinTrack settings: a TOML file overridden by FINTRACK_* environment variables."""

import os
from dataclasses import dataclass
from pathlib import Path

import tomli

DEFAULT_CONFIG_PATHS = [
    Path("config.toml"),
    Path.home() / ".config" / "fintrack" / "config.toml",
]

DEFAULT_REDIRECT_URI = "http://localhost:8086/callback"
DEFAULT_DB_PATH = "fintrack.db"
DEFAULT_FOLDER_NAME = "ExpenseTracker"
DEFAULT_CURRENCY_SYMBOL = "₹"


@dataclass(frozen=True)
class DriveConfig:
    """OAuth client and Drive folder settings."""

    client_id: str
    client_secret: str
    redirect_uri: str
    folder_name: str = DEFAULT_FOLDER_NAME

    @property
    def is_configured(self) -> bool:
        """Check if OAuth client credentials are present."""
        return bool(self.client_id and self.client_secret)


@dataclass(frozen=True)
class StorageConfig:
    """Local storage configuration."""

    path: Path


@dataclass(frozen=True)
class SecurityConfig:
    """Key for encrypting stored tokens; None leaves them in plain text."""

    encryption_key: str | None


@dataclass(frozen=True)
class DisplayConfig:
    """Display preferences."""

    currency_symbol: str = DEFAULT_CURRENCY_SYMBOL


@dataclass(frozen=True)
class Config:
    """All FinTrack settings."""

    drive: DriveConfig
    storage: StorageConfig
    security: SecurityConfig
    display: DisplayConfig = DisplayConfig()


class ConfigError(Exception):
    """Raised when the config file cannot be parsed."""

    pass


def find_config_file() -> Path | None:
    """First of DEFAULT_CONFIG_PATHS that exists, if any."""
    return next((path for path in DEFAULT_CONFIG_PATHS if path.exists()), None)


def load_config(config_path: Path | None = None) -> Config:
    """Load configuration from TOML file with environment variable overrides.

    Every setting is looked up in its environment variable first, then in
    the file, then falls back to its default.
    """
    path = config_path or find_config_file()
    data = _read_toml(path)
    sections = {name: data.get(name, {}) for name in ("drive", "storage", "security", "display")}

    def setting(section: str, key: str, env_var: str, default):
        return os.environ.get(env_var, sections[section].get(key, default))

    db_path = Path(setting("storage", "path", "FINTRACK_DB_PATH", DEFAULT_DB_PATH)).expanduser()
    if not db_path.is_absolute() and path:
        db_path = path.parent / db_path

    return Config(
        drive=DriveConfig(
            client_id=setting("drive", "client_id", "FINTRACK_CLIENT_ID", ""),
            client_secret=setting("drive", "client_secret", "FINTRACK_CLIENT_SECRET", ""),
            redirect_uri=setting(
                "drive", "redirect_uri", "FINTRACK_REDIRECT_URI", DEFAULT_REDIRECT_URI
            ),
            folder_name=setting(
                "drive", "folder_name", "FINTRACK_FOLDER_NAME", DEFAULT_FOLDER_NAME
            ),
        ),
        storage=StorageConfig(path=db_path),
        security=SecurityConfig(
            encryption_key=setting(
                "security", "encryption_key", "FINTRACK_ENCRYPTION_KEY", None
            ) or None
        ),
        display=DisplayConfig(
            currency_symbol=setting(
                "display", "currency_symbol", "FINTRACK_CURRENCY", DEFAULT_CURRENCY_SYMBOL
            )
        ),
    )


def _read_toml(path: Path | None) -> dict:
    if path is None or not path.exists():
        return {}
    try:
        with open(path, "rb") as f:
            return tomli.load(f)
    except tomli.TOMLDecodeError as e:
        raise ConfigError(f"Invalid config file {path}: {e}") from e
