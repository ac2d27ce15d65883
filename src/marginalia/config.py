"""Configuration management via .env file."""

from __future__ import annotations

import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Optional

from dotenv import load_dotenv


def _xdg_data_home() -> Path:
    return Path(os.environ.get("XDG_DATA_HOME", Path.home() / ".local" / "share"))


def _xdg_config_home() -> Path:
    return Path(os.environ.get("XDG_CONFIG_HOME", Path.home() / ".config"))


def _env_float(name: str, default: float) -> float:
    raw = os.getenv(name)
    if not raw:
        return default
    try:
        return float(raw)
    except ValueError:
        return default


def _env_int(name: str, default: int) -> int:
    raw = os.getenv(name)
    if not raw:
        return default
    try:
        return int(raw)
    except ValueError:
        return default


@dataclass
class AppConfig:
    # Paths
    data_dir: Path = field(default_factory=lambda: _xdg_data_home() / "marginalia")
    config_dir: Path = field(default_factory=lambda: _xdg_config_home() / "marginalia")
    db_path: Path = field(init=False)

    # Counts & comments service
    service_url: str = "http://127.0.0.1:8000"
    request_timeout: float = 5.0  # seconds, after which a call counts as failed
    site_origin: str = "http://127.0.0.1:8000"
    admin_token: str = ""
    service_host: str = "127.0.0.1"
    service_port: int = 8000

    # Comments
    max_comment_length: int = 500
    highlight_seconds: float = 3.0

    log_path: Path = field(init=False)

    def __post_init__(self) -> None:
        self.db_path = self.data_dir / "marginalia.db"
        self.log_path = self.data_dir / "marginalia.log"
        self.data_dir.mkdir(parents=True, exist_ok=True)
        self.config_dir.mkdir(parents=True, exist_ok=True)


def load_config(env_path: Optional[Path] = None) -> AppConfig:
    """Load config from .env file. Searches CWD then config dir."""
    search_paths = [
        env_path,
        Path.cwd() / ".env",
        _xdg_config_home() / "marginalia" / ".env",
        Path.home() / ".env",
    ]
    for p in search_paths:
        if p and p.exists():
            load_dotenv(p)
            break

    defaults = AppConfig.__dataclass_fields__
    return AppConfig(
        service_url=os.getenv(
            "MARGINALIA_SERVICE_URL", defaults["service_url"].default
        ).rstrip("/"),
        request_timeout=_env_float(
            "MARGINALIA_REQUEST_TIMEOUT", defaults["request_timeout"].default
        ),
        site_origin=os.getenv(
            "MARGINALIA_SITE_ORIGIN", defaults["site_origin"].default
        ).rstrip("/"),
        admin_token=os.getenv("MARGINALIA_ADMIN_TOKEN", ""),
        service_host=os.getenv(
            "MARGINALIA_SERVICE_HOST", defaults["service_host"].default
        ),
        service_port=_env_int(
            "MARGINALIA_SERVICE_PORT", defaults["service_port"].default
        ),
        max_comment_length=_env_int(
            "MARGINALIA_MAX_COMMENT_LENGTH", defaults["max_comment_length"].default
        ),
        highlight_seconds=_env_float(
            "MARGINALIA_HIGHLIGHT_SECONDS", defaults["highlight_seconds"].default
        ),
    )
