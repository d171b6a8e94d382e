"""Configuration from environment variables (and an optional .env file)."""

import os
from dataclasses import dataclass
from pathlib import Path
from typing import Optional

from dotenv import load_dotenv

STORAGE_BACKENDS = ("local", "github")

DEFAULT_DATA_FILE = Path.home() / ".pulse" / "timer-data.json"
DEFAULT_PORT = 3000


def _env_int(name: str, default: int) -> int:
    value = os.environ.get(name)
    if value is None or value == "":
        return default
    return int(value)


@dataclass
class Settings:
    """Runtime settings for the server and CLI."""

    storage: str = "local"
    data_file: Path = DEFAULT_DATA_FILE

    # Remote repository file, used when storage == "github"
    github_repo: Optional[str] = None  # "owner/name"
    github_path: str = "timer-data.json"
    github_branch: str = "main"
    github_token: Optional[str] = None

    # External rep counter reconciled into the daily log
    merge_url: Optional[str] = None
    merge_token: Optional[str] = None
    merge_activity: str = "pushups"

    reminder_webhook: Optional[str] = None
    http_timeout: int = 10

    host: str = "127.0.0.1"
    port: int = DEFAULT_PORT

    @classmethod
    def from_env(cls) -> "Settings":
        env = os.environ
        return cls(
            storage=env.get("PULSE_STORAGE", "local").lower(),
            data_file=Path(env["PULSE_DATA_FILE"]).expanduser() if env.get("PULSE_DATA_FILE") else DEFAULT_DATA_FILE,
            github_repo=env.get("PULSE_GITHUB_REPO") or None,
            github_path=env.get("PULSE_GITHUB_PATH", "timer-data.json"),
            github_branch=env.get("PULSE_GITHUB_BRANCH", "main"),
            github_token=env.get("PULSE_GITHUB_TOKEN") or None,
            merge_url=env.get("PULSE_MERGE_URL") or None,
            merge_token=env.get("PULSE_MERGE_TOKEN") or None,
            merge_activity=env.get("PULSE_MERGE_ACTIVITY", "pushups"),
            reminder_webhook=env.get("PULSE_REMINDER_WEBHOOK") or None,
            http_timeout=_env_int("PULSE_HTTP_TIMEOUT", 10),
            host=env.get("PULSE_HOST", "127.0.0.1"),
            port=_env_int("PULSE_PORT", DEFAULT_PORT),
        )

    def validate(self) -> None:
        if self.storage not in STORAGE_BACKENDS:
            valid = ", ".join(STORAGE_BACKENDS)
            raise ValueError(f"Invalid storage backend '{self.storage}'. Valid options: {valid}")
        if self.http_timeout <= 0:
            raise ValueError(f"PULSE_HTTP_TIMEOUT must be positive, got {self.http_timeout}")


def get_settings(env_file: Optional[Path] = None) -> Settings:
    """Load .env (if present), read the environment and validate."""
    load_dotenv(env_file or Path.cwd() / ".env")
    settings = Settings.from_env()
    settings.validate()
    return settings
