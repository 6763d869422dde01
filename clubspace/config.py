"""
Configuration helpers for the club services.
"""
from __future__ import annotations

import os
from dataclasses import dataclass
from pathlib import Path
from typing import Optional, Tuple

_ENV_LOADED = False

_TRUTHY = {"1", "true", "yes", "on"}


def _ensure_env_loaded() -> None:
    """
    Load environment variables from a .env file if present.
    """
    global _ENV_LOADED  # noqa: PLW0603 - intentional module level state
    if _ENV_LOADED:
        return

    candidates = []
    explicit = os.getenv("CLUBSPACE_ENV_FILE")
    if explicit:
        candidates.append(Path(explicit))
    cwd_env = Path.cwd() / ".env"
    candidates.append(cwd_env)
    repo_env = Path(__file__).resolve().parents[1] / ".env"
    if repo_env != cwd_env:
        candidates.append(repo_env)

    for path in candidates:
        if not path or not path.exists():
            continue
        try:
            for line in path.read_text().splitlines():
                stripped = line.strip()
                if not stripped or stripped.startswith("#") or "=" not in stripped:
                    continue
                key, value = stripped.split("=", 1)
                key = key.strip()
                value = value.strip().strip('"').strip("'")
                if key and key not in os.environ:
                    os.environ[key] = value
        except OSError:
            continue

    _ENV_LOADED = True


def _env_flag(name: str, default: bool) -> bool:
    raw = os.getenv(name)
    if raw is None:
        return default
    return raw.strip().lower() in _TRUTHY


def _env_list(name: str) -> Tuple[str, ...]:
    raw = os.getenv(name) or ""
    return tuple(item.strip() for item in raw.split(",") if item.strip())


def _env_int(name: str, default: int) -> int:
    raw = os.getenv(name)
    if raw is None or not raw.strip():
        return default
    try:
        return int(raw)
    except ValueError:
        return default


@dataclass(frozen=True)
class Settings:
    """
    Runtime configuration for the document store and the archival job.
    """

    store_backend: str = "sqlite"
    sqlite_path: str = ".cache/clubspace.db"
    firestore_project: Optional[str] = None
    firestore_database: str = "(default)"
    firestore_base_url: str = "https://firestore.googleapis.com/v1"
    firestore_token: Optional[str] = None
    archive_grace_minutes: int = 60
    active_window_days: int = 10
    archive_on_read: bool = True
    archive_interval_seconds: int = 0
    roster_path: str = "config/roster.yml"
    log_level: str = "INFO"
    auth_secret: Optional[str] = None
    cors_origins: Tuple[str, ...] = ()

    @classmethod
    def from_env(cls) -> "Settings":
        """
        Construct settings using environment variables with sensible defaults.
        """
        _ensure_env_loaded()
        return cls(
            store_backend=os.getenv("CLUBSPACE_STORE", "sqlite").strip().lower(),
            sqlite_path=os.getenv("CLUBSPACE_DB", ".cache/clubspace.db"),
            firestore_project=os.getenv("CLUBSPACE_FIRESTORE_PROJECT"),
            firestore_database=os.getenv("CLUBSPACE_FIRESTORE_DATABASE", "(default)"),
            firestore_base_url=os.getenv(
                "CLUBSPACE_FIRESTORE_URL", "https://firestore.googleapis.com/v1"
            ),
            firestore_token=os.getenv("CLUBSPACE_FIRESTORE_TOKEN")
            or os.getenv("GOOGLE_OAUTH_ACCESS_TOKEN"),
            archive_grace_minutes=_env_int("CLUBSPACE_ARCHIVE_GRACE_MINUTES", 60),
            active_window_days=_env_int("CLUBSPACE_ACTIVE_WINDOW_DAYS", 10),
            archive_on_read=_env_flag("CLUBSPACE_ARCHIVE_ON_READ", True),
            archive_interval_seconds=_env_int("CLUBSPACE_ARCHIVE_INTERVAL", 0),
            roster_path=os.getenv("CLUBSPACE_ROSTER", "config/roster.yml"),
            log_level=os.getenv("CLUBSPACE_LOG_LEVEL", "INFO").upper(),
            auth_secret=os.getenv("CLUBSPACE_AUTH_SECRET") or None,
            cors_origins=_env_list("CLUBSPACE_CORS_ORIGINS"),
        )
