"""Settings — environment-driven configuration."""

from __future__ import annotations

import os
from dataclasses import dataclass
from pathlib import Path

from dotenv import load_dotenv

_DEFAULT_LOG_LEVELS = {
    "development": "INFO",
    "production": "WARNING",
}


def _number(env: dict[str, str], name: str, default: float) -> float:
    raw = env.get(name)
    if raw is None or raw == "":
        return default
    try:
        return float(raw)
    except ValueError:
        raise ValueError(f"{name} must be a number, got {raw!r}") from None


@dataclass(frozen=True)
class Settings:
    """Runtime configuration.

    ``Settings.from_env()`` reads the process environment after loading a
    ``.env`` file if one exists.
    """

    environment: str = "development"
    base_url: str = "http://localhost:3030"
    port: int = 1900
    webdav_root: str = "/remote.php/webdav/"
    log_level: str = "INFO"
    log_dir: Path = Path("logs")
    request_timeout: float = 30.0
    cache_ttl: float | None = 120.0
    """Seconds a cached resource stays trusted; None disables expiry."""

    delete_permission: str = "FILESTORAGE_REMOVE"

    @property
    def is_production(self) -> bool:
        return self.environment == "production"

    @classmethod
    def from_env(
        cls,
        env: dict[str, str] | None = None,
        *,
        dotenv_path: str | Path | None = None,
    ) -> Settings:
        """Build settings from *env* (default: ``os.environ`` plus ``.env``)."""
        if env is None:
            load_dotenv(dotenv_path)
            env = dict(os.environ)

        environment = env.get("NODE_ENV") or "development"
        log_level = env.get("LOG_LEVEL") or _DEFAULT_LOG_LEVELS.get(environment, "DEBUG")
        ttl = _number(env, "CACHE_TTL", 120.0)
        port = _number(env, "PORT", 1900)
        if port != int(port) or not 0 < port < 65536:
            raise ValueError(f"PORT must be a valid port number, got {env.get('PORT')!r}")

        return cls(
            environment=environment,
            base_url=env.get("BASE_URL") or cls.base_url,
            port=int(port),
            webdav_root=env.get("WEBDAV_ROOT") or cls.webdav_root,
            log_level=log_level.upper(),
            log_dir=Path(env.get("LOG_DIR") or "logs"),
            request_timeout=_number(env, "REQUEST_TIMEOUT", 30.0),
            cache_ttl=ttl if ttl > 0 else None,
            delete_permission=env.get("DELETE_PERMISSION") or cls.delete_permission,
        )
