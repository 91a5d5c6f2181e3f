from __future__ import annotations

import os
from collections.abc import Mapping
from dataclasses import dataclass, field
from pathlib import Path

DEFAULT_LOG_LINES: tuple[str, ...] = (
    "2025-12-01 error user@example.com failed login from 1.2.3.4",
    "2025-12-02 info user2@example.com purchased item #123",
    "2025-12-03 warn suspicious access to admin panel",
    "2025-12-05 error payment failed invoice 987",
)

# key|YYYY-MM-DD
DEFAULT_KEY_LINES: tuple[str, ...] = (
    "dev-key-123|2026-01-01",
    "testkey-xyz|2026-06-30",
)

_TRUE_VALUES = {"1", "true", "yes", "on"}
_FALSE_VALUES = {"0", "false", "no", "off", ""}


def _parse_bool(name: str, raw: str) -> bool:
    value = raw.strip().lower()
    if value in _TRUE_VALUES:
        return True
    if value in _FALSE_VALUES:
        return False
    raise ValueError(f"{name} must be a boolean, got {raw!r}")


def _parse_port(name: str, raw: str) -> int:
    try:
        port = int(raw)
    except ValueError as exc:
        raise ValueError(f"{name} must be an integer, got {raw!r}") from exc
    if not 0 < port < 65536:
        raise ValueError(f"{name} must be between 1 and 65535, got {port}")
    return port


@dataclass
class ServiceConfig:
    data_dir: Path = Path("data")
    granted_filename: str = "provided.txt"
    logs_filename: str = "logs.txt"
    keys_filename: str = "keys.txt"
    public_dir: Path | None = None

    cache_granted_set: bool = False
    seed_auxiliary_files: bool = True

    host: str = "0.0.0.0"
    port: int = 3000
    log_level: str = "INFO"
    cors_allow_origins: list[str] = field(default_factory=lambda: ["*"])

    def __post_init__(self) -> None:
        self.data_dir = Path(self.data_dir)
        if self.public_dir is not None:
            self.public_dir = Path(self.public_dir)

    @property
    def granted_path(self) -> Path:
        return self.data_dir / self.granted_filename

    @property
    def logs_path(self) -> Path:
        return self.data_dir / self.logs_filename

    @property
    def keys_path(self) -> Path:
        return self.data_dir / self.keys_filename

    @classmethod
    def from_env(cls, environ: Mapping[str, str] | None = None) -> "ServiceConfig":
        env = os.environ if environ is None else environ
        config = cls()
        if "LINECLAIM_DATA_DIR" in env:
            config.data_dir = Path(env["LINECLAIM_DATA_DIR"])
        if env.get("LINECLAIM_PUBLIC_DIR"):
            config.public_dir = Path(env["LINECLAIM_PUBLIC_DIR"])
        if "LINECLAIM_CACHE" in env:
            config.cache_granted_set = _parse_bool("LINECLAIM_CACHE", env["LINECLAIM_CACHE"])
        if "LINECLAIM_LOG_LEVEL" in env:
            config.log_level = env["LINECLAIM_LOG_LEVEL"].upper()
        if "HOST" in env:
            config.host = env["HOST"]
        if "PORT" in env:
            config.port = _parse_port("PORT", env["PORT"])
        return config
