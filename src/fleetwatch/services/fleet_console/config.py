from __future__ import annotations

import os
from dataclasses import dataclass, field
from typing import Optional
from urllib.parse import urlparse


_DEFAULT_API_URL = "http://localhost:8080/api"


def _parse_bool_env(name: str, default: str) -> bool:
    raw = os.getenv(name)
    value = (raw if raw is not None else default).strip().lower()
    return value not in {"", "0", "false", "no", "off"}


def _optional_env(name: str) -> Optional[str]:
    raw = os.getenv(name)
    if raw is None or not raw.strip():
        return None
    return raw.strip()


def validated_api_url(raw: Optional[str]) -> str:
    base = (raw if raw is not None else _DEFAULT_API_URL).strip()
    if not base:
        base = _DEFAULT_API_URL

    base = base.rstrip("/")
    parsed = urlparse(base)
    if parsed.scheme not in {"http", "https"}:
        raise ValueError(f"FLEETWATCH_API_URL scheme must be http or https, got: {parsed.scheme!r}")
    if not parsed.netloc:
        raise ValueError("FLEETWATCH_API_URL must include host[:port]")

    return base


@dataclass(frozen=True, slots=True)
class ConsoleConfig:
    api_url: str = field(default_factory=lambda: validated_api_url(os.getenv("FLEETWATCH_API_URL")))
    api_token: Optional[str] = field(default_factory=lambda: _optional_env("FLEETWATCH_API_TOKEN"))
    request_timeout_s: float = field(
        default_factory=lambda: float(os.getenv("FLEETWATCH_REQUEST_TIMEOUT_SEC", "15.0"))
    )

    # Where recent commands are kept. None means a private directory that the
    # console creates at start and removes on exit.
    session_dir: Optional[str] = field(default_factory=lambda: _optional_env("FLEETWATCH_SESSION_DIR"))

    can_manage: bool = field(default_factory=lambda: _parse_bool_env("FLEETWATCH_CAN_MANAGE", "1"))
    role_level: int = field(default_factory=lambda: int(os.getenv("FLEETWATCH_ROLE_LEVEL", "1")))

    log_level: str = field(default_factory=lambda: os.getenv("LOG_LEVEL", "INFO"))
    log_cfg_path: Optional[str] = field(default_factory=lambda: _optional_env("FLEETWATCH_LOG_CFG"))
    log_file: Optional[str] = field(default_factory=lambda: _optional_env("FLEETWATCH_LOG_FILE"))

    @property
    def can_update_agent(self) -> bool:
        return self.can_manage and self.role_level >= 4
