"""
Runtime settings for the control plane.

Read once from the environment at startup and handed to each component
as plain options. Nothing below this module touches ``os.environ``.
"""

from __future__ import annotations

import os
from dataclasses import dataclass, field
from pathlib import Path

DEFAULT_MODEL = "anthropic/claude-sonnet-4-20250514"
DEFAULT_BASE_PORT = 19100


def _env_float(name: str, default: float) -> float:
    raw = os.getenv(name)
    return float(raw) if raw else default


def _env_int(name: str, default: int) -> int:
    raw = os.getenv(name)
    return int(raw) if raw else default


@dataclass
class Settings:
    openclaw_bin: str = "openclaw"
    agents_base_dir: Path = Path("/root/agents/anyclaw")
    master_config_path: Path = Path("/root/.openclaw/openclaw.json")
    state_root: Path = field(default_factory=Path.home)
    unit_dir: Path = Path("/etc/systemd/system")
    db_path: Path = Path("data/anyclaw.db")
    model: str = DEFAULT_MODEL
    anthropic_api_key: str | None = None
    base_port: int = DEFAULT_BASE_PORT
    profile_prefix: str = "anyclaw"
    settle_seconds: float = 3.0
    chromium_path: str = "/snap/bin/chromium"
    node_max_old_space_mb: int = 384
    log_level: str = "INFO"

    # Timeouts (seconds)
    cli_timeout: float = 15.0
    status_timeout: float = 10.0
    systemctl_timeout: float = 10.0
    is_active_timeout: float = 5.0

    @classmethod
    def from_env(cls) -> "Settings":
        return cls(
            openclaw_bin=os.getenv("OPENCLAW_BIN", "openclaw"),
            agents_base_dir=Path(os.getenv("AGENTS_BASE_DIR", "/root/agents/anyclaw")),
            master_config_path=Path(
                os.getenv("OPENCLAW_CONFIG", "/root/.openclaw/openclaw.json")
            ),
            state_root=Path(os.getenv("ANYCLAW_STATE_ROOT", str(Path.home()))),
            unit_dir=Path(os.getenv("ANYCLAW_UNIT_DIR", "/etc/systemd/system")),
            db_path=Path(os.getenv("ANYCLAW_DB_PATH", "data/anyclaw.db")),
            model=os.getenv("OPENCLAW_MODEL", DEFAULT_MODEL),
            anthropic_api_key=os.getenv("ANTHROPIC_API_KEY") or None,
            base_port=_env_int("ANYCLAW_BASE_PORT", DEFAULT_BASE_PORT),
            settle_seconds=_env_float("ANYCLAW_SETTLE_SECONDS", 3.0),
            chromium_path=os.getenv("ANYCLAW_CHROMIUM_PATH", "/snap/bin/chromium"),
            log_level=os.getenv("ANYCLAW_LOG_LEVEL", "INFO"),
        )
