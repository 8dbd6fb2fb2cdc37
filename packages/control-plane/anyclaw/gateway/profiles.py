"""
Profile workspaces.

Each gateway runs ``openclaw --profile <name>``, which keeps all of its
state under ``<state_root>/.openclaw-<name>/`` with the runtime config in
``openclaw.json`` inside it.
"""

from __future__ import annotations

import json
import logging
import shutil
from dataclasses import dataclass
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Callable

from anyclaw.config import DEFAULT_MODEL

logger = logging.getLogger(__name__)

RUNTIME_VERSION = "2026.2.14"
CONFIG_FILENAME = "openclaw.json"

SecretResolver = Callable[[], str]


def master_config_secret_resolver(
    env_api_key: str | None, master_config_path: Path
) -> SecretResolver:
    """
    Resolve the Anthropic key for new profiles.

    The process-wide key wins; otherwise it is read from the shared master
    config. A missing key resolves to "" and surfaces later as a
    registration failure.
    """

    def resolve() -> str:
        if env_api_key:
            return env_api_key
        try:
            config = json.loads(master_config_path.read_text(encoding="utf-8"))
        except (OSError, ValueError):
            logger.warning("No provider key available from %s", master_config_path)
            return ""
        try:
            key = config["models"]["providers"]["anthropic"]["apiKey"]
        except (KeyError, TypeError):
            return ""
        return key if isinstance(key, str) else ""

    return resolve


@dataclass
class ProfileOptions:
    state_root: Path
    model: str = DEFAULT_MODEL


class ProfileManager:
    def __init__(self, options: ProfileOptions) -> None:
        self._state_root = Path(options.state_root)
        self._model = options.model

    def state_dir(self, profile: str) -> Path:
        return self._state_root / f".openclaw-{profile}"

    def config_path(self, profile: str) -> Path:
        return self.state_dir(profile) / CONFIG_FILENAME

    def build_initial_config(self, port: int, api_key: str) -> dict[str, Any]:
        """Minimal openclaw.json: loopback gateway, allowlist-only WhatsApp, no agents."""
        return {
            "meta": {
                "lastTouchedVersion": RUNTIME_VERSION,
                "lastTouchedAt": datetime.now(timezone.utc).isoformat(),
            },
            "models": {
                "providers": {
                    "anthropic": {
                        "baseUrl": "https://api.anthropic.com",
                        "apiKey": api_key,
                        "models": [
                            {
                                "id": self._model,
                                "name": "Claude Sonnet",
                                "isDefault": True,
                            },
                        ],
                    },
                },
            },
            "gateway": {
                "mode": "local",
                "bind": "loopback",
                "port": port,
            },
            "channels": {
                "whatsapp": {
                    "enabled": True,
                    "dmPolicy": "allowlist",
                    "groupPolicy": "allowlist",
                    "allowFrom": [],
                    "groupAllowFrom": [],
                    "ackEmoji": "👀",
                },
            },
            "agents": [],
            "bindings": [],
        }

    def provision_workspace(
        self, profile: str, port: int, resolve_secret: SecretResolver
    ) -> Path:
        """Create the profile state dir and write its initial config. Raises ``OSError``."""
        state_dir = self.state_dir(profile)
        state_dir.mkdir(parents=True, exist_ok=True)

        config = self.build_initial_config(port, resolve_secret())
        config_path = self.config_path(profile)
        config_path.write_text(json.dumps(config, indent=2), encoding="utf-8")

        logger.info("Provisioned profile %s (port %d) at %s", profile, port, state_dir)
        return config_path

    def teardown_workspace(self, profile: str) -> None:
        """Remove the profile state dir. Absent is fine; other ``OSError`` propagates."""
        state_dir = self.state_dir(profile)
        if not state_dir.exists():
            return
        shutil.rmtree(state_dir)
        logger.info("Removed profile state %s", state_dir)
