"""
Read-modify-write access to a profile's openclaw.json.

The openclaw CLI has no atomic command for bindings or allow-lists, so
those are edited in the file directly. The gateway process may rewrite
the same file concurrently; there is no lock it would honour, so a write
from either side can be lost. All edits for one operation are applied in
a single read -> mutate -> write cycle to keep that window small.
"""

from __future__ import annotations

import json
import logging
import os
import tempfile
from pathlib import Path
from typing import Any, Callable

from anyclaw.models import RoutingBinding

logger = logging.getLogger(__name__)

Mutator = Callable[[dict[str, Any]], None]


class ConfigEditor:
    def __init__(self, path: Path) -> None:
        self._path = Path(path)

    @property
    def path(self) -> Path:
        return self._path

    def read(self) -> dict[str, Any]:
        """Load the document. Raises ``OSError`` or ``ValueError`` (bad JSON / not an object)."""
        config = json.loads(self._path.read_text(encoding="utf-8"))
        if not isinstance(config, dict):
            raise ValueError(f"{self._path} does not contain a JSON object")
        return config

    def write(self, config: dict[str, Any]) -> None:
        """Replace the file atomically; a failed write leaves the old document in place."""
        fd, tmp_name = tempfile.mkstemp(
            dir=self._path.parent, prefix=f".{self._path.name}.", suffix=".tmp"
        )
        try:
            with os.fdopen(fd, "w", encoding="utf-8") as f:
                json.dump(config, f, indent=2)
            os.replace(tmp_name, self._path)
        except BaseException:
            Path(tmp_name).unlink(missing_ok=True)
            raise

    def edit(self, *mutators: Mutator) -> dict[str, Any]:
        config = self.read()
        for mutate in mutators:
            mutate(config)
        self.write(config)
        return config


# ─── Mutators ────────────────────────────────────────────


def add_binding(binding: RoutingBinding) -> Mutator:
    """Append the binding unless one already exists for the same agent."""

    def mutate(config: dict[str, Any]) -> None:
        bindings = config.get("bindings")
        if not isinstance(bindings, list):
            bindings = []
            config["bindings"] = bindings

        if any(
            isinstance(b, dict) and b.get("agentId") == binding.agent_id for b in bindings
        ):
            return
        bindings.append(binding.to_config())

    return mutate


def allow_peer(peer_id: str, channel: str = "whatsapp") -> Mutator:
    """Add ``peer_id`` to the channel's DM and group allow-lists, once each."""

    def mutate(config: dict[str, Any]) -> None:
        channels = config.get("channels")
        if not isinstance(channels, dict):
            channels = {}
            config["channels"] = channels

        settings = channels.get(channel)
        if not isinstance(settings, dict):
            settings = {}
            channels[channel] = settings

        for key in ("allowFrom", "groupAllowFrom"):
            entries = settings.get(key)
            if not isinstance(entries, list):
                entries = []
                settings[key] = entries
            if peer_id not in entries:
                entries.append(peer_id)

    return mutate
