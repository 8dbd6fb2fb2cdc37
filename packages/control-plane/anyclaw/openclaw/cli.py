"""
OpenClaw CLI bridge

Drives the external ``openclaw`` binary scoped to one profile:
  openclaw --profile <name> agents add <id> --workspace <dir> --model <id> --non-interactive
  openclaw --profile <name> channels status --json
  openclaw status --json            (global, not profile-scoped)

Structured output is parsed defensively; anything unparseable is a failed
result, never an exception.
"""

from __future__ import annotations

import json
import logging
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Callable, Sequence

from anyclaw.models import ChannelStatusResult, CommandResult, RoutingBinding, RuntimeHealth
from anyclaw.openclaw.config_editor import ConfigEditor, add_binding, allow_peer
from anyclaw.process import CommandRunner, run_command

logger = logging.getLogger(__name__)


@dataclass
class CliOptions:
    openclaw_bin: str = "openclaw"
    command_timeout: float = 15.0
    status_timeout: float = 10.0


def _parse_json_object(output: str) -> dict[str, Any] | None:
    if not output:
        return None
    try:
        data = json.loads(output)
    except (json.JSONDecodeError, TypeError):
        return None
    return data if isinstance(data, dict) else None


def parse_channel_status(data: dict[str, Any], channel: str = "whatsapp") -> ChannelStatusResult:
    """
    Interpret ``channels status --json``.

    The channel block may sit under ``channels.<channel>`` or directly under
    ``<channel>``. No QR and not connected means the runtime is still
    waiting, which is not an error.
    """
    channels = data.get("channels")
    block = channels.get(channel) if isinstance(channels, dict) else None
    if not isinstance(block, dict):
        block = data.get(channel)
    if not isinstance(block, dict):
        block = {}

    state = block.get("state")
    connected = bool(block.get("connected")) or state == "connected"

    phone = block.get("phone")
    if not phone:
        me = block.get("me")
        phone = me.get("id") if isinstance(me, dict) else None

    qr = block.get("qr")

    return ChannelStatusResult(
        success=True,
        connected=connected,
        phone=str(phone) if phone else None,
        qr=qr if isinstance(qr, str) and qr else None,
        state=state if isinstance(state, str) else None,
        raw=data,
    )


class OpenClawCli:
    def __init__(
        self,
        options: CliOptions,
        config_path_for: Callable[[str], Path],
        runner: CommandRunner = run_command,
    ) -> None:
        self._options = options
        self._config_path_for = config_path_for
        self._run = runner

    async def run(
        self, profile: str, args: Sequence[str], timeout: float | None = None
    ) -> CommandResult:
        argv = [self._options.openclaw_bin, "--profile", profile, *args]
        return await self._run(argv, timeout or self._options.command_timeout)

    async def register_agent(
        self, profile: str, agent_id: str, workspace_path: str, model: str
    ) -> CommandResult:
        result = await self.run(
            profile,
            [
                "agents",
                "add",
                agent_id,
                "--workspace",
                workspace_path,
                "--model",
                model,
                "--non-interactive",
            ],
        )
        if not result.success:
            logger.warning("agents add %s failed in %s: %s", agent_id, profile, result.error)
        return result

    async def channel_status(self, profile: str) -> ChannelStatusResult:
        result = await self.run(
            profile, ["channels", "status", "--json"], self._options.status_timeout
        )
        if not result.success:
            return ChannelStatusResult(success=False, error=result.error)

        data = _parse_json_object(result.output)
        if data is None:
            return ChannelStatusResult(
                success=False,
                error=f"Unparseable channel status: {result.output[:200] or '<empty>'}",
            )
        return parse_channel_status(data)

    async def runtime_status(self) -> RuntimeHealth:
        """Aggregate health of the shared runtime (``openclaw status --json``)."""
        result = await self._run(
            [self._options.openclaw_bin, "status", "--json"], self._options.status_timeout
        )
        data = _parse_json_object(result.output) if result.success else None
        if data is None:
            return RuntimeHealth(running=False)

        agents = data.get("agents")
        sessions = data.get("sessions")
        active = sessions.get("active") if isinstance(sessions, dict) else 0
        return RuntimeHealth(
            running=True,
            agents=len(agents) if isinstance(agents, list) else 0,
            sessions=active if isinstance(active, int) else 0,
        )

    async def bind_agent(self, profile: str, agent_id: str, owner_phone: str) -> CommandResult:
        """Route the owner's DMs to ``agent_id`` and allow-list the owner."""
        editor = ConfigEditor(self._config_path_for(profile))
        binding = RoutingBinding(agent_id=agent_id, peer_id=owner_phone)
        try:
            editor.edit(add_binding(binding), allow_peer(owner_phone))
        except (OSError, ValueError) as e:
            logger.error("Failed to update %s: %s", editor.path, e)
            return CommandResult(success=False, error=f"Failed to update gateway config: {e}")
        return CommandResult(success=True, output=str(editor.path))
