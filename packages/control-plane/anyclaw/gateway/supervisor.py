"""
Systemd supervision of per-profile gateway processes.

One unit per profile: ``openclaw-<profile>.service`` running
``openclaw --profile <profile> gateway --port <port>``. Every method returns
a ``CommandResult``; ``is-active`` is the ground truth for reconciling the
recorded gateway status.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from pathlib import Path

from anyclaw.models import CommandResult
from anyclaw.process import CommandRunner, run_command

logger = logging.getLogger(__name__)


@dataclass
class SupervisorOptions:
    unit_dir: Path
    openclaw_bin: str = "openclaw"
    systemctl_bin: str = "systemctl"
    chromium_path: str = "/snap/bin/chromium"
    node_max_old_space_mb: int = 384
    restart_sec: int = 10
    command_timeout: float = 10.0
    is_active_timeout: float = 5.0


class ServiceSupervisor:
    def __init__(self, options: SupervisorOptions, runner: CommandRunner = run_command) -> None:
        self._options = options
        self._unit_dir = Path(options.unit_dir)
        self._run = runner

    def unit_name(self, profile: str) -> str:
        return f"openclaw-{profile}"

    def unit_path(self, profile: str) -> Path:
        return self._unit_dir / f"{self.unit_name(profile)}.service"

    def render_unit(self, profile: str, port: int) -> str:
        opts = self._options
        return f"""[Unit]
Description=OpenClaw Gateway ({profile})
After=network.target

[Service]
Type=simple
User=root
Environment=NODE_OPTIONS=--max-old-space-size={opts.node_max_old_space_mb}
Environment=PUPPETEER_EXECUTABLE_PATH={opts.chromium_path}
Environment=CHROME_PATH={opts.chromium_path}
ExecStart={opts.openclaw_bin} --profile "{profile}" gateway --port {port}
Restart=always
RestartSec={opts.restart_sec}

[Install]
WantedBy=multi-user.target
"""

    async def install(self, profile: str, port: int) -> CommandResult:
        """Write the unit file, reload systemd and enable the unit."""
        unit_path = self.unit_path(profile)
        try:
            unit_path.parent.mkdir(parents=True, exist_ok=True)
            unit_path.write_text(self.render_unit(profile, port), encoding="utf-8")
        except OSError as e:
            logger.error("Failed to write unit file %s: %s", unit_path, e)
            return CommandResult(success=False, error=f"Failed to write unit file: {e}")

        result = await self._systemctl("daemon-reload")
        if not result.success:
            return CommandResult(
                success=False, error=f"Failed to reload systemd: {result.error}"
            )

        result = await self._systemctl("enable", self.unit_name(profile))
        if not result.success:
            return CommandResult(
                success=False, error=f"Failed to enable service: {result.error}"
            )

        logger.info("Installed unit %s", unit_path)
        return CommandResult(success=True, output=str(unit_path))

    async def start(self, profile: str) -> CommandResult:
        result = await self._systemctl("start", self.unit_name(profile))
        if not result.success:
            return CommandResult(
                success=False, error=f"Failed to start service: {result.error}"
            )
        return result

    async def stop(self, profile: str) -> CommandResult:
        return await self._systemctl("stop", self.unit_name(profile))

    async def unit_state(self, profile: str) -> str:
        """Raw ``systemctl is-active`` answer ("active", "failed", "inactive", ...)."""
        result = await self._run(
            [self._options.systemctl_bin, "is-active", self.unit_name(profile)],
            self._options.is_active_timeout,
        )
        # is-active exits non-zero for anything but "active" and prints the state
        state = result.output or (result.error or "")
        return state.strip().splitlines()[0] if state.strip() else "unknown"

    async def query_active(self, profile: str) -> bool:
        return await self.unit_state(profile) == "active"

    async def uninstall(self, profile: str) -> CommandResult:
        """Stop, disable and delete the unit. A unit that does not exist is fine."""
        name = self.unit_name(profile)

        # Either may fail for a unit that was never installed
        stopped = await self.stop(profile)
        if not stopped.success:
            logger.debug("systemctl stop %s: %s", name, stopped.error)
        disabled = await self._systemctl("disable", name)
        if not disabled.success:
            logger.debug("systemctl disable %s: %s", name, disabled.error)

        unit_path = self.unit_path(profile)
        if unit_path.exists():
            try:
                unit_path.unlink()
            except OSError as e:
                return CommandResult(success=False, error=f"Failed to remove unit file: {e}")
            result = await self._systemctl("daemon-reload")
            if not result.success:
                return CommandResult(
                    success=False, error=f"Failed to reload systemd: {result.error}"
                )
            logger.info("Removed unit %s", unit_path)

        return CommandResult(success=True)

    async def _systemctl(self, *args: str) -> CommandResult:
        return await self._run(
            [self._options.systemctl_bin, *args], self._options.command_timeout
        )
