"""Agent workspaces: the identity files an OpenClaw agent reads on startup."""

from __future__ import annotations

import logging
from datetime import datetime, timezone
from pathlib import Path

logger = logging.getLogger(__name__)


class AgentWorkspaceBuilder:
    def __init__(self, base_dir: Path) -> None:
        self._base_dir = Path(base_dir)

    def workspace_path(self, agent_id: str) -> Path:
        return self._base_dir / agent_id

    def build(
        self,
        agent_id: str,
        name: str,
        identity_md: str,
        user_md: str | None = None,
    ) -> Path:
        """
        Create or refresh an agent workspace.

        IDENTITY.md is written verbatim. MEMORY.md is reset with a fresh
        creation stamp on every call. Raises ``OSError``.
        """
        workspace = self.workspace_path(agent_id)
        workspace.mkdir(parents=True, exist_ok=True)

        (workspace / "IDENTITY.md").write_text(identity_md, encoding="utf-8")

        if user_md:
            (workspace / "USER.md").write_text(user_md, encoding="utf-8")

        created = datetime.now(timezone.utc).isoformat()
        (workspace / "MEMORY.md").write_text(
            f"# Memory for {name}\n\nCreated: {created}\n", encoding="utf-8"
        )

        logger.info("Built workspace for %s at %s", agent_id, workspace)
        return workspace
