"""
Agent Provisioner

Turns an agent created by the wizard into a live OpenClaw agent inside its
tenant's gateway.

Flow:
  provision(agent) → get or create gateway → install + start if new →
  render identity → build workspace → register in gateway → linking
"""

from __future__ import annotations

import logging
import uuid
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Callable

from anyclaw.errors import ConflictError, NotFoundError
from anyclaw.gateway.orchestrator import GatewayOrchestrator
from anyclaw.models import (
    Agent,
    AgentStatus,
    GatewayStatus,
    ProvisionResult,
    Tenant,
)
from anyclaw.openclaw.workspace import AgentWorkspaceBuilder
from anyclaw.store import Store

logger = logging.getLogger(__name__)

IdentityRenderer = Callable[[Agent], str]


def stored_identity(agent: Agent) -> str:
    """Use the identity text rendered at wizard time, or a minimal default."""
    identity = agent.config.get("identity_md")
    if isinstance(identity, str) and identity:
        return identity

    name = agent.config.get("agentName") or agent.name
    sections = [f"# {name}\n\nYou are {name}, a personal AI assistant on WhatsApp.\n"]
    if agent.personality:
        sections.append(f"## Personality\n{agent.personality}\n")
    if agent.rules:
        sections.append(f"## Rules\n{agent.rules}\n")
    return "\n".join(sections)


@dataclass
class ProvisionerOptions:
    store: Store
    orchestrator: GatewayOrchestrator
    workspaces: AgentWorkspaceBuilder
    render_identity: IdentityRenderer = stored_identity
    agent_prefix: str = "anyclaw"


class AgentProvisioner:
    def __init__(self, options: ProvisionerOptions) -> None:
        self._store = options.store
        self._orchestrator = options.orchestrator
        self._workspaces = options.workspaces
        self._render_identity = options.render_identity
        self._agent_prefix = options.agent_prefix

    def openclaw_agent_id(self, agent_id: str) -> str:
        """Agent id as registered with OpenClaw."""
        return f"{self._agent_prefix}-{agent_id}"

    def get_agent(self, agent_id: str) -> Agent:
        agent = self._store.get_agent(agent_id)
        if agent is None:
            raise NotFoundError("agent", agent_id)
        return agent

    def list_agents(self, tenant_id: str | None = None) -> list[Agent]:
        if tenant_id is not None and self._store.get_tenant(tenant_id) is None:
            raise NotFoundError("tenant", tenant_id)
        return self._store.list_agents(tenant_id)

    def create_agent(
        self,
        tenant_id: str,
        name: str,
        template_id: str,
        personality: str = "",
        rules: str = "",
        config: dict[str, Any] | None = None,
    ) -> Agent:
        """Record an agent from the creation wizard (status ``created``)."""
        if self._store.get_tenant(tenant_id) is None:
            raise NotFoundError("tenant", tenant_id)

        agent = Agent(
            id=uuid.uuid4().hex[:12],
            tenant_id=tenant_id,
            name=name,
            template_id=template_id,
            personality=personality,
            rules=rules,
            config=config or {},
        )
        return self._store.insert_agent(agent)

    async def provision(self, agent_id: str) -> ProvisionResult:
        """
        Provision one agent end to end.

        Rejects agents that are already active. Every failing step marks the
        agent ``error`` before returning; nothing is retried here.
        """
        agent = self.get_agent(agent_id)
        if agent.status == AgentStatus.ACTIVE:
            raise ConflictError("Agent already active")

        tenant = self._store.get_tenant(agent.tenant_id)
        if tenant is None:
            raise NotFoundError("tenant", agent.tenant_id)
        self._store.touch_tenant(tenant.id)

        # Two agents of one tenant must not both start the same new gateway
        async with self._orchestrator.tenant_lock(tenant.id):
            try:
                return await self._provision(agent, tenant)
            except Exception as e:
                logger.exception("Provisioning agent %s failed", agent.id)
                return self._fail(agent, str(e))

    def pause(self, agent_id: str) -> Agent:
        agent = self.get_agent(agent_id)
        return self._store.update_agent(agent.id, status=AgentStatus.PAUSED) or agent

    def confirm_pairing(self, agent_id: str) -> Agent:
        """Mark a linking agent active once its WhatsApp pairing is confirmed."""
        agent = self.get_agent(agent_id)
        if agent.status != AgentStatus.LINKING:
            raise ConflictError(f"Agent is {agent.status.value}, not linking")
        return self._store.update_agent(agent.id, status=AgentStatus.ACTIVE) or agent

    # ─── Private ─────────────────────────────────────────

    async def _provision(self, agent: Agent, tenant: Tenant) -> ProvisionResult:
        # 1. Gateway for the tenant
        gw_result = await self._orchestrator.get_or_create(tenant.id)
        if gw_result.status != "success" or gw_result.gateway is None:
            return self._fail(agent, f"Gateway creation failed: {gw_result.error}")
        gateway = gw_result.gateway

        # 2. Start it if it has never run
        if gateway.status == GatewayStatus.CREATED:
            started = await self._orchestrator.install_and_start(gateway.id)
            if started.status != "success":
                return self._fail(
                    agent, f"Gateway start failed: {started.error}", gateway.id
                )

        # 3. Identity + workspace
        openclaw_id = self.openclaw_agent_id(agent.id)
        identity_md = self._render_identity(agent)
        user_md = agent.config.get("user_md")
        workspace: Path = self._workspaces.build(
            openclaw_id,
            agent.name,
            identity_md,
            user_md if isinstance(user_md, str) else None,
        )

        # 4. Register in the tenant's gateway
        registered = await self._orchestrator.register_agent_in_gateway(
            gateway.id, openclaw_id, str(workspace), tenant.phone
        )
        if registered.status != "success":
            return self._fail(agent, registered.error or "Registration failed", gateway.id)

        # 5. Waiting for the owner to pair WhatsApp
        self._store.update_agent(
            agent.id,
            status=AgentStatus.LINKING,
            gateway_id=gateway.id,
            workspace_path=str(workspace),
        )
        logger.info("Agent %s provisioned as %s in gateway %s", agent.id, openclaw_id, gateway.id)

        return ProvisionResult(
            agent_id=agent.id,
            status="success",
            openclaw_agent_id=openclaw_id,
            gateway_id=gateway.id,
            workspace_path=str(workspace),
        )

    def _fail(self, agent: Agent, error: str, gateway_id: str | None = None) -> ProvisionResult:
        logger.error("Agent %s provisioning failed: %s", agent.id, error)
        self._store.update_agent(agent.id, status=AgentStatus.ERROR)
        return ProvisionResult(
            agent_id=agent.id, status="failed", gateway_id=gateway_id, error=error
        )
