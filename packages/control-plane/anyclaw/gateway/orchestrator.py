"""
Gateway Orchestrator

Owns the lifecycle of a tenant's OpenClaw gateway and records every state
transition in the store:

  get_or_create(tenant) → allocate port → write profile → insert (created)
  install_and_start(gw) → install unit → start → starting → settle → pairing | error
  get_status / get_qr_code → lazy reconciliation against systemd + the runtime
  remove(gw)            → stopped → uninstall unit → drop profile → delete record

Lower layers return results instead of raising, so a failure is always
recorded as ``error`` before it is reported to the caller.
"""

from __future__ import annotations

import asyncio
import logging
import re
import uuid
from contextlib import asynccontextmanager
from dataclasses import dataclass, field
from typing import AsyncIterator, Protocol

from sqlalchemy.exc import IntegrityError, SQLAlchemyError

from anyclaw.config import DEFAULT_MODEL
from anyclaw.errors import ConflictError, NotFoundError, PortAllocationError
from anyclaw.gateway.ports import PortAllocator
from anyclaw.gateway.profiles import ProfileManager, SecretResolver
from anyclaw.models import (
    ChannelStatusResult,
    CommandResult,
    Gateway,
    GatewayResult,
    GatewayStatus,
    GatewayStatusReport,
    OperationResult,
    QrCodeResult,
    RuntimeHealth,
)
from anyclaw.store import Store

logger = logging.getLogger(__name__)

_GATEWAY_ID_RE = re.compile(r"^[A-Za-z0-9_-]{1,64}$")


class ServiceSupervisorProtocol(Protocol):
    """Minimal service-manager interface for gateway units."""

    async def install(self, profile: str, port: int) -> CommandResult: ...
    async def start(self, profile: str) -> CommandResult: ...
    async def unit_state(self, profile: str) -> str: ...
    async def query_active(self, profile: str) -> bool: ...
    async def uninstall(self, profile: str) -> CommandResult: ...


class RuntimeBridge(Protocol):
    """Operations the orchestrator needs from the external runtime."""

    async def register_agent(
        self, profile: str, agent_id: str, workspace_path: str, model: str
    ) -> CommandResult: ...
    async def bind_agent(self, profile: str, agent_id: str, owner_phone: str) -> CommandResult: ...
    async def channel_status(self, profile: str) -> ChannelStatusResult: ...
    async def runtime_status(self) -> RuntimeHealth: ...


@dataclass
class _TenantLock:
    lock: asyncio.Lock = field(default_factory=asyncio.Lock)
    users: int = 0


@dataclass
class OrchestratorOptions:
    store: Store
    ports: PortAllocator
    profiles: ProfileManager
    supervisor: ServiceSupervisorProtocol
    bridge: RuntimeBridge
    resolve_secret: SecretResolver
    model: str = DEFAULT_MODEL
    settle_seconds: float = 3.0
    profile_prefix: str = "anyclaw"


class GatewayOrchestrator:
    def __init__(self, options: OrchestratorOptions) -> None:
        self._store = options.store
        self._ports = options.ports
        self._profiles = options.profiles
        self._supervisor = options.supervisor
        self._bridge = options.bridge
        self._resolve_secret = options.resolve_secret
        self._model = options.model
        self._settle_seconds = options.settle_seconds
        self._profile_prefix = options.profile_prefix
        self._tenant_locks: dict[str, _TenantLock] = {}

    def profile_for(self, gateway_id: str) -> str:
        """Derive the OpenClaw profile name from a gateway id."""
        return f"{self._profile_prefix}-{gateway_id}"

    @asynccontextmanager
    async def tenant_lock(self, tenant_id: str) -> AsyncIterator[None]:
        """
        Serialise multi-step provisioning for one tenant in this process.

        The entry is dropped once no holder or waiter remains.
        """
        entry = self._tenant_locks.get(tenant_id)
        if entry is None:
            entry = self._tenant_locks[tenant_id] = _TenantLock()
        entry.users += 1
        try:
            async with entry.lock:
                yield
        finally:
            entry.users -= 1
            if entry.users == 0:
                del self._tenant_locks[tenant_id]

    # ─── Queries ─────────────────────────────────────────

    def get_gateway(self, gateway_id: str) -> Gateway:
        gateway = self._store.get_gateway(gateway_id)
        if gateway is None:
            raise NotFoundError("gateway", gateway_id)
        return gateway

    def list_gateways(self) -> list[Gateway]:
        return self._store.list_gateways()

    async def runtime_health(self) -> RuntimeHealth:
        return await self._bridge.runtime_status()

    # ─── Lifecycle ───────────────────────────────────────

    async def get_or_create(self, tenant_id: str) -> GatewayResult:
        """Return the tenant's gateway, creating it on first use."""
        existing = self._store.get_gateway_for_tenant(tenant_id)
        if existing is not None:
            return GatewayResult(status="success", gateway=existing)

        if self._store.get_tenant(tenant_id) is None:
            raise NotFoundError("tenant", tenant_id)

        gateway_id = uuid.uuid4().hex[:12]
        profile = self.profile_for(gateway_id)

        try:
            port = self._ports.allocate()
            self._profiles.provision_workspace(profile, port, self._resolve_secret)
            # Insert last: a failure above leaves no record behind
            gateway = self._store.insert_gateway(
                Gateway(id=gateway_id, tenant_id=tenant_id, profile=profile, port=port)
            )
        except IntegrityError as e:
            self._discard_profile(profile)
            winner = self._store.get_gateway_for_tenant(tenant_id)
            if winner is not None:
                logger.info("Tenant %s gateway created concurrently; using %s", tenant_id, winner.id)
                return GatewayResult(status="success", gateway=winner)
            logger.error("Gateway insert for tenant %s rejected: %s", tenant_id, e.orig)
            return GatewayResult(status="failed", error=f"Gateway creation conflicted: {e.orig}")
        except (PortAllocationError, OSError, SQLAlchemyError) as e:
            logger.exception("Gateway creation failed for tenant %s", tenant_id)
            return GatewayResult(status="failed", error=str(e))

        logger.info(
            "Created gateway %s for tenant %s (profile %s, port %d)",
            gateway.id,
            tenant_id,
            gateway.profile,
            gateway.port,
        )
        return GatewayResult(status="success", gateway=gateway)

    async def install_and_start(self, gateway_id: str) -> OperationResult:
        """
        Install the gateway's unit and start it.

        Not idempotent: a second call re-installs and restarts the unit, so a
        ``connected`` gateway is refused.
        A unit that is not active after the settle window is recorded as
        ``error`` and is not retried here.
        """
        gateway = self.get_gateway(gateway_id)
        if gateway.status == GatewayStatus.CONNECTED:
            # A restart would drop the paired WhatsApp session
            raise ConflictError("Gateway already connected")

        installed = await self._supervisor.install(gateway.profile, gateway.port)
        if not installed.success:
            return self._fail(gateway, installed.error or "Service install failed")

        started = await self._supervisor.start(gateway.profile)
        if not started.success:
            return self._fail(gateway, started.error or "Service start failed")

        self._store.update_gateway(gateway.id, status=GatewayStatus.STARTING)

        # systemd start is asynchronous; readiness is only observable by polling
        await asyncio.sleep(self._settle_seconds)

        state = await self._supervisor.unit_state(gateway.profile)
        if state != "active":
            return self._fail(gateway, f"Service status: {state}")

        self._store.update_gateway(gateway.id, status=GatewayStatus.PAIRING)
        logger.info("Gateway %s active, waiting for WhatsApp pairing", gateway.id)
        return OperationResult(
            gateway_id=gateway.id,
            status="success",
            message="Gateway started, ready for WhatsApp pairing",
        )

    async def register_agent_in_gateway(
        self,
        gateway_id: str,
        agent_id: str,
        workspace_path: str,
        owner_phone: str,
    ) -> OperationResult:
        """Register an agent with the gateway's runtime and route the owner's DMs to it."""
        gateway = self.get_gateway(gateway_id)

        registered = await self._bridge.register_agent(
            gateway.profile, agent_id, workspace_path, self._model
        )
        if not registered.success:
            return OperationResult(
                gateway_id=gateway.id,
                status="failed",
                error=f"Agent registration failed: {registered.error}",
            )

        bound = await self._bridge.bind_agent(gateway.profile, agent_id, owner_phone)
        if not bound.success:
            return OperationResult(gateway_id=gateway.id, status="failed", error=bound.error)

        logger.info("Registered agent %s in gateway %s", agent_id, gateway.id)
        return OperationResult(
            gateway_id=gateway.id, status="success", message="Agent registered in gateway"
        )

    async def get_status(self, gateway_id: str) -> GatewayStatusReport:
        """Recorded status, upgraded to ``connected`` when the runtime reports pairing done."""
        gateway = self.get_gateway(gateway_id)
        service_active = await self._supervisor.query_active(gateway.profile)

        if service_active and gateway.status != GatewayStatus.CONNECTED:
            channel = await self._bridge.channel_status(gateway.profile)
            if channel.success and channel.connected:
                gateway = self._mark_connected(gateway, channel.phone)
            elif not channel.success:
                logger.debug("Channel status for %s unavailable: %s", gateway.id, channel.error)

        return GatewayStatusReport(
            gateway_id=gateway.id,
            status=gateway.status,
            phone=gateway.phone,
            service_active=service_active,
        )

    async def get_qr_code(self, gateway_id: str) -> QrCodeResult:
        gateway = self.get_gateway(gateway_id)

        channel = await self._bridge.channel_status(gateway.profile)
        if not channel.success:
            return QrCodeResult(gateway_id=gateway.id, status="failed", error=channel.error)

        if channel.qr:
            return QrCodeResult(
                gateway_id=gateway.id, status="success", state="qr_ready", qr=channel.qr
            )

        if channel.connected:
            self._mark_connected(gateway, channel.phone)
            return QrCodeResult(gateway_id=gateway.id, status="success", state="connected")

        return QrCodeResult(
            gateway_id=gateway.id, status="success", state=channel.state or "waiting"
        )

    async def remove(self, gateway_id: str) -> OperationResult:
        """
        Tear a gateway down: unit first, then profile state, then the record.

        Every step tolerates absence, so re-running after a partial teardown
        (or on an id whose record is already gone) completes cleanly.
        """
        gateway = self._store.get_gateway(gateway_id)
        if gateway is None and not _GATEWAY_ID_RE.match(gateway_id):
            raise NotFoundError("gateway", gateway_id)

        profile = gateway.profile if gateway else self.profile_for(gateway_id)

        if gateway is not None:
            self._store.update_gateway(gateway.id, status=GatewayStatus.STOPPED)

        uninstalled = await self._supervisor.uninstall(profile)
        if not uninstalled.success:
            return self._fail_removal(gateway_id, gateway, uninstalled.error or "Unit removal failed")

        try:
            self._profiles.teardown_workspace(profile)
        except OSError as e:
            logger.exception("Failed to remove profile state for %s", profile)
            return self._fail_removal(gateway_id, gateway, f"Failed to remove profile state: {e}")

        self._store.delete_gateway(gateway_id)
        logger.info("Removed gateway %s (profile %s)", gateway_id, profile)
        return OperationResult(gateway_id=gateway_id, status="success", message="Gateway removed")

    # ─── Private ─────────────────────────────────────────

    def _fail(self, gateway: Gateway, error: str) -> OperationResult:
        logger.error("Gateway %s failed: %s", gateway.id, error)
        self._store.update_gateway(gateway.id, status=GatewayStatus.ERROR)
        return OperationResult(gateway_id=gateway.id, status="failed", error=error)

    def _fail_removal(
        self, gateway_id: str, gateway: Gateway | None, error: str
    ) -> OperationResult:
        if gateway is not None:
            return self._fail(gateway, error)
        logger.error("Teardown of gateway %s failed: %s", gateway_id, error)
        return OperationResult(gateway_id=gateway_id, status="failed", error=error)

    def _mark_connected(self, gateway: Gateway, phone: str | None) -> Gateway:
        updated = self._store.update_gateway(
            gateway.id, status=GatewayStatus.CONNECTED, phone=phone
        )
        logger.info("Gateway %s connected (%s)", gateway.id, phone or "unknown number")
        return updated or gateway

    def _discard_profile(self, profile: str) -> None:
        try:
            self._profiles.teardown_workspace(profile)
        except OSError:
            logger.warning("Orphaned profile state left for %s", profile, exc_info=True)
