"""Shared test helpers."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Sequence

from anyclaw.gateway.orchestrator import GatewayOrchestrator, OrchestratorOptions
from anyclaw.gateway.ports import PortAllocator
from anyclaw.models import (
    Agent,
    AgentStatus,
    ChannelStatusResult,
    CommandResult,
    RuntimeHealth,
    Tenant,
)


def make_tenant(**overrides) -> Tenant:
    """Create a test tenant with sensible defaults."""
    defaults = dict(
        id="tenant-1",
        phone="+15550001111",
        name="Ada",
    )
    defaults.update(overrides)
    return Tenant(**defaults)


def make_agent(**overrides) -> Agent:
    defaults = dict(
        id="agent-1",
        tenant_id="tenant-1",
        name="Jarvis",
        template_id="assistant",
        personality="Dry wit.",
        rules="- Keep it short",
        status=AgentStatus.CREATED,
        config={"identity_md": "You are Jarvis, Ada's assistant.\n"},
    )
    defaults.update(overrides)
    return Agent(**defaults)


# ─── Fake command runner ──────────────────────────────────


@dataclass
class FakeRunner:
    """Records argv and answers from canned results keyed by argv prefix."""

    responses: dict[tuple[str, ...], CommandResult] = field(default_factory=dict)
    default: CommandResult = field(default_factory=lambda: CommandResult(success=True))
    calls: list[list[str]] = field(default_factory=list)
    timeouts: list[float] = field(default_factory=list)

    def respond(self, *prefix: str, result: CommandResult) -> None:
        self.responses[prefix] = result

    async def __call__(self, argv: Sequence[str], timeout: float) -> CommandResult:
        argv = list(argv)
        self.calls.append(argv)
        self.timeouts.append(timeout)
        for prefix in sorted(self.responses, key=len, reverse=True):
            if tuple(argv[: len(prefix)]) == prefix:
                return self.responses[prefix]
        return self.default


# ─── Stub supervisor / bridge ─────────────────────────────


@dataclass
class StubSupervisor:
    """In-memory stand-in for systemd."""

    active_after_start: bool = True
    not_active_state: str = "failed"
    install_error: str | None = None
    start_error: str | None = None
    installed: dict[str, int] = field(default_factory=dict)
    running: set[str] = field(default_factory=set)
    calls: list[tuple[str, str]] = field(default_factory=list)

    async def install(self, profile: str, port: int) -> CommandResult:
        self.calls.append(("install", profile))
        if self.install_error:
            return CommandResult(success=False, error=self.install_error)
        self.installed[profile] = port
        return CommandResult(success=True)

    async def start(self, profile: str) -> CommandResult:
        self.calls.append(("start", profile))
        if self.start_error:
            return CommandResult(success=False, error=self.start_error)
        if self.active_after_start:
            self.running.add(profile)
        return CommandResult(success=True)

    async def unit_state(self, profile: str) -> str:
        if profile in self.running:
            return "active"
        if profile in self.installed:
            return self.not_active_state
        return "inactive"

    async def query_active(self, profile: str) -> bool:
        return await self.unit_state(profile) == "active"

    async def uninstall(self, profile: str) -> CommandResult:
        self.calls.append(("uninstall", profile))
        self.running.discard(profile)
        self.installed.pop(profile, None)
        return CommandResult(success=True)


@dataclass
class StubBridge:
    """Stand-in for the openclaw CLI."""

    channel: ChannelStatusResult = field(
        default_factory=lambda: ChannelStatusResult(success=True)
    )
    register_error: str | None = None
    bind_error: str | None = None
    registered: list[tuple[str, str, str, str]] = field(default_factory=list)
    bound: list[tuple[str, str, str]] = field(default_factory=list)
    channel_calls: int = 0

    async def register_agent(
        self, profile: str, agent_id: str, workspace_path: str, model: str
    ) -> CommandResult:
        self.registered.append((profile, agent_id, workspace_path, model))
        if self.register_error:
            return CommandResult(success=False, error=self.register_error)
        return CommandResult(success=True)

    async def bind_agent(self, profile: str, agent_id: str, owner_phone: str) -> CommandResult:
        self.bound.append((profile, agent_id, owner_phone))
        if self.bind_error:
            return CommandResult(success=False, error=self.bind_error)
        return CommandResult(success=True)

    async def channel_status(self, profile: str) -> ChannelStatusResult:
        self.channel_calls += 1
        return self.channel

    async def runtime_status(self) -> RuntimeHealth:
        return RuntimeHealth(running=True, agents=len(self.registered), sessions=0)


# ─── Wiring ───────────────────────────────────────────────

BASE_PORT = 19100


def build_orchestrator(store, profiles, supervisor, bridge) -> GatewayOrchestrator:
    return GatewayOrchestrator(
        OrchestratorOptions(
            store=store,
            ports=PortAllocator(store, base_port=BASE_PORT),
            profiles=profiles,
            supervisor=supervisor,
            bridge=bridge,
            resolve_secret=lambda: "sk-ant-test",
            model="anthropic/test-model",
            settle_seconds=0,
        )
    )
