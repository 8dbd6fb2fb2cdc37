"""
Core models for AnyClaw multi-tenancy.

Each tenant owns one OpenClaw gateway (an isolated ``--profile`` running as
its own systemd unit) and any number of agents registered inside it.
"""

from __future__ import annotations

from datetime import datetime
from enum import Enum
from typing import Any

from pydantic import BaseModel, ConfigDict, Field


# ─── Tenant ──────────────────────────────────────────────


class Tenant(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: str
    phone: str
    name: str
    created_at: datetime = Field(default_factory=datetime.now)
    last_seen: datetime = Field(default_factory=datetime.now)


# ─── Gateway ─────────────────────────────────────────────


class GatewayStatus(str, Enum):
    CREATED = "created"
    STARTING = "starting"
    PAIRING = "pairing"
    CONNECTED = "connected"
    STOPPED = "stopped"
    ERROR = "error"


class Gateway(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: str
    tenant_id: str
    profile: str
    port: int
    status: GatewayStatus = GatewayStatus.CREATED
    phone: str | None = None
    created_at: datetime = Field(default_factory=datetime.now)
    updated_at: datetime = Field(default_factory=datetime.now)


# ─── Agent ───────────────────────────────────────────────


class AgentStatus(str, Enum):
    CREATED = "created"
    LINKING = "linking"
    ACTIVE = "active"
    PAUSED = "paused"
    ERROR = "error"


class Agent(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: str
    tenant_id: str
    name: str
    template_id: str
    personality: str = ""
    rules: str = ""
    status: AgentStatus = AgentStatus.CREATED
    gateway_id: str | None = None
    workspace_path: str | None = None
    config: dict[str, Any] = Field(default_factory=dict)
    created_at: datetime = Field(default_factory=datetime.now)
    updated_at: datetime = Field(default_factory=datetime.now)


# ─── OpenClaw runtime ────────────────────────────────────


class CommandResult(BaseModel):
    """Outcome of one bounded external command (openclaw or systemctl)."""

    success: bool
    output: str = ""
    error: str | None = None
    returncode: int | None = None


class ChannelStatusResult(BaseModel):
    """Parsed ``channels status --json`` for the WhatsApp channel."""

    success: bool
    connected: bool = False
    phone: str | None = None
    qr: str | None = None
    state: str | None = None
    raw: dict[str, Any] | None = None
    error: str | None = None


class RuntimeHealth(BaseModel):
    running: bool
    agents: int = 0
    sessions: int = 0


class RoutingBinding(BaseModel):
    """Mirrors an OpenClaw bindings[] entry."""

    agent_id: str
    channel: str = "whatsapp"
    peer_kind: str = "dm"
    peer_id: str

    def to_config(self) -> dict[str, Any]:
        return {
            "agentId": self.agent_id,
            "match": {
                "channel": self.channel,
                "peer": {"kind": self.peer_kind, "id": self.peer_id},
            },
        }


# ─── Operation Results ───────────────────────────────────


class GatewayResult(BaseModel):
    status: str  # "success" | "failed"
    gateway: Gateway | None = None
    error: str | None = None


class OperationResult(BaseModel):
    gateway_id: str
    status: str  # "success" | "failed"
    message: str | None = None
    error: str | None = None


class GatewayStatusReport(BaseModel):
    gateway_id: str
    status: GatewayStatus
    phone: str | None = None
    service_active: bool = False


class QrCodeResult(BaseModel):
    gateway_id: str
    status: str  # "success" | "failed"
    state: str | None = None  # "qr_ready" | "connected" | raw runtime state
    qr: str | None = None
    error: str | None = None


class ProvisionResult(BaseModel):
    agent_id: str
    status: str  # "success" | "failed"
    openclaw_agent_id: str | None = None
    gateway_id: str | None = None
    workspace_path: str | None = None
    error: str | None = None
