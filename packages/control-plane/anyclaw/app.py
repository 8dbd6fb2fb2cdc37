"""
AnyClaw: FastAPI application.

Gateway lifecycle + agent provisioning endpoints for the web front end.
"""

from __future__ import annotations

import logging
import uuid
from contextlib import asynccontextmanager
from typing import Any

from fastapi import FastAPI, HTTPException, Request
from fastapi.responses import JSONResponse
from pydantic import BaseModel, Field
from sqlalchemy.exc import IntegrityError

from anyclaw.config import Settings
from anyclaw.errors import ConflictError, NotFoundError
from anyclaw.gateway.orchestrator import GatewayOrchestrator, OrchestratorOptions
from anyclaw.gateway.ports import PortAllocator
from anyclaw.gateway.profiles import (
    ProfileManager,
    ProfileOptions,
    master_config_secret_resolver,
)
from anyclaw.gateway.supervisor import ServiceSupervisor, SupervisorOptions
from anyclaw.models import Agent, Gateway, GatewayStatus, Tenant
from anyclaw.openclaw.cli import CliOptions, OpenClawCli
from anyclaw.openclaw.provisioner import AgentProvisioner, ProvisionerOptions
from anyclaw.openclaw.workspace import AgentWorkspaceBuilder
from anyclaw.store import Store

logger = logging.getLogger(__name__)

# ─── App state ────────────────────────────────────────────

_store: Store | None = None
_orchestrator: GatewayOrchestrator | None = None
_provisioner: AgentProvisioner | None = None


def get_store() -> Store:
    if _store is None:
        raise RuntimeError("Store not initialized")
    return _store


def get_orchestrator() -> GatewayOrchestrator:
    if _orchestrator is None:
        raise RuntimeError("Orchestrator not initialized")
    return _orchestrator


def get_provisioner() -> AgentProvisioner:
    if _provisioner is None:
        raise RuntimeError("Provisioner not initialized")
    return _provisioner


def build_components(
    settings: Settings, store: Store
) -> tuple[GatewayOrchestrator, AgentProvisioner]:
    """Wire the orchestration stack from settings."""
    profiles = ProfileManager(
        ProfileOptions(state_root=settings.state_root, model=settings.model)
    )
    supervisor = ServiceSupervisor(
        SupervisorOptions(
            unit_dir=settings.unit_dir,
            openclaw_bin=settings.openclaw_bin,
            chromium_path=settings.chromium_path,
            node_max_old_space_mb=settings.node_max_old_space_mb,
            command_timeout=settings.systemctl_timeout,
            is_active_timeout=settings.is_active_timeout,
        )
    )
    bridge = OpenClawCli(
        CliOptions(
            openclaw_bin=settings.openclaw_bin,
            command_timeout=settings.cli_timeout,
            status_timeout=settings.status_timeout,
        ),
        config_path_for=profiles.config_path,
    )
    orchestrator = GatewayOrchestrator(
        OrchestratorOptions(
            store=store,
            ports=PortAllocator(store, base_port=settings.base_port),
            profiles=profiles,
            supervisor=supervisor,
            bridge=bridge,
            resolve_secret=master_config_secret_resolver(
                settings.anthropic_api_key, settings.master_config_path
            ),
            model=settings.model,
            settle_seconds=settings.settle_seconds,
            profile_prefix=settings.profile_prefix,
        )
    )
    provisioner = AgentProvisioner(
        ProvisionerOptions(
            store=store,
            orchestrator=orchestrator,
            workspaces=AgentWorkspaceBuilder(settings.agents_base_dir),
        )
    )
    return orchestrator, provisioner


# ─── Request/Response models ─────────────────────────────


class CreateTenantRequest(BaseModel):
    id: str | None = None
    phone: str
    name: str


class CreateGatewayRequest(BaseModel):
    tenant_id: str


class CreateAgentRequest(BaseModel):
    tenant_id: str
    name: str
    template_id: str = "assistant"
    personality: str = ""
    rules: str = ""
    identity_md: str | None = None
    config: dict[str, Any] = Field(default_factory=dict)


class GatewayResponse(BaseModel):
    id: str
    tenant_id: str
    profile: str
    port: int
    status: GatewayStatus
    phone: str | None = None
    service_active: bool | None = None


class QrResponse(BaseModel):
    qr: str | None = None
    status: str


class HealthResponse(BaseModel):
    status: str
    runtime_running: bool
    gateway_count: int


def _gateway_response(gateway: Gateway, **overrides: Any) -> GatewayResponse:
    data = gateway.model_dump(include={"id", "tenant_id", "profile", "port", "status", "phone"})
    data.update(overrides)
    return GatewayResponse(**data)


# ─── App setup ────────────────────────────────────────────


def create_app(settings: Settings | None = None) -> FastAPI:
    """Create the FastAPI app with dependency injection."""
    settings = settings or Settings()

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        global _store, _orchestrator, _provisioner

        _store = Store.open(settings.db_path)
        _orchestrator, _provisioner = build_components(settings, _store)

        yield

        if _store:
            _store.dispose()

    app = FastAPI(
        title="AnyClaw",
        description="Per-user WhatsApp AI agents on isolated OpenClaw gateways",
        version="0.1.0",
        lifespan=lifespan,
    )

    @app.exception_handler(NotFoundError)
    async def not_found(request: Request, exc: NotFoundError):
        return JSONResponse(status_code=404, content={"detail": str(exc)})

    @app.exception_handler(ConflictError)
    async def conflict(request: Request, exc: ConflictError):
        return JSONResponse(status_code=400, content={"detail": str(exc)})

    # ─── Routes ───────────────────────────────────────

    @app.get("/health", response_model=HealthResponse)
    async def health():
        orchestrator = get_orchestrator()
        runtime = await orchestrator.runtime_health()
        return HealthResponse(
            status="ok",
            runtime_running=runtime.running,
            gateway_count=len(orchestrator.list_gateways()),
        )

    # ─── Tenants & agents (wizard glue) ──────────────

    @app.post("/tenants", response_model=Tenant, status_code=201)
    async def create_tenant(req: CreateTenantRequest):
        store = get_store()
        tenant_id = req.id or uuid.uuid4().hex[:12]
        if store.get_tenant(tenant_id):
            raise HTTPException(400, f"Tenant '{tenant_id}' already exists")
        if store.get_tenant_by_phone(req.phone):
            raise HTTPException(400, f"Tenant with phone '{req.phone}' already exists")
        try:
            return store.add_tenant(Tenant(id=tenant_id, phone=req.phone, name=req.name))
        except IntegrityError:
            # Lost a race with a concurrent signup
            raise HTTPException(400, f"Tenant '{tenant_id}' or phone '{req.phone}' already exists")

    @app.post("/agents", response_model=Agent, status_code=201)
    async def create_agent(req: CreateAgentRequest):
        config = dict(req.config)
        if req.identity_md is not None:
            config["identity_md"] = req.identity_md
        return get_provisioner().create_agent(
            tenant_id=req.tenant_id,
            name=req.name,
            template_id=req.template_id,
            personality=req.personality,
            rules=req.rules,
            config=config,
        )

    @app.get("/agents", response_model=list[Agent])
    async def list_agents(tenant_id: str | None = None):
        return get_provisioner().list_agents(tenant_id)

    @app.get("/agents/{agent_id}", response_model=Agent)
    async def get_agent(agent_id: str):
        return get_provisioner().get_agent(agent_id)

    @app.post("/agents/{agent_id}/provision")
    async def provision_agent(agent_id: str):
        provisioner = get_provisioner()
        result = await provisioner.provision(agent_id)
        if result.status == "failed":
            raise HTTPException(500, result.error)

        gateway = get_orchestrator().get_gateway(result.gateway_id)
        return {
            "agent": provisioner.get_agent(agent_id).model_dump(mode="json"),
            "gateway": _gateway_response(gateway).model_dump(mode="json"),
            "workspace": result.workspace_path,
            "message": "Agent provisioned. Gateway started. Pair WhatsApp by scanning the QR code.",
        }

    @app.post("/agents/{agent_id}/pause", response_model=Agent)
    async def pause_agent(agent_id: str):
        return get_provisioner().pause(agent_id)

    @app.post("/agents/{agent_id}/confirm", response_model=Agent)
    async def confirm_agent(agent_id: str):
        return get_provisioner().confirm_pairing(agent_id)

    # ─── Gateways ─────────────────────────────────────

    @app.get("/gateways", response_model=list[GatewayResponse])
    async def list_gateways():
        return [_gateway_response(g) for g in get_orchestrator().list_gateways()]

    @app.post("/gateways", response_model=GatewayResponse, status_code=201)
    async def create_gateway(req: CreateGatewayRequest):
        result = await get_orchestrator().get_or_create(req.tenant_id)
        if result.status == "failed" or result.gateway is None:
            raise HTTPException(500, result.error)
        return _gateway_response(result.gateway)

    @app.get("/gateways/{gateway_id}", response_model=GatewayResponse)
    async def get_gateway(gateway_id: str):
        orchestrator = get_orchestrator()
        gateway = orchestrator.get_gateway(gateway_id)
        report = await orchestrator.get_status(gateway_id)
        return _gateway_response(
            gateway,
            status=report.status,
            phone=report.phone,
            service_active=report.service_active,
        )

    @app.post("/gateways/{gateway_id}/start")
    async def start_gateway(gateway_id: str):
        result = await get_orchestrator().install_and_start(gateway_id)
        if result.status == "failed":
            raise HTTPException(500, result.error)
        return {"message": result.message, "status": GatewayStatus.PAIRING.value}

    @app.get("/gateways/{gateway_id}/qr", response_model=QrResponse)
    async def gateway_qr(gateway_id: str):
        result = await get_orchestrator().get_qr_code(gateway_id)
        if result.status == "failed":
            raise HTTPException(500, result.error)
        return QrResponse(qr=result.qr, status=result.state or "waiting")

    @app.delete("/gateways/{gateway_id}")
    async def delete_gateway(gateway_id: str):
        result = await get_orchestrator().remove(gateway_id)
        if result.status == "failed":
            raise HTTPException(500, result.error)
        return {"message": result.message}

    return app


# ─── Entry point ──────────────────────────────────────────


def main():
    import os
    import uvicorn

    settings = Settings.from_env()
    logging.basicConfig(
        level=settings.log_level.upper(),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )
    app = create_app(settings)
    uvicorn.run(
        app,
        host=os.getenv("ANYCLAW_HOST", "127.0.0.1"),
        port=int(os.getenv("ANYCLAW_PORT", "8000")),
    )


if __name__ == "__main__":
    main()
