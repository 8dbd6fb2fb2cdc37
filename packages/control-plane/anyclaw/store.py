"""
Persistent store for tenants, gateways and agents.

SQLite via SQLAlchemy. Every method opens its own short session and
commits before returning; no cross-row transactions are needed by the
orchestration layer. Rows are handed out as pydantic models so callers
never hold a live ORM object.
"""

from __future__ import annotations

import logging
from datetime import datetime
from pathlib import Path
from typing import Any

from sqlalchemy import (
    JSON,
    DateTime,
    ForeignKey,
    Integer,
    String,
    Text,
    create_engine,
    event,
    func,
    select,
)
from sqlalchemy.engine import Engine
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column, sessionmaker

from anyclaw.models import Agent, AgentStatus, Gateway, GatewayStatus, Tenant

logger = logging.getLogger(__name__)


class Base(DeclarativeBase):
    pass


class TenantRecord(Base):
    __tablename__ = "tenants"

    id: Mapped[str] = mapped_column(String, primary_key=True)
    phone: Mapped[str] = mapped_column(String, unique=True)
    name: Mapped[str] = mapped_column(String)
    created_at: Mapped[datetime] = mapped_column(DateTime, default=datetime.now)
    last_seen: Mapped[datetime] = mapped_column(DateTime, default=datetime.now)


class GatewayRecord(Base):
    __tablename__ = "gateways"

    id: Mapped[str] = mapped_column(String, primary_key=True)
    # One gateway per tenant
    tenant_id: Mapped[str] = mapped_column(
        ForeignKey("tenants.id"), unique=True, index=True
    )
    profile: Mapped[str] = mapped_column(String, unique=True)
    port: Mapped[int] = mapped_column(Integer, unique=True)
    status: Mapped[str] = mapped_column(
        String, default=GatewayStatus.CREATED.value, index=True
    )
    phone: Mapped[str | None] = mapped_column(String, nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTime, default=datetime.now)
    updated_at: Mapped[datetime] = mapped_column(
        DateTime, default=datetime.now, onupdate=datetime.now
    )


class AgentRecord(Base):
    __tablename__ = "agents"

    id: Mapped[str] = mapped_column(String, primary_key=True)
    tenant_id: Mapped[str] = mapped_column(ForeignKey("tenants.id"), index=True)
    name: Mapped[str] = mapped_column(String)
    template_id: Mapped[str] = mapped_column(String)
    personality: Mapped[str] = mapped_column(Text, default="")
    rules: Mapped[str] = mapped_column(Text, default="")
    status: Mapped[str] = mapped_column(
        String, default=AgentStatus.CREATED.value, index=True
    )
    gateway_id: Mapped[str | None] = mapped_column(String, nullable=True)
    workspace_path: Mapped[str | None] = mapped_column(String, nullable=True)
    config: Mapped[dict[str, Any]] = mapped_column(JSON, default=dict)
    created_at: Mapped[datetime] = mapped_column(DateTime, default=datetime.now)
    updated_at: Mapped[datetime] = mapped_column(
        DateTime, default=datetime.now, onupdate=datetime.now
    )


def create_sqlite_engine(db_path: str | Path) -> Engine:
    """Create a SQLite engine usable from the request thread pool."""
    path = Path(db_path)
    path.parent.mkdir(parents=True, exist_ok=True)

    engine = create_engine(
        f"sqlite:///{path}",
        connect_args={"check_same_thread": False, "timeout": 30},
    )

    @event.listens_for(engine, "connect")
    def _set_sqlite_pragma(dbapi_connection, connection_record):
        cursor = dbapi_connection.cursor()
        cursor.execute("PRAGMA journal_mode=WAL")
        cursor.execute("PRAGMA foreign_keys=ON")
        cursor.close()

    return engine


class Store:
    def __init__(self, engine: Engine) -> None:
        self._engine = engine
        self._session = sessionmaker(bind=engine, expire_on_commit=False)

    @classmethod
    def open(cls, db_path: str | Path) -> "Store":
        store = cls(create_sqlite_engine(db_path))
        store.create_schema()
        return store

    def create_schema(self) -> None:
        Base.metadata.create_all(self._engine)

    def dispose(self) -> None:
        self._engine.dispose()

    # ─── Tenants ─────────────────────────────────────────

    def add_tenant(self, tenant: Tenant) -> Tenant:
        with self._session() as session:
            record = TenantRecord(**tenant.model_dump())
            session.add(record)
            session.commit()
            return Tenant.model_validate(record)

    def get_tenant(self, tenant_id: str) -> Tenant | None:
        with self._session() as session:
            record = session.get(TenantRecord, tenant_id)
            return Tenant.model_validate(record) if record else None

    def get_tenant_by_phone(self, phone: str) -> Tenant | None:
        with self._session() as session:
            record = session.scalars(
                select(TenantRecord).where(TenantRecord.phone == phone)
            ).first()
            return Tenant.model_validate(record) if record else None

    def touch_tenant(self, tenant_id: str) -> None:
        """Record tenant activity in ``last_seen``."""
        with self._session() as session:
            record = session.get(TenantRecord, tenant_id)
            if record is not None:
                record.last_seen = datetime.now()
                session.commit()

    # ─── Gateways ────────────────────────────────────────

    def insert_gateway(self, gateway: Gateway) -> Gateway:
        """Insert a gateway row. Raises ``IntegrityError`` on a duplicate tenant or port."""
        with self._session() as session:
            data = gateway.model_dump()
            data["status"] = gateway.status.value
            record = GatewayRecord(**data)
            session.add(record)
            session.commit()
            return Gateway.model_validate(record)

    def get_gateway(self, gateway_id: str) -> Gateway | None:
        with self._session() as session:
            record = session.get(GatewayRecord, gateway_id)
            return Gateway.model_validate(record) if record else None

    def get_gateway_for_tenant(self, tenant_id: str) -> Gateway | None:
        with self._session() as session:
            record = session.scalars(
                select(GatewayRecord).where(GatewayRecord.tenant_id == tenant_id)
            ).first()
            return Gateway.model_validate(record) if record else None

    def list_gateways(self) -> list[Gateway]:
        with self._session() as session:
            records = session.scalars(
                select(GatewayRecord).order_by(GatewayRecord.created_at.desc())
            ).all()
            return [Gateway.model_validate(r) for r in records]

    def max_port(self) -> int | None:
        with self._session() as session:
            return session.scalar(select(func.max(GatewayRecord.port)))

    def update_gateway(
        self,
        gateway_id: str,
        *,
        status: GatewayStatus | None = None,
        phone: str | None = None,
    ) -> Gateway | None:
        with self._session() as session:
            record = session.get(GatewayRecord, gateway_id)
            if record is None:
                return None
            if status is not None:
                record.status = status.value
            if phone is not None:
                record.phone = phone
            record.updated_at = datetime.now()
            session.commit()
            return Gateway.model_validate(record)

    def delete_gateway(self, gateway_id: str) -> bool:
        with self._session() as session:
            record = session.get(GatewayRecord, gateway_id)
            if record is None:
                return False
            session.delete(record)
            session.commit()
            return True

    # ─── Agents ──────────────────────────────────────────

    def insert_agent(self, agent: Agent) -> Agent:
        with self._session() as session:
            data = agent.model_dump()
            data["status"] = agent.status.value
            record = AgentRecord(**data)
            session.add(record)
            session.commit()
            return Agent.model_validate(record)

    def get_agent(self, agent_id: str) -> Agent | None:
        with self._session() as session:
            record = session.get(AgentRecord, agent_id)
            return Agent.model_validate(record) if record else None

    def list_agents(self, tenant_id: str | None = None) -> list[Agent]:
        with self._session() as session:
            query = select(AgentRecord).order_by(AgentRecord.created_at.desc())
            if tenant_id is not None:
                query = query.where(AgentRecord.tenant_id == tenant_id)
            return [Agent.model_validate(r) for r in session.scalars(query).all()]

    def update_agent(
        self,
        agent_id: str,
        *,
        status: AgentStatus | None = None,
        gateway_id: str | None = None,
        workspace_path: str | None = None,
    ) -> Agent | None:
        with self._session() as session:
            record = session.get(AgentRecord, agent_id)
            if record is None:
                return None
            if status is not None:
                record.status = status.value
            if gateway_id is not None:
                record.gateway_id = gateway_id
            if workspace_path is not None:
                record.workspace_path = workspace_path
            record.updated_at = datetime.now()
            session.commit()
            return Agent.model_validate(record)
