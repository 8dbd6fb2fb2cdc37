"""Tests for the SQLAlchemy store."""

from __future__ import annotations

import pytest
from sqlalchemy.exc import IntegrityError

from anyclaw.models import AgentStatus, Gateway, GatewayStatus
from tests.helpers import make_agent, make_tenant


def make_gateway(**overrides) -> Gateway:
    defaults = dict(
        id="gw1",
        tenant_id="tenant-1",
        profile="anyclaw-gw1",
        port=19100,
    )
    defaults.update(overrides)
    return Gateway(**defaults)


class TestTenants:
    def test_lookup_by_phone(self, store, tenant):
        assert store.get_tenant_by_phone("+15550001111").id == tenant.id
        assert store.get_tenant_by_phone("+19999999999") is None

    def test_duplicate_phone_is_rejected(self, store, tenant):
        with pytest.raises(IntegrityError):
            store.add_tenant(make_tenant(id="tenant-2"))

    def test_touch_updates_last_seen(self, store, tenant):
        before = store.get_tenant(tenant.id).last_seen

        store.touch_tenant(tenant.id)

        assert store.get_tenant(tenant.id).last_seen > before


class TestGateways:
    def test_insert_and_fetch_by_tenant(self, store, tenant):
        store.insert_gateway(make_gateway())

        gw = store.get_gateway_for_tenant(tenant.id)

        assert gw is not None
        assert gw.id == "gw1"
        assert gw.status == GatewayStatus.CREATED

    def test_one_gateway_per_tenant(self, store, tenant):
        store.insert_gateway(make_gateway())

        with pytest.raises(IntegrityError):
            store.insert_gateway(make_gateway(id="gw2", profile="anyclaw-gw2", port=19101))

    def test_ports_are_unique(self, store, tenant):
        store.add_tenant(make_tenant(id="tenant-2", phone="+15550002222"))
        store.insert_gateway(make_gateway())

        with pytest.raises(IntegrityError):
            store.insert_gateway(
                make_gateway(id="gw2", tenant_id="tenant-2", profile="anyclaw-gw2")
            )

    def test_max_port(self, store, tenant):
        assert store.max_port() is None

        store.insert_gateway(make_gateway(port=19105))

        assert store.max_port() == 19105

    def test_update_and_delete(self, store, tenant):
        store.insert_gateway(make_gateway())

        updated = store.update_gateway("gw1", status=GatewayStatus.CONNECTED, phone="+1555")
        assert updated.status == GatewayStatus.CONNECTED
        assert updated.phone == "+1555"

        assert store.delete_gateway("gw1") is True
        assert store.get_gateway("gw1") is None
        assert store.delete_gateway("gw1") is False

    def test_update_missing_returns_none(self, store):
        assert store.update_gateway("nope", status=GatewayStatus.ERROR) is None


class TestAgents:
    def test_round_trips_config_blob(self, store, tenant):
        store.insert_agent(make_agent(config={"identity_md": "Hi", "userName": "Ada"}))

        agent = store.get_agent("agent-1")

        assert agent.config == {"identity_md": "Hi", "userName": "Ada"}
        assert agent.status == AgentStatus.CREATED

    def test_update_status_and_links(self, store, tenant):
        store.insert_agent(make_agent())

        agent = store.update_agent(
            "agent-1",
            status=AgentStatus.LINKING,
            gateway_id="gw1",
            workspace_path="/tmp/ws",
        )

        assert agent.status == AgentStatus.LINKING
        assert agent.gateway_id == "gw1"
        assert agent.workspace_path == "/tmp/ws"

    def test_list_agents_by_tenant(self, store, tenant):
        store.add_tenant(make_tenant(id="tenant-2", phone="+15550002222"))
        store.insert_agent(make_agent())
        store.insert_agent(make_agent(id="agent-2", tenant_id="tenant-2"))

        assert {a.id for a in store.list_agents()} == {"agent-1", "agent-2"}
        assert [a.id for a in store.list_agents("tenant-2")] == ["agent-2"]
