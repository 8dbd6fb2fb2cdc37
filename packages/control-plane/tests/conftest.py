"""Fixtures wiring the orchestration stack against stubs and temp dirs."""

from __future__ import annotations

import pytest

from anyclaw.gateway.profiles import ProfileManager, ProfileOptions
from anyclaw.openclaw.provisioner import AgentProvisioner, ProvisionerOptions
from anyclaw.openclaw.workspace import AgentWorkspaceBuilder
from anyclaw.store import Store
from tests.helpers import StubBridge, StubSupervisor, build_orchestrator, make_tenant


@pytest.fixture
def store(tmp_path):
    s = Store.open(tmp_path / "db" / "anyclaw.db")
    yield s
    s.dispose()


@pytest.fixture
def tenant(store):
    return store.add_tenant(make_tenant())


@pytest.fixture
def profiles(tmp_path):
    return ProfileManager(ProfileOptions(state_root=tmp_path / "state"))


@pytest.fixture
def supervisor():
    return StubSupervisor()


@pytest.fixture
def bridge():
    return StubBridge()


@pytest.fixture
def orchestrator(store, profiles, supervisor, bridge):
    return build_orchestrator(store, profiles, supervisor, bridge)


@pytest.fixture
def workspaces(tmp_path):
    return AgentWorkspaceBuilder(tmp_path / "agents")


@pytest.fixture
def provisioner(store, orchestrator, workspaces):
    return AgentProvisioner(
        ProvisionerOptions(store=store, orchestrator=orchestrator, workspaces=workspaces)
    )
