"""Tests for profile workspaces and provider secret resolution."""

from __future__ import annotations

import json

from anyclaw.gateway.profiles import (
    ProfileManager,
    ProfileOptions,
    master_config_secret_resolver,
)


class TestProvisionWorkspace:
    def test_writes_initial_config(self, tmp_path):
        pm = ProfileManager(ProfileOptions(state_root=tmp_path, model="anthropic/m1"))

        path = pm.provision_workspace("anyclaw-abc", 19123, lambda: "sk-ant-1")

        assert path == tmp_path / ".openclaw-anyclaw-abc" / "openclaw.json"
        config = json.loads(path.read_text())
        assert config["gateway"] == {"mode": "local", "bind": "loopback", "port": 19123}
        anthropic = config["models"]["providers"]["anthropic"]
        assert anthropic["apiKey"] == "sk-ant-1"
        assert anthropic["models"][0]["id"] == "anthropic/m1"
        whatsapp = config["channels"]["whatsapp"]
        assert whatsapp["dmPolicy"] == "allowlist"
        assert whatsapp["groupPolicy"] == "allowlist"
        assert whatsapp["allowFrom"] == []
        assert whatsapp["groupAllowFrom"] == []
        assert config["agents"] == []
        assert config["bindings"] == []

    def test_existing_directory_is_fine(self, tmp_path):
        pm = ProfileManager(ProfileOptions(state_root=tmp_path))
        pm.state_dir("p").mkdir(parents=True)

        pm.provision_workspace("p", 19100, lambda: "")

        assert pm.config_path("p").exists()

    def test_empty_secret_is_written(self, tmp_path):
        pm = ProfileManager(ProfileOptions(state_root=tmp_path))

        pm.provision_workspace("p", 19100, lambda: "")

        config = json.loads(pm.config_path("p").read_text())
        assert config["models"]["providers"]["anthropic"]["apiKey"] == ""


class TestTeardownWorkspace:
    def test_removes_state_dir(self, tmp_path):
        pm = ProfileManager(ProfileOptions(state_root=tmp_path))
        pm.provision_workspace("p", 19100, lambda: "")

        pm.teardown_workspace("p")

        assert not pm.state_dir("p").exists()

    def test_absent_dir_is_fine(self, tmp_path):
        pm = ProfileManager(ProfileOptions(state_root=tmp_path))

        pm.teardown_workspace("never-created")


class TestSecretResolver:
    def test_process_key_wins(self, tmp_path):
        master = tmp_path / "openclaw.json"
        master.write_text(json.dumps(
            {"models": {"providers": {"anthropic": {"apiKey": "from-file"}}}}
        ))

        assert master_config_secret_resolver("from-env", master)() == "from-env"

    def test_falls_back_to_master_config(self, tmp_path):
        master = tmp_path / "openclaw.json"
        master.write_text(json.dumps(
            {"models": {"providers": {"anthropic": {"apiKey": "from-file"}}}}
        ))

        assert master_config_secret_resolver(None, master)() == "from-file"

    def test_missing_master_config_resolves_empty(self, tmp_path):
        assert master_config_secret_resolver(None, tmp_path / "missing.json")() == ""

    def test_malformed_master_config_resolves_empty(self, tmp_path):
        master = tmp_path / "openclaw.json"
        master.write_text("{not json")

        assert master_config_secret_resolver(None, master)() == ""

    def test_master_config_without_key_resolves_empty(self, tmp_path):
        master = tmp_path / "openclaw.json"
        master.write_text(json.dumps({"models": {}}))

        assert master_config_secret_resolver(None, master)() == ""
