"""Tests for AgentWorkspaceBuilder."""

from __future__ import annotations

from datetime import datetime

from anyclaw.openclaw.workspace import AgentWorkspaceBuilder

IDENTITY = (
    "You are {{not-a-template}}, Ada's assistant.\n\n"
    "## Rules\n- Use \"quotes\" & <angle> brackets freely\n- Emoji ok 👀\n"
)


class TestBuild:
    def test_identity_round_trips_byte_for_byte(self, tmp_path):
        builder = AgentWorkspaceBuilder(tmp_path)

        workspace = builder.build("anyclaw-a1", "Jarvis", IDENTITY)

        assert workspace == tmp_path / "anyclaw-a1"
        assert (workspace / "IDENTITY.md").read_bytes() == IDENTITY.encode("utf-8")

    def test_memory_has_one_timestamp_line(self, tmp_path):
        workspace = AgentWorkspaceBuilder(tmp_path).build("a1", "Jarvis", IDENTITY)

        memory_files = list(workspace.glob("MEMORY*.md"))
        assert memory_files == [workspace / "MEMORY.md"]

        lines = memory_files[0].read_text().splitlines()
        assert lines[0] == "# Memory for Jarvis"
        created = [line for line in lines if line.startswith("Created: ")]
        assert len(created) == 1
        datetime.fromisoformat(created[0].removeprefix("Created: "))

    def test_user_context_is_optional(self, tmp_path):
        builder = AgentWorkspaceBuilder(tmp_path)

        without = builder.build("a1", "Jarvis", IDENTITY)
        with_user = builder.build("a2", "Jarvis", IDENTITY, user_md="Ada lives in Lisbon.")

        assert not (without / "USER.md").exists()
        assert (with_user / "USER.md").read_text() == "Ada lives in Lisbon."

    def test_rebuild_refreshes_identity(self, tmp_path):
        builder = AgentWorkspaceBuilder(tmp_path)
        builder.build("a1", "Jarvis", "old prompt")

        workspace = builder.build("a1", "Jarvis", "new prompt")

        assert (workspace / "IDENTITY.md").read_text() == "new prompt"
