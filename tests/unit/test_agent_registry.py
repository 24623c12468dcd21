"""Tests for the agent role registry."""

import pytest

from boss_agent.core.agent_registry import (
    DEFAULT_AGENTS,
    AgentDefinition,
    AgentRegistry,
    load_agent_definitions,
)
from boss_agent.core.task import AgentRole
from boss_agent.core.task_decomposer import template_roles


class TestAgentRegistry:
    def test_every_role_has_a_default(self):
        assert set(DEFAULT_AGENTS) == set(AgentRole)

    def test_every_template_role_validates(self):
        AgentRegistry().validate_roles(template_roles())

    def test_missing_role_fails_validation(self):
        registry = AgentRegistry()
        del registry._agents[AgentRole.REVIEWER]

        with pytest.raises(ValueError, match="reviewer"):
            registry.validate_roles(template_roles())

    def test_unknown_role_falls_back_to_general(self):
        registry = AgentRegistry()
        assert registry.get("astronaut").role == AgentRole.GENERAL
        assert registry.get("reviewer").role == AgentRole.REVIEWER

    def test_register_replaces_definition(self):
        registry = AgentRegistry()
        registry.register(AgentDefinition(role=AgentRole.DEBUGGER, name="Bug Hunter", description="x"))
        assert registry.get(AgentRole.DEBUGGER).name == "Bug Hunter"


class TestBuildPrompt:
    def test_sections(self):
        prompt = AgentRegistry().build_prompt(AgentRole.CODE_WRITER, "Add login", "## Parent Issue: P-1")

        assert prompt.startswith("# Code Writer Agent Task\n\n## Your Role\nYou are a specialized Code Writer agent.")
        assert "## Task\nAdd login" in prompt
        assert "## Context\n## Parent Issue: P-1" in prompt
        assert "## Instructions\n1. Read the surrounding code before changing it" in prompt
        assert "## Guidelines\n- Match the existing style" in prompt
        assert "## Deliverables\n- Working implementation" in prompt

    def test_empty_sections_are_left_out(self):
        definition = AgentDefinition(role=AgentRole.GENERAL, name="Bare", description="")
        prompt = definition.build_prompt("Do it")

        assert "## Context" not in prompt
        assert "## Instructions" not in prompt
        assert prompt.endswith("## Task\nDo it\n")

    def test_prompts_differ_per_role(self):
        registry = AgentRegistry()
        prompts = {registry.build_prompt(role, "Same task") for role in AgentRole}
        assert len(prompts) == len(AgentRole)


class TestLoadAgentDefinitions:
    def test_overrides_selected_fields(self, tmp_path):
        path = tmp_path / "agents.yaml"
        path.write_text(
            "agents:\n"
            "  reviewer:\n"
            "    name: Security Reviewer\n"
            "    guidelines:\n"
            "      - Check authentication paths first\n"
        )

        overrides = load_agent_definitions(path)

        reviewer = overrides[AgentRole.REVIEWER]
        assert reviewer.name == "Security Reviewer"
        assert reviewer.guidelines == ["Check authentication paths first"]
        assert reviewer.instructions == DEFAULT_AGENTS[AgentRole.REVIEWER].instructions

    def test_unknown_roles_and_fields_are_skipped(self, tmp_path):
        path = tmp_path / "agents.yaml"
        path.write_text(
            "agents:\n"
            "  astronaut:\n"
            "    name: Space\n"
            "  debugger:\n"
            "    name: Tracer\n"
            "    color: red\n"
        )

        overrides = load_agent_definitions(path)

        assert list(overrides) == [AgentRole.DEBUGGER]
        assert overrides[AgentRole.DEBUGGER].name == "Tracer"

    def test_missing_file(self, tmp_path):
        assert load_agent_definitions(tmp_path / "nope.yaml") == {}

    def test_empty_file(self, tmp_path):
        path = tmp_path / "agents.yaml"
        path.write_text("")
        assert load_agent_definitions(path) == {}
