"""Catalog of specialist agent roles and their prompt builders.

Every role the decomposer can emit must have an entry here; the registry is
checked once at startup with :meth:`AgentRegistry.validate_roles`.
"""

import logging
from dataclasses import dataclass, field, fields, replace
from pathlib import Path
from typing import Dict, Iterable, List, Optional

import yaml

from .task import AgentRole

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class AgentDefinition:
    """A specialist role: what it is good at and how to brief it."""

    role: AgentRole
    name: str
    description: str
    capabilities: List[str] = field(default_factory=list)
    focus: str = ""
    instructions: List[str] = field(default_factory=list)
    guidelines: List[str] = field(default_factory=list)
    deliverables: List[str] = field(default_factory=list)

    def build_prompt(self, task: str, context: str = "") -> str:
        """Render the role-specific briefing for one unit of work."""
        sections = [
            f"# {self.name} Agent Task",
            f"## Your Role\nYou are a specialized {self.name} agent. {self.focus}".rstrip(),
            f"## Task\n{task.strip()}",
        ]
        if context.strip():
            sections.append(f"## Context\n{context.strip()}")
        if self.instructions:
            numbered = "\n".join(f"{i}. {line}" for i, line in enumerate(self.instructions, 1))
            sections.append(f"## Instructions\n{numbered}")
        if self.guidelines:
            sections.append("## Guidelines\n" + "\n".join(f"- {g}" for g in self.guidelines))
        if self.deliverables:
            sections.append("## Deliverables\n" + "\n".join(f"- {d}" for d in self.deliverables))
        return "\n\n".join(sections) + "\n"


DEFAULT_AGENTS: Dict[AgentRole, AgentDefinition] = {
    AgentRole.CODE_WRITER: AgentDefinition(
        role=AgentRole.CODE_WRITER,
        name="Code Writer",
        description="Implements features and writes production code",
        capabilities=["Feature implementation", "API development", "Business logic", "Data access"],
        focus="You turn requirements into working, production-ready code.",
        instructions=[
            "Read the surrounding code before changing it",
            "Implement the change with explicit error handling and input validation",
            "Keep commits small and describe what each one changes",
        ],
        guidelines=[
            "Match the existing style and structure of the project",
            "Comment only where the logic is not obvious",
            "Consider performance for hot paths",
        ],
        deliverables=["Working implementation", "Focused commits"],
    ),
    AgentRole.TEST_WRITER: AgentDefinition(
        role=AgentRole.TEST_WRITER,
        name="Test Writer",
        description="Writes unit and integration tests",
        capabilities=["Unit testing", "Integration testing", "Mocking", "Coverage analysis"],
        focus="You make sure behaviour is pinned down by tests.",
        instructions=[
            "Use the test framework the project already uses",
            "Cover the main path, the edge cases and the failure modes",
            "Isolate external services with mocks or fakes",
        ],
        guidelines=[
            "Name tests after the behaviour they check",
            "Arrange, act, assert",
            "Test behaviour rather than implementation details",
        ],
        deliverables=["New or updated tests", "All tests passing"],
    ),
    AgentRole.REVIEWER: AgentDefinition(
        role=AgentRole.REVIEWER,
        name="Code Reviewer",
        description="Reviews changes for correctness, security and maintainability",
        capabilities=["Code review", "Security review", "Performance review", "Standards enforcement"],
        focus="You review the work of other agents before it ships.",
        instructions=[
            "Read every changed file on the branch",
            "Look for bugs, missing error handling and security problems",
            "Fix small issues directly and list larger ones",
        ],
        guidelines=[
            "Be specific: point at files and lines",
            "Separate blocking findings from suggestions",
        ],
        deliverables=["Review summary", "Fixes for small issues"],
    ),
    AgentRole.DOCUMENTATION: AgentDefinition(
        role=AgentRole.DOCUMENTATION,
        name="Documentation",
        description="Writes and updates user and developer documentation",
        capabilities=["API documentation", "README updates", "Usage guides", "Code comments"],
        focus="You keep the documentation in step with the code.",
        instructions=[
            "Document new behaviour, configuration and public APIs",
            "Include short usage examples",
            "Update existing pages instead of duplicating them",
        ],
        guidelines=["Write for a reader new to the project", "Prefer examples over prose"],
        deliverables=["Updated documentation"],
    ),
    AgentRole.DEBUGGER: AgentDefinition(
        role=AgentRole.DEBUGGER,
        name="Debugger",
        description="Finds the root cause of defects",
        capabilities=["Root cause analysis", "Log analysis", "Reproduction", "Error tracing"],
        focus="You find out why something is broken before anyone fixes it.",
        instructions=[
            "Reproduce the problem",
            "Trace it to the smallest responsible piece of code",
            "Write down the root cause and the proposed fix",
        ],
        guidelines=["Prefer evidence over guesses", "Note any related code that shares the flaw"],
        deliverables=["Root cause analysis", "Reproduction steps"],
    ),
    AgentRole.REFACTORER: AgentDefinition(
        role=AgentRole.REFACTORER,
        name="Refactoring",
        description="Restructures code without changing behaviour",
        capabilities=["Code restructuring", "Dead code removal", "Design improvements", "Technical debt"],
        focus="You improve structure while keeping behaviour identical.",
        instructions=[
            "Make sure tests cover the code before moving it",
            "Change structure in small, verifiable steps",
            "Run the tests after each step",
        ],
        guidelines=["No behaviour changes", "Keep public interfaces stable unless asked"],
        deliverables=["Refactored code", "Passing tests"],
    ),
    AgentRole.GENERAL: AgentDefinition(
        role=AgentRole.GENERAL,
        name="General",
        description="Handles work that needs no particular specialty",
        capabilities=["Implementation", "Testing", "Documentation", "Debugging"],
        focus="You handle the task end to end.",
        instructions=[
            "Understand the task and the code it touches",
            "Make the change and verify it",
            "Commit with a clear message",
        ],
        guidelines=["Follow the project's conventions"],
        deliverables=["Completed task"],
    ),
}


class AgentRegistry:
    """Maps agent roles to their definitions and prompt builders."""

    def __init__(self, definitions: Optional[Dict[AgentRole, AgentDefinition]] = None):
        self._agents: Dict[AgentRole, AgentDefinition] = dict(DEFAULT_AGENTS)
        if definitions:
            self._agents.update(definitions)

    def register(self, definition: AgentDefinition) -> None:
        self._agents[definition.role] = definition
        logger.debug(f"Registered agent role {definition.role.value}")

    def get(self, role) -> AgentDefinition:
        """Return the definition for ``role``, falling back to the general agent."""
        try:
            role = AgentRole(role)
        except ValueError:
            logger.warning(f"Unknown agent role '{role}', using general agent")
            return self._agents[AgentRole.GENERAL]
        definition = self._agents.get(role)
        if definition is None:
            logger.warning(f"No definition for agent role '{role.value}', using general agent")
            return self._agents[AgentRole.GENERAL]
        return definition

    def build_prompt(self, role, task: str, context: str = "") -> str:
        return self.get(role).build_prompt(task, context)

    def roles(self) -> List[AgentRole]:
        return list(self._agents)

    def all(self) -> List[AgentDefinition]:
        return list(self._agents.values())

    def validate_roles(self, roles: Iterable[AgentRole]) -> None:
        """Raise ValueError if any of ``roles`` has no registered definition."""
        missing = sorted(r.value for r in set(roles) if r not in self._agents)
        if missing:
            raise ValueError(f"No agent definition for roles: {', '.join(missing)}")


_OVERRIDABLE_FIELDS = {
    f.name for f in fields(AgentDefinition) if f.name != "role"
}


def load_agent_definitions(path: Path) -> Dict[AgentRole, AgentDefinition]:
    """Load role overrides from a YAML file.

    Each entry under ``agents`` is keyed by role and may override any field of
    the built-in definition; unknown roles are skipped with a warning.
    """
    if not path.exists():
        logger.warning(f"Agent definitions not found at {path}")
        return {}

    with open(path) as f:
        data = yaml.safe_load(f) or {}

    overrides: Dict[AgentRole, AgentDefinition] = {}
    for role_name, entry in (data.get("agents") or {}).items():
        try:
            role = AgentRole(role_name)
        except ValueError:
            logger.warning(f"Skipping unknown agent role '{role_name}' in {path}")
            continue
        known = {k: v for k, v in (entry or {}).items() if k in _OVERRIDABLE_FIELDS}
        ignored = set(entry or {}) - set(known)
        if ignored:
            logger.warning(f"Ignoring unknown fields for role '{role_name}': {', '.join(sorted(ignored))}")
        overrides[role] = replace(DEFAULT_AGENTS[role], **known)

    return overrides
