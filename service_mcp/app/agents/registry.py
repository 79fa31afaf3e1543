"""
HARNESS agent registry and agent definition parsing.
"""

import re
from dataclasses import asdict, dataclass, field
from pathlib import Path
from typing import Any, Dict, List, Optional, Tuple

from shared.errors import AgentNotFound, HarnessException
from shared.logging import get_logger

METHODOLOGY_FILE = "HARNESS.md"


@dataclass(frozen=True)
class AgentDefinition:
    """Static description of one HARNESS agent."""

    name: str
    role: str
    file: str
    terminal: int
    responsibilities: Tuple[str, ...]
    coordinates_with: Tuple[str, ...]
    tools: Tuple[str, ...]
    specialization: str

    def to_dict(self) -> Dict[str, Any]:
        data = asdict(self)
        for key in ("responsibilities", "coordinates_with", "tools"):
            data[key] = list(data[key])
        return data


@dataclass
class ParsedAgentDefinition:
    """Structured fields pulled out of an agent markdown file."""

    capabilities: List[str] = field(default_factory=list)
    coordination_rules: List[str] = field(default_factory=list)
    validation_checklist: List[str] = field(default_factory=list)
    commands: List[str] = field(default_factory=list)
    domains: List[Dict[str, str]] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


HARNESS_AGENTS: Dict[str, AgentDefinition] = {
    "coordinator": AgentDefinition(
        name="Master Coordinator Agent",
        role="Integration Orchestrator",
        file="docs/agents/coordinator.md",
        terminal=1,
        responsibilities=("Task routing", "Conflict resolution", "Integration validation"),
        coordinates_with=("all",),
        tools=("*",),
        specialization="Multi-terminal workflow orchestration and system integration",
    ),
    "architect": AgentDefinition(
        name="Architecture Guardian Agent",
        role="Architecture Enforcer",
        file="docs/agents/architect.md",
        terminal=2,
        responsibilities=("Dependency validation", "Factory patterns", "System design"),
        coordinates_with=("all",),
        tools=("Read", "Edit", "Sequential", "Context7"),
        specialization="Architecture patterns and dependency compliance",
    ),
    "security": AgentDefinition(
        name="Security Enforcer Agent",
        role="Security Validator",
        file="docs/agents/security.md",
        terminal=3,
        responsibilities=("Authentication", "Encryption", "Compliance"),
        coordinates_with=("backend", "testing"),
        tools=("Read", "Edit", "Bash", "Sequential"),
        specialization="Security validation and threat mitigation",
    ),
    "data": AgentDefinition(
        name="Data Guardian Agent",
        role="Data Schema Specialist",
        file="docs/agents/data.md",
        terminal=4,
        responsibilities=("Database design", "RAG systems", "Data integrity"),
        coordinates_with=("backend", "security"),
        tools=("Read", "Edit", "Sequential"),
        specialization="Database architecture and knowledge systems",
    ),
    "frontend": AgentDefinition(
        name="UI Experience Agent",
        role="Frontend Specialist",
        file="docs/agents/frontend.md",
        terminal=5,
        responsibilities=("UI/UX", "Components", "Accessibility"),
        coordinates_with=("testing", "architect"),
        tools=("Read", "Edit", "Magic", "Playwright"),
        specialization="User interface and experience optimization",
    ),
    "backend": AgentDefinition(
        name="API Logic Specialist",
        role="Backend Developer",
        file="docs/agents/backend.md",
        terminal=6,
        responsibilities=("API design", "Service logic", "Integration"),
        coordinates_with=("data", "security", "testing"),
        tools=("Read", "Edit", "Context7", "Sequential"),
        specialization="Server-side logic and API development",
    ),
    "testing": AgentDefinition(
        name="TDD Testing Specialist",
        role="Quality Assurance",
        file="docs/agents/testing.md",
        terminal=7,
        responsibilities=("Test design", "Quality gates", "Validation"),
        coordinates_with=("all",),
        tools=("Read", "Edit", "Bash", "Playwright", "Sequential"),
        specialization="Test-driven development and quality assurance",
    ),
    "devops": AgentDefinition(
        name="Build & Deploy Validator",
        role="DevOps Specialist",
        file="docs/agents/devops.md",
        terminal=8,
        responsibilities=("Build validation", "CI/CD", "Deployment"),
        coordinates_with=("testing", "security"),
        tools=("Read", "Edit", "Bash", "Sequential"),
        specialization="Build systems and deployment automation",
    ),
}


_HEADING = re.compile(r"^#{2,3} ")
_CAPABILITY_PREFIX = re.compile(r"^- \*?\*?")
_CAPABILITY_SUFFIX = re.compile(r"\*?\*?:.*")
_DOMAIN = re.compile(r"\*\*([^*]+)\*\*.*\(`([^`]+)`")


def parse_agent_definition(content: str) -> ParsedAgentDefinition:
    """Extract capabilities, rules, checklist, commands and domains.

    Parsing is section driven: ``##``/``###`` headings set the current
    section and bullets are attributed to it.
    """
    result = ParsedAgentDefinition()
    section = ""

    for line in content.split("\n"):
        stripped = line.strip()
        if line.startswith("## ") or line.startswith("### "):
            section = _HEADING.sub("", line).lower()

        if "responsibilities" in section and stripped.startswith("- "):
            capability = _CAPABILITY_SUFFIX.sub("", _CAPABILITY_PREFIX.sub("", line, count=1), count=1)
            result.capabilities.append(capability)
        if "coordination" in section and stripped.startswith("- "):
            result.coordination_rules.append(line.replace("- ", "", 1) if line.startswith("- ") else line)
        if stripped.startswith("□"):
            result.validation_checklist.append(line.replace("□ ", "", 1) if line.startswith("□ ") else line)
        if stripped.startswith("/"):
            result.commands.append(stripped)
        if "domains" in section and "**" in line and "(`" in line:
            match = _DOMAIN.search(line)
            if match:
                result.domains.append({"name": match.group(1), "path": match.group(2)})

    return result


class AgentDefinitionMissing(HarnessException):
    """The agent exists in the registry but its markdown file is unreadable."""

    status_code = 404

    def __init__(self, agent_name: str, file: str):
        self.agent_name = agent_name
        self.file = file
        super().__init__("AGENT_DEFINITION_NOT_FOUND", f"Agent file not accessible: {file}")


class AgentRepository:
    """Reads agent markdown and the methodology document from disk."""

    def __init__(self, docs_root: str, agents: Optional[Dict[str, AgentDefinition]] = None):
        self.docs_root = Path(docs_root)
        self.agents = agents if agents is not None else HARNESS_AGENTS
        self.logger = get_logger("mcp.agents")

    def names(self) -> List[str]:
        return list(self.agents)

    def get(self, name: str) -> AgentDefinition:
        try:
            return self.agents[name]
        except KeyError:
            raise AgentNotFound(name) from None

    def _read(self, relative: str) -> str:
        return (self.docs_root / relative).read_text(encoding="utf-8")

    def load_all(self) -> Dict[str, Dict[str, Any]]:
        """Every agent with its parsed markdown, or an error status."""
        agents: Dict[str, Dict[str, Any]] = {}
        for name, definition in self.agents.items():
            entry = definition.to_dict()
            try:
                content = self._read(definition.file)
            except OSError as exc:
                self.logger.warning("Agent definition unreadable", agent=name, file=definition.file, error=str(exc))
                entry.update(status="error", error=f"Agent file not found: {definition.file}")
            else:
                entry.update(status="available", parsed_capabilities=parse_agent_definition(content).to_dict())
            agents[name] = entry
        return agents

    def load(self, name: str) -> Dict[str, Any]:
        """One agent with raw markdown content and parsed fields."""
        definition = self.get(name)
        try:
            content = self._read(definition.file)
        except OSError as exc:
            self.logger.warning("Agent definition unreadable", agent=name, file=definition.file, error=str(exc))
            raise AgentDefinitionMissing(name, definition.file) from exc

        entry = definition.to_dict()
        entry.update(
            agent=name,
            content=content,
            parsed_capabilities=parse_agent_definition(content).to_dict(),
            status="available",
        )
        return entry

    def load_methodology(self) -> str:
        return self._read(METHODOLOGY_FILE)
