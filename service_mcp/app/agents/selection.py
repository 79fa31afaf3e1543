"""
Keyword-based agent selection and methodology validation.
"""

from typing import Any, Dict, Iterable, List, Optional, Sequence, Tuple

# (keywords, agents added when any keyword is present), checked in order
HARNESS_ROUTING_RULES: Tuple[Tuple[Tuple[str, ...], Tuple[str, ...]], ...] = (
    (("auth", "security", "permission"), ("security", "backend", "testing")),
    (("frontend", "ui", "component"), ("frontend", "testing")),
    (("backend", "api", "service"), ("backend", "data", "testing")),
    (("database", "data", "rag"), ("data", "backend", "security")),
    (("deploy", "build", "ci/cd"), ("devops", "security", "testing")),
    (("architecture", "design", "pattern"), ("architect",)),
)

SIMPLE_ROUTING_RULES: Tuple[Tuple[Tuple[str, ...], str], ...] = (
    (("auth", "security"), "security"),
    (("ui", "component", "frontend"), "frontend"),
    (("api", "backend", "server"), "backend"),
    (("test", "implement"), "testing"),
    (("architect", "design", "system"), "architect"),
)

EXECUTION_RANK: Dict[str, int] = {
    "coordinator": 0,
    "architect": 1,
    "security": 2,
    "data": 3,
    "backend": 4,
    "frontend": 5,
    "testing": 6,
    "devops": 7,
}

BASE_DURATION_MINUTES = 15
MINUTES_PER_AGENT = 5
LONG_TASK_CHARS = 100
LONG_TASK_MULTIPLIER = 1.5


def _dedupe(names: Iterable[str]) -> List[str]:
    seen = set()
    ordered = []
    for name in names:
        if name not in seen:
            seen.add(name)
            ordered.append(name)
    return ordered


def select_harness_agents(task: str) -> List[str]:
    """Coordinator plus every agent group whose keywords appear in ``task``."""
    task_lower = task.lower()
    selected = ["coordinator"]
    for keywords, agents in HARNESS_ROUTING_RULES:
        if any(keyword in task_lower for keyword in keywords):
            selected.extend(agents)
    return _dedupe(selected)


def select_agents_simple(task: str) -> List[str]:
    task_lower = task.lower()
    selected = [agent for keywords, agent in SIMPLE_ROUTING_RULES
                if any(keyword in task_lower for keyword in keywords)]
    if len(selected) > 1:
        selected.insert(0, "coordinator")
    return selected


def coordination_strategy(agents: Sequence[str]) -> str:
    return "sequential" if len(agents) > 3 else "parallel"


def execution_order(agents: Iterable[str]) -> List[str]:
    """Agents sorted by dependency rank; unknown agents go last."""
    return sorted(agents, key=lambda name: EXECUTION_RANK.get(name, len(EXECUTION_RANK)))


def estimate_duration(agents: Sequence[str], task: str) -> str:
    multiplier = LONG_TASK_MULTIPLIER if len(task) > LONG_TASK_CHARS else 1
    # Round half up
    minutes = int(BASE_DURATION_MINUTES + MINUTES_PER_AGENT * len(agents) * multiplier + 0.5)
    return f"{minutes}-{minutes + 15} minutes"


def validate_task(task: str, agents: Optional[Sequence[str]]) -> Dict[str, Any]:
    """Check a task/agent assignment against the methodology rules."""
    agents = list(agents or [])
    task_lower = task.lower()
    validation: Dict[str, Any] = {
        "compliant": True,
        "violations": [],
        "recommendations": [],
        "required_agents": [],
    }

    if not agents:
        validation["compliant"] = False
        validation["violations"].append("AGENT_COORDINATION_REQUIRED: No agents selected")

    if "auth" in task_lower and "security" not in agents:
        validation["compliant"] = False
        validation["violations"].append(
            "SECURITY_REVIEW_REQUIRED: Authentication tasks require security agent"
        )
        validation["required_agents"].append("security")

    if "implement" in task_lower and "testing" not in agents:
        validation["compliant"] = False
        validation["violations"].append("TESTING_REQUIRED: Implementation tasks require testing agent")
        validation["required_agents"].append("testing")

    if len(agents) > 1 and "coordinator" not in agents:
        validation["recommendations"].append("Include the coordinator agent for multi-agent tasks")

    return validation
