from __future__ import annotations

from typing import Any

import pytest

from agentexec.agents.planner import BasePlanner, MultiActionPlanner
from agentexec.agents.tools_schema import ToolRegistry
from agentexec.agents.types import AgentAction, AgentStep, PlanOutput


class ScriptedPlanner(BasePlanner):
    """Planner returning canned outputs in order, repeating the last one.

    Each call records a snapshot of the steps it was given.
    """

    def __init__(self, outputs: list[PlanOutput], *, input_keys: list[str] | None = None):
        self.outputs = list(outputs)
        self.calls: list[list[AgentStep]] = []
        self.inputs_seen: list[dict[str, Any]] = []
        self._input_keys = input_keys or ["input"]

    @property
    def input_keys(self) -> list[str]:
        return self._input_keys

    async def aplan(self, steps, inputs, *, signal=None):
        self.calls.append(list(steps))
        self.inputs_seen.append(dict(inputs))
        idx = min(len(self.calls) - 1, len(self.outputs) - 1)
        return self.outputs[idx]


class ScriptedMultiPlanner(ScriptedPlanner, MultiActionPlanner):
    action_type = "multi"


def loop_forever(tool: str = "search", tool_input: str = "again") -> ScriptedPlanner:
    """A planner that never finishes."""
    return ScriptedPlanner([AgentAction(tool=tool, tool_input=tool_input, log="thinking")])


@pytest.fixture
def tools() -> ToolRegistry:
    registry = ToolRegistry()

    @registry.tool
    def search(query: str) -> str:
        """Search for information.

        Args:
            query: What to look for.
        """
        return f"results for {query}"

    @registry.tool
    def add(a: int, b: int) -> int:
        """Add two integers."""
        return a + b

    return registry


def pytest_configure(config):
    """Configure pytest markers."""
    config.addinivalue_line("markers", "integration: marks tests that use real LLM APIs")
