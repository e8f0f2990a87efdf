"""Shared types for the agent execution loop.

Defines the values exchanged between planners, tools and
:class:`~agentexec.agents.executor.AgentExecutor`, plus the tagged results
returned by :meth:`AgentExecutorIterator.advance`.
"""

from __future__ import annotations

import enum
from collections.abc import Mapping
from dataclasses import dataclass, field
from typing import Any, Union

from ..exceptions import OutputParserError

ToolInput = Union[str, Mapping[str, Any]]


class ExecutorState(enum.Enum):
    """Lifecycle state of an executor run or iterator."""

    idle = "idle"
    running = "running"
    finished = "finished"
    errored = "errored"


@dataclass(frozen=True)
class AgentAction:
    """A planner-issued instruction naming a tool and its input.

    Attributes:
        tool: Name of the tool to invoke (matched case-insensitively).
        tool_input: Text or structured arguments passed to the tool.
        log: The planner's rationale / raw trace for this action.
    """

    tool: str
    tool_input: ToolInput
    log: str = ""


@dataclass(frozen=True)
class AgentStep:
    """One ``(action, observation)`` pair recorded in a run's history."""

    action: AgentAction
    observation: Any

    def to_dict(self) -> dict[str, Any]:
        tool_input = self.action.tool_input
        return {
            "action": {
                "tool": self.action.tool,
                "tool_input": dict(tool_input) if isinstance(tool_input, Mapping) else tool_input,
                "log": self.action.log,
            },
            "observation": self.observation,
        }


@dataclass
class AgentFinish:
    """A terminal planner result carrying the final output values."""

    return_values: dict[str, Any]
    log: str = ""


@dataclass(frozen=True)
class ParseFailure:
    """Returned by a planner whose raw response could not be parsed."""

    error: OutputParserError


PlanOutput = Union[AgentAction, list[AgentAction], AgentFinish, ParseFailure]


# ------------------------------------------------------------------
# Iterator advance results
# ------------------------------------------------------------------


@dataclass
class StepsProduced:
    """One planning round ran and produced these new steps."""

    steps: list[AgentStep] = field(default_factory=list)


@dataclass
class Finished:
    """The run finished during this advance; ``output`` is the final mapping."""

    output: dict[str, Any]


@dataclass
class AlreadyFinished:
    """The run had already finished; ``output`` is the stored final mapping."""

    output: dict[str, Any]


AdvanceResult = Union[StepsProduced, Finished, AlreadyFinished]
