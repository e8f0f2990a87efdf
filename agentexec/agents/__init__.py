"""Agent execution: executor, iterator, planners, tools and the ReAct planner."""

from .executor import AgentExecutor
from .iterator import AgentExecutorIterator
from .output_parser import ReActOutputParser
from .planner import STOPPED_MESSAGE, BasePlanner, FunctionPlanner, MultiActionPlanner
from .react import ReActPlanner
from .tools_schema import EXCEPTION_TOOL_NAME, ExceptionTool, ToolDefinition, ToolRegistry, tool_from_function
from .types import (
    AdvanceResult,
    AgentAction,
    AgentFinish,
    AgentStep,
    AlreadyFinished,
    ExecutorState,
    Finished,
    ParseFailure,
    StepsProduced,
)

__all__ = [
    "EXCEPTION_TOOL_NAME",
    "STOPPED_MESSAGE",
    "AdvanceResult",
    "AgentAction",
    "AgentExecutor",
    "AgentExecutorIterator",
    "AgentFinish",
    "AgentStep",
    "AlreadyFinished",
    "BasePlanner",
    "ExceptionTool",
    "ExecutorState",
    "Finished",
    "FunctionPlanner",
    "MultiActionPlanner",
    "ParseFailure",
    "ReActOutputParser",
    "ReActPlanner",
    "StepsProduced",
    "ToolDefinition",
    "ToolRegistry",
    "tool_from_function",
]
