"""Observer callbacks for the agent execution loop.

Callbacks are passed explicitly to an executor; there is no global
callback manager.  Each hook may be a plain function or a coroutine
function.
"""

from __future__ import annotations

import inspect
from collections.abc import Awaitable, Callable
from dataclasses import dataclass
from typing import Any, Union

_Hook = Union[Callable[..., None], Callable[..., Awaitable[None]], None]


@dataclass
class ExecutorCallbacks:
    """Executor-level observability callbacks.

    Attributes:
        on_run_start: Called once per run with the validated inputs.
        on_agent_action: Called with each :class:`AgentAction` before its
            tool is invoked.
        on_tool_end: Called with ``(action, observation)`` after a tool
            (or the invalid-tool fallback) produced an observation.
        on_agent_finish: Called with the :class:`AgentFinish` the run
            finalizes from, including forced stops.
        on_run_end: Called with the final output mapping.
        on_run_error: Called with the exception that failed the run.
    """

    on_run_start: _Hook = None
    on_agent_action: _Hook = None
    on_tool_end: _Hook = None
    on_agent_finish: _Hook = None
    on_run_end: _Hook = None
    on_run_error: _Hook = None


async def fire(callback: Callable[..., Any] | None, *args: Any) -> None:
    """Invoke *callback* with *args*, awaiting it if it returns an awaitable."""
    if callback is None:
        return
    result = callback(*args)
    if inspect.isawaitable(result):
        await result
