"""Planner interface consumed by the execution loop.

A planner looks at the run's intermediate steps and inputs and decides
what to do next: one or more :class:`AgentAction` values, an
:class:`AgentFinish`, or a :class:`ParseFailure` when the underlying LLM
response could not be interpreted.
"""

from __future__ import annotations

import inspect
import logging
from collections.abc import Awaitable, Callable
from typing import TYPE_CHECKING, Any, Literal, Union

from ..exceptions import OutputParserError, UnsupportedEarlyStoppingError
from .types import AgentAction, AgentFinish, AgentStep, ParseFailure, PlanOutput

if TYPE_CHECKING:
    from ..infra.cancellation import CancellationSignal

logger = logging.getLogger("agentexec.planner")

STOPPED_MESSAGE = "Agent stopped due to iteration limit or time limit."
DEFAULT_OUTPUT_KEY = "output"

ActionType = Literal["single", "multi"]


class BasePlanner:
    """Planner base.  Implement ``async aplan(steps, inputs, *, signal=None)``.

    Subclasses declare the input keys they require and the output keys
    they produce.  The executor treats everything behind :meth:`aplan` as
    opaque.
    """

    action_type: ActionType = "single"

    @property
    def input_keys(self) -> list[str]:
        return ["input"]

    @property
    def return_values(self) -> list[str]:
        return [DEFAULT_OUTPUT_KEY]

    @property
    def output_key(self) -> str:
        """Key used for finishes the planner does not build itself.

        The first of :attr:`return_values`, or ``"output"`` when there are none.
        """
        keys = self.return_values
        return keys[0] if keys else DEFAULT_OUTPUT_KEY

    async def aplan(
        self,
        steps: list[AgentStep],
        inputs: dict[str, Any],
        *,
        signal: CancellationSignal | None = None,
    ) -> PlanOutput:
        raise NotImplementedError

    async def return_stopped_response(
        self,
        early_stopping_method: str,
        steps: list[AgentStep],
        inputs: dict[str, Any],
        *,
        signal: CancellationSignal | None = None,
    ) -> AgentFinish:
        """Produce a finish when the iteration or time budget is exhausted.

        Only ``"force"`` is understood here; planners that can do better
        (e.g. ask the LLM for a final answer) override this.

        Raises:
            UnsupportedEarlyStoppingError: For any other method name.
        """
        if early_stopping_method == "force":
            return AgentFinish({self.output_key: STOPPED_MESSAGE}, "")
        raise UnsupportedEarlyStoppingError(early_stopping_method)

    async def prepare_for_output(self, return_values: dict[str, Any], steps: list[AgentStep]) -> dict[str, Any]:
        """Extra values merged into the final output.  Defaults to nothing."""
        return {}


class MultiActionPlanner(BasePlanner):
    """Base for planners that may emit several actions per round.

    Return-direct tools cannot be combined with multi-action planners.
    """

    action_type: ActionType = "multi"


PlanFn = Callable[[list[AgentStep], dict[str, Any]], Union[PlanOutput, Awaitable[PlanOutput]]]


class FunctionPlanner(BasePlanner):
    """Adapt a plain function into a planner.

    The function receives ``(steps, inputs)`` and may be sync or async.
    Raising :class:`OutputParserError` is reported as a :class:`ParseFailure`.

    Args:
        fn: The planning function.
        input_keys: Keys the function needs from the run inputs.
        return_values: Output keys the function's finishes produce.
        action_type: ``"multi"`` when the function may return lists of actions.
    """

    def __init__(
        self,
        fn: PlanFn,
        *,
        input_keys: list[str] | None = None,
        return_values: list[str] | None = None,
        action_type: ActionType = "single",
    ) -> None:
        self._fn = fn
        self._input_keys = list(input_keys) if input_keys is not None else ["input"]
        self._return_values = list(return_values) if return_values else [DEFAULT_OUTPUT_KEY]
        self.action_type = action_type

    @property
    def input_keys(self) -> list[str]:
        return list(self._input_keys)

    @property
    def return_values(self) -> list[str]:
        return list(self._return_values)

    async def aplan(
        self,
        steps: list[AgentStep],
        inputs: dict[str, Any],
        *,
        signal: CancellationSignal | None = None,
    ) -> PlanOutput:
        try:
            result = self._fn(list(steps), dict(inputs))
            if inspect.isawaitable(result):
                result = await result
        except OutputParserError as exc:
            logger.debug("Planner function could not parse its output: %s", exc)
            return ParseFailure(exc)
        if not isinstance(result, (AgentAction, AgentFinish, ParseFailure, list)):
            raise TypeError(f"Planner function returned unsupported value {type(result).__name__}")
        return result
