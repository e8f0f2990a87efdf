"""The agent execution loop.

:class:`AgentExecutor` drives a planner and a set of tools through the
plan -> act -> observe cycle until the planner finishes, a return-direct
tool answers, or the iteration/time budget runs out.

Example::

    from agentexec import AgentExecutor, ToolRegistry
    from agentexec.agents.react import ReActPlanner

    tools = ToolRegistry()

    @tools.tool
    def search(query: str) -> str:
        \"\"\"Search the web.\"\"\"
        ...

    planner = ReActPlanner(driver, tools)
    executor = AgentExecutor(planner, tools, max_iterations=5, handle_parsing_errors=True)
    result = executor.run({"input": "Who wrote Dune?"})
    print(result["output"])
"""

from __future__ import annotations

import asyncio
import logging
import time
from collections.abc import AsyncIterator, Callable, Iterable, Mapping
from typing import TYPE_CHECKING, Any, Union

from ..exceptions import ConfigurationError, MissingInputKeyError, OutputParserError, ToolInputParsingError
from ..infra.callbacks import ExecutorCallbacks, fire
from ..infra.cancellation import CancellationSignal, guarded
from ..infra.logging import log_data
from ..infra.settings import ExecutorSettings
from .planner import BasePlanner
from .tools_schema import EXCEPTION_TOOL_NAME, ExceptionTool, ToolDefinition, ToolRegistry
from .types import AdvanceResult, AgentAction, AgentFinish, AgentStep, ExecutorState, ParseFailure

if TYPE_CHECKING:
    from .iterator import AgentExecutorIterator

logger = logging.getLogger("agentexec.executor")

INVALID_RESPONSE_OBSERVATION = "Invalid or incomplete response"
INVALID_TOOL_INPUT_OBSERVATION = "Invalid or incomplete tool input. Please try again."
INTERMEDIATE_STEPS_KEY = "intermediate_steps"

ParsingErrorPolicy = Union[bool, str, Callable[[Exception], str]]


class AgentExecutor:
    """Runs a planner against a set of tools until it reaches a final answer.

    Args:
        planner: The planning component (see :class:`BasePlanner`).
        tools: Tool definitions, plain callables, or a :class:`ToolRegistry`.
        max_iterations: Upper bound on planning rounds.  ``None`` means
            unbounded; termination then depends on the planner.
        max_execution_time: Optional wall-clock budget in seconds, checked
            before each round.
        early_stopping_method: Passed to
            :meth:`BasePlanner.return_stopped_response` when the budget runs
            out.  ``"force"`` is always supported.  Unknown names fail when
            the budget is exhausted, not at construction.
        return_intermediate_steps: Include the full step history in the
            output under ``"intermediate_steps"``.
        handle_parsing_errors: What to do with planner output-parsing
            failures and tool input-parsing failures.  ``False`` re-raises;
            ``True`` feeds a generic (or parser-suggested) observation back;
            a string is used verbatim as the observation; a callable
            receives the error and returns the observation.
        callbacks: Optional :class:`ExecutorCallbacks` observer.

    Raises:
        ConfigurationError: For a multi-action planner combined with a
            return-direct tool, or an invalid option value.
    """

    def __init__(
        self,
        planner: BasePlanner,
        tools: Iterable[ToolDefinition | Callable[..., Any]] | ToolRegistry | None = None,
        *,
        max_iterations: int | None = 15,
        max_execution_time: float | None = None,
        early_stopping_method: str = "force",
        return_intermediate_steps: bool = False,
        handle_parsing_errors: ParsingErrorPolicy = False,
        callbacks: ExecutorCallbacks | None = None,
    ) -> None:
        if max_iterations is not None and max_iterations < 0:
            raise ConfigurationError("max_iterations must be a non-negative integer or None")
        if max_execution_time is not None and max_execution_time <= 0:
            raise ConfigurationError("max_execution_time must be positive or None")
        if not isinstance(handle_parsing_errors, (bool, str)) and not callable(handle_parsing_errors):
            raise ConfigurationError(
                f"handle_parsing_errors must be a bool, str or callable, got {type(handle_parsing_errors).__name__}"
            )

        self._planner = planner
        self._tools = ToolRegistry.from_tools(tools)
        if EXCEPTION_TOOL_NAME in self._tools:
            raise ConfigurationError(f"Tool name {EXCEPTION_TOOL_NAME!r} is reserved")
        if planner.action_type == "multi":
            for td in self._tools.return_direct_tools:
                raise ConfigurationError(f"Tool with return direct {td.name} not supported for multi-action agent.")

        self.max_iterations = max_iterations
        self.max_execution_time = max_execution_time
        self.early_stopping_method = early_stopping_method
        self.return_intermediate_steps = return_intermediate_steps
        self.handle_parsing_errors = handle_parsing_errors
        self._callbacks = callbacks or ExecutorCallbacks()
        self._exception_tool = ExceptionTool()
        self._state = ExecutorState.idle

    # ------------------------------------------------------------------
    # Construction helpers
    # ------------------------------------------------------------------

    @classmethod
    def from_planner_and_tools(
        cls,
        planner: BasePlanner,
        tools: Iterable[ToolDefinition | Callable[..., Any]] | ToolRegistry | None,
        **kwargs: Any,
    ) -> AgentExecutor:
        return cls(planner, tools, **kwargs)

    @classmethod
    def from_settings(
        cls,
        planner: BasePlanner,
        tools: Iterable[ToolDefinition | Callable[..., Any]] | ToolRegistry | None,
        settings: ExecutorSettings | None = None,
        **overrides: Any,
    ) -> AgentExecutor:
        """Build an executor whose unspecified options come from *settings*."""
        cfg = settings or ExecutorSettings()
        options: dict[str, Any] = {
            "max_iterations": cfg.max_iterations,
            "max_execution_time": cfg.max_execution_time,
            "early_stopping_method": cfg.early_stopping_method,
            "return_intermediate_steps": cfg.return_intermediate_steps,
            "handle_parsing_errors": cfg.parsing_error_policy(),
        }
        options.update(overrides)
        return cls(planner, tools, **options)

    # ------------------------------------------------------------------
    # Introspection
    # ------------------------------------------------------------------

    @property
    def planner(self) -> BasePlanner:
        return self._planner

    @property
    def tools(self) -> ToolRegistry:
        return self._tools

    @property
    def callbacks(self) -> ExecutorCallbacks:
        return self._callbacks

    @property
    def state(self) -> ExecutorState:
        """Lifecycle state of the most recent :meth:`arun` call."""
        return self._state

    @property
    def input_keys(self) -> list[str]:
        return self._planner.input_keys

    @property
    def output_keys(self) -> list[str]:
        keys = list(self._planner.return_values) or [self._planner.output_key]
        if self.return_intermediate_steps:
            keys.append(INTERMEDIATE_STEPS_KEY)
        return keys

    def should_continue(self, iterations: int, time_elapsed: float = 0.0) -> bool:
        """Whether another planning round is allowed."""
        if self.max_iterations is not None and iterations >= self.max_iterations:
            return False
        if self.max_execution_time is not None and time_elapsed >= self.max_execution_time:
            return False
        return True

    def prep_inputs(self, inputs: Mapping[str, Any] | str) -> dict[str, Any]:
        """Normalize and validate run inputs.

        A bare string is accepted when the planner declares exactly one
        input key.

        Raises:
            MissingInputKeyError: If a required key is absent.
        """
        keys = self.input_keys
        if isinstance(inputs, str):
            if len(keys) != 1:
                raise ConfigurationError(
                    f"A single string input requires exactly one input key; planner expects {keys}"
                )
            return {keys[0]: inputs}
        prepared = dict(inputs)
        missing = [k for k in keys if k not in prepared]
        if missing:
            raise MissingInputKeyError(missing)
        return prepared

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    def run(self, inputs: Mapping[str, Any] | str) -> dict[str, Any]:
        """Synchronous wrapper around :meth:`arun`.

        Must not be called from inside a running event loop.
        """
        return asyncio.run(self.arun(inputs))

    async def arun(
        self,
        inputs: Mapping[str, Any] | str,
        *,
        signal: CancellationSignal | None = None,
    ) -> dict[str, Any]:
        """Execute the loop to completion and return the output mapping."""
        self._state = ExecutorState.running
        try:
            prepared = self.prep_inputs(inputs)
            logger.info("Agent run started", extra=log_data(input_keys=sorted(prepared)))
            await fire(self._callbacks.on_run_start, prepared)
            outputs = await self._call(prepared, signal)
        except (Exception, asyncio.CancelledError) as exc:
            self._state = ExecutorState.errored
            logger.debug("Agent run failed: %r", exc)
            await fire(self._callbacks.on_run_error, exc)
            raise
        self._state = ExecutorState.finished
        await fire(self._callbacks.on_run_end, outputs)
        return outputs

    def iter(
        self,
        inputs: Mapping[str, Any] | str,
        *,
        signal: CancellationSignal | None = None,
    ) -> AgentExecutorIterator:
        """Return an iterator that advances the loop one round at a time."""
        from .iterator import AgentExecutorIterator

        return AgentExecutorIterator(self, inputs, signal=signal)

    async def astream(
        self,
        inputs: Mapping[str, Any] | str,
        *,
        signal: CancellationSignal | None = None,
    ) -> AsyncIterator[AdvanceResult]:
        """Yield each round's result, ending with the :class:`Finished` output."""
        async for result in self.iter(inputs, signal=signal):
            yield result

    # ------------------------------------------------------------------
    # Loop
    # ------------------------------------------------------------------

    async def _call(self, inputs: dict[str, Any], signal: CancellationSignal | None) -> dict[str, Any]:
        steps: list[AgentStep] = []
        iterations = 0
        start = time.monotonic()

        while self.should_continue(iterations, time.monotonic() - start):
            next_output = await self.take_next_step(inputs, steps, signal=signal)
            if isinstance(next_output, AgentFinish):
                return await self.finalize(next_output, steps)

            steps.extend(next_output)
            tool_return = self.get_tool_return(next_output)
            if tool_return is not None:
                logger.debug("Return-direct tool %r ended the run", next_output[-1].action.tool)
                return await self.finalize(tool_return, steps)
            iterations += 1

        logger.info(
            "Agent stopped early",
            extra=log_data(iterations=iterations, method=self.early_stopping_method),
        )
        finish = await guarded(
            self._planner.return_stopped_response(self.early_stopping_method, list(steps), inputs, signal=signal),
            signal,
        )
        return await self.finalize(finish, steps)

    async def take_next_step(
        self,
        inputs: dict[str, Any],
        steps: list[AgentStep],
        *,
        signal: CancellationSignal | None = None,
    ) -> AgentFinish | list[AgentStep]:
        """Run one planning round: plan, then execute the chosen actions."""
        output = await guarded(self._planner.aplan(list(steps), inputs, signal=signal), signal)

        if isinstance(output, ParseFailure):
            output = self._recover_from_parse_failure(output.error)
        if isinstance(output, AgentFinish):
            return output

        actions = output if isinstance(output, list) else [output]
        return await self.execute_actions(actions, signal=signal)

    async def execute_actions(
        self,
        actions: list[AgentAction],
        *,
        signal: CancellationSignal | None = None,
    ) -> list[AgentStep]:
        """Execute *actions* and return their steps in the same order.

        Several actions from one round are dispatched concurrently.  If one
        of them fails, the others are cancelled and awaited before the error
        propagates.
        """
        if len(actions) == 1:
            return [await self._perform_action(actions[0], signal)]
        tasks = [asyncio.ensure_future(self._perform_action(action, signal)) for action in actions]
        try:
            return list(await asyncio.gather(*tasks))
        except (Exception, asyncio.CancelledError):
            for task in tasks:
                task.cancel()
            await asyncio.gather(*tasks, return_exceptions=True)
            raise

    async def _perform_action(self, action: AgentAction, signal: CancellationSignal | None) -> AgentStep:
        await fire(self._callbacks.on_agent_action, action)
        logger.debug("Agent action", extra=log_data(tool=action.tool))

        if action.tool == EXCEPTION_TOOL_NAME:
            tool: ToolDefinition | None = self._exception_tool
        else:
            tool = self._tools.get(action.tool)

        if tool is None:
            observation = (
                f"{action.tool} is not a valid tool, try another available tool: {', '.join(self._tools.names)}"
            )
            logger.warning("Planner requested unknown tool %r", action.tool)
        else:
            try:
                observation = await guarded(tool.acall(action.tool_input, signal=signal), signal)
            except ToolInputParsingError as exc:
                fallback = self._parsing_error_observation(exc, INVALID_TOOL_INPUT_OBSERVATION)
                logger.warning("Tool %r rejected its input: %s", action.tool, exc)
                observation = await self._exception_tool.acall(fallback)

        await fire(self._callbacks.on_tool_end, action, observation)
        return AgentStep(action=action, observation=observation)

    # ------------------------------------------------------------------
    # Parsing-error policy
    # ------------------------------------------------------------------

    def _parsing_error_observation(self, error: Exception, generic: str) -> str:
        """Map *error* to an observation under ``handle_parsing_errors``.

        Re-raises *error* when the policy is ``False``.
        """
        policy = self.handle_parsing_errors
        if isinstance(policy, bool):
            if not policy:
                raise error
            return generic
        if isinstance(policy, str):
            return policy
        return str(policy(error))

    def _recover_from_parse_failure(self, error: OutputParserError) -> AgentAction:
        log_text = str(error)
        if self.handle_parsing_errors is True and error.send_to_llm:
            observation = str(error.observation)
            log_text = error.llm_output or ""
        else:
            observation = self._parsing_error_observation(error, INVALID_RESPONSE_OBSERVATION)
        logger.warning("Recovered from planner output parsing error: %s", error)
        return AgentAction(tool=EXCEPTION_TOOL_NAME, tool_input=observation, log=log_text)

    # ------------------------------------------------------------------
    # Finalization
    # ------------------------------------------------------------------

    def get_tool_return(self, new_steps: list[AgentStep]) -> AgentFinish | None:
        """Return a finish if a step in this round used a return-direct tool."""
        for step in new_steps:
            if step.action.tool == EXCEPTION_TOOL_NAME:
                continue
            tool = self._tools.get(step.action.tool)
            if tool is not None and tool.return_direct:
                return AgentFinish({self._planner.output_key: step.observation}, "")
        return None

    async def finalize(self, finish: AgentFinish, steps: list[AgentStep]) -> dict[str, Any]:
        """Build the output mapping from *finish* and the step history."""
        await fire(self._callbacks.on_agent_finish, finish)
        output = dict(finish.return_values)
        output.update(await self._planner.prepare_for_output(finish.return_values, list(steps)))
        if self.return_intermediate_steps:
            output[INTERMEDIATE_STEPS_KEY] = list(steps)
        logger.info("Agent run finished", extra=log_data(output_keys=sorted(output), steps=len(steps)))
        return output
