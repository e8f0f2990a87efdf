"""Step-wise driver for :class:`AgentExecutor`.

The iterator owns one run's state and advances it a single planning
round per :meth:`AgentExecutorIterator.advance` call::

    iterator = executor.iter({"input": "..."})
    while True:
        result = await iterator.advance()
        if isinstance(result, Finished):
            break
        for step in result.steps:
            print(step.action.tool, step.observation)

It is also an async iterator, so ``async for result in iterator`` works.
"""

from __future__ import annotations

import asyncio
import logging
import time
from collections.abc import Mapping
from typing import TYPE_CHECKING, Any

from ..infra.callbacks import fire
from ..infra.cancellation import guarded
from ..infra.logging import log_data
from .types import AdvanceResult, AgentFinish, AgentStep, AlreadyFinished, ExecutorState, Finished, StepsProduced

if TYPE_CHECKING:
    from ..infra.cancellation import CancellationSignal
    from .executor import AgentExecutor

logger = logging.getLogger("agentexec.iterator")


class AgentExecutorIterator:
    """Pull-based state machine over one executor run."""

    def __init__(
        self,
        executor: AgentExecutor,
        inputs: Mapping[str, Any] | str,
        *,
        signal: CancellationSignal | None = None,
    ) -> None:
        self._executor = executor
        self._raw_inputs = inputs
        self._signal = signal
        self.inputs: dict[str, Any] = {}
        self.reset()

    def reset(self) -> None:
        """Return to the pre-run state.  Safe to call repeatedly."""
        self.intermediate_steps: list[AgentStep] = []
        self.iterations = 0
        self._final_outputs: dict[str, Any] | None = None
        self._start_time: float | None = None
        self._run_started = False
        self._state = ExecutorState.idle

    # ------------------------------------------------------------------
    # State
    # ------------------------------------------------------------------

    @property
    def executor(self) -> AgentExecutor:
        return self._executor

    @property
    def state(self) -> ExecutorState:
        return self._state

    @property
    def run_started(self) -> bool:
        return self._run_started

    @property
    def final_outputs(self) -> dict[str, Any] | None:
        return self._final_outputs

    @property
    def result(self) -> dict[str, Any]:
        """The final outputs.  Raises :class:`RuntimeError` before the run finishes."""
        if self._final_outputs is None:
            raise RuntimeError("Run has not finished yet")
        return self._final_outputs

    @property
    def time_elapsed(self) -> float:
        if self._start_time is None:
            return 0.0
        return time.monotonic() - self._start_time

    # ------------------------------------------------------------------
    # Advancing
    # ------------------------------------------------------------------

    async def advance(self) -> AdvanceResult:
        """Perform at most one planning round.

        Returns :class:`StepsProduced` for an ordinary round,
        :class:`Finished` when this call ends the run, and
        :class:`AlreadyFinished` (without calling the planner) on any
        call after that.
        """
        if self._final_outputs is not None:
            return AlreadyFinished(self._final_outputs)
        try:
            if not self._run_started:
                await self._start()
            return await self._next_round()
        except (Exception, asyncio.CancelledError) as exc:
            self._state = ExecutorState.errored
            await fire(self._executor.callbacks.on_run_error, exc)
            raise

    async def _start(self) -> None:
        self.inputs = self._executor.prep_inputs(self._raw_inputs)
        self._start_time = time.monotonic()
        self._run_started = True
        self._state = ExecutorState.running
        logger.info("Agent run started", extra=log_data(input_keys=sorted(self.inputs), mode="iterator"))
        await fire(self._executor.callbacks.on_run_start, self.inputs)

    async def _next_round(self) -> AdvanceResult:
        executor = self._executor
        if not executor.should_continue(self.iterations, self.time_elapsed):
            return await self._stop()

        next_output = await executor.take_next_step(self.inputs, self.intermediate_steps, signal=self._signal)
        if isinstance(next_output, AgentFinish):
            return await self._finish(next_output)

        self.intermediate_steps.extend(next_output)
        tool_return = executor.get_tool_return(next_output)
        if tool_return is not None:
            return await self._finish(tool_return)

        self.iterations += 1
        return StepsProduced(list(next_output))

    async def _stop(self) -> Finished:
        executor = self._executor
        logger.info(
            "Agent stopped early",
            extra=log_data(iterations=self.iterations, method=executor.early_stopping_method),
        )
        finish = await guarded(
            executor.planner.return_stopped_response(
                executor.early_stopping_method,
                list(self.intermediate_steps),
                self.inputs,
                signal=self._signal,
            ),
            self._signal,
        )
        return await self._finish(finish)

    async def _finish(self, finish: AgentFinish) -> Finished:
        output = await self._executor.finalize(finish, self.intermediate_steps)
        self._final_outputs = output
        self._state = ExecutorState.finished
        await fire(self._executor.callbacks.on_run_end, output)
        return Finished(output)

    # ------------------------------------------------------------------
    # Async iteration
    # ------------------------------------------------------------------

    def __aiter__(self) -> AgentExecutorIterator:
        return self

    async def __anext__(self) -> AdvanceResult:
        if self._final_outputs is not None:
            raise StopAsyncIteration
        return await self.advance()
