"""LLM-backed ReAct planner.

Renders a "Thought / Action / Action Input / Observation" prompt from the
tool registry and the run's history, sends it to a :class:`Driver` or
:class:`AsyncDriver`, and parses the reply with :class:`ReActOutputParser`.

Example::

    planner = ReActPlanner(driver, tools)
    executor = AgentExecutor(planner, tools, handle_parsing_errors=True)
    await executor.arun({"input": "What is 2**10?"})
"""

from __future__ import annotations

import logging
from collections.abc import Callable, Iterable
from typing import TYPE_CHECKING, Any, Union

from ..async_driver import AsyncDriver
from ..driver import Driver
from ..exceptions import OutputParserError
from .output_parser import ReActOutputParser
from .planner import BasePlanner
from .tools_schema import ToolDefinition, ToolRegistry, call_off_loop
from .types import AgentFinish, AgentStep, ParseFailure, PlanOutput

if TYPE_CHECKING:
    from ..infra.cancellation import CancellationSignal

logger = logging.getLogger("agentexec.react")

DEFAULT_PREFIX = "Answer the following questions as best you can. You have access to the following tools:"
DEFAULT_SUFFIX = """Begin!

Question: {input}
Thought:{agent_scratchpad}"""

OBSERVATION_PREFIX = "Observation: "
LLM_PREFIX = "Thought:"
STOP_SEQUENCES = ["\nObservation:"]

FINAL_ANSWER_REQUEST = "\n\nI now need to return a final answer based on the previous steps:"

_USAGE_FIELDS = ("prompt_tokens", "completion_tokens", "total_tokens", "cost")


class ReActPlanner(BasePlanner):
    """Single-action planner using the ReAct text protocol.

    Args:
        driver: A sync :class:`Driver` or an :class:`AsyncDriver`.
        tools: The tools the model may choose from.  Should match the
            executor's tools.
        prefix: Text placed before the tool descriptions.
        suffix: Template placed after the format instructions.  Receives
            ``{input}`` and ``{agent_scratchpad}``.
        options: Extra driver options merged into every call.
        output_parser: Override the default :class:`ReActOutputParser`.
    """

    def __init__(
        self,
        driver: Union[Driver, AsyncDriver],
        tools: Iterable[ToolDefinition | Callable[..., Any]] | ToolRegistry | None = None,
        *,
        prefix: str = DEFAULT_PREFIX,
        suffix: str = DEFAULT_SUFFIX,
        options: dict[str, Any] | None = None,
        output_parser: ReActOutputParser | None = None,
    ) -> None:
        self._driver = driver
        self._tools = ToolRegistry.from_tools(tools)
        self._prefix = prefix
        self._suffix = suffix
        self._options = dict(options or {})
        self._parser = output_parser or ReActOutputParser(self._tools.names)
        self._usage: dict[str, float] = {k: 0 for k in _USAGE_FIELDS}
        self._usage["calls"] = 0

    @property
    def usage(self) -> dict[str, float]:
        """Token and cost totals accumulated across every driver call."""
        return dict(self._usage)

    @property
    def output_parser(self) -> ReActOutputParser:
        return self._parser

    # ------------------------------------------------------------------
    # Prompt construction
    # ------------------------------------------------------------------

    def construct_scratchpad(self, steps: list[AgentStep]) -> str:
        thoughts = ""
        for step in steps:
            thoughts += step.action.log
            thoughts += f"\n{OBSERVATION_PREFIX}{step.observation}\n{LLM_PREFIX}"
        return thoughts

    def build_prompt(self, steps: list[AgentStep], inputs: dict[str, Any]) -> str:
        tool_block = self._tools.to_prompt_format()
        suffix = self._suffix.format(input=inputs.get("input", ""), agent_scratchpad=self.construct_scratchpad(steps))
        return "\n\n".join([self._prefix, tool_block, self._parser.get_format_instructions(), suffix])

    # ------------------------------------------------------------------
    # Driver access
    # ------------------------------------------------------------------

    async def _generate(self, prompt: str) -> str:
        options = {**self._options, "stop": list(STOP_SEQUENCES)}
        # Sync drivers run in a worker thread.
        resp = await call_off_loop(self._driver.generate, prompt, options)
        meta = resp.get("meta") or {}
        for key in _USAGE_FIELDS:
            value = meta.get(key)
            if isinstance(value, (int, float)):
                self._usage[key] += value
        self._usage["calls"] += 1
        text = resp.get("text", "")
        logger.debug("[react] driver returned %d chars", len(text))
        return text

    # ------------------------------------------------------------------
    # Planner interface
    # ------------------------------------------------------------------

    async def aplan(
        self,
        steps: list[AgentStep],
        inputs: dict[str, Any],
        *,
        signal: CancellationSignal | None = None,
    ) -> PlanOutput:
        text = await self._generate(self.build_prompt(steps, inputs))
        try:
            return self._parser.parse(text)
        except OutputParserError as exc:
            logger.debug("[react] could not parse driver output: %s", exc)
            return ParseFailure(exc)

    async def return_stopped_response(
        self,
        early_stopping_method: str,
        steps: list[AgentStep],
        inputs: dict[str, Any],
        *,
        signal: CancellationSignal | None = None,
    ) -> AgentFinish:
        """Support ``"generate"`` in addition to ``"force"``.

        ``"generate"`` makes one last driver call asking for a final
        answer.  A parsed finish is returned as is; anything else becomes
        the output verbatim.
        """
        if early_stopping_method != "generate":
            return await super().return_stopped_response(early_stopping_method, steps, inputs, signal=signal)

        prompt = self.build_prompt(steps, inputs) + FINAL_ANSWER_REQUEST + f"\n\n{LLM_PREFIX}"
        text = await self._generate(prompt)
        try:
            parsed = self._parser.parse(text)
        except OutputParserError:
            parsed = None
        if isinstance(parsed, AgentFinish):
            return parsed
        return AgentFinish({self.output_key: text}, text)
