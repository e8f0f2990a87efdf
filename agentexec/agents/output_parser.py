"""Parser for ReAct-style "Thought / Action / Action Input" responses."""

from __future__ import annotations

import json
import re
from typing import Any

from ..exceptions import OutputParserError
from .types import AgentAction, AgentFinish

FINAL_ANSWER_ACTION = "Final Answer:"

FORMAT_INSTRUCTIONS = """Use the following format:

Question: the input question you must answer
Thought: you should always think about what to do
Action: the action to take, should be one of [{tool_names}]
Action Input: the input to the action
Observation: the result of the action
... (this Thought/Action/Action Input/Observation can repeat N times)
Thought: I now know the final answer
Final Answer: the final answer to the original input question"""

MISSING_ACTION_MESSAGE = "Invalid Format: Missing 'Action:' after 'Thought:'"
MISSING_ACTION_INPUT_MESSAGE = "Invalid Format: Missing 'Action Input:' after 'Action:'"

_ACTION_RE = re.compile(r"Action\s*\d*\s*:[\s]*(.*?)[\s]*Action\s*\d*\s*Input\s*\d*\s*:[\s]*(.*)", re.DOTALL)
_ACTION_ONLY_RE = re.compile(r"Action\s*\d*\s*:[\s]*(.*?)", re.DOTALL)


class ReActOutputParser:
    """Turn raw ReAct text into an :class:`AgentAction` or :class:`AgentFinish`.

    Raises :class:`OutputParserError` for malformed text.  Errors for a
    missing ``Action:`` / ``Action Input:`` line carry ``send_to_llm=True``
    so the executor can feed the correction back to the model.
    """

    def __init__(self, tool_names: list[str] | None = None, output_key: str = "output") -> None:
        self.tool_names = list(tool_names or [])
        self.output_key = output_key

    def get_format_instructions(self) -> str:
        return FORMAT_INSTRUCTIONS.format(tool_names=", ".join(self.tool_names))

    def parse(self, text: str) -> AgentAction | AgentFinish:
        includes_answer = FINAL_ANSWER_ACTION in text
        match = _ACTION_RE.search(text)

        if match:
            if includes_answer:
                raise OutputParserError(f"Parsing LLM output produced both a final answer and a parse-able action: {text}")
            tool = match.group(1).strip().strip("*").strip()
            return AgentAction(tool=tool, tool_input=self._parse_tool_input(match.group(2)), log=text)

        if includes_answer:
            answer = text.split(FINAL_ANSWER_ACTION, 1)[-1].strip()
            return AgentFinish({self.output_key: answer}, text)

        if not _ACTION_ONLY_RE.search(text):
            raise OutputParserError(
                f"Could not parse LLM output: `{text}`",
                observation=MISSING_ACTION_MESSAGE,
                llm_output=text,
                send_to_llm=True,
            )
        raise OutputParserError(
            f"Could not parse LLM output: `{text}`",
            observation=MISSING_ACTION_INPUT_MESSAGE,
            llm_output=text,
            send_to_llm=True,
        )

    @staticmethod
    def _parse_tool_input(raw: str) -> Any:
        value = raw.strip()
        # Drop anything the model hallucinated past the action input.
        value = value.split("\nObservation", 1)[0].strip()
        if value.startswith("{"):
            try:
                decoded = json.loads(value)
            except json.JSONDecodeError:
                return value
            if isinstance(decoded, dict):
                return decoded
        return value.strip('"')
