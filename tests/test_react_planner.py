"""Tests for the ReAct planner driven through AgentExecutor."""

from __future__ import annotations

import threading
from typing import Any

import pytest

from agentexec.agents.executor import AgentExecutor
from agentexec.agents.planner import STOPPED_MESSAGE
from agentexec.agents.react import STOP_SEQUENCES, ReActPlanner
from agentexec.agents.types import AgentAction, AgentFinish, AgentStep, ParseFailure
from agentexec.async_driver import AsyncDriver
from agentexec.driver import Driver
from agentexec.exceptions import UnsupportedEarlyStoppingError

# ---------------------------------------------------------------------------
# Mock drivers
# ---------------------------------------------------------------------------


def _response(text: str) -> dict[str, Any]:
    return {
        "text": text,
        "meta": {
            "prompt_tokens": 10,
            "completion_tokens": 5,
            "total_tokens": 15,
            "cost": 0.001,
            "raw_response": {},
        },
    }


class MockDriver(Driver):
    """Returns canned responses in order, repeating the last one."""

    def __init__(self, responses: list[str]):
        self.responses = list(responses)
        self.prompts: list[str] = []
        self.options: list[dict[str, Any]] = []

    def generate(self, prompt: str, options: dict[str, Any]) -> dict[str, Any]:
        self.prompts.append(prompt)
        self.options.append(options)
        idx = min(len(self.prompts) - 1, len(self.responses) - 1)
        return _response(self.responses[idx])


class MockAsyncDriver(AsyncDriver):
    def __init__(self, responses: list[str]):
        self.responses = list(responses)
        self.calls = 0

    async def generate(self, prompt: str, options: dict[str, Any]) -> dict[str, Any]:
        idx = min(self.calls, len(self.responses) - 1)
        self.calls += 1
        return _response(self.responses[idx])


SEARCH_THEN_ANSWER = [
    " I should look this up.\nAction: search\nAction Input: dune author",
    " I now know the final answer.\nFinal Answer: Frank Herbert",
]


# ---------------------------------------------------------------------------
# Planner
# ---------------------------------------------------------------------------


class TestReActPrompt:
    def test_prompt_contains_tools_and_question(self, tools):
        planner = ReActPlanner(MockDriver(["x"]), tools)
        prompt = planner.build_prompt([], {"input": "Who wrote Dune?"})
        assert "Tool: search" in prompt
        assert "Tool: add" in prompt
        assert "Action: the action to take, should be one of [search, add]" in prompt
        assert prompt.endswith("Question: Who wrote Dune?\nThought:")

    def test_scratchpad(self, tools):
        planner = ReActPlanner(MockDriver(["x"]), tools)
        steps = [AgentStep(AgentAction("search", "dune", " look it up\nAction: search\nAction Input: dune"), "Herbert")]
        pad = planner.construct_scratchpad(steps)
        assert pad == " look it up\nAction: search\nAction Input: dune\nObservation: Herbert\nThought:"


class TestReActPlanning:
    @pytest.mark.asyncio
    async def test_plan_action_with_stop_sequence(self, tools):
        driver = MockDriver(SEARCH_THEN_ANSWER)
        planner = ReActPlanner(driver, tools, options={"temperature": 0})
        result = await planner.aplan([], {"input": "Who wrote Dune?"})
        assert isinstance(result, AgentAction)
        assert result.tool == "search"
        assert driver.options[0] == {"temperature": 0, "stop": STOP_SEQUENCES}

    @pytest.mark.asyncio
    async def test_unparseable_output_becomes_parse_failure(self, tools):
        planner = ReActPlanner(MockDriver(["no idea"]), tools)
        result = await planner.aplan([], {"input": "?"})
        assert isinstance(result, ParseFailure)
        assert result.error.send_to_llm is True

    @pytest.mark.asyncio
    async def test_full_run(self, tools):
        driver = MockDriver(SEARCH_THEN_ANSWER)
        planner = ReActPlanner(driver, tools)
        executor = AgentExecutor(planner, tools, return_intermediate_steps=True)
        result = await executor.arun({"input": "Who wrote Dune?"})
        assert result["output"] == "Frank Herbert"
        assert result["intermediate_steps"][0].observation == "results for dune author"
        assert "Observation: results for dune author" in driver.prompts[1]

    @pytest.mark.asyncio
    async def test_async_driver(self, tools):
        driver = MockAsyncDriver(SEARCH_THEN_ANSWER)
        executor = AgentExecutor(ReActPlanner(driver, tools), tools)
        assert await executor.arun("Who wrote Dune?") == {"output": "Frank Herbert"}
        assert driver.calls == 2

    @pytest.mark.asyncio
    async def test_sync_driver_runs_off_event_loop(self, tools):
        threads = []

        class ThreadRecordingDriver(MockDriver):
            def generate(self, prompt, options):
                threads.append(threading.get_ident())
                return super().generate(prompt, options)

        planner = ReActPlanner(ThreadRecordingDriver(["Final Answer: done"]), tools)
        assert await planner.aplan([], {"input": "q"}) == AgentFinish({"output": "done"}, "Final Answer: done")
        assert threads and threads[0] != threading.get_ident()

    @pytest.mark.asyncio
    async def test_parse_error_fed_back_to_model(self, tools):
        driver = MockDriver(["I forgot the format", "Final Answer: fixed"])
        executor = AgentExecutor(ReActPlanner(driver, tools), tools, handle_parsing_errors=True)
        assert await executor.arun("q") == {"output": "fixed"}
        assert "Observation: Invalid Format: Missing 'Action:' after 'Thought:'" in driver.prompts[1]

    @pytest.mark.asyncio
    async def test_usage_accumulates(self, tools):
        planner = ReActPlanner(MockDriver(SEARCH_THEN_ANSWER), tools)
        await AgentExecutor(planner, tools).arun("q")
        usage = planner.usage
        assert usage["calls"] == 2
        assert usage["total_tokens"] == 30
        assert usage["cost"] == pytest.approx(0.002)


class TestReActEarlyStopping:
    @pytest.mark.asyncio
    async def test_force(self, tools):
        driver = MockDriver(["Action: search\nAction Input: again"])
        executor = AgentExecutor(ReActPlanner(driver, tools), tools, max_iterations=2)
        assert await executor.arun("q") == {"output": STOPPED_MESSAGE}
        assert len(driver.prompts) == 2

    @pytest.mark.asyncio
    async def test_generate_parsed_final_answer(self, tools):
        driver = MockDriver(["Action: search\nAction Input: again"] * 2 + ["Final Answer: best guess"])
        executor = AgentExecutor(ReActPlanner(driver, tools), tools, max_iterations=2, early_stopping_method="generate")
        assert await executor.arun("q") == {"output": "best guess"}
        assert len(driver.prompts) == 3
        assert "I now need to return a final answer" in driver.prompts[2]

    @pytest.mark.asyncio
    async def test_generate_raw_text_fallback(self, tools):
        driver = MockDriver(["Action: search\nAction Input: again", "just some text"])
        executor = AgentExecutor(ReActPlanner(driver, tools), tools, max_iterations=1, early_stopping_method="generate")
        assert await executor.arun("q") == {"output": "just some text"}

    @pytest.mark.asyncio
    async def test_unknown_method(self, tools):
        planner = ReActPlanner(MockDriver(["x"]), tools)
        with pytest.raises(UnsupportedEarlyStoppingError):
            await planner.return_stopped_response("bogus", [], {"input": "q"})

    @pytest.mark.asyncio
    async def test_generate_returns_finish(self, tools):
        planner = ReActPlanner(MockDriver(["Final Answer: ok"]), tools)
        finish = await planner.return_stopped_response("generate", [], {"input": "q"})
        assert finish == AgentFinish({"output": "ok"}, "Final Answer: ok")
