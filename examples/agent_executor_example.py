#!/usr/bin/env python3
"""AgentExecutor example: running a ReAct planner against local tools.

Demonstrates:
1. Registering tools with @registry.tool and return_direct
2. Running the executor to completion with intermediate steps
3. Recovering from malformed model output with handle_parsing_errors
4. Stepping through a run with the iterator
5. Observing a run through ExecutorCallbacks

Usage:
    python examples/agent_executor_example.py

The driver below replays canned responses so the example runs offline.
Swap in any Driver / AsyncDriver implementation for real model calls.
"""

import asyncio
import logging

from agentexec import (
    AgentExecutor,
    Driver,
    ExecutorCallbacks,
    Finished,
    ReActPlanner,
    StepsProduced,
    ToolRegistry,
    configure_logging,
)


class ReplayDriver(Driver):
    """Returns the scripted responses in order."""

    def __init__(self, responses):
        self.responses = list(responses)
        self.calls = 0

    def generate(self, prompt, options):
        text = self.responses[min(self.calls, len(self.responses) - 1)]
        self.calls += 1
        return {"text": text, "meta": {"prompt_tokens": len(prompt) // 4, "completion_tokens": len(text) // 4}}


configure_logging(logging.INFO)

tools = ToolRegistry()


@tools.tool
def get_population(city: str) -> str:
    """Look up the population of a city.

    Args:
        city: The city name.
    """
    return {"paris": "2.1 million", "tokyo": "14 million"}.get(city.lower(), "unknown")


def shout(text: str) -> str:
    """Repeat the text in capitals as the final answer."""
    return text.upper()


tools.register(shout, return_direct=True)

# ── Section 1: Run to completion ───────────────────────────────────────────

print("=" * 60)
print("Section 1: Run to completion")
print("=" * 60)

driver = ReplayDriver(
    [
        " I need the population.\nAction: get_population\nAction Input: Paris",
        " I now know the final answer.\nFinal Answer: Paris has about 2.1 million people.",
    ]
)
executor = AgentExecutor(ReActPlanner(driver, tools), tools, return_intermediate_steps=True)
result = executor.run("How many people live in Paris?")

print(f"Output: {result['output']}")
for step in result["intermediate_steps"]:
    print(f"  {step.action.tool}({step.action.tool_input!r}) -> {step.observation}")
print()

# ── Section 2: Parsing-error recovery and return-direct ────────────────────

print("=" * 60)
print("Section 2: Parsing-error recovery")
print("=" * 60)

driver = ReplayDriver(["Let me think...", "Action: shout\nAction Input: done"])
executor = AgentExecutor(ReActPlanner(driver, tools), tools, handle_parsing_errors=True)
print(f"Output: {executor.run('Say done loudly')['output']}")
print()

# ── Section 3: Iterator and callbacks ──────────────────────────────────────

print("=" * 60)
print("Section 3: Iterator and callbacks")
print("=" * 60)


async def step_through():
    driver = ReplayDriver(["Action: get_population\nAction Input: Tokyo"])
    callbacks = ExecutorCallbacks(on_tool_end=lambda action, observation: print(f"  tool end: {observation}"))
    executor = AgentExecutor(ReActPlanner(driver, tools), tools, max_iterations=2, callbacks=callbacks)

    async for outcome in executor.iter("Population of Tokyo?"):
        if isinstance(outcome, StepsProduced):
            print(f"  round produced {len(outcome.steps)} step(s)")
        elif isinstance(outcome, Finished):
            print(f"  finished: {outcome.output['output']}")


asyncio.run(step_through())
