"""agentexec exception hierarchy.

Provides a structured set of exceptions for the failure modes of the agent
execution loop.  All exceptions inherit from :class:`AgentExecError` which
itself inherits from ``Exception``.  Where appropriate, exceptions also
inherit from the stdlib exception they replace (e.g. ``ConfigurationError``
extends ``ValueError``) so callers can catch either.
"""

from typing import Any


class AgentExecError(Exception):
    """Base exception for all agentexec errors."""


class ConfigurationError(AgentExecError, ValueError):
    """Raised for invalid executor configuration."""


class UnsupportedEarlyStoppingError(ConfigurationError):
    """Raised when the loop is exhausted under an unknown early-stopping method."""

    def __init__(self, method: str) -> None:
        self.method = method
        super().__init__(f"Got unsupported early_stopping_method: {method!r}")


class ToolAlreadyRegisteredError(ConfigurationError):
    """Raised when two tools share a (case-insensitive) name."""


class MissingInputKeyError(AgentExecError, KeyError):
    """Raised when a run is started without every required input key."""

    def __init__(self, missing: list[str]) -> None:
        self.missing = list(missing)
        super().__init__(f"Missing some input keys: {', '.join(self.missing)}")

    def __str__(self) -> str:
        # KeyError quotes its argument; keep the message readable.
        return str(self.args[0])


class OutputParserError(AgentExecError, ValueError):
    """Raised when the planner's raw LLM response cannot be parsed.

    Attributes:
        observation: Text to feed back to the planner when
            ``send_to_llm`` is set.
        llm_output: The raw model output that failed to parse.
        send_to_llm: Whether ``observation`` should replace the generic
            recovery message.
    """

    def __init__(
        self,
        message: str,
        *,
        observation: str | None = None,
        llm_output: str | None = None,
        send_to_llm: bool = False,
    ) -> None:
        if send_to_llm and (observation is None or llm_output is None):
            raise ValueError("Arguments 'observation' & 'llm_output' are required if 'send_to_llm' is True")
        self.observation = observation
        self.llm_output = llm_output
        self.send_to_llm = send_to_llm
        super().__init__(message)


class ToolInputParsingError(AgentExecError, ValueError):
    """Raised by a tool when it cannot interpret the input it was given."""

    def __init__(self, message: str, *, tool_input: Any = None) -> None:
        self.tool_input = tool_input
        super().__init__(message)


class RunCancelledError(AgentExecError):
    """Raised when a run's cancellation signal fires mid-flight."""

    def __init__(self, reason: str | None = None) -> None:
        self.reason = reason
        super().__init__(f"Run cancelled: {reason}" if reason else "Run cancelled")


class DriverError(AgentExecError, NotImplementedError):
    """Raised when a driver operation fails or is not implemented."""
