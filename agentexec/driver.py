"""Driver base class for LLM adapters."""

from __future__ import annotations

import logging
from typing import Any

from .exceptions import DriverError

logger = logging.getLogger("agentexec.driver")


class Driver:
    """Adapter base.  Implement ``generate(prompt, options) -> {"text": ..., "meta": {...}}``.

    ``meta`` should carry the standard usage fields:

    {
        "prompt_tokens": int,
        "completion_tokens": int,
        "total_tokens": int,
        "cost": float,
        "raw_response": dict
    }

    Planners read ``text`` and accumulate the numeric ``meta`` fields.
    Options understood by LLM-backed planners include ``"stop"`` (a list of
    stop sequences); drivers that cannot honor it may ignore it.
    """

    supports_messages: bool = False

    def generate(self, prompt: str, options: dict[str, Any]) -> dict[str, Any]:
        raise DriverError(f"{type(self).__name__} does not implement generate()")

    def generate_messages(self, messages: list[dict[str, str]], options: dict[str, Any]) -> dict[str, Any]:
        """Generate a response from a list of conversation messages.

        Each message is a dict with ``"role"`` (``"system"``, ``"user"``, or
        ``"assistant"``) and ``"content"`` keys.  The default flattens them
        into one prompt and delegates to :meth:`generate`.  Drivers that
        accept message arrays natively override this and set
        ``supports_messages = True``.
        """
        prompt = self._flatten_messages(messages)
        logger.debug("Flattened %d messages for %s", len(messages), type(self).__name__)
        return self.generate(prompt, options)

    @staticmethod
    def _flatten_messages(messages: list[dict[str, str]]) -> str:
        """Join messages into a single prompt string with role prefixes."""
        parts: list[str] = []
        for msg in messages:
            role = msg.get("role", "user")
            content = msg.get("content", "")
            if role == "system":
                parts.append(f"[System]: {content}")
            elif role == "assistant":
                parts.append(f"[Assistant]: {content}")
            else:
                parts.append(f"[User]: {content}")
        return "\n\n".join(parts)
