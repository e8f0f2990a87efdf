"""Async driver base class for LLM adapters."""

from __future__ import annotations

from typing import Any

from .driver import Driver
from .exceptions import DriverError


class AsyncDriver:
    """Async adapter base.  Implement ``async generate(prompt, options)``
    returning ``{"text": ..., "meta": {...}}`` with the same ``meta``
    contract as :class:`Driver`.
    """

    supports_messages: bool = False

    async def generate(self, prompt: str, options: dict[str, Any]) -> dict[str, Any]:
        raise DriverError(f"{type(self).__name__} does not implement generate()")

    async def generate_messages(self, messages: list[dict[str, str]], options: dict[str, Any]) -> dict[str, Any]:
        """Async counterpart of :meth:`Driver.generate_messages`."""
        prompt = Driver._flatten_messages(messages)
        return await self.generate(prompt, options)

    _flatten_messages = staticmethod(Driver._flatten_messages)
