"""Tests for tool definitions, the ExceptionTool and ToolRegistry."""

from __future__ import annotations

import asyncio
import threading
from typing import Optional

import pytest

from agentexec.agents.tools_schema import (
    EXCEPTION_TOOL_NAME,
    ExceptionTool,
    ToolDefinition,
    ToolRegistry,
    call_off_loop,
    tool_from_function,
)
from agentexec.exceptions import ToolAlreadyRegisteredError, ToolInputParsingError

# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def _build_registry() -> ToolRegistry:
    """Create a registry with three tools for testing."""
    reg = ToolRegistry()

    @reg.tool
    def file_read(path: str) -> str:
        """Read a file."""
        return path

    @reg.tool
    def file_write(path: str, content: str) -> str:
        """Write a file."""
        return f"{path}: {content}"

    @reg.tool
    def python_execute(code: str) -> str:
        """Execute Python code."""
        return code

    return reg


# ---------------------------------------------------------------------------
# tool_from_function()
# ---------------------------------------------------------------------------


class TestToolFromFunction:
    def test_schema_from_hints_and_docstring(self):
        def get_weather(city: str, days: int = 1, units: Optional[str] = None) -> str:
            """Get the forecast for a city.

            Args:
                city: Name of the city.
                days: How many days ahead.
            """
            return city

        td = tool_from_function(get_weather)
        assert td.name == "get_weather"
        assert td.description == "Get the forecast for a city."
        props = td.parameters["properties"]
        assert props["city"] == {"type": "string", "description": "Name of the city."}
        assert props["days"]["type"] == "integer"
        assert props["units"]["type"] == "string"
        assert td.parameters["required"] == ["city"]
        assert td.return_direct is False

    def test_list_annotation(self):
        def tag(labels: list[str]) -> str:
            return ",".join(labels)

        td = tool_from_function(tag)
        assert td.parameters["properties"]["labels"]["type"] == "array"
        assert td.parameters["properties"]["labels"]["items"] == {"type": "string"}

    def test_overrides(self):
        td = tool_from_function(lambda q: q, name="answer", description="Give the answer", return_direct=True)
        assert td.name == "answer"
        assert td.description == "Give the answer"
        assert td.return_direct is True

    def test_signal_parameter_hidden(self):
        def watch(query: str, signal=None) -> str:
            return query

        td = tool_from_function(watch)
        assert list(td.parameters["properties"]) == ["query"]

    def test_prompt_format(self):
        def search(query: str) -> str:
            """Search the web."""
            return query

        text = tool_from_function(search).to_prompt_format()
        assert "Tool: search" in text
        assert "Description: Search the web." in text
        assert "- query (string, required)" in text


# ---------------------------------------------------------------------------
# Input parsing and invocation
# ---------------------------------------------------------------------------


class TestToolInput:
    def _adder(self) -> ToolDefinition:
        def add(a: int, b: int = 0) -> int:
            return a + b

        return tool_from_function(add)

    def test_string_for_single_parameter(self):
        td = tool_from_function(lambda query: query, name="echo")
        assert td.parse_input("hello") == {"query": "hello"}

    def test_json_string_for_multiple_parameters(self):
        assert self._adder().parse_input('{"a": 1, "b": 2}') == {"a": 1, "b": 2}

    def test_plain_string_binds_sole_required_parameter(self):
        assert self._adder().parse_input("5") == {"a": "5"}

    def test_mapping_with_unknown_key(self):
        with pytest.raises(ToolInputParsingError, match="unexpected arguments: c"):
            self._adder().parse_input({"a": 1, "c": 2})

    def test_mapping_missing_required(self):
        with pytest.raises(ToolInputParsingError, match="missing required arguments: a"):
            self._adder().parse_input({"b": 1})

    def test_plain_string_with_several_required(self):
        td = tool_from_function(lambda x, y: x + y, name="pair")
        with pytest.raises(ToolInputParsingError) as exc_info:
            td.parse_input("not json")
        assert exc_info.value.tool_input == "not json"

    def test_unsupported_input_type(self):
        with pytest.raises(ToolInputParsingError):
            self._adder().parse_input(42)

    def test_call_serializes_result(self):
        assert self._adder().call({"a": 2, "b": 3}) == "5"

    def test_none_result_is_empty_observation(self):
        td = tool_from_function(lambda query: None, name="noop")
        assert td.call("x") == ""

    def test_call_rejects_async_tool(self):
        async def fetch(url: str) -> str:
            return url

        with pytest.raises(TypeError, match="is async"):
            tool_from_function(fetch).call("http://example.com")

    @pytest.mark.asyncio
    async def test_acall_awaits_async_tool(self):
        async def fetch(url: str) -> dict:
            await asyncio.sleep(0)
            return {"url": url, "status": 200}

        observation = await tool_from_function(fetch).acall("http://example.com")
        assert observation == '{"url": "http://example.com", "status": 200}'

    @pytest.mark.asyncio
    async def test_acall_runs_sync_tool_in_worker_thread(self):
        def where(query: str) -> int:
            return threading.get_ident()

        observation = await tool_from_function(where).acall("x")
        assert observation != str(threading.get_ident())

    @pytest.mark.asyncio
    async def test_call_off_loop(self):
        async def coro_fn(value):
            return threading.get_ident(), value

        class AsyncCallable:
            async def __call__(self, value):
                return threading.get_ident(), value

        loop_thread = threading.get_ident()
        assert await call_off_loop(coro_fn, 1) == (loop_thread, 1)
        assert await call_off_loop(AsyncCallable(), 2) == (loop_thread, 2)
        worker_thread, value = await call_off_loop(lambda v: (threading.get_ident(), v), 3)
        assert value == 3
        assert worker_thread != loop_thread


class TestExceptionTool:
    def test_name(self):
        assert ExceptionTool().name == EXCEPTION_TOOL_NAME == "_Exception"

    def test_echoes_input(self):
        assert ExceptionTool().call("x") == "x"

    @pytest.mark.asyncio
    async def test_async_echo(self):
        assert await ExceptionTool().acall("Invalid or incomplete response") == "Invalid or incomplete response"


# ---------------------------------------------------------------------------
# ToolRegistry
# ---------------------------------------------------------------------------


class TestRegistry:
    def test_names_keep_registration_order(self):
        assert _build_registry().names == ["file_read", "file_write", "python_execute"]

    def test_case_insensitive_lookup(self):
        reg = _build_registry()
        assert "FILE_READ" in reg
        assert reg.get("File_Read").name == "file_read"
        assert reg.get("missing") is None
        assert reg.get(None) is None

    def test_duplicate_registration_rejected(self):
        reg = _build_registry()
        with pytest.raises(ToolAlreadyRegisteredError):
            reg.register(lambda path: path, name="FILE_READ")

    def test_overwrite(self):
        reg = _build_registry()
        reg.register(lambda path: path.upper(), name="file_read", overwrite=True)
        assert reg.execute("file_read", "a") == "A"
        assert len(reg) == 3

    def test_decorator_returns_function(self):
        reg = ToolRegistry()

        @reg.tool
        def ping(host: str) -> str:
            return "pong"

        assert ping("x") == "pong"
        assert bool(reg) is True

    def test_return_direct_tools(self):
        reg = _build_registry()
        reg.register(lambda q: q, name="final", return_direct=True)
        assert [td.name for td in reg.return_direct_tools] == ["final"]

    def test_from_tools_mixed(self):
        td = tool_from_function(lambda q: q, name="one")

        def two(q: str) -> str:
            return q

        reg = ToolRegistry.from_tools([td, two])
        assert reg.names == ["one", "two"]

    def test_from_tools_copies_registry(self):
        reg = _build_registry()
        copy = ToolRegistry.from_tools(reg)
        copy.register(lambda q: q, name="extra")
        assert "extra" not in reg

    def test_from_tools_none(self):
        assert len(ToolRegistry.from_tools(None)) == 0

    def test_execute_unknown_raises_keyerror(self):
        with pytest.raises(KeyError, match="Tool not registered"):
            _build_registry().execute("nope", "x")

    @pytest.mark.asyncio
    async def test_aexecute(self):
        result = await _build_registry().aexecute("file_write", {"path": "a.txt", "content": "hi"})
        assert result == "a.txt: hi"

    def test_to_prompt_format_joins_tools(self):
        text = _build_registry().to_prompt_format()
        assert text.count("Tool: ") == 3


class TestSubset:
    def test_subset_returns_correct_tools(self):
        reg = _build_registry()
        sub = reg.subset({"file_read", "python_execute"})
        assert len(sub) == 2
        assert "file_read" in sub
        assert "file_write" not in sub

    def test_subset_returns_new_registry(self):
        reg = _build_registry()
        sub = reg.subset({"file_read"})
        assert sub is not reg
        assert len(reg) == 3

    def test_subset_unknown_name_raises_keyerror(self):
        with pytest.raises(KeyError, match="Unknown tools"):
            _build_registry().subset({"file_read", "nonexistent"})


class TestExclude:
    def test_exclude_removes_named_tools(self):
        sub = _build_registry().exclude({"file_write"})
        assert sub.names == ["file_read", "python_execute"]

    def test_exclude_missing_name_is_silent(self):
        assert len(_build_registry().exclude({"nonexistent"})) == 3

    def test_excluded_registry_is_executable(self):
        assert _build_registry().exclude(["file_write"]).execute("python_execute", "print(1)") == "print(1)"
