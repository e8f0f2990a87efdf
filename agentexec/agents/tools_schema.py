"""Tool definitions and the tool registry used by the executor.

Provides :class:`ToolDefinition` for describing callable tools,
:class:`ToolRegistry` for managing a collection of tools, and
:func:`tool_from_function` to auto-generate tool schemas from type hints.

Example::

    from agentexec import ToolRegistry

    registry = ToolRegistry()

    @registry.tool
    def get_weather(city: str, units: str = "celsius") -> str:
        \"\"\"Get the current weather for a city.\"\"\"
        return f"Weather in {city}: 22 {units}"

    # Or register explicitly, marking the result as the final answer
    registry.register(lookup_answer, return_direct=True)
"""

from __future__ import annotations

import asyncio
import inspect
import json
import logging
import types
from collections.abc import Iterable, Mapping
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any, Callable, Union, get_args, get_origin, get_type_hints

from ..exceptions import ToolAlreadyRegisteredError, ToolInputParsingError

if TYPE_CHECKING:
    from ..infra.cancellation import CancellationSignal

logger = logging.getLogger("agentexec.tools_schema")

EXCEPTION_TOOL_NAME = "_Exception"

# Parameter name through which a tool may receive the run's cancellation signal.
SIGNAL_PARAM = "signal"

# Mapping from Python types to JSON Schema types
_TYPE_MAP: dict[type, str] = {
    str: "string",
    int: "integer",
    float: "number",
    bool: "boolean",
    list: "array",
    dict: "object",
}


def _python_type_to_json_schema(annotation: Any) -> dict[str, Any]:
    """Convert a Python type annotation to a JSON Schema snippet."""
    if annotation is inspect.Parameter.empty or annotation is None:
        return {"type": "string"}

    origin = get_origin(annotation)
    args = get_args(annotation)

    if annotation is type(None):
        return {"type": "string"}

    # Optional[X], Union[X, None] and X | None
    if origin is Union or origin is types.UnionType:
        non_none = [a for a in args if a is not type(None)]
        if len(non_none) == 1:
            return _python_type_to_json_schema(non_none[0])

    # list[X]
    if origin is list and args:
        return {"type": "array", "items": _python_type_to_json_schema(args[0])}

    # dict[str, X]
    if origin is dict:
        return {"type": "object"}

    json_type = _TYPE_MAP.get(annotation, "string")
    return {"type": json_type}


def _to_observation(result: Any) -> str:
    """Coerce a tool's return value into observation text."""
    if result is None:
        return ""
    if isinstance(result, str):
        return result
    try:
        return json.dumps(result, default=str)
    except (TypeError, ValueError):
        return str(result)


def _decode_object(text: str) -> dict[str, Any] | None:
    try:
        decoded = json.loads(text)
    except json.JSONDecodeError:
        return None
    return decoded if isinstance(decoded, dict) else None


def _accepts_signal(fn: Callable[..., Any]) -> bool:
    try:
        params = inspect.signature(fn).parameters
    except (TypeError, ValueError):
        return False
    return SIGNAL_PARAM in params


def is_async_callable(fn: Any) -> bool:
    """True for coroutine functions and objects with an async ``__call__``."""
    if inspect.iscoroutinefunction(fn):
        return True
    return inspect.iscoroutinefunction(getattr(fn, "__call__", None))


async def call_off_loop(fn: Callable[..., Any], *args: Any, **kwargs: Any) -> Any:
    """Await *fn*'s result; sync callables run in a worker thread."""
    if is_async_callable(fn):
        result = fn(*args, **kwargs)
    else:
        result = await asyncio.to_thread(fn, *args, **kwargs)
    if inspect.isawaitable(result):
        result = await result
    return result


@dataclass
class ToolDefinition:
    """Describes a single callable tool the planner can invoke.

    Attributes:
        name: Tool identifier.  Lookups are case-insensitive.
        description: Human-readable description shown to the LLM.
        parameters: JSON Schema describing the function parameters.
        function: The Python callable (sync or async) to execute.
        return_direct: When ``True`` the tool's observation becomes the
            run's final answer without another planning round.
    """

    name: str
    description: str
    parameters: dict[str, Any]
    function: Callable[..., Any]
    return_direct: bool = False

    # ------------------------------------------------------------------
    # Input handling
    # ------------------------------------------------------------------

    def parse_input(self, tool_input: Any) -> dict[str, Any]:
        """Turn an action's ``tool_input`` into keyword arguments.

        A mapping is checked against the schema's ``properties`` and
        ``required`` lists.  A string is passed as the single parameter
        when the tool declares exactly one; otherwise it is parsed as a
        JSON object, or bound to the only required parameter.

        Raises:
            ToolInputParsingError: If the input does not fit the schema.
        """
        props: dict[str, Any] = self.parameters.get("properties", {})

        if isinstance(tool_input, str):
            if len(props) == 1:
                return {next(iter(props)): tool_input}
            if not props:
                return {}
            decoded = _decode_object(tool_input)
            if decoded is None:
                required = self.parameters.get("required", [])
                if len(required) != 1:
                    raise ToolInputParsingError(
                        f"Tool '{self.name}' expects a JSON object with keys {sorted(props)}",
                        tool_input=tool_input,
                    )
                decoded = {required[0]: tool_input}
            tool_input = decoded

        if not isinstance(tool_input, Mapping):
            raise ToolInputParsingError(
                f"Tool '{self.name}' got unsupported input type {type(tool_input).__name__}",
                tool_input=tool_input,
            )

        kwargs = dict(tool_input)
        if props:
            unknown = sorted(set(kwargs) - set(props))
            if unknown:
                raise ToolInputParsingError(
                    f"Tool '{self.name}' got unexpected arguments: {', '.join(unknown)}",
                    tool_input=tool_input,
                )
        missing = [p for p in self.parameters.get("required", []) if p not in kwargs]
        if missing:
            raise ToolInputParsingError(
                f"Tool '{self.name}' is missing required arguments: {', '.join(missing)}",
                tool_input=tool_input,
            )
        return kwargs

    # ------------------------------------------------------------------
    # Invocation
    # ------------------------------------------------------------------

    async def acall(self, tool_input: Any, *, signal: CancellationSignal | None = None) -> str:
        """Invoke the tool and return its observation text.

        Tools whose function declares a ``signal`` parameter receive the
        run's :class:`~agentexec.infra.cancellation.CancellationSignal`.
        Sync functions run in a worker thread so they neither block the
        event loop nor delay cancellation.
        """
        kwargs = self.parse_input(tool_input)
        if _accepts_signal(self.function):
            kwargs[SIGNAL_PARAM] = signal
        return _to_observation(await call_off_loop(self.function, **kwargs))

    def call(self, tool_input: Any) -> str:
        """Synchronous invocation for sync tool functions."""
        result = self.function(**self.parse_input(tool_input))
        if inspect.isawaitable(result):
            if inspect.iscoroutine(result):
                result.close()
            raise TypeError(f"Tool '{self.name}' is async; use acall()")
        return _to_observation(result)

    # ------------------------------------------------------------------
    # Serialisation helpers
    # ------------------------------------------------------------------

    def to_prompt_format(self) -> str:
        """Plain-text description suitable for prompt-based tool calling."""
        lines = [f"Tool: {self.name}", f"  Description: {self.description}", "  Parameters:"]
        props = self.parameters.get("properties", {})
        required = set(self.parameters.get("required", []))
        if not props:
            lines.append("    (none)")
        else:
            for pname, pschema in props.items():
                ptype = pschema.get("type", "string")
                req_label = "required" if pname in required else "optional"
                desc = pschema.get("description", "")
                line = f"    - {pname} ({ptype}, {req_label})"
                if desc:
                    line += f": {desc}"
                lines.append(line)
        return "\n".join(lines)


def _echo(query: str) -> str:
    return query


class ExceptionTool(ToolDefinition):
    """Pseudo-tool that echoes its input.

    Parsing-error observations are routed through it so they reach the
    planner through the same channel as ordinary tool results.
    """

    def __init__(self) -> None:
        super().__init__(
            name=EXCEPTION_TOOL_NAME,
            description="Exception tool",
            parameters={
                "type": "object",
                "properties": {"query": {"type": "string", "description": "Text to echo back"}},
                "required": ["query"],
            },
            function=_echo,
        )


def _parse_docstring_params(docstring: str | None) -> dict[str, str]:
    """Extract parameter descriptions from a Google-style docstring ``Args:`` section."""
    if not docstring:
        return {}
    lines = docstring.split("\n")
    params: dict[str, str] = {}
    in_args = False
    current_param: str | None = None
    current_desc_parts: list[str] = []
    args_indent: int | None = None

    for line in lines:
        stripped = line.strip()

        if stripped in ("Args:", "Arguments:", "Parameters:"):
            in_args = True
            args_indent = None
            continue

        if not in_args:
            continue

        # Next section header (Returns:, Raises:, ...) ends the Args block
        if stripped and not stripped.startswith("-") and stripped.endswith(":") and " " not in stripped:
            if current_param is not None:
                params[current_param] = " ".join(current_desc_parts).strip()
                current_param = None
            break

        if not stripped:
            continue

        content_indent = len(line) - len(line.lstrip())
        if args_indent is None:
            args_indent = content_indent

        # "param_name: description" or "param_name (type): description"
        if content_indent == args_indent and ":" in stripped:
            if current_param is not None:
                params[current_param] = " ".join(current_desc_parts).strip()
            colon_idx = stripped.index(":")
            param_part = stripped[:colon_idx].strip()
            if " (" in param_part:
                param_part = param_part[: param_part.index(" (")]
            current_param = param_part
            current_desc_parts = [stripped[colon_idx + 1 :].strip()]
        elif current_param is not None and content_indent > (args_indent or 0):
            current_desc_parts.append(stripped)

    if current_param is not None:
        params[current_param] = " ".join(current_desc_parts).strip()

    return params


def tool_from_function(
    fn: Callable[..., Any],
    *,
    name: str | None = None,
    description: str | None = None,
    return_direct: bool = False,
) -> ToolDefinition:
    """Build a :class:`ToolDefinition` by inspecting *fn*'s signature and docstring.

    Parameters:
        fn: The callable to wrap.
        name: Override the tool name (defaults to ``fn.__name__``).
        description: Override the description (defaults to the first line of the docstring).
        return_direct: Mark the tool's output as the run's final answer.
    """
    tool_name = name or fn.__name__
    raw_doc = inspect.getdoc(fn) or ""
    tool_desc = description or raw_doc.split("\n")[0] or f"Call {tool_name}"
    param_docs = _parse_docstring_params(raw_doc)

    sig = inspect.signature(fn)
    try:
        hints = get_type_hints(fn)
    except Exception:
        # Local or forward references that cannot be resolved; use raw annotations.
        hints = {}

    properties: dict[str, Any] = {}
    required: list[str] = []

    for param_name, param in sig.parameters.items():
        if param_name in ("self", SIGNAL_PARAM):
            continue
        if param.kind in (inspect.Parameter.VAR_POSITIONAL, inspect.Parameter.VAR_KEYWORD):
            continue
        annotation = hints.get(param_name, param.annotation)
        prop = _python_type_to_json_schema(annotation)

        doc_desc = param_docs.get(param_name)
        prop.setdefault("description", doc_desc or f"Parameter: {param_name}")
        properties[param_name] = prop

        if param.default is inspect.Parameter.empty:
            required.append(param_name)

    parameters: dict[str, Any] = {
        "type": "object",
        "properties": properties,
    }
    if required:
        parameters["required"] = required

    return ToolDefinition(
        name=tool_name,
        description=tool_desc,
        parameters=parameters,
        function=fn,
        return_direct=return_direct,
    )


@dataclass
class ToolRegistry:
    """A collection of :class:`ToolDefinition` instances keyed by lower-cased name.

    Supports decorator-based and explicit registration::

        registry = ToolRegistry()

        @registry.tool
        def my_func(x: int) -> str:
            ...

        registry.register(another_func, return_direct=True)
    """

    _tools: dict[str, ToolDefinition] = field(default_factory=dict)

    @classmethod
    def from_tools(cls, tools: Iterable[ToolDefinition | Callable[..., Any]] | ToolRegistry | None) -> ToolRegistry:
        """Build a registry from definitions and/or plain callables."""
        if isinstance(tools, ToolRegistry):
            return cls(dict(tools._tools))
        registry = cls()
        for item in tools or ():
            if isinstance(item, ToolDefinition):
                registry.add(item)
            else:
                registry.register(item)
        return registry

    # ------------------------------------------------------------------
    # Registration
    # ------------------------------------------------------------------

    def register(
        self,
        fn: Callable[..., Any],
        *,
        name: str | None = None,
        description: str | None = None,
        return_direct: bool = False,
        overwrite: bool = False,
    ) -> ToolDefinition:
        """Register *fn* as a tool and return the :class:`ToolDefinition`."""
        td = tool_from_function(fn, name=name, description=description, return_direct=return_direct)
        self.add(td, overwrite=overwrite)
        return td

    def tool(self, fn: Callable[..., Any]) -> Callable[..., Any]:
        """Decorator to register a function as a tool.

        Returns the original function unchanged so it remains callable.
        """
        self.register(fn)
        return fn

    def add(self, tool_def: ToolDefinition, *, overwrite: bool = False) -> None:
        """Add a pre-built :class:`ToolDefinition`."""
        key = tool_def.name.lower()
        if not overwrite and key in self._tools:
            raise ToolAlreadyRegisteredError(f"Tool '{tool_def.name}' already registered")
        self._tools[key] = tool_def

    # ------------------------------------------------------------------
    # Lookup
    # ------------------------------------------------------------------

    def get(self, name: str | None) -> ToolDefinition | None:
        if not name:
            return None
        return self._tools.get(name.lower())

    def __contains__(self, name: object) -> bool:
        return isinstance(name, str) and name.lower() in self._tools

    def __len__(self) -> int:
        return len(self._tools)

    def __bool__(self) -> bool:
        return bool(self._tools)

    def __iter__(self):
        return iter(self._tools.values())

    @property
    def names(self) -> list[str]:
        """Registered tool names in registration order, original casing."""
        return [td.name for td in self._tools.values()]

    @property
    def definitions(self) -> list[ToolDefinition]:
        return list(self._tools.values())

    @property
    def return_direct_tools(self) -> list[ToolDefinition]:
        return [td for td in self._tools.values() if td.return_direct]

    # ------------------------------------------------------------------
    # Filtering
    # ------------------------------------------------------------------

    def subset(self, names: set[str] | list[str]) -> ToolRegistry:
        """Return a new registry containing only the named tools.

        Raises:
            KeyError: If any name is not registered.
        """
        wanted = {n.lower() for n in names}
        unknown = wanted - set(self._tools)
        if unknown:
            raise KeyError(f"Unknown tools: {', '.join(sorted(unknown))}")
        return ToolRegistry({k: td for k, td in self._tools.items() if k in wanted})

    def exclude(self, names: set[str] | list[str]) -> ToolRegistry:
        """Return a new registry without the named tools.

        Missing names are silently ignored (no error).
        """
        dropped = {n.lower() for n in names}
        return ToolRegistry({k: td for k, td in self._tools.items() if k not in dropped})

    # ------------------------------------------------------------------
    # Serialisation
    # ------------------------------------------------------------------

    def to_prompt_format(self) -> str:
        """Join all tool descriptions into a single plain-text block."""
        return "\n\n".join(td.to_prompt_format() for td in self._tools.values())

    # ------------------------------------------------------------------
    # Execution
    # ------------------------------------------------------------------

    def execute(self, name: str, tool_input: Any) -> str:
        """Execute a registered sync tool by name.

        Raises:
            KeyError: If no tool with *name* is registered.
        """
        td = self.get(name)
        if td is None:
            raise KeyError(f"Tool not registered: {name!r}")
        return td.call(tool_input)

    async def aexecute(self, name: str, tool_input: Any, *, signal: CancellationSignal | None = None) -> str:
        """Execute a registered tool, awaiting async tool functions.

        Raises:
            KeyError: If no tool with *name* is registered.
        """
        td = self.get(name)
        if td is None:
            raise KeyError(f"Tool not registered: {name!r}")
        return await td.acall(tool_input, signal=signal)
