"""agentexec - agent execution loop for tool-using LLM planners."""

from dotenv import load_dotenv

# Load environment variables from .env file before settings are read
load_dotenv()

from .agents import *  # noqa: E402
from .async_driver import AsyncDriver  # noqa: E402
from .driver import Driver  # noqa: E402
from .exceptions import (  # noqa: E402
    AgentExecError,
    ConfigurationError,
    DriverError,
    MissingInputKeyError,
    OutputParserError,
    RunCancelledError,
    ToolAlreadyRegisteredError,
    ToolInputParsingError,
    UnsupportedEarlyStoppingError,
)
from .infra import *  # noqa: E402
from .infra.settings import settings as _settings  # noqa: E402

if _settings.log_enabled:
    configure_logging(_settings.log_level, json_format=_settings.log_json)  # noqa: F405

# runtime package version (from installed metadata)
from importlib.metadata import version as _get_version  # noqa: E402

try:
    __version__ = _get_version("agentexec")
except Exception:
    # fallback during local editable development
    __version__ = "0.0.0"
