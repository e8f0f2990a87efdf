"""Environment-driven defaults for :class:`~agentexec.agents.executor.AgentExecutor`.

Every field can be overridden with an ``AGENTEXEC_``-prefixed environment
variable (``AGENTEXEC_MAX_ITERATIONS=5``).  ``.env`` files are loaded by
the package on import.
"""

from __future__ import annotations

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class ExecutorSettings(BaseSettings):
    """Defaults consumed by :meth:`AgentExecutor.from_settings`."""

    max_iterations: int | None = Field(default=15, ge=1)
    max_execution_time: float | None = Field(default=None, gt=0)
    early_stopping_method: str = "force"
    return_intermediate_steps: bool = False
    handle_parsing_errors: bool = False
    # Literal observation used instead of the generic recovery text.
    parsing_error_message: str | None = None

    # Install a handler on import when set (see agentexec.__init__).
    log_enabled: bool = False
    log_level: str = "WARNING"
    log_json: bool = False

    model_config = SettingsConfigDict(env_prefix="AGENTEXEC_", extra="ignore")

    @field_validator("early_stopping_method")
    @classmethod
    def _normalize_method(cls, value: str) -> str:
        return value.strip().lower()

    @field_validator("log_level")
    @classmethod
    def _normalize_level(cls, value: str) -> str:
        return value.strip().upper()

    def parsing_error_policy(self) -> bool | str:
        """Collapse the two parsing-error fields into the executor's policy value."""
        if self.parsing_error_message:
            return self.parsing_error_message
        return self.handle_parsing_errors


def get_settings() -> ExecutorSettings:
    """Build a fresh settings object from the current environment."""
    return ExecutorSettings()


settings = ExecutorSettings()
