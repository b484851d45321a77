"""Runtime settings for the deploy engine.

Values come from the process environment.  A ``.env`` file in the working
directory is loaded first so local runs can keep credentials and region out of
the shell profile.
"""

from typing import Any
import os

from dotenv import load_dotenv
from pydantic import BaseModel, ConfigDict, Field, field_validator

ENV_VARS = {
    "region": "REGION",
    "change_set_prefix": "CHANGE_SET_PREFIX",
    "change_set_description": "CHANGE_SET_DESCRIPTION",
    "change_set_poll_interval": "CHANGE_SET_POLL_INTERVAL",
    "event_poll_interval": "EVENT_POLL_INTERVAL",
    "event_page_size": "EVENT_PAGE_SIZE",
    "event_max_attempts": "EVENT_MAX_ATTEMPTS",
    "stack_timeout_minutes": "STACK_TIMEOUT_MINUTES",
    "read_retry_attempts": "READ_RETRY_ATTEMPTS",
    "log_level": "LOG_LEVEL",
    "log_format": "LOG_FORMAT",
}


class DeploySettings(BaseModel):
    """Settings that shape provider calls and polling"""

    model_config = ConfigDict(validate_assignment=True)

    region: str = Field("cn-hangzhou", description="Region id sent with every provider call")
    change_set_prefix: str = Field("core-deploy", description="Prefix of generated change set names")
    change_set_description: str = Field("generated by core-deploy")
    change_set_poll_interval: float = Field(2.0, ge=0)
    event_poll_interval: float = Field(5.0, ge=0)
    event_page_size: int = Field(50, gt=0)
    event_max_attempts: int | None = Field(None, gt=0, description="Unbounded when not set")
    stack_timeout_minutes: int = Field(10, gt=0)
    read_retry_attempts: int = Field(3, ge=1)
    log_level: str = Field("INFO")
    log_format: str = Field("console")

    @field_validator("log_format")
    @classmethod
    def validate_log_format(cls, value: str) -> str:
        value = value.lower()
        if value not in ("console", "json"):
            raise ValueError(f"log_format must be 'console' or 'json', got '{value}'")
        return value

    @classmethod
    def from_env(cls, environ: dict[str, str] | None = None, **overrides: Any) -> "DeploySettings":
        """Build settings from environment variables.

        Explicit keyword overrides win over the environment.
        """
        if environ is None:
            load_dotenv()
            environ = dict(os.environ)

        values: dict[str, Any] = {}
        for field_name, env_name in ENV_VARS.items():
            value = environ.get(env_name)
            if value not in (None, ""):
                values[field_name] = value

        values.update({k: v for k, v in overrides.items() if v is not None})
        return cls(**values)
