import logging

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict

LOG_FORMAT = '%(asctime)s:%(name)s:%(levelname)s:%(message)s'
LOG_DATE_FORMAT = '%Y-%m-%d %H:%M:%S'

ENV_PREFIX = "FLEETASSIST_"


def configure_logging(level: int = logging.INFO, log_file: str | None = None) -> None:
    """Install the fleetassist log format on the root logger.

    Meant for applications and scripts; the library itself never
    configures logging.
    """
    handlers: list[logging.Handler] = [logging.StreamHandler()]
    if log_file:
        handlers.append(logging.FileHandler(log_file))
    logging.basicConfig(
        level=level,
        format=LOG_FORMAT,
        datefmt=LOG_DATE_FORMAT,
        handlers=handlers,
    )


class Settings(BaseSettings):
    """Runtime settings for the chat endpoint and the turn loop.

    Every field can be set from a ``FLEETASSIST_``-prefixed environment
    variable, e.g. ``FLEETASSIST_CHAT_ENDPOINT`` or ``FLEETASSIST_MAX_TURNS``.

    Args:
        chat_endpoint: URL of the streaming chat endpoint.
        api_key: Bearer token sent with every request.
        max_turns: Maximum chat requests per user turn, counting the
            continuations triggered by tool calls.
        parallel_tool_calls: Run the tool calls of one response concurrently.
        request_timeout: Read timeout for the streaming request, in seconds.
        connect_timeout: Connect timeout, in seconds.
    """

    model_config = SettingsConfigDict(
        env_prefix=ENV_PREFIX,
        case_sensitive=False,
        extra="ignore",
    )

    chat_endpoint: str = ""
    api_key: str | None = None
    max_turns: int = Field(default=10, ge=1)
    parallel_tool_calls: bool = True
    request_timeout: float = Field(default=180.0, gt=0)
    connect_timeout: float = Field(default=10.0, gt=0)

    @classmethod
    def from_env(cls, **overrides) -> "Settings":
        """Load settings from the environment; keyword overrides win."""
        return cls(**overrides)
