import os
from collections.abc import Mapping
from typing import Final

from loguru import logger
from pydantic import Field

from imbue.mailserver_testing.data_types import FrozenModel
from imbue.mailserver_testing.data_types import HarnessContext
from imbue.mailserver_testing.poller import ConditionPoller
from imbue.mailserver_testing.primitives import ContainerName
from imbue.mailserver_testing.primitives import LogLevel
from imbue.mailserver_testing.primitives import TimeoutSeconds

TIMEOUT_ENV_VAR: Final[str] = "TEST_TIMEOUT_IN_SECONDS"
LOG_LEVEL_ENV_VAR: Final[str] = "MAILSERVER_TESTING_LOG_LEVEL"
CONTAINER_NAME_ENV_VAR: Final[str] = "CONTAINER_NAME"

DEFAULT_TIMEOUT_SECONDS: Final[int] = 120


class HarnessConfig(FrozenModel):
    """Suite-wide defaults. Individual calls override the timeout through make_context."""

    default_timeout_seconds: TimeoutSeconds = Field(
        default=TimeoutSeconds(DEFAULT_TIMEOUT_SECONDS),
        description="Time budget for waiters that do not carry their own",
    )
    poll_interval_seconds: float = Field(default=1.0, gt=0, description="Sleep between probe attempts")
    log_level: LogLevel = Field(default=LogLevel.INFO, description="Verbosity for setup_logging")

    def make_context(self, container_name: str, timeout_seconds: int | str | None = None) -> HarnessContext:
        if timeout_seconds is None:
            timeout_seconds = self.default_timeout_seconds
        return HarnessContext(
            container_name=ContainerName(container_name),
            timeout_seconds=TimeoutSeconds(timeout_seconds),
        )

    def make_poller(self) -> ConditionPoller:
        return ConditionPoller(poll_interval_seconds=self.poll_interval_seconds)


def load_config(environ: Mapping[str, str] | None = None) -> HarnessConfig:
    """Build a HarnessConfig from environment variables.

    Unset or empty variables fall back to the defaults. A malformed timeout raises
    InvalidTimeoutError rather than being silently ignored.
    """
    env = os.environ if environ is None else environ
    values: dict[str, object] = {}

    raw_timeout = env.get(TIMEOUT_ENV_VAR, "")
    if raw_timeout:
        values["default_timeout_seconds"] = TimeoutSeconds(raw_timeout)

    raw_log_level = env.get(LOG_LEVEL_ENV_VAR, "")
    if raw_log_level:
        values["log_level"] = LogLevel(raw_log_level.upper())

    config = HarnessConfig.model_validate(values)
    logger.trace("Loaded harness config: {}", config)
    return config
