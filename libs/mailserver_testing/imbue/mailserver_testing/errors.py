from typing import TYPE_CHECKING

from click import ClickException

if TYPE_CHECKING:
    from imbue.mailserver_testing.data_types import PollResult


class BaseHarnessError(Exception):
    """Base exception for all mailserver-testing errors."""


class HarnessError(ClickException, BaseHarnessError):
    """Base exception for all user-facing errors.

    Subclasses can provide a user_help_text attribute with additional context
    to help resolve the error. The CLI appends it to the message.
    """

    user_help_text: str | None = None

    def format_message(self) -> str:
        if self.user_help_text:
            return str(self) + "  [" + self.user_help_text + "]"
        return str(self)


class InvalidTimeoutError(HarnessError, ValueError):
    """Raised when a timeout is not a non-negative whole number of seconds."""

    user_help_text = "Timeouts are given in whole seconds, e.g. 30."

    def __init__(self, value: object) -> None:
        self.value = value
        super().__init__(f'Timeout must be a non-negative integer, received "{value}"')


class InvalidMailAccountError(HarnessError, ValueError):
    """Raised when a mail account is not of the form local@domain."""

    def __init__(self, value: object) -> None:
        self.value = value
        super().__init__(f'Mail account must be of the form local@domain, received "{value}"')


class InvalidContainerNameError(HarnessError, ValueError):
    """Raised when a container name is empty or whitespace-only."""

    user_help_text = "Pass --container or set CONTAINER_NAME."

    def __init__(self, value: object) -> None:
        self.value = value
        super().__init__("Container name must be provided")


class InvalidServiceNameError(HarnessError, ValueError):
    """Raised when a supervisord service name is empty or whitespace-only."""

    def __init__(self, value: object) -> None:
        self.value = value
        super().__init__("Service name must be provided")


class PollError(HarnessError):
    """Base class for polls that ended without the condition holding."""

    def __init__(self, result: "PollResult") -> None:
        self.result = result
        super().__init__(result.message)


class PollTimeoutError(PollError):
    """The time budget ran out before the probe succeeded."""


class PollFatalAbortError(PollError):
    """The fatal test failed, so the probe can never succeed."""


class ContainerError(HarnessError):
    """Base class for errors talking to a container."""


class DockerUnavailableError(ContainerError):
    """The Docker client could not be created, usually because no daemon is reachable."""

    user_help_text = "Check that the Docker daemon is running and DOCKER_HOST is correct."


class ContainerNotFoundError(ContainerError):
    """No container with this name exists."""

    user_help_text = "Check the name with 'docker ps --all'."

    def __init__(self, container_name: str) -> None:
        self.container_name = container_name
        super().__init__(f"Container not found: {container_name}")


class ContainerExecError(ContainerError):
    """The Docker daemon rejected or failed an exec request."""


class LogLevelTooLowError(HarnessError):
    """Raised when log line counting is requested but the container does not log verbosely enough."""

    user_help_text = "Start the container with LOG_LEVEL=debug or LOG_LEVEL=trace."

    def __init__(self, container_name: str, log_level: str | None) -> None:
        self.container_name = container_name
        self.log_level = log_level
        super().__init__(
            f"Container {container_name} has LOG_LEVEL={log_level or '<unset>'}, but debug or trace is required"
        )
