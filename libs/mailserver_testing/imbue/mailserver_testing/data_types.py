from pydantic import BaseModel
from pydantic import ConfigDict
from pydantic import Field

from imbue.mailserver_testing.errors import PollFatalAbortError
from imbue.mailserver_testing.errors import PollTimeoutError
from imbue.mailserver_testing.primitives import ContainerName
from imbue.mailserver_testing.primitives import PollStatus
from imbue.mailserver_testing.primitives import TimeoutSeconds


class FrozenModel(BaseModel):
    """Base class for immutable pydantic models that prevent attribute mutation after construction."""

    model_config = ConfigDict(
        frozen=True,
        extra="forbid",
        arbitrary_types_allowed=False,
    )


class ExecResult(FrozenModel):
    """Outcome of one command executed inside a container."""

    exit_code: int = Field(description="Exit status of the command")
    output: str = Field(default="", description="Combined stdout and stderr")

    @property
    def is_success(self) -> bool:
        return self.exit_code == 0

    @property
    def lines(self) -> list[str]:
        return self.output.splitlines()


class PollResult(FrozenModel):
    """Terminal outcome of a polling call."""

    status: PollStatus = Field(description="Whether the poll succeeded, timed out or was aborted")
    message: str = Field(description="Diagnostic naming the probe (and fatal test, if it fired)")
    probe_description: str = Field(description="Human-readable description of the probe")
    attempt_count: int = Field(ge=0, description="Number of times the probe was invoked")
    elapsed_seconds: float = Field(ge=0, description="Seconds between the start of polling and the result")
    last_exec_result: ExecResult | None = Field(
        default=None,
        description="Exit status and output of the final attempt, for command probes",
    )

    @property
    def is_success(self) -> bool:
        return self.status == PollStatus.SUCCESS

    def raise_if_failed(self) -> None:
        match self.status:
            case PollStatus.SUCCESS:
                return
            case PollStatus.TIMEOUT_EXCEEDED:
                raise PollTimeoutError(self)
            case PollStatus.FATAL_ABORT:
                raise PollFatalAbortError(self)


class HarnessContext(FrozenModel):
    """The container under test and the default timeout for waiting on it.

    Passed explicitly to every waiter instead of being read from the environment.
    """

    container_name: ContainerName = Field(description="Container the probes run against")
    timeout_seconds: TimeoutSeconds = Field(description="Default time budget for waiters that use it")

    def with_timeout(self, timeout_seconds: int | str) -> "HarnessContext":
        return self.model_copy(update={"timeout_seconds": TimeoutSeconds(timeout_seconds)})
