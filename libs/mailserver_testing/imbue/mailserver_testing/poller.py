import time
from collections.abc import Callable
from collections.abc import Sequence

from loguru import logger
from pydantic import Field

from imbue.mailserver_testing.container import ContainerRuntime
from imbue.mailserver_testing.data_types import ExecResult
from imbue.mailserver_testing.data_types import FrozenModel
from imbue.mailserver_testing.data_types import HarnessContext
from imbue.mailserver_testing.data_types import PollResult
from imbue.mailserver_testing.logging import log_span
from imbue.mailserver_testing.primitives import PollStatus
from imbue.mailserver_testing.primitives import ProbeOutcome
from imbue.mailserver_testing.primitives import TimeoutSeconds
from imbue.mailserver_testing.probes import CommandProbe
from imbue.mailserver_testing.probes import Probe
from imbue.mailserver_testing.probes import container_is_running
from imbue.mailserver_testing.probes import describe_probe
from imbue.mailserver_testing.probes import to_outcome


class ConditionPoller(FrozenModel):
    """Invokes a probe until it succeeds, a fatal test fails, or the timeout elapses.

    Between attempts the poller sleeps a fixed interval, capped at whatever is
    left of the time budget. The clock and sleep functions are injectable so the
    timing behavior can be exercised without waiting on the wall clock.
    """

    poll_interval_seconds: float = Field(default=1.0, gt=0, description="Sleep between probe attempts")
    clock: Callable[[], float] = Field(default=time.monotonic, description="Monotonic time source, in seconds")
    sleep: Callable[[float], None] = Field(default=time.sleep, description="Blocks for the given number of seconds")

    def poll(
        self,
        timeout: int | str,
        probe: Probe,
        fatal_test: Probe | None = None,
        description: str | None = None,
    ) -> PollResult:
        """Poll the probe until it succeeds or the poll fails.

        Raises InvalidTimeoutError before touching the probe if the timeout is malformed.
        Every other outcome is reported through the returned PollResult.
        """
        timeout_seconds = TimeoutSeconds(timeout)
        probe_description = description or describe_probe(probe)

        with log_span(
            "Polling until {} (timeout {}s)",
            probe_description,
            timeout_seconds,
            probe=probe_description,
            timeout=int(timeout_seconds),
        ):
            start_time = self.clock()
            attempt_count = 0

            def finish(status: PollStatus, message: str) -> PollResult:
                elapsed = max(self.clock() - start_time, 0.0)
                if status != PollStatus.SUCCESS:
                    logger.debug(message)
                return PollResult(
                    status=status,
                    message=message,
                    probe_description=probe_description,
                    attempt_count=attempt_count,
                    elapsed_seconds=elapsed,
                )

            while True:
                attempt_count += 1
                outcome = to_outcome(probe())
                if outcome == ProbeOutcome.SUCCESS:
                    return finish(
                        PollStatus.SUCCESS, f"Succeeded after {attempt_count} attempt(s): {probe_description}"
                    )
                if outcome == ProbeOutcome.FATAL:
                    return finish(
                        PollStatus.FATAL_ABORT,
                        f"`{probe_description}` failed fatally, early aborting repeat_until_success",
                    )
                logger.trace("Attempt {} not ready: {}", attempt_count, probe_description)

                if fatal_test is not None and to_outcome(fatal_test()) != ProbeOutcome.SUCCESS:
                    fatal_description = describe_probe(fatal_test)
                    return finish(
                        PollStatus.FATAL_ABORT,
                        f"`{fatal_description}` failed, early aborting repeat_until_success of `{probe_description}`",
                    )

                remaining = timeout_seconds - (self.clock() - start_time)
                if remaining > 0:
                    self.sleep(min(self.poll_interval_seconds, remaining))

                if self.clock() - start_time >= timeout_seconds:
                    return finish(PollStatus.TIMEOUT_EXCEEDED, f"Timed out on command: {probe_description}")

    def poll_capturing_output(
        self,
        timeout: int | str,
        runtime: ContainerRuntime,
        container_name: str,
        command: Sequence[str],
        fatal_test: Probe | None = None,
    ) -> PollResult:
        """Like poll, with a command probe whose final exit status and output are kept on the result."""
        probe = CommandProbe(runtime, container_name, command)
        result = self.poll(timeout, probe, fatal_test=fatal_test)
        return result.model_copy(update={"last_exec_result": probe.last_result})


def repeat_until_success_or_timeout(
    timeout: int | str,
    probe: Probe,
    fatal_test: Probe | None = None,
    poller: ConditionPoller | None = None,
) -> PollResult:
    """Poll the probe and raise PollTimeoutError or PollFatalAbortError if it never succeeds."""
    result = (poller or ConditionPoller()).poll(timeout, probe, fatal_test=fatal_test)
    result.raise_if_failed()
    return result


def repeat_in_container_until_success_or_timeout(
    ctx: HarnessContext,
    runtime: ContainerRuntime,
    command: Sequence[str],
    timeout: int | str | None = None,
    poller: ConditionPoller | None = None,
) -> PollResult:
    """Repeat a command in the context's container until it exits 0, aborting early if the container stops."""
    result = (poller or ConditionPoller()).poll_capturing_output(
        ctx.timeout_seconds if timeout is None else timeout,
        runtime,
        ctx.container_name,
        command,
        fatal_test=container_is_running(runtime, ctx.container_name),
    )
    result.raise_if_failed()
    return result


def run_until_success_or_timeout(
    timeout: int | str,
    runtime: ContainerRuntime,
    container_name: str,
    command: Sequence[str],
    poller: ConditionPoller | None = None,
) -> ExecResult:
    """Repeat a command until it exits 0 and return the successful attempt's result for assertions."""
    result = (poller or ConditionPoller()).poll_capturing_output(timeout, runtime, container_name, command)
    result.raise_if_failed()
    assert result.last_exec_result is not None
    return result.last_exec_result
