"""Waiters that block a test until the mail server inside the container reaches a given state.

Each waiter composes ConditionPoller with one concrete probe and raises
PollTimeoutError or PollFatalAbortError if the state is never reached.
"""

import re
from typing import Final

from loguru import logger

from imbue.mailserver_testing.container import ContainerRuntime
from imbue.mailserver_testing.data_types import HarnessContext
from imbue.mailserver_testing.data_types import PollResult
from imbue.mailserver_testing.errors import ContainerExecError
from imbue.mailserver_testing.errors import ContainerNotFoundError
from imbue.mailserver_testing.errors import LogLevelTooLowError
from imbue.mailserver_testing.poller import ConditionPoller
from imbue.mailserver_testing.poller import repeat_in_container_until_success_or_timeout
from imbue.mailserver_testing.primitives import MailAccount
from imbue.mailserver_testing.primitives import PortNumber
from imbue.mailserver_testing.primitives import ProbeOutcome
from imbue.mailserver_testing.primitives import ServiceName
from imbue.mailserver_testing.probes import Probe
from imbue.mailserver_testing.probes import command_probe
from imbue.mailserver_testing.probes import container_is_running
from imbue.mailserver_testing.probes import output_contains_probe

SMTP_PORT: Final[int] = 25
AMAVIS_PORT: Final[int] = 10024

SMTP_RESPONSE_TIMEOUT_SECONDS: Final[int] = 20
LOG_MATCH_TIMEOUT_SECONDS: Final[int] = 20
MAILDIR_TIMEOUT_SECONDS: Final[int] = 60

SMTP_QUIT_RESPONSE: Final[str] = "221 2.0.0 Bye"
SERVICE_RUNNING_MARKER: Final[str] = "RUNNING"
EMPTY_MAIL_QUEUE_MARKER: Final[str] = "Mail queue is empty"

_VERBOSE_LOG_LEVEL_PATTERN: Final[re.Pattern[str]] = re.compile(r"^(debug|trace)$")


def _poll_and_raise(
    poller: ConditionPoller | None,
    timeout: int,
    probe: Probe,
    fatal_test: Probe | None = None,
) -> PollResult:
    result = (poller or ConditionPoller()).poll(timeout, probe, fatal_test=fatal_test)
    result.raise_if_failed()
    return result


def wait_for_tcp_port_in_container(
    ctx: HarnessContext,
    runtime: ContainerRuntime,
    port: int,
    poller: ConditionPoller | None = None,
) -> PollResult:
    """Wait until something inside the container accepts TCP connections on the port."""
    port_number = PortNumber(port)
    return _poll_and_raise(
        poller,
        ctx.timeout_seconds,
        command_probe(runtime, ctx.container_name, ["nc", "-z", "0.0.0.0", str(port_number)]),
        fatal_test=container_is_running(runtime, ctx.container_name),
    )


def wait_for_smtp_port_in_container(
    ctx: HarnessContext,
    runtime: ContainerRuntime,
    poller: ConditionPoller | None = None,
) -> PollResult:
    return wait_for_tcp_port_in_container(ctx, runtime, SMTP_PORT, poller=poller)


def wait_for_amavis_port_in_container(
    ctx: HarnessContext,
    runtime: ContainerRuntime,
    poller: ConditionPoller | None = None,
) -> PollResult:
    return wait_for_tcp_port_in_container(ctx, runtime, AMAVIS_PORT, poller=poller)


def wait_for_smtp_port_in_container_to_respond(
    ctx: HarnessContext,
    runtime: ContainerRuntime,
    poller: ConditionPoller | None = None,
) -> PollResult:
    """Wait until Postfix answers a QUIT on port 25, not merely until the port is open."""
    return _poll_and_raise(
        poller,
        SMTP_RESPONSE_TIMEOUT_SECONDS,
        output_contains_probe(
            runtime,
            ctx.container_name,
            ["timeout", "10", "/bin/bash", "-c", f"echo QUIT | nc localhost {SMTP_PORT}"],
            SMTP_QUIT_RESPONSE,
        ),
        fatal_test=container_is_running(runtime, ctx.container_name),
    )


def wait_for_service(
    ctx: HarnessContext,
    runtime: ContainerRuntime,
    service_name: str,
    poller: ConditionPoller | None = None,
) -> PollResult:
    """Wait until supervisord reports the service as RUNNING."""
    return _poll_and_raise(
        poller,
        ctx.timeout_seconds,
        output_contains_probe(
            runtime,
            ctx.container_name,
            ["/usr/bin/supervisorctl", "status", ServiceName(service_name)],
            SERVICE_RUNNING_MARKER,
        ),
        fatal_test=container_is_running(runtime, ctx.container_name),
    )


class LogMatchCounter:
    """Probe comparing the number of matching lines in a log file against a target.

    With an explicit expected_count the target is an absolute floor. Without one,
    the current count is snapshotted on construction and the target is one more
    than that. If a later count drops below the snapshot the log was rotated or
    truncated, so the snapshot is rebased to zero and the one outstanding
    occurrence is counted in the fresh log instead.
    """

    def __init__(
        self,
        runtime: ContainerRuntime,
        container_name: str,
        match_content: str,
        log_path: str,
        expected_count: int | None = None,
    ) -> None:
        self._runtime = runtime
        self._container_name = container_name
        self._match_content = match_content
        self._log_path = log_path
        self.description = f"count of {match_content!r} in {log_path} (in {container_name})"
        self.last_count: int | None = None

        if expected_count is None:
            self._baseline: int | None = self.get_count() or 0
            self._target = self._baseline + 1
        else:
            if expected_count < 0:
                raise ValueError(f"Expected count must be >= 0, got {expected_count}")
            self._baseline = None
            self._target = expected_count
        self.description += f" >= {self._target}"

    @property
    def target_count(self) -> int:
        return self._target

    def get_count(self) -> int | None:
        # grep exits 1 when nothing matches but still prints 0
        result = self._runtime.exec_in_container(
            self._container_name,
            ["grep", "--count", "--", self._match_content, self._log_path],
        )
        try:
            return int(result.output.strip())
        except ValueError:
            logger.trace("Could not read match count from {}: {}", self._log_path, result.output)
            return None

    def __call__(self) -> ProbeOutcome:
        try:
            count = self.get_count()
        except ContainerNotFoundError:
            logger.trace("Container {} is gone, probe {} cannot succeed", self._container_name, self.description)
            return ProbeOutcome.FATAL
        except ContainerExecError as e:
            logger.trace("Exec failed for probe {}: {}", self.description, e)
            self.last_count = None
            return ProbeOutcome.NOT_READY
        self.last_count = count
        if count is None:
            return ProbeOutcome.NOT_READY

        if self._baseline is not None and count < self._baseline:
            outstanding = self._target - self._baseline
            logger.debug(
                "Match count in {} dropped from {} to {}, assuming the log was rotated",
                self._log_path,
                self._baseline,
                count,
            )
            self._baseline = 0
            self._target = outstanding

        return ProbeOutcome.SUCCESS if count >= self._target else ProbeOutcome.NOT_READY


def _ensure_verbose_log_level(ctx: HarnessContext, runtime: ContainerRuntime) -> None:
    result = runtime.exec_in_container(ctx.container_name, ["env"])
    log_level = None
    for line in result.lines:
        if line.startswith("LOG_LEVEL="):
            log_level = line.partition("=")[2]
    if log_level is None or not _VERBOSE_LOG_LEVEL_PATTERN.match(log_level):
        raise LogLevelTooLowError(ctx.container_name, log_level)


def wait_until_expected_count_is_matched(
    ctx: HarnessContext,
    runtime: ContainerRuntime,
    match_content: str,
    log_path: str,
    expected_count: int | None = None,
    poller: ConditionPoller | None = None,
) -> PollResult:
    """Wait until the log holds at least expected_count matching lines.

    Without expected_count, waits for one new occurrence. Keep in mind this is a
    '>=' comparison: an explicit count that is too low passes immediately.
    Requires the container to run with LOG_LEVEL=debug or trace.
    """
    _ensure_verbose_log_level(ctx, runtime)
    counter = LogMatchCounter(runtime, ctx.container_name, match_content, log_path, expected_count)
    return _poll_and_raise(
        poller,
        LOG_MATCH_TIMEOUT_SECONDS,
        counter,
        fatal_test=container_is_running(runtime, ctx.container_name),
    )


def get_account_maildir(account: str) -> str:
    mail_account = MailAccount(account)
    return f"/var/mail/{mail_account.domain_part}/{mail_account.local_part}"


def wait_until_account_maildir_exists(
    ctx: HarnessContext,
    runtime: ContainerRuntime,
    account: str,
    poller: ConditionPoller | None = None,
) -> PollResult:
    """Wait until Dovecot has created the storage directory of a newly added account.

    New accounts are picked up asynchronously by the change detector, so the
    directory appears some time after the account is added.
    """
    return repeat_in_container_until_success_or_timeout(
        ctx,
        runtime,
        ["test", "-d", get_account_maildir(account)],
        timeout=MAILDIR_TIMEOUT_SECONDS,
        poller=poller,
    )


def wait_for_empty_mail_queue_in_container(
    ctx: HarnessContext,
    runtime: ContainerRuntime,
    poller: ConditionPoller | None = None,
) -> PollResult:
    return _poll_and_raise(
        poller,
        ctx.timeout_seconds,
        output_contains_probe(runtime, ctx.container_name, ["mailq"], EMPTY_MAIL_QUEUE_MARKER),
        fatal_test=container_is_running(runtime, ctx.container_name),
    )
