import click
from loguru import logger

from imbue.mailserver_testing.config import CONTAINER_NAME_ENV_VAR
from imbue.mailserver_testing.config import load_config
from imbue.mailserver_testing.container import ContainerRuntime
from imbue.mailserver_testing.container import DockerContainerRuntime
from imbue.mailserver_testing.data_types import HarnessContext
from imbue.mailserver_testing.data_types import PollResult
from imbue.mailserver_testing.logging import setup_logging
from imbue.mailserver_testing.poller import ConditionPoller
from imbue.mailserver_testing.primitives import LogLevel
from imbue.mailserver_testing.waiters import wait_for_empty_mail_queue_in_container
from imbue.mailserver_testing.waiters import wait_for_service
from imbue.mailserver_testing.waiters import wait_for_smtp_port_in_container_to_respond
from imbue.mailserver_testing.waiters import wait_for_tcp_port_in_container
from imbue.mailserver_testing.waiters import wait_until_account_maildir_exists
from imbue.mailserver_testing.waiters import wait_until_expected_count_is_matched

# Keys of the dict stored on click's ctx.obj. Callers (and tests) may pre-populate
# "runtime" and "poller" through CliRunner.invoke(obj=...).
_RUNTIME_KEY = "runtime"
_POLLER_KEY = "poller"
_HARNESS_CONTEXT_KEY = "harness_context"


def _get_state(ctx: click.Context) -> tuple[HarnessContext, ContainerRuntime, ConditionPoller]:
    return ctx.obj[_HARNESS_CONTEXT_KEY], ctx.obj[_RUNTIME_KEY], ctx.obj[_POLLER_KEY]


def _report(result: PollResult) -> None:
    logger.info("{} [{:.1f}s]", result.message, result.elapsed_seconds)


@click.group(name="mailserver-wait")
@click.option(
    "-c",
    "--container",
    "container_name",
    envvar=CONTAINER_NAME_ENV_VAR,
    required=True,
    help=f"Container to probe [env: {CONTAINER_NAME_ENV_VAR}]",
)
@click.option(
    "--timeout",
    default=None,
    help="Time budget in whole seconds (default: TEST_TIMEOUT_IN_SECONDS or 120)",
)
@click.option(
    "--log-level",
    type=click.Choice([level.value for level in LogLevel], case_sensitive=False),
    default=None,
    help="Log verbosity (default: MAILSERVER_TESTING_LOG_LEVEL or INFO)",
)
@click.pass_context
def main(ctx: click.Context, container_name: str, timeout: str | None, log_level: str | None) -> None:
    """Block until the mail server container reaches a given state."""
    config = load_config()
    setup_logging(LogLevel(log_level.upper()) if log_level else config.log_level)

    ctx.ensure_object(dict)
    if ctx.obj.get(_RUNTIME_KEY) is None:
        runtime = DockerContainerRuntime()
        ctx.call_on_close(runtime.close)
        ctx.obj[_RUNTIME_KEY] = runtime
    if ctx.obj.get(_POLLER_KEY) is None:
        ctx.obj[_POLLER_KEY] = config.make_poller()
    ctx.obj[_HARNESS_CONTEXT_KEY] = config.make_context(container_name, timeout)


@main.command()
@click.argument("port", type=click.IntRange(1, 65535))
@click.pass_context
def port(ctx: click.Context, port: int) -> None:
    """Wait until PORT accepts TCP connections inside the container."""
    harness_ctx, runtime, poller = _get_state(ctx)
    _report(wait_for_tcp_port_in_container(harness_ctx, runtime, port, poller=poller))


@main.command(name="smtp-response")
@click.pass_context
def smtp_response(ctx: click.Context) -> None:
    """Wait until the SMTP service answers QUIT with 221."""
    harness_ctx, runtime, poller = _get_state(ctx)
    _report(wait_for_smtp_port_in_container_to_respond(harness_ctx, runtime, poller=poller))


@main.command()
@click.argument("service_name")
@click.pass_context
def service(ctx: click.Context, service_name: str) -> None:
    """Wait until supervisord reports SERVICE_NAME as RUNNING."""
    harness_ctx, runtime, poller = _get_state(ctx)
    _report(wait_for_service(harness_ctx, runtime, service_name, poller=poller))


@main.command(name="log-count")
@click.argument("match_content")
@click.argument("log_path")
@click.option(
    "--expected-count",
    type=click.IntRange(min=0),
    default=None,
    help="Minimum number of matching lines (default: one more than the current count)",
)
@click.pass_context
def log_count(ctx: click.Context, match_content: str, log_path: str, expected_count: int | None) -> None:
    """Wait until LOG_PATH contains enough lines matching MATCH_CONTENT."""
    harness_ctx, runtime, poller = _get_state(ctx)
    _report(
        wait_until_expected_count_is_matched(
            harness_ctx,
            runtime,
            match_content,
            log_path,
            expected_count=expected_count,
            poller=poller,
        )
    )


@main.command()
@click.argument("account")
@click.pass_context
def maildir(ctx: click.Context, account: str) -> None:
    """Wait until the storage directory of ACCOUNT exists."""
    harness_ctx, runtime, poller = _get_state(ctx)
    _report(wait_until_account_maildir_exists(harness_ctx, runtime, account, poller=poller))


@main.command(name="empty-queue")
@click.pass_context
def empty_queue(ctx: click.Context) -> None:
    """Wait until the Postfix mail queue is empty."""
    harness_ctx, runtime, poller = _get_state(ctx)
    _report(wait_for_empty_mail_queue_in_container(harness_ctx, runtime, poller=poller))
