"""Tests for the mailserver-wait command line interface."""

import pytest
from click.testing import CliRunner
from click.testing import Result

from imbue.mailserver_testing.cli import main
from imbue.mailserver_testing.data_types import ExecResult
from imbue.mailserver_testing.poller import ConditionPoller
from imbue.mailserver_testing.testing import FakeContainerRuntime


@pytest.fixture
def cli_runner() -> CliRunner:
    return CliRunner()


@pytest.fixture(autouse=True)
def _clean_environment(monkeypatch: pytest.MonkeyPatch) -> None:
    for name in ("CONTAINER_NAME", "TEST_TIMEOUT_IN_SECONDS", "MAILSERVER_TESTING_LOG_LEVEL"):
        monkeypatch.delenv(name, raising=False)


def _invoke(
    cli_runner: CliRunner,
    args: list[str],
    runtime: FakeContainerRuntime,
    poller: ConditionPoller,
) -> Result:
    return cli_runner.invoke(main, args, obj={"runtime": runtime, "poller": poller})


def test_port_command_succeeds(
    cli_runner: CliRunner,
    fake_runtime: FakeContainerRuntime,
    fake_poller: ConditionPoller,
) -> None:
    fake_runtime.script(["nc", "-z", "0.0.0.0", "25"], ExecResult(exit_code=1), ExecResult(exit_code=0))

    result = _invoke(cli_runner, ["--container", "mailserver", "port", "25"], fake_runtime, fake_poller)

    assert result.exit_code == 0, result.output
    assert fake_runtime.calls_for(["nc", "-z", "0.0.0.0", "25"]) == 2


def test_container_name_can_come_from_environment(
    cli_runner: CliRunner,
    fake_runtime: FakeContainerRuntime,
    fake_poller: ConditionPoller,
    monkeypatch: pytest.MonkeyPatch,
) -> None:
    monkeypatch.setenv("CONTAINER_NAME", "mailserver")
    fake_runtime.script_output(["mailq"], "Mail queue is empty")

    result = _invoke(cli_runner, ["empty-queue"], fake_runtime, fake_poller)

    assert result.exit_code == 0, result.output


def test_missing_container_name_is_a_usage_error(
    cli_runner: CliRunner,
    fake_runtime: FakeContainerRuntime,
    fake_poller: ConditionPoller,
) -> None:
    result = _invoke(cli_runner, ["empty-queue"], fake_runtime, fake_poller)

    assert result.exit_code == 2
    assert "--container" in result.output


def test_timeout_failure_exits_nonzero_with_message(
    cli_runner: CliRunner,
    fake_runtime: FakeContainerRuntime,
    fake_poller: ConditionPoller,
) -> None:
    fake_runtime.script_output(["mailq"], "1 message queued")

    result = _invoke(
        cli_runner,
        ["--container", "mailserver", "--timeout", "3", "empty-queue"],
        fake_runtime,
        fake_poller,
    )

    assert result.exit_code == 1
    assert "Timed out on command: mailq" in result.output


def test_malformed_timeout_is_reported(
    cli_runner: CliRunner,
    fake_runtime: FakeContainerRuntime,
    fake_poller: ConditionPoller,
) -> None:
    result = _invoke(
        cli_runner,
        ["--container", "mailserver", "--timeout", "abc", "port", "25"],
        fake_runtime,
        fake_poller,
    )

    assert result.exit_code == 1
    assert 'Timeout must be a non-negative integer, received "abc"' in result.output
    assert fake_runtime.exec_calls == []


def test_fatal_abort_exits_nonzero(
    cli_runner: CliRunner,
    fake_runtime: FakeContainerRuntime,
    fake_poller: ConditionPoller,
) -> None:
    fake_runtime.set_running("mailserver", False)

    result = _invoke(cli_runner, ["--container", "mailserver", "service", "postfix"], fake_runtime, fake_poller)

    assert result.exit_code == 1
    assert "early aborting" in result.output


def test_log_count_command_passes_expected_count(
    cli_runner: CliRunner,
    fake_runtime: FakeContainerRuntime,
    fake_poller: ConditionPoller,
) -> None:
    fake_runtime.script_output(["env"], "LOG_LEVEL=debug\n")
    fake_runtime.script_output(["grep", "--count", "--", "dovecot: imap", "/var/log/mail.log"], "3\n")

    result = _invoke(
        cli_runner,
        ["-c", "mailserver", "log-count", "dovecot: imap", "/var/log/mail.log", "--expected-count", "3"],
        fake_runtime,
        fake_poller,
    )

    assert result.exit_code == 0, result.output


def test_log_count_command_reports_low_log_level(
    cli_runner: CliRunner,
    fake_runtime: FakeContainerRuntime,
    fake_poller: ConditionPoller,
) -> None:
    fake_runtime.script_output(["env"], "LOG_LEVEL=warn\n")

    result = _invoke(
        cli_runner,
        ["-c", "mailserver", "log-count", "dovecot: imap", "/var/log/mail.log"],
        fake_runtime,
        fake_poller,
    )

    assert result.exit_code == 1
    assert "LOG_LEVEL=debug or LOG_LEVEL=trace" in result.output


def test_maildir_and_smtp_response_commands(
    cli_runner: CliRunner,
    fake_runtime: FakeContainerRuntime,
    fake_poller: ConditionPoller,
) -> None:
    fake_runtime.script(["test", "-d", "/var/mail/example.test/alice"], ExecResult(exit_code=0))
    fake_runtime.script_output(
        ["timeout", "10", "/bin/bash", "-c", "echo QUIT | nc localhost 25"],
        "220 mail.example.test ESMTP\n221 2.0.0 Bye\n",
    )

    maildir_args = ["-c", "mailserver", "maildir", "alice@example.test"]
    maildir_result = _invoke(cli_runner, maildir_args, fake_runtime, fake_poller)
    smtp_result = _invoke(cli_runner, ["-c", "mailserver", "smtp-response"], fake_runtime, fake_poller)

    assert maildir_result.exit_code == 0, maildir_result.output
    assert smtp_result.exit_code == 0, smtp_result.output


def test_port_command_rejects_out_of_range_port(
    cli_runner: CliRunner,
    fake_runtime: FakeContainerRuntime,
    fake_poller: ConditionPoller,
) -> None:
    result = _invoke(cli_runner, ["-c", "mailserver", "port", "0"], fake_runtime, fake_poller)

    assert result.exit_code == 2


@pytest.mark.parametrize(
    ("args", "message"),
    [
        (["-c", " ", "port", "25"], "Container name must be provided"),
        (["-c", "mailserver", "service", " "], "Service name must be provided"),
    ],
)
def test_blank_names_are_reported_without_traceback(
    cli_runner: CliRunner,
    fake_runtime: FakeContainerRuntime,
    fake_poller: ConditionPoller,
    args: list[str],
    message: str,
) -> None:
    result = _invoke(cli_runner, args, fake_runtime, fake_poller)

    assert result.exit_code == 1
    assert f"Error: {message}" in result.output
    assert result.exception is None or isinstance(result.exception, SystemExit)
