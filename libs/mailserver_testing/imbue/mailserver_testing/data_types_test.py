import pytest
from pydantic import ValidationError

from imbue.mailserver_testing.data_types import ExecResult
from imbue.mailserver_testing.data_types import HarnessContext
from imbue.mailserver_testing.data_types import PollResult
from imbue.mailserver_testing.errors import InvalidTimeoutError
from imbue.mailserver_testing.errors import PollFatalAbortError
from imbue.mailserver_testing.errors import PollTimeoutError
from imbue.mailserver_testing.primitives import PollStatus


def _make_result(status: PollStatus) -> PollResult:
    return PollResult(
        status=status,
        message=f"{status} on mailq",
        probe_description="mailq",
        attempt_count=3,
        elapsed_seconds=2.0,
    )


def test_exec_result_success_and_lines() -> None:
    result = ExecResult(exit_code=0, output="a\nb\n")

    assert result.is_success
    assert result.lines == ["a", "b"]
    assert not ExecResult(exit_code=2).is_success


def test_poll_result_raise_if_failed_is_noop_on_success() -> None:
    _make_result(PollStatus.SUCCESS).raise_if_failed()


def test_poll_result_raise_if_failed_maps_statuses_to_errors() -> None:
    with pytest.raises(PollTimeoutError, match="TIMEOUT_EXCEEDED on mailq"):
        _make_result(PollStatus.TIMEOUT_EXCEEDED).raise_if_failed()

    with pytest.raises(PollFatalAbortError) as exc_info:
        _make_result(PollStatus.FATAL_ABORT).raise_if_failed()
    assert exc_info.value.result.attempt_count == 3


def test_poll_result_rejects_negative_elapsed() -> None:
    with pytest.raises(ValidationError):
        PollResult(
            status=PollStatus.SUCCESS,
            message="ok",
            probe_description="p",
            attempt_count=1,
            elapsed_seconds=-1.0,
        )


def test_harness_context_with_timeout_returns_updated_copy() -> None:
    ctx = HarnessContext(container_name="mailserver", timeout_seconds=120)

    updated = ctx.with_timeout("30")

    assert updated.timeout_seconds == 30
    assert ctx.timeout_seconds == 120
    assert updated.container_name == "mailserver"


def test_harness_context_with_timeout_validates() -> None:
    ctx = HarnessContext(container_name="mailserver", timeout_seconds=120)

    with pytest.raises(InvalidTimeoutError):
        ctx.with_timeout("soon")
