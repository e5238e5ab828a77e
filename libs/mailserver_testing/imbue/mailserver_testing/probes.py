"""Probes: no-argument checks the poller invokes until they report success.

A probe returns a ProbeOutcome. Plain predicates returning bool are accepted
everywhere a probe is, with True meaning SUCCESS and False meaning NOT_READY.
"""

import shlex
from collections.abc import Callable
from collections.abc import Sequence

from loguru import logger

from imbue.mailserver_testing.container import ContainerRuntime
from imbue.mailserver_testing.data_types import ExecResult
from imbue.mailserver_testing.errors import ContainerExecError
from imbue.mailserver_testing.errors import ContainerNotFoundError
from imbue.mailserver_testing.primitives import ProbeOutcome

Probe = Callable[[], ProbeOutcome | bool]


def to_outcome(value: ProbeOutcome | bool) -> ProbeOutcome:
    if isinstance(value, ProbeOutcome):
        return value
    if isinstance(value, bool):
        return ProbeOutcome.SUCCESS if value else ProbeOutcome.NOT_READY
    raise TypeError(f"Probe must return a ProbeOutcome or bool, got {value!r}")


def describe_probe(probe: Probe) -> str:
    description = getattr(probe, "description", None)
    if description:
        return str(description)
    return getattr(probe, "__name__", None) or repr(probe)


class NamedProbe:
    """Attaches a description to an arbitrary probe callable."""

    def __init__(self, check: Probe, description: str) -> None:
        self._check = check
        self.description = description

    def __call__(self) -> ProbeOutcome:
        return to_outcome(self._check())

    def __repr__(self) -> str:
        return f"NamedProbe({self.description!r})"


def format_command(command: Sequence[str]) -> str:
    return shlex.join(command)


class CommandProbe:
    """Runs a command in a container and judges the result.

    The most recent ExecResult is kept on last_result so callers can inspect
    the output of the final attempt.
    """

    def __init__(
        self,
        runtime: ContainerRuntime,
        container_name: str,
        command: Sequence[str],
        is_satisfied: Callable[[ExecResult], bool] | None = None,
        description: str | None = None,
    ) -> None:
        if not command:
            raise ValueError("Command must not be empty")
        self._runtime = runtime
        self._container_name = container_name
        self._command = tuple(command)
        self._is_satisfied = is_satisfied or (lambda result: result.is_success)
        self.description = description or f"{format_command(self._command)} (in {container_name})"
        self.last_result: ExecResult | None = None

    @property
    def command(self) -> tuple[str, ...]:
        return self._command

    def __call__(self) -> ProbeOutcome:
        try:
            result = self._runtime.exec_in_container(self._container_name, self._command)
        except ContainerNotFoundError:
            logger.trace("Container {} is gone, probe {} cannot succeed", self._container_name, self.description)
            return ProbeOutcome.FATAL
        except ContainerExecError as e:
            logger.trace("Exec failed for probe {}: {}", self.description, e)
            self.last_result = ExecResult(exit_code=-1, output=str(e))
            return ProbeOutcome.NOT_READY
        self.last_result = result
        if self._is_satisfied(result):
            return ProbeOutcome.SUCCESS
        return ProbeOutcome.NOT_READY

    def __repr__(self) -> str:
        return f"CommandProbe({self.description!r})"


def command_probe(runtime: ContainerRuntime, container_name: str, command: Sequence[str]) -> CommandProbe:
    """Probe that succeeds when the command exits 0."""
    return CommandProbe(runtime, container_name, command)


def output_contains_probe(
    runtime: ContainerRuntime,
    container_name: str,
    command: Sequence[str],
    expected_substring: str,
) -> CommandProbe:
    """Probe that succeeds when the command's output contains the substring, whatever its exit status."""
    return CommandProbe(
        runtime,
        container_name,
        command,
        is_satisfied=lambda result: expected_substring in result.output,
        description=f"{format_command(command)} (in {container_name}) output contains {expected_substring!r}",
    )


def container_is_running(runtime: ContainerRuntime, container_name: str) -> NamedProbe:
    """Fatal test: the container is still running."""
    return NamedProbe(
        lambda: runtime.is_container_running(container_name),
        description=f"container {container_name} is running",
    )
