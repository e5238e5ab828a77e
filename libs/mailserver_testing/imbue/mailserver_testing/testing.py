from collections.abc import Sequence

from imbue.mailserver_testing.container import ContainerRuntime
from imbue.mailserver_testing.data_types import ExecResult
from imbue.mailserver_testing.errors import ContainerExecError
from imbue.mailserver_testing.errors import ContainerNotFoundError
from imbue.mailserver_testing.poller import ConditionPoller


class FakeClock:
    """Monotonic clock whose sleep advances time instantly."""

    def __init__(self, start: float = 0.0) -> None:
        self.now = start
        self.sleeps: list[float] = []

    def __call__(self) -> float:
        return self.now

    def sleep(self, seconds: float) -> None:
        self.sleeps.append(seconds)
        self.now += seconds

    def advance(self, seconds: float) -> None:
        self.now += seconds


def make_fake_poller(clock: FakeClock, poll_interval_seconds: float = 1.0) -> ConditionPoller:
    return ConditionPoller(poll_interval_seconds=poll_interval_seconds, clock=clock, sleep=clock.sleep)


class FakeContainerRuntime(ContainerRuntime):
    """In-memory ContainerRuntime with scripted command results.

    Each command maps to a queue of results. The queue is consumed one result per
    exec, and its last result repeats once the queue is down to one entry. Running
    state can likewise be scripted as a sequence whose last value repeats.
    """

    def __init__(self, container_names: Sequence[str] = ("mailserver",)) -> None:
        self._results_by_command: dict[tuple[str, ...], list[ExecResult]] = {}
        self._running_by_container: dict[str, list[bool]] = {name: [True] for name in container_names}
        self.ip_address_by_container: dict[str, str] = {name: "172.17.0.2" for name in container_names}
        self.exec_calls: list[tuple[str, tuple[str, ...]]] = []
        self.running_checks: list[str] = []

    def script(self, command: Sequence[str], *results: ExecResult) -> None:
        if not results:
            raise ValueError("At least one result must be scripted")
        self._results_by_command[tuple(command)] = list(results)

    def script_output(self, command: Sequence[str], *outputs: str, exit_code: int = 0) -> None:
        self.script(command, *(ExecResult(exit_code=exit_code, output=output) for output in outputs))

    def set_running(self, container_name: str, *states: bool) -> None:
        if not states:
            raise ValueError("At least one running state must be given")
        self._running_by_container[container_name] = list(states)

    def calls_for(self, command: Sequence[str]) -> int:
        return sum(1 for _, called in self.exec_calls if called == tuple(command))

    def exec_in_container(self, container_name: str, command: Sequence[str]) -> ExecResult:
        if container_name not in self._running_by_container:
            raise ContainerNotFoundError(container_name)
        self.exec_calls.append((container_name, tuple(command)))
        if not self._running_by_container[container_name][0]:
            raise ContainerExecError(f"Container {container_name} is not running")
        queue = self._results_by_command.get(tuple(command))
        if queue is None:
            return ExecResult(exit_code=127, output=f"{command[0]}: command not found")
        if len(queue) > 1:
            return queue.pop(0)
        return queue[0]

    def is_container_running(self, container_name: str) -> bool:
        self.running_checks.append(container_name)
        states = self._running_by_container.get(container_name)
        if states is None:
            return False
        if len(states) > 1:
            return states.pop(0)
        return states[0]

    def get_container_ip_address(self, container_name: str) -> str:
        if container_name not in self.ip_address_by_container:
            raise ContainerNotFoundError(container_name)
        return self.ip_address_by_container[container_name]
