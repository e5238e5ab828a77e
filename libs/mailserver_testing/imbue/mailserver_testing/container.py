from abc import ABC
from abc import abstractmethod
from collections.abc import Sequence
from functools import cached_property

import docker
import docker.errors
import docker.models.containers
from loguru import logger

from imbue.mailserver_testing.data_types import ExecResult
from imbue.mailserver_testing.errors import ContainerExecError
from imbue.mailserver_testing.errors import ContainerNotFoundError
from imbue.mailserver_testing.errors import DockerUnavailableError


class ContainerRuntime(ABC):
    """Runs commands in, and inspects, named containers.

    All calls block until the container engine answers.
    """

    @abstractmethod
    def exec_in_container(self, container_name: str, command: Sequence[str]) -> ExecResult:
        """Run an argv list inside the container and return its exit status and combined output."""

    @abstractmethod
    def is_container_running(self, container_name: str) -> bool:
        """Return True if the container exists and is running."""

    @abstractmethod
    def get_container_ip_address(self, container_name: str) -> str:
        """Return the container's IP address on the default bridge network."""


class DockerContainerRuntime(ContainerRuntime):
    """ContainerRuntime backed by the Docker Engine API."""

    def __init__(self, base_url: str | None = None, client: docker.DockerClient | None = None) -> None:
        self._base_url = base_url
        self._explicit_client = client

    @cached_property
    def _docker_client(self) -> docker.DockerClient:
        if self._explicit_client is not None:
            return self._explicit_client
        try:
            if self._base_url:
                return docker.DockerClient(base_url=self._base_url)
            return docker.from_env()
        except docker.errors.DockerException as e:
            raise DockerUnavailableError(f"Could not connect to the Docker daemon: {e}") from e

    def _get_container(self, container_name: str) -> docker.models.containers.Container:
        try:
            return self._docker_client.containers.get(container_name)
        except docker.errors.NotFound as e:
            raise ContainerNotFoundError(container_name) from e

    def exec_in_container(self, container_name: str, command: Sequence[str]) -> ExecResult:
        container = self._get_container(container_name)
        try:
            exit_code, output = container.exec_run(list(command))
        except docker.errors.APIError as e:
            raise ContainerExecError(f"Failed to exec {list(command)} in {container_name}: {e}") from e
        output_str = output.decode("utf-8", errors="replace") if isinstance(output, bytes) else str(output or "")
        # exec_run reports None when the daemon could not determine the exit code
        return ExecResult(exit_code=exit_code if exit_code is not None else -1, output=output_str)

    def is_container_running(self, container_name: str) -> bool:
        try:
            container = self._docker_client.containers.get(container_name)
        except docker.errors.NotFound:
            logger.trace("Container {} does not exist", container_name)
            return False
        return bool(container.attrs.get("State", {}).get("Running", False))

    def get_container_ip_address(self, container_name: str) -> str:
        container = self._get_container(container_name)
        return container.attrs.get("NetworkSettings", {}).get("IPAddress", "")

    def close(self) -> None:
        if "_docker_client" in self.__dict__:
            self._docker_client.close()
            del self.__dict__["_docker_client"]
