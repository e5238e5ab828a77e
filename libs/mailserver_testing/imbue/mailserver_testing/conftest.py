"""Shared fixtures for mailserver-testing unit tests."""

import pytest

from imbue.mailserver_testing.data_types import HarnessContext
from imbue.mailserver_testing.poller import ConditionPoller
from imbue.mailserver_testing.primitives import ContainerName
from imbue.mailserver_testing.primitives import TimeoutSeconds
from imbue.mailserver_testing.testing import FakeClock
from imbue.mailserver_testing.testing import FakeContainerRuntime
from imbue.mailserver_testing.testing import make_fake_poller

TEST_CONTAINER_NAME = "mailserver"


@pytest.fixture
def fake_clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def fake_poller(fake_clock: FakeClock) -> ConditionPoller:
    return make_fake_poller(fake_clock)


@pytest.fixture
def fake_runtime() -> FakeContainerRuntime:
    return FakeContainerRuntime(container_names=(TEST_CONTAINER_NAME,))


@pytest.fixture
def harness_ctx() -> HarnessContext:
    return HarnessContext(container_name=ContainerName(TEST_CONTAINER_NAME), timeout_seconds=TimeoutSeconds(30))
