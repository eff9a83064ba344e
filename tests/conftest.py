import pytest

from proxmox_tasks.task import Task

from .fakes import UPID_OK, FakeTransport, ManualClock


@pytest.fixture
def transport():
    return FakeTransport()


@pytest.fixture
def clock():
    return ManualClock()


@pytest.fixture
def task(transport):
    return Task(UPID_OK, transport)
