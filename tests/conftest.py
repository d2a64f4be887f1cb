"""Shared fixtures."""

import pytest

from tailgrid.session import RpcSession
from tailgrid.store import LogWindowStore

from tests.wire import RecordingTransport


@pytest.fixture
def transport():
    """Create a transport that records sent frames."""
    return RecordingTransport()


@pytest.fixture
def session(transport):
    return RpcSession(transport)


@pytest.fixture
def store():
    return LogWindowStore()
