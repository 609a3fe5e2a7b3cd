"""Shared fixtures for the stream writer tests."""

from __future__ import annotations

import socket

import pytest

from tests.support import Receiver, ResponseRecorder


@pytest.fixture
def receiver() -> Receiver:
    return Receiver()


@pytest.fixture
def recorder() -> ResponseRecorder:
    return ResponseRecorder()


@pytest.fixture
def unused_port() -> int:
    """A localhost port nothing listens on."""
    with socket.socket(socket.AF_INET, socket.SOCK_STREAM) as sock:
        sock.bind(("127.0.0.1", 0))
        return int(sock.getsockname()[1])
