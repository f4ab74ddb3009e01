"""
Pytest fixtures for webssh-client tests.

Provides:
- Manual clock and scheduler, so timers fire only when a test says so
- Fake transport factory and recording UI hooks
- A client wired to all of the above
- Sample private keys with valid (and invalid) structure
"""
from __future__ import annotations

import base64
import textwrap

import pytest

from webssh_client.config import ClientConfig
from webssh_client.connection import WebSSHClient
from webssh_client.events import EventCollector, EventEmitter
from webssh_client.testing import (
    FakeTransportFactory,
    ManualClock,
    ManualScheduler,
    RecordingUIHooks,
)


def make_pem(label: str, body: bytes) -> str:
    """Wrap raw bytes in PEM framing with 64-character lines."""
    encoded = base64.b64encode(body).decode("ascii")
    lines = "\n".join(textwrap.wrap(encoded, 64))
    return f"-----BEGIN {label}-----\n{lines}\n-----END {label}-----\n"


OPENSSH_KEY = make_pem("OPENSSH PRIVATE KEY", b"openssh-key-v1\x00" + b"\x00\x00\x00\x04none" * 8)
RSA_KEY = make_pem("RSA PRIVATE KEY", b"\x30\x82\x04\xa4\x02\x01\x00" + b"\x11" * 64)
PKCS8_KEY = make_pem("PRIVATE KEY", b"\x30\x82\x04\xbe\x02\x01\x00" + b"\x22" * 64)
EC_KEY = make_pem("EC PRIVATE KEY", b"\x30\x77\x02\x01\x01" + b"\x33" * 32)
CORRUPTED_OPENSSH_KEY = make_pem("OPENSSH PRIVATE KEY", b"not-the-openssh-magic" * 4)
PUBLIC_KEY = "ssh-ed25519 AAAAC3NzaC1lZDI1NTE5AAAAIGZha2VrZXlmYWtla2V5ZmFrZWtleWZha2U alice@laptop"


@pytest.fixture
def clock() -> ManualClock:
    return ManualClock()


@pytest.fixture
def scheduler(clock: ManualClock) -> ManualScheduler:
    return ManualScheduler(clock)


@pytest.fixture
def factory() -> FakeTransportFactory:
    return FakeTransportFactory()


@pytest.fixture
def hooks() -> RecordingUIHooks:
    return RecordingUIHooks()


@pytest.fixture
def config() -> ClientConfig:
    return ClientConfig()


@pytest.fixture
def collector() -> EventCollector:
    return EventCollector()


@pytest.fixture
def client(
    config: ClientConfig,
    factory: FakeTransportFactory,
    hooks: RecordingUIHooks,
    scheduler: ManualScheduler,
    collector: EventCollector,
) -> WebSSHClient:
    """A client with fake transport, manual timers and recorded UI calls."""
    return WebSSHClient(
        config,
        factory,
        hooks,
        scheduler=scheduler,
        emitter=EventEmitter(collector=collector),
    )


@pytest.fixture
def login_form() -> dict[str, str]:
    return {"host": "example.com", "port": "22", "username": "alice", "password": "s3cret"}
