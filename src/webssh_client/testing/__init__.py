"""
Testing utilities for webssh-client.

Provides FakeTransport (a scriptable server side), ManualClock and
ManualScheduler (time under test control) and RecordingUIHooks.
"""
from webssh_client.testing.fakes import (
    FakeTransport,
    FakeTransportFactory,
    ManualClock,
    ManualScheduler,
    RecordingUIHooks,
)

__all__ = [
    "FakeTransport",
    "FakeTransportFactory",
    "ManualClock",
    "ManualScheduler",
    "RecordingUIHooks",
]
