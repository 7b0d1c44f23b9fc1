"""Dramatiq broker selection for the pushwatch actors.

Deployments install their broker (RabbitMQ or Redis) before importing
:mod:`pushwatch.workers.actors`. Without one, Dramatiq falls back to RabbitMQ,
whose client library is optional; when it is absent pushwatch installs an
in-memory :class:`~dramatiq.brokers.stub.StubBroker`, but only for test runs
or when ``PUSHWATCH_ALLOW_STUB_BROKER`` is set.
"""

from __future__ import annotations

import sys
import threading

import dramatiq
from dramatiq.brokers.stub import StubBroker

from pushwatch.config import env_flag

_BROKER_LOCK = threading.Lock()


class BrokerNotConfiguredError(RuntimeError):
    """Raised when no broker is installed and a stub broker is not allowed."""

    def __init__(self) -> None:
        """Explain how to configure a broker."""
        super().__init__(
            "No Dramatiq broker configured. Install one before importing "
            "pushwatch.workers.actors, or set PUSHWATCH_ALLOW_STUB_BROKER=1 "
            "for local runs."
        )


def stub_broker_allowed() -> bool:
    """Return True under pytest or when ``PUSHWATCH_ALLOW_STUB_BROKER`` is set."""
    return "pytest" in sys.modules or env_flag(
        "PUSHWATCH_ALLOW_STUB_BROKER", default=False
    )


def ensure_broker_configured() -> dramatiq.Broker:
    """Return the active broker, installing a stub broker where allowed.

    Raises
    ------
    BrokerNotConfiguredError
        If Dramatiq has no usable broker and a stub broker is not allowed.

    """
    with _BROKER_LOCK:
        try:
            return dramatiq.get_broker()
        except ImportError as exc:
            if not stub_broker_allowed():
                raise BrokerNotConfiguredError from exc
        broker = StubBroker()
        dramatiq.set_broker(broker)
        return broker


__all__ = ["BrokerNotConfiguredError", "ensure_broker_configured"]
