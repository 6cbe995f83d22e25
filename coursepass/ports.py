"""Collaborator interfaces consumed by the transition engine.

The engine never authenticates callers, stores balances, or produces
randomness itself. It talks to these boundary objects instead; reference
implementations live in ``coursepass.integrations``.
"""

from __future__ import annotations

from decimal import Decimal
from enum import Enum
from typing import Any, Protocol


class ExistenceRequirement(Enum):
    """Minimum-balance policy for the paying side of a currency transfer."""
    KEEP_ALIVE = "keep_alive"
    ALLOW_DEATH = "allow_death"


class Authenticator(Protocol):
    """Turns a raw request into a trusted account identity or raises."""

    def authenticate(self, request: Any) -> str:
        ...


class Currency(Protocol):
    """Balance ledger used to settle purchases.

    ``transfer`` raises ``InsufficientFunds`` or ``BelowMinimum`` and must not
    move any funds when it fails.
    """

    def balance_of(self, account: str) -> Decimal:
        ...

    def transfer(
        self,
        source: str,
        dest: str,
        amount: Decimal,
        requirement: ExistenceRequirement = ExistenceRequirement.KEEP_ALIVE,
    ) -> None:
        ...


class RandomnessSource(Protocol):
    """Produces bytes the caller cannot predict, separated by domain tag."""

    def random_bytes(self, tag: bytes) -> bytes:
        ...


class ExecutionContext(Protocol):
    """Per-call values supplied by the host."""

    def current_sequence_number(self) -> int:
        ...

    def current_height(self) -> int:
        ...


class EventSink(Protocol):
    """Fire-and-forget notification target."""

    def publish(self, event: Any) -> None:
        ...
