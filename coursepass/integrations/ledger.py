"""In-memory currency ledger."""

from __future__ import annotations

import threading
from decimal import Decimal
from typing import Dict, Union

from coursepass.errors import BelowMinimum, InsufficientFunds
from coursepass.hardening import Validators
from coursepass.observability import Layer, get_logger
from coursepass.ports import ExistenceRequirement

Amount = Union[Decimal, int, str]


class InMemoryLedger:
    """
    Decimal balances with an existential deposit.

    A ``KEEP_ALIVE`` transfer refuses to leave the payer with less than
    ``existential_deposit``; ``ALLOW_DEATH`` lets the payer drop to anything
    down to zero. A failed transfer moves nothing.
    """

    def __init__(self, existential_deposit: Amount = Decimal("1")):
        self.existential_deposit = Validators.validate_amount(
            existential_deposit, "existential_deposit"
        ).unwrap()
        self._balances: Dict[str, Decimal] = {}
        self._lock = threading.RLock()
        self._logger = get_logger("ledger", Layer.LEDGER)

    def balance_of(self, account: str) -> Decimal:
        with self._lock:
            return self._balances.get(account, Decimal("0"))

    def set_balance(self, account: str, amount: Amount) -> None:
        value = Validators.validate_amount(amount, "balance").unwrap()
        with self._lock:
            if value:
                self._balances[account] = value
            else:
                self._balances.pop(account, None)

    def deposit(self, account: str, amount: Amount) -> Decimal:
        """Credit ``amount`` to ``account`` and return the new balance."""
        value = Validators.validate_amount(amount, "amount").unwrap()
        with self._lock:
            balance = self.balance_of(account) + value
            self._balances[account] = balance
            return balance

    def transfer(
        self,
        source: str,
        dest: str,
        amount: Amount,
        requirement: ExistenceRequirement = ExistenceRequirement.KEEP_ALIVE,
    ) -> None:
        value = Validators.validate_amount(amount, "amount").unwrap()
        with self._lock:
            available = self.balance_of(source)
            if available < value:
                raise InsufficientFunds(
                    f"{source} has {available}, needs {value}",
                    account=source,
                    balance=str(available),
                    amount=str(value),
                )
            remaining = available - value
            if (
                requirement is ExistenceRequirement.KEEP_ALIVE
                and remaining < self.existential_deposit
            ):
                raise BelowMinimum(
                    f"{source} would be left with {remaining}, minimum is {self.existential_deposit}",
                    account=source,
                    remaining=str(remaining),
                    minimum=str(self.existential_deposit),
                )
            if source == dest:
                return
            self._balances[source] = remaining
            self._balances[dest] = self.balance_of(dest) + value
            if not remaining:
                del self._balances[source]

        self._logger.debug(
            "transfer settled",
            source=source,
            dest=dest,
            amount=str(value),
            requirement=requirement.value,
        )

    def balances(self) -> Dict[str, str]:
        """JSON-ready copy of every non-zero balance."""
        with self._lock:
            return {account: str(value) for account, value in sorted(self._balances.items())}
