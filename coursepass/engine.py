"""
Course Transition Engine

The only writer of the registry. Every operation validates its inputs,
checks preconditions against the store and the collaborators, and then
applies its mutations inside one ``RegistryStore.transaction()``.

    ┌──────────────────────────────────────────────────────────────────┐
    │  caller ─▶ validate ─▶ preconditions ─▶ mutate (staged)          │
    │                                            │                     │
    │                           error ◀──────────┤──────▶ commit       │
    │                             │                        │           │
    │                      discard overlay          journal + publish  │
    │                      audit "failure"          audit "success"    │
    └──────────────────────────────────────────────────────────────────┘

Purchases also move currency, which lives outside the store. ``buy_course``
runs the payment and the ownership change as a ``Saga`` so that a failed
ownership change refunds the payment before the overlay is discarded.

Events are buffered while an operation runs and are published only after
its transaction has committed.
"""

from __future__ import annotations

import time
from contextlib import contextmanager
from dataclasses import dataclass, field
from decimal import Decimal
from typing import Any, Dict, Iterator, List, Optional, Tuple

from coursepass.dna import DnaGenerator
from coursepass.errors import (
    BidTooLow,
    CapacityExceeded,
    CourseNotFound,
    InsufficientFunds,
    NotCourseOwner,
    NotForSale,
    RegistryError,
    TransferToSelf,
)
from coursepass.events import (
    CourseBought,
    CourseBred,
    CourseCreated,
    CourseTransferred,
    Event,
    EventStore,
    PriceSet,
)
from coursepass.hardening import InvariantChecker, ValidationError, Validators
from coursepass.identity import derive_course_id
from coursepass.model import DEFAULT_CREDITS, Course, CourseYear
from coursepass.observability import (
    AuditLogger,
    Layer,
    correlation_id_var,
    generate_correlation_id,
    get_correlation_id,
    get_logger,
)
from coursepass.ports import Currency, EventSink, ExistenceRequirement
from coursepass.saga import Saga
from coursepass.store import RegistryStore


@dataclass
class _Call:
    """Bookkeeping for one in-flight operation."""
    operation: str
    caller: str
    resource_id: str = ""
    events: List[Event] = field(default_factory=list)


class CourseEngine:
    """
    State-transition engine for the course registry.

    Example:
        engine = CourseEngine(store, ledger, DnaGenerator(randomness, context))
        course_id = engine.mint("alice")
        engine.set_price("alice", course_id, Decimal("10"))
        engine.buy_course("bob", course_id, Decimal("12"))
    """

    def __init__(
        self,
        store: RegistryStore,
        currency: Currency,
        dna: DnaGenerator,
        bus: Optional[EventSink] = None,
        journal: Optional[EventStore] = None,
        default_credits: int = DEFAULT_CREDITS,
        audit: Optional[AuditLogger] = None,
        check_invariants: bool = True,
    ):
        self.store = store
        self.currency = currency
        self.dna = dna
        self.bus = bus
        self.journal = journal
        self.default_credits = Validators.validate_credits(
            default_credits, "default_credits"
        ).unwrap()
        self._logger = get_logger("engine", Layer.ENGINE)
        self.audit = audit if audit is not None else AuditLogger(self._logger)
        self.check_invariants = check_invariants

    # ------------------------------------------------------------------
    # Dispatch
    # ------------------------------------------------------------------

    @contextmanager
    def _dispatch(self, operation: str, caller: Any, resource_id: Any = "") -> Iterator[_Call]:
        call = _Call(operation=operation, caller=str(caller), resource_id=str(resource_id or ""))
        # Direct library calls get their own id; a host-set id is left alone
        token = None
        if not correlation_id_var.get():
            token = correlation_id_var.set(generate_correlation_id())
        start = time.monotonic()
        try:
            try:
                with self.store.transaction():
                    yield call
                    if self.check_invariants:
                        InvariantChecker.check_registry(self.store)
            except (RegistryError, ValidationError) as exc:
                duration_ms = (time.monotonic() - start) * 1000
                code = exc.kind.value if isinstance(exc, RegistryError) else "invalid_input"
                self._logger.warning(
                    f"{operation} rejected: {exc}",
                    operation=operation,
                    error_code=code,
                    duration_ms=round(duration_ms, 3),
                    caller=call.caller,
                )
                self.audit.log(call.caller, operation, call.resource_id, "failure", error=code, reason=str(exc))
                raise
            except Exception as exc:
                self._logger.error(
                    f"{operation} failed: {exc}",
                    error_code=type(exc).__name__,
                    exc_info=True,
                    caller=call.caller,
                )
                self.audit.log(call.caller, operation, call.resource_id, "failure", error=type(exc).__name__)
                raise

            self._logger.operation(
                operation,
                (time.monotonic() - start) * 1000,
                caller=call.caller,
                course_id=call.resource_id,
            )
            self.audit.log(call.caller, operation, call.resource_id, "success")
            self._publish(call.events)
        finally:
            if token is not None:
                correlation_id_var.reset(token)

    def _publish(self, events: List[Event]) -> None:
        correlation_id = get_correlation_id()
        for event in events:
            event.correlation_id = correlation_id
            if self.journal is not None:
                self.journal.append(getattr(event, "course_id", "") or "registry", [event])
            if self.bus is not None:
                self.bus.publish(event)

    # ------------------------------------------------------------------
    # Shared steps
    # ------------------------------------------------------------------

    def _existing(self, course_id: str) -> Course:
        course = self.store.get(course_id)
        if course is None:
            raise CourseNotFound(f"course {course_id} does not exist", course_id=course_id)
        return course

    def _require_owner(self, course_id: str, account: str) -> Course:
        course = self._existing(course_id)
        if course.owner != account:
            raise NotCourseOwner(
                f"{account} does not own course {course_id}",
                course_id=course_id,
                account=account,
            )
        return course

    def _mint(
        self,
        call: _Call,
        owner: str,
        dna: bytes,
        course_year: CourseYear,
        credits: int,
    ) -> str:
        course = Course(dna=dna, course_year=course_year, credits=credits, owner=owner)
        course_id = derive_course_id(course)
        call.resource_id = call.resource_id or course_id

        # Counter first, then uniqueness, then the owner's capacity
        self.store.next_count()
        self.store.insert_new(course_id, course)
        self.store.add_to_owner_index(owner, course_id)

        call.events.append(CourseCreated(owner=owner, course_id=course_id))
        return course_id

    def _transfer_course_to(self, course_id: str, source: str, dest: str) -> Course:
        self.store.remove_from_owner_index(source, course_id)
        updated = self.store.update_owner_and_clear_price(course_id, dest)
        self.store.add_to_owner_index(dest, course_id)
        return updated

    @staticmethod
    def _parse_year(value: Any) -> CourseYear:
        try:
            return CourseYear.parse(value)
        except ValueError as exc:
            raise ValidationError("course_year", str(exc), value) from None

    # ------------------------------------------------------------------
    # Operations
    # ------------------------------------------------------------------

    def mint(
        self,
        caller: str,
        dna: Optional[bytes] = None,
        course_year: Optional[Any] = None,
        credits: Optional[int] = None,
    ) -> str:
        """
        Create a course owned by ``caller`` and return its id.

        Without arguments the course gets generated DNA, the first tier and
        the engine's default credits. Genesis seeding passes all three.
        """
        with self._dispatch("mint", caller) as call:
            owner = Validators.validate_account(caller, "caller").unwrap()
            fingerprint = (
                self.dna.generate() if dna is None
                else Validators.validate_dna(dna).unwrap()
            )
            year = CourseYear.FIRST if course_year is None else self._parse_year(course_year)
            amount = (
                self.default_credits if credits is None
                else Validators.validate_credits(credits).unwrap()
            )
            course_id = self._mint(call, owner, fingerprint, year, amount)
        return course_id

    def create_course(self, caller: str) -> str:
        """Mint a default course for ``caller``."""
        return self.mint(caller)

    def set_price(self, caller: str, course_id: str, new_price: Optional[Any]) -> None:
        """Set or clear (``None``) the asking price of a course the caller owns."""
        with self._dispatch("set_price", caller, course_id) as call:
            owner = Validators.validate_account(caller, "caller").unwrap()
            course_id = Validators.validate_course_id(course_id).unwrap()
            price: Optional[Decimal] = Validators.validate_optional_amount(new_price, "price").unwrap()

            self._require_owner(course_id, owner)
            self.store.update_price(course_id, price)

            call.events.append(PriceSet(
                owner=owner,
                course_id=course_id,
                price=None if price is None else str(price),
            ))

    def transfer(self, caller: str, course_id: str, to: str) -> None:
        """Give a course to another account. Any asking price is cleared."""
        with self._dispatch("transfer", caller, course_id) as call:
            source = Validators.validate_account(caller, "caller").unwrap()
            course_id = Validators.validate_course_id(course_id).unwrap()
            dest = Validators.validate_account(to, "to").unwrap()

            self._require_owner(course_id, source)
            if dest == source:
                raise TransferToSelf(f"{source} cannot transfer to itself", course_id=course_id)
            self._transfer_course_to(course_id, source, dest)

            call.events.append(CourseTransferred(source=source, dest=dest, course_id=course_id))

    def buy_course(self, buyer: str, course_id: str, bid_price: Any) -> None:
        """
        Buy a course that is for sale, paying ``bid_price`` to its owner.

        The bid must be at least the asking price. Payment and ownership
        change succeed or fail together. Raises ``TransferToSelf`` when the
        buyer already owns the course.
        """
        with self._dispatch("buy_course", buyer, course_id) as call:
            buyer = Validators.validate_account(buyer, "buyer").unwrap()
            course_id = Validators.validate_course_id(course_id).unwrap()
            bid: Decimal = Validators.validate_amount(bid_price, "bid_price").unwrap()

            course = self._existing(course_id)
            seller = course.owner
            if seller == buyer:
                raise TransferToSelf(f"{buyer} already owns course {course_id}", course_id=course_id)
            if course.price is None:
                raise NotForSale(f"course {course_id} is not for sale", course_id=course_id)
            if bid < course.price:
                raise BidTooLow(
                    f"bid {bid} is below asking price {course.price}",
                    course_id=course_id,
                    bid=str(bid),
                    price=str(course.price),
                )
            balance = self.currency.balance_of(buyer)
            if balance < bid:
                raise InsufficientFunds(
                    f"{buyer} has {balance}, bid is {bid}",
                    account=buyer,
                    balance=str(balance),
                    amount=str(bid),
                )
            owned = self.store.owned(buyer)
            if len(owned) >= self.store.max_courses_owned:
                raise CapacityExceeded(
                    f"{buyer} already owns {len(owned)} courses",
                    account=buyer,
                    limit=self.store.max_courses_owned,
                )

            saga = Saga(f"buy:{course_id}")
            saga.add_step(
                "settle",
                lambda: self.currency.transfer(buyer, seller, bid, ExistenceRequirement.KEEP_ALIVE),
                lambda: self.currency.transfer(seller, buyer, bid, ExistenceRequirement.ALLOW_DEATH),
            )
            saga.add_step("transfer", lambda: self._transfer_course_to(course_id, seller, buyer))
            saga.execute()

            call.events.append(CourseBought(
                buyer=buyer,
                seller=seller,
                course_id=course_id,
                price=str(bid),
            ))

    def breed_course(self, caller: str, first_parent: str, second_parent: str) -> str:
        """
        Mint a child of two courses the caller owns and return its id.

        Both parents are checked before any randomness is drawn.
        """
        with self._dispatch("breed_course", caller) as call:
            owner = Validators.validate_account(caller, "caller").unwrap()
            first_parent = Validators.validate_course_id(first_parent, "first_parent").unwrap()
            second_parent = Validators.validate_course_id(second_parent, "second_parent").unwrap()

            first = self._require_owner(first_parent, owner)
            second = self._require_owner(second_parent, owner)

            child_dna = self.dna.breed(first.dna, second.dna)
            child_id = self._mint(call, owner, child_dna, CourseYear.FIRST, self.default_credits)

            call.events.append(CourseBred(
                owner=owner,
                first_parent=first_parent,
                second_parent=second_parent,
                course_id=child_id,
            ))
        return child_id

    # ------------------------------------------------------------------
    # Queries
    # ------------------------------------------------------------------

    def course(self, course_id: str) -> Optional[Course]:
        return self.store.get(course_id)

    def courses_owned(self, account: str) -> Tuple[str, ...]:
        return self.store.owned(account)

    def course_count(self) -> int:
        return self.store.count

    def is_course_owner(self, course_id: str, account: str) -> bool:
        """True if ``account`` owns the course; raises ``CourseNotFound`` for unknown ids."""
        return self._existing(course_id).owner == account

    def snapshot(self) -> Dict[str, Any]:
        return self.store.snapshot()
