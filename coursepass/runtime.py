"""
coursepass Host Runtime

Wires the registry to its reference collaborators and plays the host role:
it authenticates requests, advances the execution context between calls and
dispatches each call to the engine.

    ┌───────────────────────────────────────────────────────────────┐
    │  SignedCall ─▶ Ed25519Authenticator ─▶ account                │
    │                                           │                   │
    │  Runtime.submit(account, call, **args) ◀──┘                   │
    │     │ context.next_step()                                     │
    │     ▼                                                         │
    │  CourseEngine ─▶ RegistryStore / InMemoryLedger / EventBus    │
    └───────────────────────────────────────────────────────────────┘

Calls are serialized: each one runs to completion under the registry lock
before the next is dispatched.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from decimal import Decimal
from typing import Any, Dict, List, Optional, Tuple

from coursepass.config import CoursePassConfig, get_config
from coursepass.dna import DnaGenerator
from coursepass.engine import CourseEngine
from coursepass.errors import RegistryError
from coursepass.events import EventBus, EventStore
from coursepass import genesis
from coursepass.genesis import GenesisEntry, GenesisReport
from coursepass.hardening import ValidationError
from coursepass.integrations.auth import Ed25519Authenticator, SignedCall
from coursepass.integrations.ledger import InMemoryLedger
from coursepass.integrations.randomness import BlockContext, BlockRandomness
from coursepass.observability import (
    AuditLogger,
    Layer,
    correlation_id_var,
    generate_correlation_id,
    get_logger,
)
from coursepass.saga import CompensationFailed
from coursepass.schema import validate_with_schema
from coursepass.store import RegistryStore

logger = get_logger("runtime", Layer.RUNTIME)

# Required and optional keyword arguments of each dispatchable call
CALLS: Dict[str, Tuple[Tuple[str, ...], Tuple[str, ...]]] = {
    "mint": ((), ("dna", "course_year", "credits")),
    "create_course": ((), ()),
    "set_price": (("course_id", "new_price"), ()),
    "transfer": (("course_id", "to"), ()),
    "buy_course": (("course_id", "bid_price"), ()),
    "breed_course": (("first_parent", "second_parent"), ()),
}

OK = "ok"


@dataclass
class CallOutcome:
    """Result of one scenario call."""
    index: int
    caller: str
    call: str
    ok: bool
    result: Optional[str] = None
    error: Optional[Dict[str, Any]] = None
    expected: Optional[str] = None

    @property
    def outcome(self) -> str:
        if self.ok:
            return OK
        return (self.error or {}).get("kind", "error")

    @property
    def expectation_met(self) -> bool:
        return self.expected is None or self.expected == self.outcome

    def to_dict(self) -> Dict[str, Any]:
        d: Dict[str, Any] = {
            "index": self.index,
            "caller": self.caller,
            "call": self.call,
            "outcome": self.outcome,
        }
        if self.result is not None:
            d["result"] = self.result
        if self.error is not None:
            d["error"] = self.error
        if self.expected is not None:
            d["expected"] = self.expected
            d["expectation_met"] = self.expectation_met
        return d


@dataclass
class ScenarioReport:
    """Everything a scenario run produced."""
    genesis: GenesisReport
    calls: List[CallOutcome] = field(default_factory=list)
    names: Dict[str, str] = field(default_factory=dict)
    state: Dict[str, Any] = field(default_factory=dict)
    balances: Dict[str, str] = field(default_factory=dict)

    @property
    def unmet(self) -> List[CallOutcome]:
        return [c for c in self.calls if not c.expectation_met]

    def to_dict(self) -> Dict[str, Any]:
        return {
            "genesis": self.genesis.to_dict(),
            "calls": [c.to_dict() for c in self.calls],
            "summary": {
                "total": len(self.calls),
                "succeeded": sum(1 for c in self.calls if c.ok),
                "failed": sum(1 for c in self.calls if not c.ok),
                "unmet_expectations": len(self.unmet),
            },
            "names": dict(self.names),
            "state": self.state,
            "balances": self.balances,
        }


class Runtime:
    """A fully wired in-process registry."""

    def __init__(
        self,
        engine: CourseEngine,
        ledger: InMemoryLedger,
        context: BlockContext,
        randomness: BlockRandomness,
        authenticator: Optional[Ed25519Authenticator] = None,
    ):
        self.engine = engine
        self.ledger = ledger
        self.context = context
        self.randomness = randomness
        self.authenticator = authenticator or Ed25519Authenticator()

    @property
    def store(self) -> RegistryStore:
        return self.engine.store

    @property
    def bus(self) -> EventBus:
        return self.engine.bus  # type: ignore[return-value]

    @property
    def journal(self) -> EventStore:
        return self.engine.journal  # type: ignore[return-value]

    @classmethod
    def build(
        cls,
        config: Optional[CoursePassConfig] = None,
        seed: Optional[bytes] = None,
        max_courses_owned: Optional[int] = None,
        default_credits: Optional[int] = None,
        existential_deposit: Optional[Any] = None,
    ) -> "Runtime":
        """Create a runtime from configuration, with optional overrides."""
        config = config or get_config()

        if seed is None and config.dna.seed.get():
            seed = bytes.fromhex(config.dna.seed.get())

        store = RegistryStore(
            max_courses_owned=max_courses_owned or config.registry.max_courses_owned.get(),
            count_limit=config.registry.count_limit.get(),
        )
        context = BlockContext()
        randomness = BlockRandomness(context, seed=seed)
        dna = DnaGenerator(randomness, context, config.dna.domain_tag.get().encode("utf-8"))
        ledger = InMemoryLedger(
            existential_deposit
            if existential_deposit is not None
            else config.ledger.existential_deposit.get()
        )
        engine = CourseEngine(
            store,
            ledger,
            dna,
            bus=EventBus(),
            journal=EventStore(),
            default_credits=(
                default_credits
                if default_credits is not None
                else config.registry.default_credits.get()
            ),
            audit=AuditLogger(
                get_logger("audit", Layer.ENGINE),
                retention=config.observability.audit_retention.get(),
            ),
            check_invariants=config.registry.check_invariants.get(),
        )
        return cls(engine, ledger, context, randomness)

    @classmethod
    def for_scenario(
        cls,
        document: Dict[str, Any],
        config: Optional[CoursePassConfig] = None,
    ) -> "Runtime":
        """Build a runtime using a scenario's ``seed`` and ``config`` overrides."""
        validate_with_schema(document, "scenario")
        overrides = document.get("config") or {}
        seed = document.get("seed")
        return cls.build(
            config,
            seed=bytes.fromhex(seed) if seed else None,
            max_courses_owned=overrides.get("max_courses_owned"),
            default_credits=overrides.get("default_credits"),
            existential_deposit=overrides.get("existential_deposit"),
        )

    # ------------------------------------------------------------------
    # Dispatch
    # ------------------------------------------------------------------

    def submit(self, caller: str, call: str, **args: Any) -> Any:
        """Advance the execution step and run one engine call."""
        if call not in CALLS:
            raise ValidationError("call", f"Unknown call {call!r}", call)
        required, optional = CALLS[call]
        unknown = sorted(set(args) - set(required) - set(optional))
        if unknown:
            raise ValidationError("args", f"Unexpected arguments for {call}: {', '.join(unknown)}", unknown)
        missing = [name for name in required if name not in args]
        if missing:
            raise ValidationError("args", f"Missing arguments for {call}: {', '.join(missing)}", missing)

        self.context.next_step()
        token = correlation_id_var.set(generate_correlation_id())
        try:
            return getattr(self.engine, call)(caller, **args)
        finally:
            correlation_id_var.reset(token)

    def submit_signed(self, request: Any) -> Any:
        """Authenticate a signed request, then submit it as its account."""
        if isinstance(request, dict):
            request = SignedCall.from_dict(request)
        account = self.authenticator.authenticate(request)
        return self.submit(account, request.call, **request.args)

    # ------------------------------------------------------------------
    # Scenarios
    # ------------------------------------------------------------------

    def run_scenario(self, document: Dict[str, Any]) -> ScenarioReport:
        """
        Apply balances, genesis entries and calls from a scenario document.

        A failed call is recorded and the run continues. String arguments
        written as ``"$name"`` are replaced by the course id saved under
        ``name`` by a genesis entry or an earlier call's ``save_as``.
        """
        validate_with_schema(document, "scenario")

        for account, amount in (document.get("balances") or {}).items():
            self.ledger.set_balance(account, Decimal(str(amount)))

        entries = [GenesisEntry.from_dict(item) for item in document.get("genesis") or []]
        genesis_report = genesis.seed(self.engine, entries)
        report = ScenarioReport(genesis=genesis_report, names=dict(genesis_report.names))

        for index, step in enumerate(document["calls"]):
            if step.get("new_block"):
                self.context.new_block()
            outcome = CallOutcome(
                index=index,
                caller=step["caller"],
                call=step["call"],
                ok=True,
                expected=step.get("expect"),
            )
            try:
                args = {k: self._resolve(v, report.names) for k, v in (step.get("args") or {}).items()}
                result = self.submit(step["caller"], step["call"], **args)
            except RegistryError as exc:
                outcome.ok = False
                outcome.error = exc.to_dict()
            except ValidationError as exc:
                outcome.ok = False
                outcome.error = {"kind": "invalid_input", "message": str(exc), "details": {"field": exc.field}}
            except CompensationFailed as exc:
                outcome.ok = False
                outcome.error = {
                    "kind": "compensation_failed",
                    "message": str(exc),
                    "details": {"step": exc.step, "cause": str(exc.cause)},
                }
            else:
                if result is not None:
                    outcome.result = str(result)
                    if step.get("save_as"):
                        report.names[step["save_as"]] = outcome.result
            report.calls.append(outcome)

        report.state = self.engine.snapshot()
        report.balances = self.ledger.balances()

        logger.info(
            f"Scenario finished: {len(report.calls)} calls, {len(report.unmet)} unmet expectations",
            operation="run_scenario",
        )
        return report

    @staticmethod
    def _resolve(value: Any, names: Dict[str, str]) -> Any:
        if isinstance(value, str) and value.startswith("$"):
            name = value[1:]
            if name not in names:
                raise ValidationError("args", f"Unknown course reference {value}", value)
            return names[name]
        return value
