"""
coursepass: a transactional course registry

Every course has an owner, an optional asking price and a 16-byte DNA
fingerprint. Courses are minted, re-priced, transferred, sold and bred by
a single transition engine that keeps three coupled collections consistent.

Architecture
────────────

    ┌──────────────────────────────────────────────────────────────────┐
    │                         COURSE REGISTRY                           │
    │                                                                   │
    │  HOST                                                             │
    │    runtime.py     Wiring, call dispatch, scenario replay          │
    │    cli.py         Command-line interface                          │
    │    genesis.py     Initial courses from YAML/JSON documents        │
    │                                                                   │
    │  ENGINE                                                           │
    │    engine.py      mint, set_price, transfer, buy, breed           │
    │    saga.py        Compensation for payments outside the store     │
    │    events.py      Domain events, bus and journal                  │
    │                                                                   │
    │  STATE                                                            │
    │    store.py       courses, course_count, courses_owned            │
    │    model.py       Course record and tiers                         │
    │    identity.py    Content-addressed course ids                    │
    │    dna.py         Fingerprint generation and breeding             │
    │                                                                   │
    │  BOUNDARY                                                         │
    │    ports.py       Collaborator protocols                          │
    │    integrations/  Ledger, randomness, Ed25519 authentication      │
    │                                                                   │
    │  AMBIENT                                                          │
    │    config.py  observability.py  hardening.py  schema.py  core.py  │
    └──────────────────────────────────────────────────────────────────┘

Failed operations leave the registry untouched: every engine call runs in a
single store transaction and publishes its events only after commit.
"""

__version__ = "0.3.0"


# Lazy imports keep ``import coursepass`` cheap for the CLI
def __getattr__(name):
    """Lazy import coursepass modules on first access."""

    if name in ("CourseEngine",):
        from coursepass import engine
        return getattr(engine, name)

    if name in ("RegistryStore", "Storage", "MemoryStorage"):
        from coursepass import store
        return getattr(store, name)

    if name in ("Course", "CourseYear"):
        from coursepass import model
        return getattr(model, name)

    if name in ("DnaGenerator", "mix_dna"):
        from coursepass import dna
        return getattr(dna, name)

    if name in ("derive_course_id",):
        from coursepass import identity
        return getattr(identity, name)

    if name in ("Runtime",):
        from coursepass import runtime
        return getattr(runtime, name)

    if name in ("GenesisConfig", "GenesisEntry", "seed"):
        from coursepass import genesis
        return getattr(genesis, name)

    if name in ("ErrorKind", "RegistryError", "CourseNotFound", "NotCourseOwner",
                "CourseExists", "CapacityExceeded", "CountOverflow", "TransferToSelf",
                "NotForSale", "BidTooLow", "InsufficientFunds", "BelowMinimum"):
        from coursepass import errors
        return getattr(errors, name)

    raise AttributeError(f"module 'coursepass' has no attribute '{name}'")


__all__ = [
    "__version__",
    "CourseEngine",
    "RegistryStore",
    "Storage",
    "MemoryStorage",
    "Course",
    "CourseYear",
    "DnaGenerator",
    "mix_dna",
    "derive_course_id",
    "Runtime",
    "GenesisConfig",
    "GenesisEntry",
    "seed",
    "ErrorKind",
    "RegistryError",
    "CourseNotFound",
    "NotCourseOwner",
    "CourseExists",
    "CapacityExceeded",
    "CountOverflow",
    "TransferToSelf",
    "NotForSale",
    "BidTooLow",
    "InsufficientFunds",
    "BelowMinimum",
]
