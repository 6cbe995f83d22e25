"""
Reference collaborators for the course registry.

The engine consumes its boundary services through the protocols in
``coursepass.ports``. The adapters here are small, in-process versions of
those services used by the runtime, the CLI and the test suite:

    ledger.InMemoryLedger        Currency
    randomness.BlockContext      ExecutionContext
    randomness.BlockRandomness   RandomnessSource
    auth.Ed25519Authenticator    Authenticator
"""

from coursepass.integrations.auth import (
    Ed25519Authenticator,
    Rejected,
    SignedCall,
    generate_account,
    sign_call,
)
from coursepass.integrations.ledger import InMemoryLedger
from coursepass.integrations.randomness import BlockContext, BlockRandomness

__all__ = [
    "BlockContext",
    "BlockRandomness",
    "Ed25519Authenticator",
    "InMemoryLedger",
    "Rejected",
    "SignedCall",
    "generate_account",
    "sign_call",
]
